"""
매매 전략 추상 클래스 정의.

[ 역할 ]
    매매 로직의 인터페이스를 정의.
    봉 데이터와 현재 인덱스를 받아 매수/매도/홀드 시그널을 생성.
    전략은 포지션 상태를 모른다. 진입/청산 해석은 백테스트 엔진 몫.

[ 구현체 ]
    - strategies/ma_cross_strategy.py::MACrossStrategy         (이동평균 골든/데드크로스)
    - strategies/rsi_strategy.py::RSIStrategy                  (RSI 과매도 반등 / 과매수 하락)
    - strategies/bollinger_band_strategy.py::BollingerBandStrategy
    - strategies/momentum_strategy.py::MomentumStrategy

[ 호출하는 곳 ]
    - backtest/engine.py::BacktestEngine.run_backtest()에서
      봉마다 generate_signal()을 호출하여 시그널을 받고 주문 실행

[ 데이터 흐름 ]
    bars(PriceBar 리스트) + index → generate_signal() → Signal 반환
    FLAT 상태에서 BUY, LONG 상태에서 SELL이면 엔진이 주문 실행
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Sequence

from trading_journal.core.price_data import PriceBar


class SignalType(Enum):
    """전략이 반환하는 시그널 종류."""
    BUY = "buy"
    SELL = "sell"
    HOLD = "hold"


@dataclass
class Signal:
    """generate_signal()의 반환값. 엔진에 전달되어 주문으로 변환됨."""
    signal_type: SignalType
    reason: str = ""         # 시그널 발생 사유 (로깅용)


class TradingStrategy(ABC):
    """매매 전략 추상 클래스.

    새 전략을 만들려면 이 클래스를 상속받아 아래를 구현하면 된다:
    - DEFAULT_PARAMS: 파라미터 기본값
    - generate_signal(): 인덱스 기준 시그널 생성 (index 이후 봉은 참조 금지)
    - minimum_data_points: 첫 시그널 판단에 필요한 최소 봉 개수
    - describe(): 사람이 읽는 전략 설명
    """

    DEFAULT_PARAMS: dict[str, Any] = {}

    def __init__(self, name: str, params: dict[str, Any] | None = None):
        self.name = name
        # config.yaml에서 로드된 전략 파라미터가 기본값을 덮어쓴다
        self.params = {**self.DEFAULT_PARAMS, **(params or {})}

    @abstractmethod
    def generate_signal(self, bars: Sequence[PriceBar], index: int) -> Signal:
        """매매 시그널 생성.

        Args:
            bars: 날짜 오름차순 봉 데이터
            index: 판단 시점 인덱스

        Returns:
            Signal: 매수/매도/홀드 시그널
        """
        ...

    @property
    @abstractmethod
    def minimum_data_points(self) -> int:
        """시그널 계산에 필요한 최소 봉 개수. 엔진은 minimum_data_points - 1 인덱스부터 판단한다."""
        ...

    @abstractmethod
    def describe(self) -> str:
        """전략 설명 문자열."""
        ...

    def has_enough_data(self, index: int) -> bool:
        return index >= self.minimum_data_points - 1

    def insufficient_data_signal(self) -> Signal:
        return Signal(
            signal_type=SignalType.HOLD,
            reason=f"데이터 부족 (최소 {self.minimum_data_points}개 봉 필요)",
        )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r}, params={self.params!r})"
