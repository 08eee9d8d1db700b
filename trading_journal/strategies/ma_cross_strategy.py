"""
이동평균 교차(MA Cross) 전략 구현.

[ 역할 ]
    core/trading_strategy.py::TradingStrategy의 구현체.
    "단기 이동평균이 장기 이동평균을 상향 돌파하면 매수(골든크로스),
     하향 돌파하면 매도(데드크로스)"

[ 전략 흐름 ]
    봉마다 generate_signal(bars, index) 호출됨 (← backtest/engine.py에서)
        ├── index, index-1 시점의 단기/장기 MA 계산
        ├── golden_cross() → BUY
        ├── dead_cross()   → SELL
        └── 그 외          → HOLD

[ 파라미터 (config.yaml의 strategy 섹션에서 로드) ]
    short_period:  단기 이동평균 기간 (일)
    long_period:   장기 이동평균 기간 (일)
    ma_type:       "sma" / "ema"
"""

from decimal import Decimal
from typing import Any, Sequence

from trading_journal.core.errors import MalformedInputError
from trading_journal.core.price_data import PriceBar
from trading_journal.core.trading_strategy import Signal, SignalType, TradingStrategy
from trading_journal.strategies import register
from trading_journal.utils.indicators import dead_cross, ema, golden_cross, sma

MA_FUNCTIONS = {"sma": sma, "ema": ema}


@register("ma_cross")
class MACrossStrategy(TradingStrategy):
    """이동평균 교차 전략 구현체."""

    DEFAULT_PARAMS = {
        "short_period": 20,
        "long_period": 60,
        "ma_type": "sma",
    }

    def __init__(self, params: dict[str, Any] | None = None):
        super().__init__(name="ma_cross", params=params)
        if self.ma_type not in MA_FUNCTIONS:
            raise MalformedInputError(f"지원하지 않는 이동평균 유형: {self.ma_type}")
        if not 0 < self.short_period < self.long_period:
            raise MalformedInputError(
                f"단기 기간은 장기 기간보다 짧아야 합니다: {self.short_period} / {self.long_period}"
            )

    @property
    def short_period(self) -> int:
        return int(self.params["short_period"])

    @property
    def long_period(self) -> int:
        return int(self.params["long_period"])

    @property
    def ma_type(self) -> str:
        return str(self.params["ma_type"]).lower()

    @property
    def minimum_data_points(self) -> int:
        # 직전 봉의 장기 MA까지 필요
        return self.long_period + 1

    def moving_average(self, bars: Sequence[PriceBar], index: int, period: int) -> Decimal:
        return MA_FUNCTIONS[self.ma_type](bars, index, period)

    def generate_signal(self, bars: Sequence[PriceBar], index: int) -> Signal:
        """골든크로스 매수, 데드크로스 매도."""
        if not self.has_enough_data(index):
            return self.insufficient_data_signal()

        short_ma = self.moving_average(bars, index, self.short_period)
        long_ma = self.moving_average(bars, index, self.long_period)
        prev_short_ma = self.moving_average(bars, index - 1, self.short_period)
        prev_long_ma = self.moving_average(bars, index - 1, self.long_period)

        label = self.ma_type.upper()
        if golden_cross(prev_short_ma, short_ma, prev_long_ma, long_ma):
            return Signal(
                signal_type=SignalType.BUY,
                reason=f"골든크로스 ({label}{self.short_period}: {short_ma:,.0f} > {label}{self.long_period}: {long_ma:,.0f})",
            )
        if dead_cross(prev_short_ma, short_ma, prev_long_ma, long_ma):
            return Signal(
                signal_type=SignalType.SELL,
                reason=f"데드크로스 ({label}{self.short_period}: {short_ma:,.0f} < {label}{self.long_period}: {long_ma:,.0f})",
            )
        return Signal(signal_type=SignalType.HOLD, reason="교차 없음")

    def describe(self) -> str:
        label = self.ma_type.upper()
        return (
            f"{label} {self.short_period}/{self.long_period} 교차: "
            f"골든크로스 시 매수, 데드크로스 시 매도"
        )
