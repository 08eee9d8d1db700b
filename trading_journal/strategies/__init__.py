"""
전략 모듈.

[ 전략 등록 방식 ]
    @register("전략이름") 데코레이터를 붙이면 STRATEGY_REGISTRY에 자동 등록.
    run_backtest.py와 backtest/engine.py에서 이름만으로 전략 클래스를 찾아 생성할 수 있다.

[ 등록된 전략 ]
    ma_cross   - 이동평균(SMA/EMA) 골든크로스 매수 / 데드크로스 매도
    rsi        - RSI 과매도 반등 매수 / 과매수 하락 매도
    bollinger  - 하단 밴드 반등 매수 / 상단 밴드 이탈 매도
    momentum   - 모멘텀 진입선 상향 돌파 매수 / 청산선 하향 돌파 매도
    macd       - MACD 라인의 시그널 라인 상향 돌파 매수 / 하향 돌파 매도

[ 새 전략 추가 방법 ]
    1. 이 디렉토리에 새 .py 파일 생성
    2. TradingStrategy를 상속받는 클래스 작성
    3. @register("이름") 데코레이터 추가
    4. config.yaml에서 strategy.name을 해당 이름으로 설정
    → 끝. run_backtest.py 수정 불필요.

    레지스트리는 임포트 시점에 한 번 채워지고 이후에는 읽기만 한다.
"""

from importlib import import_module
from pathlib import Path
from typing import Any

from trading_journal.core.errors import MalformedInputError, UnknownStrategyError
from trading_journal.core.trading_strategy import TradingStrategy

# 전략 이름 → 전략 클래스 매핑
STRATEGY_REGISTRY: dict[str, type[TradingStrategy]] = {}


def register(name: str):
    """전략 클래스를 STRATEGY_REGISTRY에 등록하는 데코레이터."""
    def decorator(cls: type[TradingStrategy]):
        STRATEGY_REGISTRY[name] = cls
        return cls
    return decorator


def create_strategy(name: str, params: dict[str, Any] | None = None) -> TradingStrategy:
    """이름으로 전략 인스턴스를 생성.

    Args:
        name: 등록된 전략 이름 (예: "ma_cross", "rsi")
        params: 전략 파라미터 (각 전략의 DEFAULT_PARAMS를 오버라이드)

    Raises:
        UnknownStrategyError: 등록되지 않은 전략 이름
        MalformedInputError: DEFAULT_PARAMS에 없는 파라미터 이름 (오타 방지)
    """
    if name not in STRATEGY_REGISTRY:
        available = ", ".join(sorted(STRATEGY_REGISTRY.keys()))
        raise UnknownStrategyError(f"알 수 없는 전략: '{name}'. 사용 가능: {available}")

    strategy_cls = STRATEGY_REGISTRY[name]
    unknown = sorted(set(params or {}) - set(strategy_cls.DEFAULT_PARAMS))
    if unknown:
        raise MalformedInputError(
            f"{name} 전략에 없는 파라미터: {', '.join(unknown)} "
            f"(가능: {', '.join(strategy_cls.DEFAULT_PARAMS)})"
        )
    return strategy_cls(params=params)


def list_strategies() -> list[str]:
    """등록된 전략 이름 목록 반환."""
    return sorted(STRATEGY_REGISTRY.keys())


def _auto_discover():
    """이 디렉토리의 모든 전략 모듈을 자동 임포트하여 @register가 실행되게 한다."""
    strategies_dir = Path(__file__).parent
    for py_file in sorted(strategies_dir.glob("*.py")):
        if py_file.name.startswith("_"):
            continue
        module_name = f"trading_journal.strategies.{py_file.stem}"
        import_module(module_name)


# 모듈 로드 시 자동 탐색
_auto_discover()
