"""
모멘텀 전략 구현.

[ 역할 ]
    N일 전 종가 대비 변화율(%)이 진입선을 상향 돌파하면 매수, 청산선을 하향 돌파하면 매도.

[ 파라미터 ]
    period:       모멘텀 비교 기간 (일)
    entry_level:  매수 기준 (%)
    exit_level:   매도 기준 (%)
"""

from decimal import Decimal
from typing import Any, Sequence

from trading_journal.core.price_data import PriceBar
from trading_journal.core.trading_strategy import Signal, SignalType, TradingStrategy
from trading_journal.strategies import register
from trading_journal.utils.indicators import crossed_above, crossed_below, momentum
from trading_journal.utils.scale import to_decimal


@register("momentum")
class MomentumStrategy(TradingStrategy):
    """모멘텀 돌파 전략."""

    DEFAULT_PARAMS = {
        "period": 20,
        "entry_level": 0,
        "exit_level": 0,
    }

    def __init__(self, params: dict[str, Any] | None = None):
        super().__init__(name="momentum", params=params)

    @property
    def period(self) -> int:
        return int(self.params["period"])

    @property
    def entry_level(self) -> Decimal:
        return to_decimal(self.params["entry_level"])

    @property
    def exit_level(self) -> Decimal:
        return to_decimal(self.params["exit_level"])

    @property
    def minimum_data_points(self) -> int:
        return self.period + 2

    def generate_signal(self, bars: Sequence[PriceBar], index: int) -> Signal:
        if not self.has_enough_data(index):
            return self.insufficient_data_signal()

        current = momentum(bars, index, self.period)
        prev = momentum(bars, index - 1, self.period)

        if crossed_above(prev, current, self.entry_level):
            return Signal(SignalType.BUY, f"모멘텀 상향 돌파 ({prev:.2f}% → {current:.2f}%)")
        if crossed_below(prev, current, self.exit_level):
            return Signal(SignalType.SELL, f"모멘텀 하향 돌파 ({prev:.2f}% → {current:.2f}%)")
        return Signal(SignalType.HOLD, f"모멘텀 {current:.2f}%")

    def describe(self) -> str:
        return (
            f"{self.period}일 모멘텀이 {self.entry_level}% 상향 돌파 시 매수, "
            f"{self.exit_level}% 하향 돌파 시 매도"
        )
