"""
RSI 전략 구현.

[ 역할 ]
    RSI가 과매도선 아래에서 올라오면 매수, 과매수선 위에서 내려오면 매도.

[ 파라미터 ]
    period:      RSI 기간 (일)
    oversold:    과매도 기준 (이 값 미만 → 이상으로 회복 시 매수)
    overbought:  과매수 기준 (이 값 초과 → 이하로 하락 시 매도)
"""

from decimal import Decimal
from typing import Any, Sequence

from trading_journal.core.errors import MalformedInputError
from trading_journal.core.price_data import PriceBar
from trading_journal.core.trading_strategy import Signal, SignalType, TradingStrategy
from trading_journal.strategies import register
from trading_journal.utils.indicators import rsi
from trading_journal.utils.scale import to_decimal


@register("rsi")
class RSIStrategy(TradingStrategy):
    """RSI 과매도/과매수 반전 전략."""

    DEFAULT_PARAMS = {
        "period": 14,
        "oversold": 30,
        "overbought": 70,
    }

    def __init__(self, params: dict[str, Any] | None = None):
        super().__init__(name="rsi", params=params)
        if not 0 <= self.oversold < self.overbought <= 100:
            raise MalformedInputError(
                f"RSI 기준값이 잘못되었습니다: 과매도 {self.oversold}, 과매수 {self.overbought}"
            )

    @property
    def period(self) -> int:
        return int(self.params["period"])

    @property
    def oversold(self) -> Decimal:
        return to_decimal(self.params["oversold"])

    @property
    def overbought(self) -> Decimal:
        return to_decimal(self.params["overbought"])

    @property
    def minimum_data_points(self) -> int:
        # 직전 봉의 RSI 계산에 period + 1개 종가 필요
        return self.period + 2

    def generate_signal(self, bars: Sequence[PriceBar], index: int) -> Signal:
        if not self.has_enough_data(index):
            return self.insufficient_data_signal()

        current = rsi(bars, index, self.period)
        prev = rsi(bars, index - 1, self.period)

        if prev < self.oversold <= current:
            return Signal(SignalType.BUY, f"RSI 과매도 반등 ({prev:.2f} → {current:.2f})")
        if prev > self.overbought >= current:
            return Signal(SignalType.SELL, f"RSI 과매수 하락 ({prev:.2f} → {current:.2f})")
        return Signal(SignalType.HOLD, f"RSI {current:.2f}")

    def describe(self) -> str:
        return (
            f"RSI {self.period}일 기준, {self.oversold} 이하에서 반등 시 매수, "
            f"{self.overbought} 이상에서 하락 시 매도"
        )
