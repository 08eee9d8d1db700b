"""
볼린저 밴드 전략 구현.

[ 역할 ]
    종가가 하단 밴드를 터치한 뒤 밴드 안으로 돌아오면 매수,
    상단 밴드를 터치한 뒤 밴드 안으로 내려오면 매도.

[ 파라미터 ]
    period:      중심선(SMA) 기간
    multiplier:  표준편차 배수
"""

from typing import Any, Sequence

from trading_journal.core.errors import MalformedInputError
from trading_journal.core.price_data import PriceBar
from trading_journal.core.trading_strategy import Signal, SignalType, TradingStrategy
from trading_journal.strategies import register
from trading_journal.utils.indicators import bollinger_bands


@register("bollinger")
class BollingerBandStrategy(TradingStrategy):
    """볼린저 밴드 반등/이탈 전략."""

    DEFAULT_PARAMS = {
        "period": 20,
        "multiplier": 2.0,
    }

    def __init__(self, params: dict[str, Any] | None = None):
        super().__init__(name="bollinger", params=params)
        if self.multiplier <= 0:
            raise MalformedInputError(f"표준편차 배수는 0보다 커야 합니다: {self.multiplier}")

    @property
    def period(self) -> int:
        return int(self.params["period"])

    @property
    def multiplier(self) -> float:
        return float(self.params["multiplier"])

    @property
    def minimum_data_points(self) -> int:
        return self.period + 1

    def generate_signal(self, bars: Sequence[PriceBar], index: int) -> Signal:
        if not self.has_enough_data(index):
            return self.insufficient_data_signal()

        bands = bollinger_bands(bars, index, self.period, self.multiplier)
        prev_bands = bollinger_bands(bars, index - 1, self.period, self.multiplier)
        close = bars[index].close
        prev_close = bars[index - 1].close

        # 하단 밴드 터치 후 반등
        if prev_close <= prev_bands.lower and close > bands.lower:
            return Signal(SignalType.BUY, f"하단 밴드 반등 (종가 {close:,.0f} > 하단 {bands.lower:,.0f})")
        # 상단 밴드 터치 후 하락
        if prev_close >= prev_bands.upper and close < bands.upper:
            return Signal(SignalType.SELL, f"상단 밴드 이탈 (종가 {close:,.0f} < 상단 {bands.upper:,.0f})")
        return Signal(SignalType.HOLD, "밴드 내 움직임")

    def describe(self) -> str:
        return (
            f"{self.period}일 볼린저 밴드 ({self.multiplier:.1f} σ) 기준, "
            f"하단 밴드 반등 시 매수, 상단 밴드 하락 시 매도"
        )
