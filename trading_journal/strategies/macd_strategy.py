"""
MACD 전략 구현.

[ 역할 ]
    MACD 라인(EMA 단기 - EMA 장기)이 시그널 라인(MACD의 EMA)을
    상향 돌파하면 매수, 하향 돌파하면 매도.

[ 파라미터 ]
    fast_period:    단기 EMA 기간 (일)
    slow_period:    장기 EMA 기간 (일)
    signal_period:  시그널 EMA 기간 (일)
"""

from typing import Any, Sequence

from trading_journal.core.errors import MalformedInputError
from trading_journal.core.price_data import PriceBar
from trading_journal.core.trading_strategy import Signal, SignalType, TradingStrategy
from trading_journal.strategies import register
from trading_journal.utils.indicators import dead_cross, golden_cross, macd_series


@register("macd")
class MACDStrategy(TradingStrategy):
    """MACD / 시그널 교차 전략."""

    DEFAULT_PARAMS = {
        "fast_period": 12,
        "slow_period": 26,
        "signal_period": 9,
    }

    def __init__(self, params: dict[str, Any] | None = None):
        super().__init__(name="macd", params=params)
        if not 0 < self.fast_period < self.slow_period:
            raise MalformedInputError(
                f"단기 기간은 장기 기간보다 짧아야 합니다: {self.fast_period} / {self.slow_period}"
            )
        if self.signal_period < 1:
            raise MalformedInputError(f"시그널 기간은 1 이상이어야 합니다: {self.signal_period}")

    @property
    def fast_period(self) -> int:
        return int(self.params["fast_period"])

    @property
    def slow_period(self) -> int:
        return int(self.params["slow_period"])

    @property
    def signal_period(self) -> int:
        return int(self.params["signal_period"])

    @property
    def minimum_data_points(self) -> int:
        # 직전 봉의 시그널 라인까지 필요
        return self.slow_period + self.signal_period

    def generate_signal(self, bars: Sequence[PriceBar], index: int) -> Signal:
        if not self.has_enough_data(index):
            return self.insufficient_data_signal()

        values = macd_series(bars[: index + 1], self.fast_period, self.slow_period, self.signal_period)
        current, prev = values[index], values[index - 1]

        if golden_cross(prev.line, current.line, prev.signal, current.signal):
            return Signal(
                SignalType.BUY,
                f"MACD 골든크로스 (MACD {current.line:,.2f} > 시그널 {current.signal:,.2f})",
            )
        if dead_cross(prev.line, current.line, prev.signal, current.signal):
            return Signal(
                SignalType.SELL,
                f"MACD 데드크로스 (MACD {current.line:,.2f} < 시그널 {current.signal:,.2f})",
            )
        return Signal(SignalType.HOLD, f"히스토그램 {current.histogram:,.2f}")

    def describe(self) -> str:
        return (
            f"MACD({self.fast_period}, {self.slow_period})와 시그널({self.signal_period}) 교차: "
            f"골든크로스 시 매수, 데드크로스 시 매도"
        )
