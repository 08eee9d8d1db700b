"""
기술적 지표 계산 모듈.

[ 역할 ]
    PriceBar 시퀀스 + 인덱스 + 기간을 받아 지표 값을 계산하는 순수 함수 모음.
    상태를 갖지 않으며, 모든 계산은 Decimal로 수행 (반올림은 보고 시점에만).

[ 제공 지표 ]
    - sma / ema / ema_series      이동평균
    - stddev                      모표준편차 (평균을 외부에서 전달)
    - rsi / bollinger_bands / momentum
    - macd_series                 MACD 라인 / 시그널 / 히스토그램
    - crossed_above / crossed_below, golden_cross / dead_cross   교차 감지

[ EMA 계산 방식 ]
    ema()는 경로 의존적이므로 매 호출마다 0번 봉부터 다시 계산한다 (호출당 O(n)).
    여러 인덱스의 값이 한꺼번에 필요하면 ema_series()로 한 번에 계산해 재사용한다.

[ 교차 판정 규칙 ]
    교차 전 쪽은 비엄격(≤, ≥), 교차 후 쪽은 엄격(<, >) 비교.
    기준선 위에 그대로 머문 값은 교차로 보지 않는다.

[ 호출하는 곳 ]
    - strategies/*.py 의 generate_signal()
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Sequence

from trading_journal.core.errors import InsufficientHistoryError, MalformedInputError
from trading_journal.core.price_data import PriceBar

HUNDRED = Decimal(100)


def _check_window(bars: Sequence[PriceBar], index: int, period: int) -> None:
    if period < 1:
        raise MalformedInputError(f"기간은 1 이상이어야 합니다: period={period}")
    if index < 0 or index >= len(bars):
        raise MalformedInputError(f"인덱스 범위 초과: index={index}, size={len(bars)}")
    if index < period - 1:
        raise InsufficientHistoryError(
            f"데이터 부족: index={index}, period={period}"
        )


def sma(bars: Sequence[PriceBar], index: int, period: int) -> Decimal:
    """단순이동평균. [index-period+1, index] 구간 종가의 산술 평균."""
    _check_window(bars, index, period)
    total = sum((bars[i].close for i in range(index - period + 1, index + 1)), Decimal(0))
    return total / period


def ema(bars: Sequence[PriceBar], index: int, period: int) -> Decimal:
    """지수이동평균. 첫 period개 봉의 SMA로 시작해 index까지 갱신."""
    _check_window(bars, index, period)
    k = Decimal(2) / (period + 1)

    value = sma(bars, period - 1, period)
    for i in range(period, index + 1):
        value = bars[i].close * k + value * (1 - k)
    return value


def ema_series(bars: Sequence[PriceBar], period: int) -> list[Decimal | None]:
    """모든 인덱스의 EMA를 한 번에 계산. 시드 이전 인덱스는 None."""
    if period < 1:
        raise MalformedInputError(f"기간은 1 이상이어야 합니다: period={period}")
    values: list[Decimal | None] = [None] * len(bars)
    if len(bars) < period:
        return values

    k = Decimal(2) / (period + 1)
    value = sma(bars, period - 1, period)
    values[period - 1] = value
    for i in range(period, len(bars)):
        value = bars[i].close * k + value * (1 - k)
        values[i] = value
    return values


def stddev(bars: Sequence[PriceBar], index: int, period: int, mean: Decimal) -> Decimal:
    """구간 종가의 모표준편차 (평균은 호출자가 계산해 전달)."""
    _check_window(bars, index, period)
    variance = sum(
        ((bars[i].close - mean) ** 2 for i in range(index - period + 1, index + 1)),
        Decimal(0),
    ) / period
    return variance.sqrt()


def rsi(bars: Sequence[PriceBar], index: int, period: int = 14) -> Decimal:
    """상대강도지수. 최근 period개 종가 변화의 단순 평균 상승/하락으로 계산.

    하락이 전혀 없으면 100.
    """
    # 변화량 계산에 직전 봉이 하나 더 필요
    if index < period:
        raise InsufficientHistoryError(f"데이터 부족: index={index}, period={period}")
    _check_window(bars, index, period)

    gain = Decimal(0)
    loss = Decimal(0)
    for i in range(index - period + 1, index + 1):
        change = bars[i].close - bars[i - 1].close
        if change > 0:
            gain += change
        else:
            loss += -change

    avg_gain = gain / period
    avg_loss = loss / period
    if avg_loss == 0:
        return HUNDRED
    rs = avg_gain / avg_loss
    return HUNDRED - HUNDRED / (1 + rs)


@dataclass(frozen=True)
class BollingerBands:
    """볼린저 밴드 값."""
    middle: Decimal
    upper: Decimal
    lower: Decimal
    stddev: Decimal


def bollinger_bands(
    bars: Sequence[PriceBar],
    index: int,
    period: int = 20,
    multiplier: Decimal | float = 2,
) -> BollingerBands:
    """SMA ± multiplier × 모표준편차."""
    middle = sma(bars, index, period)
    sd = stddev(bars, index, period, middle)
    width = sd * Decimal(str(multiplier))
    return BollingerBands(middle=middle, upper=middle + width, lower=middle - width, stddev=sd)


def momentum(bars: Sequence[PriceBar], index: int, period: int) -> Decimal:
    """N봉 전 종가 대비 변화율 (%). 기준 종가가 0이면 0."""
    if index < period:
        raise InsufficientHistoryError(f"데이터 부족: index={index}, period={period}")
    _check_window(bars, index, period)
    past = bars[index - period].close
    if past == 0:
        return Decimal(0)
    return (bars[index].close - past) / past * HUNDRED


@dataclass(frozen=True)
class MACD:
    """MACD 값."""
    line: Decimal          # EMA(fast) - EMA(slow)
    signal: Decimal        # MACD 라인의 EMA
    histogram: Decimal     # line - signal


def macd_series(
    bars: Sequence[PriceBar],
    fast_period: int = 12,
    slow_period: int = 26,
    signal_period: int = 9,
) -> list[MACD | None]:
    """모든 인덱스의 MACD. 시그널 라인이 시드되기 전 인덱스는 None.

    시그널 라인은 첫 signal_period개 MACD 라인 값의 SMA로 시작해 EMA로 갱신한다.
    첫 값은 인덱스 slow_period + signal_period - 2에 생긴다.
    """
    if not 0 < fast_period < slow_period:
        raise MalformedInputError(
            f"단기 기간은 장기 기간보다 짧아야 합니다: fast={fast_period}, slow={slow_period}"
        )
    if signal_period < 1:
        raise MalformedInputError(f"시그널 기간은 1 이상이어야 합니다: signal={signal_period}")

    fast = ema_series(bars, fast_period)
    slow = ema_series(bars, slow_period)
    # lines[j]는 인덱스 slow_period - 1 + j의 MACD 라인
    lines = [f - s for f, s in zip(fast, slow) if s is not None]

    values: list[MACD | None] = [None] * len(bars)
    if len(lines) < signal_period:
        return values

    k = Decimal(2) / (signal_period + 1)
    signal = sum(lines[:signal_period], Decimal(0)) / signal_period
    for j in range(signal_period - 1, len(lines)):
        if j >= signal_period:
            signal = lines[j] * k + signal * (1 - k)
        values[slow_period - 1 + j] = MACD(line=lines[j], signal=signal, histogram=lines[j] - signal)
    return values


def crossed_above(prev: Decimal, curr: Decimal, threshold: Decimal) -> bool:
    """상향 돌파: prev ≤ threshold < curr."""
    return prev <= threshold < curr


def crossed_below(prev: Decimal, curr: Decimal, threshold: Decimal) -> bool:
    """하향 돌파: prev ≥ threshold > curr."""
    return prev >= threshold > curr


def golden_cross(prev_fast: Decimal, curr_fast: Decimal, prev_slow: Decimal, curr_slow: Decimal) -> bool:
    """골든크로스: 빠른 지표가 느린 지표를 상향 돌파."""
    return crossed_above(prev_fast - prev_slow, curr_fast - curr_slow, Decimal(0))


def dead_cross(prev_fast: Decimal, curr_fast: Decimal, prev_slow: Decimal, curr_slow: Decimal) -> bool:
    """데드크로스: 빠른 지표가 느린 지표를 하향 돌파."""
    return crossed_below(prev_fast - prev_slow, curr_fast - curr_slow, Decimal(0))
