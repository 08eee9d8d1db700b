"""
주가 봉(OHLCV) 데이터 정의.

[ 역할 ]
    지표 계산/백테스트가 사용하는 불변 봉 데이터(PriceBar)와
    pandas DataFrame → PriceBar 변환, 정렬 검증 함수를 제공.
    DB/API 조회는 외부 레이어 책임이며, 코어는 메모리에 올라온 봉 리스트만 받는다.

[ 호출하는 곳 ]
    - utils/indicators.py: 모든 지표 함수의 입력
    - backtest/engine.py: validate_price_bars()로 입력 검증
    - run_backtest.py: 샘플/CSV DataFrame을 bars_from_dataframe()으로 변환
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Sequence

import pandas as pd

from trading_journal.core.errors import MalformedInputError
from trading_journal.utils.scale import to_decimal

OHLCV_COLUMNS = ("date", "open", "high", "low", "close", "volume")


@dataclass(frozen=True)
class PriceBar:
    """단일 봉(캔들) 데이터. 날짜 오름차순, 종목당 같은 날짜 중복 없음."""
    date: date
    open: Decimal      # 시가
    high: Decimal      # 고가
    low: Decimal       # 저가
    close: Decimal     # 종가
    volume: int = 0    # 거래량


def bars_from_dataframe(df: pd.DataFrame) -> list[PriceBar]:
    """OHLCV DataFrame을 날짜순 PriceBar 리스트로 변환.

    Args:
        df: columns [date, open, high, low, close, volume]

    Raises:
        MalformedInputError: 필수 컬럼 누락
    """
    missing = [c for c in OHLCV_COLUMNS if c not in df.columns]
    if missing:
        raise MalformedInputError(f"OHLCV 컬럼 누락: {missing}")

    df = df.copy()
    df["date"] = pd.to_datetime(df["date"]).dt.date
    df = df.sort_values("date").reset_index(drop=True)

    return [
        PriceBar(
            date=row.date,
            open=to_decimal(float(row.open)),
            high=to_decimal(float(row.high)),
            low=to_decimal(float(row.low)),
            close=to_decimal(float(row.close)),
            volume=int(row.volume),
        )
        for row in df.itertuples(index=False)
    ]


def validate_price_bars(bars: Sequence[PriceBar]) -> None:
    """날짜 오름차순 + 중복 없음 검증.

    Raises:
        MalformedInputError: 정렬되지 않았거나 같은 날짜가 중복된 경우
    """
    for prev, curr in zip(bars, bars[1:]):
        if curr.date == prev.date:
            raise MalformedInputError(f"중복된 봉 날짜: {curr.date}")
        if curr.date < prev.date:
            raise MalformedInputError(
                f"봉 데이터가 날짜순이 아닙니다: {prev.date} 다음 {curr.date}"
            )
