"""
테스트 공용 픽스처.

실제 시세/DB 없이 봉 데이터, 거래 기록, 청산 거래를 만들어 쓰는 팩토리를 제공한다.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from trading_journal.accounting.fifo import ClosedTrade
from trading_journal.core.price_data import PriceBar
from trading_journal.data.transaction import Transaction, TransactionType

BASE_DATE = date(2024, 1, 1)


def build_bars(closes, opens=None, start: date = BASE_DATE) -> list[PriceBar]:
    """종가 목록으로 하루 간격 봉 생성. 시가를 주지 않으면 종가와 같다."""
    bars = []
    for i, close in enumerate(closes):
        close = Decimal(str(close))
        open_ = Decimal(str(opens[i])) if opens is not None else close
        bars.append(PriceBar(
            date=start + timedelta(days=i),
            open=open_,
            high=max(open_, close),
            low=min(open_, close),
            close=close,
            volume=1000,
        ))
    return bars


def build_tx(
    tx_id: int,
    tx_type: str,
    quantity,
    price,
    day: int,
    commission=0,
    symbol: str = "005930",
    account_id: str = "acc-1",
    **kwargs,
) -> Transaction:
    """거래 1건 생성. day는 2024-01-01 기준 경과일."""
    return Transaction(
        id=tx_id,
        account_id=account_id,
        stock_symbol=symbol,
        type=TransactionType(tx_type),
        quantity=Decimal(str(quantity)),
        unit_price=Decimal(str(price)),
        commission=Decimal(str(commission)),
        timestamp=datetime(2024, 1, 1) + timedelta(days=day),
        **kwargs,
    )


def build_closed_trade(pnl, trade_id: int = 1, holding_days=1, r_multiple=None) -> ClosedTrade:
    """실현손익만 의미 있는 청산 거래 생성 (지표 테스트용)."""
    return ClosedTrade(
        sell_transaction_id=trade_id,
        account_id="acc-1",
        stock_symbol="005930",
        sell_timestamp=datetime(2024, 1, 1) + timedelta(days=trade_id),
        quantity_closed=Decimal(1),
        sell_unit_price=Decimal(100) + Decimal(str(pnl)),
        cost_basis_consumed=Decimal(100),
        commission_total=Decimal(0),
        realized_pnl=Decimal(str(pnl)),
        holding_period_days=Decimal(str(holding_days)),
        r_multiple=None if r_multiple is None else Decimal(str(r_multiple)),
    )


@pytest.fixture
def make_bars():
    return build_bars


@pytest.fixture
def make_tx():
    return build_tx


@pytest.fixture
def make_closed_trade():
    return build_closed_trade


@pytest.fixture
def fifo_example(make_tx):
    """BUY 10@100 → BUY 10@110 → SELL 15@120."""
    return [
        make_tx(1, "BUY", 10, 100, day=0),
        make_tx(2, "BUY", 10, 110, day=1),
        make_tx(3, "SELL", 15, 120, day=2),
    ]
