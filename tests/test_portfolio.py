"""로트 및 포지션 평가 테스트."""

from datetime import datetime
from decimal import Decimal

import pytest

from trading_journal.accounting.fifo import match_fifo
from trading_journal.data.portfolio import Lot, Position, summarize_positions


def build_lot(quantity=10, unit_cost=100, commission=10):
    return Lot(
        stock_symbol="005930",
        account_id="acc-1",
        buy_transaction_id=1,
        open_timestamp=datetime(2024, 1, 1),
        original_quantity=Decimal(quantity),
        remaining_quantity=Decimal(quantity),
        unit_cost=Decimal(unit_cost),
        allocated_commission=Decimal(commission),
        remaining_commission=Decimal(commission),
    )


class TestLot:
    def test_consume_prorates_commission(self):
        lot = build_lot()

        assert lot.consume(Decimal(4)) == Decimal(4)
        assert lot.remaining_quantity == Decimal(6)
        assert lot.remaining_commission == Decimal(6)
        assert not lot.is_closed

    def test_final_consume_takes_remaining_commission(self):
        lot = build_lot(quantity=3, commission=10)
        lot.consume(Decimal(1))
        lot.consume(Decimal(1))

        last = lot.consume(Decimal(1))
        assert lot.is_closed
        assert lot.remaining_commission == Decimal(0)
        assert last == Decimal(10) - 2 * (Decimal(10) / 3)

    def test_overconsume_rejected(self):
        with pytest.raises(ValueError):
            build_lot(quantity=2).consume(Decimal(3))


class TestPosition:
    def test_from_lots(self):
        lots = [build_lot(10, 100, 10), build_lot(5, 130, 5)]
        position = Position.from_lots("005930", "acc-1", lots)

        assert position.quantity == Decimal(15)
        assert position.cost == Decimal(1650)
        assert position.invested == Decimal(1665)
        assert position.avg_cost == Decimal(111)
        assert position.lot_count == 2

    def test_unrealized_pnl(self):
        position = Position.from_lots("005930", "acc-1", [build_lot(10, 100, 0)])

        assert position.market_value(Decimal(120)) == Decimal(1200)
        assert position.unrealized_pnl(Decimal(120)) == Decimal(200)
        assert position.unrealized_pnl_pct(Decimal(120)) == Decimal(20)

    def test_empty_position(self):
        position = Position.from_lots("005930", "acc-1", [])
        assert position.avg_cost == Decimal(0)
        assert position.unrealized_pnl_pct(Decimal(100)) == Decimal(0)


def test_summarize_positions(fifo_example, make_tx):
    first = match_fifo("acc-1", "005930", fifo_example)
    second = match_fifo("acc-1", "000660", [make_tx(10, "BUY", 2, 50, day=0, symbol="000660")])

    summary = summarize_positions([first, second], {"005930": Decimal(130)})

    assert summary["num_holdings"] == 2
    # 005930: 5@110 → 현재가 130, 000660: 현재가 없음 → 평균단가 평가
    assert summary["total_invested"] == Decimal(650)
    assert summary["total_market_value"] == Decimal(750)
    assert summary["total_unrealized_pnl"] == Decimal(100)
    assert summary["total_realized_pnl"] == Decimal(250)
