"""FIFO 로트 매칭 테스트."""

from dataclasses import replace
from decimal import Decimal

import pytest

from trading_journal.accounting.fifo import (
    FifoMatcher,
    match_fifo,
    migrate_all,
    recalculate_fifo,
    stamp_derived_fields,
)
from trading_journal.core.errors import (
    InsufficientLotsError,
    IntegrityError,
    MalformedInputError,
)
from trading_journal.utils.scale import DEFAULT_SCALE_POLICY

ACCOUNT = "acc-1"
SYMBOL = "005930"


class TestFifoOrdering:
    def test_oldest_lot_is_consumed_first(self, fifo_example):
        result = match_fifo(ACCOUNT, SYMBOL, fifo_example)

        assert len(result.closed_trades) == 1
        trade = result.closed_trades[0]
        assert trade.cost_basis_consumed == Decimal("1550")
        assert trade.realized_pnl == Decimal("250")
        assert trade.quantity_closed == Decimal("15")
        assert [c.buy_transaction_id for c in trade.consumptions] == [1, 2]

    def test_partial_lot_remains_open(self, fifo_example):
        result = match_fifo(ACCOUNT, SYMBOL, fifo_example)

        assert len(result.open_lots) == 1
        lot = result.open_lots[0]
        assert lot.buy_transaction_id == 2
        assert lot.remaining_quantity == Decimal("5")
        assert lot.unit_cost == Decimal("110")
        assert result.open_quantity == Decimal("5")

    def test_holding_period_is_quantity_weighted(self, fifo_example):
        trade = match_fifo(ACCOUNT, SYMBOL, fifo_example).closed_trades[0]

        # 10주 × 2일 + 5주 × 1일
        assert trade.holding_period_days == Decimal(25) / Decimal(15)

    def test_sell_exactly_exhausting_lots_leaves_nothing_open(self, make_tx):
        txs = [
            make_tx(1, "BUY", 10, 100, day=0),
            make_tx(2, "SELL", 10, 90, day=3),
        ]
        result = match_fifo(ACCOUNT, SYMBOL, txs)

        assert result.open_lots == []
        assert result.closed_trades[0].realized_pnl == Decimal("-100")
        assert result.closed_trades[0].holding_period_days == Decimal(3)


class TestCommission:
    def test_buy_commission_prorated_by_consumed_quantity(self, make_tx):
        txs = [
            make_tx(1, "BUY", 10, 100, day=0, commission=10),
            make_tx(2, "SELL", 4, 110, day=1, commission=1),
            make_tx(3, "SELL", 6, 120, day=2, commission=1),
        ]
        first, second = match_fifo(ACCOUNT, SYMBOL, txs).closed_trades

        assert first.commission_total == Decimal("5")
        assert first.realized_pnl == Decimal("35")
        assert second.commission_total == Decimal("7")
        assert second.realized_pnl == Decimal("113")

    def test_prorated_commission_sums_exactly(self, make_tx):
        txs = [
            make_tx(1, "BUY", 3, 100, day=0, commission=10),
            make_tx(2, "SELL", 1, 100, day=1),
            make_tx(3, "SELL", 1, 100, day=2),
            make_tx(4, "SELL", 1, 100, day=3),
        ]
        trades = match_fifo(ACCOUNT, SYMBOL, txs).closed_trades

        assert sum(t.commission_total for t in trades) == Decimal("10")

    def test_conservation_for_closed_position(self, make_tx):
        txs = [
            make_tx(1, "BUY", 10, 100, day=0, commission=3),
            make_tx(2, "BUY", 8, 105, day=1, commission=2),
            make_tx(3, "SELL", 12, 98, day=2, commission=1),
            make_tx(4, "BUY", 3, 97, day=3, commission=1),
            make_tx(5, "SELL", 9, 120, day=4, commission=2),
        ]
        result = match_fifo(ACCOUNT, SYMBOL, txs)

        assert result.open_lots == []
        proceeds = sum(t.gross_amount for t in txs if t.is_sell)
        cost = sum(t.gross_amount for t in txs if t.is_buy)
        commissions = sum(t.commission for t in txs)
        assert result.total_realized_pnl == proceeds - cost - commissions

    def test_conservation_with_non_terminating_commission_split(self, make_tx):
        # 수수료 1을 3등분: 거래별 손익은 28자리 문맥 정밀도에서 반올림된다
        txs = [
            make_tx(1, "BUY", 3, 10, day=0, commission=1),
            make_tx(2, "SELL", 1, 12, day=1),
            make_tx(3, "SELL", 1, 12, day=2),
            make_tx(4, "SELL", 1, 12, day=3),
        ]
        result = match_fifo(ACCOUNT, SYMBOL, txs)

        assert sum(t.commission_total for t in result.closed_trades) == Decimal(1)
        assert DEFAULT_SCALE_POLICY.precise(result.total_realized_pnl) == Decimal(5)


class TestRMultiple:
    def test_uses_lot_stop_loss(self, make_tx):
        txs = [
            make_tx(1, "BUY", 10, 100, day=0, stop_loss_price=Decimal("95")),
            make_tx(2, "SELL", 10, 110, day=1),
        ]
        trade = match_fifo(ACCOUNT, SYMBOL, txs).closed_trades[0]

        assert trade.r_multiple == Decimal("2")

    def test_sell_stop_loss_takes_precedence(self, make_tx):
        txs = [
            make_tx(1, "BUY", 10, 100, day=0, stop_loss_price=Decimal("95")),
            make_tx(2, "SELL", 10, 110, day=1, stop_loss_price=Decimal("90")),
        ]
        trade = match_fifo(ACCOUNT, SYMBOL, txs).closed_trades[0]

        assert trade.r_multiple == Decimal("1")

    def test_none_without_stop_loss(self, fifo_example):
        trade = match_fifo(ACCOUNT, SYMBOL, fifo_example).closed_trades[0]
        assert trade.r_multiple is None

    def test_none_when_stop_equals_entry(self, make_tx):
        txs = [
            make_tx(1, "BUY", 10, 100, day=0, stop_loss_price=Decimal("100")),
            make_tx(2, "SELL", 10, 110, day=1),
        ]
        trade = match_fifo(ACCOUNT, SYMBOL, txs).closed_trades[0]
        assert trade.r_multiple is None


class TestIdempotence:
    def test_repeated_matching_is_identical(self, fifo_example):
        first = match_fifo(ACCOUNT, SYMBOL, fifo_example)
        second = match_fifo(ACCOUNT, SYMBOL, fifo_example)

        assert first.closed_trades == second.closed_trades

    def test_previously_stamped_fields_are_ignored(self, fifo_example):
        result = match_fifo(ACCOUNT, SYMBOL, fifo_example)
        stamped = stamp_derived_fields(fifo_example, result)
        tampered = [
            replace(tx, realized_pnl=Decimal("999")) if tx.is_sell else tx
            for tx in stamped
        ]

        again = match_fifo(ACCOUNT, SYMBOL, tampered)
        assert again.closed_trades == result.closed_trades


class TestErrors:
    def test_oversell_without_lots(self, make_tx):
        with pytest.raises(InsufficientLotsError) as exc_info:
            match_fifo(ACCOUNT, SYMBOL, [make_tx(1, "SELL", 5, 100, day=0)])

        assert exc_info.value.short_by == Decimal("5")
        assert isinstance(exc_info.value, IntegrityError)

    def test_oversell_reports_shortfall(self, make_tx):
        txs = [
            make_tx(1, "BUY", 3, 100, day=0),
            make_tx(2, "SELL", 5, 100, day=1),
        ]
        with pytest.raises(InsufficientLotsError) as exc_info:
            match_fifo(ACCOUNT, SYMBOL, txs)
        assert exc_info.value.short_by == Decimal("2")

    def test_failed_sell_leaves_matcher_untouched(self, make_tx):
        matcher = FifoMatcher(ACCOUNT, SYMBOL)
        matcher.process(make_tx(1, "BUY", 3, 100, day=0))

        with pytest.raises(InsufficientLotsError):
            matcher.process(make_tx(2, "SELL", 5, 100, day=1))

        assert matcher.open_quantity == Decimal("3")
        assert matcher.closed_trades == []

    def test_unsorted_input(self, make_tx):
        txs = [
            make_tx(2, "BUY", 10, 100, day=1),
            make_tx(1, "BUY", 10, 100, day=0),
        ]
        with pytest.raises(MalformedInputError):
            match_fifo(ACCOUNT, SYMBOL, txs)

    def test_mixed_symbols(self, make_tx):
        txs = [
            make_tx(1, "BUY", 10, 100, day=0),
            make_tx(2, "BUY", 10, 100, day=1, symbol="000660"),
        ]
        with pytest.raises(MalformedInputError):
            match_fifo(ACCOUNT, SYMBOL, txs)

    def test_non_positive_quantity(self, make_tx):
        with pytest.raises(MalformedInputError):
            match_fifo(ACCOUNT, SYMBOL, [make_tx(1, "BUY", 0, 100, day=0)])

    def test_duplicate_transaction(self, make_tx):
        tx = make_tx(1, "BUY", 10, 100, day=0)
        with pytest.raises(MalformedInputError):
            match_fifo(ACCOUNT, SYMBOL, [tx, tx])


class TestRecalculate:
    def test_sorts_before_matching(self, fifo_example):
        shuffled = [fifo_example[2], fifo_example[0], fifo_example[1]]
        result, stamped = recalculate_fifo(ACCOUNT, SYMBOL, shuffled)

        assert result.closed_trades[0].realized_pnl == Decimal("250")
        assert [tx.id for tx in stamped] == [1, 2, 3]

    def test_stamps_derived_fields(self, fifo_example):
        _, stamped = recalculate_fifo(ACCOUNT, SYMBOL, fifo_example)
        by_id = {tx.id: tx for tx in stamped}

        assert by_id[3].realized_pnl == Decimal("250")
        assert by_id[3].cost_basis == Decimal("1550")
        assert by_id[1].remaining_quantity == Decimal("0")
        assert by_id[2].remaining_quantity == Decimal("5")
        # 원본은 그대로
        assert fifo_example[2].realized_pnl is None


class TestMigrateAll:
    def test_failed_pair_does_not_stop_others(self, make_tx):
        txs = [
            make_tx(1, "BUY", 10, 100, day=0),
            make_tx(2, "SELL", 10, 110, day=1),
            make_tx(3, "SELL", 5, 100, day=0, symbol="000660"),
        ]
        report = migrate_all(txs)

        assert report.total_pairs == 2
        assert set(report.results) == {(ACCOUNT, SYMBOL)}
        assert isinstance(report.failures[(ACCOUNT, "000660")], InsufficientLotsError)
        assert [tx.id for tx in report.updated_transactions] == [1, 2]
        assert report.updated_transactions[1].realized_pnl == Decimal("100")

    def test_groups_by_account_and_symbol(self, make_tx):
        txs = [
            make_tx(1, "BUY", 10, 100, day=0),
            make_tx(2, "BUY", 10, 100, day=0, account_id="acc-2"),
            make_tx(3, "SELL", 10, 120, day=1, account_id="acc-2"),
        ]
        report = migrate_all(txs)

        assert report.failures == {}
        assert report.results[("acc-2", SYMBOL)].total_realized_pnl == Decimal("200")
        assert report.results[(ACCOUNT, SYMBOL)].open_quantity == Decimal("10")
