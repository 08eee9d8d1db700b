"""
FIFO(선입선출) 로트 매칭 엔진.

[ 역할 ]
    계좌/종목별로 정렬된 매수·매도 거래를 순서대로 처리하여
    매도마다 실현손익, 소진 원가, 보유기간, R-multiple을 계산한다.

[ 매칭 흐름 ]
    match_fifo(account_id, symbol, transactions) 호출 시:
        1. 입력 검증 (정렬, 계좌/종목 단일성, 수량/가격 부호)
        2. FifoMatcher가 거래를 하나씩 처리
           → 매수: 로트 큐 뒤에 Lot 추가
           → 매도: 큐 앞(가장 오래된 로트)부터 소진, ClosedTrade 1건 생성
        3. MatchResult(closed_trades, open_lots) 반환

[ 수수료 배분 ]
    매수 수수료는 소진 수량 / 최초 수량 비율로 배분 (data/portfolio.py::Lot.consume).
    매도 수수료는 해당 매도 건에 전액 반영.
    realized_pnl = 매도대금 - 소진원가 - (배분된 매수 수수료 + 매도 수수료)
    로트별 수수료 합계는 정확히 일치하지만, 1/3처럼 나누어 떨어지지 않는 배분이 있으면
    거래별 손익은 Decimal 문맥 정밀도(기본 28자리)에서 반올림된다.
    따라서 손익 합계 = 매도대금 - 매수대금 - 수수료 보존은 그 정밀도까지 성립한다.

[ 재계산 정책 ]
    매칭은 거래 목록만의 순수 함수다. 이전에 기록된 파생 필드(realized_pnl 등)는
    입력에서 무시하므로 같은 목록을 몇 번 다시 돌려도 결과가 같다.

[ 호출하는 곳 ]
    - backtest/engine.py: 실행마다 FifoMatcher를 하나 생성해 가상 거래 처리
    - 영속성 레이어(외부): recalculate_fifo() / migrate_all() 결과를 저장
"""

from collections import defaultdict, deque
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, Sequence

from trading_journal.core.errors import (
    InsufficientLotsError,
    MalformedInputError,
    TradingJournalError,
)
from trading_journal.data.portfolio import Lot, Position
from trading_journal.data.transaction import Transaction
from trading_journal.utils.logger import get_logger
from trading_journal.utils.scale import DEFAULT_SCALE_POLICY, ScalePolicy

logger = get_logger("fifo")

ZERO = Decimal(0)


@dataclass(frozen=True)
class LotConsumption:
    """매도 1건이 로트 1개에서 소진한 부분."""
    buy_transaction_id: int
    open_timestamp: datetime
    quantity: Decimal
    unit_cost: Decimal
    commission: Decimal            # 배분된 매수 수수료
    holding_days: int
    stop_loss_price: Decimal | None = None

    @property
    def cost(self) -> Decimal:
        return self.quantity * self.unit_cost


@dataclass(frozen=True)
class ClosedTrade:
    """매도 1건의 청산 결과. 여러 로트에 걸친 매도도 1건으로 합산된다."""
    sell_transaction_id: int
    account_id: str
    stock_symbol: str
    sell_timestamp: datetime
    quantity_closed: Decimal
    sell_unit_price: Decimal
    cost_basis_consumed: Decimal
    commission_total: Decimal
    realized_pnl: Decimal
    holding_period_days: Decimal       # 소진 수량 가중 평균
    r_multiple: Decimal | None = None
    consumptions: tuple[LotConsumption, ...] = ()

    @property
    def sell_proceeds(self) -> Decimal:
        return self.quantity_closed * self.sell_unit_price

    @property
    def entry_unit_cost(self) -> Decimal:
        """소진된 로트들의 가중 평균 매수단가."""
        return self.cost_basis_consumed / self.quantity_closed

    @property
    def return_pct(self) -> Decimal:
        """원가 대비 실현 수익률 (%)."""
        if self.cost_basis_consumed == 0:
            return ZERO
        return self.realized_pnl / self.cost_basis_consumed * 100

    @property
    def is_win(self) -> bool:
        return self.realized_pnl > 0

    def to_dict(self, scale: ScalePolicy = DEFAULT_SCALE_POLICY) -> dict[str, Any]:
        """보고용 딕셔너리. 이 시점에만 반올림."""
        return {
            "sell_transaction_id": self.sell_transaction_id,
            "account_id": self.account_id,
            "stock_symbol": self.stock_symbol,
            "sell_date": self.sell_timestamp.date().isoformat(),
            "quantity_closed": self.quantity_closed,
            "sell_unit_price": self.sell_unit_price,
            "sell_proceeds": scale.currency(self.sell_proceeds),
            "cost_basis": scale.currency(self.cost_basis_consumed),
            "commission_total": scale.currency(self.commission_total),
            "realized_pnl": scale.currency(self.realized_pnl),
            "return_pct": scale.percent(self.return_pct),
            "holding_period_days": scale.percent(self.holding_period_days),
            "r_multiple": None if self.r_multiple is None else scale.percent(self.r_multiple),
            "lots_consumed": len(self.consumptions),
        }


@dataclass
class MatchResult:
    """match_fifo() 결과."""
    account_id: str
    stock_symbol: str
    closed_trades: list[ClosedTrade] = field(default_factory=list)
    open_lots: list[Lot] = field(default_factory=list)

    @property
    def open_quantity(self) -> Decimal:
        return sum((lot.remaining_quantity for lot in self.open_lots), ZERO)

    @property
    def total_realized_pnl(self) -> Decimal:
        return sum((t.realized_pnl for t in self.closed_trades), ZERO)

    def position(self) -> Position:
        return Position.from_lots(self.stock_symbol, self.account_id, self.open_lots)


class FifoMatcher:
    """계좌/종목 1쌍의 로트 큐를 소유하는 매칭기.

    인스턴스는 매칭 1회(또는 백테스트 1회) 전용이며 다른 실행과 공유하지 않는다.
    """

    def __init__(self, account_id: str, stock_symbol: str):
        self.account_id = account_id
        self.stock_symbol = stock_symbol
        self._lots: deque[Lot] = deque()
        self.closed_trades: list[ClosedTrade] = []

    @property
    def open_lots(self) -> list[Lot]:
        return list(self._lots)

    @property
    def open_quantity(self) -> Decimal:
        return sum((lot.remaining_quantity for lot in self._lots), ZERO)

    def process(self, tx: Transaction) -> ClosedTrade | None:
        """거래 1건 처리. 매도면 ClosedTrade 반환."""
        if tx.account_id != self.account_id or tx.stock_symbol != self.stock_symbol:
            raise MalformedInputError(
                f"다른 계좌/종목의 거래가 섞였습니다: 거래 {tx.id} "
                f"({tx.account_id}/{tx.stock_symbol}), 기대값 {self.account_id}/{self.stock_symbol}"
            )
        if tx.is_buy:
            self._open(tx)
            return None
        trade = self._close(tx)
        self.closed_trades.append(trade)
        return trade

    def _open(self, buy: Transaction) -> None:
        self._lots.append(Lot(
            stock_symbol=buy.stock_symbol,
            account_id=buy.account_id,
            buy_transaction_id=buy.id,
            open_timestamp=buy.timestamp,
            original_quantity=buy.quantity,
            remaining_quantity=buy.quantity,
            unit_cost=buy.unit_price,
            allocated_commission=buy.commission,
            remaining_commission=buy.commission,
            stop_loss_price=buy.stop_loss_price,
        ))

    def _close(self, sell: Transaction) -> ClosedTrade:
        # 큐를 건드리기 전에 수량 확인 → 부족하면 부분 결과 없이 실패
        available = self.open_quantity
        if sell.quantity > available:
            raise InsufficientLotsError(
                symbol=self.stock_symbol,
                account_id=self.account_id,
                short_by=sell.quantity - available,
            )

        remaining_to_sell = sell.quantity
        consumptions: list[LotConsumption] = []

        while remaining_to_sell > 0:
            lot = self._lots[0]
            consumed = min(remaining_to_sell, lot.remaining_quantity)
            commission = lot.consume(consumed)
            consumptions.append(LotConsumption(
                buy_transaction_id=lot.buy_transaction_id,
                open_timestamp=lot.open_timestamp,
                quantity=consumed,
                unit_cost=lot.unit_cost,
                commission=commission,
                holding_days=(sell.timestamp.date() - lot.open_timestamp.date()).days,
                stop_loss_price=lot.stop_loss_price,
            ))
            remaining_to_sell -= consumed
            if lot.is_closed:
                self._lots.popleft()

        cost_basis = sum((c.cost for c in consumptions), ZERO)
        commission_total = sum((c.commission for c in consumptions), ZERO) + sell.commission
        realized_pnl = sell.gross_amount - cost_basis - commission_total
        holding_days = sum((c.quantity * c.holding_days for c in consumptions), ZERO) / sell.quantity

        trade = ClosedTrade(
            sell_transaction_id=sell.id,
            account_id=sell.account_id,
            stock_symbol=sell.stock_symbol,
            sell_timestamp=sell.timestamp,
            quantity_closed=sell.quantity,
            sell_unit_price=sell.unit_price,
            cost_basis_consumed=cost_basis,
            commission_total=commission_total,
            realized_pnl=realized_pnl,
            holding_period_days=holding_days,
            r_multiple=_r_multiple(sell, consumptions, cost_basis, realized_pnl),
            consumptions=tuple(consumptions),
        )
        logger.debug(
            f"FIFO 매도 {sell.id}: {sell.quantity}주, 원가 {cost_basis}, "
            f"실현손익 {realized_pnl}, 로트 {len(consumptions)}개 소진"
        )
        return trade


def _r_multiple(
    sell: Transaction,
    consumptions: Sequence[LotConsumption],
    cost_basis: Decimal,
    realized_pnl: Decimal,
) -> Decimal | None:
    """R-multiple = 주당 실현손익 / 주당 리스크.

    손절가는 매도 거래 것을 우선, 없으면 가장 많이 소진된 로트(동률이면 오래된 것)의 것을 쓴다.
    손절가가 없거나 리스크가 0이면 None (0은 본전 R로 오해되므로 쓰지 않는다).
    """
    stop = sell.stop_loss_price
    if stop is None and consumptions:
        stop = max(consumptions, key=lambda c: c.quantity).stop_loss_price
    if stop is None:
        return None

    entry_unit_cost = cost_basis / sell.quantity
    risk_per_share = abs(entry_unit_cost - stop)
    if risk_per_share == 0:
        return None
    return (realized_pnl / sell.quantity) / risk_per_share


def _validate(account_id: str, stock_symbol: str, transactions: Sequence[Transaction]) -> None:
    prev: Transaction | None = None
    for tx in transactions:
        if tx.account_id != account_id or tx.stock_symbol != stock_symbol:
            raise MalformedInputError(
                f"다른 계좌/종목의 거래가 섞였습니다: 거래 {tx.id} ({tx.account_id}/{tx.stock_symbol})"
            )
        if tx.quantity <= 0:
            raise MalformedInputError(f"수량은 0보다 커야 합니다: 거래 {tx.id}, 수량 {tx.quantity}")
        if tx.unit_price < 0 or tx.commission < 0:
            raise MalformedInputError(f"단가/수수료는 음수일 수 없습니다: 거래 {tx.id}")
        if prev is not None:
            if tx.sort_key == prev.sort_key:
                raise MalformedInputError(f"중복된 거래: {tx.id}")
            if tx.sort_key < prev.sort_key:
                raise MalformedInputError(
                    f"거래가 시간순으로 정렬되지 않았습니다: {prev.id} 다음 {tx.id}"
                )
        prev = tx


def match_fifo(
    account_id: str,
    stock_symbol: str,
    transactions: Sequence[Transaction],
) -> MatchResult:
    """FIFO 매칭 실행.

    Args:
        account_id: 계좌 ID
        stock_symbol: 종목 코드
        transactions: (timestamp, id) 오름차순으로 정렬된 해당 계좌/종목의 거래

    Raises:
        MalformedInputError: 정렬/그룹/필드 조건 위반
        InsufficientLotsError: 매도 수량이 잔여 로트보다 많음
    """
    _validate(account_id, stock_symbol, transactions)

    matcher = FifoMatcher(account_id, stock_symbol)
    for tx in transactions:
        matcher.process(tx)

    return MatchResult(
        account_id=account_id,
        stock_symbol=stock_symbol,
        closed_trades=list(matcher.closed_trades),
        open_lots=matcher.open_lots,
    )


def stamp_derived_fields(
    transactions: Iterable[Transaction],
    result: MatchResult,
) -> list[Transaction]:
    """매칭 결과를 거래 사본에 기록 (영속성 레이어가 저장할 값).

    매도: realized_pnl, cost_basis, r_multiple, holding_period_days
    매수: remaining_quantity (전량 소진된 매수는 0)
    """
    trades = {t.sell_transaction_id: t for t in result.closed_trades}
    remaining = {lot.buy_transaction_id: lot.remaining_quantity for lot in result.open_lots}

    stamped = []
    for tx in transactions:
        if tx.is_sell:
            trade = trades[tx.id]
            stamped.append(replace(
                tx,
                realized_pnl=trade.realized_pnl,
                cost_basis=trade.cost_basis_consumed,
                r_multiple=trade.r_multiple,
                holding_period_days=trade.holding_period_days,
                remaining_quantity=None,
            ))
        else:
            stamped.append(replace(
                tx,
                realized_pnl=None,
                cost_basis=None,
                r_multiple=None,
                holding_period_days=None,
                remaining_quantity=remaining.get(tx.id, ZERO),
            ))
    return stamped


def recalculate_fifo(
    account_id: str,
    stock_symbol: str,
    transactions: Iterable[Transaction],
) -> tuple[MatchResult, list[Transaction]]:
    """계좌/종목 1쌍 재계산. 거래 수정/삭제 후 호출.

    입력 순서와 관계없이 (timestamp, id)로 정렬한 뒤 매칭한다.
    """
    ordered = sorted(transactions, key=lambda tx: tx.sort_key)
    result = match_fifo(account_id, stock_symbol, ordered)
    return result, stamp_derived_fields(ordered, result)


@dataclass
class FifoMigrationReport:
    """migrate_all() 결과."""
    results: dict[tuple[str, str], MatchResult] = field(default_factory=dict)
    updated_transactions: list[Transaction] = field(default_factory=list)
    failures: dict[tuple[str, str], TradingJournalError] = field(default_factory=dict)

    @property
    def total_pairs(self) -> int:
        return len(self.results) + len(self.failures)


def migrate_all(transactions: Iterable[Transaction]) -> FifoMigrationReport:
    """전체 거래를 계좌/종목 쌍별로 재계산 (기존 매도 거래 마이그레이션).

    쌍 하나가 실패해도 나머지는 계속 처리하고, 실패는 report.failures에 남긴다.
    """
    groups: dict[tuple[str, str], list[Transaction]] = defaultdict(list)
    for tx in transactions:
        groups[(tx.account_id, tx.stock_symbol)].append(tx)

    report = FifoMigrationReport()
    total = len(groups)
    logger.info(f"전체 FIFO 마이그레이션 시작 - {total}개 계좌/종목 쌍")

    for processed, key in enumerate(sorted(groups), start=1):
        account_id, stock_symbol = key
        try:
            result, stamped = recalculate_fifo(account_id, stock_symbol, groups[key])
        except (InsufficientLotsError, MalformedInputError) as e:
            logger.error(f"FIFO 재계산 실패 - 계좌: {account_id}, 종목: {stock_symbol}: {e}")
            report.failures[key] = e
        else:
            report.results[key] = result
            report.updated_transactions.extend(stamped)

        if processed % 10 == 0:
            logger.info(f"마이그레이션 진행: {processed}/{total}")

    logger.info(
        f"전체 FIFO 마이그레이션 완료 - 성공 {len(report.results)}건, 실패 {len(report.failures)}건"
    )
    return report
