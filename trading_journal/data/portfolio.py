"""
보유 로트(Lot) 및 포지션 평가 모듈.

[ 역할 ]
    Lot      - 매수 1건이 만든 미청산 수량 단위. FIFO 매칭 1회 실행 동안만 존재.
    Position - 매칭 후 남은 로트를 종목 단위로 합산하여 평균단가/평가손익 계산.

[ 호출하는 곳 ]
    - accounting/fifo.py::FifoMatcher가 매수 시 Lot 생성, 매도 시 소진
    - summarize_positions()는 분석 레이어(외부)가 보유 현황 요약에 사용
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, Mapping

ZERO = Decimal(0)


@dataclass
class Lot:
    """미청산 매수 로트. 같은 계좌/종목 내에서 (open_timestamp, buy_transaction_id) 순으로 정렬."""
    stock_symbol: str
    account_id: str
    buy_transaction_id: int
    open_timestamp: datetime
    original_quantity: Decimal
    remaining_quantity: Decimal
    unit_cost: Decimal
    allocated_commission: Decimal       # 매수 시 수수료 전액
    remaining_commission: Decimal       # 아직 매도에 배분되지 않은 수수료
    stop_loss_price: Decimal | None = None

    @property
    def is_closed(self) -> bool:
        return self.remaining_quantity == 0

    def consume(self, quantity: Decimal) -> Decimal:
        """quantity만큼 소진하고 배분된 수수료 반환.

        수수료는 소진 수량 / 최초 수량 비율로 배분하되,
        로트를 다 쓰는 소진이 남은 수수료 전액을 가져가 합계가 정확히 일치하게 한다.
        """
        if quantity > self.remaining_quantity:
            raise ValueError(
                f"로트 잔여 수량 초과: 요청 {quantity}, 잔여 {self.remaining_quantity}"
            )
        if quantity == self.remaining_quantity:
            commission = self.remaining_commission
        else:
            commission = self.allocated_commission * quantity / self.original_quantity
        self.remaining_quantity -= quantity
        self.remaining_commission -= commission
        return commission


@dataclass
class Position:
    """종목별 미청산 포지션. 남은 로트 합산."""
    stock_symbol: str
    account_id: str
    quantity: Decimal = ZERO             # 보유 수량
    cost: Decimal = ZERO                 # 남은 수량 × 매수단가 합계
    commission: Decimal = ZERO           # 아직 배분되지 않은 매수 수수료
    lot_count: int = 0

    @classmethod
    def from_lots(cls, stock_symbol: str, account_id: str, lots: Iterable[Lot]) -> "Position":
        position = cls(stock_symbol=stock_symbol, account_id=account_id)
        for lot in lots:
            position.quantity += lot.remaining_quantity
            position.cost += lot.remaining_quantity * lot.unit_cost
            position.commission += lot.remaining_commission
            position.lot_count += 1
        return position

    @property
    def invested(self) -> Decimal:
        """총 투입 금액 (수수료 포함)."""
        return self.cost + self.commission

    @property
    def avg_cost(self) -> Decimal:
        """평균 매수단가 (수수료 포함)."""
        if self.quantity == 0:
            return ZERO
        return self.invested / self.quantity

    def market_value(self, price: Decimal) -> Decimal:
        return self.quantity * price

    def unrealized_pnl(self, price: Decimal) -> Decimal:
        return self.market_value(price) - self.invested

    def unrealized_pnl_pct(self, price: Decimal) -> Decimal:
        if self.invested == 0:
            return ZERO
        return self.unrealized_pnl(price) / self.invested * 100


def summarize_positions(results: Iterable, prices: Mapping[str, Decimal]) -> dict[str, Any]:
    """매칭 결과(MatchResult) 목록과 종목별 현재가로 포트폴리오 요약.

    현재가가 없는 종목은 평균단가로 평가한다.
    """
    total_invested = ZERO
    total_market_value = ZERO
    total_realized = ZERO
    holdings = 0

    for result in results:
        total_realized += result.total_realized_pnl
        position = result.position()
        if position.quantity == 0:
            continue
        holdings += 1
        price = prices.get(position.stock_symbol, position.avg_cost)
        total_invested += position.invested
        total_market_value += position.market_value(price)

    return {
        "num_holdings": holdings,
        "total_invested": total_invested,
        "total_market_value": total_market_value,
        "total_unrealized_pnl": total_market_value - total_invested,
        "total_realized_pnl": total_realized,
    }
