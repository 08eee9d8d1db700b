"""
거래(매수/매도) 기록 정의.

[ 역할 ]
    영속성 레이어가 계좌/종목별로 정렬해 전달하는 거래 기록.
    코어는 읽기 전용으로 다루며, FIFO 계산 결과(파생 필드)는
    dataclasses.replace()로 만든 사본에 기록해 돌려준다 (accounting/fifo.py::stamp_derived_fields).

[ 파생 필드 ]
    매도: realized_pnl, cost_basis, r_multiple, holding_period_days
    매수: remaining_quantity (포트폴리오 평가용 잔여 수량)

[ 호출하는 곳 ]
    - accounting/fifo.py: 매칭 입력
    - backtest/engine.py: 시그널 발생 시 가상 거래 생성
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum


class TransactionType(Enum):
    BUY = "BUY"
    SELL = "SELL"


@dataclass(frozen=True)
class Transaction:
    """단일 거래 기록."""
    id: int
    account_id: str
    stock_symbol: str
    type: TransactionType
    quantity: Decimal                       # > 0
    unit_price: Decimal                     # ≥ 0
    commission: Decimal                     # ≥ 0
    timestamp: datetime
    stop_loss_price: Decimal | None = None
    take_profit_price: Decimal | None = None

    # FIFO 계산으로 채워지는 파생 필드 (입력 시에는 무시됨)
    realized_pnl: Decimal | None = None
    cost_basis: Decimal | None = None
    r_multiple: Decimal | None = None
    holding_period_days: Decimal | None = None
    remaining_quantity: Decimal | None = None

    @property
    def is_buy(self) -> bool:
        return self.type == TransactionType.BUY

    @property
    def is_sell(self) -> bool:
        return self.type == TransactionType.SELL

    @property
    def gross_amount(self) -> Decimal:
        """수량 × 단가 (수수료 제외)."""
        return self.quantity * self.unit_price

    @property
    def sort_key(self) -> tuple[datetime, int]:
        """정렬 기준. 같은 시각이면 거래 ID 순."""
        return self.timestamp, self.id
