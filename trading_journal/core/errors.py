"""
코어 예외 정의.

[ 분류 ]
    PreconditionError  - 호출자/프로그래머 오류 (입력 정렬, 기간 부족 등)
    IntegrityError     - 데이터 무결성 오류 (매수 기록 없는 매도 등)

[ 호출하는 곳 ]
    - accounting/fifo.py       → MalformedInputError, InsufficientLotsError
    - utils/indicators.py      → InsufficientHistoryError
    - analysis/metrics.py      → InsufficientDataError
    - backtest/engine.py       → InsufficientHistoryError, MalformedInputError
    - strategies/__init__.py   → UnknownStrategyError

    외부 레이어(REST 등)는 IntegrityError를 4xx("데이터를 수정하세요"),
    PreconditionError를 5xx("내부 오류")로 매핑한다. 코어에서는 재시도하지 않는다.
"""

from decimal import Decimal


class TradingJournalError(Exception):
    """코어 예외의 최상위 클래스."""


class PreconditionError(TradingJournalError):
    """입력 전제 조건 위반."""


class IntegrityError(TradingJournalError):
    """거래 데이터 무결성 위반."""


class MalformedInputError(PreconditionError):
    """정렬되지 않았거나 계좌/종목이 섞인 입력, 음수 수량 등."""


class InsufficientHistoryError(PreconditionError):
    """지표/백테스트 계산에 필요한 봉 데이터가 부족."""


class InsufficientDataError(PreconditionError):
    """성과 지표 계산에 필요한 수익률 관측치가 부족 (2개 미만)."""


class InsufficientLotsError(IntegrityError):
    """매도 수량이 보유 중인 매수 로트 합계를 초과."""

    def __init__(self, symbol: str, account_id: str, short_by: Decimal):
        self.symbol = symbol
        self.account_id = account_id
        self.short_by = short_by
        super().__init__(
            f"매도 수량이 잔여 매수 수량보다 {short_by} 만큼 많습니다 "
            f"(종목: {symbol}, 계좌: {account_id})"
        )


class UnknownStrategyError(TradingJournalError, ValueError):
    """등록되지 않은 전략 이름."""
