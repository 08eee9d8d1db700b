"""
백테스팅 엔진 모듈.

[ 역할 ]
    과거 봉 데이터에 전략을 적용하여 단일 종목 가상 매매를 시뮬레이션하고 성과를 측정.
    시스템의 핵심 실행 루프를 담당.

[ 실행 흐름 ]
    run_backtest() 호출 시:
        1. 봉 데이터 검증, 워밍업 구간 확인 (부족하면 루프 전에 실패)
        2. 인덱스 warmup(= minimum_data_points - 1)부터 마지막 봉까지:
           → 익일 시가 체결 대기 주문이 있으면 이 봉의 시가로 먼저 체결
           → LONG: 손절/익절(종가 기준 수익률) 확인 후 전략 SELL 시그널 확인
           → FLAT: 전략 BUY 시그널 확인
           → 주문은 당일 종가("close") 또는 익일 시가("next_open")에 체결
           → 종가 기준 평가금액을 자산 곡선에 기록
        3. 마지막 봉에서 남은 포지션 강제 청산 (FORCED_CLOSE)
        4. analysis/metrics.py로 리스크 지표 / 거래 통계 / 연속 승패 계산
        5. 같은 구간 단순 보유(buy & hold) 벤치마크 곡선, 청산월별 성과 집계

[ 상태 ]
    FLAT(미보유) ↔ LONG(보유). 동시에 한 포지션만 보유한다.
    매수/매도는 Transaction으로 만들어 실행 전용 FifoMatcher에 넣고,
    매도마다 ClosedTrade를 받아 BacktestTrade로 기록한다.

[ 의존성 ]
    - core/trading_strategy.py::TradingStrategy (전략 인터페이스)
    - accounting/fifo.py::FifoMatcher (로트 관리, 실현손익)
    - analysis/metrics.py::compute_metrics() (성과 계산)

[ 호출하는 곳 ]
    - run_backtest.py (진입점)에서 생성 및 실행
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import ROUND_FLOOR, Decimal
from enum import Enum
from typing import Any, Sequence

import pandas as pd

from trading_journal.accounting.fifo import ClosedTrade, FifoMatcher
from trading_journal.analysis.metrics import (
    EquityPoint,
    RiskMetrics,
    StreakStats,
    TradeStatistics,
    compute_metrics,
    compute_streaks,
    compute_trade_statistics,
)
from trading_journal.core.errors import InsufficientHistoryError, MalformedInputError
from trading_journal.core.price_data import PriceBar, validate_price_bars
from trading_journal.core.trading_strategy import SignalType, TradingStrategy
from trading_journal.data.transaction import Transaction, TransactionType
from trading_journal.strategies import create_strategy
from trading_journal.utils.config import BacktestConfig, RiskConfig, StrategyConfig
from trading_journal.utils.logger import get_logger
from trading_journal.utils.scale import DEFAULT_SCALE_POLICY, ScalePolicy, to_decimal

logger = get_logger("backtest")

EXECUTION_LAGS = ("close", "next_open")
DEFAULT_SYMBOL = "BACKTEST"

ZERO = Decimal(0)
ONE = Decimal(1)
HUNDRED = Decimal(100)


class PositionSide(Enum):
    FLAT = "FLAT"
    LONG = "LONG"


class ExitReason(Enum):
    """청산 사유. 전략 시그널과 강제 청산을 구분한다."""
    SIGNAL = "SIGNAL"
    STOP_LOSS = "STOP_LOSS"
    TAKE_PROFIT = "TAKE_PROFIT"
    FORCED_CLOSE = "FORCED_CLOSE"


@dataclass
class PositionState:
    """현재 보유 포지션. FLAT이면 나머지 필드는 의미 없음."""
    side: PositionSide = PositionSide.FLAT
    quantity: Decimal = ZERO
    entry_price: Decimal = ZERO        # 슬리피지 반영 체결가
    entry_date: date | None = None
    entry_reason: str = ""

    def return_pct(self, price: Decimal) -> Decimal:
        """체결가 대비 현재 수익률 (%)."""
        if self.entry_price == 0:
            return ZERO
        return (price - self.entry_price) / self.entry_price * HUNDRED


@dataclass
class _PendingOrder:
    """익일 시가 체결 대기 주문."""
    side: TransactionType
    reason: str
    exit_reason: ExitReason | None = None


@dataclass
class BacktestTrade:
    """진입 → 청산 1회 왕복 거래."""
    entry_date: date
    exit_date: date
    quantity: Decimal
    entry_price: Decimal
    exit_price: Decimal
    realized_pnl: Decimal
    return_pct: Decimal
    holding_days: int
    exit_reason: ExitReason
    entry_reason: str = ""
    exit_detail: str = ""
    r_multiple: Decimal | None = None

    def to_dict(self, scale: ScalePolicy = DEFAULT_SCALE_POLICY) -> dict[str, Any]:
        return {
            "entry_date": self.entry_date.isoformat(),
            "exit_date": self.exit_date.isoformat(),
            "quantity": self.quantity,
            "entry_price": scale.currency(self.entry_price),
            "exit_price": scale.currency(self.exit_price),
            "realized_pnl": scale.currency(self.realized_pnl),
            "return_pct": scale.percent(self.return_pct),
            "holding_days": self.holding_days,
            "exit_reason": self.exit_reason.value,
            "entry_reason": self.entry_reason,
            "exit_detail": self.exit_detail,
            "r_multiple": None if self.r_multiple is None else scale.percent(self.r_multiple),
        }


@dataclass
class MonthlyPerformance:
    """청산월(YYYY-MM)별 거래 성과."""
    month: str
    trade_count: int = 0
    realized_pnl: Decimal = ZERO
    return_pct: Decimal = ZERO     # 해당 월 청산 거래 수익률의 단순 합 (%)

    def to_dict(self, scale: ScalePolicy = DEFAULT_SCALE_POLICY) -> dict[str, Any]:
        return {
            "month": self.month,
            "trade_count": self.trade_count,
            "realized_pnl": scale.currency(self.realized_pnl),
            "return_pct": scale.percent(self.return_pct),
        }


def compute_monthly_performance(trades: Sequence[BacktestTrade]) -> list[MonthlyPerformance]:
    """청산일 기준 월별 집계. 월 오름차순, 거래가 없는 월은 포함하지 않는다."""
    months: dict[str, MonthlyPerformance] = {}
    for trade in trades:
        key = trade.exit_date.strftime("%Y-%m")
        perf = months.setdefault(key, MonthlyPerformance(month=key))
        perf.trade_count += 1
        perf.realized_pnl += trade.realized_pnl
        perf.return_pct += trade.return_pct
    return [months[key] for key in sorted(months)]


def buy_and_hold_curve(bars: Sequence[PriceBar], initial_cash: Decimal) -> list[EquityPoint]:
    """첫 봉 종가에 전액 매수해 보유했을 때의 평가금액 (initial_cash × close_i / close_0).

    비용은 반영하지 않는다. 기준 종가가 0 이하이면 빈 목록.
    """
    if not bars or bars[0].close <= 0:
        return []
    base = bars[0].close
    return [EquityPoint(bar.date, initial_cash * bar.close / base) for bar in bars]


@dataclass
class BacktestResult:
    """백테스트 1회 실행 결과."""
    symbol: str
    strategy_name: str
    initial_cash: Decimal
    final_equity: Decimal
    metrics: RiskMetrics
    trade_stats: TradeStatistics
    streak_stats: StreakStats
    equity_curve: list[EquityPoint] = field(default_factory=list)
    benchmark_curve: list[EquityPoint] = field(default_factory=list)   # 같은 구간 단순 보유
    monthly_performance: list[MonthlyPerformance] = field(default_factory=list)
    trades: list[BacktestTrade] = field(default_factory=list)
    closed_trades: list[ClosedTrade] = field(default_factory=list)
    transactions: list[Transaction] = field(default_factory=list)
    forced_close: bool = False
    scale: ScalePolicy = DEFAULT_SCALE_POLICY

    @property
    def total_return_pct(self) -> Decimal:
        if self.initial_cash == 0:
            return ZERO
        return (self.final_equity - self.initial_cash) / self.initial_cash * HUNDRED

    @property
    def benchmark_return_pct(self) -> Decimal | None:
        """단순 보유 수익률 (%). 벤치마크가 없으면 None."""
        if not self.benchmark_curve or self.initial_cash == 0:
            return None
        return (self.benchmark_curve[-1].equity - self.initial_cash) / self.initial_cash * HUNDRED

    def equity_frame(self) -> pd.DataFrame:
        """자산 곡선 DataFrame (date, equity, drawdown_pct, benchmark). 차트/리포트용."""
        df = pd.DataFrame(
            [(p.date, float(p.equity)) for p in self.equity_curve],
            columns=["date", "equity"],
        )
        peak = df["equity"].cummax()
        df["drawdown_pct"] = (peak - df["equity"]) / peak * 100
        benchmark = pd.Series(
            {p.date: float(p.equity) for p in self.benchmark_curve}, dtype=float
        )
        df["benchmark"] = df["date"].map(benchmark)
        return df

    def to_dict(self) -> dict[str, Any]:
        """리포트용 딕셔너리. 이 시점에만 반올림."""
        scale = self.scale
        return {
            "symbol": self.symbol,
            "strategy": self.strategy_name,
            "initial_cash": scale.currency(self.initial_cash),
            "final_equity": scale.currency(self.final_equity),
            "total_return_pct": scale.percent(self.total_return_pct),
            "benchmark_return_pct": (
                None if self.benchmark_return_pct is None else scale.percent(self.benchmark_return_pct)
            ),
            "forced_close": self.forced_close,
            "metrics": self.metrics.to_dict(),
            "trade_stats": self.trade_stats.to_dict(scale),
            "streaks": {
                "max_win_streak": self.streak_stats.max_win_streak,
                "max_loss_streak": self.streak_stats.max_loss_streak,
                "current_streak": self.streak_stats.current_streak,
            },
            "trade_count": len(self.trades),
            "trades": [t.to_dict(scale) for t in self.trades],
            "equity_curve": [
                {"date": p.date.isoformat(), "equity": scale.currency(p.equity)}
                for p in self.equity_curve
            ],
            "benchmark_curve": [
                {"date": p.date.isoformat(), "equity": scale.currency(p.equity)}
                for p in self.benchmark_curve
            ],
            "monthly_performance": [m.to_dict(scale) for m in self.monthly_performance],
        }


class BacktestEngine:
    """백테스팅 엔진. run_backtest()로 시뮬레이션 실행.

    실행마다 현금, 포지션, 로트 큐를 새로 만들기 때문에 한 엔진을 여러 번 실행해도 서로 영향이 없다.
    """

    def __init__(
        self,
        config: BacktestConfig | None = None,
        risk_config: RiskConfig | None = None,
        scale: ScalePolicy = DEFAULT_SCALE_POLICY,
    ):
        self.config = config or BacktestConfig()
        self.risk_config = risk_config or RiskConfig()
        self.scale = scale

        if self.config.execution_lag not in EXECUTION_LAGS:
            raise MalformedInputError(
                f"알 수 없는 체결 시점: {self.config.execution_lag} (가능: {', '.join(EXECUTION_LAGS)})"
            )
        if not 0 < self.config.position_size_pct <= 100:
            raise MalformedInputError(
                f"투자 비율은 0 초과 100 이하여야 합니다: {self.config.position_size_pct}"
            )

        self.initial_cash = to_decimal(self.config.initial_cash)
        self.commission_rate = to_decimal(self.config.commission_rate)
        self.slippage_rate = to_decimal(self.config.slippage_rate)
        self.position_size_pct = to_decimal(self.config.position_size_pct)

    def run_backtest(
        self,
        strategy: TradingStrategy,
        bars: Sequence[PriceBar],
        symbol: str = DEFAULT_SYMBOL,
    ) -> BacktestResult:
        """백테스트 실행.

        Args:
            strategy: 매매 전략
            bars: 날짜 오름차순 봉 데이터 (단일 종목)
            symbol: 종목 코드 (가상 거래 기록용)

        Returns:
            BacktestResult: 거래 내역, 자산 곡선, 성과 지표

        Raises:
            MalformedInputError: 봉 데이터가 정렬되지 않았거나 중복
            InsufficientHistoryError: 워밍업 + 최소 평가 구간보다 봉이 적음
        """
        validate_price_bars(bars)
        required = strategy.minimum_data_points + 2
        if len(bars) < required:
            raise InsufficientHistoryError(
                f"백테스트 데이터 부족: {len(bars)}개 봉 (전략 {strategy.name} 최소 {required}개 필요)"
            )

        warmup = strategy.minimum_data_points - 1
        run = _BacktestRun(self, strategy, symbol)

        logger.info(
            f"백테스트 시작: {strategy.name} / {symbol}, "
            f"{bars[warmup].date} ~ {bars[-1].date} ({len(bars) - warmup}봉)"
        )

        for index in range(warmup, len(bars)):
            run.step(bars, index)

        run.finish(bars[-1])

        equity_values = [(p.date, p.equity) for p in run.equity_curve]
        metrics = compute_metrics(
            trades=run.closed_trades,
            equity_curve=equity_values,
            risk_free_rate_annual=self.config.risk_free_rate,
            risk_config=self.risk_config,
            scale=self.scale,
        )

        result = BacktestResult(
            symbol=symbol,
            strategy_name=strategy.name,
            initial_cash=self.initial_cash,
            final_equity=run.equity_curve[-1].equity,
            metrics=metrics,
            trade_stats=compute_trade_statistics(run.closed_trades, cap=self.risk_config.max_ratio_value),
            streak_stats=compute_streaks(run.closed_trades),
            equity_curve=run.equity_curve,
            benchmark_curve=buy_and_hold_curve(bars[warmup:], self.initial_cash),
            monthly_performance=compute_monthly_performance(run.trades),
            trades=run.trades,
            closed_trades=run.closed_trades,
            transactions=run.transactions,
            forced_close=run.forced_close,
            scale=self.scale,
        )

        logger.info(
            f"백테스트 완료. 거래 {len(result.trades)}회, "
            f"총 수익률: {result.total_return_pct:.2f}%, MDD: {metrics.max_drawdown}%"
        )
        return result


class _BacktestRun:
    """실행 1회분의 가변 상태 (현금, 포지션, 로트 큐, 대기 주문)."""

    def __init__(self, engine: BacktestEngine, strategy: TradingStrategy, symbol: str):
        self.engine = engine
        self.config = engine.config
        self.strategy = strategy
        self.symbol = symbol

        self.cash = engine.initial_cash
        self.position = PositionState()
        self.matcher = FifoMatcher(self.config.account_id, symbol)
        self.pending: _PendingOrder | None = None
        self.next_tx_id = 1

        self.equity_curve: list[EquityPoint] = []
        self.trades: list[BacktestTrade] = []
        self.closed_trades: list[ClosedTrade] = []
        self.transactions: list[Transaction] = []
        self.forced_close = False

    # ─── 봉 단위 처리 ─────────────────────────────────────────────────────

    def step(self, bars: Sequence[PriceBar], index: int) -> None:
        bar = bars[index]

        if self.pending is not None:
            order, self.pending = self.pending, None
            self._fill(order, bar, bar.open)

        if self.position.side == PositionSide.LONG:
            order = self._exit_order(bars, index)
        else:
            order = self._entry_order(bars, index)

        if order is not None:
            if self.config.execution_lag == "close":
                self._fill(order, bar, bar.close)
            else:
                self.pending = order

        self.equity_curve.append(EquityPoint(bar.date, self._equity(bar.close)))

    def _exit_order(self, bars: Sequence[PriceBar], index: int) -> _PendingOrder | None:
        """손절/익절 우선, 그다음 전략 매도 시그널."""
        close = bars[index].close
        change = self.position.return_pct(close)

        stop_loss_pct = self.config.stop_loss_pct
        if stop_loss_pct is not None and change <= -to_decimal(stop_loss_pct):
            return _PendingOrder(TransactionType.SELL, f"손절 ({change:.2f}%)", ExitReason.STOP_LOSS)

        take_profit_pct = self.config.take_profit_pct
        if take_profit_pct is not None and change >= to_decimal(take_profit_pct):
            return _PendingOrder(TransactionType.SELL, f"익절 ({change:.2f}%)", ExitReason.TAKE_PROFIT)

        signal = self.strategy.generate_signal(bars, index)
        if signal.signal_type == SignalType.SELL:
            return _PendingOrder(TransactionType.SELL, signal.reason, ExitReason.SIGNAL)
        return None

    def _entry_order(self, bars: Sequence[PriceBar], index: int) -> _PendingOrder | None:
        signal = self.strategy.generate_signal(bars, index)
        if signal.signal_type == SignalType.BUY:
            return _PendingOrder(TransactionType.BUY, signal.reason)
        return None

    def _fill(self, order: _PendingOrder, bar: PriceBar, price: Decimal) -> None:
        if order.side == TransactionType.BUY:
            self._buy(bar, price, order.reason)
        else:
            self._sell(bar, price, order.exit_reason or ExitReason.SIGNAL, order.reason)

    # ─── 체결 ─────────────────────────────────────────────────────────────

    def _buy(self, bar: PriceBar, price: Decimal, reason: str) -> None:
        """매수 실행. 슬리피지(가격↑) + 수수료 적용, 정수 주 단위."""
        engine = self.engine
        exec_price = price * (ONE + engine.slippage_rate)  # 매수 시 불리하게
        if exec_price <= 0:
            logger.debug(f"[{bar.date}] 매수 건너뜀: 체결가 0")
            return

        budget = self.cash * engine.position_size_pct / HUNDRED
        unit_cost = exec_price * (ONE + engine.commission_rate)
        quantity = (budget / unit_cost).to_integral_value(rounding=ROUND_FLOOR)
        if quantity <= 0:
            logger.debug(f"[{bar.date}] 매수 건너뜀: 자금 부족 (가용 {self.cash:,.0f}원, 체결가 {exec_price:,.0f}원)")
            return

        commission = exec_price * quantity * engine.commission_rate
        self.cash -= exec_price * quantity + commission

        stop_loss_price = None
        if self.config.stop_loss_pct is not None:
            stop_loss_price = exec_price * (ONE - to_decimal(self.config.stop_loss_pct) / HUNDRED)
        take_profit_price = None
        if self.config.take_profit_pct is not None:
            take_profit_price = exec_price * (ONE + to_decimal(self.config.take_profit_pct) / HUNDRED)

        tx = self._transaction(
            TransactionType.BUY, bar, quantity, exec_price, commission,
            stop_loss_price=stop_loss_price,
            take_profit_price=take_profit_price,
        )
        self.matcher.process(tx)

        self.position = PositionState(
            side=PositionSide.LONG,
            quantity=quantity,
            entry_price=exec_price,
            entry_date=bar.date,
            entry_reason=reason,
        )
        logger.debug(f"[{bar.date}] 매수: {self.symbol} {quantity}주 @ {exec_price:,.0f}원 ({reason})")

    def _sell(self, bar: PriceBar, price: Decimal, exit_reason: ExitReason, detail: str) -> None:
        """전량 매도. 슬리피지(가격↓) + 수수료 적용 후 FIFO로 실현손익 계산."""
        engine = self.engine
        position = self.position
        exec_price = price * (ONE - engine.slippage_rate)  # 매도 시 불리하게
        commission = exec_price * position.quantity * engine.commission_rate
        self.cash += exec_price * position.quantity - commission

        tx = self._transaction(TransactionType.SELL, bar, position.quantity, exec_price, commission)
        closed = self.matcher.process(tx)
        self.closed_trades.append(closed)

        self.trades.append(BacktestTrade(
            entry_date=position.entry_date,
            exit_date=bar.date,
            quantity=position.quantity,
            entry_price=position.entry_price,
            exit_price=exec_price,
            realized_pnl=closed.realized_pnl,
            return_pct=closed.return_pct,
            holding_days=(bar.date - position.entry_date).days,
            exit_reason=exit_reason,
            entry_reason=position.entry_reason,
            exit_detail=detail,
            r_multiple=closed.r_multiple,
        ))
        self.position = PositionState()
        logger.debug(
            f"[{bar.date}] 매도({exit_reason.value}): {self.symbol} {position.quantity}주 "
            f"@ {exec_price:,.0f}원 -> {closed.realized_pnl:,.0f}원 ({detail})"
        )

    def _transaction(
        self,
        tx_type: TransactionType,
        bar: PriceBar,
        quantity: Decimal,
        price: Decimal,
        commission: Decimal,
        **kwargs,
    ) -> Transaction:
        tx = Transaction(
            id=self.next_tx_id,
            account_id=self.config.account_id,
            stock_symbol=self.symbol,
            type=tx_type,
            quantity=quantity,
            unit_price=price,
            commission=commission,
            timestamp=datetime.combine(bar.date, time()),
            **kwargs,
        )
        self.next_tx_id += 1
        self.transactions.append(tx)
        return tx

    # ─── 평가 / 종료 ──────────────────────────────────────────────────────

    def _equity(self, price: Decimal) -> Decimal:
        return self.cash + self.position.quantity * price

    def finish(self, last_bar: PriceBar) -> None:
        """대기 주문 폐기, 남은 포지션을 마지막 종가에 강제 청산."""
        if self.pending is not None:
            logger.debug(f"체결되지 않은 익일 시가 주문 폐기: {self.pending.side.value} ({self.pending.reason})")
            self.pending = None

        if self.position.side == PositionSide.LONG:
            self._sell(last_bar, last_bar.close, ExitReason.FORCED_CLOSE, "기간 종료 강제 청산")
            self.forced_close = True
            # 청산 비용까지 반영한 최종 평가금액으로 마지막 점을 교체
            self.equity_curve[-1] = EquityPoint(last_bar.date, self.cash)


def run_backtest(
    price_bars: Sequence[PriceBar],
    strategy_config: StrategyConfig,
    backtest_config: BacktestConfig | None = None,
    symbol: str | None = None,
    risk_config: RiskConfig | None = None,
    scale: ScalePolicy = DEFAULT_SCALE_POLICY,
) -> BacktestResult:
    """전략 설정으로 전략을 만들어 백테스트 1회 실행.

    symbol이 없으면 strategy_config.tickers의 첫 종목, 그것도 없으면 "BACKTEST".

    Raises:
        UnknownStrategyError: 등록되지 않은 전략 이름
        MalformedInputError / InsufficientHistoryError: BacktestEngine.run_backtest() 참고
    """
    strategy = create_strategy(strategy_config.name, params=strategy_config.params)
    if symbol is None:
        symbol = strategy_config.tickers[0] if strategy_config.tickers else DEFAULT_SYMBOL
    engine = BacktestEngine(backtest_config, risk_config=risk_config, scale=scale)
    return engine.run_backtest(strategy, price_bars, symbol=symbol)
