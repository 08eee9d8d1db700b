"""
성과 및 리스크 지표 계산 모듈.

[ 역할 ]
    청산 거래 목록(ClosedTrade) + 자산 곡선(날짜, 평가금액)을 받아 성과/리스크 지표를 계산.
    compute_metrics() 함수가 핵심. 분석 API(외부)와 백테스트 엔진이 함께 사용한다.

[ 계산하는 지표 ]
    - 연환산 변동성 / 하방 편차
    - 샤프, 소르티노, 칼마 비율
    - MDD (최대 낙폭), CAGR, 총 수익률
    - 수익 팩터, 승률, 기대값
    - 모수적 VaR 95% (일/주/월, √t 스케일링)
    - 리스크 등급 (LOW / MEDIUM / HIGH)
    - 연속 승/패

[ 수치 처리 ]
    통계 중간값은 numpy float로 계산하고, 비율 상한 적용(clamp)을 마지막 연산으로 한 뒤
    RiskMetrics를 만들 때 한 번만 반올림한다.

[ 호출하는 곳 ]
    - backtest/engine.py::BacktestEngine.run_backtest() 완료 시 호출
"""

import math
from dataclasses import asdict, dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, NamedTuple, Sequence

import numpy as np

from trading_journal.accounting.fifo import ClosedTrade
from trading_journal.core.errors import InsufficientDataError, MalformedInputError
from trading_journal.utils.config import RiskConfig
from trading_journal.utils.logger import get_logger
from trading_journal.utils.scale import DEFAULT_SCALE_POLICY, ScalePolicy

logger = get_logger("analysis")

TRADING_DAYS_PER_YEAR = 252
DAYS_PER_YEAR = 365.0
MIN_RETURN_OBSERVATIONS = 2
MAX_ANNUAL_LOG_GROWTH = 700.0  # exp(700) ≈ 1e304, float 상한 이내

ZERO = Decimal(0)


class EquityPoint(NamedTuple):
    """자산 곡선의 한 점."""
    date: date
    equity: Decimal


class RiskLevel(Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


@dataclass(frozen=True)
class VaRResult:
    """모수적 VaR. 평가금액 대비 예상 최대 손실률 (%, 양수)."""
    daily: Decimal
    weekly: Decimal
    monthly: Decimal
    confidence: float = 0.95


@dataclass
class RiskMetrics:
    """리스크 지표. 모든 비율은 상한이 적용되고 보고 스케일로 반올림된 값."""
    sharpe_ratio: Decimal
    sortino_ratio: Decimal
    calmar_ratio: Decimal
    volatility: Decimal            # 연환산 변동성 (%)
    downside_deviation: Decimal    # 연환산 하방 편차 (%)
    max_drawdown: Decimal          # 최대 낙폭 (%, 양수)
    profit_factor: Decimal
    var95: VaRResult
    risk_level: RiskLevel
    cagr: Decimal                  # 연평균 복리 수익률 (%)
    total_return: Decimal          # 총 수익률 (%)
    win_rate: Decimal              # 승률 (%)
    expectancy: Decimal            # 거래당 평균 실현손익
    trading_days: int              # 수익률 관측치 수

    def to_dict(self) -> dict[str, Any]:
        """딕셔너리 변환."""
        data = asdict(self)
        data["risk_level"] = self.risk_level.value
        return data

    def summary(self) -> str:
        """리스크 지표 요약 문자열."""
        lines = [
            "=" * 50,
            "리스크 지표 리포트",
            "=" * 50,
            f"총 수익률:       {self.total_return:>10}%",
            f"CAGR:            {self.cagr:>10}%",
            f"변동성(연):      {self.volatility:>10}%",
            f"최대 낙폭(MDD):  {self.max_drawdown:>10}%",
            "-" * 50,
            f"샤프 비율:       {self.sharpe_ratio:>10}",
            f"소르티노 비율:   {self.sortino_ratio:>10}",
            f"칼마 비율:       {self.calmar_ratio:>10}",
            f"수익 팩터:       {self.profit_factor:>10}",
            "-" * 50,
            f"VaR95 (일):      {self.var95.daily:>10}%",
            f"VaR95 (주):      {self.var95.weekly:>10}%",
            f"VaR95 (월):      {self.var95.monthly:>10}%",
            f"리스크 등급:     {self.risk_level.value:>10}",
            "=" * 50,
        ]
        return "\n".join(lines)


@dataclass
class StreakStats:
    """연속 승패. current_streak는 양수면 연승, 음수면 연패."""
    max_win_streak: int = 0
    max_loss_streak: int = 0
    current_streak: int = 0


@dataclass
class TradeStatistics:
    """청산 거래 통계. 금액은 반올림 전 원값."""
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0             # 본전(0)은 손실로 집계
    win_rate: float = 0.0              # %
    avg_win: Decimal = ZERO
    avg_loss: Decimal = ZERO           # 음수
    expectancy: Decimal = ZERO         # 거래당 평균 실현손익
    profit_factor: float = 0.0
    largest_win: Decimal = ZERO
    largest_loss: Decimal = ZERO
    total_realized_pnl: Decimal = ZERO
    avg_holding_days: Decimal = ZERO
    avg_r_multiple: Decimal | None = None

    def to_dict(self, scale: ScalePolicy = DEFAULT_SCALE_POLICY) -> dict[str, Any]:
        return {
            "total_trades": self.total_trades,
            "winning_trades": self.winning_trades,
            "losing_trades": self.losing_trades,
            "win_rate": scale.percent(self.win_rate),
            "avg_win": scale.currency(self.avg_win),
            "avg_loss": scale.currency(self.avg_loss),
            "expectancy": scale.currency(self.expectancy),
            "profit_factor": scale.percent(self.profit_factor),
            "largest_win": scale.currency(self.largest_win),
            "largest_loss": scale.currency(self.largest_loss),
            "total_realized_pnl": scale.currency(self.total_realized_pnl),
            "avg_holding_days": scale.percent(self.avg_holding_days),
            "avg_r_multiple": None if self.avg_r_multiple is None else scale.percent(self.avg_r_multiple),
        }


def _clamp(value: float, cap: float) -> float:
    return max(-cap, min(cap, value))


def _equity_values(equity_curve: Sequence[tuple[date, Any]]) -> np.ndarray:
    return np.array([float(value) for _, value in equity_curve], dtype=float)


def daily_returns(equity_curve: Sequence[tuple[date, Any]]) -> np.ndarray:
    """기간 수익률 r_t = equity_t / equity_{t-1} - 1.

    Raises:
        MalformedInputError: 직전 평가금액이 0 이하
    """
    values = _equity_values(equity_curve)
    if len(values) < 2:
        return np.array([], dtype=float)
    if np.any(values[:-1] <= 0):
        raise MalformedInputError("자산 곡선에 0 이하의 평가금액이 있어 수익률을 계산할 수 없습니다")
    return values[1:] / values[:-1] - 1


def max_drawdown_pct(values: Sequence[float] | np.ndarray) -> float:
    """고점 대비 최대 하락폭 (%, 양수). 값이 모두 0 이상이면 [0, 100]."""
    peak = None
    max_dd = 0.0
    for value in values:
        if peak is None or value > peak:
            peak = value
        if peak > 0:
            dd = (peak - value) / peak * 100
            if dd > max_dd:
                max_dd = dd
    return max_dd


def cagr_pct(first_value: float, last_value: float, days: int) -> float:
    """연평균 복리 수익률 (%). 경과일이 0 이하이면 0."""
    years = days / DAYS_PER_YEAR
    if years <= 0 or first_value <= 0:
        return 0.0
    if last_value <= 0:
        return -100.0
    # 로그 공간에서 연환산. 짧은 구간의 급등으로 float 범위를 넘으면 상한으로 고정
    annual_log_growth = math.log(last_value / first_value) / years
    return (math.exp(min(annual_log_growth, MAX_ANNUAL_LOG_GROWTH)) - 1) * 100


def profit_factor(trades: Sequence[ClosedTrade], cap: float) -> float:
    """총이익 / |총손실|. 손실이 없으면 이익이 있을 때 cap, 아니면 0."""
    total_profit = sum((t.realized_pnl for t in trades if t.realized_pnl > 0), ZERO)
    total_loss = abs(sum((t.realized_pnl for t in trades if t.realized_pnl < 0), ZERO))
    if total_loss == 0:
        return cap if total_profit > 0 else 0.0
    return _clamp(float(total_profit / total_loss), cap)


def compute_trade_statistics(trades: Sequence[ClosedTrade], cap: float = 10.0) -> TradeStatistics:
    """청산 거래 통계 계산."""
    stats = TradeStatistics()
    if not trades:
        return stats

    profits = [t.realized_pnl for t in trades]
    winners = [p for p in profits if p > 0]
    losers = [p for p in profits if p <= 0]

    stats.total_trades = len(trades)
    stats.winning_trades = len(winners)
    stats.losing_trades = len(losers)
    stats.win_rate = len(winners) / len(trades) * 100
    if winners:
        stats.avg_win = sum(winners, ZERO) / len(winners)
        stats.largest_win = max(winners)
    if losers:
        stats.avg_loss = sum(losers, ZERO) / len(losers)
        stats.largest_loss = min(losers)
    stats.total_realized_pnl = sum(profits, ZERO)
    stats.expectancy = stats.total_realized_pnl / len(trades)
    stats.profit_factor = profit_factor(trades, cap)
    stats.avg_holding_days = sum((t.holding_period_days for t in trades), ZERO) / len(trades)

    r_multiples = [t.r_multiple for t in trades if t.r_multiple is not None]
    if r_multiples:
        stats.avg_r_multiple = sum(r_multiples, ZERO) / len(r_multiples)
    return stats


def compute_streaks(trades: Sequence[ClosedTrade]) -> StreakStats:
    """연속 승패 계산. 본전은 손실로 본다."""
    stats = StreakStats()
    wins = 0
    losses = 0
    for trade in trades:
        if trade.realized_pnl > 0:
            wins += 1
            losses = 0
            stats.max_win_streak = max(stats.max_win_streak, wins)
        else:
            losses += 1
            wins = 0
            stats.max_loss_streak = max(stats.max_loss_streak, losses)
    stats.current_streak = wins if wins else -losses
    return stats


def determine_risk_level(
    volatility_pct: float,
    max_drawdown: float,
    sharpe_ratio: float,
    config: RiskConfig,
) -> RiskLevel:
    """리스크 등급. 하나라도 HIGH 임계값을 넘으면 HIGH, 같은 규칙으로 MEDIUM/LOW."""
    if (
        volatility_pct > config.volatility_high_pct
        or max_drawdown > config.max_drawdown_high_pct
        or sharpe_ratio < config.sharpe_low
    ):
        return RiskLevel.HIGH
    if (
        volatility_pct > config.volatility_medium_pct
        or max_drawdown > config.max_drawdown_medium_pct
        or sharpe_ratio < config.sharpe_medium
    ):
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def compute_metrics(
    trades: Sequence[ClosedTrade],
    equity_curve: Sequence[tuple[date, Any]],
    risk_free_rate_annual: float = 0.03,
    risk_config: RiskConfig | None = None,
    scale: ScalePolicy | None = None,
) -> RiskMetrics:
    """리스크 지표 계산.

    Args:
        trades: 청산 거래 목록 (수익 팩터, 승률, 기대값)
        equity_curve: 날짜 오름차순 (날짜, 평가금액) 목록
        risk_free_rate_annual: 연간 무위험 이자율 (0.03 = 3%)
        risk_config: 비율 상한, VaR, 리스크 등급 임계값
        scale: 보고 시점 반올림 정책 (None이면 기본 정책)

    Raises:
        InsufficientDataError: 수익률 관측치가 2개 미만
    """
    config = risk_config or RiskConfig()
    scale = scale or DEFAULT_SCALE_POLICY
    returns = daily_returns(equity_curve)
    if len(returns) < MIN_RETURN_OBSERVATIONS:
        raise InsufficientDataError(
            f"수익률 관측치가 부족합니다: {len(returns)}개 (최소 {MIN_RETURN_OBSERVATIONS}개)"
        )

    annual_factor = math.sqrt(TRADING_DAYS_PER_YEAR)

    # ─── 변동성 / 샤프 / 소르티노 ─────────────────────────────────────────
    daily_std = float(np.std(returns, ddof=1))
    volatility = daily_std * annual_factor
    mean_return = float(np.mean(returns))
    excess_return = mean_return * TRADING_DAYS_PER_YEAR - risk_free_rate_annual

    if volatility > 0:
        sharpe = excess_return / volatility
    else:
        # 변동성 0: 상한 크기에 평균 수익률 부호를 붙인다 (보합은 +상한)
        sharpe = config.max_ratio_value if mean_return >= 0 else -config.max_ratio_value

    downside_deviation = math.sqrt(float(np.mean(np.minimum(returns, 0.0) ** 2))) * annual_factor
    sortino = (
        excess_return / downside_deviation
        if downside_deviation > 0
        else config.max_sortino_value
    )

    # ─── MDD / CAGR / 칼마 ────────────────────────────────────────────────
    values = _equity_values(equity_curve)
    max_dd = max_drawdown_pct(values)
    elapsed_days = (equity_curve[-1][0] - equity_curve[0][0]).days
    cagr = cagr_pct(values[0], values[-1], elapsed_days)
    if max_dd > 0:
        calmar = cagr / max_dd
    else:
        calmar = config.max_ratio_value if cagr > 0 else 0.0
    total_return = (values[-1] / values[0] - 1) * 100

    # ─── VaR (모수적, √t 규칙) ───────────────────────────────────────────
    var_daily = config.var_z_score * daily_std * 100
    var_weekly = var_daily * math.sqrt(config.weekly_scaling_days)
    var_monthly = var_daily * math.sqrt(config.monthly_scaling_days)

    # ─── 거래 기반 지표 ───────────────────────────────────────────────────
    trade_stats = compute_trade_statistics(trades, cap=config.max_ratio_value)

    # 상한 적용은 모든 연산이 끝난 뒤 마지막에
    sharpe = _clamp(sharpe, config.max_ratio_value)
    sortino = _clamp(sortino, config.max_sortino_value)
    calmar = _clamp(calmar, config.max_ratio_value)

    risk_level = determine_risk_level(volatility * 100, max_dd, sharpe, config)

    logger.debug(
        f"리스크 지표: 관측 {len(returns)}일, 변동성 {volatility:.4f}, "
        f"샤프 {sharpe:.2f}, MDD {max_dd:.2f}%, 등급 {risk_level.value}"
    )

    return RiskMetrics(
        sharpe_ratio=scale.percent(sharpe),
        sortino_ratio=scale.percent(sortino),
        calmar_ratio=scale.percent(calmar),
        volatility=scale.percent(volatility * 100),
        downside_deviation=scale.percent(downside_deviation * 100),
        max_drawdown=scale.percent(max_dd),
        profit_factor=scale.percent(trade_stats.profit_factor),
        var95=VaRResult(
            daily=scale.percent(var_daily),
            weekly=scale.percent(var_weekly),
            monthly=scale.percent(var_monthly),
            confidence=config.var_confidence,
        ),
        risk_level=risk_level,
        cagr=scale.percent(cagr),
        total_return=scale.percent(total_return),
        win_rate=scale.percent(trade_stats.win_rate),
        expectancy=scale.currency(trade_stats.expectancy),
        trading_days=len(returns),
    )
