"""성과/리스크 지표 테스트."""

import math
from datetime import date, timedelta
from decimal import Decimal

import numpy as np
import pytest

from trading_journal.analysis.metrics import (
    RiskLevel,
    cagr_pct,
    compute_metrics,
    compute_streaks,
    compute_trade_statistics,
    daily_returns,
    determine_risk_level,
    max_drawdown_pct,
    profit_factor,
)
from trading_journal.core.errors import InsufficientDataError, MalformedInputError
from trading_journal.utils.config import RiskConfig


def build_curve(values, start=date(2024, 1, 1)):
    return [(start + timedelta(days=i), Decimal(str(v))) for i, v in enumerate(values)]


class TestComputeMetrics:
    def test_flat_curve_yields_capped_ratios(self):
        metrics = compute_metrics([], build_curve([100, 100, 100, 100]))

        assert metrics.volatility == Decimal("0.00")
        assert metrics.sharpe_ratio == Decimal("10.00")
        assert metrics.sortino_ratio == Decimal("999.99")
        assert metrics.max_drawdown == Decimal("0.00")
        assert metrics.calmar_ratio == Decimal("0.00")
        assert metrics.var95.daily == Decimal("0.00")
        assert metrics.risk_level == RiskLevel.LOW

    def test_constant_loss_rate_gives_negative_sharpe_cap(self):
        # 매일 -50%: 수익률 분산 0
        metrics = compute_metrics([], build_curve([100, 50, 25, 12.5, 6.25]))

        assert metrics.volatility == Decimal("0.00")
        assert metrics.sharpe_ratio == Decimal("-10.00")
        assert metrics.sortino_ratio < 0
        assert metrics.total_return == Decimal("-93.75")
        assert metrics.risk_level == RiskLevel.HIGH

    def test_constant_gain_rate_gives_positive_sharpe_cap(self):
        # 매일 +100%: 수익률 분산 0
        metrics = compute_metrics([], build_curve([100, 200, 400, 800]))

        assert metrics.volatility == Decimal("0.00")
        assert metrics.sharpe_ratio == Decimal("10.00")
        assert metrics.sortino_ratio == Decimal("999.99")
        assert metrics.max_drawdown == Decimal("0.00")

    def test_steady_growth_without_drawdown(self):
        metrics = compute_metrics([], build_curve([100, 101, 102.01]))

        assert metrics.sharpe_ratio == Decimal("10.00")
        assert metrics.sortino_ratio == Decimal("999.99")
        assert metrics.calmar_ratio == Decimal("10.00")
        assert metrics.total_return == Decimal("2.01")
        assert metrics.trading_days == 2

    def test_values_rounded_to_percent_scale(self):
        metrics = compute_metrics([], build_curve([100, 110, 99, 108.9, 104]))

        for value in (metrics.sharpe_ratio, metrics.volatility, metrics.max_drawdown, metrics.cagr):
            assert value.as_tuple().exponent == -2

    def test_volatility_uses_sample_stddev(self):
        values = [100, 110, 99, 108.9, 104]
        metrics = compute_metrics([], build_curve(values))

        returns = np.diff(values) / np.array(values[:-1])
        expected = np.std(returns, ddof=1) * math.sqrt(252) * 100
        assert float(metrics.volatility) == pytest.approx(expected, abs=0.01)

    def test_var_scales_with_square_root_of_time(self):
        metrics = compute_metrics([], build_curve([100, 110, 99, 108.9, 104]))
        var = metrics.var95

        assert var.daily > 0
        assert float(var.weekly) == pytest.approx(float(var.daily) * math.sqrt(5), abs=0.02)
        assert float(var.monthly) == pytest.approx(float(var.daily) * math.sqrt(21), abs=0.05)

    def test_custom_ratio_cap(self):
        config = RiskConfig(max_ratio_value=3.0, max_sortino_value=5.0)
        metrics = compute_metrics([], build_curve([100, 100, 100]), risk_config=config)

        assert metrics.sharpe_ratio == Decimal("3.00")
        assert metrics.sortino_ratio == Decimal("5.00")

    def test_drawdown_and_risk_level(self):
        metrics = compute_metrics([], build_curve([100, 120, 90, 130]))

        assert metrics.max_drawdown == Decimal("25.00")
        assert metrics.risk_level == RiskLevel.HIGH

    def test_trade_based_fields(self, make_closed_trade):
        trades = [make_closed_trade(300, 1), make_closed_trade(-100, 2)]
        metrics = compute_metrics(trades, build_curve([100, 103, 102]))

        assert metrics.profit_factor == Decimal("3.00")
        assert metrics.win_rate == Decimal("50.00")
        assert metrics.expectancy == Decimal("100")

    def test_requires_two_return_observations(self):
        with pytest.raises(InsufficientDataError):
            compute_metrics([], build_curve([100, 101]))

    def test_to_dict_and_summary(self):
        metrics = compute_metrics([], build_curve([100, 101, 99, 102]))

        data = metrics.to_dict()
        assert data["risk_level"] in {"LOW", "MEDIUM", "HIGH"}
        assert set(data["var95"]) == {"daily", "weekly", "monthly", "confidence"}
        assert "샤프 비율" in metrics.summary()


class TestDrawdown:
    def test_peak_to_trough(self):
        assert max_drawdown_pct([100, 120, 90, 130]) == pytest.approx(25.0)

    def test_bounded_for_non_negative_values(self):
        for values in ([100, 0, 50], [5, 4, 3, 2, 1], [1, 2, 3], [0, 0, 10]):
            assert 0 <= max_drawdown_pct(values) <= 100

    def test_non_positive_equity_rejected_for_returns(self):
        with pytest.raises(MalformedInputError):
            daily_returns(build_curve([100, 0, 50]))


class TestCagr:
    def test_two_year_compounding(self):
        assert cagr_pct(100.0, 121.0, 730) == pytest.approx(10.0)

    def test_degenerate_inputs(self):
        assert cagr_pct(100.0, 150.0, 0) == 0.0
        assert cagr_pct(100.0, 0.0, 365) == -100.0

    def test_short_explosive_growth_stays_finite(self):
        value = cagr_pct(100.0, 1e12, 1)
        assert math.isfinite(value)

        metrics = compute_metrics([], build_curve([100, 1e6, 1e12]))
        assert metrics.cagr > 0


class TestTradeStatistics:
    def test_profit_factor(self, make_closed_trade):
        trades = [make_closed_trade(300, 1), make_closed_trade(-100, 2)]
        assert profit_factor(trades, cap=10.0) == pytest.approx(3.0)

    def test_profit_factor_without_losses_is_capped(self, make_closed_trade):
        assert profit_factor([make_closed_trade(50)], cap=10.0) == 10.0
        assert profit_factor([], cap=10.0) == 0.0

    def test_breakeven_counts_as_loss(self, make_closed_trade):
        trades = [make_closed_trade(300, 1), make_closed_trade(-100, 2), make_closed_trade(0, 3)]
        stats = compute_trade_statistics(trades)

        assert stats.total_trades == 3
        assert stats.winning_trades == 1
        assert stats.losing_trades == 2
        assert stats.avg_loss == Decimal("-50")
        assert stats.largest_loss == Decimal("-100")
        assert stats.expectancy == Decimal(200) / Decimal(3)
        assert stats.avg_r_multiple is None

    def test_average_r_multiple_ignores_missing(self, make_closed_trade):
        trades = [make_closed_trade(10, 1, r_multiple=2), make_closed_trade(-5, 2, r_multiple=-1), make_closed_trade(1, 3)]
        assert compute_trade_statistics(trades).avg_r_multiple == Decimal("0.5")

    def test_empty_trades(self):
        stats = compute_trade_statistics([])
        assert stats.total_trades == 0
        assert stats.win_rate == 0.0

    def test_streaks(self, make_closed_trade):
        pnls = [10, 20, -5, 0, 30]
        streaks = compute_streaks([make_closed_trade(p, i) for i, p in enumerate(pnls, start=1)])

        assert streaks.max_win_streak == 2
        assert streaks.max_loss_streak == 2
        assert streaks.current_streak == 1

    def test_current_losing_streak_is_negative(self, make_closed_trade):
        pnls = [10, -5, -7]
        streaks = compute_streaks([make_closed_trade(p, i) for i, p in enumerate(pnls, start=1)])
        assert streaks.current_streak == -2


class TestRiskLevel:
    config = RiskConfig()

    @pytest.mark.parametrize(
        "volatility, drawdown, sharpe, expected",
        [
            (25.0, 5.0, 2.0, RiskLevel.HIGH),
            (5.0, 25.0, 2.0, RiskLevel.HIGH),
            (5.0, 5.0, 0.4, RiskLevel.HIGH),
            (15.0, 5.0, 2.0, RiskLevel.MEDIUM),
            (5.0, 5.0, 0.8, RiskLevel.MEDIUM),
            (5.0, 5.0, 2.0, RiskLevel.LOW),
        ],
    )
    def test_thresholds(self, volatility, drawdown, sharpe, expected):
        assert determine_risk_level(volatility, drawdown, sharpe, self.config) == expected
