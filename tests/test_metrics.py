import math

import pytest

from core.metrics import (
    calculate_annualized_return,
    calculate_avg_win_loss,
    calculate_max_drawdown,
    calculate_profit_factor,
    calculate_returns,
    calculate_sharpe,
    calculate_win_rate,
    summarize_performance,
)


def test_profit_factor_sentinels():
    assert calculate_profit_factor([100.0, 50.0, -30.0]) == pytest.approx(5.0)
    assert math.isinf(calculate_profit_factor([10.0, 20.0]))
    assert calculate_profit_factor([]) == 0.0
    assert calculate_profit_factor([-5.0]) == 0.0


def test_win_rate_is_a_percentage():
    rate, wins, losses = calculate_win_rate([10.0, -5.0, 3.0, 0.0])

    assert rate == pytest.approx(50.0)
    assert (wins, losses) == (2, 1)
    assert calculate_win_rate([]) == (0.0, 0, 0)


def test_max_drawdown():
    dd, peak, trough = calculate_max_drawdown([100.0, 120.0, 90.0, 130.0, 117.0])

    assert dd == pytest.approx(0.25)
    assert (peak, trough) == (1, 2)
    assert calculate_max_drawdown([100.0])[0] == 0.0


def test_sharpe_guards():
    assert calculate_sharpe([]) == 0.0
    assert calculate_sharpe([0.01]) == 0.0
    assert calculate_sharpe([0.01, 0.01, 0.01]) == 0.0
    assert calculate_sharpe([0.01, 0.02, 0.03], periods_per_year=None) == pytest.approx(2.0)


def test_returns_and_annualization():
    assert calculate_returns([100.0, 110.0, 99.0]) == pytest.approx([0.10, -0.10])
    assert calculate_returns([0.0, 10.0]) == [0.0]
    assert calculate_annualized_return(0.10, 365) == pytest.approx(0.10)
    assert calculate_annualized_return(0.21, 730) == pytest.approx(0.10)
    assert calculate_annualized_return(0.5, 0) == 0.0
    assert calculate_annualized_return(-1.0, 100) == -1.0


def test_avg_win_loss():
    assert calculate_avg_win_loss([10.0, 30.0, -4.0]) == (pytest.approx(20.0), pytest.approx(-4.0))
    assert calculate_avg_win_loss([]) == (0.0, 0.0)


def test_summarize_performance_keys_and_percentages():
    out = summarize_performance(
        equity_curve=[100.0, 110.0, 99.0, 121.0],
        closed_pnl=[15.0, -4.0, 10.0],
        initial_capital=100.0,
        final_capital=121.0,
        days=365,
    )

    assert out["total_return_pct"] == pytest.approx(21.0)
    assert out["annualized_return_pct"] == pytest.approx(21.0)
    assert out["max_drawdown_pct"] == pytest.approx(10.0)
    assert out["win_rate"] == pytest.approx(200.0 / 3)
    assert out["profit_factor"] == pytest.approx(25.0 / 4.0)
    assert out["winning_trades"] == 2 and out["losing_trades"] == 1
    assert set(out) == {
        "total_return_pct",
        "annualized_return_pct",
        "max_drawdown_pct",
        "sharpe_ratio",
        "win_rate",
        "winning_trades",
        "losing_trades",
        "profit_factor",
        "avg_win",
        "avg_loss",
    }
