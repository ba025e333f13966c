"""
Core metrics package.

Métricas de performance de backtests (retorno, Sharpe, drawdown, profit
factor, win rate). Todas puras y sin estado.
"""

from __future__ import annotations

from .performance import (
    TRADING_DAYS_PER_YEAR,
    calculate_annualized_return,
    calculate_avg_win_loss,
    calculate_max_drawdown,
    calculate_profit_factor,
    calculate_returns,
    calculate_sharpe,
    calculate_total_return,
    calculate_win_rate,
    summarize_performance,
)

__all__ = [
    "TRADING_DAYS_PER_YEAR",
    "calculate_returns",
    "calculate_total_return",
    "calculate_annualized_return",
    "calculate_sharpe",
    "calculate_max_drawdown",
    "calculate_profit_factor",
    "calculate_win_rate",
    "calculate_avg_win_loss",
    "summarize_performance",
]
