from __future__ import annotations

import math

# -----------------------------------------------------------------------------
# Métricas de Performance de un backtest (retorno, Sharpe, MaxDD, PF, etc.)
#
# Todas las divisiones están protegidas: un denominador 0 devuelve un
# centinela definido (0.0 o inf), nunca una excepción.
# -----------------------------------------------------------------------------

TRADING_DAYS_PER_YEAR = 252


def calculate_returns(equity_curve: list[float]) -> list[float]:
    """Retornos simples entre puntos consecutivos de la curva de equity."""
    if len(equity_curve) < 2:
        return []
    returns: list[float] = []
    for prev, cur in zip(equity_curve[:-1], equity_curve[1:]):
        returns.append(0.0 if prev == 0 else (cur - prev) / prev)
    return returns


def calculate_total_return(initial: float, final: float) -> float:
    """(final - inicial) / inicial, en fracción. 0.0 si inicial <= 0."""
    if initial <= 0:
        return 0.0
    return (final - initial) / initial


def calculate_annualized_return(total_return: float, days: int) -> float:
    """
    Compone el retorno total sobre la fracción de año transcurrida:
        (1 + tr) ** (365 / days) - 1
    Con days <= 0 o pérdida total (tr <= -1) no hay año que componer.
    """
    if days <= 0:
        return 0.0
    if total_return <= -1.0:
        return -1.0
    return (1.0 + total_return) ** (365.0 / days) - 1.0


def calculate_sharpe(
    returns: list[float],
    risk_free_rate: float = 0.0,
    periods_per_year: int | None = TRADING_DAYS_PER_YEAR,
) -> float:
    """
    Sharpe = (media(r) - rf_periodo) / std(r) [* sqrt(periodos/año)]

    - risk_free_rate es ANUAL; se reparte por periodo si hay anualización.
    - std muestral (n-1). Menos de 2 retornos o std 0 -> 0.0
    """
    if not returns or len(returns) < 2:
        return 0.0
    rf = risk_free_rate / periods_per_year if periods_per_year else risk_free_rate
    mean_return = sum(returns) / len(returns)
    variance = sum((r - mean_return) ** 2 for r in returns) / (len(returns) - 1)
    std_return = variance**0.5
    if std_return == 0:
        return 0.0
    sharpe = (mean_return - rf) / std_return
    if periods_per_year:
        sharpe *= math.sqrt(periods_per_year)
    return sharpe


def calculate_max_drawdown(equity_curve: list[float]) -> tuple[float, int, int]:
    """
    Maximum Drawdown = mayor caída pico→valle de la curva de equity.

    Returns:
        (max_dd, peak_idx, trough_idx) con max_dd en fracción (0.25 == 25 %)
    """
    if not equity_curve or len(equity_curve) < 2:
        return 0.0, 0, 0

    peak = equity_curve[0]
    peak_idx = 0
    max_dd = 0.0
    max_dd_peak_idx = 0
    max_dd_trough_idx = 0

    for i, value in enumerate(equity_curve):
        if value > peak:
            peak = value
            peak_idx = i
        dd = (peak - value) / peak if peak > 0 else 0.0
        if dd > max_dd:
            max_dd = dd
            max_dd_peak_idx = peak_idx
            max_dd_trough_idx = i

    return max_dd, max_dd_peak_idx, max_dd_trough_idx


def calculate_profit_factor(trades_pnl: list[float]) -> float:
    """
    Profit Factor = Beneficio bruto / Pérdida bruta

    Centinelas:
    - sin pérdidas y con beneficio -> inf
    - sin pérdidas ni beneficio    -> 0.0
    """
    gross_profit = sum(pnl for pnl in trades_pnl if pnl > 0)
    gross_loss = abs(sum(pnl for pnl in trades_pnl if pnl < 0))

    if gross_loss == 0:
        return float("inf") if gross_profit > 0 else 0.0
    return gross_profit / gross_loss


def calculate_win_rate(trades_pnl: list[float]) -> tuple[float, int, int]:
    """
    Win Rate (%) = operaciones ganadoras / operaciones cerradas * 100

    Returns:
        (win_rate_pct, num_wins, num_losses)
    """
    if not trades_pnl:
        return 0.0, 0, 0

    num_wins = sum(1 for pnl in trades_pnl if pnl > 0)
    num_losses = sum(1 for pnl in trades_pnl if pnl < 0)
    return num_wins / len(trades_pnl) * 100.0, num_wins, num_losses


def calculate_avg_win_loss(trades_pnl: list[float]) -> tuple[float, float]:
    """(ganancia media, pérdida media). La pérdida media sale negativa."""
    winning = [pnl for pnl in trades_pnl if pnl > 0]
    losing = [pnl for pnl in trades_pnl if pnl < 0]

    avg_win = sum(winning) / len(winning) if winning else 0.0
    avg_loss = sum(losing) / len(losing) if losing else 0.0
    return avg_win, avg_loss


def summarize_performance(
    equity_curve: list[float],
    closed_pnl: list[float],
    initial_capital: float,
    final_capital: float,
    days: int,
    risk_free_rate: float = 0.0,
    periods_per_year: int | None = TRADING_DAYS_PER_YEAR,
) -> dict:
    """
    Calcula todas las métricas de un backtest de una vez.

    Args:
        equity_curve: equity diaria (cash + posiciones a mercado)
        closed_pnl: PnL realizado de cada operación de cierre
        initial_capital / final_capital: capital al inicio y tras liquidar
        days: días naturales entre inicio y fin del rango
        risk_free_rate: tasa libre de riesgo anual (default 0)

    Returns:
        Dict con métricas en % donde aplica (total_return_pct, ...).
    """
    total_return = calculate_total_return(initial_capital, final_capital)
    max_dd, _, _ = calculate_max_drawdown(equity_curve)
    win_rate, num_wins, num_losses = calculate_win_rate(closed_pnl)
    avg_win, avg_loss = calculate_avg_win_loss(closed_pnl)

    return {
        "total_return_pct": total_return * 100.0,
        "annualized_return_pct": calculate_annualized_return(total_return, days) * 100.0,
        "max_drawdown_pct": max_dd * 100.0,
        "sharpe_ratio": calculate_sharpe(
            calculate_returns(equity_curve), risk_free_rate, periods_per_year
        ),
        "win_rate": win_rate,
        "winning_trades": num_wins,
        "losing_trades": num_losses,
        "profit_factor": calculate_profit_factor(closed_pnl),
        "avg_win": avg_win,
        "avg_loss": avg_loss,
    }
