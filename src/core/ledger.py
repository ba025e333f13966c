# src/core/ledger.py
"""Persistencia del ledger de un backtest.

Responsabilidad
---------------
- Normalizar trades, señales y curva de equity a DataFrames con esquema estable.
- Escribir trades.csv / equity.csv / signals.csv en un directorio de run.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date
import json
from pathlib import Path

import pandas as pd

from core.types import Signal, SimulatedTrade

# Orden canónico de columnas (para estabilidad y tests)
TRADES_COLUMNS: list[str] = [
    "date",
    "symbol",
    "side",  # BUY/SELL
    "quantity",
    "price",
    "commission",
    "realized_pnl",  # 0.0 en las entradas
    "classification",  # de la señal que la disparó (None en salidas por stop/target/fin)
    "score",
    "exit_reason",  # signal / stop_loss / target_hit / end_of_run
]

EQUITY_COLUMNS: list[str] = ["date", "equity"]

SIGNALS_COLUMNS: list[str] = [
    "generated_at",
    "symbol",
    "strategy",
    "classification",
    "score",
    "confidence",
    "price",
    "target_price",
    "stop_loss",
    "reasons",
]


def trades_to_dataframe(trades: Iterable[SimulatedTrade]) -> pd.DataFrame:
    """Convierte trades a DataFrame con columnas canónicas y tipos básicos."""
    data = [t.as_dict() for t in trades]
    if not data:
        return pd.DataFrame(columns=TRADES_COLUMNS)
    df = pd.DataFrame(data)
    df["quantity"] = pd.to_numeric(df["quantity"], errors="coerce").fillna(0).astype(int)
    for k in ("price", "commission", "realized_pnl"):
        df[k] = pd.to_numeric(df[k], errors="coerce").fillna(0.0).astype(float)
    return df[TRADES_COLUMNS]


def equity_to_dataframe(curve: Iterable[tuple[date, float]]) -> pd.DataFrame:
    data = [{"date": d.isoformat(), "equity": float(eq)} for d, eq in curve]
    if not data:
        return pd.DataFrame(columns=EQUITY_COLUMNS)
    return pd.DataFrame(data)[EQUITY_COLUMNS]


def signals_to_dataframe(signals: Iterable[Signal]) -> pd.DataFrame:
    rows = []
    for s in signals:
        row = s.as_dict()
        row["reasons"] = " | ".join(s.reasons)
        rows.append(row)
    if not rows:
        return pd.DataFrame(columns=SIGNALS_COLUMNS)
    return pd.DataFrame(rows)[SIGNALS_COLUMNS]


def write_trades_csv(run_dir: Path | str, trades: Iterable[SimulatedTrade]) -> Path | None:
    """
    Escribe trades.csv en <run_dir>. Si no hay trades, no crea el archivo.
    """
    rows = list(trades)
    if not rows:
        return None
    path = Path(run_dir)
    path.mkdir(parents=True, exist_ok=True)
    out = path / "trades.csv"
    trades_to_dataframe(rows).to_csv(out, index=False)
    return out


def write_run(run_dir: Path | str, report) -> Path:
    """Vuelca trades, equity, señales y summary de un BacktestReport."""
    path = Path(run_dir)
    path.mkdir(parents=True, exist_ok=True)
    write_trades_csv(path, report.trades)
    equity_to_dataframe(report.equity_curve).to_csv(path / "equity.csv", index=False)
    signals_to_dataframe(report.signals).to_csv(path / "signals.csv", index=False)
    with (path / "summary.json").open("w", encoding="utf-8") as f:
        json.dump(report.summary(), f, indent=2, ensure_ascii=False)
    return path


__all__ = [
    "TRADES_COLUMNS",
    "EQUITY_COLUMNS",
    "SIGNALS_COLUMNS",
    "trades_to_dataframe",
    "equity_to_dataframe",
    "signals_to_dataframe",
    "write_trades_csv",
    "write_run",
]
