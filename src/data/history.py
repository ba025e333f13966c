# src/data/history.py
"""
Proveedores de histórico de precios diario (OHLCV) para backtest y scanner.

Contrato (`PriceHistoryProvider`):
- get_history(symbol, start, end) -> DataFrame OHLCV indexado por fecha
  (DatetimeIndex, ambos extremos incluidos). Vacío si no hay datos.
- symbols() -> símbolos disponibles.

Implementaciones:
- InMemoryPriceHistory: PriceBar o DataFrames en memoria (tests, uso embebido).
- CsvPriceHistory: un `<SYMBOL>.csv` por símbolo con columnas
  date,open,high,low,close,volume.

`validate_history` hace los checks que el simulador exige antes de correr:
fechas estrictamente crecientes y precios finitos y positivos.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from pathlib import Path
import threading
from typing import Mapping, Protocol, Sequence

from loguru import logger
import numpy as np
import pandas as pd

from core.errors import SimulationFailure
from core.types import PriceBar
from features.technical_indicators import OHLCV_COLUMNS, bars_to_frame

PRICE_COLUMNS = ["open", "high", "low", "close"]


class PriceHistoryProvider(Protocol):
    def get_history(self, symbol: str, start: date, end: date) -> pd.DataFrame: ...

    def symbols(self) -> list[str]: ...


def _empty_frame() -> pd.DataFrame:
    return pd.DataFrame(columns=OHLCV_COLUMNS, index=pd.DatetimeIndex([], name="date"), dtype=float)


def _slice(df: pd.DataFrame, start: date, end: date) -> pd.DataFrame:
    if df.empty:
        return df.copy()
    lo, hi = pd.Timestamp(start), pd.Timestamp(end)
    mask = (df.index >= lo) & (df.index <= hi)
    return df.loc[mask].copy()


# ==================== VALIDACIÓN ====================


@dataclass
class Issue:
    code: str  # p.ej. "TIME_ORDER", "PRICE_NONPOSITIVE"
    message: str
    count: int


def history_problems(df: pd.DataFrame) -> list[Issue]:
    """Lista de problemas del histórico (vacía si es válido)."""
    issues: list[Issue] = []
    missing = [c for c in OHLCV_COLUMNS if c not in df.columns]
    if missing:
        return [Issue("MISSING_COLUMNS", f"faltan columnas: {missing}", len(missing))]
    if df.empty:
        return issues

    idx = pd.DatetimeIndex(df.index)
    if idx.hasnans:
        issues.append(Issue("TIME_NAN", "fechas vacías", int(idx.isna().sum())))
    else:
        steps = np.diff(idx.asi8)
        bad = int((steps <= 0).sum())
        if bad:
            issues.append(Issue("TIME_ORDER", "fechas no estrictamente crecientes", bad))

    prices = df[PRICE_COLUMNS].to_numpy(dtype=float)
    not_finite = int((~np.isfinite(prices)).any(axis=1).sum())
    if not_finite:
        issues.append(Issue("PRICE_NOT_FINITE", "precios NaN/inf", not_finite))
    with np.errstate(invalid="ignore"):
        nonpositive = int((prices <= 0).any(axis=1).sum())
    if nonpositive:
        issues.append(Issue("PRICE_NONPOSITIVE", "precios <= 0", nonpositive))

    volume = df["volume"].to_numpy(dtype=float)
    bad_vol = int((~np.isfinite(volume) | (volume < 0)).sum())
    if bad_vol:
        issues.append(Issue("VOLUME_INVALID", "volumen negativo o no finito", bad_vol))
    return issues


def validate_history(symbol: str, df: pd.DataFrame) -> pd.DataFrame:
    """Devuelve `df` si es válido; si no, lanza SimulationFailure con todos los problemas."""
    issues = history_problems(df)
    if issues:
        detail = "; ".join(f"{i.code} x{i.count}: {i.message}" for i in issues)
        raise SimulationFailure(f"Histórico inválido para {symbol}: {detail}")
    return df


# ==================== IMPLEMENTACIONES ====================


class InMemoryPriceHistory:
    """Histórico en memoria. Acepta listas de PriceBar o DataFrames OHLCV por símbolo."""

    def __init__(self, data: Mapping[str, Sequence[PriceBar] | pd.DataFrame] | None = None) -> None:
        self._lock = threading.Lock()
        self._frames: dict[str, pd.DataFrame] = {}
        for symbol, bars in (data or {}).items():
            self.put(symbol, bars)

    def put(self, symbol: str, bars: Sequence[PriceBar] | pd.DataFrame) -> None:
        frame = bars.copy() if isinstance(bars, pd.DataFrame) else bars_to_frame(list(bars))
        frame.index = pd.DatetimeIndex(frame.index, name="date")
        with self._lock:
            self._frames[symbol] = frame

    def get_history(self, symbol: str, start: date, end: date) -> pd.DataFrame:
        with self._lock:
            frame = self._frames.get(symbol)
        if frame is None:
            return _empty_frame()
        return _slice(frame, start, end)

    def symbols(self) -> list[str]:
        with self._lock:
            return sorted(self._frames)


class CsvPriceHistory:
    """
    Lee `<directory>/<SYMBOL>.csv`. Cada llamada relee el fichero: el scanner
    ve los datos nuevos sin reiniciar.
    """

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def _path(self, symbol: str) -> Path:
        return self.directory / f"{symbol}.csv"

    def load(self, symbol: str) -> pd.DataFrame:
        path = self._path(symbol)
        if not path.exists():
            logger.debug(f"Sin histórico para {symbol} en {path}")
            return _empty_frame()
        df = pd.read_csv(path)
        if "date" not in df.columns:
            raise SimulationFailure(f"{path}: falta la columna 'date'")
        df["date"] = pd.to_datetime(df["date"])
        missing = [c for c in OHLCV_COLUMNS if c not in df.columns]
        if missing:
            raise SimulationFailure(f"{path}: faltan columnas {missing}")
        return df.set_index("date")[OHLCV_COLUMNS].astype(float)

    def get_history(self, symbol: str, start: date, end: date) -> pd.DataFrame:
        return _slice(self.load(symbol), start, end)

    def symbols(self) -> list[str]:
        if not self.directory.exists():
            return []
        return sorted(p.stem for p in self.directory.glob("*.csv"))


__all__ = [
    "PriceHistoryProvider",
    "InMemoryPriceHistory",
    "CsvPriceHistory",
    "Issue",
    "history_problems",
    "validate_history",
]
