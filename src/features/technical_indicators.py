# src/features/technical_indicators.py
"""
Motor de indicadores técnicos por instrumento (OHLCV diario -> indicadores).

Indicadores implementados:
- Medias móviles: SMA (MA<n>) y EMA (EMA<n>) de cualquier ventana
- Canal: HIGH<n> / LOW<n> (máximo / mínimo de las n barras ANTERIORES,
  sin incluir la actual)
- Momentum: RSI (suavizado de Wilder), MACD (línea, señal, histograma)
- Volumen: VOL_RATIO (volumen / media 5 barras), TRADING_VALUE (media 5 de close*vol)
- Precio: PRICE, PRICE_CHANGE (% vs cierre previo)
- Fuerza relativa: RS_3D, RS_1M, RS_3M, RS_1Y (percentil transversal en el
  universo) y RS_AVG

Diseño:
- Cálculo batch con pandas/numpy sobre la serie completa: backtest y scanner
  en vivo usan EXACTAMENTE el mismo cálculo (resultados bit-reproducibles).
- Valores sin lookback suficiente = NaN en el DataFrame y None en el
  IndicatorSnapshot. Nunca 0.
- Sin redondeos en el camino de cálculo (solo al formatear mensajes).
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
import math
import re

import numpy as np
import pandas as pd

from core.errors import ConfigurationError
from core.types import PriceBar

OHLCV_COLUMNS = ["open", "high", "low", "close", "volume"]


class IndicatorKind(str, Enum):
    """Indicadores estándar. MA<n>/EMA<n>/HIGH<n>/LOW<n> arbitrarios se aceptan además de estos."""

    MA10 = "MA10"
    MA30 = "MA30"
    MA50 = "MA50"
    MA200 = "MA200"
    RSI = "RSI"
    MACD = "MACD"
    MACD_SIGNAL = "MACD_SIGNAL"
    MACD_HISTOGRAM = "MACD_HISTOGRAM"
    RS_3D = "RS_3D"
    RS_1M = "RS_1M"
    RS_3M = "RS_3M"
    RS_1Y = "RS_1Y"
    RS_AVG = "RS_AVG"
    VOLUME = "VOLUME"
    VOL_RATIO = "VOL_RATIO"
    PRICE = "PRICE"
    PRICE_CHANGE = "PRICE_CHANGE"
    TRADING_VALUE = "TRADING_VALUE"


# Horizonte (en barras) de cada fuerza relativa
RS_HORIZONS: dict[str, int] = {"RS_3D": 3, "RS_1M": 22, "RS_3M": 66, "RS_1Y": 252}
RS_KINDS: frozenset[str] = frozenset([*RS_HORIZONS, "RS_AVG"])

DEFAULT_MA_WINDOWS: tuple[int, ...] = (10, 30, 50, 200)
VOLUME_WINDOW = 5

_WINDOWED = re.compile(r"^(MA|EMA|HIGH|LOW)(\d+)$")
_STANDARD = {k.value for k in IndicatorKind}


# ==================== NOMBRES Y LOOKBACKS ====================


def normalize_indicator(name: str | IndicatorKind) -> str:
    """Devuelve el nombre canónico ('ma10' -> 'MA10'). ConfigurationError si no existe."""
    raw = name.value if isinstance(name, IndicatorKind) else str(name).strip().upper()
    if raw in _STANDARD:
        return raw
    m = _WINDOWED.match(raw)
    if m and int(m.group(2)) > 0:
        return raw
    raise ConfigurationError(f"Indicador desconocido: {name!r}")


def window_of(name: str) -> tuple[str, int] | None:
    """('MA', 20) para 'MA20'; None si no es un indicador con ventana."""
    m = _WINDOWED.match(name)
    if not m:
        return None
    return m.group(1), int(m.group(2))


def lookback_for(name: str, rsi_period: int = 14, macd: tuple[int, int, int] = (12, 26, 9)) -> int:
    """Nº mínimo de barras para que el indicador tenga valor en la última."""
    win = window_of(name)
    if win is not None:
        kind, n = win
        return n + 1 if kind in ("HIGH", "LOW") else n
    fast, slow, sig = macd
    return {
        "RSI": rsi_period + 1,
        "MACD": slow,
        "MACD_SIGNAL": slow + sig - 1,
        "MACD_HISTOGRAM": slow + sig - 1,
        "VOL_RATIO": VOLUME_WINDOW,
        "TRADING_VALUE": VOLUME_WINDOW,
        "PRICE_CHANGE": 2,
        "PRICE": 1,
        "VOLUME": 1,
        "RS_AVG": max(RS_HORIZONS.values()) + 1,
    }.get(name, RS_HORIZONS.get(name, 0) + 1)


def warmup_bars(indicators: Iterable[str]) -> int:
    """
    Barras de calentamiento para un conjunto de indicadores.
    Las RS son transversales (dependen del universo) y no cuentan: si faltan,
    la condición simplemente evalúa a False.
    """
    needed = [lookback_for(k) for k in indicators if k not in RS_KINDS]
    return max(needed, default=1)


# ==================== SNAPSHOT ====================


@dataclass(frozen=True)
class IndicatorSnapshot:
    """Indicadores de un instrumento en una fecha. Derivado, nunca editado a mano."""

    symbol: str
    date: date
    values: Mapping[str, float | None] = field(default_factory=dict)

    def get(self, kind: str | IndicatorKind) -> float | None:
        key = kind.value if isinstance(kind, IndicatorKind) else kind
        return self.values.get(key)

    @property
    def price(self) -> float | None:
        return self.values.get("PRICE")


def _clean(value: object) -> float | None:
    if value is None:
        return None
    f = float(value)  # type: ignore[arg-type]
    return None if math.isnan(f) else f


def snapshot_at(frame: pd.DataFrame, idx: int, symbol: str) -> IndicatorSnapshot:
    """Snapshot de la fila `idx` (posicional) de un frame ya calculado."""
    row = frame.iloc[idx]
    values = {col: _clean(row[col]) for col in frame.columns if col not in OHLCV_COLUMNS}
    ts = frame.index[idx]
    return IndicatorSnapshot(symbol=symbol, date=pd.Timestamp(ts).date(), values=values)


def snapshots(frame: pd.DataFrame, symbol: str) -> list[IndicatorSnapshot]:
    return [snapshot_at(frame, i, symbol) for i in range(len(frame))]


# ==================== ENTRADA OHLCV ====================


def bars_to_frame(bars: Sequence[PriceBar]) -> pd.DataFrame:
    """Lista de PriceBar -> DataFrame OHLCV indexado por fecha (DatetimeIndex)."""
    if not bars:
        return pd.DataFrame(columns=OHLCV_COLUMNS, index=pd.DatetimeIndex([], name="date"))
    df = pd.DataFrame([b.as_dict() for b in bars])
    df["date"] = pd.to_datetime(df["date"])
    return df.set_index("date")[OHLCV_COLUMNS].astype(float)


# ==================== CÁLCULOS INTERNOS ====================


def _sma(values: pd.Series, period: int) -> pd.Series:
    """Simple Moving Average."""
    return values.rolling(period, min_periods=period).mean()


def _ema(values: np.ndarray, period: int) -> np.ndarray:
    """
    Exponential Moving Average sembrada con la SMA de las primeras `period`
    muestras válidas. Soporta NaN iniciales (p.ej. EMA de la línea MACD).
    """
    out = np.full(len(values), np.nan)
    valid = np.flatnonzero(~np.isnan(values))
    if len(valid) < period:
        return out
    first = int(valid[0])
    seed_idx = first + period - 1
    if seed_idx >= len(values):
        return out
    out[seed_idx] = float(np.mean(values[first : seed_idx + 1]))
    k = 2.0 / (period + 1)
    for i in range(seed_idx + 1, len(values)):
        out[i] = values[i] * k + out[i - 1] * (1.0 - k)
    return out


def _rsi_wilder(close: np.ndarray, period: int) -> np.ndarray:
    """RSI con suavizado de Wilder: media simple de los primeros `period` cambios y luego
    avg = (avg_prev * (n - 1) + actual) / n."""
    out = np.full(len(close), np.nan)
    if len(close) <= period:
        return out
    change = np.diff(close)
    gains = np.clip(change, 0.0, None)
    losses = np.clip(-change, 0.0, None)

    avg_gain = float(np.mean(gains[:period]))
    avg_loss = float(np.mean(losses[:period]))
    out[period] = _rsi_value(avg_gain, avg_loss)
    for i in range(period, len(change)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        out[i + 1] = _rsi_value(avg_gain, avg_loss)
    return out


def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 50.0 if avg_gain == 0 else 100.0
    rs = avg_gain / avg_loss
    return 100.0 - (100.0 / (1.0 + rs))


# ==================== MOTOR ====================


class IndicatorEngine:
    """
    Calculadora de indicadores para un instrumento.

    Uso:
        engine = IndicatorEngine(ma_windows=(5, 20))
        frame = engine.compute(bars_to_frame(bars))
        snap = snapshot_at(frame, -1, "VNM")
        snap.get("MA20"), snap.get("RSI")
    """

    def __init__(
        self,
        ma_windows: Iterable[int] = DEFAULT_MA_WINDOWS,
        ema_windows: Iterable[int] = (),
        rsi_period: int = 14,
        macd: tuple[int, int, int] = (12, 26, 9),
        channel_windows: Iterable[int] = (),
    ):
        self.ma_windows = tuple(sorted(set(int(w) for w in ma_windows)))
        self.ema_windows = tuple(sorted(set(int(w) for w in ema_windows)))
        self.channel_windows = tuple(sorted(set(int(w) for w in channel_windows)))
        self.rsi_period = int(rsi_period)
        self.macd = macd
        windows = (*self.ma_windows, *self.ema_windows, *self.channel_windows, self.rsi_period, *macd)
        if any(w <= 0 for w in windows):
            raise ConfigurationError("Las ventanas de indicadores deben ser > 0")

    @classmethod
    def for_indicators(cls, indicators: Iterable[str]) -> "IndicatorEngine":
        """Motor que cubre las ventanas por defecto más las que pidan las reglas."""
        ma = set(DEFAULT_MA_WINDOWS)
        ema: set[int] = set()
        channel: set[int] = set()
        for name in indicators:
            win = window_of(name)
            if win is None:
                continue
            kind, n = win
            {"MA": ma, "EMA": ema}.get(kind, channel).add(n)
        return cls(ma_windows=ma, ema_windows=ema, channel_windows=channel)

    def compute(self, ohlcv: pd.DataFrame) -> pd.DataFrame:
        """Devuelve una copia del frame OHLCV con una columna por indicador."""
        frame = ohlcv[OHLCV_COLUMNS].astype(float).copy()
        close = frame["close"]
        volume = frame["volume"]
        close_np = close.to_numpy(dtype=float)

        frame["PRICE"] = close
        frame["VOLUME"] = volume
        frame["PRICE_CHANGE"] = (close / close.shift(1) - 1.0) * 100.0

        for w in self.ma_windows:
            frame[f"MA{w}"] = _sma(close, w)
        for w in self.ema_windows:
            frame[f"EMA{w}"] = _ema(close_np, w)
        # Canal de las n barras previas: la barra actual no cuenta
        for w in self.channel_windows:
            frame[f"HIGH{w}"] = frame["high"].rolling(w, min_periods=w).max().shift(1)
            frame[f"LOW{w}"] = frame["low"].rolling(w, min_periods=w).min().shift(1)

        frame["RSI"] = _rsi_wilder(close_np, self.rsi_period)

        fast, slow, sig = self.macd
        macd_line = _ema(close_np, fast) - _ema(close_np, slow)
        signal_line = _ema(macd_line, sig)
        frame["MACD"] = macd_line
        frame["MACD_SIGNAL"] = signal_line
        frame["MACD_HISTOGRAM"] = macd_line - signal_line

        avg_vol = _sma(volume, VOLUME_WINDOW)
        frame["VOL_RATIO"] = (volume / avg_vol).where(avg_vol > 0)
        frame["TRADING_VALUE"] = _sma(close * volume, VOLUME_WINDOW)

        for kind in (*RS_HORIZONS, "RS_AVG"):
            frame[kind] = np.nan
        return frame


# ==================== FUERZA RELATIVA (transversal) ====================


def compute_relative_strength(frames: Mapping[str, pd.DataFrame]) -> dict[str, pd.DataFrame]:
    """
    Rellena RS_3D/1M/3M/1Y y RS_AVG en cada frame del universo.

    - Retorno bruto por horizonte: close / close.shift(h) - 1
    - Rank percentil por fecha entre los símbolos con valor:
      rank / n * 100 (ascendente; empates comparten el rank más alto)
    - RS_AVG = media de los cuatro ranks (NaN si falta alguno)

    Devuelve frames nuevos; no muta los de entrada.
    """
    out = {sym: df.copy() for sym, df in frames.items()}
    if not out:
        return out

    for kind, horizon in RS_HORIZONS.items():
        raw = pd.DataFrame(
            {sym: df["close"] / df["close"].shift(horizon) - 1.0 for sym, df in out.items()}
        )
        ranks = raw.rank(axis=1, method="max", pct=True) * 100.0
        for sym, df in out.items():
            df[kind] = ranks[sym].reindex(df.index)

    for df in out.values():
        df["RS_AVG"] = df[list(RS_HORIZONS)].mean(axis=1, skipna=False)
    return out
