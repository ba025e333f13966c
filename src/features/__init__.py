# src/features/__init__.py
"""
Feature engineering para las reglas de señales.

Módulos:
- technical_indicators: motor de indicadores (MA, EMA, RSI, MACD, volumen, RS)
"""

from .technical_indicators import (
    IndicatorEngine,
    IndicatorKind,
    IndicatorSnapshot,
    bars_to_frame,
    compute_relative_strength,
    lookback_for,
    normalize_indicator,
    snapshot_at,
    snapshots,
    warmup_bars,
)

__all__ = [
    "IndicatorEngine",
    "IndicatorKind",
    "IndicatorSnapshot",
    "bars_to_frame",
    "compute_relative_strength",
    "lookback_for",
    "normalize_indicator",
    "snapshot_at",
    "snapshots",
    "warmup_bars",
]
