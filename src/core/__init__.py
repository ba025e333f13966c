"""Núcleo del motor de señales: tipos, errores, cartera, métricas y fachada."""

from core.errors import (
    ConfigurationError,
    DataGapError,
    SignalEngineError,
    SimulationFailure,
    SizingRejection,
    SkippedEvent,
)
from core.types import BacktestReport, PriceBar, Signal, SimulatedTrade

__all__ = [
    "BacktestReport",
    "ConfigurationError",
    "DataGapError",
    "PriceBar",
    "Signal",
    "SignalEngineError",
    "SimulatedTrade",
    "SimulationFailure",
    "SizingRejection",
    "SkippedEvent",
]
