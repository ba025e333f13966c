# ============================================================
# src/core/errors.py — Taxonomía de errores del motor de señales
# ------------------------------------------------------------
# - ConfigurationError: regla/ajustes inválidos (antes de evaluar)
# - DataGapError: histórico insuficiente para un indicador en una fecha
# - SizingRejection: capital insuficiente para la operación dimensionada
# - SimulationFailure: histórico corrupto (fechas no monótonas, precios raros)
#
# DataGapError y SizingRejection NO abortan un backtest: el simulador
# los convierte en registros SkippedEvent. SimulationFailure sí aborta.
# ============================================================

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable


class SignalEngineError(Exception):
    """Base común para todos los errores del motor."""


class ConfigurationError(SignalEngineError, ValueError):
    """Regla, grupo o ajustes inválidos. Se lanza antes de evaluar nada."""

    def __init__(self, message: str, problems: Iterable[str] | None = None) -> None:
        self.problems: list[str] = list(problems or [])
        if self.problems:
            message = f"{message}: " + "; ".join(self.problems)
        super().__init__(message)


class DataGapError(SignalEngineError):
    """Histórico insuficiente para calcular un indicador requerido."""

    def __init__(self, symbol: str, on: date | None, reason: str) -> None:
        self.symbol = symbol
        self.on = on
        self.reason = reason
        super().__init__(f"{symbol} @ {on}: {reason}")


class SizingRejection(SignalEngineError):
    """La operación dimensionada no cabe en el cash disponible."""

    def __init__(self, symbol: str, reason: str, required: float = 0.0, available: float = 0.0):
        self.symbol = symbol
        self.reason = reason
        self.required = required
        self.available = available
        super().__init__(
            f"{symbol}: {reason} (requerido={required:.2f}, disponible={available:.2f})"
        )


class SimulationFailure(SignalEngineError):
    """Histórico corrupto: el backtest se aborta y no devuelve resultados parciales."""


@dataclass(frozen=True)
class SkippedEvent:
    """Señal o barra saltada durante un backtest (no es un fallo del run)."""

    on: date
    symbol: str
    kind: str  # "data_gap" | "sizing_rejected"
    reason: str

    def as_dict(self) -> dict[str, str]:
        return {
            "date": self.on.isoformat(),
            "symbol": self.symbol,
            "kind": self.kind,
            "reason": self.reason,
        }
