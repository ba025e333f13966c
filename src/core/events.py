# src/core/events.py
"""
Bus de eventos en proceso para enchufar reporters/dashboards sin tocar los
bucles del backtest o del scanner.

Eventos emitidos:
- "signal": señal evaluada (payload: {"signal": Signal})
- "trade": operación ejecutada (payload: {"trade": SimulatedTrade})
- "skipped": barra o señal saltada (payload: {"event": SkippedEvent})
- "equity": equity diaria (payload: {"date": date, "equity": float})
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List

from loguru import logger

Handler = Callable[[Dict[str, Any]], None]


class EventBus:
    """Bus de eventos muy simple."""

    def __init__(self) -> None:
        self._subs: Dict[str, List[Handler]] = {}

    def on(self, event: str, fn: Handler) -> None:
        self._subs.setdefault(event, []).append(fn)

    def emit(self, event: str, payload: Dict[str, Any]) -> None:
        for fn in self._subs.get(event, []):
            try:
                fn(payload)
            except Exception:
                # un callback externo roto no para el bucle, pero queda trazado
                logger.exception(f"Callback de '{event}' falló")


__all__ = ["EventBus", "Handler"]
