# src/core/policies.py
"""
Políticas de dimensionado (sizing) de posiciones.

Responsabilidad
---------------
- Decidir cuántas acciones comprar para una señal BUY en función del riesgo
  por operación y la distancia al stop, y si hay cash para ello.

API pública
-----------
- size_position(...) -> (ok, reason, extras)
- require_size(...) -> int   # lanza SizingRejection si no se puede operar

Notas
-----
- 'reason' es un tag corto y estable, apto para logs/analítica.
- quantity = floor(equity * risk_per_trade / (price - stop))
"""

from __future__ import annotations

import math

from core.errors import SizingRejection


def _safe_ge(a: float, b: float, eps: float = 1e-9) -> bool:
    """Compara a >= b con tolerancia numérica."""
    return (a - b) >= -eps


def size_position(
    *,
    price: float,
    stop: float | None,
    equity: float,
    cash: float,
    risk_per_trade: float,
    commission_rate: float = 0.0,
) -> tuple[bool, str, dict[str, float]]:
    """
    Calcula la cantidad a comprar.

    Retorna
    -------
    (ok, reason, extras)
      ok : bool
      reason : str   # "ok", "precio_no_valido", "sin_stop", "distancia_stop_nula",
                     # "cantidad_cero", "cash_insuficiente"
      extras : dict  # qty, risk_amount, stop_distance, need_cash, cash
    """
    if price <= 0 or not math.isfinite(price):
        return False, "precio_no_valido", {}
    if stop is None:
        return False, "sin_stop", {}

    stop_distance = price - stop
    if stop_distance <= 0:
        return False, "distancia_stop_nula", {"stop_distance": stop_distance}

    risk_amount = equity * risk_per_trade
    qty = math.floor(risk_amount / stop_distance)
    extras = {"qty": float(qty), "risk_amount": risk_amount, "stop_distance": stop_distance}
    if qty <= 0:
        return False, "cantidad_cero", extras

    need_cash = qty * price * (1.0 + commission_rate)
    extras.update(need_cash=need_cash, cash=cash)
    if not _safe_ge(cash, need_cash):
        return False, "cash_insuficiente", extras

    return True, "ok", extras


def require_size(
    symbol: str,
    *,
    price: float,
    stop: float | None,
    equity: float,
    cash: float,
    risk_per_trade: float,
    commission_rate: float = 0.0,
) -> int:
    """Igual que size_position pero devuelve la cantidad o lanza SizingRejection."""
    ok, reason, extras = size_position(
        price=price,
        stop=stop,
        equity=equity,
        cash=cash,
        risk_per_trade=risk_per_trade,
        commission_rate=commission_rate,
    )
    if not ok:
        raise SizingRejection(
            symbol,
            reason,
            required=extras.get("need_cash", 0.0),
            available=extras.get("cash", cash),
        )
    return int(extras["qty"])


__all__ = ["size_position", "require_size"]
