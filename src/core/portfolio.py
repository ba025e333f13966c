# ============================================================
# src/core/portfolio.py — Cartera de acciones: cash, posiciones y PnL
# ------------------------------------------------------------
# - Compras/ventas a precio de cierre con comisión proporcional
#   (se cobra en la entrada y en la salida)
# - Cantidades enteras (acciones), sin cortos
# - PnL realizado = neto de la venta - coste de entrada (con comisión)
# - Una posición desaparece cuando su cantidad llega a 0
# - Todas las mutaciones bajo un RLock por cartera: el bot y las
#   operaciones manuales comparten el mismo lock
# ============================================================

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
import threading
from typing import Any

from loguru import logger

from core.types import OrderSide


# -----------------------------
# Tipos básicos y estructuras
# -----------------------------
@dataclass
class Position:
    symbol: str
    quantity: int = 0
    avg_cost: float = 0.0  # precio medio de entrada (sin comisión)
    current_price: float = 0.0
    unrealized_pnl: float = 0.0
    cost_basis: float = 0.0  # coste total de entrada con comisión

    def mark(self, price: float) -> None:
        self.current_price = float(price)
        self.unrealized_pnl = (self.current_price - self.avg_cost) * self.quantity

    @property
    def market_value(self) -> float:
        return self.current_price * self.quantity


@dataclass(frozen=True)
class Fill:
    symbol: str
    side: OrderSide
    quantity: int
    price: float
    commission: float
    realized_pnl: float = 0.0
    on: date | None = None

    @property
    def notional(self) -> float:
        return self.quantity * self.price


# -----------------------------
# Clase principal Portfolio
# -----------------------------
class Portfolio:
    """
    Cartera con cash y posiciones por símbolo.

    Reglas:
      - BUY: cash -= qty * price * (1 + commission_rate)
      - SELL: cash += qty * price * (1 - commission_rate)
      - No se puede comprar sin cash suficiente ni vender más de lo que hay.
    """

    def __init__(self, starting_cash: float, commission_rate: float = 0.0015) -> None:
        if starting_cash <= 0:
            raise ValueError("starting_cash debe ser > 0")
        if not 0.0 <= commission_rate < 1.0:
            raise ValueError("commission_rate debe estar en [0, 1)")
        self.starting_cash = float(starting_cash)
        self.cash: float = float(starting_cash)
        self.commission_rate = float(commission_rate)
        self.positions: dict[str, Position] = {}
        self._lock = threading.RLock()

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    # -------- Lecturas --------
    def position(self, symbol: str) -> Position | None:
        with self._lock:
            return self.positions.get(symbol)

    def has_position(self, symbol: str) -> bool:
        with self._lock:
            return symbol in self.positions

    def equity(self) -> float:
        """cash + valor de mercado de las posiciones (al último precio marcado)."""
        with self._lock:
            return self.cash + sum(p.market_value for p in self.positions.values())

    def commission_for(self, notional: float) -> float:
        return abs(notional) * self.commission_rate

    # -------- Mutaciones --------
    def mark(self, symbol: str, price: float) -> None:
        with self._lock:
            pos = self.positions.get(symbol)
            if pos is not None:
                pos.mark(price)

    def buy(self, symbol: str, quantity: int, price: float, on: date | None = None) -> Fill:
        if quantity <= 0 or price <= 0:
            raise ValueError(f"BUY inválido: qty={quantity}, price={price}")
        notional = quantity * price
        commission = self.commission_for(notional)
        with self._lock:
            if notional + commission > self.cash + 1e-9:
                raise ValueError(
                    f"Cash insuficiente para {symbol}: necesita {notional + commission:.2f}, "
                    f"disponible {self.cash:.2f}"
                )
            self.cash -= notional + commission
            pos = self.positions.setdefault(symbol, Position(symbol=symbol))
            new_qty = pos.quantity + quantity
            pos.avg_cost = (pos.avg_cost * pos.quantity + notional) / new_qty
            pos.quantity = new_qty
            pos.cost_basis += notional + commission
            pos.mark(price)
            cash_after = self.cash
        logger.debug(f"BUY {quantity} {symbol} @ {price:.2f} (comisión {commission:.2f}) | cash={cash_after:.2f}")
        return Fill(symbol, "BUY", int(quantity), float(price), commission, 0.0, on)

    def sell(
        self, symbol: str, price: float, quantity: int | None = None, on: date | None = None
    ) -> Fill:
        """Vende `quantity` (por defecto, toda la posición)."""
        if price <= 0:
            raise ValueError(f"SELL inválido: price={price}")
        with self._lock:
            pos = self.positions.get(symbol)
            if pos is None:
                raise ValueError(f"No hay posición abierta en {symbol}")
            qty = pos.quantity if quantity is None else int(quantity)
            if qty <= 0 or qty > pos.quantity:
                raise ValueError(f"No se permiten cortos: vender {qty} {symbol} con posición {pos.quantity}")

            notional = qty * price
            commission = self.commission_for(notional)
            entry_cost = pos.cost_basis * qty / pos.quantity
            realized = (notional - commission) - entry_cost

            self.cash += notional - commission
            pos.cost_basis -= entry_cost
            pos.quantity -= qty
            if pos.quantity == 0:
                del self.positions[symbol]
            else:
                pos.mark(price)
            cash_after = self.cash
        logger.debug(
            f"SELL {qty} {symbol} @ {price:.2f} (comisión {commission:.2f}, pnl {realized:.2f}) "
            f"| cash={cash_after:.2f}"
        )
        return Fill(symbol, "SELL", qty, float(price), commission, realized, on)

    def snapshot(self) -> dict[str, Any]:
        """Resumen serializable: cash, posiciones y equity."""
        with self._lock:
            positions = {
                sym: {
                    "quantity": p.quantity,
                    "avg_cost": p.avg_cost,
                    "current_price": p.current_price,
                    "unrealized_pnl": p.unrealized_pnl,
                }
                for sym, p in self.positions.items()
            }
            return {"cash": self.cash, "positions": positions, "equity": self.equity()}


__all__ = ["Fill", "Portfolio", "Position"]
