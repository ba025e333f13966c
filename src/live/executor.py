# src/live/executor.py
"""
Ejecutor "live" para el bot: convierte señales en operaciones sobre una
cartera compartida.

Responsabilidades:
- Ejecutar BUY/SELL de señales con confianza >= umbral.
- Operaciones manuales por el MISMO camino y bajo el MISMO lock de cartera:
  lectura-modificación-escritura de cash y posiciones es atómica.
- Notificar cada operación a un TradeSink (persistencia fuera del motor).

Diseño:
- Sin enrutado a broker: las operaciones se aplican a la cartera virtual.
- Sizing con la misma política que el backtest (core.policies).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import threading
from typing import Protocol

from loguru import logger

from core.policies import size_position
from core.portfolio import Fill, Portfolio
from core.types import OrderSide, Signal


@dataclass(frozen=True)
class LiveTrade:
    symbol: str
    side: OrderSide
    quantity: int
    price: float
    commission: float
    realized_pnl: float
    source: str  # "bot" | "manual"
    executed_at: datetime
    strategy: str | None = None
    signal: Signal | None = None


class TradeSink(Protocol):
    def record_trade(self, trade: LiveTrade) -> None: ...


class InMemoryTradeSink:
    """Sink en memoria (tests / uso embebido)."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._trades: list[LiveTrade] = []

    def record_trade(self, trade: LiveTrade) -> None:
        with self._lock:
            self._trades.append(trade)

    @property
    def trades(self) -> list[LiveTrade]:
        with self._lock:
            return list(self._trades)


@dataclass
class LiveExecConfig:
    """Umbral de confianza y riesgo por operación."""

    confidence_threshold: float = 0.70
    risk_per_trade: float = 0.02


@dataclass
class LiveExecResult:
    """Resultado de intentar ejecutar una señal."""

    ok: bool
    reason: str  # tag estable: "ok", "confianza_baja", "sin_posicion", ...
    trade: LiveTrade | None = None
    extras: dict[str, float] = field(default_factory=dict)


class LiveExecutor:
    """
    Ejecuta señales y operaciones manuales contra una `Portfolio`.

    Patrón de uso:
        ex = LiveExecutor(Portfolio(100_000_000), sink)
        res = ex.execute_signal(signal, now)
        ex.manual_trade("VNM", "BUY", 100, 61_500.0, now)
    """

    def __init__(
        self,
        portfolio: Portfolio,
        sink: TradeSink | None = None,
        config: LiveExecConfig | None = None,
    ) -> None:
        self.portfolio = portfolio
        self._sink = sink or InMemoryTradeSink()
        self._cfg = config or LiveExecConfig()

    @property
    def sink(self) -> TradeSink:
        return self._sink

    # --------------------
    # Señales del bot
    # --------------------

    def execute_signal(self, signal: Signal, now: datetime) -> LiveExecResult:
        if not signal.is_actionable:
            return LiveExecResult(False, "no_accionable")
        if signal.confidence < self._cfg.confidence_threshold:
            return LiveExecResult(False, "confianza_baja", extras={"confidence": signal.confidence})

        pf = self.portfolio
        with pf.lock:
            if signal.is_buy:
                if pf.has_position(signal.symbol):
                    return LiveExecResult(False, "posicion_abierta")
                ok, reason, extras = size_position(
                    price=signal.price,
                    stop=signal.stop_loss,
                    equity=pf.equity(),
                    cash=pf.cash,
                    risk_per_trade=self._cfg.risk_per_trade,
                    commission_rate=pf.commission_rate,
                )
                if not ok:
                    logger.warning(f"{signal.symbol}: BUY rechazado por sizing ({reason})")
                    return LiveExecResult(False, reason, extras=extras)
                fill = pf.buy(signal.symbol, int(extras["qty"]), signal.price)
            else:
                if not pf.has_position(signal.symbol):
                    return LiveExecResult(False, "sin_posicion")
                fill = pf.sell(signal.symbol, signal.price)
            trade = self._record(fill, "bot", now, signal)

        logger.info(
            f"{trade.side} {trade.quantity} {trade.symbol} @ {trade.price:.2f} "
            f"[{signal.strategy} {signal.classification} conf={signal.confidence:.2f}]"
        )
        return LiveExecResult(True, "ok", trade)

    # --------------------
    # Operaciones manuales
    # --------------------

    def manual_trade(
        self, symbol: str, side: OrderSide | str, quantity: int, price: float, now: datetime
    ) -> LiveTrade:
        """BUY/SELL manual. Lanza ValueError si no hay cash o posición suficiente."""
        side_u = str(side).upper()
        if side_u not in ("BUY", "SELL"):
            raise ValueError("side debe ser 'BUY' o 'SELL'")
        pf = self.portfolio
        with pf.lock:
            if side_u == "BUY":
                fill = pf.buy(symbol, int(quantity), float(price))
            else:
                fill = pf.sell(symbol, float(price), quantity=int(quantity))
            trade = self._record(fill, "manual", now, None)
        logger.info(f"Manual {trade.side} {trade.quantity} {symbol} @ {trade.price:.2f}")
        return trade

    # --------------------
    # Núcleo
    # --------------------

    def _record(self, fill: Fill, source: str, now: datetime, signal: Signal | None) -> LiveTrade:
        trade = LiveTrade(
            symbol=fill.symbol,
            side=fill.side,
            quantity=fill.quantity,
            price=fill.price,
            commission=fill.commission,
            realized_pnl=fill.realized_pnl,
            source=source,
            executed_at=now,
            strategy=signal.strategy if signal else None,
            signal=signal,
        )
        self._sink.record_trade(trade)
        return trade


__all__ = [
    "InMemoryTradeSink",
    "LiveExecConfig",
    "LiveExecResult",
    "LiveExecutor",
    "LiveTrade",
    "TradeSink",
]
