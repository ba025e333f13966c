# src/core/types.py
"""
Tipos y estructuras comunes del motor de señales.

Compartidos por el evaluador de reglas, el backtester y el scanner en vivo.
Todo lo que sale de una evaluación (Signal, SimulatedTrade) es inmutable:
se recalcula en cada evaluación y solo se persiste como histórico.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
import math
from typing import Any, Literal, Mapping

# ------------------------------ Literales ---------------------------------

OrderSide = Literal["BUY", "SELL"]
SignalClass = Literal["STRONG_BUY", "BUY", "HOLD", "SELL", "STRONG_SELL"]
SignalType = Literal["BUY", "SELL", "ALERT"]

BUY_CLASSES: frozenset[str] = frozenset({"STRONG_BUY", "BUY"})
SELL_CLASSES: frozenset[str] = frozenset({"STRONG_SELL", "SELL"})
ALL_CLASSES: tuple[str, ...] = ("STRONG_BUY", "BUY", "HOLD", "SELL", "STRONG_SELL")


# ------------------------------ Dataclasses -------------------------------


@dataclass(frozen=True)
class PriceBar:
    """Una observación OHLCV diaria de un instrumento."""

    symbol: str
    date: date
    open: float
    high: float
    low: float
    close: float
    volume: float

    def as_dict(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "open": float(self.open),
            "high": float(self.high),
            "low": float(self.low),
            "close": float(self.close),
            "volume": float(self.volume),
        }


@dataclass(frozen=True)
class Signal:
    """
    Resultado de evaluar una regla/estrategia sobre un instrumento y fecha.

    - score: 0–100 (dirección: 50 = neutro en el composite; en una regla
      suelta es el % de peso satisfecho).
    - confidence: 0–1 siempre (nunca 0–100).
    """

    symbol: str
    strategy: str
    classification: SignalClass
    score: float
    confidence: float
    price: float
    target_price: float | None = None
    stop_loss: float | None = None
    reasons: tuple[str, ...] = ()
    generated_at: datetime | date | None = None
    indicators: Mapping[str, float | None] = field(default_factory=dict)
    alert: bool = False

    @property
    def is_buy(self) -> bool:
        return self.classification in BUY_CLASSES

    @property
    def is_sell(self) -> bool:
        return self.classification in SELL_CLASSES

    @property
    def is_actionable(self) -> bool:
        return self.is_buy or self.is_sell

    def as_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out["reasons"] = list(self.reasons)
        out["indicators"] = dict(self.indicators)
        if self.generated_at is not None:
            out["generated_at"] = self.generated_at.isoformat()
        return out


@dataclass(frozen=True)
class SimulatedTrade:
    """Entrada del ledger de un backtest (append-only)."""

    symbol: str
    side: OrderSide
    date: date
    quantity: int
    price: float
    commission: float
    realized_pnl: float = 0.0
    signal: Signal | None = None
    exit_reason: str | None = None  # signal / stop_loss / target_hit / end_of_run

    def as_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "side": self.side,
            "date": self.date.isoformat(),
            "quantity": int(self.quantity),
            "price": float(self.price),
            "commission": float(self.commission),
            "realized_pnl": float(self.realized_pnl),
            "classification": self.signal.classification if self.signal else None,
            "score": self.signal.score if self.signal else None,
            "exit_reason": self.exit_reason,
        }


@dataclass(frozen=True)
class BacktestReport:
    """
    Métricas agregadas de un backtest completado.

    Convenciones: todos los *_pct están en porcentaje (12.5 == 12.5 %),
    win_rate también (0–100). profit_factor puede ser `inf` si no hubo
    pérdidas y sí beneficios.
    """

    strategy: str
    universe: tuple[str, ...]
    start: date
    end: date
    initial_capital: float
    final_capital: float
    total_return_pct: float
    annualized_return_pct: float
    max_drawdown_pct: float
    sharpe_ratio: float
    win_rate: float
    profit_factor: float
    avg_win: float
    avg_loss: float
    total_trades: int
    winning_trades: int
    losing_trades: int
    trades: tuple[SimulatedTrade, ...] = ()
    signals: tuple[Signal, ...] = ()
    skipped: tuple[Any, ...] = ()
    equity_curve: tuple[tuple[date, float], ...] = ()
    status: str = "COMPLETED"

    def summary(self) -> dict[str, Any]:
        """Resumen plano, serializable (sin ledger ni curva)."""
        pf = self.profit_factor
        return {
            "strategy": self.strategy,
            "universe": list(self.universe),
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "initial_capital": self.initial_capital,
            "final_capital": self.final_capital,
            "total_return_pct": self.total_return_pct,
            "annualized_return_pct": self.annualized_return_pct,
            "max_drawdown_pct": self.max_drawdown_pct,
            "sharpe_ratio": self.sharpe_ratio,
            "win_rate": self.win_rate,
            "profit_factor": "inf" if math.isinf(pf) else pf,
            "avg_win": self.avg_win,
            "avg_loss": self.avg_loss,
            "total_trades": self.total_trades,
            "winning_trades": self.winning_trades,
            "losing_trades": self.losing_trades,
            "skipped": len(self.skipped),
            "status": self.status,
        }
