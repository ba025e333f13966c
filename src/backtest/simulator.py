# src/backtest/simulator.py
"""
Backtest Simulator: recorre una regla/estrategia por el histórico y gestiona
una cartera virtual.

Estados: INITIALIZING → RUNNING → FINALIZING → COMPLETED | FAILED

✅ Principios:
- Un run es dueño de sus frames de indicadores y de su cartera: dos runs
  concurrentes no comparten nada mutable.
- Misma carga y evaluación que el scanner en vivo y `evaluate`
  (`strategies.evaluation.load_frames` + `evaluate_at`): indicadores sembrados
  en la primera barra del proveedor, no en `start`.
- DataGapError y SizingRejection se registran como SkippedEvent y el run sigue.
  SimulationFailure (o cualquier otro error) aborta el run: estado FAILED, sin
  informe parcial, y la excepción se propaga.

📦 Uso típico:
    cfg = BacktestConfig(target="sma_crossover_5_20", universe=("VNM",),
                         start=date(2024, 1, 1), end=date(2024, 6, 30))
    report = BacktestSimulator(cfg, provider).run()
    print(report.summary())
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Mapping, Sequence

from loguru import logger
import pandas as pd

from core.errors import ConfigurationError, DataGapError, SizingRejection, SkippedEvent
from core.events import EventBus
from core.metrics.performance import TRADING_DAYS_PER_YEAR, summarize_performance
from core.policies import require_size
from core.portfolio import Fill, Portfolio
from core.settings import BacktestSettings, ScoringSettings
from core.types import BacktestReport, Signal, SimulatedTrade
from data.history import PriceHistoryProvider
from rules.scorer import DEFAULT_SCORING
from rules.store import RuleStore
from strategies.evaluation import Target, evaluate_at, load_frames, resolve_target, target_name, target_warmup


class BacktestState(str, Enum):
    INITIALIZING = "INITIALIZING"
    RUNNING = "RUNNING"
    FINALIZING = "FINALIZING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class BacktestConfig:
    """Parámetros de un run.

    Args:
        target: Rule, RuleSet, familia, composite o su nombre.
        universe: símbolos a simular.
        start / end: rango de fechas (ambos incluidos).
        initial_capital: capital inicial (> 0).
        commission_rate: comisión por lado, fracción del nocional [0, 1).
        risk_per_trade: fracción de equity arriesgada por operación (0, 1].
        risk_free_rate: tasa anual para el Sharpe.
        use_exit_levels: cerrar también por stop-loss / target de la señal de entrada.
    """

    target: Target | str
    universe: tuple[str, ...]
    start: date
    end: date
    initial_capital: float = 100_000_000.0
    commission_rate: float = 0.0015
    risk_per_trade: float = 0.02
    risk_free_rate: float = 0.0
    use_exit_levels: bool = False

    @classmethod
    def from_settings(
        cls,
        target: Target | str,
        universe: Sequence[str],
        start: date,
        end: date,
        settings: BacktestSettings,
        **overrides,
    ) -> "BacktestConfig":
        base = dict(
            initial_capital=settings.initial_capital,
            commission_rate=settings.commission_rate,
            risk_per_trade=settings.risk_per_trade,
            risk_free_rate=settings.risk_free_rate,
            use_exit_levels=settings.use_exit_levels,
        )
        base.update({k: v for k, v in overrides.items() if v is not None})
        return cls(target=target, universe=tuple(universe), start=start, end=end, **base)

    def problems(self) -> list[str]:
        out: list[str] = []
        if self.start >= self.end:
            out.append(f"start ({self.start}) debe ser anterior a end ({self.end})")
        if not self.universe:
            out.append("el universo está vacío")
        elif len(set(self.universe)) != len(self.universe):
            out.append("el universo tiene símbolos repetidos")
        if self.initial_capital <= 0:
            out.append("initial_capital debe ser > 0")
        if not 0.0 < self.risk_per_trade <= 1.0:
            out.append("risk_per_trade debe estar en (0, 1]")
        if not 0.0 <= self.commission_rate < 1.0:
            out.append("commission_rate debe estar en [0, 1)")
        return out


@dataclass
class _OpenLevels:
    stop: float | None
    target: float | None


@dataclass
class _RunLedger:
    trades: list[SimulatedTrade] = field(default_factory=list)
    signals: list[Signal] = field(default_factory=list)
    skipped: list[SkippedEvent] = field(default_factory=list)
    equity_curve: list[tuple[date, float]] = field(default_factory=list)


class BacktestSimulator:
    """Orquestador de un backtest (histórico → indicadores → señales → cartera → métricas)."""

    def __init__(
        self,
        config: BacktestConfig,
        provider: PriceHistoryProvider,
        *,
        scoring: ScoringSettings = DEFAULT_SCORING,
        weights: Mapping[str, float] | None = None,
        rule_store: RuleStore | None = None,
        events: EventBus | None = None,
    ) -> None:
        self.config = config
        self.provider = provider
        self.scoring = scoring
        self.weights = weights
        self.rule_store = rule_store
        self.events = events or EventBus()
        self.state = BacktestState.INITIALIZING

    # ----------------------------- #
    #  API pública
    # ----------------------------- #
    def run(self) -> BacktestReport:
        try:
            target = self._initialize()
            self.state = BacktestState.RUNNING
            frames = self._load_frames(target)
            portfolio = Portfolio(self.config.initial_capital, self.config.commission_rate)
            ledger = _RunLedger()
            self._run_loop(target, frames, portfolio, ledger)
            self.state = BacktestState.FINALIZING
            report = self._finalize(target, frames, portfolio, ledger)
        except Exception:
            self.state = BacktestState.FAILED
            raise
        self.state = BacktestState.COMPLETED
        logger.info(
            f"Backtest {report.strategy} completado: {report.total_trades} trades, "
            f"retorno {report.total_return_pct:.2f}%, skipped={len(report.skipped)}"
        )
        return report

    # ----------------------------- #
    #  Fases
    # ----------------------------- #
    def _initialize(self) -> Target:
        problems = self.config.problems()
        if problems:
            raise ConfigurationError("Backtest inválido", problems)
        target = resolve_target(
            self.config.target, rule_store=self.rule_store, weights=self.weights, scoring=self.scoring
        )
        logger.info(
            f"Backtest {target_name(target)} | {list(self.config.universe)} | "
            f"{self.config.start} → {self.config.end} | capital={self.config.initial_capital:,.0f}"
        )
        return target

    def _load_frames(self, target: Target) -> dict[str, pd.DataFrame]:
        """
        Carga y valida el histórico una sola vez, desde la primera barra del
        proveedor hasta `end`. Un símbolo del universo corrupto aborta el run;
        los símbolos extra que solo aportan al universo RS se excluyen.
        """
        universe = self.config.universe
        frames = load_frames(self.provider, universe, self.config.end, target, required=universe)
        lo = pd.Timestamp(self.config.start)
        for symbol in universe:
            if not (frames[symbol].index >= lo).any():
                logger.warning(f"{symbol}: sin histórico en el rango")
        return frames

    def _trading_dates(self, frames: Mapping[str, pd.DataFrame]) -> list[pd.Timestamp]:
        lo, hi = pd.Timestamp(self.config.start), pd.Timestamp(self.config.end)
        dates: set[pd.Timestamp] = set()
        for symbol in self.config.universe:
            dates.update(ts for ts in frames[symbol].index if lo <= ts <= hi)
        return sorted(dates)

    def _run_loop(
        self,
        target: Target,
        frames: Mapping[str, pd.DataFrame],
        portfolio: Portfolio,
        ledger: _RunLedger,
    ) -> None:
        warmup = target_warmup(target)
        positions_of = {
            sym: {ts: i for i, ts in enumerate(frames[sym].index)} for sym in self.config.universe
        }
        levels: dict[str, _OpenLevels] = {}

        for ts in self._trading_dates(frames):
            on = ts.date()
            for symbol in self.config.universe:
                idx = positions_of[symbol].get(ts)
                if idx is None:
                    continue
                frame = frames[symbol]
                price = float(frame["close"].iat[idx])
                portfolio.mark(symbol, price)

                if idx + 1 < warmup:
                    gap = DataGapError(symbol, on, f"calentamiento {idx + 1}/{warmup} barras")
                    self._skip(ledger, on, symbol, "data_gap", gap.reason)
                    continue

                if self.config.use_exit_levels and symbol in levels and portfolio.has_position(symbol):
                    reason = self._level_hit(price, levels[symbol])
                    if reason:
                        self._close(portfolio, ledger, symbol, price, on, reason, None)
                        levels.pop(symbol, None)
                        continue

                signal = evaluate_at(frame, idx, symbol, target, self.scoring)
                self.events.emit("signal", {"signal": signal})
                if not signal.is_actionable:
                    continue
                ledger.signals.append(signal)

                if signal.is_buy and not portfolio.has_position(symbol):
                    if self._open(portfolio, ledger, signal, on):
                        levels[symbol] = _OpenLevels(signal.stop_loss, signal.target_price)
                elif signal.is_sell and portfolio.has_position(symbol):
                    self._close(portfolio, ledger, symbol, price, on, "signal", signal)
                    levels.pop(symbol, None)

            equity = portfolio.equity()
            ledger.equity_curve.append((on, equity))
            self.events.emit("equity", {"date": on, "equity": equity})

    def _finalize(
        self,
        target: Target,
        frames: Mapping[str, pd.DataFrame],
        portfolio: Portfolio,
        ledger: _RunLedger,
    ) -> BacktestReport:
        end_ts = pd.Timestamp(self.config.end)
        for symbol in sorted(portfolio.positions):
            window = frames[symbol].loc[frames[symbol].index <= end_ts]
            last_ts = window.index[-1]
            price = float(window["close"].iat[-1])
            self._close(portfolio, ledger, symbol, price, last_ts.date(), "end_of_run", None)

        final_capital = portfolio.equity()
        if ledger.equity_curve:
            last_day, _ = ledger.equity_curve[-1]
            ledger.equity_curve[-1] = (last_day, final_capital)

        closed_pnl = [t.realized_pnl for t in ledger.trades if t.side == "SELL"]
        metrics = summarize_performance(
            equity_curve=[eq for _, eq in ledger.equity_curve],
            closed_pnl=closed_pnl,
            initial_capital=self.config.initial_capital,
            final_capital=final_capital,
            days=(self.config.end - self.config.start).days,
            risk_free_rate=self.config.risk_free_rate,
            periods_per_year=TRADING_DAYS_PER_YEAR,
        )
        return BacktestReport(
            strategy=target_name(target),
            universe=tuple(self.config.universe),
            start=self.config.start,
            end=self.config.end,
            initial_capital=self.config.initial_capital,
            final_capital=final_capital,
            total_trades=len(ledger.trades),
            trades=tuple(ledger.trades),
            signals=tuple(ledger.signals),
            skipped=tuple(ledger.skipped),
            equity_curve=tuple(ledger.equity_curve),
            status=BacktestState.COMPLETED.value,
            **metrics,
        )

    # ----------------------------- #
    #  Operaciones
    # ----------------------------- #
    @staticmethod
    def _level_hit(price: float, lv: _OpenLevels) -> str | None:
        if lv.stop is not None and price <= lv.stop:
            return "stop_loss"
        if lv.target is not None and price >= lv.target:
            return "target_hit"
        return None

    def _open(self, portfolio: Portfolio, ledger: _RunLedger, signal: Signal, on: date) -> bool:
        try:
            qty = require_size(
                signal.symbol,
                price=signal.price,
                stop=signal.stop_loss,
                equity=portfolio.equity(),
                cash=portfolio.cash,
                risk_per_trade=self.config.risk_per_trade,
                commission_rate=self.config.commission_rate,
            )
        except SizingRejection as exc:
            logger.warning(f"{on} {signal.symbol}: sizing rechazado ({exc.reason})")
            self._skip(ledger, on, signal.symbol, "sizing_rejected", exc.reason)
            return False
        fill = portfolio.buy(signal.symbol, qty, signal.price, on)
        self._record(ledger, fill, on, signal, None)
        return True

    def _close(
        self,
        portfolio: Portfolio,
        ledger: _RunLedger,
        symbol: str,
        price: float,
        on: date,
        reason: str,
        signal: Signal | None,
    ) -> None:
        fill = portfolio.sell(symbol, price, on=on)
        self._record(ledger, fill, on, signal, reason)

    def _record(
        self, ledger: _RunLedger, fill: Fill, on: date, signal: Signal | None, exit_reason: str | None
    ) -> None:
        trade = SimulatedTrade(
            symbol=fill.symbol,
            side=fill.side,
            date=on,
            quantity=fill.quantity,
            price=fill.price,
            commission=fill.commission,
            realized_pnl=fill.realized_pnl,
            signal=signal,
            exit_reason=exit_reason,
        )
        ledger.trades.append(trade)
        logger.debug(f"{on} {trade.side} {trade.quantity} {trade.symbol} @ {trade.price:.2f}")
        self.events.emit("trade", {"trade": trade})

    def _skip(self, ledger: _RunLedger, on: date, symbol: str, kind: str, reason: str) -> None:
        event = SkippedEvent(on=on, symbol=symbol, kind=kind, reason=reason)
        ledger.skipped.append(event)
        self.events.emit("skipped", {"event": event})


def run_backtest(
    target: Target | str,
    universe: Sequence[str],
    date_range: tuple[date, date],
    initial_capital: float | None = None,
    commission_rate: float | None = None,
    risk_per_trade: float | None = None,
    *,
    provider: PriceHistoryProvider,
    settings: BacktestSettings | None = None,
    scoring: ScoringSettings = DEFAULT_SCORING,
    weights: Mapping[str, float] | None = None,
    rule_store: RuleStore | None = None,
    events: EventBus | None = None,
    **overrides,
) -> BacktestReport:
    """Atajo: construye la config (ajustes + overrides) y ejecuta un run nuevo."""
    start, end = date_range
    config = BacktestConfig.from_settings(
        target,
        universe,
        start,
        end,
        settings or BacktestSettings(),
        initial_capital=initial_capital,
        commission_rate=commission_rate,
        risk_per_trade=risk_per_trade,
        **overrides,
    )
    simulator = BacktestSimulator(
        config, provider, scoring=scoring, weights=weights, rule_store=rule_store, events=events
    )
    return simulator.run()


__all__ = ["BacktestConfig", "BacktestSimulator", "BacktestState", "run_backtest"]
