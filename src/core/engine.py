# src/core/engine.py
"""
Fachada pública del motor de señales.

Interfaz principal:
    evaluate(symbol, as_of, target, *, provider=None) -> Signal
    screen(target, as_of, universe=None, signal_filter=None) -> list[Signal]
    run_backtest(target, universe, date_range, initial_capital, commission_rate,
                 risk_per_trade, *, provider=None) -> BacktestReport
    start_scanner() / stop_scanner() / is_scanner_running()

`SignalEngine` agrupa ajustes + proveedor de histórico + almacén de reglas.
Las funciones de módulo usan una instancia por defecto construida desde
src/config/config.yaml (+ .env) la primera vez que se necesita.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime
import threading
from typing import Any

from loguru import logger

from backtest.simulator import run_backtest as _run_backtest
from core.errors import ConfigurationError, DataGapError
from core.events import EventBus
from core.portfolio import Portfolio
from core.settings import EngineSettings, load_settings
from core.types import BacktestReport, Signal
from data.history import CsvPriceHistory, PriceHistoryProvider
from live.executor import LiveExecConfig, LiveExecutor, TradeSink
from live.scanner import LiveScanner, ScannerStatus
from rules.store import InMemoryRuleStore, RuleStore, YamlRuleStore
from strategies.composite import SignalFilter, rank_signals
from strategies.evaluation import (
    Target,
    evaluate_at,
    load_frames,
    resolve_target,
    target_warmup,
)

DEFAULT_SCANNER_TARGETS: tuple[str, ...] = ("composite",)


class SignalEngine:
    def __init__(
        self,
        settings: EngineSettings | None = None,
        provider: PriceHistoryProvider | None = None,
        rule_store: RuleStore | None = None,
        events: EventBus | None = None,
        trade_sink: TradeSink | None = None,
    ) -> None:
        self.settings = settings or load_settings()
        self.provider = provider or CsvPriceHistory(self.settings.data_dir)
        if rule_store is None:
            rule_store = (
                YamlRuleStore(self.settings.rules_file)
                if self.settings.rules_file
                else InMemoryRuleStore()
            )
        self.rule_store = rule_store
        self.events = events or EventBus()
        self.trade_sink = trade_sink

        self._scanner: LiveScanner | None = None
        self._executor: LiveExecutor | None = None
        self._lock = threading.Lock()

    # ----------------------------- Evaluación -------------------------------------

    def resolve(self, target: Target | str) -> Target:
        return resolve_target(
            target,
            rule_store=self.rule_store,
            weights=self.settings.composite.weights,
            scoring=self.settings.scoring,
        )

    def evaluate(
        self,
        symbol: str,
        as_of: date,
        target: Target | str,
        *,
        provider: PriceHistoryProvider | None = None,
    ) -> Signal:
        """
        Señal de `target` para `symbol` con la última barra <= as_of. Usa el
        mismo cargador que el backtest y el scanner: para una fecha dada, la
        señal coincide con la que emite el backtest ese día.
        """
        provider = provider or self.provider
        resolved = self.resolve(target)
        frame = load_frames(provider, [symbol], as_of, resolved, required=[symbol])[symbol]
        warmup = target_warmup(resolved)
        if len(frame) < warmup:
            raise DataGapError(symbol, as_of, f"{len(frame)} barras < calentamiento {warmup}")
        return evaluate_at(frame, len(frame) - 1, symbol, resolved, self.settings.scoring)

    def screen(
        self,
        target: Target | str,
        as_of: date,
        universe: Sequence[str] | None = None,
        signal_filter: SignalFilter | None = None,
    ) -> list[Signal]:
        """
        Evalúa un universo, ordena por score y aplica el filtro (y su límite).
        Los símbolos con histórico corrupto se excluyen con un aviso.
        """
        resolved = self.resolve(target)
        symbols = list(universe) if universe is not None else self.provider.symbols()
        frames = load_frames(self.provider, symbols, as_of, resolved)
        warmup = target_warmup(resolved)
        signals = [
            evaluate_at(frames[sym], len(frames[sym]) - 1, sym, resolved, self.settings.scoring)
            for sym in symbols
            if sym in frames and len(frames[sym]) >= warmup
        ]
        return rank_signals(signals, signal_filter)

    # ----------------------------- Backtest ---------------------------------------

    def run_backtest(
        self,
        target: Target | str,
        universe: Sequence[str],
        date_range: tuple[date, date],
        initial_capital: float | None = None,
        commission_rate: float | None = None,
        risk_per_trade: float | None = None,
        *,
        provider: PriceHistoryProvider | None = None,
        **overrides: Any,
    ) -> BacktestReport:
        return _run_backtest(
            target,
            universe,
            date_range,
            initial_capital,
            commission_rate,
            risk_per_trade,
            provider=provider or self.provider,
            settings=self.settings.backtest,
            scoring=self.settings.scoring,
            weights=self.settings.composite.weights,
            rule_store=self.rule_store,
            events=self.events,
            **overrides,
        )

    # ----------------------------- Scanner ----------------------------------------

    @property
    def executor(self) -> LiveExecutor:
        with self._lock:
            if self._executor is None:
                cfg = self.settings.scanner
                self._executor = LiveExecutor(
                    Portfolio(cfg.capital, self.settings.backtest.commission_rate),
                    self.trade_sink,
                    LiveExecConfig(
                        confidence_threshold=cfg.confidence_threshold,
                        risk_per_trade=self.settings.backtest.risk_per_trade,
                    ),
                )
            return self._executor

    def start_scanner(
        self,
        targets: Sequence[Target | str] | None = None,
        universe: Sequence[str] | None = None,
    ) -> LiveScanner:
        if targets is None:
            active = self.rule_store.active_rules()
            targets = [*DEFAULT_SCANNER_TARGETS, *active]
        resolved = [self.resolve(t) for t in targets]
        if not resolved:
            raise ConfigurationError("El scanner necesita al menos un objetivo")
        executor = self.executor
        with self._lock:
            if self._scanner is not None and self._scanner.is_running():
                logger.warning("start_scanner(): ya hay un scanner en marcha")
                return self._scanner
            self._scanner = LiveScanner(
                self.provider,
                resolved,
                universe,
                settings=self.settings.scanner,
                executor=executor,
                scoring=self.settings.scoring,
                events=self.events,
            )
            self._scanner.start()
            return self._scanner

    def stop_scanner(self, timeout: float | None = None) -> None:
        with self._lock:
            scanner = self._scanner
        if scanner is not None:
            scanner.stop(timeout)

    def is_scanner_running(self) -> bool:
        with self._lock:
            return self._scanner is not None and self._scanner.is_running()

    def scanner_status(self) -> ScannerStatus | None:
        with self._lock:
            return self._scanner.status() if self._scanner is not None else None

    def manual_trade(self, symbol: str, side: str, quantity: int, price: float):
        now = datetime.now(self.settings.scanner.tz)
        return self.executor.manual_trade(symbol, side, quantity, price, now)


# ============================================================
# Instancia por defecto + funciones de módulo
# ============================================================

_DEFAULT: SignalEngine | None = None
_DEFAULT_LOCK = threading.Lock()


def get_engine() -> SignalEngine:
    global _DEFAULT
    with _DEFAULT_LOCK:
        if _DEFAULT is None:
            _DEFAULT = SignalEngine()
        return _DEFAULT


def evaluate(
    symbol: str, as_of: date, target: Target | str, *, provider: PriceHistoryProvider | None = None
) -> Signal:
    return get_engine().evaluate(symbol, as_of, target, provider=provider)


def run_backtest(
    target: Target | str,
    universe: Sequence[str],
    date_range: tuple[date, date],
    initial_capital: float | None = None,
    commission_rate: float | None = None,
    risk_per_trade: float | None = None,
    *,
    provider: PriceHistoryProvider | None = None,
) -> BacktestReport:
    return get_engine().run_backtest(
        target,
        universe,
        date_range,
        initial_capital,
        commission_rate,
        risk_per_trade,
        provider=provider,
    )


def start_scanner() -> LiveScanner:
    return get_engine().start_scanner()


def stop_scanner() -> None:
    get_engine().stop_scanner()


def is_scanner_running() -> bool:
    return get_engine().is_scanner_running()


__all__ = [
    "SignalEngine",
    "evaluate",
    "get_engine",
    "is_scanner_running",
    "run_backtest",
    "start_scanner",
    "stop_scanner",
]
