# src/live/scanner.py
"""
Live Scanner (bot): evalúa periódicamente las reglas/estrategias activas
sobre el universo durante el horario de mercado.

🧵 Modelo de hilos:
- Un hilo planificador ("ScannerScheduler") despierta cada `interval_secs`.
- Cada tick corre en su propio hilo de trabajo ("ScannerTick-N").
- Si el tick anterior sigue vivo, el nuevo se SALTA (y se registra), no se encola.
- stop(): deja terminar el tick en curso y luego para. Nunca corta una operación.

🧩 Integración:

    scanner = LiveScanner(provider, ["composite", "sma_crossover"], settings=settings.scanner,
                          executor=LiveExecutor(Portfolio(settings.scanner.capital)))
    scanner.start()
    ...
    scanner.stop()

Cada tick usa exactamente la misma carga y evaluación que el backtest
(`strategies.evaluation.load_frames` + `evaluate_at`) sobre la última barra
disponible.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
import threading

from loguru import logger

from core.events import EventBus
from core.settings import ScannerSettings, ScoringSettings
from core.types import Signal
from data.history import PriceHistoryProvider
from live.executor import LiveExecutor
from rules.scorer import DEFAULT_SCORING
from strategies.evaluation import Target, evaluate_at, load_frames, target_warmup


@dataclass(frozen=True)
class ScannerStatus:
    running: bool
    ticks_run: int
    ticks_skipped: int
    signals_emitted: int
    trades_executed: int
    last_tick_at: datetime | None
    last_error: str | None


class LiveScanner:
    def __init__(
        self,
        provider: PriceHistoryProvider,
        targets: Sequence[Target],
        universe: Sequence[str] | None = None,
        *,
        settings: ScannerSettings | None = None,
        executor: LiveExecutor | None = None,
        scoring: ScoringSettings = DEFAULT_SCORING,
        events: EventBus | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.provider = provider
        self.targets = list(targets)
        self.universe = list(universe) if universe is not None else None
        self.settings = settings or ScannerSettings()
        self.executor = executor
        self.scoring = scoring
        self.events = events or EventBus()
        self._tz = self.settings.tz
        self._clock = clock or (lambda: datetime.now(self._tz))

        self._stop = threading.Event()
        self._scheduler: threading.Thread | None = None
        self._worker: threading.Thread | None = None
        self._state_lock = threading.Lock()
        self._last_alert: dict[tuple[str, str, str], datetime] = {}
        self._status = ScannerStatus(False, 0, 0, 0, 0, None, None)

    # ----------------------------- API pública -------------------------------------

    def start(self) -> None:
        with self._state_lock:
            if self._scheduler is not None and self._scheduler.is_alive():
                logger.warning("El scanner ya está en marcha")
                return
            self._stop.clear()
            self._scheduler = threading.Thread(
                target=self._run_loop, name="ScannerScheduler", daemon=True
            )
            self._status = replace(self._status, running=True)
            self._scheduler.start()
        logger.info(
            f"Scanner iniciado: cada {self.settings.interval_secs:.0f}s, "
            f"{len(self.targets)} objetivos, tz={self.settings.timezone}"
        )

    def stop(self, timeout: float | None = None) -> None:
        """Para el planificador y espera a que termine el tick en curso."""
        self._stop.set()
        scheduler = self._scheduler
        if scheduler is not None:
            scheduler.join(timeout=timeout)
        # el planificador ya no lanza ticks: el worker leído aquí es el último
        worker = self._worker
        if worker is not None:
            worker.join(timeout=timeout)
        with self._state_lock:
            self._scheduler = None
            self._status = replace(self._status, running=False)
        logger.info("Scanner detenido")

    def is_running(self) -> bool:
        with self._state_lock:
            return self._scheduler is not None and self._scheduler.is_alive()

    def status(self) -> ScannerStatus:
        with self._state_lock:
            return self._status

    def is_market_open(self, now: datetime | None = None) -> bool:
        """Días laborables dentro de [market_open, market_close) en la zona configurada."""
        now = now or self._clock()
        local = now.astimezone(self._tz) if now.tzinfo else now.replace(tzinfo=self._tz)
        if local.weekday() >= 5:
            return False
        return self.settings.market_open <= local.time() < self.settings.market_close

    def tick(self, now: datetime | None = None) -> list[Signal]:
        """Un barrido completo y síncrono. Devuelve las señales accionables."""
        now = now or self._clock()
        if not self.is_market_open(now):
            logger.debug(f"Mercado cerrado ({now.isoformat()}), tick sin trabajo")
            return []

        end = now.date()
        symbols = self.universe if self.universe is not None else self.provider.symbols()
        emitted: list[Signal] = []
        trades = 0
        for target in self.targets:
            warmup = target_warmup(target)
            frames = load_frames(self.provider, symbols, end, target)
            for symbol in symbols:
                frame = frames.get(symbol)
                if frame is None:
                    continue
                if len(frame) < warmup:
                    logger.debug(f"{symbol}: {len(frame)} barras < calentamiento {warmup}")
                    continue
                signal = evaluate_at(frame, len(frame) - 1, symbol, target, self.scoring)
                if not signal.is_actionable:
                    continue
                emitted.append(signal)
                self._alert(signal, now)
                if self.executor is not None and self.settings.execute_trades:
                    if self.executor.execute_signal(signal, now).ok:
                        trades += 1

        with self._state_lock:
            self._status = replace(
                self._status,
                ticks_run=self._status.ticks_run + 1,
                signals_emitted=self._status.signals_emitted + len(emitted),
                trades_executed=self._status.trades_executed + trades,
                last_tick_at=now,
            )
        logger.info(f"Tick {now:%H:%M:%S}: {len(emitted)} señales, {trades} operaciones")
        return emitted

    # ----------------------------- Internos ----------------------------------------

    def _run_loop(self) -> None:
        n = 0
        while not self._stop.is_set():
            n += 1
            self._launch_tick(n)
            if self._stop.wait(self.settings.interval_secs):
                break

    def _launch_tick(self, n: int) -> None:
        if self._stop.is_set():
            return
        worker = self._worker
        if worker is not None and worker.is_alive():
            with self._state_lock:
                self._status = replace(self._status, ticks_skipped=self._status.ticks_skipped + 1)
            logger.warning(f"Tick {n} saltado: el anterior ({worker.name}) sigue en curso")
            return
        self._worker = threading.Thread(target=self._safe_tick, name=f"ScannerTick-{n}", daemon=True)
        self._worker.start()

    def _safe_tick(self) -> None:
        try:
            self.tick()
        except Exception as e:
            # un tick roto no tumba el bot
            logger.exception("Error en el tick del scanner")
            with self._state_lock:
                self._status = replace(self._status, last_error=repr(e))

    def _alert(self, signal: Signal, now: datetime) -> None:
        """Emite la señal salvo que la misma alerta saltara dentro del cooldown."""
        key = (signal.symbol, signal.strategy, signal.classification)
        cooldown = timedelta(minutes=self.settings.alert_cooldown_minutes)
        with self._state_lock:
            last = self._last_alert.get(key)
            if last is not None and now - last < cooldown:
                return
            self._last_alert[key] = now
        self.events.emit("signal", {"signal": signal, "at": now})


__all__ = ["LiveScanner", "ScannerStatus"]
