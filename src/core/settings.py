# src/core/settings.py
"""
Ajustes tipados del motor, construidos a partir del dict de config_loader.

Toda la validación de valores ocurre aquí, en tiempo de carga: un ajuste
inválido nunca llega a una evaluación. Se acumulan TODOS los problemas y se
lanza una única ConfigurationError con la lista completa.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import time
import math
from typing import Any, Mapping
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from core.config_loader import get_config, get_nested
from core.errors import ConfigurationError

DEFAULT_COMPOSITE_WEIGHTS: dict[str, float] = {
    "momentum": 0.30,
    "trend_following": 0.35,
    "mean_reversion": 0.15,
    "breakout": 0.20,
}

WEIGHTS_TOLERANCE = 1e-9


@dataclass(frozen=True)
class ScoringSettings:
    corroboration_bonus: float = 0.05
    max_reasons: int = 5


@dataclass(frozen=True)
class CompositeSettings:
    weights: Mapping[str, float] = field(
        default_factory=lambda: dict(DEFAULT_COMPOSITE_WEIGHTS)
    )


@dataclass(frozen=True)
class BacktestSettings:
    initial_capital: float = 100_000_000.0
    commission_rate: float = 0.0015
    risk_per_trade: float = 0.02
    risk_free_rate: float = 0.0
    use_exit_levels: bool = False


@dataclass(frozen=True)
class ScannerSettings:
    interval_secs: float = 60.0
    timezone: str = "Asia/Ho_Chi_Minh"
    market_open: time = time(9, 0)
    market_close: time = time(15, 0)
    confidence_threshold: float = 0.70
    alert_cooldown_minutes: float = 60.0
    execute_trades: bool = True
    capital: float = 100_000_000.0

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


@dataclass(frozen=True)
class EngineSettings:
    data_dir: str = "data/prices"
    rules_file: str | None = None
    scoring: ScoringSettings = field(default_factory=ScoringSettings)
    composite: CompositeSettings = field(default_factory=CompositeSettings)
    backtest: BacktestSettings = field(default_factory=BacktestSettings)
    scanner: ScannerSettings = field(default_factory=ScannerSettings)


# ------------------------------------------------------------
# Validadores reutilizables
# ------------------------------------------------------------
def weights_problems(weights: Mapping[str, float]) -> list[str]:
    """Problemas de una tabla de pesos del composite (vacía si es válida)."""
    problems: list[str] = []
    if not weights:
        return ["composite.weights no puede estar vacío"]
    for name, w in weights.items():
        if not isinstance(w, (int, float)) or isinstance(w, bool) or not math.isfinite(w):
            problems.append(f"peso de '{name}' no numérico: {w!r}")
        elif w < 0:
            problems.append(f"peso de '{name}' negativo: {w}")
    if not problems:
        total = sum(float(w) for w in weights.values())
        if abs(total - 1.0) > WEIGHTS_TOLERANCE:
            problems.append(f"los pesos deben sumar 1.0 (suman {total:.6f})")
    return problems


def validate_weights(weights: Mapping[str, float]) -> dict[str, float]:
    problems = weights_problems(weights)
    if problems:
        raise ConfigurationError("Pesos del composite inválidos", problems)
    return {k: float(v) for k, v in weights.items()}


def _parse_hhmm(raw: Any, label: str, errors: list[str]) -> time | None:
    if isinstance(raw, time):
        return raw
    try:
        hh, mm = str(raw).strip().split(":")
        return time(int(hh), int(mm))
    except (ValueError, TypeError):
        errors.append(f"{label} debe tener formato HH:MM (recibido: {raw!r})")
        return None


def _number(source: Mapping[str, Any], keys: tuple[str, ...], default: float, errors: list[str]):
    value = get_nested(dict(source), *keys, default=default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        errors.append(f"{'.'.join(keys)} debe ser numérico (recibido: {value!r})")
        return default
    return float(value)


# ------------------------------------------------------------
# Construcción desde el dict de configuración
# ------------------------------------------------------------
def load_settings(cfg: Mapping[str, Any] | None = None) -> EngineSettings:
    """Construye EngineSettings validando rangos. Lanza ConfigurationError."""
    if cfg is None:
        cfg = get_config()
    errors: list[str] = []

    bonus = _number(cfg, ("scoring", "corroboration_bonus"), 0.05, errors)
    max_reasons = _number(cfg, ("scoring", "max_reasons"), 5, errors)
    if not 0.0 <= bonus <= 1.0:
        errors.append("scoring.corroboration_bonus debe estar en [0, 1]")
    if max_reasons < 1:
        errors.append("scoring.max_reasons debe ser >= 1")

    weights = get_nested(dict(cfg), "composite", "weights", default=DEFAULT_COMPOSITE_WEIGHTS)
    if not isinstance(weights, Mapping):
        errors.append("composite.weights debe ser un mapa familia -> peso")
        weights = DEFAULT_COMPOSITE_WEIGHTS
    errors.extend(weights_problems(weights))

    capital = _number(cfg, ("backtest", "initial_capital"), 100_000_000.0, errors)
    commission = _number(cfg, ("backtest", "commission_rate"), 0.0015, errors)
    risk = _number(cfg, ("backtest", "risk_per_trade"), 0.02, errors)
    rf = _number(cfg, ("backtest", "risk_free_rate"), 0.0, errors)
    if capital <= 0:
        errors.append("backtest.initial_capital debe ser > 0")
    if not 0.0 <= commission < 1.0:
        errors.append("backtest.commission_rate debe estar en [0, 1)")
    if not 0.0 < risk <= 1.0:
        errors.append("backtest.risk_per_trade debe estar en (0, 1]")

    interval = _number(cfg, ("scanner", "interval_secs"), 60.0, errors)
    confidence = _number(cfg, ("scanner", "confidence_threshold"), 0.70, errors)
    cooldown = _number(cfg, ("scanner", "alert_cooldown_minutes"), 60.0, errors)
    scanner_capital = _number(cfg, ("scanner", "capital"), 100_000_000.0, errors)
    if interval <= 0:
        errors.append("scanner.interval_secs debe ser > 0")
    if not 0.0 <= confidence <= 1.0:
        errors.append("scanner.confidence_threshold debe estar en [0, 1]")
    if cooldown < 0:
        errors.append("scanner.alert_cooldown_minutes debe ser >= 0")

    tz_name = str(get_nested(dict(cfg), "scanner", "timezone", default="Asia/Ho_Chi_Minh"))
    try:
        ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        errors.append(f"scanner.timezone desconocida: {tz_name}")

    open_t = _parse_hhmm(get_nested(dict(cfg), "scanner", "market_open", default="09:00"),
                         "scanner.market_open", errors)
    close_t = _parse_hhmm(get_nested(dict(cfg), "scanner", "market_close", default="15:00"),
                          "scanner.market_close", errors)
    if open_t and close_t and open_t >= close_t:
        errors.append("scanner.market_open debe ser anterior a scanner.market_close")

    if errors:
        raise ConfigurationError("Configuración inválida", errors)

    return EngineSettings(
        data_dir=str(get_nested(dict(cfg), "data", "dir", default="data/prices")),
        rules_file=get_nested(dict(cfg), "data", "rules_file"),
        scoring=ScoringSettings(corroboration_bonus=bonus, max_reasons=int(max_reasons)),
        composite=CompositeSettings(weights={k: float(v) for k, v in weights.items()}),
        backtest=BacktestSettings(
            initial_capital=capital,
            commission_rate=commission,
            risk_per_trade=risk,
            risk_free_rate=rf,
            use_exit_levels=bool(get_nested(dict(cfg), "backtest", "use_exit_levels", default=False)),
        ),
        scanner=ScannerSettings(
            interval_secs=interval,
            timezone=tz_name,
            market_open=open_t or time(9, 0),
            market_close=close_t or time(15, 0),
            confidence_threshold=confidence,
            alert_cooldown_minutes=cooldown,
            execute_trades=bool(get_nested(dict(cfg), "scanner", "execute_trades", default=True)),
            capital=scanner_capital,
        ),
    )
