# src/strategies/evaluation.py
"""
Camino de evaluación compartido por backtest, scanner y la fachada.

    frames = load_frames(provider, symbols, end, target)
    signal = evaluate_at(frames[sym], idx, sym, target)

`evaluate_at` es una función pura de (historia hasta idx, objetivo): no lee
reloj ni estado global. `load_frames` construye los indicadores SIEMPRE desde
la primera barra del proveedor y con el mismo universo de fuerza relativa, así
que backtest, `evaluate` y scanner dan la misma señal para una fecha dada.
"""

from __future__ import annotations

from collections.abc import Collection, Sequence
from datetime import date
import re
from typing import Mapping, Union

from loguru import logger
import pandas as pd

from core.errors import ConfigurationError, SimulationFailure
from core.settings import ScoringSettings
from core.types import Signal
from data.history import PriceHistoryProvider, validate_history
from features.technical_indicators import (
    RS_KINDS,
    IndicatorEngine,
    IndicatorSnapshot,
    compute_relative_strength,
    snapshot_at,
    warmup_bars,
)
from rules.models import Rule, RuleSet
from rules.scorer import DEFAULT_SCORING, evaluate_rule, evaluate_rule_set
from rules.store import RuleStore
from rules.templates import TEMPLATES, breakout_strategy, macd_strategy, rsi_strategy, sma_crossover
from strategies.base import StrategyFamily, get_strategy, list_strategies
from strategies.composite import CompositeStrategy

Target = Union[Rule, RuleSet, StrategyFamily, CompositeStrategy]

_SMA_CROSSOVER = re.compile(r"^sma_crossover(?:_(\d+)_(\d+))?$")
_RSI_STRATEGY = re.compile(r"^rsi_strategy(?:_(\d+(?:\.\d+)?)_(\d+(?:\.\d+)?))?$")
_MACD_STRATEGY = re.compile(r"^macd_strategy(_confirmed)?$")
_BREAKOUT_STRATEGY = re.compile(r"^breakout_strategy(?:_(\d+))?$")

# Inicio "abierto" del histórico: los indicadores se siembran en la primera barra
# del proveedor, nunca en una ventana relativa a la fecha evaluada.
HISTORY_START = date(1900, 1, 1)


def target_name(target: Target) -> str:
    return target.name


def target_indicators(target: Target) -> set[str]:
    return set(target.indicators)


def target_warmup(target: Target) -> int:
    """Barras mínimas antes de evaluar (las RS no cuentan)."""
    return warmup_bars(target_indicators(target))


def resolve_target(
    target: Target | str,
    *,
    rule_store: RuleStore | None = None,
    weights: Mapping[str, float] | None = None,
    scoring: ScoringSettings = DEFAULT_SCORING,
) -> Target:
    """
    Resuelve un nombre a un objetivo evaluable. Orden de búsqueda:
    'composite' -> familias registradas -> sma_crossover[_S_L] -> plantillas
    -> rule_store. ConfigurationError si no se encuentra.
    """
    if not isinstance(target, str):
        return target
    name = target.strip()
    if name == CompositeStrategy.name:
        return CompositeStrategy(weights, scoring)
    if name in list_strategies():
        return get_strategy(name)
    m = _SMA_CROSSOVER.match(name)
    if m:
        if m.group(1):
            return sma_crossover(int(m.group(1)), int(m.group(2)))
        return sma_crossover()
    m = _RSI_STRATEGY.match(name)
    if m:
        if m.group(1):
            return rsi_strategy(float(m.group(1)), float(m.group(2)))
        return rsi_strategy()
    m = _MACD_STRATEGY.match(name)
    if m:
        return macd_strategy(confirm_line=bool(m.group(1)))
    m = _BREAKOUT_STRATEGY.match(name)
    if m:
        return breakout_strategy(int(m.group(1))) if m.group(1) else breakout_strategy()
    if name in TEMPLATES:
        return TEMPLATES[name]
    if rule_store is not None:
        return rule_store.get(name)
    raise ConfigurationError(f"Objetivo de evaluación desconocido: {name!r}")


def evaluate_snapshot(
    target: Target,
    current: IndicatorSnapshot,
    previous: IndicatorSnapshot | None = None,
    scoring: ScoringSettings = DEFAULT_SCORING,
) -> Signal:
    if isinstance(target, CompositeStrategy):
        return target.evaluate(current, previous)
    if isinstance(target, StrategyFamily):
        return target.evaluate(current, previous, scoring)
    if isinstance(target, RuleSet):
        return evaluate_rule_set(target, current, previous, scoring)
    if isinstance(target, Rule):
        return evaluate_rule(target, current, previous, scoring)
    raise ConfigurationError(f"Tipo de objetivo no soportado: {type(target).__name__}")


def evaluate_at(
    frame: pd.DataFrame,
    idx: int,
    symbol: str,
    target: Target,
    scoring: ScoringSettings = DEFAULT_SCORING,
) -> Signal:
    """Señal del objetivo en la fila posicional `idx` de un frame ya calculado."""
    if idx < 0:
        idx += len(frame)
    if not 0 <= idx < len(frame):
        raise IndexError(f"índice {idx} fuera del frame de {symbol} ({len(frame)} filas)")
    current = snapshot_at(frame, idx, symbol)
    previous = snapshot_at(frame, idx - 1, symbol) if idx > 0 else None
    return evaluate_snapshot(target, current, previous, scoring)


def prepare_frames(ohlcv: Mapping[str, pd.DataFrame], target: Target) -> dict[str, pd.DataFrame]:
    """
    Calcula los indicadores que necesita `target` para cada símbolo. Las RS
    solo se rellenan con un universo de 2+ símbolos y si el objetivo las usa.
    """
    indicators = target_indicators(target)
    engine = IndicatorEngine.for_indicators(indicators)
    frames = {sym: engine.compute(df) for sym, df in ohlcv.items()}
    if len(frames) > 1 and indicators & RS_KINDS:
        frames = compute_relative_strength(frames)
    return frames


# ==================== CARGA COMPARTIDA ====================


def history_universe(provider: PriceHistoryProvider, symbols: Sequence[str], target: Target) -> list[str]:
    """
    Símbolos a cargar para evaluar `symbols`. Si el objetivo usa fuerza
    relativa, el universo es todo el proveedor más los pedidos; así el rango RS
    de un símbolo en una fecha no depende del modo que lo calcula.
    """
    if target_indicators(target) & RS_KINDS:
        return sorted(set(provider.symbols()) | set(symbols))
    return list(dict.fromkeys(symbols))


def load_history(
    provider: PriceHistoryProvider,
    symbols: Sequence[str],
    end: date,
    *,
    required: Collection[str] = (),
) -> dict[str, pd.DataFrame]:
    """
    Histórico validado de cada símbolo hasta `end` (incluido), desde la primera
    barra disponible. Un símbolo corrupto fuera de `required` se excluye con
    un aviso; uno de `required` propaga la SimulationFailure.
    """
    out: dict[str, pd.DataFrame] = {}
    for sym in symbols:
        try:
            out[sym] = validate_history(sym, provider.get_history(sym, HISTORY_START, end))
        except SimulationFailure as exc:
            if sym in required:
                raise
            logger.warning(f"{sym} excluido: {exc}")
    return out


def load_frames(
    provider: PriceHistoryProvider,
    symbols: Sequence[str],
    end: date,
    target: Target,
    *,
    required: Collection[str] = (),
) -> dict[str, pd.DataFrame]:
    """Carga + indicadores: el único camino hacia frames evaluables en todos los modos."""
    universe = history_universe(provider, symbols, target)
    return prepare_frames(load_history(provider, universe, end, required=required), target)


__all__ = [
    "Target",
    "evaluate_at",
    "evaluate_snapshot",
    "history_universe",
    "load_frames",
    "load_history",
    "prepare_frames",
    "resolve_target",
    "target_indicators",
    "target_name",
    "target_warmup",
    "HISTORY_START",
]
