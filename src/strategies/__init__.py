# src/strategies/__init__.py
"""
Familias de estrategia, composite y camino de evaluación compartido.

Importar el paquete registra las familias incluidas (momentum,
trend_following, mean_reversion, breakout) vía `@register_strategy`.
"""

from __future__ import annotations

from . import families  # noqa: F401  (registra las familias)
from .base import FamilyResult, StrategyFamily, get_strategy, list_strategies, register_strategy
from .composite import CompositeStrategy, SignalFilter, rank_signals
from .evaluation import (
    Target,
    evaluate_at,
    evaluate_snapshot,
    load_frames,
    prepare_frames,
    resolve_target,
    target_warmup,
)

__all__ = [
    "CompositeStrategy",
    "FamilyResult",
    "SignalFilter",
    "StrategyFamily",
    "Target",
    "evaluate_at",
    "evaluate_snapshot",
    "get_strategy",
    "list_strategies",
    "load_frames",
    "prepare_frames",
    "rank_signals",
    "register_strategy",
    "resolve_target",
    "target_warmup",
]
