# src/strategies/base.py
"""
Tipos base de las familias de estrategia y registro global.

Incluye:
- `StrategyFamily`: una familia (momentum, trend_following...) definida como un
  RuleSet de dos lados (reglas BUY y reglas SELL) evaluado por el Rule Scorer.
- `FamilyResult`: score direccional (50 = neutro) + confianza + razones.
- Registro global: register_strategy / get_strategy / list_strategies.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from core.errors import ConfigurationError
from core.settings import ScoringSettings
from core.types import Signal, SignalClass
from features.technical_indicators import IndicatorSnapshot
from rules.models import RuleSet
from rules.scorer import DEFAULT_SCORING, clamp, classify_directional, price_levels, score_rule

# ------------------------------- Tipos -------------------------------------


@dataclass(frozen=True)
class FamilyResult:
    name: str
    label: str
    score: float  # direccional: 50 + (buy - sell) / 2
    buy_score: float
    sell_score: float
    confidence: float
    classification: SignalClass
    reasons: tuple[str, ...]

    @property
    def side(self) -> int:
        """+1 alcista, -1 bajista, 0 neutro (según la tabla de cortes)."""
        if self.classification in ("STRONG_BUY", "BUY"):
            return 1
        if self.classification in ("STRONG_SELL", "SELL"):
            return -1
        return 0


@dataclass(frozen=True)
class StrategyFamily:
    """
    Familia de estrategia de dos lados.

    score = 50 + (mejor score BUY - mejor score SELL) / 2  ∈ [0, 100]
    """

    name: str
    label: str
    rule_set: RuleSet
    target_percent: float = 10.0
    stop_loss_percent: float = 5.0
    description: str = ""

    @property
    def indicators(self) -> set[str]:
        return self.rule_set.indicators

    def score(
        self,
        current: IndicatorSnapshot,
        previous: IndicatorSnapshot | None = None,
        scoring: ScoringSettings = DEFAULT_SCORING,
    ) -> FamilyResult:
        buy = [score_rule(r, current, previous, scoring) for r in self.rule_set.rules
               if r.is_active and r.signal_type == "BUY"]
        sell = [score_rule(r, current, previous, scoring) for r in self.rule_set.rules
                if r.is_active and r.signal_type == "SELL"]
        best_buy = max(buy, key=lambda res: res.score, default=None)
        best_sell = max(sell, key=lambda res: res.score, default=None)
        buy_score = best_buy.score if best_buy else 0.0
        sell_score = best_sell.score if best_sell else 0.0

        directional = 50.0 + (buy_score - sell_score) / 2.0
        dominant = best_buy if directional >= 50.0 else best_sell
        return FamilyResult(
            name=self.name,
            label=self.label,
            score=directional,
            buy_score=buy_score,
            sell_score=sell_score,
            confidence=clamp(dominant.confidence) if dominant else 0.0,
            classification=classify_directional(directional),
            reasons=dominant.reasons if dominant else (),
        )

    def evaluate(
        self,
        current: IndicatorSnapshot,
        previous: IndicatorSnapshot | None = None,
        scoring: ScoringSettings = DEFAULT_SCORING,
    ) -> Signal:
        """Señal de la familia sola (misma tabla de cortes que el composite)."""
        res = self.score(current, previous, scoring)
        side = "BUY" if res.side > 0 else "SELL" if res.side < 0 else ""
        target, stop = price_levels(side, current.price, self.target_percent, self.stop_loss_percent)
        return Signal(
            symbol=current.symbol,
            strategy=self.name,
            classification=res.classification,
            score=res.score,
            confidence=res.confidence,
            price=current.price or 0.0,
            target_price=target,
            stop_loss=stop,
            reasons=res.reasons,
            generated_at=current.date,
            indicators={k: current.get(k) for k in sorted(self.indicators)},
        )


# ------------------------------- Registro ---------------------------------

FamilyFactory = Callable[[], StrategyFamily]

_REGISTRY: dict[str, FamilyFactory] = {}


def register_strategy(*args):
    """
    Registra una fábrica de familia en el registro global.

    Usos soportados:
      - @register_strategy("nombre")
      - register_strategy("nombre", fabrica)   # llamada directa
    """

    def _register(name: str, factory: FamilyFactory) -> FamilyFactory:
        _REGISTRY[name] = factory
        return factory

    if len(args) == 2 and isinstance(args[0], str) and callable(args[1]):
        return _register(args[0], args[1])

    if len(args) == 1 and isinstance(args[0], str):
        name = args[0]

        def _decorator(factory: FamilyFactory) -> FamilyFactory:
            return _register(name, factory)

        return _decorator

    raise TypeError("Uso: @register_strategy('nombre') o register_strategy('nombre', fabrica)")


def get_strategy(name: str) -> StrategyFamily:
    if name in _REGISTRY:
        return _REGISTRY[name]()
    raise ConfigurationError(f"Estrategia no registrada: {name}. Disponibles: {list_strategies()}")


def list_strategies() -> list[str]:
    return sorted(_REGISTRY)


__all__ = [
    "FamilyResult",
    "StrategyFamily",
    "register_strategy",
    "get_strategy",
    "list_strategies",
]
