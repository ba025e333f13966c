# src/strategies/composite.py
"""
Composite Aggregator: combina las familias registradas con pesos fijos.

    score = Σ w_i · score_i           (scores direccionales, 50 = neutro)
    confianza = Σ w_i · conf_i + bonus · (familias que coinciden - 1)

La clasificación usa la misma tabla de cortes que el Rule Scorer. Los pesos
se validan al construir la estrategia (suma 1.0 ± 1e-9).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping, Sequence

from core.errors import ConfigurationError
from core.settings import DEFAULT_COMPOSITE_WEIGHTS, ScoringSettings, validate_weights
from core.types import ALL_CLASSES, BUY_CLASSES, SELL_CLASSES, Signal
from features.technical_indicators import IndicatorSnapshot
from rules.scorer import DEFAULT_SCORING, clamp, classify_directional
from strategies.base import FamilyResult, StrategyFamily, get_strategy

BUY_TARGET_PERCENT = 10.0
STRONG_BUY_TARGET_PERCENT = 15.0
STOP_LOSS_PERCENT = 5.0


class CompositeStrategy:
    """Estrategia compuesta sobre las familias registradas."""

    name = "composite"

    def __init__(
        self,
        weights: Mapping[str, float] | None = None,
        scoring: ScoringSettings = DEFAULT_SCORING,
    ) -> None:
        self.weights = validate_weights(weights if weights is not None else DEFAULT_COMPOSITE_WEIGHTS)
        self.scoring = scoring
        self.families: dict[str, StrategyFamily] = {n: get_strategy(n) for n in self.weights}

    @property
    def indicators(self) -> set[str]:
        out: set[str] = {"PRICE", "TRADING_VALUE"}
        for fam in self.families.values():
            out |= fam.indicators
        return out

    def breakdown(
        self, current: IndicatorSnapshot, previous: IndicatorSnapshot | None = None
    ) -> dict[str, FamilyResult]:
        return {n: fam.score(current, previous, self.scoring) for n, fam in self.families.items()}

    def evaluate(
        self, current: IndicatorSnapshot, previous: IndicatorSnapshot | None = None
    ) -> Signal:
        parts = self.breakdown(current, previous)
        score = sum(self.weights[n] * res.score for n, res in parts.items())
        classification = classify_directional(score)
        side = 1 if classification in BUY_CLASSES else -1 if classification in SELL_CLASSES else 0

        agreeing = sum(1 for res in parts.values() if side != 0 and res.side == side)
        confidence = sum(self.weights[n] * res.confidence for n, res in parts.items())
        confidence = clamp(confidence + self.scoring.corroboration_bonus * max(0, agreeing - 1))

        # razones de las familias con opinión, de mayor a menor peso
        reasons: list[str] = []
        for n in sorted(parts, key=lambda k: -self.weights[k]):
            res = parts[n]
            if res.side == 0 or (side != 0 and res.side != side):
                continue
            reasons.extend(f"[{res.label}] {r}" for r in res.reasons)

        price = current.price
        target = stop = None
        if price is not None and side > 0:
            pct = STRONG_BUY_TARGET_PERCENT if classification == "STRONG_BUY" else BUY_TARGET_PERCENT
            target, stop = price * (1 + pct / 100.0), price * (1 - STOP_LOSS_PERCENT / 100.0)
        elif price is not None and side < 0:
            target, stop = price * (1 - BUY_TARGET_PERCENT / 100.0), price * (1 + STOP_LOSS_PERCENT / 100.0)

        return Signal(
            symbol=current.symbol,
            strategy=self.name,
            classification=classification,
            score=score,
            confidence=confidence,
            price=price if price is not None else 0.0,
            target_price=target,
            stop_loss=stop,
            reasons=tuple(reasons[: self.scoring.max_reasons]),
            generated_at=current.date,
            indicators={k: current.get(k) for k in sorted(self.indicators)},
        )


# ==================== Filtro de screening ====================


@dataclass(frozen=True)
class SignalFilter:
    """
    Filtro aplicado DESPUÉS de puntuar y ordenar.

    - min_strength: score mínimo (0–100)
    - min_confidence: confianza mínima (0–1)
    - min_trading_value: TRADING_VALUE mínimo (si falta el dato, no pasa)
    - classifications: clases admitidas (vacío = todas)
    - limit: nº máximo de señales devueltas (None = sin límite)
    """

    min_strength: float = 0.0
    min_confidence: float = 0.0
    min_trading_value: float = 0.0
    classifications: Sequence[str] = ()
    limit: int | None = None

    def __post_init__(self) -> None:
        problems = []
        if not 0.0 <= self.min_strength <= 100.0:
            problems.append("min_strength debe estar en [0, 100]")
        if not 0.0 <= self.min_confidence <= 1.0:
            problems.append("min_confidence debe estar en [0, 1]")
        if self.min_trading_value < 0:
            problems.append("min_trading_value debe ser >= 0")
        unknown = [c for c in self.classifications if c not in ALL_CLASSES]
        if unknown:
            problems.append(f"clasificaciones desconocidas: {unknown}")
        if self.limit is not None and self.limit < 0:
            problems.append("limit debe ser >= 0")
        if problems:
            raise ConfigurationError("SignalFilter inválido", problems)

    def accepts(self, signal: Signal) -> bool:
        if signal.score < self.min_strength or signal.confidence < self.min_confidence:
            return False
        if self.classifications and signal.classification not in self.classifications:
            return False
        if self.min_trading_value > 0:
            tv = signal.indicators.get("TRADING_VALUE")
            if tv is None or tv < self.min_trading_value:
                return False
        return True


def rank_signals(signals: Iterable[Signal], flt: SignalFilter | None = None) -> list[Signal]:
    """Ordena por score desc (empates por símbolo), filtra y aplica el límite."""
    ranked = sorted(signals, key=lambda s: (-s.score, s.symbol))
    if flt is None:
        return ranked
    kept = [s for s in ranked if flt.accepts(s)]
    return kept if flt.limit is None else kept[: flt.limit]


__all__ = [
    "CompositeStrategy",
    "SignalFilter",
    "rank_signals",
    "BUY_TARGET_PERCENT",
    "STRONG_BUY_TARGET_PERCENT",
    "STOP_LOSS_PERCENT",
]
