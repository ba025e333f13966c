# src/rules/scorer.py
"""
Rule Scorer: condiciones ponderadas -> score 0–100, clasificación, confianza y
razones legibles.

Reglas de puntuación:
- Un grupo evalúa sus condiciones por order_index. Si falla una condición
  `is_required`, el grupo queda bloqueado: score 0 y no pasa.
- Score del grupo = pesos satisfechos / pesos totales * 100.
- Score de la regla = pesos satisfechos de todos sus grupos activos / pesos
  totales * 100. Una condición requerida fallida o un grupo `required` que no
  pasa su expresión AND/OR bloquean la regla entera (score 0, no dispara).

Tabla de cortes (score direccional, 50 = neutro), compartida con el composite:
    >= 80 STRONG_BUY | >= 60 BUY | <= 20 STRONG_SELL | <= 40 SELL | resto HOLD
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from core.settings import ScoringSettings
from core.types import BUY_CLASSES, SELL_CLASSES, Signal, SignalClass
from features.technical_indicators import IndicatorSnapshot
from rules.conditions import ConditionResult, evaluate_condition, evaluate_expression
from rules.models import ConditionGroup, Rule, RuleSet

STRONG_BUY_AT = 80.0
BUY_AT = 60.0
SELL_AT = 40.0
STRONG_SELL_AT = 20.0

DEFAULT_SCORING = ScoringSettings()


def classify_directional(score: float) -> SignalClass:
    """Tabla única de cortes. Simétrica alrededor de 50."""
    if score >= STRONG_BUY_AT:
        return "STRONG_BUY"
    if score >= BUY_AT:
        return "BUY"
    if score <= STRONG_SELL_AT:
        return "STRONG_SELL"
    if score <= SELL_AT:
        return "SELL"
    return "HOLD"


def clamp(x: float, lo: float = 0.0, hi: float = 1.0) -> float:
    return max(lo, min(hi, x))


@dataclass(frozen=True)
class GroupResult:
    group: ConditionGroup
    results: tuple[ConditionResult, ...]
    passed_weight: int
    total_weight: int
    passed: bool
    blocked: bool

    @property
    def score(self) -> float:
        if self.total_weight == 0:
            return 0.0
        return self.passed_weight / self.total_weight * 100.0


@dataclass(frozen=True)
class RuleResult:
    rule: Rule
    groups: tuple[GroupResult, ...]
    score: float
    fired: bool
    blocked: bool
    confidence: float
    reasons: tuple[str, ...]

    @property
    def passing_groups(self) -> int:
        return sum(1 for g in self.groups if g.passed)


def score_group(
    group: ConditionGroup,
    current: IndicatorSnapshot,
    previous: IndicatorSnapshot | None = None,
) -> GroupResult:
    results = tuple(evaluate_condition(c, current, previous) for c in group.conditions)
    blocked = any(r.condition.is_required and not r.passed for r in results)
    logic_ok = evaluate_expression(group.expression, results)
    passed_weight = 0 if blocked else sum(r.condition.weight for r in results if r.passed)
    return GroupResult(
        group=group,
        results=results,
        passed_weight=passed_weight,
        total_weight=group.total_weight,
        passed=logic_ok and not blocked,
        blocked=blocked,
    )


def confidence_from(
    score: float,
    results: Iterable[ConditionResult],
    passing_groups: int,
    corroboration_bonus: float,
) -> float:
    """
    confianza = score/100 * (0.75 + 0.25 * degree medio) + bonus * (grupos que pasan - 1)
    Con score 0 la confianza es 0.
    """
    if score <= 0:
        return 0.0
    degrees = [r.degree for r in results if r.passed]
    avg_degree = sum(degrees) / len(degrees) if degrees else 1.0
    base = score / 100.0 * (0.75 + 0.25 * avg_degree)
    return clamp(base + corroboration_bonus * max(0, passing_groups - 1))


def score_rule(
    rule: Rule,
    current: IndicatorSnapshot,
    previous: IndicatorSnapshot | None = None,
    scoring: ScoringSettings = DEFAULT_SCORING,
) -> RuleResult:
    refs = rule.active_groups
    group_results = tuple(score_group(ref.group, current, previous) for ref in refs)

    blocked = any(g.blocked for g in group_results) or any(
        ref.required and not g.passed for ref, g in zip(refs, group_results)
    )
    total = sum(g.total_weight for g in group_results)
    passed = sum(g.passed_weight for g in group_results)
    score = 0.0 if blocked or total == 0 else passed / total * 100.0
    fired = not blocked and score > 0 and score >= rule.min_score

    live_results = [r for g in group_results if not g.blocked for r in g.results]
    reasons = tuple(r.reason for r in live_results if r.passed and r.reason)
    passing = sum(1 for g in group_results if g.passed)

    return RuleResult(
        rule=rule,
        groups=group_results,
        score=score,
        fired=fired,
        blocked=blocked,
        confidence=confidence_from(score, live_results, passing, scoring.corroboration_bonus),
        reasons=reasons[: scoring.max_reasons],
    )


def classify_rule(result: RuleResult) -> SignalClass:
    """HOLD si no dispara; si dispara nunca HOLD (se promueve a BUY/SELL)."""
    rule = result.rule
    if not result.fired or rule.signal_type == "ALERT":
        return "HOLD"
    if rule.signal_type == "BUY":
        cls = classify_directional(result.score)
        return cls if cls in BUY_CLASSES else "BUY"
    cls = classify_directional(100.0 - result.score)
    return cls if cls in SELL_CLASSES else "SELL"


def price_levels(
    side: str, price: float | None, target_percent: float, stop_loss_percent: float
) -> tuple[float | None, float | None]:
    """(target, stop) para BUY; invertidos para SELL. None sin precio o sin lado."""
    if price is None or side not in ("BUY", "SELL"):
        return None, None
    t, s = target_percent / 100.0, stop_loss_percent / 100.0
    if side == "BUY":
        return price * (1.0 + t), price * (1.0 - s)
    return price * (1.0 - t), price * (1.0 + s)


def _signal_from(result: RuleResult, current: IndicatorSnapshot, strategy: str) -> Signal:
    rule = result.rule
    classification = classify_rule(result)
    side = "BUY" if classification in BUY_CLASSES else "SELL" if classification in SELL_CLASSES else ""
    target, stop = price_levels(side, current.price, rule.target_percent, rule.stop_loss_percent)
    return Signal(
        symbol=current.symbol,
        strategy=strategy,
        classification=classification,
        score=result.score,
        confidence=result.confidence,
        price=current.price if current.price is not None else 0.0,
        target_price=target,
        stop_loss=stop,
        reasons=result.reasons,
        generated_at=current.date,
        indicators={k: current.get(k) for k in sorted(rule.indicators)},
        alert=result.fired and rule.signal_type == "ALERT",
    )


def evaluate_rule(
    rule: Rule,
    current: IndicatorSnapshot,
    previous: IndicatorSnapshot | None = None,
    scoring: ScoringSettings = DEFAULT_SCORING,
) -> Signal:
    """Señal de una regla suelta. Función pura de (snapshots, regla)."""
    if not rule.is_active:
        return Signal(
            symbol=current.symbol,
            strategy=rule.name,
            classification="HOLD",
            score=0.0,
            confidence=0.0,
            price=current.price or 0.0,
            generated_at=current.date,
        )
    return _signal_from(score_rule(rule, current, previous, scoring), current, rule.name)


def score_rule_set(
    rule_set: RuleSet,
    current: IndicatorSnapshot,
    previous: IndicatorSnapshot | None = None,
    scoring: ScoringSettings = DEFAULT_SCORING,
) -> list[RuleResult]:
    """Resultados de todas las reglas activas, ordenados por (prioridad, score) desc."""
    results = [score_rule(r, current, previous, scoring) for r in rule_set.rules if r.is_active]
    return sorted(results, key=lambda res: (-res.rule.priority, -res.score))


def evaluate_rule_set(
    rule_set: RuleSet,
    current: IndicatorSnapshot,
    previous: IndicatorSnapshot | None = None,
    scoring: ScoringSettings = DEFAULT_SCORING,
) -> Signal:
    """
    Señal de un RuleSet: la primera regla que dispara (prioridad, luego score).
    Si ninguna dispara: HOLD con el score/razones de la mejor.
    """
    results = score_rule_set(rule_set, current, previous, scoring)
    if not results:
        return evaluate_rule(rule_set.rules[0], current, previous, scoring)
    fired = [res for res in results if res.fired]
    chosen = fired[0] if fired else max(results, key=lambda res: res.score)
    return _signal_from(chosen, current, rule_set.name)
