# src/rules/conditions.py
"""
Evaluador de condiciones declarativas.

Una Condition compara un indicador contra una constante (`value`) o contra
otro indicador (`compare_indicator`) usando un operador de comparación o de
cruce. El resultado es:
    ConditionResult(passed, degree, reason)

- degree ∈ [0, 1]: "cuánto" se cumple (0 si falla). Lo usa el scorer para la
  confianza, no para el score.
- reason: texto legible solo si la condición pasa. Un valor ausente (None)
  hace la condición False SIN texto: ni cuenta como satisfecha ni como fallo
  explícito.

Las condiciones de un grupo forman un árbol AND/OR (ConditionLeaf / AllOf /
AnyOf) construido de izquierda a derecha a partir de `logical_operator`.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Sequence, Union

from core.errors import ConfigurationError
from features.technical_indicators import IndicatorSnapshot, normalize_indicator

EQ_TOLERANCE = 0.001
# Margen relativo con el que una comparación alcanza degree = 1.0
FULL_DEGREE_MARGIN = 0.10


class Operator(str, Enum):
    EQ = "eq"
    NEQ = "neq"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    BETWEEN = "between"
    CROSS_ABOVE = "cross_above"
    CROSS_BELOW = "cross_below"

    @property
    def is_cross(self) -> bool:
        return self in (Operator.CROSS_ABOVE, Operator.CROSS_BELOW)


class LogicalOperator(str, Enum):
    AND = "AND"
    OR = "OR"


_SYMBOLS = {
    Operator.EQ: "=",
    Operator.NEQ: "!=",
    Operator.GT: ">",
    Operator.GTE: ">=",
    Operator.LT: "<",
    Operator.LTE: "<=",
}


@dataclass(frozen=True)
class Condition:
    """Una condición de un grupo. Inmutable; se valida al construirse."""

    indicator: str
    operator: Operator
    value: float | None = None
    value2: float | None = None
    compare_indicator: str | None = None
    weight: int = 1
    is_required: bool = False
    logical_operator: LogicalOperator = LogicalOperator.AND
    order_index: int = 0
    name: str = ""
    description: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "indicator", normalize_indicator(self.indicator))
        object.__setattr__(self, "operator", Operator(self.operator))
        object.__setattr__(self, "logical_operator", LogicalOperator(self.logical_operator))
        if self.compare_indicator:
            object.__setattr__(
                self, "compare_indicator", normalize_indicator(self.compare_indicator)
            )
        problems = self.problems()
        if problems:
            raise ConfigurationError(f"Condición inválida ({self.indicator})", problems)

    def problems(self) -> list[str]:
        out: list[str] = []
        if isinstance(self.weight, bool) or not isinstance(self.weight, int) or self.weight <= 0:
            out.append(f"weight debe ser un entero positivo (recibido: {self.weight!r})")
        if self.operator is Operator.BETWEEN:
            if self.value is None or self.value2 is None:
                out.append("between requiere value y value2")
            elif self.value > self.value2:
                out.append(f"between requiere value <= value2 ({self.value} > {self.value2})")
        elif self.compare_indicator is None and self.value is None:
            out.append(f"{self.operator.value} requiere value o compare_indicator")
        return out

    @property
    def indicators(self) -> tuple[str, ...]:
        if self.compare_indicator:
            return (self.indicator, self.compare_indicator)
        return (self.indicator,)

    @property
    def label(self) -> str:
        return self.name or self.description or self.indicator


@dataclass(frozen=True)
class ConditionResult:
    condition: Condition
    passed: bool
    degree: float = 0.0
    reason: str | None = None
    missing: bool = False


# ==================== Formato de mensajes ====================


def format_number(value: float) -> str:
    """Sin decimales si es entero; 2 decimales en otro caso."""
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.2f}"


def _message(cond: Condition, actual: float, shown: float | None) -> str:
    if cond.description:
        return cond.description
    op = cond.operator
    target = cond.compare_indicator or (format_number(cond.value) if cond.value is not None else "")
    if op is Operator.CROSS_ABOVE:
        return f"{cond.indicator} crossed above {target}"
    if op is Operator.CROSS_BELOW:
        return f"{cond.indicator} crossed below {target}"
    if op is Operator.BETWEEN:
        return f"{cond.indicator} in range ({format_number(shown if shown is not None else actual)})"
    return f"{cond.indicator} {_SYMBOLS[op]} {target} ({format_number(actual)})"


# ==================== Evaluación ====================


def _linear_degree(margin: float, reference: float) -> float:
    """0.5 en el borde, 1.0 con un margen relativo >= FULL_DEGREE_MARGIN."""
    scale = abs(reference) * FULL_DEGREE_MARGIN
    if scale == 0:
        return 1.0 if margin > 0 else 0.5
    return 0.5 + 0.5 * min(1.0, max(0.0, margin) / scale)


def _compare(op: Operator, actual: float, ref: float) -> tuple[bool, float]:
    if op is Operator.EQ:
        return abs(actual - ref) < EQ_TOLERANCE, 1.0
    if op is Operator.NEQ:
        return abs(actual - ref) >= EQ_TOLERANCE, 1.0
    if op in (Operator.GT, Operator.GTE):
        ok = actual > ref if op is Operator.GT else actual >= ref
        return ok, _linear_degree(actual - ref, ref)
    ok = actual < ref if op is Operator.LT else actual <= ref
    return ok, _linear_degree(ref - actual, ref)


def _between_degree(x: float, low: float, high: float) -> float:
    half = (high - low) / 2.0
    if half == 0:
        return 1.0
    mid = low + half
    return 1.0 - 0.5 * min(1.0, abs(x - mid) / half)


def _reference(cond: Condition, snap: IndicatorSnapshot) -> float | None:
    if cond.compare_indicator:
        return snap.get(cond.compare_indicator)
    return cond.value


def evaluate_condition(
    cond: Condition,
    current: IndicatorSnapshot,
    previous: IndicatorSnapshot | None = None,
) -> ConditionResult:
    """
    Evalúa una condición sobre el snapshot actual (y el previo para cruces).

    - Cruce sin snapshot previo -> False (nunca "desconocido-verdadero").
    - Cualquier valor necesario ausente -> False, sin reason, missing=True.
    """
    actual = current.get(cond.indicator)
    if actual is None:
        return ConditionResult(cond, passed=False, missing=True)

    op = cond.operator

    if op.is_cross:
        if previous is None:
            return ConditionResult(cond, passed=False, missing=True)
        ref = _reference(cond, current)
        prev_actual = previous.get(cond.indicator)
        prev_ref = _reference(cond, previous)
        if ref is None or prev_actual is None or prev_ref is None:
            return ConditionResult(cond, passed=False, missing=True)
        if op is Operator.CROSS_ABOVE:
            passed = prev_actual <= prev_ref and actual > ref
            degree = _linear_degree(actual - ref, ref)
        else:
            passed = prev_actual >= prev_ref and actual < ref
            degree = _linear_degree(ref - actual, ref)
        if not passed:
            return ConditionResult(cond, passed=False)
        return ConditionResult(cond, True, degree, _message(cond, actual, None))

    if op is Operator.BETWEEN:
        low, high = float(cond.value), float(cond.value2)  # type: ignore[arg-type]
        x = actual
        if cond.compare_indicator:
            other = current.get(cond.compare_indicator)
            if other is None:
                return ConditionResult(cond, passed=False, missing=True)
            if other == 0:
                return ConditionResult(cond, passed=False)
            x = actual / other
        if not low <= x <= high:
            return ConditionResult(cond, passed=False)
        return ConditionResult(cond, True, _between_degree(x, low, high), _message(cond, actual, x))

    ref = _reference(cond, current)
    if ref is None:
        return ConditionResult(cond, passed=False, missing=True)
    passed, degree = _compare(op, actual, ref)
    if not passed:
        return ConditionResult(cond, passed=False)
    return ConditionResult(cond, True, degree, _message(cond, actual, None))


# ==================== Árbol AND/OR ====================


@dataclass(frozen=True)
class ConditionLeaf:
    index: int  # posición dentro de la lista ordenada del grupo


@dataclass(frozen=True)
class AllOf:
    children: tuple["Expression", ...]


@dataclass(frozen=True)
class AnyOf:
    children: tuple["Expression", ...]


Expression = Union[ConditionLeaf, AllOf, AnyOf]


def build_expression(conditions: Sequence[Condition]) -> Expression | None:
    """
    Construye el árbol encadenando de izquierda a derecha:
        c0 AND c1 OR c2  ->  AnyOf(AllOf(c0, c1), c2)
    El `logical_operator` de cada condición la une con la SIGUIENTE.
    """
    if not conditions:
        return None
    node: Expression = ConditionLeaf(0)
    for i in range(1, len(conditions)):
        link = conditions[i - 1].logical_operator
        leaf = ConditionLeaf(i)
        if link is LogicalOperator.AND:
            if isinstance(node, AllOf):
                node = AllOf((*node.children, leaf))
            else:
                node = AllOf((node, leaf))
        else:
            if isinstance(node, AnyOf):
                node = AnyOf((*node.children, leaf))
            else:
                node = AnyOf((node, leaf))
    return node


def evaluate_expression(node: Expression | None, results: Sequence[ConditionResult]) -> bool:
    """Evalúa recursivamente el árbol contra los resultados ya calculados."""
    if node is None:
        return False
    if isinstance(node, ConditionLeaf):
        return results[node.index].passed
    if isinstance(node, AllOf):
        return all(evaluate_expression(child, results) for child in node.children)
    return any(evaluate_expression(child, results) for child in node.children)


# ==================== Carga desde dict (YAML/JSON) ====================


def condition_from_dict(data: Mapping[str, Any], order_index: int = 0) -> Condition:
    """Construye una Condition desde un dict (p.ej. una entrada de rules.yaml)."""
    if "indicator" not in data or "operator" not in data:
        raise ConfigurationError("Condición sin 'indicator' u 'operator'", [str(dict(data))])
    try:
        operator = Operator(str(data["operator"]).lower())
        logical = LogicalOperator(str(data.get("logical_operator", "AND")).upper())
    except ValueError as exc:
        raise ConfigurationError(f"Condición inválida: {exc}") from exc
    return Condition(
        indicator=str(data["indicator"]),
        operator=operator,
        value=_opt_float(data.get("value")),
        value2=_opt_float(data.get("value2")),
        compare_indicator=data.get("compare_indicator") or None,
        weight=int(data.get("weight", 1)),
        is_required=bool(data.get("is_required", False)),
        logical_operator=logical,
        order_index=int(data.get("order_index", order_index)),
        name=str(data.get("name", "")),
        description=str(data.get("description", "")),
    )


def _opt_float(raw: Any) -> float | None:
    if raw is None:
        return None
    try:
        return float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Valor numérico inválido: {raw!r}") from exc
