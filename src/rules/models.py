# src/rules/models.py
"""
Modelo declarativo de reglas: ConditionGroup, Rule y RuleSet.

- ConditionGroup: lista ordenada de condiciones + tipo de señal + prioridad.
- Rule: referencia uno o más grupos, umbral mínimo de score, target/stop (%).
- RuleSet: varias reglas evaluadas juntas (p.ej. entrada BUY + salida SELL).

Todo se valida al construirse: una regla inválida lanza ConfigurationError
antes de llegar a evaluarse.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from core.errors import ConfigurationError
from core.types import SignalType
from rules.conditions import Condition, Expression, build_expression, condition_from_dict

SIGNAL_TYPES: tuple[str, ...] = ("BUY", "SELL", "ALERT")


@dataclass(frozen=True)
class ConditionGroup:
    name: str
    conditions: tuple[Condition, ...]
    signal_type: SignalType = "BUY"
    is_active: bool = True
    priority: int = 0  # mayor prioridad = se evalúa antes
    description: str = ""

    def __post_init__(self) -> None:
        ordered = tuple(sorted(self.conditions, key=lambda c: c.order_index))
        object.__setattr__(self, "conditions", ordered)
        problems: list[str] = []
        if not self.name:
            problems.append("el grupo necesita nombre")
        if not self.conditions:
            problems.append(f"grupo '{self.name}' sin condiciones")
        if self.signal_type not in SIGNAL_TYPES:
            problems.append(f"signal_type desconocido: {self.signal_type!r}")
        if problems:
            raise ConfigurationError(f"Grupo inválido '{self.name}'", problems)

    @property
    def expression(self) -> Expression | None:
        return build_expression(self.conditions)

    @property
    def total_weight(self) -> int:
        return sum(c.weight for c in self.conditions)

    @property
    def indicators(self) -> set[str]:
        return {name for c in self.conditions for name in c.indicators}


@dataclass(frozen=True)
class GroupRef:
    """Referencia de una regla a un grupo. required=True: el grupo debe pasar."""

    group: ConditionGroup
    required: bool = False


@dataclass(frozen=True)
class Rule:
    name: str
    groups: tuple[GroupRef, ...]
    signal_type: SignalType = "BUY"
    strategy_type: str = "custom"
    min_score: float = 60.0
    target_percent: float = 10.0
    stop_loss_percent: float = 5.0
    is_active: bool = True
    priority: int = 0
    description: str = ""

    def __post_init__(self) -> None:
        problems = self.problems()
        if problems:
            raise ConfigurationError(f"Regla inválida '{self.name}'", problems)

    def problems(self) -> list[str]:
        out: list[str] = []
        if not self.name:
            out.append("la regla necesita nombre")
        if not 0.0 <= float(self.min_score) <= 100.0:
            out.append(f"min_score debe estar en [0, 100] (recibido: {self.min_score})")
        if float(self.target_percent) <= 0:
            out.append(f"target_percent debe ser > 0 (recibido: {self.target_percent})")
        if float(self.stop_loss_percent) <= 0:
            out.append(f"stop_loss_percent debe ser > 0 (recibido: {self.stop_loss_percent})")
        if self.signal_type not in SIGNAL_TYPES:
            out.append(f"signal_type desconocido: {self.signal_type!r}")
        if not self.groups:
            out.append("la regla no referencia ningún grupo")
        elif not any(ref.group.is_active for ref in self.groups):
            out.append("la regla no tiene grupos activos")
        return out

    @property
    def active_groups(self) -> list[GroupRef]:
        """Grupos activos por prioridad descendente (estable ante empates)."""
        refs = [ref for ref in self.groups if ref.group.is_active]
        return sorted(refs, key=lambda r: -r.group.priority)

    @property
    def indicators(self) -> set[str]:
        out: set[str] = {"PRICE"}
        for ref in self.groups:
            out |= ref.group.indicators
        return out


@dataclass(frozen=True)
class RuleSet:
    """Reglas que se evalúan juntas y producen UNA señal (la de mayor prioridad que dispare)."""

    name: str
    rules: tuple[Rule, ...]
    description: str = ""

    def __post_init__(self) -> None:
        if not self.rules:
            raise ConfigurationError(f"RuleSet '{self.name}' sin reglas")

    @property
    def indicators(self) -> set[str]:
        out: set[str] = set()
        for rule in self.rules:
            out |= rule.indicators
        return out


# ==================== Carga desde dict (YAML/JSON) ====================


def group_from_dict(data: Mapping[str, Any]) -> ConditionGroup:
    raw_conditions = data.get("conditions") or []
    if not isinstance(raw_conditions, Sequence) or isinstance(raw_conditions, (str, bytes)):
        raise ConfigurationError(f"'conditions' del grupo {data.get('name')!r} debe ser una lista")
    conditions = tuple(condition_from_dict(c, i) for i, c in enumerate(raw_conditions))
    return ConditionGroup(
        name=str(data.get("name", "")),
        conditions=conditions,
        signal_type=str(data.get("signal_type", "BUY")).upper(),  # type: ignore[arg-type]
        is_active=bool(data.get("is_active", True)),
        priority=int(data.get("priority", 0)),
        description=str(data.get("description", "")),
    )


def rule_from_dict(data: Mapping[str, Any], groups: Mapping[str, ConditionGroup]) -> Rule:
    """
    Construye una Rule. `groups` resuelve las referencias por nombre; también se
    aceptan grupos definidos en línea (dict con 'conditions').
    """
    refs: list[GroupRef] = []
    for entry in data.get("groups") or []:
        if isinstance(entry, str):
            entry = {"group": entry}
        target = entry.get("group")
        if isinstance(target, Mapping):
            group = group_from_dict(target)
        elif target in groups:
            group = groups[target]
        else:
            raise ConfigurationError(
                f"Regla '{data.get('name')}' referencia un grupo inexistente: {target!r}"
            )
        refs.append(GroupRef(group=group, required=bool(entry.get("required", False))))

    return Rule(
        name=str(data.get("name", "")),
        groups=tuple(refs),
        signal_type=str(data.get("signal_type", "BUY")).upper(),  # type: ignore[arg-type]
        strategy_type=str(data.get("strategy_type", "custom")),
        min_score=float(data.get("min_score", 60.0)),
        target_percent=float(data.get("target_percent", 10.0)),
        stop_loss_percent=float(data.get("stop_loss_percent", 5.0)),
        is_active=bool(data.get("is_active", True)),
        priority=int(data.get("priority", 0)),
        description=str(data.get("description", "")),
    )


def single_group_rule(
    name: str,
    conditions: Sequence[Condition],
    *,
    signal_type: SignalType = "BUY",
    strategy_type: str = "custom",
    min_score: float = 60.0,
    target_percent: float = 10.0,
    stop_loss_percent: float = 5.0,
    priority: int = 0,
    description: str = "",
) -> Rule:
    """Atajo: regla con un único grupo del mismo nombre."""
    group = ConditionGroup(
        name=name,
        conditions=tuple(conditions),
        signal_type=signal_type,
        priority=priority,
        description=description,
    )
    return Rule(
        name=name,
        groups=(GroupRef(group),),
        signal_type=signal_type,
        strategy_type=strategy_type,
        min_score=min_score,
        target_percent=target_percent,
        stop_loss_percent=stop_loss_percent,
        priority=priority,
        description=description,
    )


@dataclass
class RuleCatalog:
    """Grupos y reglas cargados de un fichero (resultado de parse_rules_document)."""

    groups: dict[str, ConditionGroup] = field(default_factory=dict)
    rules: dict[str, Rule] = field(default_factory=dict)


def parse_rules_document(doc: Mapping[str, Any]) -> RuleCatalog:
    """Parsea {'groups': [...], 'rules': [...]} acumulando todos los problemas."""
    catalog = RuleCatalog()
    problems: list[str] = []

    for raw in doc.get("groups") or []:
        try:
            group = group_from_dict(raw)
        except ConfigurationError as exc:
            problems.append(str(exc))
            continue
        if group.name in catalog.groups:
            problems.append(f"grupo duplicado: {group.name}")
        catalog.groups[group.name] = group

    for raw in doc.get("rules") or []:
        try:
            rule = rule_from_dict(raw, catalog.groups)
        except ConfigurationError as exc:
            problems.append(str(exc))
            continue
        if rule.name in catalog.rules:
            problems.append(f"regla duplicada: {rule.name}")
        catalog.rules[rule.name] = rule

    if problems:
        raise ConfigurationError("Definición de reglas inválida", problems)
    return catalog
