# src/rules/store.py
"""
Almacén de definiciones de reglas.

El CRUD real vive en la capa de administración (fuera del motor); aquí solo se
define el contrato que consume el motor y dos implementaciones locales:
- InMemoryRuleStore: tests y uso embebido.
- YamlRuleStore: lee src/config/rules.yaml (o el que indique RULES_FILE).
"""

from __future__ import annotations

from pathlib import Path
import threading
from typing import Iterable, Protocol

from loguru import logger
import yaml

from core.errors import ConfigurationError
from rules.models import Rule, parse_rules_document


class RuleStore(Protocol):
    def active_rules(self) -> list[Rule]: ...

    def get(self, name: str) -> Rule: ...


class InMemoryRuleStore:
    """Store en memoria, seguro entre hilos (el scanner lee mientras la API escribe)."""

    def __init__(self, rules: Iterable[Rule] = ()) -> None:
        self._lock = threading.Lock()
        self._rules: dict[str, Rule] = {}
        for rule in rules:
            self.put(rule)

    def put(self, rule: Rule) -> None:
        with self._lock:
            self._rules[rule.name] = rule

    def remove(self, name: str) -> None:
        with self._lock:
            self._rules.pop(name, None)

    def get(self, name: str) -> Rule:
        with self._lock:
            if name not in self._rules:
                raise ConfigurationError(f"Regla '{name}' no encontrada")
            return self._rules[name]

    def active_rules(self) -> list[Rule]:
        """Reglas activas por prioridad descendente, luego por nombre."""
        with self._lock:
            rules = [r for r in self._rules.values() if r.is_active]
        return sorted(rules, key=lambda r: (-r.priority, r.name))


class YamlRuleStore(InMemoryRuleStore):
    """Carga {'groups': [...], 'rules': [...]} desde un YAML. reload() relee el fichero."""

    def __init__(self, path: str | Path) -> None:
        super().__init__()
        self.path = Path(path)
        self.reload()

    def reload(self) -> None:
        if not self.path.exists():
            raise ConfigurationError(f"No existe el fichero de reglas: {self.path}")
        with self.path.open("r", encoding="utf-8") as f:
            doc = yaml.safe_load(f) or {}
        if not isinstance(doc, dict):
            raise ConfigurationError(f"El YAML de reglas debe ser un dict en la raíz: {self.path}")
        catalog = parse_rules_document(doc)
        with self._lock:
            self._rules = dict(catalog.rules)
        logger.info(f"Reglas cargadas de {self.path}: {sorted(catalog.rules)}")
