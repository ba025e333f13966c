# src/rules/__init__.py
"""
Motor de reglas declarativas: condiciones, grupos, reglas, scorer y plantillas.
"""

from .conditions import Condition, ConditionResult, LogicalOperator, Operator, evaluate_condition
from .models import ConditionGroup, GroupRef, Rule, RuleSet, parse_rules_document, single_group_rule
from .scorer import classify_directional, evaluate_rule, evaluate_rule_set, score_rule
from .store import InMemoryRuleStore, RuleStore, YamlRuleStore
from .templates import (
    TEMPLATES,
    breakout_strategy,
    get_template,
    list_templates,
    macd_strategy,
    rsi_strategy,
    sma_crossover,
)

__all__ = [
    "Condition",
    "ConditionGroup",
    "ConditionResult",
    "GroupRef",
    "InMemoryRuleStore",
    "LogicalOperator",
    "Operator",
    "Rule",
    "RuleSet",
    "RuleStore",
    "TEMPLATES",
    "YamlRuleStore",
    "breakout_strategy",
    "classify_directional",
    "evaluate_condition",
    "evaluate_rule",
    "evaluate_rule_set",
    "get_template",
    "list_templates",
    "macd_strategy",
    "parse_rules_document",
    "rsi_strategy",
    "score_rule",
    "single_group_rule",
    "sma_crossover",
]
