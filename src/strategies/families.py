# src/strategies/families.py
"""
Familias de estrategia incluidas: momentum, trend_following, mean_reversion,
breakout.

Cada familia es un RuleSet de dos lados. Los tramos de puntuación (p.ej.
RS_AVG >= 40 / 60 / 80) se expresan como condiciones acumulativas: cada tramo
superado suma su peso, de modo que el score crece por escalones.
"""

from __future__ import annotations

from rules.conditions import Condition, Operator
from rules.models import RuleSet, single_group_rule
from strategies.base import StrategyFamily, register_strategy


def _c(indicator: str, operator: str, value: float | None = None, weight: int = 1, **kw) -> Condition:
    return Condition(indicator=indicator, operator=Operator(operator), value=value, weight=weight, **kw)


def _family(name: str, label: str, buy: list[Condition], sell: list[Condition], description: str) -> StrategyFamily:
    rules = (
        single_group_rule(f"{name}_buy", buy, signal_type="BUY", strategy_type=name),
        single_group_rule(f"{name}_sell", sell, signal_type="SELL", strategy_type=name),
    )
    return StrategyFamily(
        name=name,
        label=label,
        rule_set=RuleSet(name=name, rules=rules, description=description),
        description=description,
    )


@register_strategy("momentum")
def momentum() -> StrategyFamily:
    buy = [
        _c("RS_AVG", "gte", 80, 10, description="Fuerza relativa media excepcional"),
        _c("RS_AVG", "gte", 60, 10),
        _c("RS_AVG", "gte", 40, 10),
        _c("RS_1Y", "gte", 80, 10, description="Líder a un año"),
        _c("RS_1Y", "gte", 60, 15),
        _c("RS_3M", "gte", 70, 10, description="Momentum fuerte a 3 meses"),
        _c("RS_3M", "gte", 50, 10),
        _c("RS_3D", "gte", 80, 5, description="Aceleración de corto plazo"),
        _c("RS_3D", "gte", 60, 10),
        _c("VOL_RATIO", "gte", 1.5, 5, description="Volumen por encima de la media"),
        _c("VOL_RATIO", "gte", 1.0, 5),
    ]
    sell = [
        _c("RS_AVG", "lt", 20, 40, description="Fuerza relativa media muy débil"),
        _c("RS_1Y", "lt", 30, 35, description="Rezagado a un año"),
        _c("RS_3M", "lt", 30, 25, description="Momentum débil a 3 meses"),
    ]
    return _family("momentum", "Momentum", buy, sell, "Fuerza relativa frente al universo")


@register_strategy("trend_following")
def trend_following() -> StrategyFamily:
    buy = [
        _c("MA10", "gt", compare_indicator="MA30", weight=20, description="MA10 > MA30 (tendencia corta alcista)"),
        _c("MA50", "gt", compare_indicator="MA200", weight=25, description="MA50 > MA200 (tendencia larga alcista)"),
        _c("PRICE", "gt", compare_indicator="MA50", weight=20, description="Precio sobre la MA50"),
        _c("PRICE", "gt", compare_indicator="MA200", weight=15, description="Precio sobre la MA200"),
        _c("MACD_HISTOGRAM", "gt", 0, 20, description="MACD alcista"),
    ]
    sell = [
        _c("MA10", "lt", compare_indicator="MA30", weight=20, description="MA10 < MA30 (tendencia corta bajista)"),
        _c("MA50", "lt", compare_indicator="MA200", weight=25, description="MA50 < MA200 (tendencia larga bajista)"),
        _c("PRICE", "lt", compare_indicator="MA50", weight=20, description="Precio bajo la MA50"),
        _c("PRICE", "lt", compare_indicator="MA200", weight=15, description="Precio bajo la MA200"),
        _c("MACD_HISTOGRAM", "lt", 0, 20, description="MACD bajista"),
    ]
    return _family("trend_following", "Trend", buy, sell, "Alineación de medias y MACD")


@register_strategy("mean_reversion")
def mean_reversion() -> StrategyFamily:
    # desviación frente a la MA50 como ratio PRICE / MA50
    buy = [
        _c("RSI", "lt", 30, 15, description="RSI sobrevendido"),
        _c("RSI", "lt", 40, 15),
        _c("PRICE", "between", 0.0, 10, value2=0.90, compare_indicator="MA50",
           description="Precio >10% bajo la MA50"),
        _c("PRICE", "between", 0.0, 10, value2=0.95, compare_indicator="MA50"),
    ]
    sell = [
        _c("RSI", "gt", 70, 15, description="RSI sobrecomprado"),
        _c("RSI", "gt", 60, 15),
        _c("PRICE", "between", 1.10, 10, value2=1e6, compare_indicator="MA50",
           description="Precio >10% sobre la MA50"),
        _c("PRICE", "between", 1.05, 10, value2=1e6, compare_indicator="MA50"),
    ]
    return _family("mean_reversion", "MeanRev", buy, sell, "Sobrecompra/sobreventa frente a la MA50")


@register_strategy("breakout")
def breakout() -> StrategyFamily:
    buy = [
        _c("VOL_RATIO", "gte", 2.0, 10, description="Pico de volumen (2x la media)"),
        _c("VOL_RATIO", "gte", 1.5, 10),
        _c("VOL_RATIO", "gte", 1.2, 15),
        _c("RS_3D", "gte", 90, 5, description="Fuerza relativa a 3 días en máximos"),
        _c("RS_3D", "gte", 80, 10),
        _c("RS_3D", "gte", 70, 15),
        _c("PRICE", "gt", compare_indicator="MA10", weight=7, description="Precio sobre MA10/MA30/MA50"),
        _c("PRICE", "gt", compare_indicator="MA30", weight=7),
        _c("PRICE", "gt", compare_indicator="MA50", weight=6),
        _c("MACD_HISTOGRAM", "gt", 0.5, 5, description="MACD con impulso"),
        _c("MACD_HISTOGRAM", "gt", 0, 10),
    ]
    sell = [
        _c("PRICE_CHANGE", "lt", -3, 20, description="Caída diaria > 3%"),
        _c("VOL_RATIO", "gte", 1.5, 15),
        _c("PRICE", "lt", compare_indicator="MA10", weight=15, description="Precio bajo MA10/MA30/MA50"),
        _c("PRICE", "lt", compare_indicator="MA30", weight=15),
        _c("PRICE", "lt", compare_indicator="MA50", weight=15),
        _c("MACD_HISTOGRAM", "lt", 0, 20, description="MACD bajista"),
    ]
    return _family("breakout", "Breakout", buy, sell, "Rupturas con volumen y fuerza relativa")


__all__ = ["momentum", "trend_following", "mean_reversion", "breakout"]
