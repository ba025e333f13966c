import pytest

from core.errors import ConfigurationError
from core.settings import ScoringSettings
from rules.conditions import Condition, Operator
from rules.models import ConditionGroup, GroupRef, Rule, RuleSet, single_group_rule
from rules.scorer import (
    classify_directional,
    evaluate_rule,
    evaluate_rule_set,
    price_levels,
    score_group,
    score_rule,
)


def _rule(conditions, **kw) -> Rule:
    return single_group_rule("test_rule", conditions, **kw)


def test_classification_breakpoints():
    assert classify_directional(80.0) == "STRONG_BUY"
    assert classify_directional(79.9) == "BUY"
    assert classify_directional(60.0) == "BUY"
    assert classify_directional(59.9) == "HOLD"
    assert classify_directional(50.0) == "HOLD"
    assert classify_directional(40.1) == "HOLD"
    assert classify_directional(40.0) == "SELL"
    assert classify_directional(20.0) == "STRONG_SELL"
    assert classify_directional(0.0) == "STRONG_SELL"


def test_score_is_satisfied_weight_over_total(snap):
    rule = _rule(
        [
            Condition("RSI", Operator.LT, 30, weight=3),
            Condition("VOL_RATIO", Operator.GTE, 1.5, weight=1, order_index=1),
        ]
    )
    sig = evaluate_rule(rule, snap(RSI=25.0, VOL_RATIO=1.0, PRICE=100.0))

    assert sig.score == pytest.approx(75.0)
    assert sig.classification == "BUY"
    assert sig.reasons == ("RSI < 30 (25)",)
    assert sig.target_price == pytest.approx(110.0)
    assert sig.stop_loss == pytest.approx(95.0)
    assert 0.0 < sig.confidence <= 1.0


def test_required_condition_blocks_the_group(snap):
    rule = _rule(
        [
            Condition("RSI", Operator.LT, 30, weight=1, is_required=True),
            Condition("VOL_RATIO", Operator.GTE, 1.5, weight=9, order_index=1),
        ]
    )
    result = score_rule(rule, snap(RSI=45.0, VOL_RATIO=3.0, PRICE=100.0))
    sig = evaluate_rule(rule, snap(RSI=45.0, VOL_RATIO=3.0, PRICE=100.0))

    assert result.blocked
    assert result.score == 0.0
    assert not result.fired
    assert sig.classification == "HOLD"
    assert sig.confidence == 0.0
    assert sig.reasons == ()
    assert sig.target_price is None and sig.stop_loss is None


def test_below_min_score_is_hold_but_keeps_score(snap):
    rule = _rule(
        [
            Condition("RSI", Operator.LT, 30, weight=1),
            Condition("VOL_RATIO", Operator.GTE, 1.5, weight=1, order_index=1),
        ],
        min_score=60,
    )
    sig = evaluate_rule(rule, snap(RSI=25.0, VOL_RATIO=1.0, PRICE=100.0))

    assert sig.score == pytest.approx(50.0)
    assert sig.classification == "HOLD"


def test_fired_rule_is_never_hold(snap):
    buy = _rule(
        [Condition("RSI", Operator.LT, 30), Condition("VOL_RATIO", Operator.GTE, 1.5, order_index=1)],
        min_score=50,
    )
    sell = _rule(
        [Condition("RSI", Operator.GT, 70), Condition("VOL_RATIO", Operator.GTE, 1.5, order_index=1)],
        signal_type="SELL",
        min_score=50,
    )

    assert evaluate_rule(buy, snap(RSI=25.0, VOL_RATIO=1.0, PRICE=10.0)).classification == "BUY"
    sell_sig = evaluate_rule(sell, snap(RSI=75.0, VOL_RATIO=1.0, PRICE=10.0))
    assert sell_sig.classification == "SELL"
    # niveles invertidos en una venta
    assert sell_sig.target_price == pytest.approx(9.0)
    assert sell_sig.stop_loss == pytest.approx(10.5)
    full = evaluate_rule(sell, snap(RSI=75.0, VOL_RATIO=2.0, PRICE=10.0))
    assert full.classification == "STRONG_SELL"


def test_alert_rule_flags_without_direction(snap):
    rule = _rule([Condition("VOL_RATIO", Operator.GTE, 3)], signal_type="ALERT")
    sig = evaluate_rule(rule, snap(VOL_RATIO=4.0, PRICE=10.0))

    assert sig.alert
    assert sig.classification == "HOLD"
    assert not sig.is_actionable


def test_inactive_rule_evaluates_to_hold(snap):
    group = ConditionGroup("g", (Condition("RSI", Operator.LT, 30),))
    rule = Rule("off", (GroupRef(group),), is_active=False)
    sig = evaluate_rule(rule, snap(RSI=10.0, PRICE=10.0))

    assert sig.classification == "HOLD"
    assert sig.score == 0.0


def test_reasons_are_capped(snap):
    conds = [Condition("PRICE", Operator.GT, v, order_index=i) for i, v in enumerate((1, 2, 3, 4))]
    sig = evaluate_rule(_rule(conds), snap(PRICE=10.0), scoring=ScoringSettings(max_reasons=2))

    assert sig.score == pytest.approx(100.0)
    assert len(sig.reasons) == 2


def test_score_is_monotonic_in_satisfied_conditions(snap):
    conds = [Condition("PRICE", Operator.GT, v, order_index=i) for i, v in enumerate((10, 20, 30, 40))]
    rule = _rule(conds, min_score=0)

    scores = [score_rule(rule, snap(PRICE=p)).score for p in (5.0, 15.0, 25.0, 35.0, 45.0)]
    assert scores == sorted(scores)
    assert scores[0] == 0.0 and scores[-1] == pytest.approx(100.0)


def test_or_group_passes_with_either_branch(snap):
    group = ConditionGroup(
        "any",
        (
            Condition("RSI", Operator.LT, 30, logical_operator="OR"),
            Condition("VOL_RATIO", Operator.GTE, 2, order_index=1),
        ),
    )

    assert score_group(group, snap(RSI=50.0, VOL_RATIO=3.0)).passed
    assert score_group(group, snap(RSI=20.0, VOL_RATIO=1.0)).passed
    assert not score_group(group, snap(RSI=50.0, VOL_RATIO=1.0)).passed


def test_required_group_blocks_rule_and_corroboration_adds_confidence(snap):
    oversold = ConditionGroup(
        "oversold",
        (Condition("RSI", Operator.LT, 30, weight=3), Condition("VOL_RATIO", Operator.GTE, 1.2, order_index=1)),
        priority=10,
    )
    uptrend = ConditionGroup("uptrend", (Condition("MA50", Operator.GT, compare_indicator="MA200", weight=2),))
    rule = Rule("dip", (GroupRef(oversold, required=True), GroupRef(uptrend)))

    # grupo requerido sin pasar su expresión AND -> regla bloqueada
    blocked = score_rule(rule, snap(RSI=25.0, VOL_RATIO=1.0, MA50=110.0, MA200=100.0))
    assert blocked.blocked and blocked.score == 0.0

    both = score_rule(rule, snap(RSI=25.0, VOL_RATIO=1.5, MA50=110.0, MA200=100.0))
    one = score_rule(rule, snap(RSI=25.0, VOL_RATIO=1.5, MA50=90.0, MA200=100.0))
    assert both.score == pytest.approx(100.0)
    assert both.passing_groups == 2
    assert one.score == pytest.approx(4 / 6 * 100.0)
    assert both.confidence > one.confidence


def test_rule_set_prefers_fired_rule_by_priority(snap):
    low = _rule([Condition("RSI", Operator.LT, 50)], priority=0)
    high = single_group_rule("high", [Condition("PRICE", Operator.GT, 5)], signal_type="SELL", priority=5)
    rs = RuleSet("pair", (low, high))
    sig = evaluate_rule_set(rs, snap(RSI=40.0, PRICE=10.0))

    assert sig.strategy == "pair"
    assert sig.classification == "STRONG_SELL"


def test_rule_set_without_fired_rule_is_hold(snap):
    rs = RuleSet("pair", (_rule([Condition("RSI", Operator.LT, 30)]),))

    assert evaluate_rule_set(rs, snap(RSI=40.0, PRICE=10.0)).classification == "HOLD"


def test_price_levels():
    assert price_levels("BUY", 100.0, 10, 5) == (pytest.approx(110.0), pytest.approx(95.0))
    assert price_levels("SELL", 100.0, 10, 5) == (pytest.approx(90.0), pytest.approx(105.0))
    assert price_levels("", 100.0, 10, 5) == (None, None)
    assert price_levels("BUY", None, 10, 5) == (None, None)


def test_invalid_rules_raise():
    cond = Condition("RSI", Operator.LT, 30)
    with pytest.raises(ConfigurationError):
        _rule([cond], min_score=120)
    with pytest.raises(ConfigurationError):
        _rule([cond], target_percent=0)
    with pytest.raises(ConfigurationError):
        _rule([])
    with pytest.raises(ConfigurationError):
        RuleSet("empty", ())
