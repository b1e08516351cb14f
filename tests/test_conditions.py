"""Unit tests for trigger condition parsing and evaluation."""
from __future__ import annotations

import pytest

from automation_service.core.exceptions import ConfigurationError
from automation_service.domain.enums import ConditionOperator
from automation_service.engine.conditions import Condition, evaluate, parse_conditions


def test_empty_conditions_always_match():
    assert evaluate([], {"anything": 1}) is True
    assert evaluate({}, {}) is True
    assert evaluate(None, {}) is True


def test_parse_suffix_keys():
    conditions = parse_conditions(
        {"status": "paid", "amount_gt": 100, "total_lt": 5.5, "client.name_contains": "Acme"}
    )
    assert conditions == [
        Condition(path="status", operator=ConditionOperator.EQ, value="paid"),
        Condition(path="amount", operator=ConditionOperator.GT, value=100),
        Condition(path="total", operator=ConditionOperator.LT, value=5.5),
        Condition(path="client.name", operator=ConditionOperator.CONTAINS, value="Acme"),
    ]


def test_parse_structured_list_roundtrip():
    parsed = parse_conditions([{"path": "amount", "operator": "gt", "value": 10}])
    assert parsed == [Condition(path="amount", operator=ConditionOperator.GT, value=10)]
    assert parse_conditions([c.model_dump(mode="json") for c in parsed]) == parsed


@pytest.mark.parametrize(
    "raw",
    [
        {"amount_gt": "100"},
        {"amount_lt": True},
        {"name_contains": 5},
        {"a..b": 1},
        [{"path": "x", "operator": "between", "value": 1}],
        "status=paid",
    ],
)
def test_parse_rejects_malformed_conditions(raw):
    with pytest.raises(ConfigurationError):
        parse_conditions(raw)


def test_all_conditions_must_hold():
    conditions = parse_conditions({"status": "paid", "amount_gt": 100})
    assert evaluate(conditions, {"status": "paid", "amount": 150}) is True
    assert evaluate(conditions, {"status": "paid", "amount": 50}) is False
    assert evaluate(conditions, {"status": "draft", "amount": 150}) is False


def test_nested_paths():
    conditions = parse_conditions({"client.tier": "gold", "invoice.lines.count_gt": 2})
    context = {"client": {"tier": "gold"}, "invoice": {"lines": {"count": 3}}}
    assert evaluate(conditions, context) is True
    assert evaluate(conditions, {"client": "gold"}) is False
    assert evaluate(conditions, {}) is False


def test_equality_is_strict():
    assert evaluate({"amount": 100}, {"amount": "100"}) is False
    assert evaluate({"amount": 100}, {"amount": 100.0}) is True
    assert evaluate({"active": True}, {"active": 1}) is False
    assert evaluate({"active": True}, {"active": True}) is True
    assert evaluate({"note": None}, {"note": None}) is True
    assert evaluate({"note": None}, {}) is False


def test_numeric_operators_fail_on_non_numbers():
    assert evaluate({"amount_gt": 10}, {"amount": "500"}) is False
    assert evaluate({"amount_lt": 10}, {"amount": None}) is False
    assert evaluate({"amount_gt": 10}, {"amount": True}) is False
    assert evaluate({"amount_gt": 10}, {}) is False


def test_numeric_operators_are_strict():
    assert evaluate({"amount_gt": 100}, {"amount": 100}) is False
    assert evaluate({"amount_lt": 100}, {"amount": 100}) is False
    assert evaluate({"amount_lt": 100}, {"amount": 99.5}) is True


def test_contains_requires_string():
    assert evaluate({"name_contains": "Acme"}, {"name": "Acme Corp"}) is True
    assert evaluate({"name_contains": "acme"}, {"name": "Acme Corp"}) is False
    assert evaluate({"tags_contains": "vip"}, {"tags": ["vip"]}) is False


def test_raw_map_with_bad_expected_value_never_raises():
    assert evaluate({"amount_gt": "lots"}, {"amount": 5}) is False
