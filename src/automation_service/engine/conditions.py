"""Declarative trigger conditions.

Administrators write conditions as a flat map::

    {"status": "paid", "amount_gt": 100, "client.name_contains": "Acme"}

A key is a dot-path into the event context, optionally suffixed with
``_gt`` / ``_lt`` (numeric comparison) or ``_contains`` (substring test).
The map is parsed once, when a trigger is saved, into a list of
:class:`Condition`; evaluation then only walks that list. All conditions
must hold (AND); an empty list always matches.
"""
from __future__ import annotations

from typing import Any, Iterable, Mapping

from pydantic import BaseModel, ConfigDict

from automation_service.core.exceptions import ConfigurationError
from automation_service.domain.enums import ConditionOperator
from automation_service.engine.templates import MISSING, get_nested_value

_SUFFIXES: tuple[tuple[str, ConditionOperator], ...] = (
    ("_gt", ConditionOperator.GT),
    ("_lt", ConditionOperator.LT),
    ("_contains", ConditionOperator.CONTAINS),
)


class Condition(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str
    operator: ConditionOperator = ConditionOperator.EQ
    value: Any = None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _validate(condition: Condition) -> Condition:
    if not condition.path or any(not part for part in condition.path.split(".")):
        raise ConfigurationError(f"Invalid condition path: {condition.path!r}")
    if condition.operator in (ConditionOperator.GT, ConditionOperator.LT) and not _is_number(condition.value):
        raise ConfigurationError(
            f"Condition {condition.path}_{condition.operator.value} expects a number, got {condition.value!r}"
        )
    if condition.operator is ConditionOperator.CONTAINS and not isinstance(condition.value, str):
        raise ConfigurationError(
            f"Condition {condition.path}_contains expects a string, got {condition.value!r}"
        )
    return condition


def _split_key(key: str, value: Any) -> Condition:
    for suffix, operator in _SUFFIXES:
        if key.endswith(suffix) and len(key) > len(suffix):
            return Condition(path=key[: -len(suffix)], operator=operator, value=value)
    return Condition(path=key, operator=ConditionOperator.EQ, value=value)


def parse_condition_key(key: str, value: Any) -> Condition:
    return _validate(_split_key(key, value))


def parse_conditions(raw: Mapping[str, Any] | Iterable[Any] | None) -> list[Condition]:
    """Turn a suffix-keyed map (or an already structured list) into conditions.

    Raises :class:`ConfigurationError` on malformed input.
    """
    if raw is None:
        return []
    if isinstance(raw, Mapping):
        return [parse_condition_key(str(key), value) for key, value in raw.items()]
    if isinstance(raw, (str, bytes)):
        raise ConfigurationError("conditions must be an object or a list")
    conditions: list[Condition] = []
    for item in raw:
        if isinstance(item, Condition):
            conditions.append(_validate(item))
        elif isinstance(item, Mapping):
            try:
                conditions.append(_validate(Condition.model_validate(item)))
            except ValueError as exc:
                raise ConfigurationError(f"Invalid condition: {item!r}") from exc
        else:
            raise ConfigurationError(f"Invalid condition: {item!r}")
    return conditions


def _strict_equals(actual: Any, expected: Any) -> bool:
    if actual is MISSING:
        return False
    # True == 1 in Python; a boolean only ever equals a boolean here
    if isinstance(actual, bool) or isinstance(expected, bool):
        return isinstance(actual, bool) and isinstance(expected, bool) and actual is expected
    if _is_number(actual) and _is_number(expected):
        return actual == expected
    return type(actual) is type(expected) and actual == expected


def matches(condition: Condition, context: Mapping[str, Any]) -> bool:
    actual = get_nested_value(context, condition.path)
    op = condition.operator
    if op is ConditionOperator.GT:
        return _is_number(actual) and _is_number(condition.value) and actual > condition.value
    if op is ConditionOperator.LT:
        return _is_number(actual) and _is_number(condition.value) and actual < condition.value
    if op is ConditionOperator.CONTAINS:
        return isinstance(actual, str) and isinstance(condition.value, str) and condition.value in actual
    return _strict_equals(actual, condition.value)


def evaluate(
    conditions: Iterable[Condition] | Mapping[str, Any] | None,
    context: Mapping[str, Any],
) -> bool:
    """True when every condition holds for *context*. Pure; never raises on data."""
    if conditions is None:
        return True
    if isinstance(conditions, Mapping):
        conditions = [_split_key(str(key), value) for key, value in conditions.items()]
    return all(matches(condition, context) for condition in conditions)
