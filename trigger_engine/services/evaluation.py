"""
Condition evaluation for notification triggers.

Three levels, leaves first:

- evaluate_condition: one (field, operator, value) check against a payload
- evaluate_group: conditions folded under AND/OR
- evaluate_tree: legacy flat list (AND) or grouped tree

Field paths are dotted ("material.quantity", "items.0.name") and resolved with
resolve_path. A path that does not resolve yields MISSING, never an exception.
Nothing here raises on bad input: unknown operators and malformed trees
evaluate to False.
"""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any

from trigger_engine.models.conditions import (
    Condition,
    ConditionGroup,
    ConditionOperator,
    GroupedConditions,
    LegacyConditions,
    LogicalOperator,
    logical_operator_name,
)
from trigger_engine.utils.serializers import parse_condition_tree

logger = logging.getLogger(__name__)


class _Missing:
    """Marker for a path that does not resolve."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return 'MISSING'

    def __bool__(self) -> bool:
        return False


MISSING = _Missing()


def resolve_path(root: Any, path: str) -> Any:
    """
    Resolve a dotted path into nested mappings and sequences.

    Args:
        root: Payload to walk
        path: Dotted path, numeric segments index into lists

    Returns:
        Resolved value (None included) or MISSING
    """
    current = root
    for segment in path.split('.'):
        if isinstance(current, Mapping):
            if segment not in current:
                return MISSING
            current = current[segment]
        elif isinstance(current, (list, tuple)):
            try:
                current = current[int(segment)]
            except (ValueError, IndexError):
                return MISSING
        else:
            return MISSING
    return current


def to_number(value: Any) -> float:
    """
    Coerce a value to a number.

    Booleans count as 1/0, None and blank strings as 0, datetimes as epoch
    milliseconds. Anything else that does not parse is NaN.
    """
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if value is None:
        return 0.0
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        try:
            return float(text)
        except ValueError:
            return math.nan
    if isinstance(value, datetime):
        return value.timestamp() * 1000
    return math.nan


def stringify(value: Any) -> str:
    """Deterministic string form used by text operators and templates."""
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (Mapping, list, tuple)):
        return json.dumps(value, sort_keys=True, separators=(',', ':'), default=str)
    return str(value)


def _is_numeric(value: Any) -> bool:
    return isinstance(value, (int, float))


def loose_equals(left: Any, right: Any) -> bool:
    """
    Coerced equality: "5" equals 5, True equals 1, None equals absent.

    String comparison stays case-sensitive.
    """
    left_empty = left is None or left is MISSING
    right_empty = right is None or right is MISSING
    if left_empty or right_empty:
        return left_empty and right_empty

    if (_is_numeric(left) and isinstance(right, (str, int, float))) or (
        _is_numeric(right) and isinstance(left, (str, int, float))
    ):
        # NaN never equals anything, NaN included
        return to_number(left) == to_number(right)

    return left == right


def _compare(left: Any, right: Any, op) -> bool:
    a, b = to_number(left), to_number(right)
    if math.isnan(a) or math.isnan(b):
        return False
    return op(a, b)


def _text(value: Any) -> str:
    return stringify(value).lower()


def evaluate_condition(condition: Condition, data: Any) -> bool:
    """
    Evaluate one condition against a payload.

    Args:
        condition: Field path, operator and expected value
        data: Event payload

    Returns:
        True if the condition holds
    """
    actual = resolve_path(data, condition.field)
    expected = condition.value

    try:
        operator = ConditionOperator(condition.operator)
    except ValueError:
        logger.warning(
            f"Unknown condition operator '{condition.operator}' on field "
            f"'{condition.field}'; condition evaluates to false"
        )
        return False

    if operator is ConditionOperator.EQUALS:
        return loose_equals(actual, expected)
    if operator is ConditionOperator.NOT_EQUALS:
        return not loose_equals(actual, expected)
    if operator is ConditionOperator.GREATER_THAN:
        return _compare(actual, expected, lambda a, b: a > b)
    if operator is ConditionOperator.LESS_THAN:
        return _compare(actual, expected, lambda a, b: a < b)
    if operator is ConditionOperator.GREATER_THAN_OR_EQUAL:
        return _compare(actual, expected, lambda a, b: a >= b)
    if operator is ConditionOperator.LESS_THAN_OR_EQUAL:
        return _compare(actual, expected, lambda a, b: a <= b)

    # Text operators: an absent field contains nothing
    if actual is MISSING:
        return operator is ConditionOperator.NOT_CONTAINS

    haystack, needle = _text(actual), _text(expected)
    if operator is ConditionOperator.CONTAINS:
        return needle in haystack
    if operator is ConditionOperator.NOT_CONTAINS:
        return needle not in haystack
    if operator is ConditionOperator.STARTS_WITH:
        return haystack.startswith(needle)
    return haystack.endswith(needle)


def evaluate_group(group: ConditionGroup, data: Any) -> bool:
    """
    Fold a group's conditions under its operator.

    AND over no conditions is True, OR over no conditions is False. An
    unknown group operator is False.
    """
    operator = logical_operator_name(group.operator)
    if operator == LogicalOperator.AND.value:
        return all(evaluate_condition(c, data) for c in group.conditions)
    if operator == LogicalOperator.OR.value:
        return any(evaluate_condition(c, data) for c in group.conditions)

    logger.warning(f"Unknown group operator '{group.operator}'; group evaluates to false")
    return False


def evaluate_tree(tree: Any, data: Any) -> bool:
    """
    Evaluate a trigger's condition tree.

    Accepts a parsed tree (LegacyConditions / GroupedConditions) or the raw
    persisted JSON, which is parsed first. A tree with no conditions or no
    groups never fires, and neither does a malformed one.

    Args:
        tree: Condition tree
        data: Event payload

    Returns:
        True if the trigger should fire
    """
    if not isinstance(tree, (LegacyConditions, GroupedConditions)):
        parsed = parse_condition_tree(tree)
        if parsed is None:
            logger.warning("Malformed condition tree; evaluates to false")
            return False
        tree = parsed

    if isinstance(tree, LegacyConditions):
        if not tree.conditions:
            return False
        return all(evaluate_condition(c, data) for c in tree.conditions)

    if not tree.groups:
        return False

    results = [evaluate_group(group, data) for group in tree.groups]
    operator = logical_operator_name(tree.operator or LogicalOperator.AND)
    if operator == LogicalOperator.AND.value:
        return all(results)
    if operator == LogicalOperator.OR.value:
        return any(results)

    logger.warning(f"Unknown tree operator '{tree.operator}'; tree evaluates to false")
    return False
