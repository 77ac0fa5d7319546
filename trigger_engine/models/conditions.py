"""
Condition tree model for notification triggers.

A trigger gates its notification on a condition tree. Two persisted shapes
exist and both remain valid:

- Legacy: a flat list of conditions, implicitly combined with AND
- Grouped: {"operator": "AND"|"OR", "groups": [{"operator", "conditions"}]}

The evaluator never sniffs raw JSON shapes; raw structures are parsed into
LegacyConditions or GroupedConditions first (see utils.serializers).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


class ConditionOperator(str, Enum):
    """Field comparison operators."""

    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    GREATER_THAN_OR_EQUAL = "greater_than_or_equal"
    LESS_THAN_OR_EQUAL = "less_than_or_equal"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"


class LogicalOperator(str, Enum):
    """Combinators for groups and trees."""

    AND = "AND"
    OR = "OR"


def logical_operator_name(operator: Any) -> str:
    """Upper-case name of a logical operator given as an enum member or string."""
    if operator is None:
        return LogicalOperator.AND.value
    return str(getattr(operator, 'value', operator)).upper()


@dataclass(frozen=True)
class Condition:
    """Single (field, operator, value) check.

    The operator is kept as a plain string so that conditions persisted with
    an operator this version does not know still load (and evaluate false).
    """

    field: str
    operator: str
    value: Any = None


@dataclass(frozen=True)
class ConditionGroup:
    """Conditions combined under one AND/OR operator."""

    operator: str = LogicalOperator.AND.value
    conditions: tuple[Condition, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class LegacyConditions:
    """Flat condition list, combined with AND."""

    conditions: tuple[Condition, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class GroupedConditions:
    """Top-level AND/OR over condition groups."""

    operator: str = LogicalOperator.AND.value
    groups: tuple[ConditionGroup, ...] = field(default_factory=tuple)


ConditionTree = Union[LegacyConditions, GroupedConditions]
