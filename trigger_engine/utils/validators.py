"""Validation utilities for trigger engine records.

Applied when triggers and templates are written. The evaluator itself never
raises on bad input; these checks stop ill-formed rules from being stored.
"""

from __future__ import annotations

import re
from typing import Any

from werkzeug.exceptions import BadRequest

from trigger_engine.models.conditions import ConditionOperator, LogicalOperator
from trigger_engine.models.notification import Channel

EVENT_TYPE_PATTERN = re.compile(r'^[a-z][a-z0-9_]*$')
FIELD_PATH_PATTERN = re.compile(r'^\w+(?:\.\w+)*$')
MAX_EVENT_TYPE_LENGTH = 64

VALID_OPERATORS = {op.value for op in ConditionOperator}
VALID_LOGICAL_OPERATORS = {op.value for op in LogicalOperator}
VALID_CHANNELS = {channel.value for channel in Channel}


class ValidationError(BadRequest):
    """Custom validation error exception."""

    def __init__(self, message: str, field: str | None = None):
        """Initialize validation error.

        Args:
            message: Error message.
            field: Field name that failed validation.
        """
        super().__init__(message)
        self.field = field
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary format.

        Returns:
            Dictionary with error details.
        """
        result = {
            'error': self.message,
        }
        if self.field:
            result['field'] = self.field
        return result


def validate_event_type(event_type: str) -> None:
    """Validate a trigger event type key.

    Args:
        event_type: Event type, e.g. 'stock_level_change'.

    Raises:
        ValidationError: If the event type is empty or malformed.
    """
    if not event_type:
        raise ValidationError('event_type cannot be empty', field='event_type')

    if len(event_type) > MAX_EVENT_TYPE_LENGTH:
        raise ValidationError(
            f'event_type exceeds maximum length of {MAX_EVENT_TYPE_LENGTH} characters',
            field='event_type',
        )

    if not EVENT_TYPE_PATTERN.match(event_type):
        raise ValidationError(
            'event_type must be lower case letters, digits and underscores',
            field='event_type',
        )


def validate_channels(channels: Any) -> None:
    """Validate template channels.

    Args:
        channels: List of channel names.

    Raises:
        ValidationError: If channels are missing or unknown.
    """
    if not isinstance(channels, (list, tuple, set)) or not channels:
        raise ValidationError('At least one channel is required', field='channels')

    unknown = [c for c in channels if c not in VALID_CHANNELS]
    if unknown:
        raise ValidationError(
            f'Unsupported channel(s): {", ".join(map(str, unknown))}. '
            f'Valid channels: {", ".join(sorted(VALID_CHANNELS))}',
            field='channels',
        )


def _validate_condition(condition: Any, path: str) -> None:
    if not isinstance(condition, dict):
        raise ValidationError('Condition must be an object', field=path)

    field_path = condition.get('field')
    if not isinstance(field_path, str) or not FIELD_PATH_PATTERN.match(field_path):
        raise ValidationError(
            'Condition field must be a dotted path like "material.quantity"',
            field=f'{path}.field',
        )

    operator = condition.get('operator')
    if operator not in VALID_OPERATORS:
        raise ValidationError(
            f'Unsupported operator: {operator}. Valid operators: '
            f'{", ".join(sorted(VALID_OPERATORS))}',
            field=f'{path}.operator',
        )

    value = condition.get('value')
    if isinstance(value, (dict, list)):
        raise ValidationError('Condition value must be a scalar', field=f'{path}.value')


def _validate_logical_operator(operator: Any, path: str) -> None:
    if operator not in VALID_LOGICAL_OPERATORS:
        raise ValidationError(
            f'Operator must be one of {", ".join(sorted(VALID_LOGICAL_OPERATORS))}',
            field=path,
        )


def validate_condition_tree(tree: Any) -> None:
    """Validate a persisted condition tree.

    Accepts the legacy flat list form and the grouped form:
    {"operator": "AND"|"OR", "groups": [{"operator": ..., "conditions": [...]}]}

    Empty trees and empty groups are rejected: they would make a trigger that
    can never fire.

    Args:
        tree: Raw JSON-compatible condition tree.

    Raises:
        ValidationError: If the tree is malformed.
    """
    if isinstance(tree, list):
        if not tree:
            raise ValidationError('At least one condition is required', field='trigger_condition')
        for idx, condition in enumerate(tree):
            _validate_condition(condition, f'trigger_condition[{idx}]')
        return

    if not isinstance(tree, dict) or not isinstance(tree.get('groups'), list):
        raise ValidationError(
            'Condition tree must be a list of conditions or an object with groups',
            field='trigger_condition',
        )

    _validate_logical_operator(tree.get('operator', 'AND'), 'trigger_condition.operator')

    groups = tree['groups']
    if not groups:
        raise ValidationError('At least one condition group is required', field='trigger_condition.groups')

    for g_idx, group in enumerate(groups):
        group_path = f'trigger_condition.groups[{g_idx}]'
        if not isinstance(group, dict):
            raise ValidationError('Condition group must be an object', field=group_path)
        _validate_logical_operator(group.get('operator', 'AND'), f'{group_path}.operator')

        conditions = group.get('conditions')
        if not isinstance(conditions, list) or not conditions:
            raise ValidationError(
                'Condition group needs at least one condition',
                field=f'{group_path}.conditions',
            )
        for c_idx, condition in enumerate(conditions):
            _validate_condition(condition, f'{group_path}.conditions[{c_idx}]')
