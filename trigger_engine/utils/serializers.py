"""Serialization utilities for trigger engine records.

Converts PyDAL Row objects to engine dataclasses and plain records, and
parses persisted condition trees into the LegacyConditions/GroupedConditions
tagged union.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from pydal.objects import Row

from trigger_engine.models.conditions import (
    Condition,
    ConditionGroup,
    ConditionTree,
    GroupedConditions,
    LegacyConditions,
    logical_operator_name,
)
from trigger_engine.models.notification import (
    NotificationTemplate,
    NotificationTrigger,
    TriggerExecutionLog,
)

logger = logging.getLogger(__name__)


def _parse_condition(raw: Any) -> Optional[Condition]:
    if isinstance(raw, Condition):
        return raw
    if not isinstance(raw, dict) or not isinstance(raw.get('field'), str):
        return None
    operator = raw.get('operator', '')
    return Condition(
        field=raw['field'],
        operator=str(getattr(operator, 'value', operator)),
        value=raw.get('value'),
    )


def _parse_conditions(raw: Any) -> Optional[tuple[Condition, ...]]:
    if not isinstance(raw, (list, tuple)):
        return None
    conditions = []
    for item in raw:
        condition = _parse_condition(item)
        if condition is None:
            return None
        conditions.append(condition)
    return tuple(conditions)


def parse_condition_tree(raw: Any) -> Optional[ConditionTree]:
    """Parse a persisted condition tree.

    Args:
        raw: Legacy condition list, grouped object, or an already parsed tree.

    Returns:
        LegacyConditions or GroupedConditions, or None when malformed.
    """
    if isinstance(raw, (LegacyConditions, GroupedConditions)):
        return raw

    if isinstance(raw, (list, tuple)):
        conditions = _parse_conditions(raw)
        return LegacyConditions(conditions) if conditions is not None else None

    if not isinstance(raw, dict) or not isinstance(raw.get('groups'), (list, tuple)):
        return None

    groups = []
    for raw_group in raw['groups']:
        if isinstance(raw_group, ConditionGroup):
            groups.append(raw_group)
            continue
        if not isinstance(raw_group, dict):
            return None
        conditions = _parse_conditions(raw_group.get('conditions', []))
        if conditions is None:
            return None
        groups.append(ConditionGroup(
            operator=logical_operator_name(raw_group.get('operator')),
            conditions=conditions,
        ))

    return GroupedConditions(operator=logical_operator_name(raw.get('operator')), groups=tuple(groups))


def serialize_condition(condition: Condition) -> dict[str, Any]:
    """Serialize one condition to its persisted form."""
    return {
        'field': condition.field,
        'operator': getattr(condition.operator, 'value', condition.operator),
        'value': condition.value,
    }


def serialize_condition_tree(tree: ConditionTree) -> Any:
    """Serialize a condition tree to its persisted JSON form.

    Args:
        tree: LegacyConditions or GroupedConditions.

    Returns:
        List (legacy) or dict (grouped).
    """
    if isinstance(tree, LegacyConditions):
        return [serialize_condition(c) for c in tree.conditions]

    return {
        'operator': logical_operator_name(tree.operator),
        'groups': [
            {
                'operator': logical_operator_name(group.operator),
                'conditions': [serialize_condition(c) for c in group.conditions],
            }
            for group in tree.groups
        ],
    }


def row_to_record(row: Optional[Row]) -> Optional[dict[str, Any]]:
    """Convert an entity row into a plain dict record.

    Args:
        row: PyDAL Row object or None.

    Returns:
        Dictionary of column values, or None.
    """
    if row is None:
        return None
    return row.as_dict()


def row_to_trigger(row: Row) -> NotificationTrigger:
    """Convert a notification_trigger row.

    Malformed stored condition trees become an empty legacy list, which never
    fires.

    Args:
        row: PyDAL Row object.

    Returns:
        NotificationTrigger dataclass.
    """
    tree = parse_condition_tree(row.trigger_condition)
    if tree is None:
        logger.warning(f"Trigger {row.id} has a malformed condition tree; it will never fire")
        tree = LegacyConditions()

    return NotificationTrigger(
        id=row.id,
        name=row.name,
        description=row.description or '',
        event_type=row.event_type,
        template_id=row.template_id,
        trigger_condition=tree,
        is_active=bool(row.is_active),
        last_executed_at=row.last_executed_at,
        trigger_count=row.trigger_count or 0,
        created_at=row.created_at,
    )


def row_to_template(row: Row) -> NotificationTemplate:
    """Convert a notification_template row.

    Args:
        row: PyDAL Row object.

    Returns:
        NotificationTemplate dataclass.
    """
    return NotificationTemplate(
        id=row.id,
        name=row.name,
        subject=row.subject or '',
        body_text=row.body_text or '',
        body_html=row.body_html,
        channels=list(row.channels or []),
        is_active=bool(row.is_active),
    )


def row_to_execution_log(row: Row) -> TriggerExecutionLog:
    """Convert a trigger_execution_log row.

    Args:
        row: PyDAL Row object.

    Returns:
        TriggerExecutionLog dataclass.
    """
    return TriggerExecutionLog(
        id=row.id,
        trigger_id=row.trigger_id,
        entity_type=row.entity_type or '',
        entity_id=row.entity_id or 0,
        conditions_met=bool(row.conditions_met),
        notifications_sent=row.notifications_sent or 0,
        error=row.error,
        executed_at=row.executed_at,
    )


def serialize_trigger(trigger: NotificationTrigger) -> dict[str, Any]:
    """Serialize a trigger for operators (health/debug output).

    Args:
        trigger: NotificationTrigger dataclass.

    Returns:
        Dictionary with camelCase keys.
    """
    return {
        'id': trigger.id,
        'name': trigger.name,
        'description': trigger.description,
        'eventType': trigger.event_type,
        'templateId': trigger.template_id,
        'triggerCondition': serialize_condition_tree(trigger.trigger_condition),
        'isActive': trigger.is_active,
        'lastExecutedAt': trigger.last_executed_at.isoformat() if trigger.last_executed_at else None,
        'triggerCount': trigger.trigger_count,
    }


def serialize_execution_log(log: TriggerExecutionLog) -> dict[str, Any]:
    """Serialize an execution log row.

    Args:
        log: TriggerExecutionLog dataclass.

    Returns:
        Dictionary with camelCase keys.
    """
    return {
        'id': log.id,
        'triggerId': log.trigger_id,
        'entityType': log.entity_type,
        'entityId': log.entity_id,
        'conditionsMet': log.conditions_met,
        'notificationsSent': log.notifications_sent,
        'error': log.error,
        'executedAt': log.executed_at.isoformat() if log.executed_at else None,
    }
