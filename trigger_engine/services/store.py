"""
Entity store for the trigger engine.

EntityStore is the contract the engine consumes; PyDALEntityStore implements
it on the tables from trigger_engine.models. "Not found" is reported as None
or an empty list; only storage failures raise.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional, Protocol

from trigger_engine.models import get_database_manager
from trigger_engine.models.notification import (
    NotificationTemplate,
    NotificationTrigger,
    TriggerExecutionLog,
)
from trigger_engine.utils.serializers import (
    row_to_execution_log,
    row_to_record,
    row_to_template,
    row_to_trigger,
    serialize_condition_tree,
)
from trigger_engine.utils.validators import (
    ValidationError,
    validate_channels,
    validate_condition_tree,
    validate_event_type,
)

if TYPE_CHECKING:
    from pydal import DAL

    from trigger_engine.models.database import DatabaseManager

logger = logging.getLogger(__name__)

TRIGGER_PATCH_FIELDS = frozenset({
    'name', 'description', 'event_type', 'template_id', 'trigger_condition',
    'is_active', 'last_executed_at', 'trigger_count',
})


class EntityStore(Protocol):
    """Reads and writes the engine depends on."""

    def get_materials(self) -> list[dict[str, Any]]: ...

    def get_material(self, material_id: int) -> Optional[dict[str, Any]]: ...

    def get_deliveries(self) -> list[dict[str, Any]]: ...

    def get_delivery(self, delivery_id: int) -> Optional[dict[str, Any]]: ...

    def get_quality_tests(self) -> list[dict[str, Any]]: ...

    def get_quality_test(self, test_id: int) -> Optional[dict[str, Any]]: ...

    def get_overdue_tasks(self, user_id: int) -> list[dict[str, Any]]: ...

    def get_task_by_id(self, task_id: int) -> Optional[dict[str, Any]]: ...

    def get_admin_users_with_sms(self) -> list[dict[str, Any]]: ...

    def get_notification_trigger(self, trigger_id: int) -> Optional[NotificationTrigger]: ...

    def get_notification_template(self, template_id: int) -> Optional[NotificationTemplate]: ...

    def get_triggers_by_event_type(self, event_type: str) -> list[NotificationTrigger]: ...

    def record_trigger_execution(self, log: TriggerExecutionLog) -> int: ...

    def update_notification_trigger(self, trigger_id: int, patch: dict[str, Any]) -> None: ...

    def get_trigger_execution_log(
        self, trigger_id: int, limit: int = 100
    ) -> list[TriggerExecutionLog]: ...


class PyDALEntityStore:
    """
    EntityStore backed by PyDAL.

    With an explicit ``db`` every call uses that connection (tests). Otherwise
    each call uses the calling thread's connection from the DatabaseManager,
    so the store can be shared by scheduler jobs and dispatch workers.
    """

    def __init__(
        self,
        db: Optional[DAL] = None,
        manager: Optional[DatabaseManager] = None,
    ) -> None:
        self._db = db
        self._manager = manager

    @property
    def db(self) -> DAL:
        if self._db is not None:
            return self._db
        manager = self._manager or get_database_manager()
        if manager is None:
            raise RuntimeError("Database not initialized; call init_db() first")
        return manager.get_thread_connection()

    # Read models

    def get_materials(self) -> list[dict[str, Any]]:
        db = self.db
        rows = db(db.material).select(orderby=db.material.name)
        return [row_to_record(r) for r in rows]

    def get_material(self, material_id: int) -> Optional[dict[str, Any]]:
        return row_to_record(self.db.material(material_id))

    def get_deliveries(self) -> list[dict[str, Any]]:
        db = self.db
        rows = db(db.delivery).select(orderby=db.delivery.scheduled_time)
        return [row_to_record(r) for r in rows]

    def get_delivery(self, delivery_id: int) -> Optional[dict[str, Any]]:
        return row_to_record(self.db.delivery(delivery_id))

    def get_quality_tests(self) -> list[dict[str, Any]]:
        db = self.db
        rows = db(db.quality_test).select(orderby=~db.quality_test.created_at)
        return [row_to_record(r) for r in rows]

    def get_quality_test(self, test_id: int) -> Optional[dict[str, Any]]:
        return row_to_record(self.db.quality_test(test_id))

    def get_overdue_tasks(self, user_id: int) -> list[dict[str, Any]]:
        """Tasks owned by the user, past due and not completed, oldest due first."""
        db = self.db
        query = (
            (db.task.user_id == user_id)
            & (db.task.due_date < datetime.now())
            & (db.task.status != 'completed')
        )
        rows = db(query).select(orderby=db.task.due_date)
        return [row_to_record(r) for r in rows]

    def get_task_by_id(self, task_id: int) -> Optional[dict[str, Any]]:
        return row_to_record(self.db.task(task_id))

    def get_admin_users_with_sms(self) -> list[dict[str, Any]]:
        """Admins with SMS notifications enabled and a phone number on file."""
        db = self.db
        query = (
            (db.app_user.role == 'admin')
            & (db.app_user.sms_notifications_enabled == True)  # noqa: E712
            & (db.app_user.phone_number != None)  # noqa: E711
        )
        rows = db(query).select(orderby=db.app_user.id)
        return [row_to_record(r) for r in rows]

    # Engine records

    def get_notification_trigger(self, trigger_id: int) -> Optional[NotificationTrigger]:
        row = self.db.notification_trigger(trigger_id)
        return row_to_trigger(row) if row else None

    def get_notification_template(self, template_id: int) -> Optional[NotificationTemplate]:
        row = self.db.notification_template(template_id)
        return row_to_template(row) if row else None

    def get_triggers_by_event_type(self, event_type: str) -> list[NotificationTrigger]:
        """All triggers for an event type, newest first. Inactive ones included."""
        db = self.db
        rows = db(db.notification_trigger.event_type == event_type).select(
            orderby=~db.notification_trigger.created_at | ~db.notification_trigger.id
        )
        return [row_to_trigger(r) for r in rows]

    def record_trigger_execution(self, log: TriggerExecutionLog) -> int:
        """Append one execution-log row and commit."""
        db = self.db
        log_id = db.trigger_execution_log.insert(
            trigger_id=log.trigger_id,
            entity_type=log.entity_type,
            entity_id=log.entity_id,
            conditions_met=log.conditions_met,
            notifications_sent=log.notifications_sent,
            error=log.error,
            executed_at=log.executed_at,
        )
        db.commit()
        log.id = int(log_id)
        return log.id

    def update_notification_trigger(self, trigger_id: int, patch: dict[str, Any]) -> None:
        """
        Apply a partial update to a trigger and commit.

        Raises:
            ValidationError: If the patch names unknown fields or carries an
                invalid condition tree
        """
        unknown = set(patch) - TRIGGER_PATCH_FIELDS
        if unknown:
            raise ValidationError(
                f"Unknown trigger field(s): {', '.join(sorted(unknown))}",
                field=sorted(unknown)[0],
            )

        values = dict(patch)
        if 'trigger_condition' in values:
            tree = values['trigger_condition']
            if not isinstance(tree, (list, dict)):
                tree = serialize_condition_tree(tree)
            validate_condition_tree(tree)
            values['trigger_condition'] = tree
        if 'event_type' in values:
            validate_event_type(values['event_type'])

        db = self.db
        db(db.notification_trigger.id == trigger_id).update(**values)
        db.commit()

    def get_trigger_execution_log(
        self, trigger_id: int, limit: int = 100
    ) -> list[TriggerExecutionLog]:
        """Most recent execution-log rows for a trigger."""
        db = self.db
        table = db.trigger_execution_log
        rows = db(table.trigger_id == trigger_id).select(
            orderby=~table.executed_at | ~table.id,
            limitby=(0, limit),
        )
        return [row_to_execution_log(r) for r in rows]

    # Authoring

    def create_notification_template(
        self,
        name: str,
        subject: str,
        body_text: str,
        channels: list[str],
        body_html: Optional[str] = None,
        is_active: bool = True,
    ) -> NotificationTemplate:
        """
        Validate and insert a template.

        Raises:
            ValidationError: If required text is empty or channels are invalid
        """
        if not name:
            raise ValidationError('Template name is required', field='name')
        if not subject:
            raise ValidationError('Template subject is required', field='subject')
        if not body_text:
            raise ValidationError('Template body is required', field='body_text')
        validate_channels(channels)

        db = self.db
        template_id = db.notification_template.insert(
            name=name,
            subject=subject,
            body_text=body_text,
            body_html=body_html,
            channels=list(channels),
            is_active=is_active,
        )
        db.commit()
        logger.info(f"Created notification template {template_id} ({name})")
        return self.get_notification_template(template_id)

    def create_notification_trigger(
        self,
        name: str,
        event_type: str,
        template_id: int,
        trigger_condition: Any,
        description: str = '',
        is_active: bool = True,
    ) -> NotificationTrigger:
        """
        Validate and insert a trigger.

        Args:
            trigger_condition: Legacy list, grouped dict, or parsed tree

        Raises:
            ValidationError: If the event type or condition tree is invalid,
                or the template does not exist
        """
        if not name:
            raise ValidationError('Trigger name is required', field='name')
        validate_event_type(event_type)

        if not isinstance(trigger_condition, (list, dict)):
            trigger_condition = serialize_condition_tree(trigger_condition)
        validate_condition_tree(trigger_condition)

        if self.get_notification_template(template_id) is None:
            raise ValidationError(f'Template {template_id} not found', field='template_id')

        db = self.db
        trigger_id = db.notification_trigger.insert(
            name=name,
            description=description,
            event_type=event_type,
            template_id=template_id,
            trigger_condition=trigger_condition,
            is_active=is_active,
            trigger_count=0,
        )
        db.commit()
        logger.info(f"Created notification trigger {trigger_id} ({name}) for {event_type}")
        return self.get_notification_trigger(trigger_id)
