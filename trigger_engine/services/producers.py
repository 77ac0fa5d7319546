"""
Event producers.

Each producer loads one entity, builds the payload for its event type and
hands it to the dispatcher. Payload keys are what trigger conditions and
template placeholders refer to, so renaming one breaks existing triggers:

stock_level_change      materialId, materialName, currentStock, minStock,
                        criticalStock, unit
delivery_status_change  deliveryId, status, projectId, scheduledTime, volume
quality_test_result     testId, result, status, testType, projectId, createdAt
task_overdue            taskId, taskName, assignedTo, dueDate, priority,
                        daysOverdue
task_completed          taskId, taskName, completedAt, priority, projectId
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable

from trigger_engine.models.notification import EventType, ExecutionResult

from .dispatcher import EventDispatcher

logger = logging.getLogger(__name__)


def stock_level_payload(material: dict[str, Any]) -> dict[str, Any]:
    return {
        'materialId': material['id'],
        'materialName': material.get('name'),
        'currentStock': material.get('quantity'),
        'minStock': material.get('min_stock'),
        'criticalStock': material.get('critical_threshold'),
        'unit': material.get('unit'),
    }


def delivery_status_payload(delivery: dict[str, Any]) -> dict[str, Any]:
    return {
        'deliveryId': delivery['id'],
        'status': delivery.get('status'),
        'projectId': delivery.get('project_id'),
        'scheduledTime': delivery.get('scheduled_time'),
        'volume': delivery.get('volume'),
    }


def quality_test_payload(test: dict[str, Any]) -> dict[str, Any]:
    return {
        'testId': test['id'],
        'result': test.get('result'),
        'status': test.get('status'),
        'testType': test.get('test_type'),
        'projectId': test.get('project_id'),
        'createdAt': test.get('created_at'),
    }


def overdue_task_payload(task: dict[str, Any], now: datetime) -> dict[str, Any]:
    due_date = task.get('due_date')
    days_overdue = max(0, (now - due_date).days) if isinstance(due_date, datetime) else 0
    return {
        'taskId': task['id'],
        'taskName': task.get('title'),
        'assignedTo': task.get('assigned_to'),
        'dueDate': due_date,
        'priority': task.get('priority'),
        'daysOverdue': days_overdue,
    }


def task_completed_payload(task: dict[str, Any]) -> dict[str, Any]:
    return {
        'taskId': task['id'],
        'taskName': task.get('title'),
        'completedAt': task.get('updated_at'),
        'priority': task.get('priority'),
        'projectId': task.get('project_id'),
    }


class EventProducers:
    """Entity checks that turn current entity state into dispatched events."""

    def __init__(
        self,
        store: Any,
        dispatcher: EventDispatcher,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.clock = clock

    def check_stock_level_triggers(self, material_id: int) -> list[ExecutionResult]:
        material = self.store.get_material(material_id)
        if material is None:
            logger.debug(f"Material {material_id} not found; no stock event")
            return []
        return self.dispatcher.dispatch(
            EventType.STOCK_LEVEL_CHANGE.value,
            stock_level_payload(material),
            entity_type='material',
            entity_id=material['id'],
        )

    def check_delivery_status_triggers(self, delivery_id: int) -> list[ExecutionResult]:
        delivery = self.store.get_delivery(delivery_id)
        if delivery is None:
            logger.debug(f"Delivery {delivery_id} not found; no delivery event")
            return []
        return self.dispatcher.dispatch(
            EventType.DELIVERY_STATUS_CHANGE.value,
            delivery_status_payload(delivery),
            entity_type='delivery',
            entity_id=delivery['id'],
        )

    def check_quality_test_triggers(self, test_id: int) -> list[ExecutionResult]:
        test = self.store.get_quality_test(test_id)
        if test is None:
            logger.debug(f"Quality test {test_id} not found; no quality event")
            return []
        return self.dispatcher.dispatch(
            EventType.QUALITY_TEST_RESULT.value,
            quality_test_payload(test),
            entity_type='quality_test',
            entity_id=test['id'],
        )

    def check_overdue_task_triggers(self, user_id: int) -> list[ExecutionResult]:
        """Dispatch one task_overdue event per overdue task of the user."""
        now = self.clock()
        results: list[ExecutionResult] = []
        for task in self.store.get_overdue_tasks(user_id):
            results.extend(self.dispatcher.dispatch(
                EventType.TASK_OVERDUE.value,
                overdue_task_payload(task, now),
                entity_type='task',
                entity_id=task['id'],
            ))
        return results

    def check_task_completion_triggers(self, task_id: int) -> list[ExecutionResult]:
        """Dispatch task_completed, only for tasks whose status is completed."""
        task = self.store.get_task_by_id(task_id)
        if task is None or task.get('status') != 'completed':
            return []
        return self.dispatcher.dispatch(
            EventType.TASK_COMPLETED.value,
            task_completed_payload(task),
            entity_type='task',
            entity_id=task['id'],
        )
