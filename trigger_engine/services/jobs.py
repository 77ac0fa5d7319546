"""
Periodic trigger scans.

Each scan reads the current state of one entity kind, picks the entities that
warrant an event and runs the matching producer for each. Scans never lock
what they read, so overlapping runs can fire the same trigger twice.

A scan logs and swallows its own errors so that a failing scan does not take
the scheduler down; it returns how many entities it dispatched for.
"""

from __future__ import annotations

import logging
from datetime import datetime, time, timedelta
from typing import Any, Callable

from .producers import EventProducers
from .scheduler import ScheduledJob

logger = logging.getLogger(__name__)

TERMINAL_DELIVERY_STATUSES = frozenset({'completed', 'cancelled'})


def is_low_stock(material: dict[str, Any]) -> bool:
    """Below minimum stock, or below the critical threshold when one is set."""
    quantity = material.get('quantity') or 0
    if quantity < (material.get('min_stock') or 0):
        return True
    critical = material.get('critical_threshold')
    return bool(critical) and quantity < critical


def is_delayed(delivery: dict[str, Any], now: datetime) -> bool:
    """Scheduled time has passed and the delivery is not finished."""
    if delivery.get('status') in TERMINAL_DELIVERY_STATUSES:
        return False
    scheduled = delivery.get('scheduled_time')
    return isinstance(scheduled, datetime) and scheduled < now


class TriggerJobs:
    """Scans the scheduler runs."""

    def __init__(
        self,
        store: Any,
        producers: EventProducers,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.store = store
        self.producers = producers
        self.clock = clock

    def check_all_material_stock_levels(self) -> int:
        logger.info("Checking all material stock levels...")
        try:
            materials = self.store.get_materials()
            low = [m for m in materials if is_low_stock(m)]
            for material in low:
                self.producers.check_stock_level_triggers(material['id'])
        except Exception as e:
            logger.error(f"Error checking material stock levels: {e}", exc_info=True)
            return 0

        logger.info(f"Checked {len(materials)} materials for stock levels, {len(low)} low")
        return len(low)

    def check_all_overdue_tasks(self) -> int:
        """Run the overdue-task producer for every admin with overdue tasks."""
        logger.info("Checking for overdue tasks...")
        dispatched = 0
        try:
            users = self.store.get_admin_users_with_sms()
            for user in users:
                if self.store.get_overdue_tasks(user['id']):
                    self.producers.check_overdue_task_triggers(user['id'])
                    dispatched += 1
        except Exception as e:
            logger.error(f"Error checking overdue tasks: {e}", exc_info=True)
            return dispatched

        logger.info(f"Checked overdue tasks for {len(users)} users")
        return dispatched

    def check_delayed_deliveries(self) -> int:
        logger.info("Checking for delayed deliveries...")
        try:
            now = self.clock()
            deliveries = self.store.get_deliveries()
            delayed = [d for d in deliveries if is_delayed(d, now)]
            for delivery in delayed:
                self.producers.check_delivery_status_triggers(delivery['id'])
        except Exception as e:
            logger.error(f"Error checking delayed deliveries: {e}", exc_info=True)
            return 0

        logger.info(f"Checked {len(deliveries)} deliveries for delays, {len(delayed)} delayed")
        return len(delayed)

    def check_failed_quality_tests(self) -> int:
        logger.info("Checking for failed quality tests...")
        try:
            tests = self.store.get_quality_tests()
            failed = [t for t in tests if t.get('status') == 'fail']
            for test in failed:
                self.producers.check_quality_test_triggers(test['id'])
        except Exception as e:
            logger.error(f"Error checking failed quality tests: {e}", exc_info=True)
            return 0

        logger.info(f"Checked {len(tests)} quality tests, {len(failed)} failed")
        return len(failed)


def build_default_jobs(jobs: TriggerJobs, config: Any) -> list[ScheduledJob]:
    """
    Build the standard scan schedule from configuration.

    - material stock levels every STOCK_SCAN_INTERVAL_MINUTES (60)
    - overdue tasks daily at OVERDUE_SCAN_HOUR (09:00 local)
    - delayed deliveries every DELIVERY_SCAN_INTERVAL_MINUTES (30)
    - failed quality tests every QUALITY_SCAN_INTERVAL_MINUTES (120)

    The interval scans also run once in the warm-up pass after start.
    """
    return [
        ScheduledJob(
            name='material_stock_levels',
            func=jobs.check_all_material_stock_levels,
            interval=timedelta(minutes=config.get('STOCK_SCAN_INTERVAL_MINUTES', 60)),
            warm_up=True,
        ),
        ScheduledJob(
            name='overdue_tasks',
            func=jobs.check_all_overdue_tasks,
            interval=timedelta(days=1),
            daily_at=time(hour=config.get('OVERDUE_SCAN_HOUR', 9)),
        ),
        ScheduledJob(
            name='delayed_deliveries',
            func=jobs.check_delayed_deliveries,
            interval=timedelta(minutes=config.get('DELIVERY_SCAN_INTERVAL_MINUTES', 30)),
            warm_up=True,
        ),
        ScheduledJob(
            name='failed_quality_tests',
            func=jobs.check_failed_quality_tests,
            interval=timedelta(minutes=config.get('QUALITY_SCAN_INTERVAL_MINUTES', 120)),
            warm_up=True,
        ),
    ]
