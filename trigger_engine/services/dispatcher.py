"""Event dispatch: run every trigger registered for an event type."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Optional

from trigger_engine.models.notification import ExecutionResult

from .executor import TriggerExecutor

logger = logging.getLogger(__name__)


class EventDispatcher:
    """
    Fan an event out to its triggers.

    Triggers are independent, so with max_workers > 1 they run on a bounded
    thread pool. One trigger failing never stops the others; the executor
    already turns failures into results.

    The pool is created on first use and kept for the dispatcher's lifetime.
    Each worker thread holds one database connection, so open connections
    stay capped at max_workers. Call shutdown() to release them.
    """

    def __init__(self, store: Any, executor: TriggerExecutor, max_workers: int = 1) -> None:
        self.store = store
        self.executor = executor
        self.max_workers = max(1, max_workers)
        self._pool: Optional[ThreadPoolExecutor] = None
        self._lock = threading.Lock()

    def _get_pool(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._pool is None:
                self._pool = ThreadPoolExecutor(
                    max_workers=self.max_workers,
                    thread_name_prefix="trigger-dispatch",
                )
            return self._pool

    def dispatch(
        self,
        event_type: str,
        data: dict[str, Any],
        entity_type: Optional[str] = None,
        entity_id: Optional[int] = None,
    ) -> list[ExecutionResult]:
        """
        Execute all triggers for an event.

        Args:
            event_type: Event type key, e.g. 'stock_level_change'
            data: Event payload
            entity_type: Passed through to the execution log
            entity_id: Passed through to the execution log

        Returns:
            One ExecutionResult per trigger, in trigger order
        """
        try:
            triggers = self.store.get_triggers_by_event_type(event_type)
        except Exception as e:
            logger.error(f"Error loading triggers for event {event_type}: {e}", exc_info=True)
            return []

        if not triggers:
            logger.debug(f"No triggers registered for {event_type}")
            return []

        trigger_ids = [t.id for t in triggers]

        def run(trigger_id: int) -> ExecutionResult:
            return self.executor.execute(
                trigger_id, data, entity_type=entity_type, entity_id=entity_id
            )

        if self.max_workers == 1 or len(trigger_ids) == 1:
            results = [run(tid) for tid in trigger_ids]
        else:
            results = list(self._get_pool().map(run, trigger_ids))

        fired = sum(1 for r in results if r.success)
        logger.info(f"Dispatched {event_type} to {len(results)} triggers, {fired} fired")
        return results

    def shutdown(self, wait: bool = True) -> None:
        """Stop the worker pool, waiting for running executions by default."""
        with self._lock:
            pool, self._pool = self._pool, None
        if pool is not None:
            pool.shutdown(wait=wait)
            logger.info("Dispatcher worker pool stopped")
