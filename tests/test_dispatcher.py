"""Tests for event dispatch."""

from __future__ import annotations

import threading
import time

from conftest import add_admin, add_template, add_trigger
from trigger_engine.models import define_tables
from trigger_engine.models.conditions import Condition, LegacyConditions
from trigger_engine.models.database import DatabaseManager
from trigger_engine.models.notification import ExecutionResult, NotificationTrigger
from trigger_engine.services.dispatcher import EventDispatcher
from trigger_engine.services.executor import TriggerExecutor
from trigger_engine.services.store import PyDALEntityStore


def test_runs_every_trigger_for_event(db, store, executor, email_sender):
    add_admin(db)
    template = add_template(store)
    low = add_trigger(store, template.id, name='low')
    very_low = add_trigger(
        store, template.id, name='very low',
        trigger_condition=[{'field': 'currentStock', 'operator': 'less_than', 'value': 10}],
    )
    inactive = add_trigger(store, template.id, name='inactive', is_active=False)
    add_trigger(store, template.id, name='other event', event_type='task_completed')

    results = EventDispatcher(store, executor).dispatch(
        'stock_level_change', {'currentStock': 30, 'materialName': 'Sand', 'unit': 't'}
    )

    by_trigger = {r.trigger_id: r for r in results}
    assert set(by_trigger) == {low.id, very_low.id, inactive.id}
    assert by_trigger[low.id].success
    assert by_trigger[very_low.id].message == 'Conditions not met'
    assert by_trigger[inactive.id].message == 'Trigger is not active'
    assert len(email_sender.sent) == 1


def test_no_triggers(store, executor):
    assert EventDispatcher(store, executor).dispatch('quality_test_result', {}) == []


def test_trigger_load_failure_returns_empty(memory_store, caplog):
    memory_store.fail_on['get_triggers_by_event_type'] = RuntimeError('db down')

    class UnusedExecutor:
        def execute(self, *args, **kwargs):
            raise AssertionError('executor must not run')

    assert EventDispatcher(memory_store, UnusedExecutor()).dispatch('stock_level_change', {}) == []
    assert 'Error loading triggers for event stock_level_change' in caplog.text


def _triggers(memory_store, count):
    for i in range(1, count + 1):
        memory_store.triggers[i] = NotificationTrigger(
            id=i, name=f't{i}', event_type='stock_level_change', template_id=1,
            trigger_condition=LegacyConditions((Condition('a', 'equals', 1),)),
        )


class SlowExecutor:
    """Executor double tracking concurrency; trigger 2 reports a failure."""

    def __init__(self):
        self.active = 0
        self.peak = 0
        self.calls = []
        self._lock = threading.Lock()

    def execute(self, trigger_id, data, entity_type=None, entity_id=None):
        with self._lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
            self.calls.append((trigger_id, entity_type, entity_id))
        time.sleep(0.05)
        with self._lock:
            self.active -= 1
        if trigger_id == 2:
            return ExecutionResult(success=False, message='boom', trigger_id=trigger_id, error='boom')
        return ExecutionResult(success=True, message='ok', trigger_id=trigger_id)


def test_concurrent_dispatch_is_bounded_and_ordered(memory_store):
    _triggers(memory_store, 6)
    executor = SlowExecutor()

    results = EventDispatcher(memory_store, executor, max_workers=3).dispatch(
        'stock_level_change', {'a': 1}, entity_type='material', entity_id=9
    )

    assert [r.trigger_id for r in results] == [1, 2, 3, 4, 5, 6]
    assert [r.success for r in results] == [True, False, True, True, True, True]
    assert 1 < executor.peak <= 3
    assert all(call[1:] == ('material', 9) for call in executor.calls)


def test_sequential_dispatch(memory_store):
    _triggers(memory_store, 3)
    executor = SlowExecutor()

    results = EventDispatcher(memory_store, executor).dispatch('stock_level_change', {'a': 1})

    assert len(results) == 3
    assert executor.peak == 1


def test_pooled_dispatch_reuses_worker_connections(tmp_path):
    manager = DatabaseManager(
        db_type='sqlite', db_path='engine.db', folder=str(tmp_path), on_connect=define_tables,
    )
    store = PyDALEntityStore(manager=manager)
    template = add_template(store)
    for i in range(3):
        add_trigger(
            store, template.id, name=f'low {i}',
            trigger_condition=[{'field': 'currentStock', 'operator': 'less_than', 'value': 10}],
        )
    dispatcher = EventDispatcher(store, TriggerExecutor(store, max_send_workers=1), max_workers=3)

    try:
        counts = []
        for _ in range(5):
            results = dispatcher.dispatch('stock_level_change', {'currentStock': 30})
            assert [r.message for r in results] == ['Conditions not met'] * 3
            counts.append(manager.open_connections)

        assert max(counts) <= 4
    finally:
        dispatcher.shutdown()
        manager.cleanup_all_connections()

    assert manager.open_connections == 0


def test_shutdown_is_idempotent(memory_store):
    _triggers(memory_store, 2)
    dispatcher = EventDispatcher(memory_store, SlowExecutor(), max_workers=2)
    dispatcher.dispatch('stock_level_change', {'a': 1})

    dispatcher.shutdown()
    dispatcher.shutdown()

    assert len(dispatcher.dispatch('stock_level_change', {'a': 1})) == 2
    dispatcher.shutdown()
