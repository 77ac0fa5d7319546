"""Pytest configuration and fixtures for trigger engine tests."""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Any, Generator, Optional

import pytest
from flask import Flask
from pydal import DAL

from trigger_engine import create_app, shutdown_extensions
from trigger_engine.config import TestingConfig
from trigger_engine.models import define_tables
from trigger_engine.models.notification import (
    NotificationTemplate,
    NotificationTrigger,
    TriggerExecutionLog,
)
from trigger_engine.services.executor import TriggerExecutor
from trigger_engine.services.senders import SendResult
from trigger_engine.services.store import PyDALEntityStore


class RecordingEmailSender:
    """Email sender double that records calls.

    Addresses in ``raise_for`` raise, addresses in ``reject`` return an
    unsuccessful SendResult.
    """

    def __init__(self, raise_for: tuple = (), reject: tuple = ()) -> None:
        self.raise_for = set(raise_for)
        self.reject = set(reject)
        self.sent: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    def send(self, to, subject, body, html_body=None) -> SendResult:
        if to in self.raise_for:
            raise ConnectionError(f"SMTP connection to {to} refused")
        if to in self.reject:
            return SendResult(success=False, error="mailbox unavailable")
        with self._lock:
            self.sent.append({'to': to, 'subject': subject, 'body': body, 'html_body': html_body})
        return SendResult(success=True, message_id=f"<{len(self.sent)}@test>")


class RecordingSmsSender:
    """SMS sender double that records calls."""

    def __init__(self, raise_for: tuple = ()) -> None:
        self.raise_for = set(raise_for)
        self.sent: list[dict[str, str]] = []
        self._lock = threading.Lock()

    def send(self, to, body) -> SendResult:
        if to in self.raise_for:
            raise TimeoutError(f"gateway timeout for {to}")
        with self._lock:
            self.sent.append({'to': to, 'body': body})
        return SendResult(success=True)


class RecordingInAppNotifier:
    """In-app notifier double."""

    def __init__(self) -> None:
        self.published: list[dict[str, Any]] = []

    def publish(self, recipient_id, subject, body, trigger_id=None) -> str:
        self.published.append({
            'recipient_id': recipient_id,
            'subject': subject,
            'body': body,
            'trigger_id': trigger_id,
        })
        return f"{len(self.published)}-0"


class MemoryStore:
    """In-memory EntityStore for tests that need failure injection or threads."""

    def __init__(self) -> None:
        self.materials: dict[int, dict] = {}
        self.deliveries: dict[int, dict] = {}
        self.quality_tests: dict[int, dict] = {}
        self.tasks: dict[int, dict] = {}
        self.users: list[dict] = []
        self.triggers: dict[int, NotificationTrigger] = {}
        self.templates: dict[int, NotificationTemplate] = {}
        self.logs: list[TriggerExecutionLog] = []
        self.updates: list[tuple[int, dict]] = []
        self.fail_on: dict[str, Exception] = {}
        self.now = datetime.now
        self._lock = threading.Lock()

    def _maybe_fail(self, method: str) -> None:
        if method in self.fail_on:
            raise self.fail_on[method]

    def get_materials(self):
        self._maybe_fail('get_materials')
        return list(self.materials.values())

    def get_material(self, material_id):
        return self.materials.get(material_id)

    def get_deliveries(self):
        self._maybe_fail('get_deliveries')
        return list(self.deliveries.values())

    def get_delivery(self, delivery_id):
        return self.deliveries.get(delivery_id)

    def get_quality_tests(self):
        self._maybe_fail('get_quality_tests')
        return list(self.quality_tests.values())

    def get_quality_test(self, test_id):
        return self.quality_tests.get(test_id)

    def get_overdue_tasks(self, user_id):
        now = self.now()
        return [
            t for t in self.tasks.values()
            if t['user_id'] == user_id and t['due_date'] < now and t['status'] != 'completed'
        ]

    def get_task_by_id(self, task_id):
        return self.tasks.get(task_id)

    def get_admin_users_with_sms(self):
        self._maybe_fail('get_admin_users_with_sms')
        return list(self.users)

    def get_notification_trigger(self, trigger_id):
        self._maybe_fail('get_notification_trigger')
        return self.triggers.get(trigger_id)

    def get_notification_template(self, template_id):
        self._maybe_fail('get_notification_template')
        return self.templates.get(template_id)

    def get_triggers_by_event_type(self, event_type):
        self._maybe_fail('get_triggers_by_event_type')
        return [t for t in self.triggers.values() if t.event_type == event_type]

    def record_trigger_execution(self, log):
        self._maybe_fail('record_trigger_execution')
        with self._lock:
            log.id = len(self.logs) + 1
            self.logs.append(log)
        return log.id

    def update_notification_trigger(self, trigger_id, patch):
        self._maybe_fail('update_notification_trigger')
        with self._lock:
            self.updates.append((trigger_id, dict(patch)))
            trigger = self.triggers.get(trigger_id)
            if trigger is not None:
                for key, value in patch.items():
                    setattr(trigger, key, value)

    def get_trigger_execution_log(self, trigger_id, limit=100):
        return [log for log in reversed(self.logs) if log.trigger_id == trigger_id][:limit]


@pytest.fixture
def db() -> Generator[DAL, None, None]:
    """In-memory SQLite database with engine tables defined."""
    database = DAL('sqlite:memory')
    define_tables(database)
    yield database
    database.close()


@pytest.fixture
def store(db: DAL) -> PyDALEntityStore:
    return PyDALEntityStore(db=db)


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def email_sender() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest.fixture
def sms_sender() -> RecordingSmsSender:
    return RecordingSmsSender()


@pytest.fixture
def in_app_notifier() -> RecordingInAppNotifier:
    return RecordingInAppNotifier()


@pytest.fixture
def executor(store, email_sender, sms_sender) -> TriggerExecutor:
    return TriggerExecutor(store, email_sender=email_sender, sms_sender=sms_sender, max_send_workers=1)


def add_admin(
    db: DAL,
    name: str = 'Admin',
    email: Optional[str] = 'admin@example.com',
    phone_number: Optional[str] = '+15550100',
    sms_enabled: bool = True,
    role: str = 'admin',
) -> int:
    """Insert a user and return its id."""
    user_id = db.app_user.insert(
        name=name,
        email=email,
        phone_number=phone_number,
        role=role,
        sms_notifications_enabled=sms_enabled,
    )
    db.commit()
    return int(user_id)


def add_template(
    store: PyDALEntityStore,
    subject: str = 'Low stock: {{materialName}}',
    body_text: str = 'Low stock: {{materialName}} at {{currentStock}}{{unit}}',
    channels: tuple = ('email',),
    **kwargs,
) -> NotificationTemplate:
    return store.create_notification_template(
        name=kwargs.pop('name', 'Low stock'),
        subject=subject,
        body_text=body_text,
        channels=list(channels),
        **kwargs,
    )


def add_trigger(
    store: PyDALEntityStore,
    template_id: int,
    trigger_condition: Any = None,
    event_type: str = 'stock_level_change',
    **kwargs,
) -> NotificationTrigger:
    if trigger_condition is None:
        trigger_condition = [{'field': 'currentStock', 'operator': 'less_than', 'value': 50}]
    return store.create_notification_trigger(
        name=kwargs.pop('name', 'Stock alert'),
        event_type=event_type,
        template_id=template_id,
        trigger_condition=trigger_condition,
        **kwargs,
    )


@pytest.fixture
def app() -> Generator[Flask, None, None]:
    """Create and configure a test Flask application.

    Yields:
        Flask application configured for testing.
    """
    app = create_app(TestingConfig)
    yield app
    shutdown_extensions(app)


@pytest.fixture
def client(app: Flask):
    """Create a test client for the Flask application.

    Args:
        app: Flask application fixture.

    Returns:
        Flask test client.
    """
    return app.test_client()


@pytest.fixture
def app_context(app: Flask) -> Generator:
    """Provide an application context for tests.

    Args:
        app: Flask application fixture.

    Yields:
        Application context.
    """
    with app.app_context():
        yield app
