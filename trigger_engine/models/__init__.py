"""
Trigger engine models package.

PyDAL table definitions for the engine's own records (triggers, templates,
execution log) and the read models it scans (materials, deliveries, quality
tests, tasks, users), plus the dataclasses the engine works with.

Thread-safe connection management lives in database.DatabaseManager.
"""

from datetime import datetime
from typing import Optional

from pydal import DAL, Field

from .database import DatabaseManager

__all__ = [
    'DAL',
    'Field',
    'DatabaseManager',
    'define_tables',
    'get_database_manager',
    'init_db',
]

_db_manager: Optional[DatabaseManager] = None


def get_database_manager() -> Optional[DatabaseManager]:
    """
    Get the database manager registered by init_db.

    Returns:
        DatabaseManager instance or None before init_db ran
    """
    return _db_manager


def init_db(config) -> DatabaseManager:
    """
    Create the global database manager from configuration.

    Tables are defined on every new thread connection.

    Args:
        config: Flask app.config

    Returns:
        DatabaseManager instance
    """
    global _db_manager
    _db_manager = DatabaseManager.from_config(config, on_connect=define_tables)
    return _db_manager


def define_tables(db: DAL) -> None:
    """
    Define PyDAL tables used by the engine.

    Engine records:
    - notification_template (subject/body with {{path}} placeholders)
    - notification_trigger (event type + condition tree + template)
    - trigger_execution_log (append-only audit)

    Read models consumed by the event producers and scans:
    - app_user, material, delivery, quality_test, task

    Args:
        db: PyDAL DAL instance
    """
    db.define_table(
        'app_user',
        Field('name', 'string', length=255),
        Field('email', 'string', length=255),
        Field('phone_number', 'string', length=32),
        Field('role', 'string', length=32, default='user'),
        Field('sms_notifications_enabled', 'boolean', default=False),
        format='%(name)s',
    )

    db.define_table(
        'material',
        Field('name', 'string', length=255, notnull=True),
        Field('quantity', 'double', default=0),
        Field('min_stock', 'double', default=0),
        Field('critical_threshold', 'double'),
        Field('unit', 'string', length=32),
        format='%(name)s',
    )

    db.define_table(
        'delivery',
        Field('project_id', 'integer'),
        Field('status', 'string', length=32, default='scheduled'),
        Field('scheduled_time', 'datetime'),
        Field('volume', 'double'),
    )

    db.define_table(
        'quality_test',
        Field('project_id', 'integer'),
        Field('test_type', 'string', length=64),
        Field('result', 'string', length=255),
        Field('status', 'string', length=32, default='pending'),  # pass, fail, pending
        Field('created_at', 'datetime', default=datetime.now),
    )

    db.define_table(
        'task',
        Field('user_id', 'integer', notnull=True),  # owner
        Field('assigned_to', 'integer'),
        Field('project_id', 'integer'),
        Field('title', 'string', length=255, notnull=True),
        Field('status', 'string', length=32, default='pending'),
        Field('priority', 'string', length=16, default='medium'),
        Field('due_date', 'datetime'),
        Field('updated_at', 'datetime', default=datetime.now, update=datetime.now),
        format='%(title)s',
    )

    db.define_table(
        'notification_template',
        Field('name', 'string', length=255, notnull=True),
        Field('subject', 'string', length=512, notnull=True),
        Field('body_text', 'text', notnull=True),
        Field('body_html', 'text'),
        Field('channels', 'list:string'),  # email, sms, in_app
        Field('is_active', 'boolean', default=True),
        Field('created_at', 'datetime', default=datetime.now),
        format='%(name)s',
    )

    db.define_table(
        'notification_trigger',
        Field('name', 'string', length=255, notnull=True),
        Field('description', 'text'),
        Field('event_type', 'string', length=64, notnull=True),
        Field('template_id', 'integer', notnull=True),
        Field('trigger_condition', 'json'),  # legacy list or grouped object
        Field('is_active', 'boolean', default=True),
        Field('last_executed_at', 'datetime'),
        Field('trigger_count', 'integer', default=0),
        Field('created_at', 'datetime', default=datetime.now),
        format='%(name)s',
    )

    db.define_table(
        'trigger_execution_log',
        Field('trigger_id', 'integer', notnull=True),
        Field('entity_type', 'string', length=64),
        Field('entity_id', 'integer', default=0),
        Field('conditions_met', 'boolean', default=False),
        Field('notifications_sent', 'integer', default=0),
        Field('error', 'text'),
        Field('executed_at', 'datetime', default=datetime.now),
    )

    _create_indexes(db)


def _create_indexes(db: DAL) -> None:
    """
    Create indexes for the lookups the engine performs.

    Args:
        db: PyDAL DAL instance
    """
    indexes = [
        ('idx_trigger_event_type', 'notification_trigger', ['event_type']),
        ('idx_execution_log_trigger', 'trigger_execution_log', ['trigger_id']),
        ('idx_task_user', 'task', ['user_id']),
    ]

    for index_name, table_name, columns in indexes:
        try:
            db.executesql(
                f"CREATE INDEX IF NOT EXISTS {index_name} "
                f"ON {table_name} ({', '.join(columns)})"
            )
        except Exception:
            # MySQL has no IF NOT EXISTS for indexes; an existing index is fine
            db.rollback()

    db.commit()
