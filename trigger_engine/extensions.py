"""Service initialization for the trigger engine application."""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from flask import Flask


def init_store(app: Flask) -> None:
    """Initialize the database manager and entity store.

    Args:
        app: Flask application instance.
    """
    from trigger_engine.models import init_db
    from trigger_engine.services.store import PyDALEntityStore

    manager = init_db(app.config)
    app.extensions['db_manager'] = manager
    app.extensions['store'] = PyDALEntityStore(manager=manager)
    app.logger.info(f"Entity store initialized ({manager.db_type})")


def init_transports(app: Flask) -> None:
    """Initialize email, SMS and in-app transports.

    A transport whose settings are missing is left as None and its channel is
    skipped at send time.

    Args:
        app: Flask application instance.
    """
    from trigger_engine.services.senders import SmsGatewaySender, SmtpEmailSender

    app.extensions['email_sender'] = SmtpEmailSender.from_config(app.config)
    app.extensions['sms_sender'] = SmsGatewaySender.from_config(app.config)

    try:
        from trigger_engine.services.messaging import InAppNotifier

        app.extensions['in_app'] = InAppNotifier.from_config(app.config)
        if app.extensions['in_app'] is not None:
            app.logger.info("In-app notifier initialized successfully")

    except Exception as e:
        app.logger.error(f"Failed to initialize in-app notifier: {e}")
        app.extensions['in_app'] = None


def init_engine(app: Flask) -> None:
    """Initialize executor, dispatcher and event producers.

    Args:
        app: Flask application instance.
    """
    from trigger_engine.services.dispatcher import EventDispatcher
    from trigger_engine.services.executor import TriggerExecutor
    from trigger_engine.services.producers import EventProducers

    store = app.extensions['store']
    executor = TriggerExecutor(
        store,
        email_sender=app.extensions.get('email_sender'),
        sms_sender=app.extensions.get('sms_sender'),
        in_app_notifier=app.extensions.get('in_app'),
        max_send_workers=app.config.get('SEND_WORKERS', 4),
    )
    dispatcher = EventDispatcher(
        store, executor, max_workers=app.config.get('DISPATCH_WORKERS', 1)
    )
    app.extensions['executor'] = executor
    app.extensions['dispatcher'] = dispatcher
    app.extensions['producers'] = EventProducers(store, dispatcher)


def init_scheduler(app: Flask) -> None:
    """Initialize the scan scheduler.

    The scheduler is always built so that /health can report its jobs; the
    background thread only starts when SCHEDULER_ENABLED is set.

    Args:
        app: Flask application instance.
    """
    try:
        from trigger_engine.services.jobs import TriggerJobs, build_default_jobs
        from trigger_engine.services.scheduler import TriggerScheduler

        jobs = TriggerJobs(app.extensions['store'], app.extensions['producers'])
        scheduler = TriggerScheduler(
            build_default_jobs(jobs, app.config),
            warm_up_delay=timedelta(seconds=app.config.get('WARM_UP_DELAY_SECONDS', 60)),
            poll_interval=app.config.get('SCHEDULER_POLL_SECONDS', 1.0),
        )
        app.extensions['jobs'] = jobs
        app.extensions['scheduler'] = scheduler

        if app.config.get('SCHEDULER_ENABLED', True):
            scheduler.start()
            app.logger.info("Scheduler started successfully")

    except Exception as e:
        app.logger.error(f"Failed to initialize scheduler: {e}")
        app.extensions['scheduler'] = None


def init_extensions(app: Flask) -> None:
    """Initialize engine services.

    Args:
        app: Flask application instance.
    """
    init_store(app)
    init_transports(app)
    init_engine(app)
    init_scheduler(app)


def shutdown_extensions(app: Flask) -> None:
    """Stop the scheduler and release connections.

    In-flight scan jobs are allowed to finish first.

    Args:
        app: Flask application instance.
    """
    scheduler = app.extensions.get('scheduler')
    if scheduler is not None:
        scheduler.stop()

    dispatcher = app.extensions.get('dispatcher')
    if dispatcher is not None:
        dispatcher.shutdown()

    in_app = app.extensions.get('in_app')
    if in_app is not None:
        in_app.close()

    manager = app.extensions.get('db_manager')
    if manager is not None:
        manager.cleanup_all_connections()
