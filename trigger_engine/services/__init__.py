"""Services package for the trigger engine.

This package provides the evaluation, dispatch and scheduling services plus
the outbound transports. Accessors return the instances wired into
app.extensions by init_extensions.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from flask import current_app

if TYPE_CHECKING:
    from trigger_engine.services.dispatcher import EventDispatcher
    from trigger_engine.services.executor import TriggerExecutor
    from trigger_engine.services.messaging import InAppNotifier
    from trigger_engine.services.producers import EventProducers
    from trigger_engine.services.scheduler import TriggerScheduler
    from trigger_engine.services.store import PyDALEntityStore


def get_store() -> Optional[PyDALEntityStore]:
    """Get the entity store.

    Returns:
        PyDALEntityStore instance or None if not initialized
    """
    return current_app.extensions.get('store')


def get_executor() -> Optional[TriggerExecutor]:
    """Get the trigger executor.

    Returns:
        TriggerExecutor instance or None if not initialized
    """
    return current_app.extensions.get('executor')


def get_dispatcher() -> Optional[EventDispatcher]:
    """Get the event dispatcher.

    Returns:
        EventDispatcher instance or None if not initialized
    """
    return current_app.extensions.get('dispatcher')


def get_producers() -> Optional[EventProducers]:
    """Get the event producers.

    Returns:
        EventProducers instance or None if not initialized
    """
    return current_app.extensions.get('producers')


def get_scheduler() -> Optional[TriggerScheduler]:
    """Get the scan scheduler.

    Returns:
        TriggerScheduler instance or None if not initialized
    """
    return current_app.extensions.get('scheduler')


def get_in_app_notifier() -> Optional[InAppNotifier]:
    """Get the in-app notification transport.

    Returns:
        InAppNotifier instance or None if REDIS_URL is unset
    """
    return current_app.extensions.get('in_app')


__all__ = [
    'get_store',
    'get_executor',
    'get_dispatcher',
    'get_producers',
    'get_scheduler',
    'get_in_app_notifier',
]
