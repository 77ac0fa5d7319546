"""Recipient resolution for fired triggers."""

from __future__ import annotations

import logging
from typing import Any

from trigger_engine.models.notification import Recipient

logger = logging.getLogger(__name__)


class RecipientResolver:
    """
    Maps an event to the contacts that should hear about it.

    Every event type currently goes to admins who opted into SMS
    notifications; the event type and payload are passed through so that
    per-event routing can be added without touching the executor.
    """

    def __init__(self, store: Any) -> None:
        self.store = store

    def resolve(self, event_type: str, data: Any) -> list[Recipient]:
        users = self.store.get_admin_users_with_sms()
        recipients = [
            Recipient(
                id=user['id'],
                email=user.get('email') or None,
                phone_number=user.get('phone_number') or None,
            )
            for user in users
        ]
        logger.debug(f"Resolved {len(recipients)} recipients for {event_type}")
        return recipients
