"""
Trigger execution.

Runs one trigger against one event payload:

1. Load the trigger, stop if missing or inactive
2. Evaluate its condition tree against the payload
3. Load the template, stop if missing or inactive
4. Render subject/body with the payload
5. Resolve recipients
6. Send over every template channel to every recipient
7. Append one execution-log row
8. Bump the trigger's last_executed_at / trigger_count

Steps 1-5 can end the run early with a "not executed" result; those runs are
not written to the execution log. Once dispatch starts, exactly one log row is
written, whether the run succeeds or fails. execute() never raises.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from trigger_engine.models.notification import (
    Channel,
    ExecutionResult,
    NotificationTemplate,
    NotificationTrigger,
    Recipient,
    TriggerExecutionLog,
)

from .evaluation import evaluate_tree
from .recipients import RecipientResolver
from .templating import render

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenderedMessage:
    """Template rendered for one event."""

    subject: str
    body: str
    body_html: Optional[str] = None


class TriggerExecutor:
    """
    Execute notification triggers.

    Senders are optional: a channel whose sender is not configured is skipped
    with a warning. The in_app channel publishes through the in-app notifier
    when there is one and otherwise counts as sent.
    """

    def __init__(
        self,
        store: Any,
        email_sender: Any = None,
        sms_sender: Any = None,
        in_app_notifier: Any = None,
        recipient_resolver: Optional[RecipientResolver] = None,
        max_send_workers: int = 4,
    ) -> None:
        """
        Initialize trigger executor.

        Args:
            store: EntityStore implementation
            email_sender: Object with send(to, subject, body, html_body=None)
            sms_sender: Object with send(to, body)
            in_app_notifier: Object with publish(recipient_id, subject, body, trigger_id=None)
            recipient_resolver: Defaults to RecipientResolver(store)
            max_send_workers: Cap on concurrent channel sends per execution
        """
        self.store = store
        self.email_sender = email_sender
        self.sms_sender = sms_sender
        self.in_app_notifier = in_app_notifier
        self.recipient_resolver = recipient_resolver or RecipientResolver(store)
        self.max_send_workers = max(1, max_send_workers)
        logger.info("TriggerExecutor initialized")

    def execute(
        self,
        trigger_id: int,
        data: dict[str, Any],
        entity_type: Optional[str] = None,
        entity_id: Optional[int] = None,
    ) -> ExecutionResult:
        """
        Execute a trigger against an event payload.

        Args:
            trigger_id: Trigger to run
            data: Event payload used for conditions and templates
            entity_type: Logged entity type (defaults to the trigger's event type)
            entity_id: Logged entity id (defaults to 0)

        Returns:
            ExecutionResult; failures are reported, never raised
        """
        trigger: Optional[NotificationTrigger] = None
        logged = False

        try:
            trigger = self.store.get_notification_trigger(trigger_id)
            if trigger is None:
                return self._not_executed(trigger_id, "Trigger not found")

            if not trigger.is_active:
                return self._not_executed(trigger_id, "Trigger is not active")

            if not evaluate_tree(trigger.trigger_condition, data):
                return self._not_executed(trigger_id, "Conditions not met")

            template = self.store.get_notification_template(trigger.template_id)
            if template is None:
                return self._not_executed(trigger_id, "Template not found", conditions_met=True)

            if not template.is_active:
                return self._not_executed(trigger_id, "Template is not active", conditions_met=True)

            message = self._render(template, data)

            recipients = self.recipient_resolver.resolve(trigger.event_type, data)
            if not recipients:
                return self._not_executed(trigger_id, "No recipients found", conditions_met=True)

            sent = self._dispatch(trigger, template, message, recipients)

            self.store.record_trigger_execution(TriggerExecutionLog(
                trigger_id=trigger_id,
                entity_type=entity_type or trigger.event_type,
                entity_id=entity_id or 0,
                conditions_met=True,
                notifications_sent=sent,
            ))
            logged = True

            self.store.update_notification_trigger(trigger_id, {
                'last_executed_at': datetime.now(),
                'trigger_count': trigger.trigger_count + 1,
            })

            logger.info(
                f"Trigger {trigger_id} ({trigger.name}) executed: "
                f"{sent} notifications to {len(recipients)} recipients"
            )
            return ExecutionResult(
                success=True,
                message=(
                    f"Trigger executed successfully. Sent {sent} notifications "
                    f"to {len(recipients)} recipients."
                ),
                trigger_id=trigger_id,
                conditions_met=True,
                recipient_count=len(recipients),
                notifications_sent=sent,
            )

        except Exception as e:
            logger.error(f"Error executing trigger {trigger_id}: {e}", exc_info=True)
            if not logged:
                self._record_failure(trigger_id, trigger, entity_type, entity_id, e)
            return ExecutionResult(
                success=False,
                message=str(e) or type(e).__name__,
                trigger_id=trigger_id,
                error=str(e) or type(e).__name__,
            )

    def _not_executed(
        self,
        trigger_id: int,
        reason: str,
        conditions_met: bool = False,
    ) -> ExecutionResult:
        logger.debug(f"Trigger {trigger_id} not executed: {reason}")
        return ExecutionResult(
            success=False,
            message=reason,
            trigger_id=trigger_id,
            conditions_met=conditions_met,
        )

    def _record_failure(
        self,
        trigger_id: int,
        trigger: Optional[NotificationTrigger],
        entity_type: Optional[str],
        entity_id: Optional[int],
        error: Exception,
    ) -> None:
        try:
            self.store.record_trigger_execution(TriggerExecutionLog(
                trigger_id=trigger_id,
                entity_type=entity_type or (trigger.event_type if trigger else "unknown"),
                entity_id=entity_id or 0,
                conditions_met=False,
                notifications_sent=0,
                error=str(error) or type(error).__name__,
            ))
        except Exception as log_error:
            logger.error(
                f"Failed to record execution failure for trigger {trigger_id}: {log_error}",
                exc_info=True,
            )

    def _render(self, template: NotificationTemplate, data: dict[str, Any]) -> RenderedMessage:
        return RenderedMessage(
            subject=render(template.subject, data),
            body=render(template.body_text, data),
            body_html=render(template.body_html, data) if template.body_html else None,
        )

    def _dispatch(
        self,
        trigger: NotificationTrigger,
        template: NotificationTemplate,
        message: RenderedMessage,
        recipients: list[Recipient],
    ) -> int:
        """
        Send over the recipient x channel matrix.

        Pairs lacking the contact field their channel needs are skipped.

        Returns:
            Number of successful sends
        """
        pairs = [
            (recipient, channel)
            for recipient in recipients
            for channel in template.channels
            if self._has_contact(recipient, channel)
        ]
        if not pairs:
            return 0

        if self.max_send_workers == 1 or len(pairs) == 1:
            outcomes = [self._send_one(trigger, message, r, c) for r, c in pairs]
        else:
            with ThreadPoolExecutor(
                max_workers=min(self.max_send_workers, len(pairs)),
                thread_name_prefix=f"trigger-{trigger.id}-send",
            ) as pool:
                outcomes = list(pool.map(lambda p: self._send_one(trigger, message, *p), pairs))

        return sum(1 for ok in outcomes if ok)

    @staticmethod
    def _has_contact(recipient: Recipient, channel: str) -> bool:
        if channel == Channel.EMAIL.value:
            return bool(recipient.email)
        if channel == Channel.SMS.value:
            return bool(recipient.phone_number)
        return channel == Channel.IN_APP.value

    def _send_one(
        self,
        trigger: NotificationTrigger,
        message: RenderedMessage,
        recipient: Recipient,
        channel: str,
    ) -> bool:
        """Send one notification; failures are logged and reported as False."""
        try:
            if channel == Channel.EMAIL.value:
                if self.email_sender is None:
                    logger.warning(f"No email sender configured; skipping recipient {recipient.id}")
                    return False
                result = self.email_sender.send(
                    recipient.email, message.subject, message.body, html_body=message.body_html
                )
                return self._succeeded(result, channel, recipient)

            if channel == Channel.SMS.value:
                if self.sms_sender is None:
                    logger.warning(f"No SMS sender configured; skipping recipient {recipient.id}")
                    return False
                result = self.sms_sender.send(
                    recipient.phone_number, f"{message.subject}: {message.body}"
                )
                return self._succeeded(result, channel, recipient)

            if self.in_app_notifier is not None:
                self.in_app_notifier.publish(
                    recipient.id, message.subject, message.body, trigger_id=trigger.id
                )
            else:
                logger.info(f"In-app notification for user {recipient.id}: {message.subject}")
            return True

        except Exception as e:
            logger.error(
                f"Failed to send {channel} notification to user {recipient.id}: {e}",
                exc_info=True,
            )
            return False

    @staticmethod
    def _succeeded(result: Any, channel: str, recipient: Recipient) -> bool:
        if isinstance(result, dict):
            success, error = bool(result.get('success')), result.get('error')
        else:
            success, error = bool(getattr(result, 'success', False)), getattr(result, 'error', None)
        if not success:
            logger.warning(f"{channel} notification to user {recipient.id} not delivered: {error}")
        return success
