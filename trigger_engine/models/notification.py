"""
Notification trigger, template and execution-log records.

Triggers bind an event type to a condition tree and a template. When an event
of that type is dispatched, every trigger for it is executed: conditions are
evaluated against the event payload, the template is rendered and the result
is sent to the resolved recipients over the template's channels.

Every execution attempt that reaches dispatch (or fails unexpectedly) leaves
exactly one TriggerExecutionLog row behind.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from .conditions import ConditionTree, LegacyConditions


class Channel(str, Enum):
    """Delivery channels a template can target."""

    EMAIL = "email"
    SMS = "sms"
    IN_APP = "in_app"


class EventType(str, Enum):
    """Event types produced by the built-in event producers."""

    STOCK_LEVEL_CHANGE = "stock_level_change"
    DELIVERY_STATUS_CHANGE = "delivery_status_change"
    QUALITY_TEST_RESULT = "quality_test_result"
    TASK_OVERDUE = "task_overdue"
    TASK_COMPLETED = "task_completed"


@dataclass
class NotificationTrigger:
    """Automation rule routed by event type."""

    id: int
    name: str
    event_type: str
    template_id: int
    trigger_condition: ConditionTree = field(default_factory=LegacyConditions)
    description: str = ""
    is_active: bool = True
    last_executed_at: Optional[datetime] = None
    trigger_count: int = 0
    created_at: Optional[datetime] = None


@dataclass
class NotificationTemplate:
    """Subject/body text with {{path}} placeholders."""

    id: int
    name: str
    subject: str
    body_text: str
    body_html: Optional[str] = None
    channels: list[str] = field(default_factory=list)
    is_active: bool = True


@dataclass(frozen=True)
class Recipient:
    """Resolved contact for one execution."""

    id: int
    email: Optional[str] = None
    phone_number: Optional[str] = None


@dataclass
class TriggerExecutionLog:
    """Append-only audit row for one execution attempt."""

    trigger_id: int
    entity_type: str
    entity_id: int = 0
    conditions_met: bool = False
    notifications_sent: int = 0
    error: Optional[str] = None
    executed_at: datetime = field(default_factory=datetime.now)
    id: Optional[int] = None


@dataclass
class ExecutionResult:
    """Outcome of one trigger execution as seen by callers."""

    success: bool
    message: str
    trigger_id: int
    conditions_met: bool = False
    recipient_count: int = 0
    notifications_sent: int = 0
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        result = {
            "success": self.success,
            "message": self.message,
            "triggerId": self.trigger_id,
            "conditionsMet": self.conditions_met,
            "recipientCount": self.recipient_count,
            "notificationsSent": self.notifications_sent,
        }
        if self.error:
            result["error"] = self.error
        return result
