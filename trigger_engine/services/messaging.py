"""Redis Streams transport for in-app notifications.

Each in-app notification is appended to one stream; front-ends read the
stream and filter by recipient. The stream is capped with an approximate
MAXLEN so that it never grows unbounded.
"""

import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

import redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


@dataclass
class InAppMessage:
    """In-app notification as stored in the stream."""

    recipient_id: int
    subject: str
    body: str
    trigger_id: Optional[int] = None
    created_at: str = ""


class InAppNotifier:
    """Redis Streams-based in-app notification transport."""

    DEFAULT_STREAM = "trigger-engine:in-app"

    def __init__(
        self,
        redis_url: Optional[str] = None,
        stream: str = DEFAULT_STREAM,
        max_stream_len: int = 10000,
        client: Optional[redis.Redis] = None,
    ):
        """Initialize the in-app notifier.

        Args:
            redis_url: Redis connection URL (redis://host:port/db)
            stream: Stream key notifications are appended to
            max_stream_len: Approximate cap on stream length
            client: Pre-built Redis client (skips connecting by URL)
        """
        self.redis_url = redis_url
        self.stream = stream
        self.max_stream_len = max_stream_len

        if client is not None:
            self.redis_client = client
            return

        try:
            self.redis_client = redis.from_url(
                self.redis_url,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30,
            )
            self.redis_client.ping()
            logger.info(f"Connected to Redis at {self.redis_url}")
        except RedisError as e:
            logger.error(f"Failed to connect to Redis: {e}")
            raise

    @classmethod
    def from_config(cls, config) -> Optional["InAppNotifier"]:
        """Build a notifier from Flask config, or None when REDIS_URL is unset."""
        if not config.get("REDIS_URL"):
            return None
        return cls(
            redis_url=config["REDIS_URL"],
            stream=config.get("IN_APP_STREAM", cls.DEFAULT_STREAM),
            max_stream_len=config.get("REDIS_STREAM_MAX_LEN", 10000),
        )

    def publish(
        self,
        recipient_id: int,
        subject: str,
        body: str,
        trigger_id: Optional[int] = None,
    ) -> str:
        """Append an in-app notification to the stream.

        Args:
            recipient_id: User the notification is for
            subject: Rendered subject
            body: Rendered body text
            trigger_id: Trigger that produced it

        Returns:
            str: Message ID from Redis XADD

        Raises:
            RedisError: If publishing fails
        """
        message = InAppMessage(
            recipient_id=recipient_id,
            subject=subject,
            body=body,
            trigger_id=trigger_id,
            created_at=datetime.now().isoformat(),
        )
        # Stream fields must be flat strings
        message_data = {
            key: "" if value is None else str(value)
            for key, value in asdict(message).items()
        }

        try:
            message_id = self.redis_client.xadd(
                self.stream,
                message_data,
                maxlen=self.max_stream_len,
                approximate=True,
            )
        except RedisError as e:
            logger.error(f"Failed to publish in-app notification for {recipient_id}: {e}")
            raise

        logger.debug(f"Published in-app notification {message_id} for recipient {recipient_id}")
        return message_id

    def recent(self, recipient_id: int, count: int = 50) -> List[Dict[str, Any]]:
        """Get a recipient's most recent in-app notifications, newest first.

        Scans the newest entries of the stream and filters by recipient.

        Args:
            recipient_id: User to read for
            count: Maximum notifications to return

        Returns:
            list: Notification records with their stream IDs
        """
        try:
            messages = self.redis_client.xrevrange(self.stream, count=count * 10)
        except RedisError as e:
            logger.error(f"Error reading in-app notifications: {e}")
            raise

        notifications = []
        for msg_id, msg_data in messages:
            if msg_data.get("recipient_id") != str(recipient_id):
                continue
            trigger_id = msg_data.get("trigger_id")
            notifications.append({
                "id": msg_id,
                "recipientId": recipient_id,
                "subject": msg_data.get("subject", ""),
                "body": msg_data.get("body", ""),
                "triggerId": int(trigger_id) if trigger_id else None,
                "createdAt": msg_data.get("created_at"),
            })
            if len(notifications) >= count:
                break
        return notifications

    def close(self) -> None:
        """Close the Redis connection."""
        try:
            self.redis_client.close()
            logger.info("Closed Redis connection")
        except RedisError as e:
            logger.warning(f"Error closing Redis connection: {e}")
