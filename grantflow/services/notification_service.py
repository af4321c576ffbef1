"""Fire-and-forget notification delivery.

Payloads raised while a business transaction runs are queued in a
``NotificationOutbox`` and only published after that transaction commits.
Delivery failures are logged and never propagate to the caller.
"""
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from grantflow.models.notification import Notification as NotificationRow
from grantflow.repositories.notification_repository import NotificationRepository

logger = logging.getLogger(__name__)

NOTIFICATIONS_TOPIC = "notifications"


@dataclass
class Notification:
    type: str
    action: str
    recipient_id: int
    entity_id: int | str
    metadata: dict[str, Any] = field(default_factory=dict)


class Notifier(Protocol):
    async def publish(self, topic: str, payload: Notification) -> None: ...


class DatabaseNotifier:
    """Stores each published payload as a notification row, in its own transaction."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def publish(self, topic: str, payload: Notification) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                await NotificationRepository(session).create(
                    NotificationRow(
                        topic=topic,
                        type=payload.type,
                        action=payload.action,
                        recipient_id=payload.recipient_id,
                        entity_id=str(payload.entity_id),
                        details=json.dumps(payload.metadata, ensure_ascii=False, default=str) if payload.metadata else None,
                    )
                )


class NotificationOutbox:
    def __init__(self):
        self._pending: list[Notification] = []

    def add(self, notification: Notification) -> None:
        self._pending.append(notification)

    def clear(self) -> None:
        self._pending.clear()

    def __len__(self) -> int:
        return len(self._pending)

    async def flush(self, notifier: Notifier | None, topic: str = NOTIFICATIONS_TOPIC) -> int:
        """Publish queued payloads; returns how many were delivered."""
        pending, self._pending = self._pending, []
        if notifier is None:
            return 0
        delivered = 0
        for notification in pending:
            try:
                await notifier.publish(topic, notification)
                delivered += 1
            except Exception:
                logger.exception(
                    "Failed to publish %s/%s notification for entity %s",
                    notification.type, notification.action, notification.entity_id,
                )
        return delivered


