"""In-app notification service.

Writes notification documents to the ``notifications`` collection. Delivery
over e-mail, SMS or push is handled elsewhere.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from tournament_admin.logging_config import get_logger
from tournament_admin.models.base import utc_now_iso
from tournament_admin.models.tournament import Collections
from tournament_admin.store.base import DocumentStore

logger = get_logger(__name__)


class NotificationType(str, Enum):
    TOURNAMENT = "tournament"
    WALLET = "wallet"
    SYSTEM = "system"


class NotificationPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


@dataclass
class NotificationPayload:
    """Notification addressed to one user."""

    user_id: str
    title: str
    message: str
    type: NotificationType = NotificationType.TOURNAMENT
    priority: NotificationPriority = NotificationPriority.NORMAL
    data: dict[str, Any] = field(default_factory=dict)


class NotificationService:
    """Creates in-app notifications."""

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    async def send_notification(self, payload: NotificationPayload) -> str:
        """Persist an in-app notification.

        Args:
            payload: Notification content

        Returns:
            The notification document id
        """
        now = utc_now_iso()
        notification_id = await self.store.add(
            Collections.NOTIFICATIONS,
            {
                "userId": payload.user_id,
                "type": payload.type.value,
                "priority": payload.priority.value,
                "title": payload.title,
                "message": payload.message,
                "data": payload.data,
                "isRead": False,
                "createdAt": now,
                "updatedAt": now,
            },
        )
        logger.debug(
            "notification_created",
            notification_id=notification_id,
            user_id=payload.user_id,
            type=payload.type.value,
        )
        return notification_id
