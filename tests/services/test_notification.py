"""
Notification Service Tests.
"""

import pytest

from tournament_admin.models.tournament import Collections
from tournament_admin.services.notification import (
    NotificationPayload,
    NotificationPriority,
    NotificationService,
    NotificationType,
)


class TestSendNotification:
    @pytest.mark.asyncio
    async def test_creates_unread_notification(self, store):
        service = NotificationService(store)

        notification_id = await service.send_notification(
            NotificationPayload(
                user_id="user-1",
                title="Tournament prize credited",
                message="You won 630 INR",
                priority=NotificationPriority.HIGH,
                data={"tournamentId": "t-1", "amount": 630},
            )
        )

        doc = await store.get_by_id(Collections.NOTIFICATIONS, notification_id)
        assert doc.get("userId") == "user-1"
        assert doc.get("type") == NotificationType.TOURNAMENT.value
        assert doc.get("priority") == "high"
        assert doc.get("isRead") is False
        assert doc.get("data") == {"tournamentId": "t-1", "amount": 630}
        assert doc.get("createdAt")
