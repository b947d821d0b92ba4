"""Services package."""

from tournament_admin.services.ledger import LedgerBatch, LedgerService
from tournament_admin.services.notification import (
    NotificationPayload,
    NotificationPriority,
    NotificationService,
    NotificationType,
)

__all__ = [
    "LedgerBatch",
    "LedgerService",
    "NotificationPayload",
    "NotificationPriority",
    "NotificationService",
    "NotificationType",
]
