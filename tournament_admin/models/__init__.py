"""Data models.

- ``document``: SQLAlchemy table backing the SQL document store
- ``tournament`` / ``wallet``: typed views over stored documents
"""

from tournament_admin.models.base import Base, TimestampMixin, utc_now, utc_now_iso
from tournament_admin.models.document import DocumentRow
from tournament_admin.models.tournament import (
    Collections,
    DistributionRecord,
    OverrideSlot,
    PrizeDistributionRule,
    Registration,
    Result,
    RewardStatus,
    SettlementState,
    Tournament,
    TournamentStatus,
)
from tournament_admin.models.wallet import (
    TransactionStatus,
    TransactionType,
    WalletTransaction,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "utc_now",
    "utc_now_iso",
    "DocumentRow",
    "Collections",
    "DistributionRecord",
    "OverrideSlot",
    "PrizeDistributionRule",
    "Registration",
    "Result",
    "RewardStatus",
    "SettlementState",
    "Tournament",
    "TournamentStatus",
    "TransactionStatus",
    "TransactionType",
    "WalletTransaction",
]
