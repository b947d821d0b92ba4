"""Wallet transaction model.

Immutable audit trail of every wallet balance change.
Stored in the ``wallet_transactions`` collection.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from tournament_admin.store.base import Document


class TransactionType(str, Enum):
    """Wallet transaction types."""

    PRIZE = "prize"
    PRIZE_REVERSAL = "prize_reversal"  # 청크 정산 실패 시 보상 롤백


class TransactionStatus(str, Enum):
    """Wallet transaction status."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class WalletTransaction:
    """Wallet transaction record.

    ``amount`` is signed (+credit / -debit) in currency minor units.
    ``integrity_hash`` is a SHA-256 digest over the monetary fields and is
    checked by ``LedgerService.verify_integrity``.
    """

    id: str
    user_id: str
    amount: int
    currency: str
    tx_type: TransactionType
    balance_before: int
    balance_after: int
    integrity_hash: str
    status: TransactionStatus = TransactionStatus.COMPLETED
    description: Optional[str] = None
    tournament_id: Optional[str] = None
    reference_id: Optional[str] = None
    created_at: str = ""

    def to_document(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "tournamentId": self.tournament_id,
            "amount": self.amount,
            "currency": self.currency,
            "type": self.tx_type.value,
            "status": self.status.value,
            "description": self.description,
            "balanceBefore": self.balance_before,
            "balanceAfter": self.balance_after,
            "referenceId": self.reference_id,
            "integrityHash": self.integrity_hash,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_document(cls, doc: Document) -> "WalletTransaction":
        data = doc.data
        return cls(
            id=doc.id,
            user_id=str(data["userId"]),
            amount=int(data["amount"]),
            currency=data.get("currency") or "",
            tx_type=TransactionType(data["type"]),
            balance_before=int(data["balanceBefore"]),
            balance_after=int(data["balanceAfter"]),
            integrity_hash=data.get("integrityHash") or "",
            status=TransactionStatus(data.get("status") or TransactionStatus.COMPLETED.value),
            description=data.get("description"),
            tournament_id=data.get("tournamentId"),
            reference_id=data.get("referenceId"),
            created_at=data.get("createdAt") or "",
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, **self.to_document()}
