"""Ledger Service for wallet balance operations.

Owns ``users/{id}.walletBalance``. Every balance change is written together
with one immutable ``wallet_transactions`` row in the same atomic batch.

Features:
- Compare-and-set on the balance read, so a concurrent wallet change makes
  the commit fail instead of losing money
- Staged credits (``LedgerBatch``) for multi-user atomic settlement
- Transaction logging with SHA-256 integrity hashes
"""

import hashlib
from dataclasses import dataclass, field
from typing import Any

from tournament_admin.logging_config import get_logger
from tournament_admin.models.base import utc_now_iso
from tournament_admin.models.tournament import Collections
from tournament_admin.models.wallet import (
    TransactionStatus,
    TransactionType,
    WalletTransaction,
)
from tournament_admin.store.base import DocumentStore, WriteOp
from tournament_admin.utils.errors import InvalidAmountError, UserNotFoundError

logger = get_logger(__name__)


@dataclass
class _StagedWallet:
    """Balance bookkeeping for one user inside a batch."""

    stored_balance: Any  # raw stored value, used as the CAS expectation
    balance: int
    transactions: list[WalletTransaction] = field(default_factory=list)


class LedgerBatch:
    """Wallet writes staged for one atomic commit.

    Repeated credits to the same user accumulate into a single balance
    update guarded by the balance originally read.
    """

    def __init__(self) -> None:
        self._wallets: dict[str, _StagedWallet] = {}

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._wallets

    def __len__(self) -> int:
        return sum(len(w.transactions) for w in self._wallets.values())

    @property
    def user_ids(self) -> list[str]:
        return list(self._wallets)

    def transactions_for(self, user_id: str) -> list[WalletTransaction]:
        wallet = self._wallets.get(user_id)
        return list(wallet.transactions) if wallet else []

    def ops_for(self, user_id: str) -> list[WriteOp]:
        """Balance update plus transaction rows for one user."""
        wallet = self._wallets[user_id]
        ops = [
            WriteOp.update(
                Collections.USERS,
                user_id,
                {"walletBalance": wallet.balance, "updatedAt": utc_now_iso()},
                expect={"walletBalance": wallet.stored_balance},
            )
        ]
        ops.extend(
            WriteOp.set(Collections.WALLET_TRANSACTIONS, tx.id, tx.to_document())
            for tx in wallet.transactions
        )
        return ops

    def ops(self) -> list[WriteOp]:
        result: list[WriteOp] = []
        for user_id in self._wallets:
            result.extend(self.ops_for(user_id))
        return result


class LedgerService:
    """Wallet ledger on top of the document store.

    No deduplication happens here; callers guarantee once-only semantics.
    """

    def __init__(self, store: DocumentStore, default_currency: str = "INR") -> None:
        self.store = store
        self.default_currency = default_currency

    def new_batch(self) -> LedgerBatch:
        return LedgerBatch()

    async def get_balance(self, user_id: str) -> int:
        """Get user's wallet balance.

        Args:
            user_id: User ID

        Returns:
            Current balance in minor units

        Raises:
            UserNotFoundError: If the user does not exist
        """
        doc = await self.store.get_by_id(Collections.USERS, user_id)
        if doc is None:
            raise UserNotFoundError(user_id)
        return int(doc.get("walletBalance") or 0)

    async def _wallet(self, batch: LedgerBatch, user_id: str) -> _StagedWallet:
        wallet = batch._wallets.get(user_id)
        if wallet is None:
            doc = await self.store.get_by_id(Collections.USERS, user_id)
            if doc is None:
                raise UserNotFoundError(user_id)
            stored = doc.get("walletBalance")
            wallet = _StagedWallet(stored_balance=stored, balance=int(stored or 0))
            batch._wallets[user_id] = wallet
        return wallet

    async def _stage(
        self,
        batch: LedgerBatch,
        user_id: str,
        amount: int,
        tx_type: TransactionType,
        currency: str | None,
        description: str | None,
        tournament_id: str | None,
        reference_id: str | None = None,
    ) -> WalletTransaction:
        wallet = await self._wallet(batch, user_id)

        balance_before = wallet.balance
        balance_after = balance_before + amount
        wallet.balance = balance_after

        tx = WalletTransaction(
            id=self.store.new_id(),
            user_id=user_id,
            amount=amount,
            currency=currency or self.default_currency,
            tx_type=tx_type,
            balance_before=balance_before,
            balance_after=balance_after,
            integrity_hash=self._compute_integrity_hash(
                user_id=user_id,
                tx_type=tx_type,
                amount=amount,
                balance_before=balance_before,
                balance_after=balance_after,
            ),
            status=TransactionStatus.COMPLETED,
            description=description,
            tournament_id=tournament_id,
            reference_id=reference_id,
            created_at=utc_now_iso(),
        )
        wallet.transactions.append(tx)
        return tx

    async def stage_credit(
        self,
        batch: LedgerBatch,
        user_id: str,
        amount: int,
        currency: str | None = None,
        description: str | None = None,
        *,
        tournament_id: str | None = None,
    ) -> WalletTransaction:
        """Stage a prize credit into ``batch`` without committing it.

        Raises:
            InvalidAmountError: If amount is not positive
            UserNotFoundError: If the user does not exist
        """
        if amount <= 0:
            raise InvalidAmountError(amount)
        return await self._stage(
            batch,
            user_id,
            amount,
            TransactionType.PRIZE,
            currency,
            description,
            tournament_id,
        )

    async def stage_reversal(
        self,
        batch: LedgerBatch,
        original: WalletTransaction,
        description: str | None = None,
    ) -> WalletTransaction:
        """Stage the reversal of a committed credit.

        The reversal may take the balance below zero if the credited money
        was already spent; it is recorded as is.
        """
        return await self._stage(
            batch,
            original.user_id,
            -original.amount,
            TransactionType.PRIZE_REVERSAL,
            original.currency,
            description or f"Reversal of transaction {original.id}",
            original.tournament_id,
            reference_id=original.id,
        )

    async def credit_wallet(
        self,
        user_id: str,
        amount: int,
        currency: str | None = None,
        description: str | None = None,
        *,
        tournament_id: str | None = None,
    ) -> WalletTransaction:
        """Credit a wallet and record the transaction atomically.

        Args:
            user_id: User ID
            amount: Amount to credit (positive, minor units)
            currency: Currency code (defaults to the configured currency)
            description: Human-readable description
            tournament_id: Optional tournament reference

        Returns:
            WalletTransaction record

        Raises:
            InvalidAmountError: If amount is not positive
            UserNotFoundError: If the user does not exist
            PreconditionFailedError: If the balance changed concurrently
        """
        batch = self.new_batch()
        tx = await self.stage_credit(
            batch,
            user_id,
            amount,
            currency,
            description,
            tournament_id=tournament_id,
        )
        await self.store.batch_write(batch.ops())

        logger.info(
            "wallet_credited",
            user_id=user_id,
            amount=amount,
            balance_before=tx.balance_before,
            balance_after=tx.balance_after,
            transaction_id=tx.id,
        )
        return tx

    async def list_transactions(
        self,
        user_id: str,
        *,
        limit: int = 50,
        offset: int = 0,
    ) -> list[WalletTransaction]:
        """Get a user's transactions, newest first."""
        docs = await self.store.query(
            Collections.WALLET_TRANSACTIONS,
            "userId",
            "==",
            user_id,
            order_by="createdAt",
            descending=True,
            limit=limit,
            offset=offset,
        )
        return [WalletTransaction.from_document(doc) for doc in docs]

    @staticmethod
    def _compute_integrity_hash(
        user_id: str,
        tx_type: TransactionType,
        amount: int,
        balance_before: int,
        balance_after: int,
    ) -> str:
        """Compute SHA-256 integrity hash for transaction.

        This hash can be verified later to detect tampering.
        """
        data = f"{user_id}:{tx_type.value}:{amount}:{balance_before}:{balance_after}"
        return hashlib.sha256(data.encode()).hexdigest()

    @staticmethod
    def verify_integrity(tx: WalletTransaction) -> bool:
        """Verify transaction integrity hash."""
        expected = LedgerService._compute_integrity_hash(
            user_id=tx.user_id,
            tx_type=tx.tx_type,
            amount=tx.amount,
            balance_before=tx.balance_before,
            balance_after=tx.balance_after,
        )
        return tx.integrity_hash == expected
