"""Shared test fixtures."""

import os

# Settings require a signing key; set it before any application import
os.environ.setdefault("JWT_SECRET_KEY", "unit-test-signing-key-not-for-production-use")

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
import pytest_asyncio
from jose import jwt

from tournament_admin.config import Settings
from tournament_admin.models.tournament import Collections
from tournament_admin.services.ledger import LedgerService
from tournament_admin.services.notification import NotificationService
from tournament_admin.settlement.locks import LocalSettlementLock
from tournament_admin.settlement.orchestrator import SettlementOrchestrator
from tournament_admin.store.memory import MemoryDocumentStore

TEST_JWT_SECRET = os.environ["JWT_SECRET_KEY"]


# =============================================================================
# Settings / Auth
# =============================================================================


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        app_env="test",
        app_debug=False,
        jwt_secret_key=TEST_JWT_SECRET,
        database_url=None,
        redis_url=None,
    )


def make_token(
    sub: str = "admin-1",
    *,
    expires_in: timedelta = timedelta(minutes=30),
    secret: str = TEST_JWT_SECRET,
    **claims: Any,
) -> str:
    """Sign an HS256 token the way the platform's auth service does."""
    now = datetime.now(timezone.utc)
    payload = {"sub": sub, "type": "access", "iat": now, "exp": now + expires_in}
    payload.update(claims)
    return jwt.encode(payload, secret, algorithm="HS256")


# =============================================================================
# Store / Services
# =============================================================================


@pytest_asyncio.fixture
async def store() -> MemoryDocumentStore:
    return MemoryDocumentStore()


@pytest.fixture
def ledger(store: MemoryDocumentStore) -> LedgerService:
    return LedgerService(store, default_currency="INR")


@pytest.fixture
def orchestrator(store: MemoryDocumentStore, ledger: LedgerService) -> SettlementOrchestrator:
    return SettlementOrchestrator(
        store,
        ledger,
        LocalSettlementLock(acquire_timeout_ms=2000),
        NotificationService(store),
        currency="INR",
    )


@pytest.fixture
def token_factory():
    """Signs tokens the way the platform's auth service does."""
    return make_token


# =============================================================================
# Seed helpers
# =============================================================================


async def _seed_tournament(
    store: MemoryDocumentStore,
    tournament_id: str = "t-1",
    *,
    status: str = "completed",
    entry_fee: int = 100,
    registrations: int = 10,
    kills: tuple[int, ...] = (3, 2, 1, 0, 0),
    winner_index: int | None = 0,
    balance: int = 0,
    **fields: Any,
) -> dict[str, Any]:
    """Seed a tournament with registrations, users and results.

    Players ``u0..u{registrations-1}`` are registered. The first
    ``len(kills)`` of them have results; ``winner_index`` takes position 1
    and the others take ``index + 1``.
    """
    tournament = {
        "title": "Sunday Squad Cup",
        "status": status,
        "entryFee": entry_fee,
        "prizesDistributed": False,
        **fields,
    }
    await store.set(Collections.TOURNAMENTS, tournament_id, tournament)

    for i in range(registrations):
        user_id = f"u{i}"
        await store.set(
            Collections.USERS, user_id, {"username": f"player{i}", "walletBalance": balance}
        )
        await store.set(
            Collections.REGISTRATIONS,
            f"{tournament_id}-reg-{i}",
            {"tournamentId": tournament_id, "userId": user_id, "paymentStatus": "paid"},
        )

    for i, k in enumerate(kills):
        if winner_index is None:
            position = None
        elif i == winner_index:
            position = 1
        else:
            position = i + 1 if i > winner_index else i + 2
        await store.set(
            Collections.RESULTS,
            f"{tournament_id}-res-{i}",
            {
                "tournamentId": tournament_id,
                "registrationId": f"{tournament_id}-reg-{i}",
                "userId": f"u{i}",
                "position": position,
                "kills": k,
                "reward": 0,
                "rewardStatus": "unpaid",
            },
        )
    return tournament


@pytest.fixture
def seed_tournament(store: MemoryDocumentStore):
    """Seed a settleable tournament into the test store."""

    async def _seed(tournament_id: str = "t-1", **kwargs: Any) -> dict[str, Any]:
        return await _seed_tournament(store, tournament_id, **kwargs)

    return _seed


@pytest.fixture
def wallet_balance(store: MemoryDocumentStore):
    async def _balance(user_id: str) -> int:
        doc = await store.get_by_id(Collections.USERS, user_id)
        return doc.get("walletBalance")

    return _balance
