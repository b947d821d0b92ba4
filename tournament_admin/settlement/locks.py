"""
Per-tournament settlement locks.

정산은 토너먼트당 한 번에 하나만 실행되어야 함.

- RedisSettlementLock: 여러 인스턴스 간 분산 락 (SET NX PX + Lua 해제)
- LocalSettlementLock: 단일 프로세스용 asyncio.Lock 맵 (Redis 미설정 시)

Both raise ``SettlementInProgressError`` when the lock cannot be acquired
within the acquire timeout.
"""

import asyncio
import hashlib
import time
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Optional, Set, Tuple
from uuid import uuid4

import redis.asyncio as redis

from tournament_admin.logging_config import get_logger
from tournament_admin.utils.errors import SettlementInProgressError

logger = get_logger(__name__)


@dataclass
class LockInfo:
    """Lock metadata."""

    lock_key: str
    owner_id: str
    acquired_at: float
    expires_at: float


class SettlementLock(ABC):
    """Exclusive per-tournament lease."""

    @abstractmethod
    def hold(self, tournament_id: str) -> "AsyncIterator[LockInfo]":
        """Async context manager holding the tournament's settlement lease."""

    async def renew(self, lock_info: LockInfo, ttl_ms: Optional[int] = None) -> bool:
        """Extend the lease; False means it was lost. Leases that never expire always succeed."""
        return True

    async def cleanup_all(self) -> int:
        """Release everything this instance still holds."""
        return 0


class RedisSettlementLock(SettlementLock):
    """
    Redis-based distributed settlement lock.

    Redis 명령어 사용:
    - SET NX PX: 원자적 락 획득 (key가 없을 때만 설정, 만료시간 포함)
    - GET + DEL (Lua): 원자적 락 해제 (owner 확인 후 삭제)
    - PEXPIRE (Lua): 락 갱신 (owner 확인 후 TTL 연장)
    """

    KEY_PREFIX = "lock:settlement:"

    # 락 소유자 확인 후 삭제 - 다른 프로세스의 락을 실수로 해제하지 않음
    RELEASE_LOCK_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    RENEW_LOCK_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("pexpire", KEYS[1], ARGV[2])
    else
        return 0
    end
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        lock_timeout_ms: int = 60000,
        acquire_timeout_ms: int = 5000,
        retry_interval_ms: int = 50,
    ):
        self.redis = redis_client
        self.lock_timeout_ms = lock_timeout_ms
        self.acquire_timeout_ms = acquire_timeout_ms
        self.retry_interval_ms = retry_interval_ms

        self._instance_id = str(uuid4())
        self._held_locks: Set[str] = set()

        self._release_script = None
        self._renew_script = None

    def _ensure_scripts(self) -> None:
        """Register Lua scripts if not already done."""
        if self._release_script is None:
            self._release_script = self.redis.register_script(self.RELEASE_LOCK_SCRIPT)
        if self._renew_script is None:
            self._renew_script = self.redis.register_script(self.RENEW_LOCK_SCRIPT)

    def make_lock_key(self, tournament_id: str) -> str:
        return f"{self.KEY_PREFIX}{tournament_id}"

    def _make_owner_token(self) -> str:
        raw = f"{self._instance_id}:{time.time_ns()}:{uuid4().hex[:8]}"
        return hashlib.sha256(raw.encode()).hexdigest()[:32]

    async def acquire(self, tournament_id: str) -> LockInfo:
        """
        Acquire the settlement lock.

        획득 실패 시 retry_interval_ms 간격으로 재시도,
        acquire_timeout_ms 초과 시 SettlementInProgressError.

        Raises:
            SettlementInProgressError: If another holder keeps the lock
        """
        self._ensure_scripts()

        lock_key = self.make_lock_key(tournament_id)
        owner_token = self._make_owner_token()
        start = time.monotonic()

        while True:
            acquired = await self.redis.set(
                lock_key,
                owner_token,
                nx=True,
                px=self.lock_timeout_ms,
            )
            if acquired:
                now = time.time()
                self._held_locks.add(lock_key)
                return LockInfo(
                    lock_key=lock_key,
                    owner_id=owner_token,
                    acquired_at=now,
                    expires_at=now + self.lock_timeout_ms / 1000,
                )

            elapsed_ms = (time.monotonic() - start) * 1000
            if elapsed_ms >= self.acquire_timeout_ms:
                logger.warning(
                    "settlement_lock_busy",
                    tournament_id=tournament_id,
                    waited_ms=int(elapsed_ms),
                )
                raise SettlementInProgressError(tournament_id)

            await asyncio.sleep(self.retry_interval_ms / 1000)

    async def release(self, lock_info: LockInfo) -> bool:
        """
        Release the lock if still owned.

        Returns:
            True if released, False if it had expired or changed hands
        """
        self._ensure_scripts()
        result = await self._release_script(
            keys=[lock_info.lock_key],
            args=[lock_info.owner_id],
        )
        self._held_locks.discard(lock_info.lock_key)
        if result != 1:
            logger.warning("settlement_lock_lost", lock_key=lock_info.lock_key)
        return result == 1

    async def renew(self, lock_info: LockInfo, ttl_ms: Optional[int] = None) -> bool:
        """
        Extend the lock TTL (청크 정산 중 청크마다 호출).

        Returns:
            False if the lease expired, changed hands or Redis is unreachable
        """
        self._ensure_scripts()
        ttl = ttl_ms or self.lock_timeout_ms
        try:
            result = await self._renew_script(
                keys=[lock_info.lock_key],
                args=[lock_info.owner_id, ttl],
            )
        except redis.RedisError as e:
            logger.warning("settlement_lock_renew_failed", lock_key=lock_info.lock_key, error=str(e))
            return False
        if result == 1:
            lock_info.expires_at = time.time() + ttl / 1000
            return True
        return False

    @asynccontextmanager
    async def hold(self, tournament_id: str) -> AsyncIterator[LockInfo]:
        lock_info = await self.acquire(tournament_id)
        try:
            yield lock_info
        finally:
            await self.release(lock_info)

    async def cleanup_all(self) -> int:
        """
        Release all locks held by this instance.

        서버 셧다운 시 호출, 비정상 종료 시 TTL에 의해 자동 만료.
        """
        released = 0
        for lock_key in list(self._held_locks):
            try:
                await self.redis.delete(lock_key)
                released += 1
            except redis.RedisError as e:
                logger.warning("settlement_lock_cleanup_failed", lock_key=lock_key, error=str(e))
        self._held_locks.clear()
        return released


class LocalSettlementLock(SettlementLock):
    """In-process settlement lock (single instance deployments and tests)."""

    def __init__(self, acquire_timeout_ms: int = 5000):
        self.acquire_timeout_ms = acquire_timeout_ms
        # tournament_id → (lock, holder + waiter count); 마지막 사용자가 나가면 제거
        self._locks: Dict[str, Tuple[asyncio.Lock, int]] = {}

    def _checkout(self, tournament_id: str) -> asyncio.Lock:
        lock, users = self._locks.get(tournament_id, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._locks[tournament_id] = (lock, users + 1)
        return lock

    def _checkin(self, tournament_id: str) -> None:
        lock, users = self._locks[tournament_id]
        if users <= 1:
            del self._locks[tournament_id]
        else:
            self._locks[tournament_id] = (lock, users - 1)

    def is_locked(self, tournament_id: str) -> bool:
        entry = self._locks.get(tournament_id)
        return entry is not None and entry[0].locked()

    @property
    def tracked(self) -> int:
        """Number of tournaments with a holder or waiter."""
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, tournament_id: str) -> AsyncIterator[LockInfo]:
        lock = self._checkout(tournament_id)
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=self.acquire_timeout_ms / 1000)
            except asyncio.TimeoutError:
                raise SettlementInProgressError(tournament_id) from None

            now = time.time()
            try:
                yield LockInfo(
                    lock_key=f"local:{tournament_id}",
                    owner_id=str(id(lock)),
                    acquired_at=now,
                    expires_at=float("inf"),
                )
            finally:
                lock.release()
        finally:
            self._checkin(tournament_id)
