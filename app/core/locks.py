"""Per doctor/day mutual exclusion for scheduling writes."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass, field
from datetime import date
from uuid import UUID

import redis.asyncio as aioredis
import structlog
from redis.exceptions import LockError

from app.core.exceptions import ScopeBusyException

logger = structlog.get_logger(__name__)

Scope = tuple[UUID, date]


@dataclass
class _LocalLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class ScopeLockManager:
    """
    Serializes read-then-write units on a ``(doctor_id, date)`` scope.

    Every scope gets a process-local ``asyncio.Lock``. When a Redis client is
    supplied, a Redis lock is taken as well so several service instances
    serialize against each other. Locks for idle scopes are dropped.
    """

    def __init__(
        self,
        timeout: float = 10.0,
        redis_client: aioredis.Redis | None = None,
        lease_seconds: float = 30.0,
        key_prefix: str = "schedule-lock",
    ):
        """Initialize lock manager."""
        self.timeout = timeout
        self.redis = redis_client
        self.lease_seconds = lease_seconds
        self.key_prefix = key_prefix
        self._locks: dict[Scope, _LocalLock] = {}

    def scope_key(self, scope: Scope) -> str:
        """Build the Redis key for a scope."""
        doctor_id, day = scope
        return f"{self.key_prefix}:{doctor_id}:{day.isoformat()}"

    def is_held(self, doctor_id: UUID, day: date) -> bool:
        """Check whether a scope is currently locked in this process."""
        entry = self._locks.get((doctor_id, day))
        return entry is not None and entry.lock.locked()

    @asynccontextmanager
    async def hold(self, *scopes: Scope) -> AsyncIterator[None]:
        """
        Hold the locks of one or more scopes for the duration of the block.

        Scopes are acquired in a stable order so two units that need the
        same pair of scopes cannot deadlock.

        Raises:
            ScopeBusyException: If a lock is not acquired within the timeout
        """
        ordered = sorted(set(scopes), key=lambda s: (str(s[0]), s[1]))
        async with AsyncExitStack() as stack:
            for scope in ordered:
                await stack.enter_async_context(self._hold_one(scope))
            yield

    @asynccontextmanager
    async def _hold_one(self, scope: Scope) -> AsyncIterator[None]:
        entry = self._locks.get(scope)
        if entry is None:
            entry = self._locks[scope] = _LocalLock()
        entry.users += 1
        try:
            try:
                await asyncio.wait_for(entry.lock.acquire(), timeout=self.timeout)
            except asyncio.TimeoutError:
                logger.warning("scope_lock_timeout", scope=self.scope_key(scope))
                raise ScopeBusyException() from None
            try:
                if self.redis is None:
                    yield
                else:
                    async with self._hold_distributed(scope):
                        yield
            finally:
                entry.lock.release()
        finally:
            entry.users -= 1
            if entry.users == 0:
                self._locks.pop(scope, None)

    @asynccontextmanager
    async def _hold_distributed(self, scope: Scope) -> AsyncIterator[None]:
        key = self.scope_key(scope)
        lock = self.redis.lock(  # type: ignore[union-attr]
            key,
            timeout=self.lease_seconds,
            blocking_timeout=self.timeout,
        )
        if not await lock.acquire():
            logger.warning("distributed_scope_lock_timeout", scope=key)
            raise ScopeBusyException()
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError as e:
                # Lease ran out before release; the unit already committed.
                logger.warning("distributed_scope_lock_release_failed", scope=key, error=str(e))
