"""
Mutual exclusion around the booking check-and-insert.

This is a fallback for storage engines without multi-statement transactions.
The serializable transaction in the booking service is the primary guarantee;
when a lock backend is configured it wraps each attempt as well.

Keys are bucketed per doctor and UTC calendar day. Appointments never cross
midnight, so any two overlapping requests for a doctor map to the same key.
The redis lock carries a TTL: if a holder stalls past it the lock is lost and
only the transaction still protects the invariant.
"""

import asyncio
import secrets
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from uuid import UUID

import structlog
from redis import asyncio as aioredis
from redis.exceptions import RedisError
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_result,
    stop_after_delay,
    wait_exponential,
)

from app.core.exceptions import TransientBookingError
from app.core.intervals import ensure_utc

logger = structlog.get_logger()

# Deletes the key only if it still holds our token
RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


def booking_lock_key(doctor_id: UUID, start_at: datetime) -> str:
    """Lock key for a doctor's calendar day."""
    return f"booking-lock:{doctor_id}:{ensure_utc(start_at).date().isoformat()}"


class BookingLock:
    """No-op lock; correctness comes from the transaction alone."""

    @asynccontextmanager
    async def hold(self, doctor_id: UUID, start_at: datetime) -> AsyncIterator[None]:
        yield


class LocalBookingLock(BookingLock):
    """In-process lock per key. Only protects a single worker process."""

    def __init__(self, wait_seconds: float = 2.0):
        """Initialize with the maximum time to wait for a held key."""
        self.wait_seconds = wait_seconds
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, doctor_id: UUID, start_at: datetime) -> AsyncIterator[None]:
        key = booking_lock_key(doctor_id, start_at)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            try:
                async with asyncio.timeout(self.wait_seconds):
                    await lock.acquire()
            except TimeoutError as e:
                logger.warning("booking_lock_timeout", lock_key=key, backend="local")
                raise TransientBookingError("Time slot is busy, please retry") from e
            try:
                yield
            finally:
                lock.release()
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                self._locks.pop(key, None)


class RedisBookingLock(BookingLock):
    """Distributed lock using SET NX EX with a random token."""

    def __init__(
        self,
        redis_client: aioredis.Redis,
        ttl_seconds: int = 30,
        wait_seconds: float = 2.0,
    ):
        """Initialize with an asyncio redis client, key TTL and acquisition wait."""
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds
        self.wait_seconds = wait_seconds

    async def _try_acquire(self, key: str, token: str) -> bool:
        return bool(await self.redis.set(key, token, nx=True, ex=self.ttl_seconds))

    async def acquire(self, key: str) -> str:
        """
        Acquire ``key`` and return the owner token.

        Raises:
            TransientBookingError: If the key stays held past the wait budget
                or redis is unreachable
        """
        token = secrets.token_hex(16)
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_delay(self.wait_seconds),
                wait=wait_exponential(multiplier=0.01, max=0.2),
                retry=retry_if_result(lambda acquired: not acquired),
            ):
                with attempt:
                    acquired = await self._try_acquire(key, token)
                if not attempt.retry_state.outcome.failed:
                    attempt.retry_state.set_result(acquired)
        except RetryError as e:
            logger.warning("booking_lock_timeout", lock_key=key, backend="redis")
            raise TransientBookingError("Time slot is busy, please retry") from e
        except RedisError as e:
            logger.error("booking_lock_unavailable", lock_key=key, error=str(e))
            raise TransientBookingError("Booking lock service unavailable") from e
        return token

    async def release(self, key: str, token: str) -> None:
        """Release ``key`` if we still own it."""
        try:
            released = await self.redis.eval(RELEASE_SCRIPT, 1, key, token)
        except RedisError as e:
            # The TTL reclaims the key
            logger.error("booking_lock_release_failed", lock_key=key, error=str(e))
            return
        if not released:
            logger.warning("booking_lock_expired_before_release", lock_key=key)

    @asynccontextmanager
    async def hold(self, doctor_id: UUID, start_at: datetime) -> AsyncIterator[None]:
        key = booking_lock_key(doctor_id, start_at)
        token = await self.acquire(key)
        logger.debug("booking_lock_acquired", lock_key=key)
        try:
            yield
        finally:
            await self.release(key, token)
            logger.debug("booking_lock_released", lock_key=key)
