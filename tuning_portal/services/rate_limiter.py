"""
Rate Limiter

Fixed-window request counting keyed by ``"<key>:<identifier>"``.

Two backends are available per call:

* in-memory (default): an explicitly owned ``MemoryRateLimitStore``; counts
  are per process and the application lifespan sweeps expired windows.
* database: windows live in the ``rate_limits`` table and are shared by all
  instances. The read and the increment are separate statements, so two
  concurrent requests can both pass the last free slot. A store failure
  fails closed.

The memory store is a small owned dict rather than ``limits.MemoryStorage``:
that storage runs its own expiry timer thread, whereas windows here are
swept by the caller and read time from an injectable clock.
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from tuning_portal.core.metrics import RATE_LIMIT_REJECTIONS
from tuning_portal.core.time_utils import ensure_utc, to_epoch_ms, utcnow
from tuning_portal.models.security_events import RateLimitResult
from tuning_portal.repositories.rate_limit_repository import RateLimitRepository
from tuning_portal.services.security_event_service import STORE_ERRORS

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


@dataclass(frozen=True)
class RateLimitOptions:
    """Options for one rate limit check."""

    limit: int
    window_ms: int
    identifier: str = "default"
    use_database: bool = False


@dataclass
class _MemoryEntry:
    count: int
    reset_time: datetime


class MemoryRateLimitStore:
    """Process-local rate limit windows."""

    def __init__(self, clock: Clock = utcnow):
        """
        Initialize the store.

        Args:
            clock: Source of the current time, injectable for tests
        """
        self._entries: dict[str, _MemoryEntry] = {}
        self._lock = threading.Lock()
        self.clock = clock

    def __len__(self) -> int:
        return len(self._entries)

    def hit(self, unique_key: str, limit: int, window_ms: int) -> RateLimitResult:
        """Count one request against ``unique_key``."""
        now = self.clock()
        with self._lock:
            entry = self._entries.get(unique_key)

            if entry is None or entry.reset_time < now:
                reset_time = now + timedelta(milliseconds=window_ms)
                self._entries[unique_key] = _MemoryEntry(count=1, reset_time=reset_time)
                return RateLimitResult(
                    success=True,
                    limit=limit,
                    remaining=limit - 1,
                    reset_time=to_epoch_ms(reset_time),
                    ms_before_next=0,
                )

            if entry.count >= limit:
                return RateLimitResult(
                    success=False,
                    limit=limit,
                    remaining=0,
                    reset_time=to_epoch_ms(entry.reset_time),
                    ms_before_next=to_epoch_ms(entry.reset_time) - to_epoch_ms(now),
                )

            entry.count += 1
            return RateLimitResult(
                success=True,
                limit=limit,
                remaining=limit - entry.count,
                reset_time=to_epoch_ms(entry.reset_time),
                ms_before_next=0,
            )

    def sweep(self) -> int:
        """Drop expired windows.

        Returns:
            Number of entries removed
        """
        now = self.clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.reset_time < now]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug(f"Swept {len(expired)} expired rate limit entries")
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class RateLimiter:
    """Rate limiting over the memory store or the database."""

    def __init__(
        self,
        memory_store: MemoryRateLimitStore | None = None,
        repository: RateLimitRepository | None = None,
        clock: Clock | None = None,
    ):
        """
        Initialize the rate limiter.

        Args:
            memory_store: In-memory window store
            repository: Database window store, required for ``use_database``
            clock: Source of the current time for database windows
        """
        self.memory_store = memory_store if memory_store is not None else MemoryRateLimitStore()
        self._repository = repository
        self._clock = clock if clock is not None else self.memory_store.clock

    async def rate_limit(self, key: str, options: RateLimitOptions) -> RateLimitResult:
        """
        Count one request for ``key`` under ``options``.

        Args:
            key: Caller identity (IP address, user ID)
            options: Limit, window, identifier and backend

        Returns:
            Outcome with remaining requests and time to the next free slot
        """
        unique_key = f"{key}:{options.identifier}"

        if options.use_database:
            result = await self._database_rate_limit(unique_key, options.limit, options.window_ms)
            backend = "database"
        else:
            result = self.memory_store.hit(unique_key, options.limit, options.window_ms)
            backend = "memory"

        if not result.success:
            if RATE_LIMIT_REJECTIONS:
                RATE_LIMIT_REJECTIONS.labels(identifier=options.identifier, backend=backend).inc()
            logger.warning(
                f"Rate limit exceeded for {unique_key}",
                extra={
                    "identifier": options.identifier,
                    "limit": options.limit,
                    "ms_before_next": result.ms_before_next,
                },
            )
        return result

    async def _database_rate_limit(
        self, unique_key: str, limit: int, window_ms: int
    ) -> RateLimitResult:
        now = self._clock()
        try:
            if self._repository is None:
                msg = "Database rate limiting requested without a repository"
                raise RuntimeError(msg)

            entry = await self._repository.get_live_entry(unique_key, now)

            if entry is None:
                reset_time = now + timedelta(milliseconds=window_ms)
                await self._repository.start_window(unique_key, now, reset_time)
                return RateLimitResult(
                    success=True,
                    limit=limit,
                    remaining=limit - 1,
                    reset_time=to_epoch_ms(reset_time),
                    ms_before_next=0,
                )

            entry_reset = ensure_utc(entry.reset_time)
            remaining = limit - entry.count
            if remaining <= 0:
                return RateLimitResult(
                    success=False,
                    limit=limit,
                    remaining=0,
                    reset_time=to_epoch_ms(entry_reset),
                    ms_before_next=to_epoch_ms(entry_reset) - to_epoch_ms(now),
                )

            await self._repository.increment(entry.id)
            return RateLimitResult(
                success=True,
                limit=limit,
                remaining=remaining - 1,
                reset_time=to_epoch_ms(entry_reset),
                ms_before_next=0,
            )

        except STORE_ERRORS as e:
            logger.error(f"Database rate limit error: {e}")
            return RateLimitResult(
                success=False,
                limit=limit,
                remaining=0,
                reset_time=to_epoch_ms(now) + window_ms,
                ms_before_next=window_ms,
            )

    async def rate_limit_by_ip_and_identifier(
        self, ip_address: str, identifier: str, options: RateLimitOptions
    ) -> RateLimitResult:
        """Rate limit keyed by ``"<ip>:<identifier>"``."""
        return await self.rate_limit(f"{ip_address or 'unknown'}:{identifier}", options)

    async def rate_limit_by_user_id(
        self, user_id: int, identifier: str, options: RateLimitOptions
    ) -> RateLimitResult:
        """Rate limit keyed by ``"<user_id>:<identifier>"``."""
        return await self.rate_limit(f"{user_id}:{identifier}", options)

    async def log_rate_limit_event(
        self, key: str, identifier: str, success: bool, remaining: int
    ) -> None:
        """Append a rate limit audit row. Failures are logged and swallowed."""
        if self._repository is None:
            logger.debug("Rate limit event logging skipped, no repository configured")
            return
        try:
            await self._repository.insert_log(f"{key}:{identifier}", identifier, success, remaining)
        except STORE_ERRORS as e:
            logger.error(f"Failed to log rate limit event: {e}")

    async def sweep(self) -> int:
        """Remove expired windows from memory and, if configured, the database."""
        removed = self.memory_store.sweep()
        if self._repository is not None:
            try:
                removed += await self._repository.delete_expired(self._clock())
            except STORE_ERRORS as e:
                logger.error(f"Failed to sweep database rate limits: {e}")
        return removed
