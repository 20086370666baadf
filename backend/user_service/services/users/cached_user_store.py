"""
Cached User Store

Repository facade combining the Redis cache with the store of record.

Reads prefer the cache and fall back to the store of record on a miss or
on any cache failure. Writes go to the store of record first; the
persisted result is then mirrored into the cache by a background task.
Mirror tasks for one key run in scheduling order, and a cache clear runs
after every mirror task scheduled before it.
"""

import asyncio
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    Iterator,
    List,
    Optional,
    Set,
)

from opentelemetry import trace
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential
import structlog

from ...core.config import Settings
from ...domain.users.entities import User
from ...domain.users.repository_interfaces import (
    UserCacheRepository,
    UserStoreRepository,
)
from ...monitoring.cache_metrics import (
    LOOKUP_ERROR,
    LOOKUP_HIT,
    LOOKUP_MISS,
    MIRROR_FAILURE,
    MIRROR_SUCCESS,
    CacheMetricsCollector,
    cache_metrics,
)

logger = structlog.get_logger()
tracer = trace.get_tracer(__name__)

# Pending-task key of a whole-cache clear
_CLEAR_KEY = None


@dataclass
class CachedUserStoreConfig:
    """Cache population and mirror retry policy."""

    backfill_on_miss: bool = False
    mirror_max_attempts: int = 3
    mirror_retry_delay: float = 0.1
    mirror_retry_max_delay: float = 2.0

    def __post_init__(self):
        if self.mirror_max_attempts < 1:
            raise ValueError("mirror_max_attempts must be at least 1")
        if self.mirror_retry_delay < 0 or self.mirror_retry_max_delay < 0:
            raise ValueError("mirror retry delays cannot be negative")

    @classmethod
    def from_settings(cls, settings: Settings) -> "CachedUserStoreConfig":
        return cls(
            backfill_on_miss=settings.CACHE_BACKFILL_ON_MISS,
            mirror_max_attempts=settings.CACHE_MIRROR_MAX_ATTEMPTS,
            mirror_retry_delay=settings.CACHE_MIRROR_RETRY_DELAY,
        )


@dataclass
class CachedUserStoreStats:
    """Counters reported by the health endpoint."""

    cache_hits: int = 0
    cache_misses: int = 0
    cache_errors: int = 0
    mirror_successes: int = 0
    mirror_failures: int = 0


class CachedUserStore:
    """
    Two-tier user store.

    The store of record decides every write outcome; cache failures are
    logged, counted and never surface to the caller. Store of record
    failures propagate unchanged.
    """

    def __init__(
        self,
        store: UserStoreRepository,
        cache: UserCacheRepository,
        config: Optional[CachedUserStoreConfig] = None,
        metrics: Optional[CacheMetricsCollector] = None,
    ):
        if not isinstance(store, UserStoreRepository):
            raise TypeError(
                f"store must implement UserStoreRepository, got {type(store).__name__}"
            )
        if not isinstance(cache, UserCacheRepository):
            raise TypeError(
                f"cache must implement UserCacheRepository, got {type(cache).__name__}"
            )

        self.store = store
        self.cache = cache
        self.config = config or CachedUserStoreConfig()
        self.metrics = metrics or cache_metrics
        self.stats = CachedUserStoreStats()

        # Latest mirror task per user id; _CLEAR_KEY holds the latest clear
        self._pending: Dict[Optional[str], asyncio.Task] = {}
        self._tasks: Set[asyncio.Task] = set()
        # Sequence number of the latest write per user id and of the latest clear,
        # kept only while a read is in flight
        self._write_seq = 0
        self._active_reads = 0
        self._last_write: Dict[Optional[str], int] = {}

    @property
    def pending_mirrors(self) -> int:
        return len(self._tasks)

    async def list_all(self) -> AsyncIterator[User]:
        """
        Iterate over all users.

        Cached users are returned when the cache enumerates at least one
        entry; otherwise the store of record is listed in full.
        """
        with self._read_window() as read_seq:
            cached_users = await self._list_cached()
            if cached_users:
                self._record_lookup("list_all", LOOKUP_HIT)
                for user in cached_users:
                    yield user
                return

            if cached_users is not None:
                self._record_lookup("list_all", LOOKUP_MISS)

            async for user in self.store.find_all():
                if self.config.backfill_on_miss:
                    self._backfill(user, read_seq)
                yield user

    async def get_by_id(self, user_id: str) -> Optional[User]:
        """
        Get user by id.

        Returns:
            Cached user on a hit, otherwise the store of record result
            (None when the user does not exist)
        """
        _require_id(user_id)

        with tracer.start_as_current_span(
            "cached_user_store.get_by_id"
        ) as span, self._read_window() as read_seq:
            span.set_attribute("user.id", user_id)

            try:
                cached = await self.cache.find_by_id(user_id)
            except Exception as e:
                self._record_cache_error("get_by_id", e, user_id=user_id)
            else:
                if cached is not None:
                    self._record_lookup("get_by_id", LOOKUP_HIT)
                    span.set_attribute("cache.hit", True)
                    return cached
                self._record_lookup("get_by_id", LOOKUP_MISS)

            span.set_attribute("cache.hit", False)
            user = await self.store.find_by_id(user_id)
            if user is not None and self.config.backfill_on_miss:
                self._backfill(user, read_seq)
            return user

    async def save(self, user: User) -> User:
        """
        Persist user, then mirror the persisted result into the cache.

        Returns:
            User as stored, with id and created_at populated
        """
        if user is None:
            raise ValueError("User is required (cannot be None)")

        with tracer.start_as_current_span("cached_user_store.save") as span:
            saved = await self.store.save(user)
            span.set_attribute("user.id", saved.id)

        self._record_write(saved.id)
        self._schedule_save(saved)
        return saved

    async def delete_by_id(self, user_id: str) -> bool:
        """
        Delete user by id and evict it from the cache.

        Returns:
            True if the store of record deleted the user, False if not found
        """
        _require_id(user_id)

        with tracer.start_as_current_span("cached_user_store.delete_by_id") as span:
            span.set_attribute("user.id", user_id)
            deleted = await self.store.delete_by_id(user_id)
            span.set_attribute("user.deleted", deleted)

        self._record_write(user_id)
        self._mirror(user_id, "delete_by_id", lambda: self.cache.delete_by_id(user_id))
        return deleted

    async def delete_all(self) -> int:
        """Delete every user and clear the cache. Returns rows removed."""
        with tracer.start_as_current_span("cached_user_store.delete_all") as span:
            removed = await self.store.delete_all()
            span.set_attribute("users.deleted", removed)

        self._record_write(_CLEAR_KEY)
        self._mirror(_CLEAR_KEY, "delete_all", self.cache.delete_all)
        return removed

    async def wait_for_pending(self) -> None:
        """Wait until every scheduled cache mirror task has finished."""
        while self._tasks:
            await asyncio.wait(list(self._tasks))

    async def close(self) -> None:
        """Drain pending cache mirror tasks."""
        pending = self.pending_mirrors
        await self.wait_for_pending()
        logger.info("CachedUserStore: Closed", drained_mirrors=pending)

    def get_stats(self) -> Dict[str, Any]:
        stats = asdict(self.stats)
        stats["pending_mirrors"] = self.pending_mirrors
        stats["backfill_on_miss"] = self.config.backfill_on_miss
        return stats

    async def _list_cached(self) -> Optional[List[User]]:
        """Materialized cache listing, or None when the cache failed."""
        try:
            return [user async for user in self.cache.find_all()]
        except Exception as e:
            self._record_cache_error("list_all", e)
            return None

    def _schedule_save(self, user: User) -> None:
        self._mirror(user.id, "save", lambda: self.cache.save(user))

    def _record_write(self, key: Optional[str]) -> None:
        """Mark a committed store of record write to ``key``."""
        self._write_seq += 1
        if not self._active_reads:
            self._last_write.clear()
            return
        if key is _CLEAR_KEY:
            # A clear supersedes every per-user write before it
            self._last_write.clear()
        self._last_write[key] = self._write_seq

    @contextmanager
    def _read_window(self) -> Iterator[int]:
        """Track an in-flight read; yields the write sequence it started at."""
        self._active_reads += 1
        try:
            yield self._write_seq
        finally:
            self._active_reads -= 1

    def _backfill(self, user: User, read_seq: int) -> None:
        """
        Cache a user read from the store of record.

        Skipped when the user was written or the store cleared after the
        read started, since the read result may predate that write.
        """
        last_write = max(
            self._last_write.get(user.id, 0), self._last_write.get(_CLEAR_KEY, 0)
        )
        if last_write > read_seq:
            logger.debug(
                "CachedUserStore: Backfill skipped, user written during read",
                user_id=user.id,
            )
            return
        self._schedule_save(user)

    def _mirror(
        self,
        key: Optional[str],
        operation: str,
        action: Callable[[], Awaitable[None]],
    ) -> asyncio.Task:
        """Schedule a cache write after the writes it must follow."""
        if key is _CLEAR_KEY:
            predecessors = list(self._pending.values())
        else:
            predecessors = [
                task
                for task in (self._pending.get(key), self._pending.get(_CLEAR_KEY))
                if task is not None
            ]

        task = asyncio.create_task(
            self._run_mirror(predecessors, key, operation, action),
            name=f"cache-mirror:{operation}:{key or '*'}",
        )
        self._pending[key] = task
        self._tasks.add(task)
        task.add_done_callback(lambda done: self._release(key, done))
        return task

    def _release(self, key: Optional[str], task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if self._pending.get(key) is task:
            del self._pending[key]

    async def _run_mirror(
        self,
        predecessors: List[asyncio.Task],
        key: Optional[str],
        operation: str,
        action: Callable[[], Awaitable[None]],
    ) -> None:
        if predecessors:
            await asyncio.wait(predecessors)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.config.mirror_max_attempts),
            wait=wait_exponential(
                multiplier=self.config.mirror_retry_delay,
                max=self.config.mirror_retry_max_delay,
            ),
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    await action()
        except Exception as e:
            self.stats.mirror_failures += 1
            self.metrics.record_mirror(operation, MIRROR_FAILURE)
            logger.warning(
                "CachedUserStore: Cache mirror failed",
                operation=operation,
                user_id=key,
                attempts=self.config.mirror_max_attempts,
                error=str(e),
                error_type=type(e).__name__,
            )
            return

        self.stats.mirror_successes += 1
        self.metrics.record_mirror(operation, MIRROR_SUCCESS)
        logger.debug(
            "CachedUserStore: Cache mirrored", operation=operation, user_id=key
        )

    def _record_lookup(self, operation: str, result: str) -> None:
        if result == LOOKUP_HIT:
            self.stats.cache_hits += 1
        elif result == LOOKUP_MISS:
            self.stats.cache_misses += 1
        self.metrics.record_lookup(operation, result)

    def _record_cache_error(self, operation: str, error: Exception, **context) -> None:
        self.stats.cache_errors += 1
        self.metrics.record_lookup(operation, LOOKUP_ERROR)
        logger.warning(
            "CachedUserStore: Cache read failed, using store of record",
            operation=operation,
            error=str(error),
            error_type=type(error).__name__,
            **context,
        )


def _require_id(user_id: str) -> None:
    if user_id is None or not str(user_id).strip():
        raise ValueError("user_id is required (cannot be empty)")
