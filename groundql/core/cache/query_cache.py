"""
Smart Query Cache for GroundQL.

Caches query results keyed by normalized SQL, user and parameters, with
a TTL chosen by the volatility of the tables the query reads.

Two tiers:
- an optional Redis client (``redis.asyncio``), tried first
- an in-process dict guarded by a lock, always written

A Redis failure of any kind is logged and treated as a miss; the cache
never raises into the caller.
"""

import asyncio
import hashlib
import json
import logging
import re
import threading
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from decimal import Decimal
from typing import Any

from pydantic_core import to_jsonable_python
from redis.asyncio import Redis
from redis.exceptions import RedisError

from groundql.config import get_settings

logger = logging.getLogger(__name__)


# -----------------------------
# Errors
# -----------------------------


class CacheBackendError(Exception):
    """Raised internally when the distributed tier fails."""

    pass


# -----------------------------
# Volatility table
# -----------------------------

# Seconds an entry stays valid, per table read by the query
TABLE_TTL_SECONDS: dict[str, int] = {
    # Contacts and accounts change rarely
    "contacts": 300,
    "accounts": 300,
    "sub_accounts": 300,
    "users": 300,
    # Activity data
    "activities": 120,
    "tasks": 120,
    "leads": 120,
    "follow_ups": 120,
    # Quotes move fastest
    "quotes": 60,
    "quotes_mbcb": 60,
    "quotes_signages": 60,
    "quotes_paint": 60,
    # Aggregated monitoring data
    "ai_operation_logs": 600,
    "ai_queries": 600,
}
DEFAULT_TTL_SECONDS = 180

_FROM_TABLE = re.compile(r"\bfrom\s+([a-z_][a-z0-9_]*)")
_JOIN_TABLE = re.compile(r"\bjoin\s+([a-z_][a-z0-9_]*)")


def normalize_sql(sql: str) -> str:
    return " ".join(sql.split()).lower()


def extract_tables(sql: str) -> list[str]:
    """Table names following FROM and JOIN, deduplicated in order."""
    lowered = sql.lower()
    tables: list[str] = []
    for name in _FROM_TABLE.findall(lowered) + _JOIN_TABLE.findall(lowered):
        if name not in tables:
            tables.append(name)
    return tables


def ttl_for_tables(tables: list[str], ttl_map: dict[str, int] | None = None) -> int:
    """Minimum TTL over ``tables``; the most volatile table wins."""
    ttl_map = ttl_map or TABLE_TTL_SECONDS
    if not tables:
        return DEFAULT_TTL_SECONDS
    return min(ttl_map.get(t.strip("'\"").lower(), DEFAULT_TTL_SECONDS) for t in tables)


def make_cache_key(sql: str, user_id: Any, params: list[Any] | None = None) -> str:
    """Build ``query:<sha256>`` from the normalized SQL, user id and params."""
    payload = json.dumps(
        {
            "sql": normalize_sql(sql),
            "user_id": str(user_id),
            "params": list(params or []),
        },
        sort_keys=True,
        default=str,
    )
    return "query:" + hashlib.sha256(payload.encode()).hexdigest()


def jsonable_rows(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """
    Convert rows to JSON-native values.

    Both tiers store this form, so a row reads back the same from memory
    and from Redis. Dates become ISO strings; Decimals become int or float.
    """
    return to_jsonable_python(
        [{key: _plain_number(value) for key, value in row.items()} for row in rows],
        fallback=str,
    )


def _plain_number(value: Any) -> Any:
    if isinstance(value, Decimal) and value.is_finite():
        return int(value) if value == value.to_integral_value() else float(value)
    return value


# -----------------------------
# Data structures
# -----------------------------


@dataclass
class CacheEntry:
    """A cached result set with its write time and lifetime."""

    data: list[dict[str, Any]]
    timestamp: float
    ttl: int
    source_sql: str
    touched_tables: list[str] = field(default_factory=list)

    def is_valid(self, now: float) -> bool:
        return now - self.timestamp < self.ttl


@dataclass(frozen=True)
class CacheMetrics:
    """Snapshot of cache counters; hit_rate is a percentage."""

    hits: int = 0
    misses: int = 0
    sets: int = 0
    invalidations: int = 0
    hit_rate: float = 0.0


# -----------------------------
# Cache
# -----------------------------


class SmartQueryCache:
    """
    Two-tier volatility-aware result cache.

    Example:
        cache = SmartQueryCache(redis=Redis.from_url(url))
        await cache.start()
        rows = await cache.get(sql, user_id, params)
        if rows is None:
            rows = await executor.execute(sql)
            await cache.set(sql, user_id, rows, params)
    """

    def __init__(
        self,
        redis: Redis | None = None,
        ttl_map: dict[str, int] | None = None,
        sweep_interval: float = 60.0,
        clock: Callable[[], float] = time.time,
    ):
        self._redis = redis
        self._ttl_map = dict(ttl_map or TABLE_TTL_SECONDS)
        self._sweep_interval = sweep_interval
        self._clock = clock

        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._sets = 0
        self._invalidations = 0

        self._sweep_task: asyncio.Task | None = None

    @classmethod
    def from_url(cls, redis_url: str | None, **kwargs: Any) -> "SmartQueryCache":
        """Create a cache, connecting the Redis tier only when a URL is given."""
        client = Redis.from_url(redis_url) if redis_url else None
        if client is None:
            logger.info("Redis not configured, using in-memory query cache")
        return cls(redis=client, **kwargs)

    @classmethod
    def from_settings(cls, **kwargs: Any) -> "SmartQueryCache":
        """Create a cache from Settings.redis_url and the sweep interval."""
        settings = get_settings()
        kwargs.setdefault("sweep_interval", settings.cache_sweep_interval_seconds)
        return cls.from_url(settings.redis_url, **kwargs)

    # -------------------------
    # Read / write
    # -------------------------

    async def get(
        self,
        sql: str,
        user_id: Any,
        params: list[Any] | None = None,
    ) -> list[dict[str, Any]] | None:
        """
        Return cached rows for a query, or None on a miss.

        Redis is consulted first; an error there falls through to the
        in-process tier. Expired in-process entries are dropped on read.
        """
        key = make_cache_key(sql, user_id, params)

        if self._redis is not None:
            try:
                entry = await self._redis_get(key)
            except CacheBackendError as e:
                logger.warning("Query cache: %s; falling back to memory", e)
                entry = None
            if entry is not None and entry.is_valid(self._clock()):
                self._record_hit()
                return entry.data

        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                if entry.is_valid(self._clock()):
                    self._hits += 1
                    return entry.data
                del self._entries[key]
            self._misses += 1

        return None

    async def set(
        self,
        sql: str,
        user_id: Any,
        data: list[dict[str, Any]],
        params: list[Any] | None = None,
    ) -> None:
        """
        Store rows for a query under the TTL of its most volatile table.

        Rows are stored in their JSON-native form (see ``jsonable_rows``).
        """
        key = make_cache_key(sql, user_id, params)
        tables = extract_tables(sql)
        entry = CacheEntry(
            data=jsonable_rows(data),
            timestamp=self._clock(),
            ttl=ttl_for_tables(tables, self._ttl_map),
            source_sql=sql,
            touched_tables=tables,
        )

        if self._redis is not None:
            try:
                await self._redis_set(key, entry)
            except CacheBackendError as e:
                logger.warning("Query cache: %s; stored in memory only", e)

        with self._lock:
            self._entries[key] = entry
            self._sets += 1

        logger.debug("Cached %d rows for %s (ttl=%ss)", len(data), tables, entry.ttl)

    def invalidate(self, pattern: str | None = None) -> int:
        """
        Drop in-process entries.

        Args:
            pattern: Substring of the source SQL or a table name. None
                clears everything.

        Returns:
            Number of entries removed.

        Note:
            Redis entries are not scanned; they expire on their own TTL.
        """
        with self._lock:
            if pattern is None:
                removed = len(self._entries)
                self._entries.clear()
            else:
                needle = pattern.lower()
                doomed = [
                    key
                    for key, entry in self._entries.items()
                    if needle in entry.source_sql.lower() or needle in entry.touched_tables
                ]
                for key in doomed:
                    del self._entries[key]
                removed = len(doomed)
            self._invalidations += removed

        if self._redis is not None and pattern is not None:
            logger.info(
                "Query cache: Redis entries matching %r left to expire by TTL", pattern
            )
        logger.info("Query cache: invalidated %d entries", removed)
        return removed

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear_expired(self) -> int:
        """Remove expired in-process entries; returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if not e.is_valid(now)]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("Query cache: swept %d expired entries", len(expired))
        return len(expired)

    # -------------------------
    # Metrics
    # -------------------------

    def metrics(self) -> CacheMetrics:
        with self._lock:
            total = self._hits + self._misses
            hit_rate = (self._hits / total * 100) if total else 0.0
            return CacheMetrics(
                hits=self._hits,
                misses=self._misses,
                sets=self._sets,
                invalidations=self._invalidations,
                hit_rate=hit_rate,
            )

    def reset_metrics(self) -> None:
        with self._lock:
            self._hits = self._misses = self._sets = self._invalidations = 0

    # -------------------------
    # Lifecycle
    # -------------------------

    async def start(self) -> None:
        """Start the periodic expiry sweep. Calling twice is a no-op."""
        if self._sweep_task is not None and not self._sweep_task.done():
            return
        self._sweep_task = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        """Cancel the sweep and close the Redis connection if any."""
        task, self._sweep_task = self._sweep_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if self._redis is not None:
            try:
                await self._redis.aclose()
            except (RedisError, OSError) as e:
                logger.warning("Query cache: closing Redis failed: %s", e)

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            self.clear_expired()

    # -------------------------
    # Redis tier
    # -------------------------

    async def _redis_get(self, key: str) -> CacheEntry | None:
        try:
            raw = await self._redis.get(key)
            if raw is None:
                return None
            return CacheEntry(**json.loads(raw))
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            raise CacheBackendError(f"Redis GET failed: {type(e).__name__}") from e
        except (ValueError, TypeError) as e:
            raise CacheBackendError(f"Unreadable Redis entry: {type(e).__name__}") from e

    async def _redis_set(self, key: str, entry: CacheEntry) -> None:
        try:
            payload = json.dumps(asdict(entry))
            await self._redis.set(key, payload, ex=entry.ttl)
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            raise CacheBackendError(f"Redis SET failed: {type(e).__name__}") from e
        except (ValueError, TypeError) as e:
            raise CacheBackendError(f"Unserializable rows: {type(e).__name__}") from e

    def _record_hit(self) -> None:
        with self._lock:
            self._hits += 1
