"""Volatility-aware query result cache for GroundQL."""

from groundql.core.cache.query_cache import (
    DEFAULT_TTL_SECONDS,
    TABLE_TTL_SECONDS,
    CacheBackendError,
    CacheEntry,
    CacheMetrics,
    SmartQueryCache,
    extract_tables,
    jsonable_rows,
    make_cache_key,
    normalize_sql,
    ttl_for_tables,
)

__all__ = [
    "DEFAULT_TTL_SECONDS",
    "TABLE_TTL_SECONDS",
    "CacheBackendError",
    "CacheEntry",
    "CacheMetrics",
    "SmartQueryCache",
    "extract_tables",
    "jsonable_rows",
    "make_cache_key",
    "normalize_sql",
    "ttl_for_tables",
]
