"""
Marker-gated section cache with TTL and pluggable key-value storage.
"""
from .core import DEFAULT_TTL_SECONDS, CacheOutcome, CacheRecord, as_stored
from .storage import InMemoryStore, KeyValueStore, PrefixedStore, SqliteStore
from .manager import MarkerGatedCache, create_section_cache, get_section_cache

__all__ = [
    # Core types
    "DEFAULT_TTL_SECONDS",
    "CacheRecord",
    "as_stored",
    "CacheOutcome",
    # Storage
    "KeyValueStore",
    "InMemoryStore",
    "SqliteStore",
    "PrefixedStore",
    # Cache
    "MarkerGatedCache",
    "create_section_cache",
    "get_section_cache",
]
