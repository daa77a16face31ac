"""
Marker-gated cache with TTL.

A cached payload is only returned when the marker snapshot used to produce it
matches the snapshot of the current request exactly and its TTL has not run
out. Anything unreadable in the backing store is treated as a miss.
"""
import logging
import threading
import time
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from pydantic import ValidationError

from config.settings import Settings, settings as default_settings

from ..markers import MarkerValue, fingerprint, markers_equal
from .core import DEFAULT_TTL_SECONDS, CacheOutcome, CacheRecord, as_stored
from .storage import InMemoryStore, KeyValueStore, PrefixedStore, SqliteStore

logger = logging.getLogger("sections.cache")


class MarkerGatedCache:
    """
    Section cache keyed by section name and validated by marker snapshot.

    Each section occupies one key in the store (the section name, namespaced
    with the cache prefix) holding a CacheRecord JSON document with the
    payload, its marker snapshot and its expiry.

    Usage:
        cache = MarkerGatedCache(InMemoryStore(), prefix="page-", ttl=360)
        cache.save("shopping-cart", {"items": []}, {"cart": "cart123"})
        cache.load("shopping-cart", {"cart": "cart123"})
    """

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        prefix: str = "",
        ttl: Optional[float] = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the cache.

        Args:
            store: Backing key-value store (defaults to a fresh InMemoryStore)
            prefix: Namespace prepended to every key
            ttl: Seconds an entry stays valid; None disables expiry
            clock: Returns the current epoch time in seconds
        """
        self._store = PrefixedStore(store if store is not None else InMemoryStore(), prefix)
        self.prefix = prefix
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.RLock()

        self._stats = {outcome.value: 0 for outcome in CacheOutcome}
        self._stats["saves"] = 0

    def save(self, section: str, payload: Any, markers: Mapping[str, MarkerValue]) -> None:
        """
        Store a payload together with the marker snapshot that produced it.

        Overwrites any prior entry for the section.
        """
        expire_at = self._clock() + self.ttl if self.ttl is not None else None
        record = CacheRecord(
            payload=as_stored(payload), markers=dict(markers), expire_at=expire_at
        )

        with self._lock:
            self._store.set_item(section, record.model_dump_json())
            self._stats["saves"] += 1

        logger.debug(f"CACHE SAVE: {self.prefix}{section} [markers={fingerprint(markers)}]")

    def load(self, section: str, markers: Mapping[str, MarkerValue]) -> Optional[Any]:
        """
        Return the cached payload, or None when it cannot be used.

        None is returned when nothing is stored, when the stored snapshot
        differs from `markers` (values or key set), when the entry is past
        its expiry, or when stored data is malformed.
        """
        outcome, payload = self.lookup(section, markers)
        return payload if outcome is CacheOutcome.HIT else None

    def lookup(
        self, section: str, markers: Mapping[str, MarkerValue]
    ) -> Tuple[CacheOutcome, Optional[Any]]:
        """Like load(), but also reports why a lookup missed."""
        record_text = self._store.get_item(section)
        outcome, payload = self._evaluate(record_text, markers)

        with self._lock:
            self._stats[outcome.value] += 1

        if outcome is CacheOutcome.HIT:
            logger.debug(f"CACHE HIT: {self.prefix}{section} [markers={fingerprint(markers)}]")
        elif outcome is CacheOutcome.CORRUPT:
            logger.warning(f"CACHE CORRUPT: {self.prefix}{section}, treating as miss")
        else:
            logger.debug(f"CACHE {outcome.name}: {self.prefix}{section}")
        return outcome, payload

    def _evaluate(
        self,
        record_text: Optional[str],
        markers: Mapping[str, MarkerValue],
    ) -> Tuple[CacheOutcome, Optional[Any]]:
        if record_text is None:
            return CacheOutcome.MISS, None

        try:
            record = CacheRecord.model_validate_json(record_text)
        except ValidationError:
            return CacheOutcome.CORRUPT, None

        if not markers_equal(record.markers, markers):
            return CacheOutcome.MISMATCH, None

        if record.is_expired(self._clock()):
            return CacheOutcome.EXPIRED, None

        return CacheOutcome.HIT, record.payload

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        with self._lock:
            stats = dict(self._stats)

        hits = stats[CacheOutcome.HIT.value]
        total_lookups = sum(stats[outcome.value] for outcome in CacheOutcome)
        hit_rate = (hits / total_lookups * 100) if total_lookups > 0 else 0

        return {
            "prefix": self.prefix,
            "ttl_seconds": self.ttl,
            "lookups": total_lookups,
            "hit_rate_percent": round(hit_rate, 1),
            **stats,
        }


def create_section_cache(config: Optional[Settings] = None) -> MarkerGatedCache:
    """Build a cache from settings (backend, prefix and TTL)."""
    config = config or default_settings

    if config.cache_backend == "sqlite":
        store: KeyValueStore = SqliteStore(config.cache_db_path)
    elif config.cache_backend == "memory":
        store = InMemoryStore()
    else:
        raise ValueError(
            f"Unknown cache backend '{config.cache_backend}' (expected 'memory' or 'sqlite')"
        )

    logger.info(
        f"Section cache: backend={config.cache_backend} prefix={config.cache_prefix!r} "
        f"ttl={config.cache_ttl_seconds}s"
    )
    return MarkerGatedCache(store, prefix=config.cache_prefix, ttl=config.cache_ttl_seconds)


# Global section cache instance
_section_cache: Optional[MarkerGatedCache] = None


def get_section_cache() -> MarkerGatedCache:
    """Get or create the global section cache."""
    global _section_cache
    if _section_cache is None:
        _section_cache = create_section_cache()
    return _section_cache
