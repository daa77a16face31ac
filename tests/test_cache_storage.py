"""
Unit tests for the marker-gated section cache and its storage backends.
"""
import json

import pytest

from config.settings import Settings
from sections.cache import (
    CacheOutcome,
    InMemoryStore,
    MarkerGatedCache,
    PrefixedStore,
    SqliteStore,
    as_stored,
    create_section_cache,
)


class FakeClock:
    """Manually advanced clock (epoch seconds)."""

    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def write_cache(store, clock):
    return MarkerGatedCache(store, prefix="cache-one", clock=clock)


@pytest.fixture
def read_cache(store, clock):
    return MarkerGatedCache(store, prefix="cache-one", clock=clock)


# =============================================================================
# Default storage behaviour
# =============================================================================

def test_absent_section_returns_none(read_cache):
    assert read_cache.load("section3", {"marker3": 1}) is None


def test_values_are_shared_between_instances(write_cache, read_cache):
    write_cache.save("section1", {"test": "data"}, {"marker1": 1})

    assert read_cache.load("section1", {"marker1": 1}) == {"test": "data"}


def test_changed_marker_value_invalidates(write_cache, read_cache):
    write_cache.save("section1", {"test": "data2"}, {"marker2": 1})

    assert read_cache.load("section1", {"marker2": 2}) is None


def test_changed_marker_count_invalidates(write_cache, read_cache):
    write_cache.save("section1", {"test": "data2"}, {"marker2": 1})

    assert read_cache.load("section1", {"marker2": 1, "marker1": 1}) is None
    assert read_cache.load("section1", {}) is None


def test_marker_snapshot_key_order_does_not_matter(write_cache, read_cache):
    write_cache.save("section1", [1, 2], {"a": 1, "b": "x"})

    assert read_cache.load("section1", {"b": "x", "a": 1}) == [1, 2]


def test_marker_types_are_compared_strictly(write_cache, read_cache):
    write_cache.save("section1", "payload", {"a": 1})

    assert read_cache.load("section1", {"a": "1"}) is None
    assert read_cache.load("section1", {"a": 1}) == "payload"


def test_prefixes_scope_all_data(store, read_cache):
    another_cache = MarkerGatedCache(store, prefix="another-cache")

    another_cache.save("section2", {"another": "Storage data"}, {"marker2": 100})

    assert read_cache.load("section2", {"marker2": 100}) is None
    assert another_cache.load("section2", {"marker2": 100}) == {"another": "Storage data"}


def test_save_overwrites_previous_entry(write_cache, read_cache):
    write_cache.save("section1", "old", {"m": 1})
    write_cache.save("section1", "new", {"m": 2})

    assert read_cache.load("section1", {"m": 1}) is None
    assert read_cache.load("section1", {"m": 2}) == "new"


def test_default_store_is_private():
    cache = MarkerGatedCache()
    cache.save("section1", "data", {"m": 1})

    assert cache.load("section1", {"m": 1}) == "data"
    assert MarkerGatedCache().load("section1", {"m": 1}) is None


# =============================================================================
# TTL
# =============================================================================

def test_entry_valid_up_to_and_including_ttl(store, clock):
    cache = MarkerGatedCache(store, ttl=360, clock=clock)
    cache.save("section1", "data", {"m": 1})

    clock.advance(359.5)
    assert cache.load("section1", {"m": 1}) == "data"

    clock.advance(0.5)
    assert cache.load("section1", {"m": 1}) == "data"


def test_entry_expires_strictly_after_ttl(store, clock):
    cache = MarkerGatedCache(store, ttl=360, clock=clock)
    cache.save("section1", "data", {"m": 1})

    clock.advance(360.001)

    assert cache.lookup("section1", {"m": 1}) == (CacheOutcome.EXPIRED, None)


def test_default_ttl_is_six_minutes(store, clock):
    cache = MarkerGatedCache(store, clock=clock)
    cache.save("section1", "data", {"m": 1})

    clock.advance(360)
    assert cache.load("section1", {"m": 1}) == "data"
    clock.advance(1)
    assert cache.load("section1", {"m": 1}) is None


def test_ttl_none_never_expires(store, clock):
    cache = MarkerGatedCache(store, ttl=None, clock=clock)
    cache.save("section1", "data", {"m": 1})

    clock.advance(10 ** 9)

    assert cache.load("section1", {"m": 1}) == "data"


def test_save_restarts_ttl(store, clock):
    cache = MarkerGatedCache(store, ttl=10, clock=clock)
    cache.save("section1", "first", {"m": 1})
    clock.advance(8)
    cache.save("section1", "second", {"m": 1})
    clock.advance(8)

    assert cache.load("section1", {"m": 1}) == "second"


# =============================================================================
# Corrupt data
# =============================================================================

@pytest.mark.parametrize("record_text", [
    "{not json",
    "null",
    '"data"',
    '{"expire_at": 5}',
    '{"payload": "data", "markers": "cart", "expire_at": 5}',
    '{"markers": {"m": 1}, "expire_at": null}',
])
def test_malformed_record_reads_as_absent(store, record_text):
    cache = MarkerGatedCache(store, prefix="p-")
    cache.save("section1", "data", {"m": 1})
    store.set_item("p-section1", record_text)

    assert cache.lookup("section1", {"m": 1}) == (CacheOutcome.CORRUPT, None)


def test_corrupt_reads_are_counted(store):
    cache = MarkerGatedCache(store, prefix="p-")
    cache.save("section1", "data", {"m": 1})
    store.set_item("p-section1", "{broken")

    assert cache.load("section1", {"m": 1}) is None
    assert cache.get_stats()["corrupt"] == 1


def test_empty_record_reads_as_absent(store):
    cache = MarkerGatedCache(store, prefix="p-")
    cache.save("section1", "data", {"m": 1})
    store.set_item("p-section1", "")

    assert cache.lookup("section1", {"m": 1}) == (CacheOutcome.MISS, None)


# =============================================================================
# Section naming and payload shape
# =============================================================================

def test_sections_with_suffixed_names_are_independent(write_cache, read_cache):
    write_cache.save("cart-meta", "A", {"m": 1})
    write_cache.save("cart", "B", {"m": 1})

    assert read_cache.load("cart-meta", {"m": 1}) == "A"
    assert read_cache.load("cart", {"m": 1}) == "B"


def test_one_store_key_per_section(store, write_cache):
    write_cache.save("shopping-cart", {"total": 100}, {"cart": "cart123"})

    assert len(store) == 1
    record = json.loads(store.get_item("cache-oneshopping-cart"))
    assert record["payload"] == {"total": 100}
    assert record["markers"] == {"cart": "cart123"}


def test_payload_is_returned_in_json_shape(write_cache, read_cache):
    write_cache.save("section1", {"ids": (1, 2), 3: "x"}, {"m": 1})

    assert read_cache.load("section1", {"m": 1}) == {"ids": [1, 2], "3": "x"}
    assert as_stored({"ids": (1, 2), 3: "x"}) == {"ids": [1, 2], "3": "x"}


def test_non_json_payload_is_rejected(write_cache):
    with pytest.raises(TypeError):
        write_cache.save("section1", {"when": object()}, {"m": 1})

    assert write_cache.load("section1", {"m": 1}) is None


# =============================================================================
# Stats
# =============================================================================

def test_stats_track_outcomes(write_cache):
    write_cache.save("section1", "data", {"m": 1})
    write_cache.load("section1", {"m": 1})
    write_cache.load("section1", {"m": 2})
    write_cache.load("section2", {"m": 1})

    stats = write_cache.get_stats()

    assert stats["saves"] == 1
    assert stats["hit"] == 1
    assert stats["mismatch"] == 1
    assert stats["miss"] == 1
    assert stats["lookups"] == 3
    assert stats["hit_rate_percent"] == 33.3


# =============================================================================
# Backends
# =============================================================================

def test_prefixed_store_namespaces_keys(store):
    prefixed = PrefixedStore(store, "ns:")
    prefixed.set_item("key", "value")

    assert store.get_item("ns:key") == "value"
    assert store.get_item("key") is None
    assert prefixed.get_item("key") == "value"


def test_in_memory_store_clear(store):
    store.set_item("a", "1")
    store.set_item("b", "2")

    assert len(store) == 2
    assert store.clear() == 2
    assert store.get_item("a") is None


def test_sqlite_store_round_trip(tmp_path):
    store = SqliteStore(tmp_path / "nested" / "sections.db")

    assert store.get_item("a") is None
    store.set_item("a", "1")
    store.set_item("a", "2")

    assert store.get_item("a") == "2"
    assert store.clear() == 1


def test_sqlite_backed_cache_survives_reopen(tmp_path, clock):
    db_path = tmp_path / "sections.db"
    MarkerGatedCache(SqliteStore(db_path), prefix="page-", clock=clock).save(
        "shopping-cart", {"items": ["Item 1"], "total": 100}, {"cart": "cart123"}
    )

    reopened = MarkerGatedCache(SqliteStore(db_path), prefix="page-", clock=clock)

    assert reopened.load("shopping-cart", {"cart": "cart123"}) == {
        "items": ["Item 1"],
        "total": 100,
    }


# =============================================================================
# Settings wiring
# =============================================================================

def test_create_section_cache_from_settings(tmp_path):
    config = Settings(
        cache_backend="sqlite",
        cache_db_path=tmp_path / "sections.db",
        cache_prefix="test-",
        cache_ttl_seconds=60,
    )

    cache = create_section_cache(config)

    assert cache.prefix == "test-"
    assert cache.ttl == 60
    cache.save("section1", "data", {"m": 1})
    stored = SqliteStore(tmp_path / "sections.db").get_item("test-section1")
    assert json.loads(stored)["payload"] == "data"


def test_create_section_cache_rejects_unknown_backend():
    with pytest.raises(ValueError):
        create_section_cache(Settings(cache_backend="redis"))
