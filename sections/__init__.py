"""
Marker-gated page sections.

Sections resolve to a placeholder until their required markers are present,
then to values fetched in debounced batches and cached per marker snapshot.
"""
from .errors import BatchLoadError, SectionError, SectionNotRegisteredError
from .markers import (
    cookie_marker_source,
    fingerprint,
    mapping_marker_source,
    markers_equal,
    read_markers,
)
from .cache import InMemoryStore, MarkerGatedCache, SqliteStore
from .resolver import BatchedResolver, build_resolver

__all__ = [
    # Errors
    "SectionError",
    "SectionNotRegisteredError",
    "BatchLoadError",
    # Markers
    "read_markers",
    "markers_equal",
    "fingerprint",
    "mapping_marker_source",
    "cookie_marker_source",
    # Cache
    "InMemoryStore",
    "SqliteStore",
    "MarkerGatedCache",
    # Resolver
    "BatchedResolver",
    "build_resolver",
]
