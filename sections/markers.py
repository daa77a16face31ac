"""
Marker snapshots: reading, comparing and fingerprinting.

A marker is a cookie-like key/value signal. A snapshot captures the values of
a section's markers at the moment of one request. Markers the source reports
as absent are left out of the snapshot, so only present markers take part in
cache validation.
"""
import hashlib
import json
from http.cookies import CookieError, SimpleCookie
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Union

MarkerValue = Union[str, int, float]
MarkerSnapshot = Dict[str, MarkerValue]
MarkerSource = Callable[[str], Optional[MarkerValue]]


def read_markers(
    source: MarkerSource,
    required: Iterable[str],
    optional: Iterable[str] = (),
) -> MarkerSnapshot:
    """
    Build a snapshot by reading every required and optional marker.

    Args:
        source: Callable returning a marker's value, or None when absent
        required: Marker names the section cannot load without
        optional: Marker names that only refine the cache fingerprint

    Returns:
        Mapping of present marker names to their values
    """
    snapshot: MarkerSnapshot = {}
    seen = set()
    for name in list(required) + list(optional):
        if name in seen:
            continue
        seen.add(name)
        value = source(name)
        if value is not None:
            snapshot[name] = value
    return snapshot


def missing_markers(snapshot: Mapping[str, MarkerValue], required: Iterable[str]) -> List[str]:
    """Required marker names that are not present in the snapshot."""
    return [name for name in required if name not in snapshot]


def markers_equal(left: Mapping[str, MarkerValue], right: Mapping[str, MarkerValue]) -> bool:
    """
    Structural equality of two snapshots.

    Key counts are compared first; then every key must be present on both
    sides with a value of the same type and the same value. "1" and 1 are
    different markers, as are 1 and 1.0.
    """
    if len(left) != len(right):
        return False

    for key, value in left.items():
        if key not in right:
            return False
        other = right[key]
        if type(other) is not type(value) or other != value:
            return False

    return True


def serialize_markers(snapshot: Mapping[str, MarkerValue]) -> str:
    """Canonical JSON text for a snapshot, independent of key order."""
    return json.dumps(dict(snapshot), sort_keys=True, separators=(",", ":"))


def fingerprint(snapshot: Mapping[str, MarkerValue]) -> str:
    """Short digest of a snapshot for log lines (marker values stay private)."""
    return hashlib.sha256(serialize_markers(snapshot).encode()).hexdigest()[:12]


def mapping_marker_source(markers: Mapping[str, MarkerValue]) -> MarkerSource:
    """Marker source backed by a mapping. Reads are live, not copied."""
    return lambda name: markers.get(name)


def cookie_marker_source(cookie_header: Optional[str]) -> MarkerSource:
    """
    Marker source backed by an HTTP Cookie header.

    Empty cookie values count as absent. A header that cannot be parsed
    yields a source where every marker is absent.
    """
    jar = SimpleCookie()
    if cookie_header:
        try:
            jar.load(cookie_header)
        except CookieError:
            jar = SimpleCookie()

    def read(name: str) -> Optional[str]:
        morsel = jar.get(name)
        if morsel is None or morsel.value == "":
            return None
        return morsel.value

    return read
