"""
Core resolver data structures.
"""
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any, Tuple

from ..markers import MarkerSnapshot


@dataclass(frozen=True)
class SectionDefinition:
    """A registered section: its placeholder and the markers gating it."""
    name: str
    placeholder: Any
    required_markers: Tuple[str, ...] = ()
    optional_markers: Tuple[str, ...] = ()


@dataclass
class PendingLoad:
    """
    One waiter in a pending batch.

    The marker snapshot is captured at enqueue time and is the one used for
    the cache write once the batch result arrives.
    """
    section: str
    markers: MarkerSnapshot
    future: Future = field(default_factory=Future)
