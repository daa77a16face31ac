"""
Core cache data structures.
"""
import json
from enum import Enum
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel


DEFAULT_TTL_SECONDS = 360


class CacheOutcome(Enum):
    """Result of a single cache lookup."""
    HIT = "hit"
    MISS = "miss"               # Nothing stored for the section
    MISMATCH = "mismatch"       # Stored under a different marker snapshot
    EXPIRED = "expired"         # Past expire_at
    CORRUPT = "corrupt"         # Stored text could not be parsed


class CacheRecord(BaseModel):
    """
    One stored cache entry: the payload plus the markers that produced it.

    Stored as a single JSON document per section so payload and metadata
    are always written and read together. expire_at is an absolute epoch
    timestamp in seconds; None means the entry never expires.
    """
    payload: Any
    markers: Dict[str, Union[str, int, float]]
    expire_at: Optional[float] = None

    def is_expired(self, now: float) -> bool:
        """Valid up to and including expire_at, expired strictly after."""
        return self.expire_at is not None and now > self.expire_at


def as_stored(payload: Any) -> Any:
    """
    The payload as a cache read will return it.

    Tuples become lists and non-string dict keys become strings. Raises
    TypeError for values JSON cannot represent.
    """
    return json.loads(json.dumps(payload))
