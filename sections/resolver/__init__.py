"""
Batched section resolver with debounced request coalescing.
"""
from .core import PendingLoad, SectionDefinition
from .scheduler import BatchScheduler
from .resolver import BatchedResolver, build_resolver

__all__ = [
    # Core types
    "PendingLoad",
    "SectionDefinition",
    # Scheduling
    "BatchScheduler",
    # Resolver
    "BatchedResolver",
    "build_resolver",
]
