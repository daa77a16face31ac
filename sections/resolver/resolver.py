"""
Batched section resolver.

Decides per request whether a section resolves to its placeholder, to a
cached payload, or to a freshly loaded value, and coalesces loads issued
within the debounce window into a single batch loader call.
"""
import logging
import threading
from concurrent.futures import CancelledError, Future
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from config.settings import Settings, settings as default_settings

from ..cache import MarkerGatedCache, as_stored, create_section_cache
from ..errors import BatchLoadError, SectionNotRegisteredError
from ..markers import MarkerSource, fingerprint, missing_markers, read_markers
from .core import PendingLoad, SectionDefinition
from .scheduler import BatchScheduler

logger = logging.getLogger("sections.resolver")

BatchResult = Union[Mapping[str, Any], Sequence[Any]]
BatchLoader = Callable[[List[str]], Union[BatchResult, "Future[BatchResult]"]]


def _completed(value: Any) -> Future:
    future: Future = Future()
    future.set_result(value)
    return future


class BatchedResolver:
    """
    Resolves registered sections to placeholder, cached or loaded values.

    Each instance owns its registry, pending batch and timer, so several
    resolvers can coexist without sharing state.

    Usage:
        resolver = BatchedResolver(loader, cookie_marker_source(header))
        resolver.add("shopping-cart", {"items": [], "total": 0}, ["cart"])
        cart = resolver.load("shopping-cart").result()
    """

    def __init__(
        self,
        loader: BatchLoader,
        marker_source: MarkerSource,
        cache: Optional[MarkerGatedCache] = None,
        debounce_seconds: float = 0.005,
    ):
        """
        Initialize the resolver.

        Args:
            loader: Called with a list of section names; returns a mapping of
                name to value, a sequence aligned with the names, or a Future
                of either
            marker_source: Returns a marker's value, or None when absent
            cache: Marker-gated cache for loaded values (in-memory if omitted)
            debounce_seconds: Window for coalescing loads into one batch
        """
        self._loader = loader
        self._read_marker = marker_source
        self._cache = cache if cache is not None else MarkerGatedCache()
        self._scheduler = BatchScheduler(self._dispatch, delay=debounce_seconds)

        self._sections: Dict[str, SectionDefinition] = {}
        self._registry_lock = threading.Lock()

        self._stats = {
            "placeholders": 0,
            "cache_hits": 0,
            "enqueued": 0,
            "loaded": 0,
            "failed": 0,
            "missing_from_batch": 0,
        }
        self._stats_lock = threading.Lock()

    @property
    def cache(self) -> MarkerGatedCache:
        return self._cache

    def add(
        self,
        section: str,
        placeholder: Any,
        required_markers: Iterable[str],
        optional_markers: Iterable[str] = (),
    ) -> None:
        """Register a section, replacing any previous definition of the same name."""
        definition = SectionDefinition(
            name=section,
            placeholder=placeholder,
            required_markers=tuple(required_markers),
            optional_markers=tuple(optional_markers),
        )
        with self._registry_lock:
            replaced = section in self._sections
            self._sections[section] = definition
        logger.debug(f"{'Replaced' if replaced else 'Registered'} section '{section}'")

    def sections(self) -> List[str]:
        """Names of all registered sections."""
        with self._registry_lock:
            return list(self._sections)

    def load(self, section: str) -> Future:
        """
        Resolve a section.

        Returns a Future that is already completed for the placeholder and
        cache-hit paths, and completes after the batch loader otherwise.

        Raises:
            SectionNotRegisteredError: If the section was never added
        """
        definition = self._definition(section)
        markers = read_markers(
            self._read_marker, definition.required_markers, definition.optional_markers
        )

        missing = missing_markers(markers, definition.required_markers)
        if missing:
            logger.debug(f"PLACEHOLDER: '{section}' (missing markers: {missing})")
            self._count("placeholders")
            return _completed(definition.placeholder)

        cached = self._cache.load(section, markers)
        if cached is not None:
            self._count("cache_hits")
            return _completed(cached)

        pending = PendingLoad(section=section, markers=markers)
        self._scheduler.enqueue(pending)
        self._count("enqueued")
        logger.debug(f"ENQUEUED: '{section}' [markers={fingerprint(markers)}]")
        return pending.future

    def load_many(self, sections: Iterable[str]) -> Dict[str, Future]:
        """Load several sections in order so they share one batch."""
        return {section: self.load(section) for section in sections}

    def resolve(self, section: str, timeout: Optional[float] = None) -> Any:
        """Blocking form of load()."""
        return self.load(section).result(timeout=timeout)

    def flush(self) -> int:
        """Dispatch the pending batch now. Returns the number of loads dispatched."""
        return self._scheduler.flush()

    def close(self) -> None:
        """Dispatch anything still pending so no waiter is left unresolved."""
        flushed = self.flush()
        if flushed:
            logger.info(f"Flushed {flushed} pending loads on close")

    def _definition(self, section: str) -> SectionDefinition:
        with self._registry_lock:
            definition = self._sections.get(section)
        if definition is None:
            raise SectionNotRegisteredError(section)
        return definition

    def _count(self, key: str, amount: int = 1) -> None:
        with self._stats_lock:
            self._stats[key] += amount

    # -- batch handling -----------------------------------------------------

    def _dispatch(self, batch: List[PendingLoad]) -> None:
        """Call the loader once for a claimed batch and settle its waiters."""
        live = [p for p in batch if p.future.set_running_or_notify_cancel()]
        if not live:
            logger.debug(f"Skipping batch: all {len(batch)} waiters cancelled")
            return

        names = [p.section for p in live]
        logger.info(f"Loading batch of {len(names)}: {names}")

        try:
            result = self._loader(names)
        except Exception as e:
            self._reject(live, e)
            return

        if isinstance(result, Future):
            result.add_done_callback(lambda done: self._settle_future(live, done))
        else:
            self._settle(live, result)

    def _settle_future(self, batch: List[PendingLoad], done: Future) -> None:
        if done.cancelled():
            self._reject(batch, CancelledError())
            return

        error = done.exception()
        if error is not None:
            self._reject(batch, error)
            return

        self._settle(batch, done.result())

    def _settle(self, batch: List[PendingLoad], result: Any) -> None:
        names = [p.section for p in batch]
        try:
            values = self._as_mapping(names, result)
        except BatchLoadError as e:
            self._reject(batch, e)
            return

        for pending in batch:
            if pending.section not in values:
                placeholder = self._definition(pending.section).placeholder
                logger.warning(
                    f"Loader returned no value for '{pending.section}', using placeholder"
                )
                self._count("missing_from_batch")
                pending.future.set_result(placeholder)
                continue

            try:
                # Waiters get the same shape a later cache hit returns
                value = as_stored(values[pending.section])
                self._cache.save(pending.section, value, pending.markers)
            except Exception as e:
                logger.warning(f"Cache write failed for '{pending.section}': {e}")
                self._count("failed")
                pending.future.set_exception(e)
                continue

            self._count("loaded")
            pending.future.set_result(value)

    def _reject(self, batch: List[PendingLoad], error: BaseException) -> None:
        logger.warning(
            f"Batch load failed for {[p.section for p in batch]}: {error!r}"
        )
        self._count("failed", len(batch))
        for pending in batch:
            pending.future.set_exception(error)

    @staticmethod
    def _as_mapping(names: List[str], result: Any) -> Mapping[str, Any]:
        if isinstance(result, Mapping):
            return result

        if isinstance(result, Sequence) and not isinstance(result, (str, bytes)):
            if len(result) != len(names):
                raise BatchLoadError(
                    f"Loader returned {len(result)} values for {len(names)} sections",
                    names,
                )
            return dict(zip(names, result))

        raise BatchLoadError(
            f"Loader returned {type(result).__name__}; expected a mapping or sequence",
            names,
        )

    def get_stats(self) -> Dict[str, Any]:
        """Get resolver statistics."""
        with self._stats_lock:
            stats = dict(self._stats)
        with self._registry_lock:
            stats["registered_sections"] = len(self._sections)
        stats["scheduler"] = self._scheduler.get_stats()
        stats["cache"] = self._cache.get_stats()
        return stats


def build_resolver(
    loader: BatchLoader,
    marker_source: MarkerSource,
    config: Optional[Settings] = None,
    cache: Optional[MarkerGatedCache] = None,
) -> BatchedResolver:
    """Create a resolver wired from settings."""
    config = config or default_settings
    return BatchedResolver(
        loader,
        marker_source,
        cache=cache if cache is not None else create_section_cache(config),
        debounce_seconds=config.debounce_seconds,
    )
