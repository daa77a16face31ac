"""
Debounced batch scheduling.

Load requests arriving within a short window are collected into one batch and
handed to a dispatch function together, once, when the window closes.
"""
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from .core import PendingLoad

logger = logging.getLogger("sections.scheduler")


class BatchScheduler:
    """
    Collects PendingLoads and flushes them as one batch after a delay.

    States:
    - idle: no pending loads, no timer
    - armed: at least one pending load and exactly one running timer

    The first enqueue while idle arms the timer; later enqueues join the same
    window without resetting it. Flushing claims the whole queue and clears
    the timer in one locked step, so an enqueue racing with a flush starts a
    fresh batch instead of being dropped or dispatched twice.

    Usage:
        scheduler = BatchScheduler(dispatch=handle_batch, delay=0.005)
        scheduler.enqueue(PendingLoad("shopping-cart", {"cart": "cart123"}))
    """

    def __init__(self, dispatch: Callable[[List[PendingLoad]], None], delay: float = 0.005):
        """
        Initialize the scheduler.

        Args:
            dispatch: Called with each claimed batch (in enqueue order)
            delay: Debounce window in seconds
        """
        self._dispatch = dispatch
        self._delay = delay
        self._pending: List[PendingLoad] = []
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()
        self._batches_dispatched = 0

    @property
    def is_armed(self) -> bool:
        """True while a batch is waiting for its timer."""
        with self._lock:
            return self._timer is not None

    @property
    def pending_count(self) -> int:
        """Number of loads waiting for the next flush."""
        with self._lock:
            return len(self._pending)

    def enqueue(self, pending: PendingLoad) -> None:
        """Add a load to the current batch, arming the timer if idle."""
        with self._lock:
            self._pending.append(pending)
            if self._timer is None:
                self._timer = threading.Timer(self._delay, self._on_timer)
                self._timer.daemon = True
                self._timer.start()
                logger.debug(f"Batch armed by '{pending.section}' ({self._delay}s window)")
            else:
                logger.debug(
                    f"Joined pending batch: '{pending.section}' "
                    f"(waiters: {len(self._pending)})"
                )

    def flush(self) -> int:
        """
        Claim and dispatch the pending batch on the calling thread.

        Returns:
            Number of loads dispatched (0 if nothing was pending)
        """
        batch = self._claim()
        if not batch:
            return 0

        self._dispatch(batch)
        return len(batch)

    def _claim(self) -> List[PendingLoad]:
        """Take the whole pending batch and clear the timer atomically."""
        with self._lock:
            batch = self._pending
            self._pending = []
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            if batch:
                self._batches_dispatched += 1
            return batch

    def _on_timer(self) -> None:
        try:
            self.flush()
        except Exception:
            # dispatch settles its own waiters
            logger.exception("Batch dispatch failed")

    def get_stats(self) -> Dict[str, Any]:
        """Get scheduler statistics."""
        with self._lock:
            return {
                "state": "armed" if self._timer is not None else "idle",
                "pending": len(self._pending),
                "pending_sections": [p.section for p in self._pending],
                "batches_dispatched": self._batches_dispatched,
                "debounce_seconds": self._delay,
            }
