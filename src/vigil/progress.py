"""Scan progress reporting.

A ProgressReporter is handed to the pipeline per run; transports (CLI
logging, an event stream, a socket registry) subscribe to it. Delivery is
push-based with no backlog replay, so ``current()`` gives late subscribers
the latest event to reconcile from.
"""

import logging
import queue
import threading
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any

from vigil.models.analysis import ScanStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressEvent:
    """One progress update of a scan.

    Attributes:
        scan_id: Scan the event belongs to
        current: Eligible files started so far
        total: Eligible files in the scan
        file: File about to be analyzed (None for lifecycle events)
        status: Scan status at the time of the event
    """

    scan_id: str
    current: int
    total: int
    file: str | None = None
    status: ScanStatus = ScanStatus.RUNNING

    @property
    def percent(self) -> int:
        if self.total <= 0:
            return 100 if self.status == ScanStatus.COMPLETED else 0
        return self.current * 100 // self.total

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "scan_id": self.scan_id,
            "current": self.current,
            "total": self.total,
            "file": self.file,
            "status": self.status.value,
        }


Subscriber = Callable[[ProgressEvent], None]

# Seconds a finished scan's last event stays readable through current()
DEFAULT_RETENTION = 300.0


class ProgressReporter:
    """Fan-out of progress events to subscribers.

    Thread-safe. Events are delivered synchronously in publish order, so
    every subscriber observes a scan's events in the order the pipeline
    emitted them. A subscriber that raises is detached.

    The latest event of a running scan is kept until the scan ends; a
    terminal event is kept for ``retention`` seconds and then evicted.
    """

    def __init__(
        self,
        retention: float = DEFAULT_RETENTION,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if retention < 0:
            raise ValueError("retention must not be negative")
        self.retention = retention
        self._clock = clock
        self._lock = threading.RLock()
        self._subscribers: list[Subscriber] = []
        self._latest: dict[str, ProgressEvent] = {}
        # scan_id -> time its terminal event was published, oldest first
        self._finished: dict[str, float] = {}

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Attach a subscriber.

        Args:
            callback: Called with every event published from now on

        Returns:
            Function that detaches the subscriber
        """
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            self._detach(callback)

        return unsubscribe

    def publish(self, event: ProgressEvent) -> None:
        """Record ``event`` as the scan's latest state and deliver it."""
        with self._lock:
            self._evict_finished()
            self._latest[event.scan_id] = event
            self._finished.pop(event.scan_id, None)
            if event.is_terminal:
                self._finished[event.scan_id] = self._clock()
            subscribers = list(self._subscribers)

            for callback in subscribers:
                try:
                    callback(event)
                except Exception as e:
                    logger.warning("Progress subscriber failed, detaching: %s", e)
                    self._detach(callback)

    def current(self, scan_id: str) -> ProgressEvent | None:
        """Latest event published for a scan."""
        with self._lock:
            self._evict_finished()
            return self._latest.get(scan_id)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    @property
    def tracked_scans(self) -> int:
        """Number of scans whose latest event is still held."""
        with self._lock:
            self._evict_finished()
            return len(self._latest)

    def _evict_finished(self) -> None:
        cutoff = self._clock() - self.retention
        while self._finished:
            scan_id, finished_at = next(iter(self._finished.items()))
            if finished_at > cutoff:
                break
            del self._finished[scan_id]
            self._latest.pop(scan_id, None)

    def _detach(self, callback: Subscriber) -> None:
        with self._lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)


class EventQueue:
    """Queue-backed subscriber for transports running on another thread.

    Usage:
        events = EventQueue(reporter, scan_id)
        for event in events:
            send(event.to_dict())
    """

    def __init__(
        self,
        reporter: ProgressReporter,
        scan_id: str | None = None,
        maxsize: int = 0,
    ) -> None:
        """Subscribe to ``reporter``.

        Args:
            reporter: Reporter to subscribe to
            scan_id: Only queue events of this scan (all scans if None)
            maxsize: Queue bound (0 for unbounded)
        """
        self.scan_id = scan_id
        self._queue: queue.Queue[ProgressEvent] = queue.Queue(maxsize=maxsize)
        self._unsubscribe = reporter.subscribe(self._on_event)

    def _on_event(self, event: ProgressEvent) -> None:
        if self.scan_id is None or event.scan_id == self.scan_id:
            # Raises queue.Full on a bounded queue; the reporter then detaches us
            self._queue.put_nowait(event)

    def get(self, timeout: float | None = None) -> ProgressEvent | None:
        """Next event, or None if none arrives within ``timeout`` seconds."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def close(self) -> None:
        """Stop receiving events."""
        self._unsubscribe()

    def __iter__(self) -> Iterator[ProgressEvent]:
        """Yield events until a terminal one, then unsubscribe."""
        try:
            while True:
                event = self._queue.get()
                yield event
                if event.is_terminal:
                    return
        finally:
            self.close()
