from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, Optional

from prayer_schedule.utils import utc_now

logger = logging.getLogger(__name__)

EventKind = Literal[
    "remote_ok",
    "remote_failed",
    "cache_hit",
    "cache_miss",
    "cache_corrupt",
    "bundled_served",
    "revalidation_scheduled",
    "revalidation_ok",
    "revalidation_failed",
]

_WARNING_KINDS = {"remote_failed", "cache_corrupt", "revalidation_failed"}


@dataclass(frozen=True, slots=True)
class ResolutionEvent:
    kind: EventKind
    endpoint: str
    detail: str = ""
    error: Optional[str] = None
    at: datetime = field(default_factory=utc_now)


def _deliver(queue: asyncio.Queue[ResolutionEvent], event: ResolutionEvent) -> None:
    if queue.full():
        queue.get_nowait()
    queue.put_nowait(event)


def _running_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class EventStream:
    """
    Fan-out of resolution events to any number of asyncio.Queue subscribers.

    Every event is also logged, so tier failures stay diagnosable without a subscriber.
    Queues are bounded; a subscriber that stops draining loses the oldest events.
    emit() may be called from any thread. Each queue is only touched on the loop
    that subscribed it.
    """

    def __init__(self, *, max_queue_size: int = 100) -> None:
        self._max_queue_size = max_queue_size
        self._lock = threading.Lock()
        self._subscribers: list[tuple[asyncio.Queue[ResolutionEvent], asyncio.AbstractEventLoop]] = []
        self._history: list[ResolutionEvent] = []

    @property
    def history(self) -> list[ResolutionEvent]:
        with self._lock:
            return list(self._history)

    def subscribe(self) -> asyncio.Queue[ResolutionEvent]:
        """Must be called from a running event loop; events are delivered on that loop."""
        queue: asyncio.Queue[ResolutionEvent] = asyncio.Queue(maxsize=self._max_queue_size)
        with self._lock:
            self._subscribers.append((queue, asyncio.get_running_loop()))
        return queue

    def unsubscribe(self, queue: asyncio.Queue[ResolutionEvent]) -> None:
        with self._lock:
            self._subscribers = [(q, loop) for q, loop in self._subscribers if q is not queue]

    def emit(self, kind: EventKind, endpoint: str, *, detail: str = "", error: Optional[BaseException] = None) -> ResolutionEvent:
        event = ResolutionEvent(
            kind=kind,
            endpoint=endpoint,
            detail=detail,
            error=f"{type(error).__name__}: {error}" if error is not None else None,
        )
        level = logging.WARNING if kind in _WARNING_KINDS else logging.INFO
        logger.log(level, "schedule.%s endpoint=%s detail=%s error=%s", kind, endpoint, detail, event.error)

        with self._lock:
            self._history.append(event)
            if len(self._history) > self._max_queue_size:
                del self._history[0]
            subscribers = list(self._subscribers)

        current = _running_loop()
        for queue, loop in subscribers:
            if loop is current:
                _deliver(queue, event)
                continue
            try:
                loop.call_soon_threadsafe(_deliver, queue, event)
            except RuntimeError:
                logger.info("Dropping event subscriber whose loop is closed. kind=%s", kind)
                self.unsubscribe(queue)
        return event
