from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
from typing import Awaitable, Callable, Dict, Optional, TypeVar

from prayer_schedule.config.models import ScheduleSettings
from prayer_schedule.schedule import codec
from prayer_schedule.schedule.bundled import BundledScheduleProvider
from prayer_schedule.schedule.cache_store import CacheStore
from prayer_schedule.schedule.errors import (
    CacheAbsentError,
    CacheCorruptError,
    FetchTimeoutError,
    PayloadError,
    RemoteFetchError,
)
from prayer_schedule.schedule.events import EventStream
from prayer_schedule.schedule.fetcher import Fetcher, RemoteFetcher
from prayer_schedule.schedule.models import ResolutionResult, ScheduleDataset, Strategy

logger = logging.getLogger(__name__)

T = TypeVar("T")

CACHE_WARNING = "serving cached data"
BUNDLED_WARNING = "no network or cache available"


def _log_task_result(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.debug("Shared schedule fetch finished with error. error=%r", error)


class SingleFlight:
    """
    Collapses concurrent calls for the same key into one running task.

    The first caller runs the task on its own event loop and publishes the outcome
    through a concurrent.futures.Future, so callers on other threads and loops can
    wait for it too. Every waiter attaches through asyncio.shield, so a cancelled
    waiter leaves the shared work running for everyone else.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._flights: Dict[str, concurrent.futures.Future] = {}

    async def do(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        with self._lock:
            flight = self._flights.get(key)
            owner = flight is None
            if owner:
                flight = concurrent.futures.Future()
                self._flights[key] = flight

        if not owner:
            return await asyncio.shield(asyncio.wrap_future(flight))

        try:
            task = asyncio.create_task(factory())
        except BaseException as e:
            self._settle(key, flight, error=e)
            raise
        task.add_done_callback(_log_task_result)
        task.add_done_callback(lambda t: self._publish(key, flight, t))
        return await asyncio.shield(task)

    def _publish(self, key: str, flight: concurrent.futures.Future, task: asyncio.Task) -> None:
        if task.cancelled():
            self._settle(key, flight, error=RemoteFetchError(f"Shared fetch was cancelled. key={key}"))
            return
        error = task.exception()
        if error is not None:
            self._settle(key, flight, error=error)
        else:
            self._settle(key, flight, result=task.result())

    def _settle(
        self,
        key: str,
        flight: concurrent.futures.Future,
        *,
        result: object = None,
        error: Optional[BaseException] = None,
    ) -> None:
        with self._lock:
            if self._flights.get(key) is flight:
                del self._flights[key]
        if error is not None:
            flight.set_exception(error)
        else:
            flight.set_result(result)


class ScheduleResolver:
    """
    Tiered resolution of the prayer schedule: remote, then cache, then bundled.

    One instance is built at startup and handed to whatever needs the schedule.
    Every tier failure short of a broken bundled payload turns into a fall-through,
    so resolve() always returns a dataset.
    """

    def __init__(
        self,
        *,
        endpoint: str,
        cache_store: CacheStore,
        bundled: BundledScheduleProvider,
        fetcher: Optional[Fetcher] = None,
        fetch_timeout_seconds: float = 10.0,
        strategy: Strategy = Strategy.PREFER_REMOTE,
        revalidate_on_cache_hit: bool = True,
        events: Optional[EventStream] = None,
        single_flight: Optional[SingleFlight] = None,
    ) -> None:
        self._endpoint = endpoint
        self._cache = cache_store
        self._bundled = bundled
        self._fetcher = fetcher or RemoteFetcher()
        self._timeout = fetch_timeout_seconds
        self._strategy = strategy
        self._revalidate_on_cache_hit = revalidate_on_cache_hit
        self._events = events or EventStream()
        self._single_flight = single_flight or SingleFlight()
        self._revalidation_lock = threading.Lock()
        self._revalidation_task: Optional[asyncio.Task] = None

    @classmethod
    def from_settings(
        cls,
        settings: ScheduleSettings,
        *,
        fetcher: Optional[Fetcher] = None,
        events: Optional[EventStream] = None,
    ) -> ScheduleResolver:
        return cls(
            endpoint=settings.endpoint,
            cache_store=CacheStore(settings.cache_path),
            bundled=BundledScheduleProvider(settings.bundled_path or None),
            fetcher=fetcher or RemoteFetcher(max_bytes=settings.max_payload_bytes),
            fetch_timeout_seconds=settings.fetch_timeout_seconds,
            strategy=settings.strategy,
            revalidate_on_cache_hit=settings.revalidate_on_cache_hit,
            events=events,
        )

    @property
    def events(self) -> EventStream:
        return self._events

    @property
    def cache_store(self) -> CacheStore:
        return self._cache

    @property
    def revalidation_pending(self) -> bool:
        return self._revalidation_task is not None and not self._revalidation_task.done()

    async def resolve(self, force_refresh: bool = False, skip_remote: bool = False) -> ResolutionResult:
        """
        Return the freshest schedule available.

        Args:
            force_refresh: Go to the network first even under the prefer-cache strategy.
            skip_remote: Do not contact the network in the foreground.

        Raises:
            BundledPayloadCorruptError: only when every tier failed and the packaged
                payload itself is broken.
        """
        cache_checked = False
        if self._strategy is Strategy.PREFER_CACHE and not force_refresh:
            cache_checked = True
            result = self._serve_cache(warning=None)
            if result is not None:
                if not skip_remote:
                    self._schedule_revalidation()
                return result

        remote_error: Optional[BaseException] = None
        if not skip_remote:
            try:
                dataset = await self._single_flight.do(self._endpoint, self._fetch_and_store)
            except (RemoteFetchError, PayloadError) as e:
                remote_error = e
                self._events.emit("remote_failed", self._endpoint, error=e)
            except Exception as e:
                logger.exception("Unexpected error in remote schedule tier. endpoint=%s", self._endpoint)
                remote_error = e
                self._events.emit("remote_failed", self._endpoint, error=e)
            else:
                self._events.emit("remote_ok", self._endpoint, detail=f"days={len(dataset.entries)}")
                return ResolutionResult(dataset=dataset, source="remote")

        if not cache_checked:
            result = self._serve_cache(warning=CACHE_WARNING)
            if result is not None:
                if remote_error is not None and not isinstance(remote_error, PayloadError):
                    self._schedule_revalidation()
                return result

        dataset = self._bundled.load()
        self._events.emit("bundled_served", self._endpoint, detail=f"days={len(dataset.entries)}")
        return ResolutionResult(dataset=dataset, source="bundled", warning=BUNDLED_WARNING)

    def clear_cache(self) -> None:
        self._cache.clear()

    async def wait_for_revalidation(self) -> None:
        task = self._revalidation_task
        if task is None or task.done():
            return
        if task.get_loop() is asyncio.get_running_loop():
            await asyncio.shield(task)
            return
        # Scheduled by a caller on another thread's loop.
        waiter = asyncio.run_coroutine_threadsafe(asyncio.wait({task}), task.get_loop())
        await asyncio.wrap_future(waiter)

    async def aclose(self) -> None:
        with self._revalidation_lock:
            task = self._revalidation_task
            self._revalidation_task = None
        if task is None or task.done():
            return
        if task.get_loop() is not asyncio.get_running_loop():
            task.get_loop().call_soon_threadsafe(task.cancel)
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            logger.info("Schedule revalidation cancelled during shutdown.")

    async def _fetch_and_store(self) -> ScheduleDataset:
        try:
            data = await asyncio.wait_for(self._fetcher.fetch(self._endpoint, self._timeout), timeout=self._timeout)
        except FetchTimeoutError:
            raise
        except asyncio.TimeoutError as e:
            raise FetchTimeoutError(f"Timed out after {self._timeout}s fetching {self._endpoint}") from e

        dataset = codec.decode(data)
        try:
            self._cache.write(data)
        except OSError:
            logger.exception("Failed to persist schedule cache. path=%s", self._cache.path)
        return dataset

    def _load_cached(self) -> ScheduleDataset:
        record = self._cache.read_record()
        try:
            return codec.decode(record.payload)
        except PayloadError as e:
            self._cache.clear(expected=record.payload)
            raise CacheCorruptError(f"Cached schedule failed validation: {e}") from e

    def _serve_cache(self, *, warning: Optional[str]) -> Optional[ResolutionResult]:
        try:
            dataset = self._load_cached()
        except CacheAbsentError:
            self._events.emit("cache_miss", self._endpoint)
            return None
        except CacheCorruptError as e:
            self._events.emit("cache_corrupt", self._endpoint, detail="cache cleared", error=e)
            return None
        except OSError as e:
            logger.exception("Failed to read schedule cache. path=%s", self._cache.path)
            self._events.emit("cache_miss", self._endpoint, error=e)
            return None
        self._events.emit("cache_hit", self._endpoint, detail=f"days={len(dataset.entries)}")
        return ResolutionResult(dataset=dataset, source="cache", warning=warning)

    def _schedule_revalidation(self) -> None:
        if not self._revalidate_on_cache_hit:
            return
        with self._revalidation_lock:
            if self.revalidation_pending:
                return
            self._revalidation_task = asyncio.create_task(self._revalidate())
        self._events.emit("revalidation_scheduled", self._endpoint)

    async def _revalidate(self) -> None:
        try:
            dataset = await self._single_flight.do(self._endpoint, self._fetch_and_store)
        except (RemoteFetchError, PayloadError) as e:
            self._events.emit("revalidation_failed", self._endpoint, error=e)
            return
        except Exception as e:
            logger.exception("Unexpected error during schedule revalidation. endpoint=%s", self._endpoint)
            self._events.emit("revalidation_failed", self._endpoint, error=e)
            return
        self._events.emit("revalidation_ok", self._endpoint, detail=f"days={len(dataset.entries)}")
