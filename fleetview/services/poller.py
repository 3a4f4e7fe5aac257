"""
Polling data resource.

Wraps one transport call with loading/error/last-updated state:

    idle -> loading -> success (data set, error cleared, last_updated=now)
                    -> failure (error set, data cleared)
         -> idle

Triggers:
    - start(): one cycle right away (unless immediate=False), then one every
      interval_ms if interval_ms > 0
    - refetch(): on demand

The producer is read from self.producer at the start of every cycle, so
replace_producer() takes effect on the next tick without restarting the
timer. Overlapping cycles are not de-duplicated; the last one to settle wins.
"""
import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional

import structlog

from fleetview.schemas import ApiResult, FetchState

logger = structlog.get_logger("poller")

Producer = Callable[[], Awaitable[ApiResult]]
Listener = Callable[[FetchState], None]

UNKNOWN_ERROR = "Unknown error occurred"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PollingResource:
    """Loading/error/data state for one producer, refreshed on an interval."""

    def __init__(
        self,
        producer: Producer,
        interval_ms: int = 0,
        name: str = "resource",
        keep_last_good: bool = False,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.producer = producer
        self.interval_ms = max(int(interval_ms or 0), 0)
        self.name = name
        self.keep_last_good = keep_last_good
        self._clock = clock

        self.data: Any = None
        self.loading: bool = True
        self.error: Optional[str] = None
        self.last_updated: Optional[datetime] = None

        self._timer: Optional[asyncio.Task] = None
        self._cycles: set[asyncio.Task] = set()
        self._listeners: list[Listener] = []
        self._closed = False

    # ============ State ============

    @property
    def state(self) -> FetchState:
        return FetchState(
            data=self.data,
            loading=self.loading,
            error=self.error,
            last_updated=self.last_updated,
        )

    @property
    def running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, listener: Listener) -> None:
        """Call listener with a state snapshot after every settled cycle."""
        self._listeners.append(listener)

    def replace_producer(self, producer: Producer) -> None:
        self.producer = producer

    # ============ Fetch cycle ============

    async def refetch(self) -> FetchState:
        """Run one fetch cycle now and return the resulting state."""
        await self._run_cycle()
        return self.state

    async def _run_cycle(self) -> None:
        if self._closed:
            return
        producer = self.producer
        self.loading = True
        self.error = None

        try:
            result = await producer()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Producer raised", resource=self.name, error=str(exc))
            result = ApiResult.fail(str(exc) or UNKNOWN_ERROR)

        if self._closed:
            # Owner went away while the request was in flight
            return
        self._apply(result)

    def _apply(self, result: ApiResult) -> None:
        if result.is_ok:
            self.data = result.data
            self.error = None
            self.last_updated = self._next_timestamp()
        else:
            self.error = result.error
            if not self.keep_last_good:
                self.data = None
            logger.info("Fetch failed", resource=self.name, error=result.error)
        self.loading = False

        snapshot = self.state
        for listener in list(self._listeners):
            listener(snapshot)

    def _next_timestamp(self) -> datetime:
        now = self._clock()
        if self.last_updated is not None and now <= self.last_updated:
            now = self.last_updated + timedelta(microseconds=1)
        return now

    # ============ Timer ============

    def start(self, immediate: bool = True) -> None:
        """Begin polling. Must be called from a running event loop."""
        if self._closed:
            raise RuntimeError(f"Resource {self.name} is closed")
        if immediate:
            self._spawn_cycle()
        if self.interval_ms > 0 and not self.running:
            self._timer = asyncio.create_task(self._tick_loop(), name=f"poll:{self.name}")
            logger.debug("Polling started", resource=self.name, interval_ms=self.interval_ms)

    async def _tick_loop(self) -> None:
        interval_s = self.interval_ms / 1000.0
        while not self._closed:
            await asyncio.sleep(interval_s)
            self._spawn_cycle()

    def _spawn_cycle(self) -> None:
        task = asyncio.create_task(self._run_cycle())
        self._cycles.add(task)
        task.add_done_callback(self._cycles.discard)

    async def close(self) -> None:
        """Cancel the timer and any in-flight cycles; late results are dropped."""
        self._closed = True
        pending = [t for t in (self._timer, *self._cycles) if t is not None and not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._timer = None
        self._cycles.clear()
