# ------------------------------------------------------------------------------
# FILE: helloserver/allocation/loop.py
# ------------------------------------------------------------------------------
import enum
import logging
import threading
import time
from typing import Callable, Optional

import helloserver_metrics as metrics
from helloserver.allocation.state import AllocationState
from helloserver_tracing import start_span

logger = logging.getLogger(__name__)

TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


class LoopState(enum.Enum):
    RUNNING = "running"
    STOPPED = "stopped"


class TickOutcome(enum.Enum):
    ALLOCATED = "allocated"
    LIMIT_REACHED = "limit_reached"
    IDLE = "idle"


class AllocatorLoop:
    """Timer loop growing an AllocationState by one chunk per interval.

    The loop is the only writer of the allocation state. The first tick that
    finds the target reached moves the loop to STOPPED, sets `done` and ends
    the timer thread; STOPPED is terminal.
    """

    def __init__(
        self,
        allocation: AllocationState,
        interval_secs: float,
        clock: Optional[Callable[[], float]] = None,
        on_fatal: Optional[Callable[[BaseException], None]] = None,
    ) -> None:
        if interval_secs <= 0:
            raise ValueError("interval_secs must be > 0")
        self._allocation = allocation
        self.interval = float(interval_secs)
        self._clock = clock or time.time
        self._on_fatal = on_fatal
        self._state = LoopState.RUNNING
        self.done = threading.Event()
        self._cancel = threading.Event()
        self._thread: Optional[threading.Thread] = None

        metrics.allocation_target_chunks.set(allocation.target)
        self._publish_gauges()

    @property
    def allocation(self) -> AllocationState:
        return self._allocation

    @property
    def state(self) -> LoopState:
        return self._state

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _publish_gauges(self) -> None:
        snap = self._allocation.snapshot()
        metrics.allocated_chunks.set(snap.count)
        metrics.allocated_bytes.set(snap.buffer_bytes)

    def tick(self, now: Optional[float] = None) -> TickOutcome:
        """One timer firing."""
        if self._state is LoopState.STOPPED:
            metrics.allocator_ticks_total.labels(outcome=TickOutcome.IDLE.value).inc()
            return TickOutcome.IDLE

        stamp = time.strftime(TIME_FORMAT, time.localtime(self._clock() if now is None else now))
        snap = self._allocation.snapshot()
        logger.info("%s: Allocated objects: %d", stamp, snap.count)

        if not snap.is_full:
            logger.info("%s: Allocating new object", stamp)
            with start_span(
                "allocate_chunk",
                {"allocator.chunk_size_bytes": snap.chunk_size_bytes, "allocator.target": snap.target},
            ) as span:
                count = self._allocation.allocate_chunk()
                if span is not None:
                    span.set_attribute("allocator.count", count)
            self._publish_gauges()
            metrics.allocator_ticks_total.labels(outcome=TickOutcome.ALLOCATED.value).inc()
            return TickOutcome.ALLOCATED

        logger.info(
            "%s: Objects limit reached (%d), no new allocation, stopping ticker", stamp, snap.target
        )
        self._state = LoopState.STOPPED
        self.done.set()
        metrics.allocator_ticks_total.labels(outcome=TickOutcome.LIMIT_REACHED.value).inc()
        return TickOutcome.LIMIT_REACHED

    def _run(self) -> None:
        logger.info(
            "Allocator loop started",
            extra={"interval_secs": self.interval, "target": self._allocation.target},
        )
        try:
            next_tick = time.monotonic() + self.interval
            while not self._cancel.wait(max(0.0, next_tick - time.monotonic())):
                next_tick += self.interval
                if self.tick() is TickOutcome.LIMIT_REACHED:
                    break
        except BaseException as exc:
            logger.critical("Allocator loop crashed", exc_info=True)
            if self._on_fatal is not None:
                self._on_fatal(exc)
            raise
        logger.info("Allocator loop exited", extra={"loop_state": self._state.value})

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("Allocator loop already started")
        t = threading.Thread(target=self._run, name="allocator-loop", daemon=True)
        self._thread = t
        t.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Cancel further ticks (process shutdown). Idempotent."""
        self._cancel.set()
        t = self._thread
        if t is not None and t is not threading.current_thread():
            t.join(timeout)

    def wait_stopped(self, timeout: Optional[float] = None) -> bool:
        """Block until the target was reached and the loop stopped itself."""
        return self.done.wait(timeout)
