"""Interval scheduler dispatching one collection cycle per engine per tick."""

import logging
import threading
from concurrent.futures import Future, wait
from datetime import datetime
from enum import Enum
from functools import partial
from typing import Callable, Dict, List, Optional, Sequence

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .collectors.base import BaseCollector
from .services.worker_pool import WorkerPool
from .utils.errors import ShutdownError
from .utils.metrics import CycleResult


class SchedulerState(Enum):
    """Lifecycle of the scheduler."""

    RUNNING = "running"
    DRAINING = "draining"
    STOPPED = "stopped"


def format_timestamp(moment: datetime) -> str:
    """Sample timestamp with millisecond precision, e.g. 2015-07-24T10:30:00.123."""
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}"


class CollectionScheduler:
    """
    Drive every engine collector on a fixed interval.

    Each tick stamps one timestamp and submits one cycle per engine to a
    shared worker pool. An engine whose previous cycle is still running is
    skipped for that tick. Ticks come from an APScheduler interval job, so
    slow engines never delay the timing loop.
    """

    def __init__(
        self,
        collectors: Sequence[BaseCollector],
        interval_seconds: float,
        grace_seconds: float = 30.0,
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        """
        Initialize scheduler.

        Args:
            collectors: One collector per engine
            interval_seconds: Seconds between ticks
            grace_seconds: How long each shutdown phase waits for workers
            logger: Optional parent logger
            clock: Time source for tick timestamps
        """
        self.collectors = list(collectors)
        self.interval_seconds = interval_seconds
        self.grace_seconds = grace_seconds
        self.logger = (logger or logging.getLogger(__name__)).getChild(self.__class__.__name__)
        self._clock = clock

        # Idle workers linger across roughly two ticks before being reclaimed
        self.pool = WorkerPool(
            keep_alive=2 * interval_seconds,
            name="collector",
            logger=self.logger
        )
        self.state = SchedulerState.RUNNING
        self._stop_event = threading.Event()
        self._lock = threading.Lock()
        self._in_flight: Dict[str, Future] = {}
        self._scheduler: Optional[BackgroundScheduler] = None

    # ------------------------------------------------------------------
    # Ticks
    # ------------------------------------------------------------------

    def tick(self) -> Dict[str, Future]:
        """
        Dispatch one collection cycle for every idle engine.

        Returns:
            Dict[str, Future]: Futures of the submitted cycles by engine label
        """
        if self.state is not SchedulerState.RUNNING:
            return {}

        timestamp = format_timestamp(self._clock())
        submitted: Dict[str, Future] = {}

        for collector in self.collectors:
            key = collector.endpoint.key
            with self._lock:
                if key in self._in_flight:
                    self.logger.warning(
                        f"Cycle overrun: previous cycle for {collector.label} still running, "
                        f"skipping tick {timestamp}",
                        extra={"engine": collector.label}
                    )
                    continue
                try:
                    future = self.pool.submit(collector.collect_cycle, timestamp)
                except RuntimeError:
                    self.logger.info("Worker pool is shut down, dropping tick")
                    break
                self._in_flight[key] = future
            future.add_done_callback(partial(self._cycle_done, collector, key))
            submitted[collector.label] = future

        self.logger.info(
            f"Tick {timestamp}: {self.pool.active_count} of {self.pool.pool_size} workers active"
        )
        return submitted

    def _cycle_done(self, collector: BaseCollector, key: str, future: Future) -> None:
        with self._lock:
            if self._in_flight.get(key) is future:
                del self._in_flight[key]

        if future.cancelled():
            self.logger.warning(f"Cycle for {collector.label} cancelled", extra={"engine": collector.label})
            return

        error = future.exception()
        if error is not None:
            self.logger.error(
                f"Cycle for {collector.label} raised {type(error).__name__}: {error}",
                extra={"engine": collector.label}
            )
            return

        result: CycleResult = future.result()
        if result.failed_categories:
            self.logger.warning(
                f"Cycle {result.timestamp} for {collector.label} failed categories: "
                f"{', '.join(result.failed_categories)}",
                extra={"engine": collector.label}
            )

    def in_flight(self) -> List[str]:
        with self._lock:
            return list(self._in_flight)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start ticking in the background, first tick immediately."""
        self._scheduler = BackgroundScheduler()
        self._scheduler.add_job(
            self.tick,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id="collection_tick",
            name="Engine stats collection",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=int(self.interval_seconds),
            next_run_time=datetime.now()
        )
        self._scheduler.start()
        self.logger.info(
            f"Scheduler started: {len(self.collectors)} engine(s) every {self.interval_seconds}s"
        )

    def run_forever(self) -> None:
        """
        Tick until stop() is called, then drain.

        Raises:
            ShutdownError: If workers do not finish during draining
        """
        self.start()
        while not self._stop_event.wait(timeout=1.0):
            pass
        self.drain()

    def run_once(self, timeout: Optional[float] = None) -> List[CycleResult]:
        """
        Run a single tick, wait for its cycles, then drain.

        Returns:
            List[CycleResult]: Results of the cycles that completed
        """
        futures = self.tick()
        done, _ = wait(list(futures.values()), timeout=timeout)
        results = [f.result() for f in done if not f.cancelled() and f.exception() is None]
        self.drain()
        return results

    def stop(self) -> None:
        """Request shutdown. Safe to call from a signal handler."""
        self._stop_event.set()

    def drain(self) -> None:
        """
        Stop ticking, release every collector and wait for workers.

        Workers get one grace period to finish; survivors are aborted and
        queued work cancelled, followed by a second grace period.

        Raises:
            ShutdownError: If workers are still running after both periods
        """
        if self.state is SchedulerState.STOPPED:
            return
        self.state = SchedulerState.DRAINING
        self._stop_event.set()
        self.logger.info("Shutting down ...")

        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)

        self.pool.shutdown()
        for collector in self.collectors:
            collector.close()

        if not self.pool.await_termination(self.grace_seconds):
            self.logger.warning(f"Force shutdown after {self.grace_seconds} seconds ...")
            for collector in self.collectors:
                collector.abort()
            self.pool.shutdown_now()

            if not self.pool.await_termination(self.grace_seconds):
                self.state = SchedulerState.STOPPED
                stuck = ", ".join(self.in_flight())
                raise ShutdownError(
                    f"Workers still running after {2 * self.grace_seconds} seconds: {stuck}"
                )

        self.state = SchedulerState.STOPPED
        self.logger.info("Scheduler stopped")
