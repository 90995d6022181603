"""Cached thread pool that reclaims idle workers."""

import logging
import queue
import threading
import time
from concurrent.futures import Future
from typing import Any, Callable, List, Optional, Set, Tuple

_WorkItem = Tuple[Future, Callable[..., Any], tuple, dict]


class WorkerPool:
    """
    Thread pool that grows on demand and shrinks when idle.

    A submitted task goes to an idle worker when there is one, otherwise a
    new worker is started for it. A worker that waits longer than
    ``keep_alive`` seconds without work exits, so long gaps between
    bursts do not hold threads.

    ``idle`` counts workers waiting on the queue minus tasks already queued
    for them; it is only touched under ``_lock``.
    """

    def __init__(
        self,
        keep_alive: float,
        name: str = "worker",
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize worker pool.

        Args:
            keep_alive: Seconds an idle worker waits before exiting
            name: Thread name prefix
            logger: Optional logger instance
        """
        self.keep_alive = keep_alive
        self.name = name
        self.logger = logger or logging.getLogger(__name__)

        self._queue: "queue.Queue[Optional[_WorkItem]]" = queue.Queue()
        self._lock = threading.Lock()
        self._threads: Set[threading.Thread] = set()
        self._idle = 0
        self._active = 0
        self._shutdown = False
        self._counter = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def pool_size(self) -> int:
        with self._lock:
            return len(self._threads)

    @property
    def active_count(self) -> int:
        with self._lock:
            return self._active

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown

    def submit(self, fn: Callable[..., Any], *args, **kwargs) -> Future:
        """
        Schedule fn(*args, **kwargs) and return its future.

        Raises:
            RuntimeError: If the pool has been shut down
        """
        future: Future = Future()
        item = (future, fn, args, kwargs)
        with self._lock:
            if self._shutdown:
                raise RuntimeError("cannot submit to a pool that is shut down")
            if self._idle > 0:
                self._idle -= 1
                self._queue.put(item)
            else:
                self._start_worker(item)
        return future

    def shutdown(self) -> None:
        """Stop accepting work. Queued tasks still run."""
        with self._lock:
            if self._shutdown:
                return
            self._shutdown = True
            # Wake every waiting worker once the queue drains
            for _ in range(len(self._threads)):
                self._queue.put(None)

    def await_termination(self, timeout: float) -> bool:
        """
        Wait for all workers to exit.

        Returns:
            bool: True if every worker exited within the timeout
        """
        deadline = time.monotonic() + timeout
        while True:
            with self._lock:
                threads = list(self._threads)
            if not threads:
                return True
            for thread in threads:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return self.pool_size == 0
                thread.join(remaining)

    def shutdown_now(self) -> List[Future]:
        """
        Stop accepting work and cancel every task not yet started.

        Running tasks cannot be interrupted; they are left to finish on
        their own.

        Returns:
            List[Future]: Futures of the cancelled tasks
        """
        self.shutdown()
        cancelled = []
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                break
            if item is None:
                continue
            if item[0].cancel():
                cancelled.append(item[0])
        with self._lock:
            # Workers blocked in get() still need their wake-up
            for _ in range(len(self._threads)):
                self._queue.put(None)
        if cancelled:
            self.logger.warning(f"Cancelled {len(cancelled)} queued task(s)")
        return cancelled

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _start_worker(self, first: _WorkItem) -> None:
        self._counter += 1
        thread = threading.Thread(
            target=self._worker,
            args=(first,),
            name=f"{self.name}-{self._counter}",
            daemon=True
        )
        self._threads.add(thread)
        thread.start()

    def _worker(self, item: Optional[_WorkItem]) -> None:
        try:
            while item is not None:
                self._run(item)
                item = self._next_item()
        finally:
            with self._lock:
                self._threads.discard(threading.current_thread())

    def _next_item(self) -> Optional[_WorkItem]:
        with self._lock:
            if self._shutdown and self._queue.empty():
                return None
            self._idle += 1
        try:
            return self._queue.get(timeout=self.keep_alive)
        except queue.Empty:
            with self._lock:
                try:
                    # Work queued for us between the timeout and the lock
                    return self._queue.get_nowait()
                except queue.Empty:
                    self._idle -= 1
                    self.logger.debug(f"Reclaiming idle worker {threading.current_thread().name}")
                    return None

    def _run(self, item: _WorkItem) -> None:
        future, fn, args, kwargs = item
        if not future.set_running_or_notify_cancel():
            return
        with self._lock:
            self._active += 1
        try:
            result = fn(*args, **kwargs)
        except BaseException as e:
            future.set_exception(e)
        else:
            future.set_result(result)
        finally:
            with self._lock:
                self._active -= 1
