"""Bounded-concurrency task queue for file uploads and deletes."""

import logging
import threading
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

from ..constants import UPLOAD_CONCURRENCY

logger = logging.getLogger(__name__)

Task = Callable[[], object]


class UploadQueue:
    """Runs tasks in submission order with at most ``concurrency`` in flight.

    The queue starts paused; call ``start()`` to begin dispatching.

    Pausing only holds back tasks submitted after ``pause()``. Tasks that were
    already queued still run, so ``drain()`` after ``pause()`` reaches a point
    where nothing is running and nothing is dispatchable.

    Task failures are logged and never stop the queue.

    Examples:
        >>> queue = UploadQueue(concurrency=2)
        >>> queue.start()
        >>> queue.enqueue(lambda: print("uploaded"))
        >>> queue.pause()
        >>> queue.drain()
        True
    """

    def __init__(self, concurrency: int = UPLOAD_CONCURRENCY):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.concurrency = concurrency
        self._executor = ThreadPoolExecutor(
            max_workers=concurrency, thread_name_prefix="stagesync-upload"
        )
        self._condition = threading.Condition()
        self._pending: deque[Task] = deque()
        self._held: deque[Task] = deque()
        self._active = 0
        self._paused = True
        self._closed = False

    @property
    def is_paused(self) -> bool:
        with self._condition:
            return self._paused

    @property
    def pending_count(self) -> int:
        """Number of tasks waiting to run (including held tasks)."""
        with self._condition:
            return len(self._pending) + len(self._held)

    @property
    def active_count(self) -> int:
        with self._condition:
            return self._active

    def start(self) -> None:
        """Enable dispatching of queued and newly submitted tasks."""
        self.resume()

    def resume(self) -> None:
        with self._condition:
            if self._closed:
                return
            self._paused = False
            self._pending.extend(self._held)
            self._held.clear()
            self._dispatch()

    def pause(self) -> None:
        """Stop dispatching tasks submitted from now on."""
        with self._condition:
            self._paused = True

    def enqueue(self, task: Task) -> None:
        """Schedule a task. Returns immediately."""
        with self._condition:
            if self._closed:
                logger.debug("Upload queue closed, dropping task")
                return
            if self._paused:
                self._held.append(task)
            else:
                self._pending.append(task)
                self._dispatch()

    def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait until no task is running and none is dispatchable.

        Args:
            timeout: Maximum seconds to wait (None waits indefinitely)

        Returns:
            True if the queue went idle, False on timeout or close
        """
        with self._condition:
            idle = self._condition.wait_for(
                lambda: self._closed or (self._active == 0 and not self._pending),
                timeout=timeout,
            )
            return bool(idle) and not self._closed

    def close(self) -> None:
        """Drop queued tasks and release the workers without waiting."""
        with self._condition:
            if self._closed:
                return
            self._closed = True
            dropped = len(self._pending) + len(self._held)
            self._pending.clear()
            self._held.clear()
            self._condition.notify_all()
        if dropped:
            logger.debug(f"Upload queue closed with {dropped} task(s) not started")
        self._executor.shutdown(wait=False, cancel_futures=True)

    def _dispatch(self) -> None:
        # Caller holds the condition
        while self._pending and self._active < self.concurrency:
            task = self._pending.popleft()
            self._active += 1
            self._executor.submit(self._run, task)

    def _run(self, task: Task) -> None:
        try:
            task()
        except Exception:
            logger.exception("Upload task failed")
        finally:
            with self._condition:
                self._active -= 1
                if not self._closed:
                    self._dispatch()
                self._condition.notify_all()
