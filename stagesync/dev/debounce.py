"""Single-slot debounce timer."""

import threading
from typing import Callable, Optional


class DebounceTimer:
    """Calls ``callback(generation)`` once ``delay`` seconds pass without re-arming.

    Arming cancels any outstanding timer. Each arming gets a new generation
    number; a firing that raced with a re-arm carries an old generation,
    which ``is_current()`` rejects.
    """

    def __init__(self, delay: float, callback: Callable[[int], None]):
        self.delay = delay
        self.callback = callback
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._generation = 0

    @property
    def is_armed(self) -> bool:
        with self._lock:
            return self._timer is not None

    def arm(self) -> int:
        """Start or restart the delay window.

        Returns:
            Generation number of the new timer
        """
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            generation = self._generation
            timer = threading.Timer(self.delay, self._fire, args=(generation,))
            timer.daemon = True
            self._timer = timer
        timer.start()
        return generation

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._generation += 1

    def is_current(self, generation: int) -> bool:
        """Whether a firing with this generation is the latest arming."""
        with self._lock:
            return generation == self._generation

    def _fire(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._timer = None
        self.callback(generation)
