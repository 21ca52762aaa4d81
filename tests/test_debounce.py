"""Tests for the debounce timer."""

import threading
import time

from stagesync.dev.debounce import DebounceTimer


class TestDebounceTimer:
    """Tests for DebounceTimer."""

    def test_fires_once_after_delay(self):
        fired = []
        done = threading.Event()

        def callback(generation):
            fired.append(generation)
            done.set()

        timer = DebounceTimer(0.05, callback)
        generation = timer.arm()

        assert done.wait(2)
        assert fired == [generation]
        assert not timer.is_armed

    def test_rearming_fires_once_after_last_arm(self):
        """Test that K re-arms within the window produce a single firing."""
        fired = []
        fired_at = []
        done = threading.Event()

        def callback(generation):
            fired.append(generation)
            fired_at.append(time.monotonic())
            done.set()

        timer = DebounceTimer(0.2, callback)
        for _ in range(5):
            last_generation = timer.arm()
            last_armed = time.monotonic()
            time.sleep(0.02)

        assert done.wait(2)
        time.sleep(0.3)

        assert fired == [last_generation]
        assert fired_at[0] - last_armed >= 0.19

    def test_cancel_prevents_firing(self):
        fired = []
        timer = DebounceTimer(0.05, fired.append)
        timer.arm()
        timer.cancel()

        time.sleep(0.15)
        assert fired == []
        assert not timer.is_armed

    def test_is_current(self):
        """Test that earlier generations are stale after a re-arm."""
        timer = DebounceTimer(10, lambda generation: None)
        first = timer.arm()
        second = timer.arm()

        assert not timer.is_current(first)
        assert timer.is_current(second)

        timer.cancel()
        assert not timer.is_current(second)

    def test_stale_firing_is_dropped(self):
        fired = []
        timer = DebounceTimer(10, fired.append)
        stale = timer.arm()
        timer.arm()

        timer._fire(stale)
        timer.cancel()

        assert fired == []
