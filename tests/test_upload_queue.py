"""Tests for the bounded-concurrency upload queue."""

import threading
import time

import pytest

from stagesync.dev.upload_queue import UploadQueue


def wait_for(predicate, timeout=5.0, interval=0.01):
    """Poll until predicate() is true or the timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def make_queue():
    queues = []

    def _make(concurrency=10):
        upload_queue = UploadQueue(concurrency)
        queues.append(upload_queue)
        return upload_queue

    yield _make
    for upload_queue in queues:
        upload_queue.close()


class TestUploadQueue:
    """Tests for UploadQueue."""

    def test_invalid_concurrency(self):
        with pytest.raises(ValueError):
            UploadQueue(0)

    def test_starts_paused(self, make_queue):
        """Test that nothing runs before start()."""
        upload_queue = make_queue()
        ran = []
        upload_queue.enqueue(lambda: ran.append(1))

        time.sleep(0.05)
        assert ran == []
        assert upload_queue.is_paused
        assert upload_queue.pending_count == 1

        upload_queue.start()
        assert upload_queue.drain(timeout=5)
        assert ran == [1]

    def test_runs_each_task_once_in_order(self, make_queue):
        """Test that tasks run in submission order with one worker."""
        upload_queue = make_queue(concurrency=1)
        upload_queue.start()
        ran = []
        for i in range(20):
            upload_queue.enqueue(lambda i=i: ran.append(i))

        assert upload_queue.drain(timeout=5)
        assert ran == list(range(20))

    def test_runs_each_task_once_concurrently(self, make_queue):
        upload_queue = make_queue(concurrency=10)
        upload_queue.start()
        ran = []
        lock = threading.Lock()

        def task(i):
            with lock:
                ran.append(i)

        for i in range(50):
            upload_queue.enqueue(lambda i=i: task(i))

        assert upload_queue.drain(timeout=5)
        assert sorted(ran) == list(range(50))

    def test_concurrency_limit(self, make_queue):
        """Test that at most `concurrency` tasks run at once."""
        upload_queue = make_queue(concurrency=3)
        upload_queue.start()
        release = threading.Event()
        lock = threading.Lock()
        running = [0]
        peak = [0]

        def task():
            with lock:
                running[0] += 1
                peak[0] = max(peak[0], running[0])
            release.wait(5)
            with lock:
                running[0] -= 1

        for _ in range(10):
            upload_queue.enqueue(task)

        assert wait_for(lambda: upload_queue.active_count == 3)
        assert upload_queue.pending_count == 7

        release.set()
        assert upload_queue.drain(timeout=5)
        assert peak[0] == 3

    def test_pause_holds_new_tasks(self, make_queue):
        """Test that pause() holds later tasks but drain() finishes earlier ones."""
        upload_queue = make_queue(concurrency=1)
        upload_queue.start()
        release = threading.Event()
        ran = []

        upload_queue.enqueue(lambda: (release.wait(5), ran.append("before-1")))
        upload_queue.enqueue(lambda: ran.append("before-2"))
        upload_queue.pause()
        upload_queue.enqueue(lambda: ran.append("after"))

        release.set()
        assert upload_queue.drain(timeout=5)
        assert ran == ["before-1", "before-2"]
        assert upload_queue.pending_count == 1

        upload_queue.resume()
        assert upload_queue.drain(timeout=5)
        assert ran == ["before-1", "before-2", "after"]

    def test_drain_timeout(self, make_queue):
        upload_queue = make_queue()
        upload_queue.start()
        release = threading.Event()
        upload_queue.enqueue(lambda: release.wait(5))

        assert not upload_queue.drain(timeout=0.05)
        release.set()
        assert upload_queue.drain(timeout=5)

    def test_failing_task_does_not_stop_queue(self, make_queue, caplog):
        """Test that a task exception is logged and later tasks still run."""
        upload_queue = make_queue(concurrency=1)
        upload_queue.start()
        ran = []

        def fail():
            raise RuntimeError("boom")

        upload_queue.enqueue(fail)
        upload_queue.enqueue(lambda: ran.append("next"))

        assert upload_queue.drain(timeout=5)
        assert ran == ["next"]
        assert "Upload task failed" in caplog.text

    def test_close_drops_pending_tasks(self, make_queue):
        upload_queue = make_queue()
        ran = []
        upload_queue.enqueue(lambda: ran.append(1))

        upload_queue.close()
        upload_queue.close()
        upload_queue.enqueue(lambda: ran.append(2))
        upload_queue.start()

        time.sleep(0.05)
        assert ran == []
        assert upload_queue.pending_count == 0

    def test_drain_returns_false_after_close(self, make_queue):
        upload_queue = make_queue()
        upload_queue.close()
        assert upload_queue.drain(timeout=1) is False
