"""Filesystem watcher that reports changes under the project source directory."""

import logging
import threading
from pathlib import Path
from typing import Callable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from ..models import ChangeEvent, ChangeKind

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[ChangeEvent], None]
IgnorePredicate = Callable[[Path, bool], bool]


def _event_path_to_path(event_path) -> Path:
    """Convert watchdog event path to Path, handling bytes properly."""
    if isinstance(event_path, bytes):
        return Path(event_path.decode("utf-8", errors="replace"))
    return Path(event_path)


class _ChangeHandler(FileSystemEventHandler):
    """Translates watchdog events into ChangeEvent values."""

    def __init__(self, watcher: "FileWatcher"):
        super().__init__()
        self.watcher = watcher

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.watcher._emit(ChangeKind.ADD, _event_path_to_path(event.src_path))

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.watcher._emit(ChangeKind.MODIFY, _event_path_to_path(event.src_path))

    def on_deleted(self, event: FileSystemEvent) -> None:
        kind = ChangeKind.DELETE_DIR if event.is_directory else ChangeKind.DELETE
        self.watcher._emit(kind, _event_path_to_path(event.src_path))

    def on_moved(self, event: FileSystemEvent) -> None:
        src_path = _event_path_to_path(event.src_path)
        if event.is_directory:
            # Files inside a moved directory are reported as separate moves
            self.watcher._emit(ChangeKind.DELETE_DIR, src_path)
            return
        self.watcher._emit(ChangeKind.DELETE, src_path)
        self.watcher._emit(ChangeKind.ADD, _event_path_to_path(event.dest_path))


class FileWatcher:
    """Watches a directory tree and reports changes made after ``start()``.

    Files that already exist when watching starts are not reported. Once
    ``close()`` returns, the callback is never invoked again. A closed watcher
    cannot be restarted.
    """

    def __init__(
        self,
        root: Path,
        on_change: ChangeCallback,
        ignore: Optional[IgnorePredicate] = None,
    ):
        """Initialize the watcher.

        Args:
            root: Directory to watch recursively
            on_change: Called with each change, in the order they are observed
            ignore: Predicate ``(path, is_dir) -> bool`` for paths to drop
        """
        self.root = Path(root)
        self.on_change = on_change
        self.ignore = ignore
        self._observer: Optional[Observer] = None
        self._lock = threading.RLock()
        self._closed = False

    @property
    def is_running(self) -> bool:
        return self._observer is not None and not self._closed

    def start(self) -> None:
        """Start watching. Does nothing if already started."""
        with self._lock:
            if self._closed:
                raise RuntimeError("Watcher has been closed and cannot restart")
            if self._observer is not None:
                return
            observer = Observer()
            observer.schedule(_ChangeHandler(self), str(self.root), recursive=True)
            observer.daemon = True
            observer.start()
            self._observer = observer
        logger.debug(f"Watching {self.root}")

    def close(self) -> None:
        """Stop watching. Safe to call more than once."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            observer = self._observer
        if observer is not None:
            observer.stop()
            if observer is not threading.current_thread():
                observer.join()
        logger.debug(f"Stopped watching {self.root}")

    def _emit(self, kind: ChangeKind, path: Path) -> None:
        try:
            change = ChangeEvent.from_path(kind, path, self.root)
        except ValueError:
            logger.debug(f"Ignoring event outside watched root: {path}")
            return

        if self.ignore is not None and self.ignore(path, kind == ChangeKind.DELETE_DIR):
            logger.debug(f"Ignoring {kind.value} for {change.relative_path}")
            return

        # Deliver under the lock so close() cannot return mid-delivery
        with self._lock:
            if self._closed:
                return
            self.on_change(change)
