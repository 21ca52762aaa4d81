"""Buffer for changes observed while uploads are paused."""

import logging
import threading
from typing import Callable

from ..models import ChangeEvent, StandbyChange
from .ignore import IgnorePolicy

logger = logging.getLogger(__name__)


class StandbyBuffer:
    """Ordered list of changes waiting for the upload queue to resume.

    Entries are replayed in arrival order. An unsupported change is coalesced
    when the latest buffered entry for the same path has the same kind: the
    upload reads the file when it runs, so sending it twice adds nothing. A
    different kind for the same path (modify then delete) is always kept.
    """

    def __init__(self, policy: IgnorePolicy):
        self.policy = policy
        self._changes: list[StandbyChange] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._changes)

    def __bool__(self) -> bool:
        return len(self) > 0

    @property
    def changes(self) -> list[StandbyChange]:
        """Snapshot of the buffered changes."""
        with self._lock:
            return list(self._changes)

    def has_unsupported_changes(self) -> bool:
        with self._lock:
            return any(not entry.supported for entry in self._changes)

    def append(self, entry: StandbyChange) -> bool:
        """Buffer a change.

        Args:
            entry: Change to buffer

        Returns:
            True if the change was buffered or coalesced, False if it was
            rejected as ineligible
        """
        change = entry.change
        if change.kind.is_upload and not self.policy.is_allowed_extension(
            change.absolute_path
        ):
            logger.debug(f"Extension not allowed: {change.absolute_path}")
            return False
        if not self.policy.is_eligible(change):
            logger.debug(f"File ignored: {change.absolute_path}")
            return False

        with self._lock:
            if not entry.supported and self._is_duplicate(change):
                logger.debug(
                    "Change already on standby: %s %s",
                    change.kind.value,
                    change.relative_path,
                )
                return True
            self._changes.append(entry)
        return True

    def _is_duplicate(self, change: ChangeEvent) -> bool:
        for existing in reversed(self._changes):
            if existing.change.absolute_path == change.absolute_path:
                return not existing.supported and existing.change.kind == change.kind
        return False

    def flush(self, submit: Callable[[ChangeEvent], None]) -> int:
        """Hand all buffered changes to ``submit`` and empty the buffer.

        Supported changes were already handled elsewhere and are skipped.

        Args:
            submit: Called once per unsupported change, in arrival order

        Returns:
            Number of changes submitted
        """
        with self._lock:
            entries, self._changes = self._changes, []

        submitted = 0
        for entry in entries:
            if entry.supported:
                logger.debug(f"Skipping supported change {entry.change.relative_path}")
                continue
            submit(entry.change)
            submitted += 1
        return submitted
