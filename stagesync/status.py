"""Status updates emitted by a dev session.

The dev session never renders anything itself; it hands ``StatusUpdate``
values to a sink. ``RichStatusSink`` prints them to the terminal.
"""

from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

from rich.console import Console


class Severity(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class StatusUpdate:
    """A keyed, human-readable status line."""

    key: str
    """Stable identifier of the line (later updates with the same key replace it)"""

    text: str
    severity: Severity = Severity.INFO


# Keys of the status lines a dev session maintains
RUNNING_KEY = "running"
PREVENT_UPLOADS_BANNER_KEY = "prevent_uploads_banner"
STATUS_KEY = "status"
UPLOADING_KEY = "uploading"
CLEANUP_KEY = "cleanup"

MESSAGES = {
    "running": "Running {project_name} locally on account {account_id}, "
    "waiting for changes...",
    "prevent_uploads_banner": "Project uploads are disabled, "
    "changes will not be uploaded",
    "quit_helper": "Press Ctrl+C to stop the local dev server",
    "status.clean": "No pending changes",
    "status.dirty": "Changes detected, a new build will be queued shortly",
    "status.uploading": "Uploading changes and building...",
    "status.supported_change": "Change handled by the local dev server",
    "status.upload_prevented": "Upload prevented",
    "status.error": "Queueing the build failed, restart to continue",
    "upload.uploading_change": "Uploading change for {remote_path}",
    "upload.prevented": "[WARNING] Upload prevented for {remote_path}",
    "exiting.start": "Stopping local dev server...",
    "exiting.succeed": "Cleaned up local dev server",
    "exiting.fail": "Failed to clean up local dev server",
}


def message(key: str, **kwargs: object) -> str:
    """Look up and format a status message."""
    return MESSAGES[key].format(**kwargs)


class StatusSink(Protocol):
    """Receiver of status updates. Calls are fire-and-forget."""

    def update(self, status: StatusUpdate) -> None: ...


class NullStatusSink:
    """Sink that discards all updates."""

    def update(self, status: StatusUpdate) -> None:
        pass


_STYLES = {
    Severity.INFO: "",
    Severity.SUCCESS: "green",
    Severity.WARNING: "yellow",
    Severity.ERROR: "bold red",
}


class RichStatusSink:
    """Print status updates with Rich, skipping repeats of an unchanged line.

    Only the ``max_keys`` most recently updated keys are remembered; per-file
    keys would otherwise accumulate for the whole session.
    """

    def __init__(self, console: Optional[Console] = None, max_keys: int = 256):
        self.console = console or Console()
        self.max_keys = max_keys
        self._last: OrderedDict[str, StatusUpdate] = OrderedDict()

    def update(self, status: StatusUpdate) -> None:
        if self._last.get(status.key) == status:
            self._last.move_to_end(status.key)
            return
        self._last[status.key] = status
        self._last.move_to_end(status.key)
        while len(self._last) > self.max_keys:
            self._last.popitem(last=False)
        self.console.print(status.text, style=_STYLES[status.severity], markup=False)
