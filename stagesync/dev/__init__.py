"""Local dev session for StageSync - watch, upload, build and deploy."""

from .debounce import DebounceTimer
from .ignore import ALLOWED_EXTENSIONS, IgnorePolicy, load_ignore_file
from .manager import DevState, LocalDevManager
from .operations import SyncOperations
from .servers import DevServers
from .standby import StandbyBuffer
from .upload_queue import UploadQueue
from .watcher import FileWatcher

__all__ = [
    "LocalDevManager",
    "DevState",
    "DevServers",
    "DebounceTimer",
    "FileWatcher",
    "IgnorePolicy",
    "ALLOWED_EXTENSIONS",
    "load_ignore_file",
    "StandbyBuffer",
    "SyncOperations",
    "UploadQueue",
]
