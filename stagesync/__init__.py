"""StageSync - keep a remote staged build in sync with a local project."""

from .api import BuildClient
from .exceptions import (
    BuildProvisionError,
    DevConfigError,
    StageSyncAPIError,
    StageSyncAuthenticationError,
    StageSyncConfigError,
    StageSyncError,
    StageSyncInvalidResponseError,
    StageSyncNetworkError,
    StageSyncNotFoundError,
    StageSyncPermissionError,
    StageSyncRateLimitError,
    StageSyncTimeoutError,
    StageSyncUploadError,
)
from .models import (
    BuildSession,
    ChangeEvent,
    ChangeKind,
    DeployResult,
    DevConfig,
    ProjectConfig,
    StandbyChange,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "BuildClient",
    "BuildSession",
    "ChangeEvent",
    "ChangeKind",
    "DeployResult",
    "DevConfig",
    "ProjectConfig",
    "StandbyChange",
    "BuildProvisionError",
    "DevConfigError",
    "StageSyncAPIError",
    "StageSyncAuthenticationError",
    "StageSyncConfigError",
    "StageSyncError",
    "StageSyncInvalidResponseError",
    "StageSyncNetworkError",
    "StageSyncNotFoundError",
    "StageSyncPermissionError",
    "StageSyncRateLimitError",
    "StageSyncTimeoutError",
    "StageSyncUploadError",
]
