"""Shared constants for StageSync."""

# =============================================================================
# Dev session timing and concurrency
# =============================================================================

# Quiet period after the last uploaded change before the build is queued
BUILD_DEBOUNCE_TIME: float = 2.0  # seconds

# Maximum number of concurrent upload/delete requests
UPLOAD_CONCURRENCY: int = 10

# Interval between build/deploy status checks
DEFAULT_POLL_INTERVAL: float = 2.0  # seconds

# Retry configuration for transient API errors
DEFAULT_MAX_RETRIES: int = 3
DEFAULT_RETRY_DELAY: float = 1.0  # seconds
DEFAULT_TIMEOUT: float = 30.0  # seconds

# =============================================================================
# Project files
# =============================================================================

PROJECT_CONFIG_FILE_NAME: str = "stagesync.json"
IGNORE_FILE_NAME: str = ".stageignore"


class ERROR_TYPES:
    """Build pipeline error sub-categories reported by the build service."""

    PROJECT_LOCKED = "BuildPipelineErrorType.PROJECT_LOCKED"
    MISSING_PROJECT_PROVISION = "BuildPipelineErrorType.MISSING_PROJECT_PROVISION"
    BUILD_NOT_IN_PROGRESS = "BuildPipelineErrorType.BUILD_NOT_IN_PROGRESS"


class EXIT_CODES:
    """Process exit codes."""

    SUCCESS = 0
    ERROR = 1
    WARNING = 2
