"""Exceptions raised by StageSync."""

from __future__ import annotations

from typing import Any


class StageSyncError(Exception):
    """Base exception for all StageSync errors."""


class StageSyncConfigError(StageSyncError):
    """Raised when required configuration is missing or invalid."""


class DevConfigError(StageSyncConfigError):
    """Raised when a local dev session is created without required options."""


class StageSyncAPIError(StageSyncError):
    """Raised when the build service returns an error.

    The build service reports structured errors as JSON bodies of the form
    ``{"message": ..., "category": ..., "subCategory": ...}``. The parsed
    fields are kept on the exception so callers can react to specific
    failures (a locked project, a build that is no longer in progress).
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        category: str | None = None,
        sub_category: str | None = None,
        payload: Any = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.category = category
        self.sub_category = sub_category
        self.payload = payload

    def is_sub_category(self, name: str) -> bool:
        """Check the error sub-category.

        Accepts the bare name (``PROJECT_LOCKED``) as well as the qualified
        form the service sends (``BuildPipelineErrorType.PROJECT_LOCKED``).
        """
        if not self.sub_category:
            return False
        bare = self.sub_category.rsplit(".", 1)[-1]
        return name in (self.sub_category, bare)


class StageSyncAuthenticationError(StageSyncAPIError):
    """Raised for invalid or missing credentials."""


class StageSyncPermissionError(StageSyncAPIError):
    """Raised when the account has no access to the project."""


class StageSyncNotFoundError(StageSyncAPIError):
    """Raised when a project, build or file does not exist."""


class StageSyncRateLimitError(StageSyncAPIError):
    """Raised when the service rate limits the client."""


class StageSyncNetworkError(StageSyncAPIError):
    """Raised on connection failures and timeouts."""


class StageSyncInvalidResponseError(StageSyncAPIError):
    """Raised when the service answers with something other than JSON."""


class StageSyncUploadError(StageSyncAPIError):
    """Raised when a local file cannot be uploaded."""


class StageSyncTimeoutError(StageSyncAPIError):
    """Raised when polling a build or deploy exceeds its deadline."""


class BuildProvisionError(StageSyncError):
    """Raised when a staged build cannot be provisioned.

    This is fatal for a dev session.
    """
