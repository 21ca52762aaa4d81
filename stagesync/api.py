"""API client for the staged build service."""

from __future__ import annotations

import random
import threading
import time
from pathlib import Path
from typing import Any
from urllib.parse import quote

import httpx

from .config import config
from .constants import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_RETRY_DELAY,
    DEFAULT_TIMEOUT,
)
from .exceptions import (
    StageSyncAPIError,
    StageSyncAuthenticationError,
    StageSyncConfigError,
    StageSyncInvalidResponseError,
    StageSyncNetworkError,
    StageSyncNotFoundError,
    StageSyncPermissionError,
    StageSyncRateLimitError,
    StageSyncTimeoutError,
    StageSyncUploadError,
)
from .models import BuildStatus, DeployResult, ProjectConfig

PROJECTS_API_PATH = "dfs/v1/projects"


class BuildClient:
    """Client for the staged build and deploy API."""

    def __init__(
        self,
        api_key: str | None = None,
        api_url: str | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """Initialize the build service client.

        Args:
            api_key: Optional API key (uses config if not provided)
            api_url: Optional API URL (uses config if not provided)
            max_retries: Maximum number of retry attempts (default: 3)
            retry_delay: Initial delay between retries in seconds (default: 1.0)
            timeout: Request timeout in seconds (default: 30.0)
        """
        self.api_key = api_key or config.api_key
        self.api_url = (api_url or config.api_url).rstrip("/")
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout

        if not self.api_key:
            raise StageSyncConfigError(
                "API key not configured. "
                "Please set STAGESYNC_API_KEY environment variable."
            )

        self._client: httpx.Client | None = None
        self._client_lock = threading.Lock()

    def __enter__(self) -> "BuildClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _get_client(self) -> httpx.Client:
        """Get or create the httpx client.

        Uploads run on several worker threads, so creation is guarded.
        """
        with self._client_lock:
            if self._client is None or self._client.is_closed:
                self._client = httpx.Client(
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    timeout=httpx.Timeout(self.timeout),
                    follow_redirects=True,
                )
            return self._client

    def close(self) -> None:
        """Close the client and release connections."""
        with self._client_lock:
            if self._client is not None and not self._client.is_closed:
                self._client.close()
            self._client = None

    def _should_retry(self, exception: Exception, attempt: int) -> bool:
        """Determine if a request should be retried.

        Args:
            exception: The exception that occurred
            attempt: Current attempt number (0-based)

        Returns:
            True if the request should be retried, False otherwise
        """
        if attempt >= self.max_retries:
            return False
        return isinstance(exception, (StageSyncNetworkError, StageSyncRateLimitError))

    def _calculate_retry_delay(self, attempt: int) -> float:
        """Calculate delay before next retry using exponential backoff.

        Args:
            attempt: Current attempt number (0-based)

        Returns:
            Delay in seconds
        """
        base_delay = self.retry_delay * (2**attempt)
        # Jitter of +/- 25% to avoid synchronized retries from upload workers
        jitter = base_delay * 0.25 * (2 * random.random() - 1)
        return base_delay + jitter

    def _handle_http_error(
        self, e: httpx.HTTPStatusError, attempt: int
    ) -> tuple[StageSyncAPIError, bool]:
        """Translate an HTTP error and decide whether to retry.

        Args:
            e: The HTTP error exception
            attempt: Current attempt number

        Returns:
            Tuple of (exception to raise, should_retry)
        """
        status_code = e.response.status_code
        error_msg = f"API request failed with status {status_code}"
        category = None
        sub_category = None
        error_data: Any = None

        try:
            if e.response.content:
                error_data = e.response.json()
        except ValueError:
            # Body is not JSON, keep the status-based message
            error_data = None

        if isinstance(error_data, dict):
            msg = (
                error_data.get("message")
                or error_data.get("error")
                or error_data.get("detail")
            )
            if msg:
                error_msg = f"{error_msg}: {msg}"
            category = error_data.get("category")
            sub_category = error_data.get("subCategory")

        details = {
            "status_code": status_code,
            "category": category,
            "sub_category": sub_category,
            "payload": error_data,
        }

        if status_code == 401:
            return (
                StageSyncAuthenticationError(
                    "Invalid API key or unauthorized access", **details
                ),
                False,
            )
        if status_code == 403:
            return (
                StageSyncPermissionError(
                    "Access forbidden - check your permissions", **details
                ),
                False,
            )
        if status_code == 404:
            return StageSyncNotFoundError(error_msg, **details), False
        if status_code == 429:
            error: StageSyncAPIError = StageSyncRateLimitError(
                "Rate limit exceeded - please try again later", **details
            )
            return error, attempt < self.max_retries

        error = StageSyncAPIError(error_msg, **details)
        should_retry = 500 <= status_code < 600 and attempt < self.max_retries
        return error, should_retry

    def _request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        """Make an API request with retry logic.

        Args:
            method: HTTP method
            endpoint: API endpoint path
            **kwargs: Additional arguments passed to httpx

        Returns:
            Response JSON data

        Raises:
            StageSyncAPIError: If the request fails after all retries
        """
        url = f"{self.api_url}/{endpoint.lstrip('/')}"
        last_exception: Exception | None = None
        client = self._get_client()

        for attempt in range(self.max_retries + 1):
            try:
                response = client.request(method, url, **kwargs)
                response.raise_for_status()

                content_type = response.headers.get("Content-Type", "")
                if response.content and "application/json" not in content_type:
                    if "text/html" in content_type:
                        raise StageSyncAuthenticationError(
                            "Invalid API key - server returned HTML instead of JSON"
                        )
                    raise StageSyncInvalidResponseError(
                        f"Unexpected response type: {content_type}"
                    )

                if response.content:
                    try:
                        return response.json()
                    except ValueError as e:
                        raise StageSyncInvalidResponseError(
                            "Invalid JSON response from server"
                        ) from e
                return {}

            except httpx.HTTPStatusError as e:
                error, should_retry = self._handle_http_error(e, attempt)
                last_exception = error

                if should_retry:
                    delay = self._calculate_retry_delay(attempt)
                    if isinstance(error, StageSyncRateLimitError):
                        retry_after = e.response.headers.get("Retry-After")
                        if retry_after and retry_after.isdigit():
                            delay = float(retry_after)
                    time.sleep(delay)
                    continue
                raise error from e
            except StageSyncAPIError:
                raise
            except httpx.RequestError as e:
                error = StageSyncNetworkError(f"Network error: {e}")
                last_exception = error
                if self._should_retry(error, attempt):
                    time.sleep(self._calculate_retry_delay(attempt))
                    continue
                raise error from e

        if last_exception:
            raise last_exception
        raise StageSyncAPIError("Request failed after all retry attempts")

    @staticmethod
    def _project_path(project_name: str) -> str:
        return f"{PROJECTS_API_PATH}/{quote(project_name, safe='')}"

    # =========================
    # Staged Build Operations
    # =========================

    def provision_build(self, account_id: int, project_name: str) -> int:
        """Provision a new staged build for a project.

        Args:
            account_id: Target account ID
            project_name: Project name

        Returns:
            ID of the new staged build

        Raises:
            StageSyncAPIError: With sub-category PROJECT_LOCKED if another
                staged build is already in progress
        """
        endpoint = f"{self._project_path(project_name)}/builds/staged/provision"
        result = self._request(
            "POST", endpoint, params={"portalId": account_id}, json={}
        )
        build_id = result.get("buildId") if isinstance(result, dict) else None
        if build_id is None:
            raise StageSyncInvalidResponseError(
                f"Provision response missing buildId: {result}"
            )
        return build_id

    def cancel_staged_build(self, account_id: int, project_name: str) -> Any:
        """Cancel the project's staged build.

        Raises:
            StageSyncAPIError: With sub-category BUILD_NOT_IN_PROGRESS if
                there is no staged build to cancel
        """
        endpoint = f"{self._project_path(project_name)}/builds/staged/cancel"
        return self._request("POST", endpoint, params={"portalId": account_id})

    def queue_build(self, account_id: int, project_name: str) -> Any:
        """Queue the staged build for building and deploying.

        Raises:
            StageSyncAPIError: With sub-category MISSING_PROJECT_PROVISION if
                the staged build was cancelled elsewhere
        """
        endpoint = f"{self._project_path(project_name)}/builds/staged/queue"
        return self._request("POST", endpoint, params={"portalId": account_id})

    def upload_file(
        self,
        account_id: int,
        project_name: str,
        local_path: Path,
        remote_path: str,
    ) -> Any:
        """Upload a single file into the staged build.

        Args:
            account_id: Target account ID
            project_name: Project name
            local_path: Local file to upload
            remote_path: Path of the file inside the build (forward slashes)

        Returns:
            Upload response from API
        """
        endpoint = (
            f"{self._project_path(project_name)}/builds/staged/files/"
            f"{quote(remote_path)}"
        )
        # Read up front so a retried request sends the full content again
        try:
            content = Path(local_path).read_bytes()
        except OSError as e:
            raise StageSyncUploadError(f"Cannot read {local_path}: {e}") from e

        return self._request(
            "PUT",
            endpoint,
            params={"portalId": account_id},
            files={"file": (Path(local_path).name, content)},
        )

    def delete_file(self, account_id: int, project_name: str, remote_path: str) -> Any:
        """Delete a file or directory from the staged build."""
        endpoint = (
            f"{self._project_path(project_name)}/builds/staged/files/"
            f"{quote(remote_path)}"
        )
        return self._request("DELETE", endpoint, params={"portalId": account_id})

    # =========================
    # Status Operations
    # =========================

    def get_build_status(self, account_id: int, project_name: str, build_id: int) -> Any:
        """Get the status of a build."""
        endpoint = f"{self._project_path(project_name)}/builds/{build_id}/status"
        return self._request("GET", endpoint, params={"portalId": account_id})

    def get_deploy_status(
        self, account_id: int, project_name: str, deploy_id: int
    ) -> Any:
        """Get the status of a deploy."""
        endpoint = f"{self._project_path(project_name)}/deploys/{deploy_id}/status"
        return self._request("GET", endpoint, params={"portalId": account_id})

    def _poll_until_terminal(
        self,
        fetch: Any,
        what: str,
        poll_interval: float,
        deadline: float | None,
    ) -> tuple[BuildStatus, dict]:
        while True:
            data = fetch()
            if not isinstance(data, dict):
                raise StageSyncInvalidResponseError(
                    f"Unexpected status response for {what}: {data!r}"
                )
            try:
                status = BuildStatus(data.get("status", BuildStatus.PENDING.value))
            except ValueError as e:
                raise StageSyncInvalidResponseError(
                    f"Unknown status for {what}: {data.get('status')!r}"
                ) from e
            if status.is_terminal:
                return status, data
            if deadline is not None and time.monotonic() >= deadline:
                raise StageSyncTimeoutError(
                    f"Timed out waiting for {what} (last status: {status.value})"
                )
            time.sleep(poll_interval)

    def poll_deploy_status(
        self,
        account_id: int,
        project_config: ProjectConfig,
        build_id: int,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        timeout: float | None = None,
    ) -> DeployResult:
        """Wait for a queued build, then for the deploy it triggered.

        Args:
            account_id: Target account ID
            project_config: Project configuration
            build_id: ID of the queued build
            poll_interval: Seconds between status checks
            timeout: Overall deadline in seconds (None waits indefinitely)

        Returns:
            DeployResult with the terminal build and deploy statuses

        Raises:
            StageSyncTimeoutError: If the deadline passes first
        """
        deadline = time.monotonic() + timeout if timeout is not None else None
        name = project_config.name

        build_status, build_data = self._poll_until_terminal(
            lambda: self.get_build_status(account_id, name, build_id),
            f"build #{build_id}",
            poll_interval,
            deadline,
        )
        result = DeployResult(build_id=build_id, build_status=build_status)
        if build_status != BuildStatus.SUCCESS:
            return result

        deploy_id = (build_data.get("deployStatusTaskLocator") or {}).get("id")
        if deploy_id is None:
            # Builds without automatic deploy stop here
            return result

        result.deploy_id = deploy_id
        result.deploy_status, _ = self._poll_until_terminal(
            lambda: self.get_deploy_status(account_id, name, deploy_id),
            f"deploy #{deploy_id}",
            poll_interval,
            deadline,
        )
        return result
