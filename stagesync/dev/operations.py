"""File-sync operations against a staged build."""

import logging
import time

from ..api import BuildClient
from ..models import ChangeEvent

logger = logging.getLogger(__name__)


class SyncOperations:
    """Applies a single change to the staged build of one project."""

    def __init__(self, client: BuildClient, account_id: int, project_name: str):
        """Initialize sync operations.

        Args:
            client: Build service client
            account_id: Target account ID
            project_name: Project whose staged build receives the changes
        """
        self.client = client
        self.account_id = account_id
        self.project_name = project_name

    def send_change(self, change: ChangeEvent) -> None:
        """Upload or delete the changed path.

        Args:
            change: Change to apply

        Raises:
            StageSyncAPIError: If the request fails
        """
        start = time.time()
        if change.kind.is_upload:
            logger.debug(f"Uploading {change.relative_path}...")
            self.client.upload_file(
                self.account_id,
                self.project_name,
                change.absolute_path,
                change.relative_path,
            )
        else:
            logger.debug(f"Deleting {change.relative_path}...")
            self.client.delete_file(
                self.account_id, self.project_name, change.relative_path
            )
        logger.debug(
            "%s of %s took %.2fs",
            "Upload" if change.kind.is_upload else "Delete",
            change.relative_path,
            time.time() - start,
        )
