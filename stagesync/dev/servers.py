"""Hooks for local dev servers running next to a dev session.

A dev server can take over some changes itself (hot reloading a template,
say). When ``notify`` reports a change as handled, the session does not
upload it.
"""

import logging

from ..models import ChangeEvent

logger = logging.getLogger(__name__)


class DevServers:
    """Default dev server hooks: nothing runs and no change is handled.

    Subclass and override ``start``, ``notify`` and ``cleanup`` to plug in
    real servers.
    """

    def __init__(self, mock_servers: bool = False):
        self.mock_servers = mock_servers

    def start(self) -> None:
        if self.mock_servers:
            logger.debug("Mock servers requested, no local servers to start")

    def notify(self, change: ChangeEvent) -> bool:
        """Tell the servers about a change.

        Returns:
            True if a server handled the change and it must not be uploaded
        """
        return False

    def cleanup(self) -> None:
        pass
