"""Local dev session: keeps a remote staged build in sync with the source tree.

The manager owns the staged build lifecycle::

    provision -> accept changes -> (quiet period) -> queue build
        -> poll until deployed -> provision the next build -> ...

All state changes happen on a single actor thread that consumes messages
from an inbox. The watcher, the debounce timer and the build executor never
touch manager state directly; they post messages:

- ``ChangeReceived``: the watcher saw a change
- ``TimerFired``: the debounce window elapsed
- ``QueueDrained``: in-flight uploads finished after a pause
- ``BuildQueueFailed``: queueing the staged build failed
- ``PollCompleted``: the queued build (and its deploy) reached a final status
- ``StopRequested``: ``stop()`` was called from another thread

Uploads run concurrently on the upload queue. While a build is being
deployed, the upload queue is paused and new changes wait in the standby
buffer until the next staged build exists.
"""

import logging
import queue
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Callable, Optional

from ..api import BuildClient
from ..constants import (
    BUILD_DEBOUNCE_TIME,
    DEFAULT_POLL_INTERVAL,
    ERROR_TYPES,
    EXIT_CODES,
    UPLOAD_CONCURRENCY,
)
from ..exceptions import (
    BuildProvisionError,
    DevConfigError,
    StageSyncAPIError,
    StageSyncError,
)
from ..models import (
    BuildSession,
    ChangeEvent,
    DeployResult,
    DevConfig,
    StandbyChange,
)
from ..status import (
    CLEANUP_KEY,
    PREVENT_UPLOADS_BANNER_KEY,
    RUNNING_KEY,
    STATUS_KEY,
    UPLOADING_KEY,
    NullStatusSink,
    Severity,
    StatusSink,
    StatusUpdate,
    message,
)
from .debounce import DebounceTimer
from .ignore import IgnorePolicy
from .operations import SyncOperations
from .servers import DevServers
from .standby import StandbyBuffer
from .upload_queue import UploadQueue
from .watcher import FileWatcher

logger = logging.getLogger(__name__)


class DevState(str, Enum):
    IDLE = "idle"
    AWAITING_FIRST_BUILD = "awaiting_first_build"
    CLEAN = "clean"
    DIRTY = "dirty"
    DEPLOYING = "deploying"
    STOPPED = "stopped"


@dataclass(frozen=True)
class ChangeReceived:
    change: ChangeEvent


@dataclass(frozen=True)
class TimerFired:
    generation: int


@dataclass(frozen=True)
class QueueDrained:
    pass


@dataclass(frozen=True)
class BuildQueueFailed:
    error: Exception


@dataclass(frozen=True)
class PollCompleted:
    result: Optional[DeployResult]
    error: Optional[Exception] = None


@dataclass(frozen=True)
class StopRequested:
    pass


WatcherFactory = Callable[..., FileWatcher]


class LocalDevManager:
    """Runs a local dev session against a project's staged build."""

    def __init__(
        self,
        config: DevConfig,
        client: BuildClient,
        status_sink: Optional[StatusSink] = None,
        policy: Optional[IgnorePolicy] = None,
        servers: Optional[DevServers] = None,
        watcher_factory: WatcherFactory = FileWatcher,
        debounce_time: float = BUILD_DEBOUNCE_TIME,
        concurrency: int = UPLOAD_CONCURRENCY,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ):
        """Initialize the dev session.

        Args:
            config: Dev session options
            client: Build service client
            status_sink: Receiver of status updates (discarded if not given)
            policy: Eligibility rules (defaults to the project's ignore file)
            servers: Local dev server hooks
            watcher_factory: Called as ``factory(root, on_change, ignore)``
            debounce_time: Quiet period in seconds before queueing a build
            concurrency: Maximum concurrent uploads
            poll_interval: Seconds between build status checks

        Raises:
            DevConfigError: If the account, project config or project
                directory is missing
        """
        if (
            not config.target_account_id
            or not config.project_config
            or not config.project_dir
        ):
            raise DevConfigError(
                "A target account, a project config and a project directory "
                "are required to start a dev session"
            )

        self.config = config
        self.client = client
        self.account_id = config.target_account_id
        self.project_config = config.project_config
        self.project_source_dir = config.project_source_dir
        self.prevent_uploads = config.prevent_uploads
        self.status_sink = status_sink or NullStatusSink()
        self.policy = policy or IgnorePolicy.for_project(self.project_source_dir)
        self.servers = servers or DevServers(mock_servers=config.mock_servers)
        self.poll_interval = poll_interval

        self.state = DevState.IDLE
        self.session: Optional[BuildSession] = None
        self.exit_code: Optional[int] = None

        self.upload_queue = UploadQueue(concurrency)
        self.standby = StandbyBuffer(self.policy)
        self.operations = SyncOperations(
            client, self.account_id, self.project_config.name
        )
        self.watcher = watcher_factory(
            self.project_source_dir, self.handle_change, self.policy.should_ignore
        )

        self._debounce = DebounceTimer(debounce_time, self._on_debounce)
        self._inbox: queue.Queue = queue.Queue()
        self._build_executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="stagesync-build"
        )
        self._actor: Optional[threading.Thread] = None
        self._shutdown_lock = threading.Lock()
        self._shutting_down = False
        self._stopped = threading.Event()

    # =========================
    # Public interface
    # =========================

    def start(self) -> None:
        """Provision the first staged build and start watching.

        Raises:
            RuntimeError: If the session was already started
            DevConfigError: If the source directory does not exist
            BuildProvisionError: If no staged build could be provisioned
        """
        if self.state != DevState.IDLE:
            raise RuntimeError(f"Dev session cannot start from state {self.state.value}")
        if not self.project_source_dir.is_dir():
            raise DevConfigError(
                f"Project source directory does not exist: {self.project_source_dir}"
            )

        self.state = DevState.AWAITING_FIRST_BUILD
        self._start_upload_queue()
        self._update_status("clean")
        self.servers.start()

        if not self.prevent_uploads:
            try:
                self._create_staging_build()
            except BuildProvisionError:
                self._shutdown(EXIT_CODES.ERROR)
                raise

        self.state = DevState.CLEAN
        self._actor = threading.Thread(
            target=self._run, name="stagesync-dev", daemon=True
        )
        self._actor.start()
        self.watcher.start()
        logger.info(
            "Dev session started for %s on account %s",
            self.project_config.name,
            self.account_id,
        )

    def handle_change(self, change: ChangeEvent) -> None:
        """Queue a change for the actor. Safe to call from any thread."""
        self._post(ChangeReceived(change))

    def stop(self) -> int:
        """Stop the session and cancel the staged build in progress.

        Safe to call from any thread and in any state; later calls wait for
        the first one and return the same exit code.

        Returns:
            EXIT_CODES.SUCCESS, or EXIT_CODES.ERROR if the staged build could
            not be cancelled
        """
        actor = self._actor
        if (
            actor is not None
            and actor.is_alive()
            and actor is not threading.current_thread()
        ):
            self._post(StopRequested())
        else:
            self._shutdown()
        self._stopped.wait()
        if self.exit_code is None:
            raise RuntimeError("Dev session stopped without an exit code")
        return self.exit_code

    def wait(self, timeout: Optional[float] = None) -> Optional[int]:
        """Block until the session stops.

        Returns:
            The exit code, or None if the timeout expired first
        """
        if self._stopped.wait(timeout):
            return self.exit_code
        return None

    @property
    def is_stopped(self) -> bool:
        return self._stopped.is_set()

    # =========================
    # Actor
    # =========================

    def _post(self, msg: object) -> None:
        self._inbox.put(msg)

    def _on_debounce(self, generation: int) -> None:
        self._post(TimerFired(generation))

    def _run(self) -> None:
        while self.state != DevState.STOPPED:
            msg = self._inbox.get()
            try:
                self._process(msg)
            except Exception:
                logger.exception("Unexpected error in dev session, stopping")
                self._shutdown(EXIT_CODES.ERROR)

    def _process(self, msg: object) -> None:
        if isinstance(msg, ChangeReceived):
            self._handle_change(msg.change)
        elif isinstance(msg, TimerFired):
            self._handle_timer(msg.generation)
        elif isinstance(msg, QueueDrained):
            self._handle_queue_drained()
        elif isinstance(msg, BuildQueueFailed):
            self._handle_build_queue_failed(msg.error)
        elif isinstance(msg, PollCompleted):
            self._handle_poll_completed(msg.result, msg.error)
        elif isinstance(msg, StopRequested):
            self._shutdown()
        else:
            logger.warning(f"Unknown message: {msg!r}")

    def _handle_change(self, change: ChangeEvent) -> None:
        if self.state in (DevState.IDLE, DevState.STOPPED):
            return
        if not self.policy.is_eligible(change):
            logger.debug(f"Skipping ineligible path: {change.relative_path}")
            return

        if self.servers.notify(change):
            self._update_status("supported_change")
            if self.upload_queue.is_paused:
                self.standby.append(StandbyChange(change, supported=True))
            return

        if self.prevent_uploads:
            self._update_status("upload_prevented", Severity.WARNING)
            self._emit(
                str(change.absolute_path),
                message("upload.prevented", remote_path=change.relative_path),
                Severity.WARNING,
            )
            return

        if self.upload_queue.is_paused:
            self.standby.append(StandbyChange(change))
            return

        self.standby.flush(self._submit)
        self._submit(change)
        self._mark_dirty()

    def _handle_timer(self, generation: int) -> None:
        if not self._debounce.is_current(generation) or self.state != DevState.DIRTY:
            logger.debug("Ignoring stale build timer")
            return

        self.upload_queue.pause()
        self.state = DevState.DEPLOYING
        self._emit(UPLOADING_KEY, message("status.uploading"))
        self._update_status("uploading")
        self._submit_build_job(self._drain_upload_queue)

    def _handle_queue_drained(self) -> None:
        if self.state != DevState.DEPLOYING:
            return
        build_id = self.session.build_id if self.session else None
        self._submit_build_job(self._queue_and_poll_build, build_id)

    def _handle_build_queue_failed(self, error: Exception) -> None:
        logger.debug(error)
        if isinstance(error, StageSyncAPIError) and error.is_sub_category(
            ERROR_TYPES.MISSING_PROJECT_PROVISION
        ):
            logger.info("The staged build was cancelled from the UI, stopping")
            self._shutdown()
            return

        logger.error(
            "Failed to queue build for %s on account %s: %s",
            self.project_config.name,
            self.account_id,
            error,
        )
        self._update_status("error", Severity.ERROR)

    def _handle_poll_completed(
        self, result: Optional[DeployResult], error: Optional[Exception]
    ) -> None:
        if self.state != DevState.DEPLOYING:
            return

        if error is not None:
            logger.error(f"Failed to get build status: {error}")
        elif result is not None and result.succeeded:
            logger.info(f"Build #{result.build_id} deployed")
        elif result is not None:
            logger.warning(
                "Build #%s did not deploy (build: %s, deploy: %s)",
                result.build_id,
                result.build_status.value,
                result.deploy_status.value if result.deploy_status else "-",
            )

        # The queued build is no longer staged
        self.session = None
        try:
            self._create_staging_build()
        except BuildProvisionError as e:
            logger.error(str(e))
            self._shutdown(EXIT_CODES.ERROR)
            return

        self._start_upload_queue()
        if self.standby.flush(self._submit):
            self._mark_dirty()
        else:
            self.state = DevState.CLEAN
            self._update_status("clean")

    # =========================
    # Helpers
    # =========================

    def _mark_dirty(self) -> None:
        self._update_status("dirty")
        self._debounce.arm()
        self.state = DevState.DIRTY

    def _submit(self, change: ChangeEvent) -> None:
        self.upload_queue.enqueue(partial(self._send_change, change))

    def _send_change(self, change: ChangeEvent) -> None:
        self._emit(
            str(change.absolute_path),
            message("upload.uploading_change", remote_path=change.relative_path),
        )
        try:
            self.operations.send_change(change)
        except StageSyncError as e:
            logger.warning(f"Failed to sync {change.relative_path}: {e}")

    def _submit_build_job(self, fn: Callable[..., None], *args: object) -> None:
        try:
            self._build_executor.submit(fn, *args)
        except RuntimeError:
            logger.debug("Build executor shut down, dropping job")

    def _drain_upload_queue(self) -> None:
        if self.upload_queue.drain():
            self._post(QueueDrained())

    def _queue_and_poll_build(self, build_id: Optional[int]) -> None:
        # Every outcome must reach the actor, or the session stays in DEPLOYING
        try:
            self.client.queue_build(self.account_id, self.project_config.name)
        except StageSyncAPIError as e:
            self._post(BuildQueueFailed(e))
            return
        except Exception as e:
            logger.exception("Unexpected error while queueing the build")
            self._post(BuildQueueFailed(e))
            return

        try:
            result = self.client.poll_deploy_status(
                self.account_id,
                self.project_config,
                build_id,
                poll_interval=self.poll_interval,
            )
        except StageSyncError as e:
            self._post(PollCompleted(None, e))
            return
        except Exception as e:
            logger.exception("Unexpected error while polling build #%s", build_id)
            self._post(PollCompleted(None, e))
            return
        self._post(PollCompleted(result))

    def _create_staging_build(self) -> None:
        """Provision a staged build, clearing a stale one if the project is locked.

        Raises:
            BuildProvisionError: If provisioning still fails
        """
        name = self.project_config.name
        try:
            build_id = self.client.provision_build(self.account_id, name)
        except StageSyncAPIError as e:
            logger.debug(e)
            if not e.is_sub_category(ERROR_TYPES.PROJECT_LOCKED):
                raise BuildProvisionError(
                    f"Failed to provision a staged build for {name}: {e}"
                ) from e
            self._cancel_stale_build()
            try:
                build_id = self.client.provision_build(self.account_id, name)
            except StageSyncAPIError as retry_error:
                raise BuildProvisionError(
                    f"Failed to provision a staged build for {name} after "
                    f"cancelling the previous one: {retry_error}"
                ) from retry_error

        self.session = BuildSession(
            build_id=build_id, account_id=self.account_id, project_name=name
        )
        logger.debug(f"Provisioned staged build #{build_id}")

    def _cancel_stale_build(self) -> None:
        name = self.project_config.name
        try:
            self.client.cancel_staged_build(self.account_id, name)
        except StageSyncAPIError as e:
            if not e.is_sub_category(ERROR_TYPES.BUILD_NOT_IN_PROGRESS):
                raise BuildProvisionError(
                    f"Project {name} is locked and the previous staged build "
                    f"could not be cancelled: {e}"
                ) from e
        logger.info("Cancelled the previous staged build for %s", name)

    def _start_upload_queue(self) -> None:
        self.upload_queue.start()
        self._emit(
            RUNNING_KEY,
            message(
                "running",
                project_name=self.project_config.name,
                account_id=self.account_id,
            ),
        )
        if self.prevent_uploads:
            self._emit(
                PREVENT_UPLOADS_BANNER_KEY,
                message("prevent_uploads_banner"),
                Severity.WARNING,
            )

    def _update_status(self, key: str, severity: Severity = Severity.INFO) -> None:
        self._emit(STATUS_KEY, message(f"status.{key}"), severity)

    def _emit(self, key: str, text: str, severity: Severity = Severity.INFO) -> None:
        self.status_sink.update(StatusUpdate(key=key, text=text, severity=severity))

    def _shutdown(self, exit_code: int = EXIT_CODES.SUCCESS) -> None:
        with self._shutdown_lock:
            if self._shutting_down:
                return
            self._shutting_down = True

        self._debounce.cancel()
        self._emit(CLEANUP_KEY, message("exiting.start"))
        self.watcher.close()
        self.servers.cleanup()

        if self.session is not None:
            try:
                self.client.cancel_staged_build(
                    self.account_id, self.project_config.name
                )
            except StageSyncAPIError as e:
                if e.is_sub_category(ERROR_TYPES.BUILD_NOT_IN_PROGRESS):
                    logger.debug("Staged build already finished: %s", e)
                else:
                    logger.error(
                        "Failed to cancel staged build #%s for %s on account %s: %s",
                        self.session.build_id,
                        self.project_config.name,
                        self.account_id,
                        e,
                    )
                    exit_code = EXIT_CODES.ERROR
            self.session = None

        self.upload_queue.close()
        self._build_executor.shutdown(wait=False, cancel_futures=True)

        if exit_code == EXIT_CODES.SUCCESS:
            self._emit(CLEANUP_KEY, message("exiting.succeed"), Severity.SUCCESS)
        else:
            self._emit(CLEANUP_KEY, message("exiting.fail"), Severity.ERROR)

        self.exit_code = exit_code
        self.state = DevState.STOPPED
        self._stopped.set()
        logger.info("Dev session stopped (exit code %s)", exit_code)
