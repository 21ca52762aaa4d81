"""Data models shared by the StageSync client and the dev session."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from .exceptions import DevConfigError


class ChangeKind(str, Enum):
    """Kind of filesystem change observed by the watcher."""

    ADD = "add"
    MODIFY = "change"
    DELETE = "unlink"
    DELETE_DIR = "unlinkDir"

    @property
    def is_upload(self) -> bool:
        """Whether the change results in a file upload."""
        return self in (ChangeKind.ADD, ChangeKind.MODIFY)

    @property
    def is_delete(self) -> bool:
        """Whether the change results in a remote delete."""
        return self in (ChangeKind.DELETE, ChangeKind.DELETE_DIR)


@dataclass(frozen=True)
class ChangeEvent:
    """A single change under the project source directory."""

    kind: ChangeKind
    """What happened to the path"""

    absolute_path: Path
    """Absolute local path"""

    relative_path: str
    """Path relative to the source directory (forward slashes), used remotely"""

    @classmethod
    def from_path(cls, kind: ChangeKind, path: Path, root: Path) -> "ChangeEvent":
        """Create a ChangeEvent for a path under root.

        Raises:
            ValueError: If path is not inside root
        """
        return cls(
            kind=kind,
            absolute_path=path,
            relative_path=path.relative_to(root).as_posix(),
        )


@dataclass(frozen=True)
class StandbyChange:
    """A change received while uploads were paused."""

    change: ChangeEvent

    supported: bool = False
    """True if a dev server already handled the change, so it must not be uploaded"""


@dataclass(frozen=True)
class BuildSession:
    """The staged build currently accepting file changes."""

    build_id: int
    account_id: int
    project_name: str


@dataclass
class ProjectConfig:
    """Project configuration (name and source directory)."""

    name: str
    src_dir: str = "src"

    @classmethod
    def from_dict(cls, data: dict) -> "ProjectConfig":
        """Create a ProjectConfig from the JSON project file contents."""
        return cls(name=data["name"], src_dir=data.get("srcDir", "src"))

    def to_dict(self) -> dict:
        """Convert to the JSON project file representation."""
        return {"name": self.name, "srcDir": self.src_dir}


@dataclass
class DevConfig:
    """Options for a local dev session."""

    target_account_id: Optional[int]
    project_config: Optional[ProjectConfig]
    project_dir: Optional[Path]
    prevent_uploads: bool = False
    mock_servers: bool = False

    @property
    def project_source_dir(self) -> Path:
        """Directory that is watched and mirrored into the staged build."""
        if self.project_dir is None or self.project_config is None:
            raise DevConfigError(
                "A project config and a project directory are required"
            )
        return Path(self.project_dir) / self.project_config.src_dir


class BuildStatus(str, Enum):
    """Status values reported for builds and deploys."""

    PENDING = "PENDING"
    ENQUEUED = "ENQUEUED"
    BUILDING = "BUILDING"
    DEPLOYING = "DEPLOYING"
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    CANCELED = "CANCELED"

    @property
    def is_terminal(self) -> bool:
        return self in (BuildStatus.SUCCESS, BuildStatus.FAILURE, BuildStatus.CANCELED)


@dataclass
class DeployResult:
    """Outcome of polling a queued build and its deploy."""

    build_id: int
    build_status: BuildStatus
    deploy_id: Optional[int] = None
    deploy_status: Optional[BuildStatus] = None

    @property
    def succeeded(self) -> bool:
        """True when the build succeeded and its deploy (if any) succeeded."""
        if self.build_status != BuildStatus.SUCCESS:
            return False
        return self.deploy_status in (None, BuildStatus.SUCCESS)
