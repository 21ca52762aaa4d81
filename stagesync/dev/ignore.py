"""Eligibility rules for files synced into a staged build.

A path is synced when its extension is allowed and it is not matched by an
ignore rule. Ignore rules use gitignore syntax and come from two places:

- built-in defaults (editor droppings, VCS directories, dependency folders)
- an optional ``.stageignore`` file at the root of the source directory

Examples:
    >>> policy = IgnorePolicy.for_project(Path("/project/src"))
    >>> policy.should_ignore(Path("/project/src/node_modules/x.js"))
    True
    >>> policy.is_allowed_extension(Path("/project/src/app.exe"))
    False
"""

import logging
from pathlib import Path
from typing import Iterable, Optional

import pathspec

from ..constants import IGNORE_FILE_NAME
from ..models import ChangeEvent, ChangeKind

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = frozenset(
    {
        "css",
        "js",
        "json",
        "html",
        "txt",
        "md",
        "jpg",
        "jpeg",
        "png",
        "gif",
        "map",
        "svg",
        "eot",
        "ttf",
        "woff",
        "woff2",
        "zip",
        "ico",
        "graphql",
        "hubl",
        "py",
    }
)

DEFAULT_IGNORE_PATTERNS = (
    ".DS_Store",
    ".git/",
    "node_modules/",
    "__pycache__/",
    "*.log",
    "*.swp",
    "*~",
    IGNORE_FILE_NAME,
    "package-lock.json",
    "fields.output.json",
)


def load_ignore_file(path: Path) -> list[str]:
    """Read patterns from an ignore file.

    Blank lines and comments are left to pathspec, which skips them.

    Args:
        path: Path to the ignore file

    Returns:
        List of pattern lines (empty if the file does not exist)
    """
    try:
        return path.read_text(encoding="utf-8").splitlines()
    except FileNotFoundError:
        return []
    except OSError as e:
        logger.warning("Could not read ignore file %s: %s", path, e)
        return []


class IgnorePolicy:
    """Decides whether a path under the source root is eligible for sync.

    Rules are compiled once at construction; evaluation does no I/O and can
    be called from any thread.
    """

    def __init__(
        self,
        root: Path,
        patterns: Optional[Iterable[str]] = None,
        allowed_extensions: Iterable[str] = ALLOWED_EXTENSIONS,
    ):
        """Initialize the policy.

        Args:
            root: Source directory the rules are relative to
            patterns: Extra gitignore-style patterns on top of the defaults
            allowed_extensions: Extensions (without dot) eligible for upload
        """
        self.root = Path(root)
        self.allowed_extensions = frozenset(e.lower() for e in allowed_extensions)
        self.patterns = [*DEFAULT_IGNORE_PATTERNS, *(patterns or [])]
        self._spec = pathspec.GitIgnoreSpec.from_lines(self.patterns)

    @classmethod
    def for_project(cls, root: Path) -> "IgnorePolicy":
        """Create a policy using the defaults plus root/.stageignore."""
        patterns = load_ignore_file(Path(root) / IGNORE_FILE_NAME)
        if patterns:
            logger.debug(f"Loaded {len(patterns)} ignore pattern(s) for {root}")
        return cls(root, patterns)

    def is_allowed_extension(self, path: Path) -> bool:
        return Path(path).suffix[1:].lower() in self.allowed_extensions

    def should_ignore(self, path: Path, is_dir: bool = False) -> bool:
        """Check a path against the ignore rules.

        Args:
            path: Absolute path, or path relative to the root
            is_dir: Whether the path is (or was) a directory

        Returns:
            True if the path is ignored
        """
        path = Path(path)
        if path.is_absolute():
            try:
                path = path.relative_to(self.root)
            except ValueError:
                return False

        relative_path = path.as_posix()
        if relative_path in ("", "."):
            return False
        if is_dir:
            relative_path += "/"
        return self._spec.match_file(relative_path)

    def is_eligible(self, change: ChangeEvent) -> bool:
        """Check whether a change should be synced.

        Extension filtering only gates uploads; deletions are checked against
        the ignore rules alone.
        """
        if change.kind.is_upload and not self.is_allowed_extension(
            change.absolute_path
        ):
            return False
        is_dir = change.kind == ChangeKind.DELETE_DIR
        return not self.should_ignore(change.absolute_path, is_dir=is_dir)
