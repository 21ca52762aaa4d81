"""Tests for sync eligibility rules."""

import warnings
from pathlib import Path

import pytest

from stagesync.dev.ignore import IgnorePolicy, load_ignore_file
from stagesync.models import ChangeEvent, ChangeKind


@pytest.fixture
def root(tmp_path):
    src = tmp_path / "src"
    src.mkdir()
    return src


def make_change(root: Path, kind: ChangeKind, relative: str) -> ChangeEvent:
    return ChangeEvent(kind, root / relative, relative)


class TestLoadIgnoreFile:
    """Tests for load_ignore_file."""

    def test_missing_file(self, tmp_path):
        assert load_ignore_file(tmp_path / ".stageignore") == []

    def test_reads_lines(self, tmp_path):
        ignore_file = tmp_path / ".stageignore"
        ignore_file.write_text("# drafts\ndrafts/\n\n*.bak\n")

        assert load_ignore_file(ignore_file) == ["# drafts", "drafts/", "", "*.bak"]


class TestIgnorePolicy:
    """Tests for IgnorePolicy."""

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("index.html", True),
            ("styles/main.CSS", True),
            ("fonts/icons.woff2", True),
            ("app.exe", False),
            ("Makefile", False),
        ],
    )
    def test_allowed_extensions(self, root, name, expected):
        """Test the extension allow-list is case-insensitive."""
        policy = IgnorePolicy(root)
        assert policy.is_allowed_extension(root / name) is expected

    @pytest.mark.parametrize(
        "relative",
        [
            "node_modules/lib/index.js",
            ".git/config",
            "logs/debug.log",
            "module/.DS_Store",
            ".stageignore",
        ],
    )
    def test_default_patterns(self, root, relative):
        """Test built-in ignore rules."""
        policy = IgnorePolicy(root)
        assert policy.should_ignore(root / relative)

    def test_regular_file_not_ignored(self, root):
        policy = IgnorePolicy(root)
        assert not policy.should_ignore(root / "templates" / "page.html")

    def test_relative_paths(self, root):
        """Test that relative paths are matched against the root."""
        policy = IgnorePolicy(root)
        assert policy.should_ignore(Path("node_modules/x.js"))
        assert not policy.should_ignore(Path("js/x.js"))

    def test_path_outside_root(self, root, tmp_path):
        """Test that paths outside the root are never ignored."""
        policy = IgnorePolicy(root)
        assert not policy.should_ignore(tmp_path / "elsewhere" / "x.log")

    def test_directory_pattern(self, root):
        """Test that a directory itself matches a trailing-slash pattern."""
        policy = IgnorePolicy(root)
        assert policy.should_ignore(root / "node_modules", is_dir=True)

    def test_extra_patterns(self, root):
        policy = IgnorePolicy(root, patterns=["drafts/", "*.bak.js"])
        assert policy.should_ignore(root / "drafts" / "page.html")
        assert policy.should_ignore(root / "js" / "app.bak.js")
        assert not policy.should_ignore(root / "js" / "app.js")

    def test_compiles_without_deprecation_warning(self, root):
        with warnings.catch_warnings():
            warnings.simplefilter("error", DeprecationWarning)
            policy = IgnorePolicy(root, patterns=["drafts/"])

        assert policy.should_ignore(root / "drafts" / "a.html")

    def test_negated_pattern(self, root):
        policy = IgnorePolicy(root, patterns=["*.md", "!README.md"])
        assert policy.should_ignore(root / "notes.md")
        assert not policy.should_ignore(root / "README.md")

    def test_for_project_reads_ignore_file(self, root):
        """Test that the project's .stageignore is applied on top of the defaults."""
        (root / ".stageignore").write_text("drafts/\n")

        policy = IgnorePolicy.for_project(root)

        assert policy.should_ignore(root / "drafts" / "page.html")
        assert policy.should_ignore(root / "node_modules" / "x.js")
        assert not policy.should_ignore(root / "page.html")


class TestIsEligible:
    """Tests for IgnorePolicy.is_eligible."""

    def test_upload_with_allowed_extension(self, root):
        policy = IgnorePolicy(root)
        assert policy.is_eligible(make_change(root, ChangeKind.ADD, "a.html"))
        assert policy.is_eligible(make_change(root, ChangeKind.MODIFY, "b.css"))

    def test_upload_with_disallowed_extension(self, root):
        policy = IgnorePolicy(root)
        assert not policy.is_eligible(make_change(root, ChangeKind.ADD, "app.exe"))

    def test_delete_skips_extension_check(self, root):
        """Test that deletes of any extension are eligible."""
        policy = IgnorePolicy(root)
        assert policy.is_eligible(make_change(root, ChangeKind.DELETE, "app.exe"))
        assert policy.is_eligible(make_change(root, ChangeKind.DELETE_DIR, "images"))

    def test_ignored_delete(self, root):
        policy = IgnorePolicy(root)
        assert not policy.is_eligible(
            make_change(root, ChangeKind.DELETE, "node_modules/x.js")
        )
        assert not policy.is_eligible(
            make_change(root, ChangeKind.DELETE_DIR, "node_modules")
        )

    def test_ignored_upload(self, root):
        policy = IgnorePolicy(root)
        assert not policy.is_eligible(
            make_change(root, ChangeKind.MODIFY, "node_modules/x.js")
        )
