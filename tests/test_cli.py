"""Unit tests for the StageSync CLI commands."""

import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from stagesync.cli import main
from stagesync.constants import EXIT_CODES
from stagesync.dev import FileWatcher
from stagesync.exceptions import BuildProvisionError, StageSyncConfigError


@pytest.fixture
def runner():
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def project_dir(tmp_path):
    (tmp_path / "stagesync.json").write_text(
        json.dumps({"name": "proj", "srcDir": "src"})
    )
    (tmp_path / "src").mkdir()
    return tmp_path


@pytest.fixture
def mock_client_class():
    with patch("stagesync.cli.BuildClient") as mock:
        yield mock


@pytest.fixture
def mock_manager_class():
    with patch("stagesync.cli.LocalDevManager") as mock:
        manager = mock.return_value
        manager.wait.return_value = EXIT_CODES.SUCCESS
        yield mock


class TestMainGroup:
    """Tests for the main CLI group."""

    def test_main_help(self, runner):
        """Test main help shows all commands."""
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        assert "StageSync" in result.output
        assert "--api-key" in result.output
        assert "dev" in result.output

    def test_dev_help(self, runner):
        result = runner.invoke(main, ["dev", "--help"])
        assert result.exit_code == 0
        assert "--account" in result.output
        assert "--prevent-uploads" in result.output


class TestDevCommand:
    """Tests for the dev command."""

    def test_requires_account(self, runner, project_dir, monkeypatch):
        monkeypatch.delenv("STAGESYNC_ACCOUNT", raising=False)
        result = runner.invoke(main, ["dev", "-p", str(project_dir)])
        assert result.exit_code != 0
        assert "--account" in result.output

    def test_missing_project_config(self, runner, tmp_path, mock_client_class):
        result = runner.invoke(main, ["dev", "-a", "123", "-p", str(tmp_path)])

        assert result.exit_code == EXIT_CODES.ERROR
        assert "Project config not found" in result.output
        mock_client_class.assert_not_called()

    def test_no_project_config_found(self, runner, tmp_path, mock_client_class):
        with runner.isolated_filesystem(temp_dir=tmp_path):
            with patch("stagesync.cli.find_project_config", return_value=None):
                result = runner.invoke(main, ["dev", "-a", "123"])

        assert result.exit_code == EXIT_CODES.ERROR
        assert "No stagesync.json found" in result.output

    def test_runs_session(
        self, runner, project_dir, mock_client_class, mock_manager_class
    ):
        """Test the dev command wires config into the manager and waits."""
        result = runner.invoke(
            main,
            ["--api-key", "key", "dev", "-a", "123", "-p", str(project_dir)],
        )

        assert result.exit_code == EXIT_CODES.SUCCESS
        mock_client_class.assert_called_once_with(api_key="key")

        dev_config = mock_manager_class.call_args.args[0]
        assert dev_config.target_account_id == 123
        assert dev_config.project_config.name == "proj"
        assert dev_config.project_dir == project_dir
        assert not dev_config.prevent_uploads

        manager = mock_manager_class.return_value
        manager.start.assert_called_once()
        mock_client_class.return_value.close.assert_called_once()
        assert "Ctrl+C" in result.output

    def test_passes_flags(
        self, runner, project_dir, mock_client_class, mock_manager_class
    ):
        result = runner.invoke(
            main,
            [
                "dev",
                "-a",
                "123",
                "-p",
                str(project_dir),
                "--prevent-uploads",
                "--mock-servers",
            ],
        )

        assert result.exit_code == EXIT_CODES.SUCCESS
        dev_config = mock_manager_class.call_args.args[0]
        assert dev_config.prevent_uploads
        assert dev_config.mock_servers

    def test_exit_code_from_session(
        self, runner, project_dir, mock_client_class, mock_manager_class
    ):
        mock_manager_class.return_value.wait.side_effect = [None, EXIT_CODES.ERROR]

        result = runner.invoke(main, ["dev", "-a", "123", "-p", str(project_dir)])

        assert result.exit_code == EXIT_CODES.ERROR

    def test_keyboard_interrupt_stops_session(
        self, runner, project_dir, mock_client_class, mock_manager_class
    ):
        """Test Ctrl+C stops the session and uses its exit code."""
        manager = mock_manager_class.return_value
        manager.wait.side_effect = KeyboardInterrupt
        manager.stop.return_value = EXIT_CODES.SUCCESS

        result = runner.invoke(main, ["dev", "-a", "123", "-p", str(project_dir)])

        assert result.exit_code == EXIT_CODES.SUCCESS
        manager.stop.assert_called_once()
        mock_client_class.return_value.close.assert_called_once()

    def test_interrupt_during_start_stops_session(
        self, runner, project_dir, mock_client_class, mock_manager_class
    ):
        manager = mock_manager_class.return_value
        manager.start.side_effect = KeyboardInterrupt
        manager.stop.return_value = EXIT_CODES.SUCCESS

        result = runner.invoke(main, ["dev", "-a", "123", "-p", str(project_dir)])

        assert result.exit_code == EXIT_CODES.SUCCESS
        manager.stop.assert_called_once()
        manager.wait.assert_not_called()
        mock_client_class.return_value.close.assert_called_once()

    def test_interrupt_after_provision_cancels_build(
        self, runner, project_dir, mock_client_class
    ):
        """Test Ctrl+C while the watcher starts still cancels the staged build."""
        client = mock_client_class.return_value
        client.provision_build.return_value = 100

        with patch.object(FileWatcher, "start", side_effect=KeyboardInterrupt):
            result = runner.invoke(main, ["dev", "-a", "123", "-p", str(project_dir)])

        assert result.exit_code == EXIT_CODES.SUCCESS
        client.provision_build.assert_called_once_with(123, "proj")
        client.cancel_staged_build.assert_called_once_with(123, "proj")
        client.close.assert_called_once()

    def test_provision_failure(
        self, runner, project_dir, mock_client_class, mock_manager_class
    ):
        manager = mock_manager_class.return_value
        manager.start.side_effect = BuildProvisionError("project is locked")

        result = runner.invoke(main, ["dev", "-a", "123", "-p", str(project_dir)])

        assert result.exit_code == EXIT_CODES.ERROR
        assert "project is locked" in result.output
        manager.wait.assert_not_called()
        mock_client_class.return_value.close.assert_called_once()

    def test_missing_api_key(self, runner, project_dir, mock_client_class):
        mock_client_class.side_effect = StageSyncConfigError("API key not configured")

        result = runner.invoke(main, ["dev", "-a", "123", "-p", str(project_dir)])

        assert result.exit_code == EXIT_CODES.ERROR
        assert "API key not configured" in result.output
