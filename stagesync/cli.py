"""CLI interface for StageSync."""

import logging
from pathlib import Path
from typing import Any, Optional

import click
from rich.console import Console

from .api import BuildClient
from .config import find_project_config, load_project_config
from .constants import EXIT_CODES, PROJECT_CONFIG_FILE_NAME
from .dev import LocalDevManager
from .exceptions import StageSyncConfigError, StageSyncError
from .models import DevConfig
from .status import RichStatusSink, message

logger = logging.getLogger(__name__)


@click.group()
@click.option(
    "--api-key", "-k", envvar="STAGESYNC_API_KEY", help="Build service API key"
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option()
@click.pass_context
def main(ctx: Any, api_key: Optional[str], verbose: bool) -> None:
    """StageSync - keep a remote staged build in sync with a local project."""
    ctx.ensure_object(dict)
    ctx.obj["api_key"] = api_key
    ctx.obj["verbose"] = verbose

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("stagesync").setLevel(logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)


@main.command()
@click.option(
    "--account",
    "-a",
    "account_id",
    type=int,
    envvar="STAGESYNC_ACCOUNT",
    required=True,
    help="ID of the account to develop against",
)
@click.option(
    "--project-dir",
    "-p",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help=f"Project directory containing {PROJECT_CONFIG_FILE_NAME} "
    "(default: search from the current directory upwards)",
)
@click.option(
    "--prevent-uploads",
    is_flag=True,
    help="Watch and report changes without uploading them",
)
@click.option(
    "--mock-servers",
    is_flag=True,
    help="Use mock local dev servers",
)
@click.pass_context
def dev(
    ctx: Any,
    account_id: int,
    project_dir: Optional[Path],
    prevent_uploads: bool,
    mock_servers: bool,
) -> None:
    """Upload project changes to a staged build while you edit.

    Every change under the project's source directory is uploaded to a
    staged build. After a short quiet period the build is queued and
    deployed, and a fresh staged build takes its place.

    Press Ctrl+C to stop; the staged build in progress is cancelled.
    """
    console = Console()

    try:
        if project_dir is not None:
            config_path: Optional[Path] = project_dir / PROJECT_CONFIG_FILE_NAME
        else:
            config_path = find_project_config(Path.cwd())
        if config_path is None:
            raise StageSyncConfigError(
                f"No {PROJECT_CONFIG_FILE_NAME} found in the current directory "
                "or its parents"
            )
        project_config = load_project_config(config_path)

        client = BuildClient(api_key=ctx.obj.get("api_key"))
        manager = LocalDevManager(
            DevConfig(
                target_account_id=account_id,
                project_config=project_config,
                project_dir=config_path.parent,
                prevent_uploads=prevent_uploads,
                mock_servers=mock_servers,
            ),
            client,
            status_sink=RichStatusSink(console),
        )
    except StageSyncError as e:
        console.print(f"Error: {e}", style="bold red", markup=False)
        ctx.exit(EXIT_CODES.ERROR)

    try:
        exit_code = None
        try:
            try:
                manager.start()
            except StageSyncError as e:
                console.print(f"Error: {e}", style="bold red", markup=False)
                ctx.exit(EXIT_CODES.ERROR)

            console.print(message("quit_helper"), style="dim", markup=False)
            while exit_code is None:
                exit_code = manager.wait(timeout=0.5)
        except KeyboardInterrupt:
            # Also covers an interrupt during start(), once a build is provisioned
            exit_code = manager.stop()
    finally:
        client.close()

    ctx.exit(exit_code)


if __name__ == "__main__":
    main()
