# src/isoterm/cli.py

import argparse
import asyncio
import os
import sys
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.markup import escape
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    Task,
    TextColumn,
)
from rich.text import Text

from isoterm import log_utils
from isoterm.config_utils import Settings, load_settings
from isoterm.constants import ACTIVATE_SCRIPT_NAME, DEFAULT_ENV_DIR
from isoterm.exceptions import IsotermError
from isoterm.provision.context import ProvisionOutcome
from isoterm.provision.orchestrator import setup_environment
from isoterm.tools import ToolSpec


class TransferColumn(DownloadColumn):
    """DownloadColumn left blank on rows that never streamed any bytes."""

    def render(self, task: Task) -> Text:
        if not task.fields.get("transfer"):
            return Text("")
        return super().render(task)


class RichTaskReporter:
    """ProgressReporter backed by one row of a rich Progress display."""

    def __init__(self, progress: Progress, tool: ToolSpec) -> None:
        self.progress = progress
        self.tool = tool
        self.task_id = progress.add_task(
            f"Queued {escape(tool.name)}", total=None, transfer=False
        )

    def _task(self) -> Task:
        return next(t for t in self.progress.tasks if t.id == self.task_id)

    def set_message(self, message: str) -> None:
        self.progress.update(self.task_id, description=escape(message))

    def set_length(self, length: Optional[int]) -> None:
        self.progress.update(self.task_id, total=length, completed=0, transfer=True)

    def set_position(self, position: int) -> None:
        self.progress.update(self.task_id, completed=position)

    def advance(self, amount: int) -> None:
        self.progress.advance(self.task_id, amount)

    def finish(self, message: Optional[str] = None) -> None:
        text = escape(message or self.tool.name)
        task = self._task()
        if task.fields.get("transfer"):
            # keep the byte count; an unknown length ends at what was received
            total = task.total if task.total is not None else task.completed
        else:
            total = 1
        self.progress.update(
            self.task_id, description=f"[green]✓[/green] {text}", total=total, completed=total
        )
        self.progress.stop_task(self.task_id)

    def abandon(self, message: Optional[str] = None) -> None:
        text = escape(message or self.tool.name)
        self.progress.update(self.task_id, description=f"[red]✗[/red] {text}")
        self.progress.stop_task(self.task_id)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="isoterm",
        description="Create an isolated, non-destructive shell environment",
    )
    parser.add_argument(
        "dest_dir",
        nargs="?",
        default=DEFAULT_ENV_DIR,
        metavar="DEST_DIR",
        help=f"Directory where the environment will be created (default: {DEFAULT_ENV_DIR})",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase log output (-v for info, -vv for debug)",
    )
    parser.add_argument(
        "--log-dir",
        metavar="DIR",
        help="Also write a rotating log file into DIR",
    )
    parser.add_argument(
        "--config",
        metavar="FILE",
        help="Settings file to use instead of the default location",
    )
    return parser


def _configure_logging(verbose: int, log_dir: Optional[str]) -> None:
    if verbose >= 2:
        level = "DEBUG"
    elif verbose == 1:
        level = "INFO"
    else:
        level = None
    if level:
        log_utils.set_log_level(level)
    if log_dir:
        log_utils.add_file_logging(Path(log_dir).expanduser(), level or "INFO")


async def run_setup(
    env_dir: Path, settings: Settings, console: Console
) -> List[ProvisionOutcome]:
    """Run the orchestrator behind a progress display; hidden when stderr is not a terminal."""
    with Progress(
        SpinnerColumn(),
        TextColumn("{task.description}"),
        BarColumn(),
        TransferColumn(),
        console=console,
        disable=not console.is_terminal,
        transient=False,
    ) as progress:
        return await setup_environment(
            env_dir,
            settings=settings,
            reporter_factory=lambda tool: RichTaskReporter(progress, tool),
        )


def _report_cleanup(console: Console, env_dir: Path) -> None:
    if os.path.lexists(env_dir):
        console.print(
            f"[yellow]The environment at {escape(str(env_dir))} could not be removed; delete it manually.[/yellow]"
        )
    else:
        console.print("[green]Cleaned up the partially created environment.[/green]")


def main(argv: Optional[List[str]] = None) -> None:
    """
    Entry point for the isoterm command-line interface.

    Provisions the environment in DEST_DIR and prints how to activate it. On
    failure prints the cause and whether the partial environment was removed,
    then exits with status 1.
    """
    args = build_parser().parse_args(argv)
    _configure_logging(args.verbose, args.log_dir)
    console = Console(stderr=True)
    env_dir = Path(os.path.expanduser(args.dest_dir)).absolute()

    try:
        settings = load_settings(Path(args.config).expanduser() if args.config else None)
    except IsotermError as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        sys.exit(1)

    try:
        console.print(f"[green]✓[/green] Setting up environment in [cyan]{escape(str(env_dir))}[/cyan]")
        asyncio.run(run_setup(env_dir, settings, console))
    except (IsotermError, OSError) as e:
        console.print(f"\n[bold red]Error:[/bold red] {escape(str(e))}")
        _report_cleanup(console, env_dir)
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted.[/yellow]")
        _report_cleanup(console, env_dir)
        sys.exit(1)

    console.print("\n[green]Environment setup complete![/green]")
    console.print("To activate your new shell environment, run:")
    console.print(f"\n  {escape(str(env_dir / ACTIVATE_SCRIPT_NAME))}\n")


if __name__ == "__main__":
    main()
