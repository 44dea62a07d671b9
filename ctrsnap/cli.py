"""ctrsnap command line interface.

Usage:
  ctrsnap run                  # start, snapshot, restore, wait, clean up
  ctrsnap run --no-snapshot    # start, wait, clean up
  ctrsnap cleanup              # remove every container in the namespace
  ctrsnap ps                   # list containers and task status
"""

import argparse
import asyncio
import sys
from typing import List, Optional, Sequence, Tuple

from rich import box
from rich.console import Console
from rich.table import Table
from rich.text import Text

from .config import Settings
from .main import list_containers, run_cleanup, run_orchestration
from .models.errors import OrchestratorException
from .services.orchestrator import EXIT_FATAL
from .utils.logging import setup_logging

console = Console()

_STATUS_STYLES = {"running": "green", "stopped": "yellow", "-": "dim"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ctrsnap",
        description="Checkpoint, export, restore and clean up containerd containers",
    )
    parser.add_argument("--namespace", help="containerd namespace")
    parser.add_argument("--address", help="containerd socket address")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Run a full orchestration pass")
    run.add_argument("--image", help="Image reference to start")
    run.add_argument("--container-id", help="Id of the started container")
    run.add_argument("--restored-id", help="Id of the restored container")
    run.add_argument(
        "--no-snapshot",
        action="store_true",
        help="Skip checkpoint, export, import and restore",
    )
    run.add_argument("--archive-dir", help="Directory for archive files")

    subparsers.add_parser("cleanup", help="Remove every container in the namespace")
    subparsers.add_parser("ps", help="List containers and their task status")
    return parser


def settings_from_args(args: argparse.Namespace) -> Settings:
    """Overlay command line options on environment settings."""
    overrides = {
        "containerd_namespace": args.namespace,
        "containerd_address": args.address,
        "image_ref": getattr(args, "image", None),
        "container_id": getattr(args, "container_id", None),
        "restored_container_id": getattr(args, "restored_id", None),
        "archive_dir": getattr(args, "archive_dir", None),
    }
    if getattr(args, "no_snapshot", False):
        overrides["snapshot_enabled"] = False
    return Settings(**{k: v for k, v in overrides.items() if v is not None})


def render_containers(rows: Sequence[Tuple[str, str, str]]) -> Table:
    table = Table(title="Containers", box=box.ROUNDED)
    table.add_column("Container", style="cyan")
    table.add_column("Image")
    table.add_column("Task", justify="center")

    for container_id, image, status in rows:
        table.add_row(container_id, image, Text(status, style=_STATUS_STYLES.get(status, "red")))

    if not rows:
        table.add_row("[dim]No containers[/dim]", "", "")
    return table


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    settings = settings_from_args(args)
    setup_logging(settings.logging)

    if args.command == "run":
        sys.exit(asyncio.run(run_orchestration(settings)))

    if args.command == "cleanup":
        sys.exit(asyncio.run(run_cleanup(settings)))

    try:
        rows = asyncio.run(list_containers(settings))
    except OrchestratorException as e:
        console.print(f"[red]Error:[/red] {e.message}")
        sys.exit(EXIT_FATAL)
    console.print(render_containers(rows))


if __name__ == "__main__":
    main()
