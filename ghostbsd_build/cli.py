"""Thin CLI wrapper for ghostbsd_build.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import json
import logging
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler

from ghostbsd_build import __version__
from ghostbsd_build.config import DEFAULT_DESKTOP, get_settings, print_settings_json
from ghostbsd_build.types import StageResult

app = typer.Typer(
    name="ghostbsd-build",
    help="GhostBSD Build - build live installer ISOs for GhostBSD desktops",
    no_args_is_help=True,
)
console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"ghostbsd-build version {__version__}")
        raise typer.Exit()


def print_json(text: str) -> None:
    """Print JSON output without rich wrapping or markup."""
    console.print(text, soft_wrap=True, markup=False, highlight=False)


def setup_logging(level: str) -> None:
    """Send log records to stderr through rich."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """GhostBSD Build - build live installer ISOs for GhostBSD desktops."""


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        print_json(print_settings_json(settings))
        return

    build_log_display = (
        str(settings.build_log) if settings.build_log else "(workspace default)"
    )
    timeout_display = (
        str(settings.command_timeout) if settings.command_timeout else "(none)"
    )
    console.print("[bold]Effective Configuration:[/bold]")
    console.print()
    console.print("[bold]Paths:[/bold]")
    console.print(f"  Source directory:    {settings.source_dir}")
    console.print(f"  Work directory:      {settings.workdir}")
    console.print(f"  Resolver config:     {settings.resolv_conf}")
    console.print(f"  Build log:           {build_log_display}")
    console.print()
    console.print("[bold]Storage pool:[/bold]")
    console.print(f"  Pool name:           {settings.pool_name}")
    console.print(f"  Pool size:           {settings.pool_size}")
    console.print()
    console.print("[bold]Operational:[/bold]")
    console.print(f"  Log level:           {settings.log_level}")
    console.print()
    console.print("[bold]Timeouts (seconds):[/bold]")
    console.print(f"  Command timeout:     {timeout_display}")
    console.print(f"  Download timeout:    {settings.download_timeout}")


@app.command()
def desktops(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List desktop variants available in the source tree."""
    from ghostbsd_build.manifests import list_desktops

    settings = get_settings()
    names = list_desktops(settings.source_dir)

    if json_output:
        print_json(json.dumps(names))
        return
    if not names:
        console.print(f"[yellow]No desktops found in {settings.source_dir}[/yellow]")
        return
    console.print(f"[bold]Found {len(names)} desktop(s):[/bold]")
    for name in names:
        marker = " (default)" if name == DEFAULT_DESKTOP else ""
        console.print(f"  [green]{name}[/green]{marker}")


def _print_stage(result: StageResult) -> None:
    if result.success:
        console.print(f"[green]✓ {result.stage.value}[/green]")
    else:
        console.print(f"[red]✗ {result.stage.value}[/red]")


@app.command()
def build(
    desktop: Annotated[
        str,
        typer.Option("--desktop", "-d", help="Desktop variant to build"),
    ] = DEFAULT_DESKTOP,
    build_type: Annotated[
        str,
        typer.Option("--build-type", "-b", help="Build type: release or unstable"),
    ] = "release",
    test: Annotated[
        bool,
        typer.Option("--test", "-t", help="Test build with FreeBSD base packages only"),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output the result as JSON"),
    ] = False,
) -> None:
    """Build a live ISO for a desktop variant.

    Must run as root on a supported FreeBSD or GhostBSD release. The
    workspace of a failed build is left in place and cleared by the next
    build.
    """
    from ghostbsd_build.config import create_build_config
    from ghostbsd_build.errors import BuildError
    from ghostbsd_build.host import check_host
    from ghostbsd_build.pipeline import build_iso
    from ghostbsd_build.runner import SubprocessRunner
    from ghostbsd_build.system.drivers import DriverFetcher

    settings = get_settings()
    setup_logging(settings.log_level)

    try:
        check_host()
        build_config = create_build_config(
            desktop, build_type, test=test, settings=settings
        )
        runner = SubprocessRunner(
            log_path=settings.build_log or build_config.paths.build_log,
            timeout=settings.command_timeout,
        )
        drivers = DriverFetcher(
            build_config, runner, timeout=settings.download_timeout
        )
        result = build_iso(
            build_config,
            runner,
            drivers=drivers,
            on_stage=None if json_output else _print_stage,
        )
    except BuildError as e:
        if json_output:
            print_json(json.dumps({"success": False, "code": e.code, "error": e.message}))
        else:
            console.print(f"[red]Error: {e.message}[/red]")
        raise typer.Exit(code=1) from None

    failure = result.failure
    if json_output:
        output = {
            "success": result.success,
            "state": result.state.value,
            "version": result.version,
            "iso_path": str(result.iso_path) if result.iso_path else None,
            "sha256": result.publish.sha256 if result.publish else None,
            "failed_stage": failure.stage.value if failure else None,
            "error": failure.message if failure else None,
        }
        print_json(json.dumps(output, indent=2))
    elif failure is not None:
        console.print()
        console.print(f"[red]Build failed at stage {failure.stage.value}:[/red]")
        console.print(failure.message, markup=False)
        console.print(f"Workspace kept for inspection: {build_config.paths.workspace}")
    elif result.publish is not None:
        console.print()
        console.print("[bold]Published:[/bold]")
        console.print(f"  ISO:      {result.publish.iso_path}")
        console.print(f"  SHA256:   {result.publish.sha256}")
        console.print(f"  Checksum: {result.publish.checksum_path}")
        console.print(f"  Torrent:  {result.publish.torrent_path}")

    if not result.success:
        raise typer.Exit(code=1)


__all__ = ["app"]
