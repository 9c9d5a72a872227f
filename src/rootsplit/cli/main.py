"""
rootsplit CLI Main Entry Point.

Provides the command-line interface for planning and running a root split.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, NoReturn

import click
import humanize
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from rootsplit import __version__
from rootsplit.core.config import RootSplitConfig, load_config
from rootsplit.core.errors import InsufficientSpaceError, MissingToolError, RootSplitError
from rootsplit.core.job import JobProgress
from rootsplit.core.logging import StepJournal
from rootsplit.core.session import PreparedSplit, Session, SplitRequest

console = Console()


def get_session(ctx: click.Context) -> Session:
    """Get or create session from context."""
    if "session" not in ctx.obj:
        config = ctx.obj.get("config") or load_config()
        session = Session(config=config, backend=ctx.obj.get("backend"))
        ctx.obj["session"] = session
        ctx.call_on_close(session.close)
    return ctx.obj["session"]


def fail(message: str) -> NoReturn:
    console.print(f"[red]Error: {message}[/red]")
    sys.exit(1)


def report_error(error: RootSplitError) -> NoReturn:
    """Print a fatal rootsplit error with whatever extra detail it carries."""
    console.print(f"[red]Error: {error}[/red]")
    if isinstance(error, MissingToolError):
        console.print("Install the missing tools and try again:")
        for tool in error.tools:
            console.print(f"  • {tool}")
    elif isinstance(error, InsufficientSpaceError):
        console.print(
            f"/home needs {humanize.naturalsize(error.required_bytes, binary=True)}, "
            f"short by {humanize.naturalsize(error.shortfall_bytes, binary=True)}"
        )
    sys.exit(1)


def split_options(func: Any) -> Any:
    """Options shared by ``plan`` and ``run``."""
    options = [
        click.argument("device"),
        click.option(
            "--root-size",
            "-r",
            required=True,
            help="New root partition size (e.g. 16G, between 8G and 64G)",
        ),
        click.option("--swap-size", "-s", help="Swap partition size (e.g. 2G)"),
        click.option("--var-size", "-v", help="/var partition size, formatted as btrfs (e.g. 8G)"),
        click.option("--force", "-f", is_flag=True, help="Allow swap and /var on SD cards"),
        click.option(
            "--allow-live-root",
            is_flag=True,
            help="Operate on the disk holding the running root filesystem",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group()
@click.version_option(version=__version__, prog_name="rootsplit")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file",
)
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.pass_context
def cli(
    ctx: click.Context,
    config: Path | None,
    json_output: bool,
    quiet: bool,
) -> None:
    """
    rootsplit - Split a root partition into root, swap, /var and /home.

    Shrinks the root filesystem, creates the new partitions in the freed
    space, moves /var and /home onto them and updates /etc/fstab.
    """
    ctx.ensure_object(dict)

    if config:
        ctx.obj["config"] = RootSplitConfig.load(config)
    elif "config" not in ctx.obj:
        ctx.obj["config"] = load_config()

    ctx.obj["json_output"] = json_output
    ctx.obj["quiet"] = quiet


def print_geometry(prepared: PreparedSplit) -> None:
    geometry = prepared.geometry
    console.print(
        Panel(
            f"Device: {geometry.device}\n"
            f"Size: {humanize.naturalsize(geometry.size_bytes, binary=True)} "
            f"({geometry.size_bytes} bytes)\n"
            f"SD card: {'yes' if geometry.is_sd_card else 'no'}\n"
            f"Root partition: {geometry.root_partition} "
            f"(starts at sector {geometry.root_start_sector})",
            title="Disk Information",
        )
    )


def print_layout(prepared: PreparedSplit) -> None:
    table = Table(title="Partition Layout")
    table.add_column("Partition", style="cyan")
    table.add_column("Filesystem", style="yellow")
    table.add_column("Size", style="green")
    table.add_column("Start", justify="right")
    table.add_column("End", justify="right")

    for part in prepared.layout.ranges():
        table.add_row(
            part.role.mountpoint or part.role.value,
            part.role.filesystem.value,
            humanize.naturalsize(part.size_bytes, binary=True),
            str(part.start),
            str(part.end),
        )

    console.print(table)


def print_plan(ctx: click.Context, prepared: PreparedSplit) -> None:
    """Show what is about to happen, as text or JSON."""
    if ctx.obj.get("json_output"):
        click.echo(
            json.dumps(
                {
                    "geometry": prepared.geometry.to_dict(),
                    "layout": prepared.layout.to_dict(),
                    "steps": prepared.plan.steps,
                    "warnings": prepared.plan.warnings,
                },
                indent=2,
            )
        )
        return

    print_geometry(prepared)
    print_layout(prepared)

    if prepared.plan.warnings:
        console.print("\n[yellow]Warnings:[/yellow]")
        for warning in prepared.plan.warnings:
            console.print(f"  [yellow]• {warning}[/yellow]")

    if not ctx.obj.get("quiet"):
        if prepared.plan.preflight_report:
            console.print()
            for line in prepared.plan.preflight_report.render():
                console.print(line, markup=False)
        console.print("\n[bold]Execution steps:[/bold]")
        for i, step in enumerate(prepared.plan.steps, 1):
            console.print(f"  {i}. {step}")


def prepare_split(ctx: click.Context, request: SplitRequest) -> PreparedSplit:
    session = get_session(ctx)
    try:
        return session.prepare(request)
    except RootSplitError as e:
        report_error(e)


def print_step(progress: JobProgress) -> None:
    """Print a step's intent before it runs and its outcome after."""
    if progress.is_outcome:
        console.print(f"  [green]✓ {progress.message}[/green]")
    else:
        console.print(f"\n[bold]Step {progress.step + 1}/{progress.total}:[/bold] {progress.message}")


@cli.command("plan")
@split_options
@click.pass_context
def plan(
    ctx: click.Context,
    device: str,
    root_size: str,
    swap_size: str | None,
    var_size: str | None,
    force: bool,
    allow_live_root: bool,
) -> None:
    """Inspect DEVICE and show the partition layout without changing anything."""
    request = SplitRequest(
        device=device,
        root_size=root_size,
        swap_size=swap_size,
        var_size=var_size,
        force=force,
        allow_live_root=allow_live_root,
    )
    prepared = prepare_split(ctx, request)
    print_plan(ctx, prepared)


@cli.command("run")
@split_options
@click.option("--dry-run", is_flag=True, help="Show what would be done")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def run(
    ctx: click.Context,
    device: str,
    root_size: str,
    swap_size: str | None,
    var_size: str | None,
    force: bool,
    allow_live_root: bool,
    dry_run: bool,
    yes: bool,
) -> None:
    """Shrink root on DEVICE and move /var and /home to new partitions."""
    session = get_session(ctx)
    request = SplitRequest(
        device=device,
        root_size=root_size,
        swap_size=swap_size,
        var_size=var_size,
        force=force,
        allow_live_root=allow_live_root,
    )
    prepared = prepare_split(ctx, request)
    print_plan(ctx, prepared)

    if dry_run:
        console.print("\n[yellow]DRY RUN - No changes will be made[/yellow]")
        return

    confirm_str = prepared.plan.confirmation_string
    if confirm_str and not yes:
        console.print(f"\n[red]⚠️  This will modify the partitions on {prepared.geometry.device}[/red]")
        user_confirm = click.prompt(f"Type '{confirm_str}' to confirm", default="")
        verified, message = session.safety.verify_confirmation(
            prepared.geometry.device, user_confirm, prepared.job.id
        )
        if not verified:
            console.print(f"[red]{message} - operation cancelled[/red]")
            sys.exit(1)

    job = prepared.job
    job.context.add_progress_callback(print_step)
    result = session.run_job(job)

    for warning in result.warnings:
        console.print(f"[yellow]Warning: {warning}[/yellow]")

    if not result.success:
        console.print(f"\n[red]✗ {result.error_type}: {result.error}[/red]")
        if result.failed_stage:
            console.print(f"Failed step: {result.failed_stage}")
        if result.last_completed_stage:
            console.print(f"Last completed step: {result.last_completed_stage}")
        console.print(f"Step journal: {session.journal.journal_file}")
        console.print("[red]Nothing was rolled back; inspect the disk before retrying.[/red]")
        sys.exit(1)

    created = result.data
    table = Table(title="Partitions")
    table.add_column("Role", style="cyan")
    table.add_column("Device", style="white")
    table.add_row("root", created.root)
    for role, path in created.created():
        table.add_row(role.value, path)
    console.print(table)

    console.print("\n[green]✓ Root split complete. Reboot to use the new partitions.[/green]")


@cli.command("check-tools")
@click.pass_context
def check_tools(ctx: click.Context) -> None:
    """Check that the required external tools are installed."""
    session = get_session(ctx)
    backend = session.platform
    missing = set(backend.missing_tools())

    if ctx.obj.get("json_output"):
        click.echo(
            json.dumps(
                {tool: tool not in missing for tool in backend.required_tools()},
                indent=2,
            )
        )
    else:
        table = Table(title="Required Tools")
        table.add_column("Tool", style="cyan")
        table.add_column("Status")
        for tool in backend.required_tools():
            status = "[red]missing[/red]" if tool in missing else "[green]found[/green]"
            table.add_row(tool, status)
        console.print(table)

    if missing:
        sys.exit(1)


@cli.command("journal")
@click.argument("path", required=False, type=click.Path(exists=True, path_type=Path))
@click.pass_context
def show_journal(ctx: click.Context, path: Path | None) -> None:
    """Show the steps recorded by a run (latest journal by default)."""
    if path is None:
        config: RootSplitConfig = ctx.obj["config"]
        journals = sorted(config.session_directory.glob("journal_*.json"))
        if not journals:
            fail(f"No journals found in {config.session_directory}")
        path = journals[-1]

    journal = StepJournal.load(path)

    if ctx.obj.get("json_output"):
        click.echo(json.dumps(journal.entries, indent=2, default=str))
        return

    table = Table(title=f"Step Journal: {path}")
    table.add_column("Time", style="dim")
    table.add_column("Step", style="cyan")
    table.add_column("Status")
    table.add_column("Detail")

    for entry in journal.entries:
        status = entry["status"]
        style = "green" if status == "completed" else "red"
        table.add_row(
            entry["timestamp"],
            entry["step"],
            f"[{style}]{status}[/{style}]",
            str(entry.get("outcome") or entry.get("error") or ""),
        )

    console.print(table)


def main() -> None:
    """Main entry point."""
    try:
        # click turns Ctrl-C into Abort
        exit_code = cli(obj={}, standalone_mode=False)
    except click.Abort:
        console.print("\n[yellow]Operation cancelled[/yellow]")
        sys.exit(130)
    except click.ClickException as e:
        e.show()
        sys.exit(e.exit_code)
    except RootSplitError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    if isinstance(exit_code, int) and exit_code:
        sys.exit(exit_code)


if __name__ == "__main__":
    main()
