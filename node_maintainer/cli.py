"""Main CLI entry point for node maintenance."""

import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from node_maintainer.config import MaintenanceConfig
from node_maintainer.exceptions import ConfigurationError, MaintainerError
from node_maintainer.logging_config import get_logger, setup_logging
from node_maintainer.models.run import Phase, RunOutcome

app = typer.Typer(
    name="node-maint",
    help="Unattended drain, update, reboot and rejoin for a hyper-converged cluster node",
    add_completion=False,
)

console = Console()
logger = get_logger(__name__)

EXIT_CODES = {
    RunOutcome.COMPLETED: 0,
    RunOutcome.FAILED: 1,
    RunOutcome.ABORTED: 2,
}


class CliState:
    """Options shared by all commands."""

    def __init__(self, config: MaintenanceConfig, config_path: Path | None, log_file: Path | None):
        self.config = config
        self.config_path = config_path
        self.log_file = log_file

    def self_command(self) -> list[str]:
        """Command line the continuation task uses to invoke this program again."""
        command = [sys.executable, "-m", "node_maintainer"]
        if self.config_path:
            command += ["--config", str(self.config_path.resolve())]
        if self.log_file:
            command += ["--log-file", str(self.log_file.resolve())]
        return command + ["run"]


# Global callback to load configuration and set up logging
@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    log_file: str | None = typer.Option(None, "--log-file", help="Path to log file"),
    config_file: str | None = typer.Option(None, "--config", "-c", help="Path to YAML configuration file"),
):
    """Global options for all commands."""
    config_path = Path(config_file) if config_file else None
    try:
        config = MaintenanceConfig.load_or_default(config_path)
    except ConfigurationError as e:
        console.print(f"[red]Configuration Error:[/red] {e.message}")
        if e.details:
            console.print(f"\n{e.details}")
        raise typer.Exit(code=1)

    log_path = Path(log_file) if log_file else config.log_file
    setup_logging(verbose=verbose, log_file=log_path)
    logger.debug("Logging initialized")
    ctx.obj = CliState(config, config_path, Path(log_file) if log_file else None)


@app.command()
def version() -> None:
    """Show version information."""
    from node_maintainer import __version__

    typer.echo(f"node-maintainer version {__version__}")


@app.command()
def run(
    ctx: typer.Context,
    phase: Phase = typer.Option(
        Phase.PRE_REBOOT,
        "--phase",
        "-p",
        help="pre-reboot: full maintenance; post-reboot: resume after restart; schedule-only: arm the continuation",
    ),
) -> None:
    """
    Run one maintenance phase on this node.

    The pre-reboot phase validates cluster health, drains shared volumes,
    pauses the node, installs updates and then restarts or resumes. The
    post-reboot phase is started by the continuation task after a restart.

    Exit codes: 0 completed, 1 failed, 2 aborted before any change.
    """
    from node_maintainer.orchestrator import MaintenanceOrchestrator

    state: CliState = ctx.obj
    logger.info(f"Starting {phase.value} phase")

    try:
        orchestrator = MaintenanceOrchestrator.from_config(state.config, state.self_command())
        result = orchestrator.run(phase)
    except KeyboardInterrupt:
        logger.error("Maintenance interrupted by user")
        console.print("\n[yellow]Maintenance interrupted by user[/yellow]")
        raise typer.Exit(code=130)
    except Exception as e:
        logger.error(f"Unexpected error during {phase.value}: {e}", exc_info=True)
        console.print(f"[red]Unexpected error:[/red] {e}")
        console.print("\nRun with --verbose --log-file debug.log for more details")
        raise typer.Exit(code=1)

    table = Table(title=f"Maintenance {phase.value} on {result.computer}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    color = {"Completed": "green", "Aborted": "yellow", "Failed": "red"}[result.outcome.value]
    table.add_row("Outcome", f"[{color}]{result.outcome.value}[/{color}]")
    table.add_row("Final state", " → ".join(s.value for s in result.states))
    if result.partner:
        table.add_row("Partner", result.partner)
    if result.phase == Phase.PRE_REBOOT:
        table.add_row("Volumes moved", str(result.volumes_moved))
        table.add_row("Updates", str(len(result.updates)))
        table.add_row("Reboot scheduled", "Yes" if result.reboot_scheduled else "No")
    if result.error:
        table.add_row("Error", f"{result.error_type}: {result.error}")
    for warning in result.warnings:
        table.add_row("Warning", warning)
    console.print(table)

    raise typer.Exit(code=EXIT_CODES[result.outcome])


@app.command()
def check(ctx: typer.Context) -> None:
    """
    Check whether maintenance could start now, without changing anything.

    Verifies that every node is Up, storage is healthy and a partner node is
    available to take over shared volumes.
    """
    from node_maintainer.orchestrator import MaintenanceOrchestrator

    state: CliState = ctx.obj
    try:
        orchestrator = MaintenanceOrchestrator.from_config(state.config, state.self_command())
        partner = orchestrator.preflight()
    except MaintainerError as e:
        logger.warning(f"Preflight failed: {e.message}")
        console.print(f"[red]✗ Not ready:[/red] {e.message}")
        if e.details:
            console.print(f"\n{e.details}")
        raise typer.Exit(code=2)
    except Exception as e:
        logger.error(f"Unexpected error during check: {e}", exc_info=True)
        console.print(f"[red]Unexpected error:[/red] {e}")
        raise typer.Exit(code=1)

    console.print(f"[green]✓ Ready for maintenance[/green] (volumes would move to {partner.name})")


@app.command()
def status(ctx: typer.Context) -> None:
    """
    Show cluster nodes, shared volumes, storage health and reboot state.
    """
    from node_maintainer.orchestrator import MaintenanceOrchestrator

    state: CliState = ctx.obj
    try:
        orchestrator = MaintenanceOrchestrator.from_config(state.config, state.self_command())
        reader = orchestrator.reader

        nodes_table = Table(title="Cluster Nodes")
        nodes_table.add_column("Name", style="cyan")
        nodes_table.add_column("State", style="green")
        nodes_table.add_column("Drain Status", style="yellow")
        for node in reader.list_nodes():
            color = "green" if node.state.value == "Up" else "red"
            name = f"{node.name} (local)" if node.is_named(orchestrator.node_name) else node.name
            nodes_table.add_row(name, f"[{color}]{node.state.value}[/{color}]", node.drain_status.value)
        console.print(nodes_table)

        volumes_table = Table(title="Cluster Shared Volumes")
        volumes_table.add_column("Name", style="cyan")
        volumes_table.add_column("Owner", style="magenta")
        volumes_table.add_column("State")
        for volume in reader.list_shared_volumes():
            volumes_table.add_row(volume.name, volume.owner_node, volume.state)
        console.print(volumes_table)

        health = reader.get_storage_health()
        storage_table = Table(title="Storage Health")
        storage_table.add_column("Object", style="cyan")
        storage_table.add_column("Health")
        storage_table.add_column("Operational")
        for subsystem in health.subsystems:
            storage_table.add_row(subsystem.friendly_name, subsystem.health_status, "-")
        for disk in health.virtual_disks:
            color = "green" if disk.is_healthy else "red"
            storage_table.add_row(
                disk.friendly_name, f"[{color}]{disk.health_status}[/{color}]", disk.operational_status
            )
        console.print(storage_table)

        signals = orchestrator.detector.signals()
        console.print("\n[bold]Reboot pending:[/bold] " + ("Yes" if any(signals.values()) else "No"))
        for name, pending in signals.items():
            console.print(f"  {name}: {'✓' if pending else '-'}")

        armed = orchestrator.continuation.is_armed()
        console.print(
            f"[bold]Continuation '{orchestrator.continuation.task_name}':[/bold] "
            + ("armed" if armed else "not armed")
        )

    except MaintainerError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        if e.details:
            console.print(f"\n{e.details}")
        raise typer.Exit(code=1)
    except Exception as e:
        logger.error(f"Unexpected error during status: {e}", exc_info=True)
        console.print(f"[red]Unexpected error:[/red] {e}")
        raise typer.Exit(code=1)


@app.command()
def disarm(ctx: typer.Context) -> None:
    """
    Remove the post-reboot continuation task if it exists.

    Use after resolving a failed run by hand, so the next boot does not
    resume the node unexpectedly.
    """
    from node_maintainer.continuation import ContinuationManager, ScheduledTaskBackend
    from node_maintainer.powershell import PowerShellRunner

    state: CliState = ctx.obj
    runner = PowerShellRunner(state.config.powershell_executable, timeout=state.config.command_timeout_seconds)
    manager = ContinuationManager(ScheduledTaskBackend(runner), state.config.task_name)
    try:
        removed = manager.disarm()
    except MaintainerError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        if e.details:
            console.print(f"\n{e.details}")
        raise typer.Exit(code=1)

    if removed:
        console.print(f"[green]✓[/green] Removed continuation task '{manager.task_name}'")
    else:
        console.print(f"[yellow]Continuation task '{manager.task_name}' was not armed[/yellow]")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
