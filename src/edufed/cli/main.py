"""
EduFed command-line interface.

Provides a rich command-line interface with:
- Offline simulation of training rounds with progress bars
- One-off rounds against a configured coordinator
- Configuration validation and template generation
- API server startup

Usage:
    edufed simulate --rounds 10 --nodes 20 --seed 7
    edufed round --config coordinator.yaml --node-id student-42
    edufed validate coordinator.yaml
    edufed generate --output coordinator.yaml
    edufed serve --port 8080
"""

from __future__ import annotations

import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table
from rich.text import Text

from edufed import __version__
from edufed.config import ConfigLoader, CoordinatorConfig, load_coordinator_config
from edufed.config.loader import ConfigError
from edufed.federated import (
    FederatedCoordinator,
    FederatedError,
    RoundFailed,
    RoundMetrics,
    create_coordinator,
)

# Initialize Rich console
console = Console()

# Create Typer app
app = typer.Typer(
    name="edufed",
    help="EduFed - Federated Learning Coordinator for E-Learning Platforms",
    add_completion=True,
    rich_markup_mode="rich",
)


# =============================================================================
# Utility Functions
# =============================================================================


def setup_logging(
    verbose: bool = False,
    log_file: Path | str | None = None,
    level: str = "INFO",
) -> None:
    """Configure logging with Rich handler."""
    log_level = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO)

    handlers: list[logging.Handler] = [
        RichHandler(
            console=console,
            show_time=True,
            show_path=verbose,
            rich_tracebacks=True,
        )
    ]

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        handlers.append(file_handler)

    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=handlers,
        force=True,
    )


def create_progress() -> Progress:
    """Create a Rich progress bar with standard columns."""
    return Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(bar_width=40),
        TaskProgressColumn(),
        TimeElapsedColumn(),
        console=console,
    )


def print_header() -> None:
    """Print the CLI header banner."""
    header = Text()
    header.append("EduFed", style="bold blue")
    header.append(" v", style="dim")
    header.append(__version__, style="cyan")

    console.print(
        Panel(
            header,
            subtitle="Federated Learning Coordinator",
            border_style="blue",
        )
    )


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green][+][/green] {message}")


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[red][-][/red] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow][!][/yellow] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[blue][*][/blue] {message}")


def _load_config(config_path: Path | None) -> CoordinatorConfig:
    if config_path is None:
        return CoordinatorConfig()
    return load_coordinator_config(config_path)


# =============================================================================
# Commands
# =============================================================================


@app.command()
def simulate(
    config_path: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Coordinator configuration YAML file",
        exists=True,
        readable=True,
    ),
    rounds: int = typer.Option(
        5,
        "--rounds",
        "-r",
        min=1,
        help="Number of rounds to run",
    ),
    nodes: int = typer.Option(
        10,
        "--nodes",
        "-n",
        min=0,
        help="Number of simulated nodes to register",
    ),
    seed: int | None = typer.Option(
        None,
        "--seed",
        "-s",
        help="Override the configured random seed",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose output",
    ),
    log_file: Path | None = typer.Option(
        None,
        "--log-file",
        "-l",
        help="Path to log file",
    ),
) -> None:
    """
    Run training rounds back to back without waiting for the scheduler.

    Registers simulated nodes, runs the requested number of rounds and
    prints the per-round metrics.
    """
    print_header()

    try:
        config = _load_config(config_path)
        if seed is not None:
            config = config.model_copy(update={"seed": seed})
        setup_logging(verbose, log_file or config.logging.file, config.logging.level)

        coordinator = create_coordinator(config)
        for index in range(1, nodes + 1):
            coordinator.register_node(f"node-{index}")

        print_success(
            f"Coordinator ready: {len(coordinator.registry)} nodes, "
            f"epsilon/round={config.privacy.epsilon_per_round}"
        )

        history: list[RoundMetrics] = []
        with create_progress() as progress:
            task = progress.add_task("[bold]Running rounds...", total=rounds)
            for _ in range(rounds):
                metrics = coordinator.run_round()
                if metrics.round > (history[-1].round if history else 0):
                    history.append(metrics)
                progress.advance(task)

    except ConfigError as e:
        print_error(f"Configuration error: {e}")
        raise typer.Exit(1) from e
    except RoundFailed as e:
        print_error(f"Round failed: {e}")
        raise typer.Exit(1) from e
    except FederatedError as e:
        print_error(f"Simulation error: {e}")
        raise typer.Exit(1) from e

    if not history:
        print_warning("No round completed (no eligible nodes)")
        return

    _display_round_table(history)
    _display_privacy_summary(coordinator)


@app.command("round")
def run_round(
    config_path: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Coordinator configuration YAML file",
        exists=True,
        readable=True,
    ),
    node_id: str | None = typer.Option(
        None,
        "--node-id",
        help="Node guaranteed to participate (registered if unknown)",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose output",
    ),
) -> None:
    """
    Run a single training round.

    With a JSON persistence backend the nodes recorded by earlier runs
    are restored first, so repeated invocations continue the federation.
    """
    try:
        config = _load_config(config_path)
        setup_logging(verbose, config.logging.file, config.logging.level)
        coordinator = create_coordinator(config)
        metrics = coordinator.run_training_round(node_id)
    except ConfigError as e:
        print_error(f"Configuration error: {e}")
        raise typer.Exit(1) from e
    except FederatedError as e:
        print_error(f"Round failed: {e}")
        raise typer.Exit(1) from e

    if metrics.participating_nodes == 0:
        print_warning("No round completed (no eligible nodes)")
        return

    print_success(f"Round {metrics.round} completed")
    _display_round_table([metrics])


@app.command()
def serve(
    config_path: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Coordinator configuration YAML file",
        exists=True,
        readable=True,
    ),
    host: str = typer.Option(
        "0.0.0.0",  # nosec B104 - Intentional for container deployment
        "--host",
        help="Bind address",
    ),
    port: int = typer.Option(8080, "--port", "-p", help="Bind port"),
    simulate: bool = typer.Option(
        False,
        "--simulate",
        help="Start periodic rounds on startup",
    ),
) -> None:
    """Start the coordination API server."""
    import uvicorn

    from edufed.api.main import create_app

    print_header()

    try:
        config = _load_config(config_path)
    except ConfigError as e:
        print_error(f"Configuration error: {e}")
        raise typer.Exit(1) from e

    coordinator = create_coordinator(config)
    if simulate:
        coordinator.start_simulation()
        print_info(f"Simulation running: one round every {config.round_interval_seconds}s")

    print_info(f"Serving on http://{host}:{port} (docs at /docs)")
    uvicorn.run(create_app(coordinator=coordinator), host=host, port=port)


@app.command()
def validate(
    config_path: Path = typer.Argument(
        ...,
        help="Path to configuration YAML file",
        exists=True,
        readable=True,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Show detailed validation output",
    ),
) -> None:
    """
    Validate a configuration file.

    Checks the configuration file for syntax errors and validates
    all fields against the schema.
    """
    print_header()

    loader = ConfigLoader()

    try:
        with console.status("[bold blue]Validating coordinator configuration..."):
            config = loader.load_coordinator(config_path)
    except ConfigError as e:
        print_error(f"Validation failed: {e}")
        raise typer.Exit(1) from e

    print_success(f"Configuration is valid: {config.name}")

    if verbose:
        _display_config_details(config)


@app.command()
def generate(
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Output file path (default: stdout)",
    ),
) -> None:
    """
    Generate a configuration template.

    Creates a coordinator configuration template with every setting
    and its default value.
    """
    config_content = ConfigLoader.generate_coordinator_template()

    if output:
        output.write_text(config_content, encoding="utf-8")
        print_success(f"Configuration template written to: {output}")
    else:
        console.print(Panel(config_content, title="Coordinator Template"))


@app.command()
def version() -> None:
    """Display version information."""
    console.print(f"edufed version [bold cyan]{__version__}[/bold cyan]")


# =============================================================================
# Helper Functions
# =============================================================================


def _display_round_table(history: list[RoundMetrics]) -> None:
    """Display per-round metrics."""
    table = Table(title="Training Rounds", show_header=True)
    table.add_column("Round", style="cyan", justify="right")
    table.add_column("Nodes", justify="right")
    table.add_column("Local Acc", style="green", justify="right")
    table.add_column("Global Acc", style="green", justify="right")
    table.add_column("Budget Left", style="yellow", justify="right")
    table.add_column("Time (s)", style="dim", justify="right")

    for metrics in history:
        table.add_row(
            str(metrics.round),
            str(metrics.participating_nodes),
            f"{metrics.local_accuracy:.2%}",
            f"{metrics.global_accuracy:.2%}",
            f"{metrics.privacy_budget_remaining:.2f}",
            f"{metrics.training_time_seconds:.3f}",
        )

    console.print(table)


def _display_privacy_summary(coordinator: FederatedCoordinator) -> None:
    privacy = coordinator.accountant.get_metrics(coordinator.config.privacy.total_budget)
    print_info(
        f"Cumulative epsilon: {privacy['cumulative_epsilon']:.2f} "
        f"over {privacy['rounds_executed']} rounds"
    )
    if privacy.get("budget_exhausted"):
        print_warning("Privacy budget exhausted")


def _display_config_details(config: CoordinatorConfig) -> None:
    """Display detailed configuration information."""
    console.print()

    table = Table(title="Coordinator Configuration Details")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="white")

    data = config.model_dump(mode="json")
    for key, value in data.items():
        table.add_row(key, str(value))

    console.print(table)


# =============================================================================
# Entry Point
# =============================================================================


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
