"""Main entry point for the rpcguard application.

Sets up the Typer CLI application, performs dependency injection (Composition Root),
defines CLI commands, and delegates execution to the CommandHandler.
"""

import logging
from typing import Any, Dict, Optional

import typer
from typing_extensions import Annotated

# --- Core Layer ---
from rpcguard.core.command_handler import CommandHandler
from rpcguard.core.services.simulation_service import SimulationService

# --- Domain Layer ---
from rpcguard.domain.models.common import BackoffPolicy

# --- Infrastructure Layer ---
# Config
from rpcguard.infrastructure.config.settings import (
    DEFAULTS,
    get_config,
    get_logging_settings,
    get_rate_limit_settings,
    get_retry_settings,
    load_configuration,
)
# UI
from rpcguard.infrastructure.cli.display import ConsoleDisplay
# Monitoring
from rpcguard.infrastructure.monitoring.logger_setup import setup_logging

logger = logging.getLogger(__name__)

# --- Dependency Injection Container (Manual) ---

_dependencies: Optional[Dict[str, Any]] = None


def create_dependencies(log_level: Optional[str] = None) -> Dict[str, Any]:
    """Creates and wires up all dependencies for the application.

    This acts as the Composition Root.
    """
    # 1. Load Configuration First, then configure logging from it
    load_configuration()
    setup_logging(get_logging_settings(level_override=log_level))
    logger.debug("Configuration and logging initialized.")

    # 2. Instantiate Infrastructure Adapters & Services
    dependencies: Dict[str, Any] = {}
    dependencies['ui'] = ConsoleDisplay()
    dependencies['simulation_service'] = SimulationService()

    # 3. Instantiate Command Handler
    dependencies['command_handler'] = CommandHandler(
        simulation_service=dependencies['simulation_service'],
        ui=dependencies['ui'],
    )
    logger.debug("All dependencies initialized successfully.")
    return dependencies


def get_dependencies() -> Dict[str, Any]:
    global _dependencies
    if _dependencies is None:
        _dependencies = create_dependencies()
    return _dependencies


def _finish(ok: bool) -> None:
    if not ok:
        raise typer.Exit(code=1)

# --- Typer App Definition ---
app = typer.Typer(
    name="rpcguard",
    help="rpcguard: inspect and rehearse rate limiting and retry policies for outbound RPC calls.",
    add_completion=False,
)

# --- CLI Commands ---

@app.command()
def backoff(
    max_attempts: Annotated[Optional[int], typer.Option("--max-attempts", "-n", help="Total attempts including the first.")] = None,
    base_delay_ms: Annotated[Optional[float], typer.Option("--base-delay-ms", help="Delay before the first retry.")] = None,
    multiplier: Annotated[Optional[float], typer.Option("--multiplier", "-m", help="Backoff multiplier (>= 1.0).")] = None,
    jitter_ms: Annotated[Optional[float], typer.Option("--jitter-ms", help="Maximum random delay added per retry.")] = None,
    max_delay_ms: Annotated[Optional[float], typer.Option("--max-delay-ms", help="Cap on the exponential delay.")] = None,
    failures: Annotated[Optional[int], typer.Option("--failures", "-f", help="Rehearse an operation failing this many times.")] = None,
    seed: Annotated[Optional[int], typer.Option("--seed", help="Jitter seed for the rehearsal.")] = None,
):
    """Show the retry delay schedule for a backoff policy."""
    handler: CommandHandler = get_dependencies()['command_handler']
    configured = get_retry_settings()
    policy = BackoffPolicy(
        max_attempts=max_attempts if max_attempts is not None else configured['max_attempts'],
        base_delay_ms=base_delay_ms if base_delay_ms is not None else configured['base_delay_ms'],
        backoff_multiplier=multiplier if multiplier is not None else configured['backoff_multiplier'],
        jitter_ms=jitter_ms if jitter_ms is not None else configured['jitter_ms'],
        max_delay_ms=max_delay_ms if max_delay_ms is not None else configured['max_delay_ms'],
    )
    _finish(handler.handle_backoff(policy, failures=failures, seed=seed))


@app.command()
def simulate(
    rate: Annotated[Optional[float], typer.Option("--rate", "-r", help="Tokens added per second.")] = None,
    capacity: Annotated[Optional[int], typer.Option("--capacity", "-c", help="Bucket capacity (burst size).")] = None,
    requests: Annotated[int, typer.Option("--requests", help="Number of requests to send.")] = 20,
    interval_ms: Annotated[float, typer.Option("--interval-ms", help="Virtual time between requests.")] = 50.0,
):
    """Simulate a token bucket in virtual time and show each admission decision."""
    handler: CommandHandler = get_dependencies()['command_handler']
    configured = get_rate_limit_settings()
    _finish(handler.handle_simulate(
        rate=rate if rate is not None else configured['rate'],
        capacity=capacity if capacity is not None else configured['capacity'],
        requests=requests,
        interval_ms=interval_ms,
    ))


@app.command(name="config")
def config_command():
    """Show the effective resilience configuration."""
    handler: CommandHandler = get_dependencies()['command_handler']
    settings = {key: get_config(key) for key in DEFAULTS}
    _finish(handler.handle_show_config(settings))


@app.callback()
def main_callback(
    log_level: Annotated[
        Optional[str],
        typer.Option("--log-level", "-l", help="Override the configured log level (e.g., DEBUG).")
    ] = None,
):
    """rpcguard command line."""
    global _dependencies
    if log_level is not None:
        _dependencies = create_dependencies(log_level=log_level)

# --- Main Execution Guard ---

def cli_entry_point():
    """Function to be called by the script entry point in pyproject.toml."""
    app()


if __name__ == "__main__":
    cli_entry_point()
