#!/usr/bin/env python3
"""
Contract Fabric CLI.

Operator entry point: inspect the contract registries, check the YAML
settings, run the event forwarding worker.

Usage:
    python cli.py --help
    python cli.py --service contracts --domain tasks
    python cli.py --service config
    python cli.py --service event-worker --verbose
    python cli.py --service test --coverage
"""

import subprocess
import sys
from pathlib import Path

import click
import structlog

PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from modules.fabric.core.logging import get_logger, setup_logging

SERVICES = {
    "contracts": "List registered RPC and event contracts",
    "config": "Validate and display configuration",
    "event-worker": "Run the event forwarding worker",
    "test": "Run test suite",
    "info": "Show this information",
}


def validate_project_root() -> Path:
    """Exit unless the .project_root marker sits next to this script."""
    if not (PROJECT_ROOT / ".project_root").exists():
        _fail("Error: .project_root not found. Run from project root.")
    return PROJECT_ROOT


def _fail(message: str, exit_code: int = 1) -> None:
    click.echo(click.style(message, fg="red"), err=True)
    sys.exit(exit_code)


def _log_level(verbose: bool, debug: bool) -> str:
    if debug:
        return "DEBUG"
    return "INFO" if verbose else "WARNING"


def build_registries() -> list:
    """Every registry shipped with the fabric. Fails on conflicting contracts."""
    from modules.fabric.contracts.gateway import build_gateway_events_registry
    from modules.fabric.contracts.identity import build_identity_registry
    from modules.fabric.contracts.notifications import build_notifications_registry
    from modules.fabric.contracts.tasks import build_task_events_registry, build_tasks_registry

    return [
        build_identity_registry(),
        build_tasks_registry(),
        build_notifications_registry(),
        build_task_events_registry(),
        build_gateway_events_registry(),
    ]


def _shape_name(shape) -> str:
    if shape is None:
        return "-"
    return getattr(shape, "__name__", None) or repr(shape)


@click.command()
@click.option(
    "--service", "-s",
    type=click.Choice(list(SERVICES)),
    default="info",
    help="What to run.",
)
@click.option("--domain", default=None, help="Only list this registry domain (contracts only).")
@click.option("--verbose", "-v", is_flag=True, help="Log at INFO level.")
@click.option("--debug", "-d", is_flag=True, help="Log at DEBUG level.")
@click.option("--coverage", is_flag=True, help="Collect coverage (test only).")
def main(service: str, domain: str | None, verbose: bool, debug: bool, coverage: bool) -> None:
    """
    Contract Fabric CLI.

    \b
    Examples:
        python cli.py --service contracts --domain gateway
        python cli.py --service event-worker --verbose
        python cli.py --service test --coverage
    """
    validate_project_root()

    log_level = _log_level(verbose, debug)
    setup_logging(level=log_level, format_type="console")
    structlog.contextvars.bind_contextvars(source="cli")

    logger = get_logger(__name__)
    logger.debug("CLI invoked", extra={"service": service, "log_level": log_level})

    if service == "contracts":
        show_contracts(logger, domain)
    elif service == "config":
        show_config(logger)
    elif service == "event-worker":
        run_event_worker(logger)
    elif service == "test":
        run_tests(logger, coverage)
    else:
        show_info(logger)


def show_contracts(logger, domain: str | None) -> None:
    """List every registered pattern with its payload and response shapes."""
    from modules.fabric.core.exceptions import ConfigurationError

    try:
        registries = build_registries()
    except ConfigurationError as e:
        logger.critical("Contract registration failed", extra={"error": e.message, "code": e.code})
        _fail(f"Error: {e.message}")

    if domain is not None:
        registries = [r for r in registries if r.domain == domain]
        if not registries:
            _fail(f"Error: unknown domain '{domain}'")

    for registry in registries:
        click.echo(f"\n[{registry.domain}] ({len(registry)} patterns)")
        click.echo("-" * 72)
        for entry in registry:
            kind = "rpc  " if entry.is_rpc else "event"
            click.echo(
                f"  {kind}  {entry.pattern:<26} {_shape_name(entry.payload):<28} "
                f"→ {_shape_name(entry.response)}"
            )

    logger.info("Contracts listed", extra={"registries": len(registries)})


def show_config(logger) -> None:
    """Load every settings file through its schema and print the result."""
    from modules.fabric.core.config import get_app_config

    try:
        sections = get_app_config().sections()
    except Exception as e:
        logger.error("Configuration rejected", extra={"error": str(e)})
        _fail(f"Error loading configuration: {e}")

    click.echo("Fabric Configuration:\n")
    for name, section in sections.items():
        click.echo(f"{name.capitalize()} Settings ({name}.yaml):")
        click.echo("-" * 40)
        _echo_mapping(section.model_dump())
        click.echo()

    logger.info("Configuration displayed", extra={"sections": len(sections)})


def _echo_mapping(values: dict, indent: int = 2) -> None:
    pad = " " * indent
    for key, value in values.items():
        if isinstance(value, dict):
            click.echo(f"{pad}{key}:")
            _echo_mapping(value, indent + 2)
        else:
            click.echo(f"{pad}{key}: {value}")


def run_event_worker(logger) -> None:
    """Start the FastStream worker running the forwarding pipeline."""
    from modules.fabric.core.config import get_app_config, get_redis_url

    try:
        redis_url = get_redis_url()
        forwarding = get_app_config().features.events_forwarding_enabled
    except Exception as e:
        logger.error("Broker configuration rejected", extra={"error": str(e)})
        _fail(f"Error: Redis not configured: {e}")

    logger.info("Starting event worker", extra={"redis_host": redis_url.split("@")[-1]})
    if not forwarding:
        click.echo(click.style("Event forwarding is disabled in features.yaml.", fg="yellow"))

    cmd = [
        sys.executable, "-m", "faststream", "run", "--factory",
        "modules.fabric.events.broker:create_event_app",
    ]
    click.echo("Event worker running, Ctrl+C stops it\n")

    try:
        subprocess.run(cmd, check=True)
    except KeyboardInterrupt:
        logger.info("Event worker stopped")
    except subprocess.CalledProcessError as e:
        logger.error("Event worker exited", extra={"exit_code": e.returncode})
        sys.exit(e.returncode)


def run_tests(logger, coverage: bool) -> None:
    cmd = [sys.executable, "-m", "pytest", "tests/", "-v"]
    if coverage:
        cmd += ["--cov=modules/fabric", "--cov-report=term-missing"]

    logger.info("Running tests", extra={"command": " ".join(cmd)})
    try:
        result = subprocess.run(cmd)
    except FileNotFoundError:
        logger.error("pytest not installed; pip install -e '.[test]'")
        sys.exit(1)
    sys.exit(result.returncode)


def show_info(logger) -> None:
    """Print the application identity and the available services."""
    from modules.fabric.core.config import get_app_config

    try:
        application = get_app_config().application
    except Exception as e:
        logger.error("application.yaml rejected", extra={"error": str(e)})
        _fail("Error: Could not load application.yaml configuration.")

    click.echo("Contract Fabric")
    click.echo("=" * 40)
    click.echo(f"Name: {application.name}")
    click.echo(f"Version: {application.version}")
    click.echo(f"Service: {application.service} ({application.environment})")

    click.echo("\nServices (--service):")
    for name, description in SERVICES.items():
        click.echo(f"  {name:<14} {description}")
    click.echo("\nLogging: --verbose/-v for INFO, --debug/-d for DEBUG")


if __name__ == "__main__":
    main()
