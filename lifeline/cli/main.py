"""Command-line interface for Lifeline."""

import sys

import click
from rich.console import Console
from rich.table import Table

from lifeline import __version__
from lifeline.core.config import configure_logging
from lifeline.core.exceptions import ConfigurationError, ValidationError
from lifeline.parsers import parse_policy
from lifeline.resilience.backoff import backoff_schedule

console = Console()


@click.group()
@click.version_option(version=__version__, prog_name="lifeline")
def cli() -> None:
    """Lifeline - Resilience and recovery policies for async services."""
    configure_logging()


@cli.command()
@click.argument("policy_path", type=click.Path(exists=True))
def validate(policy_path: str) -> None:
    """Validate a resilience policy YAML file.

    Example:
        lifeline validate policies/payments.yaml
    """
    try:
        console.print(f"[cyan]Validating policy: {policy_path}[/cyan]")
        policy = parse_policy(policy_path)
    except (ConfigurationError, ValidationError) as e:
        console.print(f"[red]✗ Validation failed: {e}[/red]")
        sys.exit(1)
    except Exception as e:
        console.print(f"[red]Unexpected error: {e}[/red]")
        sys.exit(1)

    console.print("[green]✓ Policy is valid[/green]")
    console.print(f"  Name: {policy.name}")
    console.print(f"  Version: {policy.version}")
    console.print(f"  Breakers: {len(policy.breakers)}")
    console.print(f"  Retry policies: {len(policy.retry_policies)}")


@cli.command()
@click.argument("policy_path", type=click.Path(exists=True))
def show(policy_path: str) -> None:
    """Show breakers and retry policies with their backoff schedules.

    Example:
        lifeline show policies/payments.yaml
    """
    try:
        policy = parse_policy(policy_path)
    except (ConfigurationError, ValidationError) as e:
        console.print(f"[red]✗ Invalid policy: {e}[/red]")
        sys.exit(1)

    console.print(f"[bold]{policy.name}[/bold] v{policy.version}")
    if policy.description:
        console.print(policy.description)

    breakers = Table(title="Circuit Breakers")
    breakers.add_column("Name", style="cyan", no_wrap=True)
    breakers.add_column("Failures", justify="right")
    breakers.add_column("Successes", justify="right")
    breakers.add_column("Open (s)", justify="right")
    breakers.add_column("Window (s)", justify="right")
    breakers.add_column("Volume", justify="right")
    breakers.add_column("Error %", justify="right")
    for b in policy.breakers:
        breakers.add_row(
            b.name,
            str(b.failure_threshold),
            str(b.success_threshold),
            f"{b.timeout:g}",
            f"{b.monitoring_period:g}",
            str(b.volume_threshold),
            f"{b.error_threshold_percentage:g}",
        )
    console.print(breakers)

    retries = Table(title="Retry Policies")
    retries.add_column("Name", style="cyan", no_wrap=True)
    retries.add_column("Retries", justify="right")
    retries.add_column("Jitter", justify="right")
    retries.add_column("Timeout (s)", justify="right")
    retries.add_column("Breaker", no_wrap=True)
    retries.add_column("Backoff schedule (s)")
    for r in policy.retry_policies:
        schedule = backoff_schedule(
            r.max_retries, r.initial_delay, r.max_delay, r.backoff_multiplier
        )
        retries.add_row(
            r.name,
            str(r.max_retries),
            f"±{r.jitter_ratio:.0%}",
            "-" if r.timeout is None else f"{r.timeout:g}",
            r.breaker or "-",
            ", ".join(f"{d:g}" for d in schedule) or "-",
        )
    console.print(retries)


@cli.command()
def version() -> None:
    """Show Lifeline version."""
    console.print(f"Lifeline version {__version__}")


if __name__ == "__main__":
    cli()
