"""
CLI interface for AI Cost Meter.

Provides command-line access to tier policies, usage, admission checks,
capacity planning and recommendations.
"""

import logging
import sys
from dataclasses import replace
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ai_cost_meter.config.loader import MeterConfig, StoreBackend, StoreConfig, load_meter_config
from ai_cost_meter.core.capacity import LoadSnapshot, calculate_target_count
from ai_cost_meter.core.tiers import tier_features
from ai_cost_meter.optimizer import CostOptimizer, build_optimizer
from ai_cost_meter.storage.db import DEFAULT_DB_PATH
from ai_cost_meter.storage.sqlite_store import initialize_schema

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_DENIED = 1
EXIT_CODE_FAIL = 2

_state = {"config_path": None, "db_path": DEFAULT_DB_PATH}


def _load_config() -> MeterConfig:
    config_path = _state["config_path"]
    if config_path:
        return load_meter_config(config_path)
    return MeterConfig(store=StoreConfig(backend=StoreBackend.SQLITE, path=_state["db_path"]))


def get_optimizer() -> CostOptimizer:
    """Build the optimizer for the selected configuration."""
    return build_optimizer(_load_config())


def _format_currency(amount: float) -> str:
    """Format currency with proper symbols and formatting."""
    return f"${abs(amount):,.4f}"


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to YAML meter config"),
    db: str = typer.Option(DEFAULT_DB_PATH, "--db", help="SQLite database path when no config is given"),
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level"),
):
    """AI Cost Meter CLI."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )
    _state["config_path"] = config
    _state["db_path"] = db
    if ctx.invoked_subcommand is None:
        console.print("AI Cost Meter - Use --help to see available commands")


@app.command()
def init():
    """Initialize the SQLite usage database."""
    try:
        config = _load_config()
        initialize_schema(config.store.path)
        console.print(f"[green]✓[/] Database initialized at {config.store.path}")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def tiers():
    """Show quota, throttling and cache policy per tier."""
    try:
        config = _load_config()
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    table = Table(title="Subscription Tiers")
    table.add_column("Tier")
    table.add_column("Daily", justify="right")
    table.add_column("Monthly", justify="right")
    table.add_column("Rate limit", justify="right")
    table.add_column("Cache TTL", justify="right")
    table.add_column("Cost/unit", justify="right")
    table.add_column("Features")

    for name, policy in config.tiers.policies.items():
        features = ", ".join(k for k, v in tier_features(name).items() if v)
        table.add_row(
            name,
            str(policy.daily_request_limit),
            str(policy.monthly_request_limit),
            f"{policy.rate_window_max_requests}/{policy.rate_window_ms // 1000}s",
            f"{policy.cache_ttl_seconds}s" if policy.cache_enabled else "off",
            str(policy.cost_per_unit),
            features,
        )
    console.print(table)


@app.command()
def usage(user_id: str = typer.Argument(..., help="User identifier")):
    """Show daily and monthly usage for a user."""
    try:
        optimizer = get_optimizer()
        summary = optimizer.ledger.get_usage(user_id)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    table = Table(title=f"Usage for {user_id}")
    table.add_column("Period")
    table.add_column("Requests", justify="right")
    table.add_column("Tokens", justify="right")
    table.add_column("Cost", justify="right")
    table.add_row("Today", str(summary.daily), str(summary.daily_tokens), _format_currency(summary.daily_cost))
    table.add_row("This month", str(summary.monthly), str(summary.monthly_tokens), _format_currency(summary.monthly_cost))
    console.print(table)


@app.command()
def check(
    user_id: str = typer.Argument(..., help="User identifier"),
    tier: str = typer.Option("free", "--tier", "-t", help="Subscription tier"),
    use_case: str = typer.Option("textGeneration", "--use-case", "-u", help="Use case"),
):
    """
    Run one admission decision for a user.

    Exits with code 1 when the request would be refused. The check counts
    against the in-process rate limiter only, so it never consumes quota.
    """
    try:
        optimizer = get_optimizer()
        decision = optimizer.should_process_request(user_id, tier, use_case)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    if decision.allowed:
        console.print(f"[green]ALLOWED[/] {user_id} ({tier}/{use_case})")
        if decision.remaining_requests is not None:
            console.print(f"Remaining in window: {decision.remaining_requests}")
    else:
        console.print(f"[red]DENIED[/] {user_id} ({tier}/{use_case}): {decision.reason.value}")
        if decision.retry_after_ms is not None:
            console.print(f"Retry after: {decision.retry_after_ms}ms")

    if decision.limits is not None:
        console.print(
            f"Remaining today: {decision.limits.remaining_daily}, "
            f"this month: {decision.limits.remaining_monthly}"
        )

    sys.exit(EXIT_CODE_PASS if decision.allowed else EXIT_CODE_DENIED)


@app.command()
def plan(
    cpu: float = typer.Option(..., "--cpu", help="Average CPU utilization (percent)"),
    rpm: float = typer.Option(..., "--rpm", help="Requests per minute"),
    hit_rate: float = typer.Option(0.0, "--hit-rate", help="Cache hit rate between 0 and 1"),
    max_instances: Optional[int] = typer.Option(None, "--max", help="Override maximum instance count"),
):
    """Compute the target instance count for a given load."""
    try:
        policy = _load_config().capacity.policy
        if max_instances is not None:
            policy = replace(policy, max_instances=max_instances)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    snapshot = LoadSnapshot(
        avg_cpu=cpu,
        total_requests=rpm * policy.window_minutes,
        requests_per_minute=rpm,
        cache_hit_rate=hit_rate,
    )
    target = calculate_target_count(snapshot, policy)
    console.print(f"Target instances: [bold]{target}[/] (max {policy.max_instances})")


@app.command()
def recommend(user_id: str = typer.Argument(..., help="User identifier")):
    """Show cost optimization recommendations for a user."""
    try:
        optimizer = get_optimizer()
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    recommendations = optimizer.recommendations(user_id)

    if not recommendations:
        console.print(f"\n[green]No recommendations for {user_id}[/]\n")
        return

    table = Table(title=f"Recommendations for {user_id}")
    table.add_column("Type")
    table.add_column("Priority")
    table.add_column("Message")
    table.add_column("Potential savings", justify="right")
    for rec in recommendations:
        table.add_row(rec.type.value, rec.priority.value, rec.message, _format_currency(rec.potential_savings))
    console.print(table)


if __name__ == "__main__":
    app()
