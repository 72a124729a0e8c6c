"""
CLI interface for Voice Quota Guard.

Provides command-line access to provisioning, admission checks, usage
recording and usage statistics.
"""

import json
import logging
import sys
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from voice_quota_guard.config.loader import CONFIG_ENV_VAR, DB_ENV_VAR, load_quota_config
from voice_quota_guard.core.admission import Decision
from voice_quota_guard.core.errors import VoiceQuotaError
from voice_quota_guard.core.plans import UsageKind
from voice_quota_guard.core.pricing import calculate_cost
from voice_quota_guard.core.service import VoiceQuotaService
from voice_quota_guard.core.stats import UsageSnapshot
from voice_quota_guard.storage.db import DEFAULT_DB_PATH
from voice_quota_guard.storage.models import UsageEvent
from voice_quota_guard.storage.repository import SqliteLedgerStore, initialize_schema

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1
EXIT_CODE_DENIED = 2  # Request would be refused by admission control


def get_service(ctx: typer.Context) -> VoiceQuotaService:
    """Build the quota service from the global --db/--config options."""
    options = ctx.obj or {}
    config = load_quota_config(options.get("config"))
    store = SqliteLedgerStore(options.get("db", DEFAULT_DB_PATH))
    return VoiceQuotaService(store, config)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    db: str = typer.Option(
        DEFAULT_DB_PATH,
        "--db",
        envvar=DB_ENV_VAR,
        help="Path to the SQLite ledger database"
    ),
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        envvar=CONFIG_ENV_VAR,
        help="YAML file with plan and pricing configuration"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug logging"
    )
):
    """Voice Quota Guard CLI."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )
    ctx.obj = {"db": db, "config": config}
    if ctx.invoked_subcommand is None:
        console.print("Voice Quota Guard - Use --help to see available commands")


@app.command()
def init(ctx: typer.Context):
    """Initialize the voice usage ledger database."""
    try:
        initialize_schema(ctx.obj["db"])
        console.print("[green]✓[/] Database initialized successfully")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def provision(
    ctx: typer.Context,
    user_id: str = typer.Argument(..., help="User to provision"),
    plan: str = typer.Option(..., "--plan", "-p", help="Plan tier, e.g. plus, pro, apex")
):
    """Create a user's voice ledger or change their plan tier."""
    try:
        service = get_service(ctx)
        ledger = service.provision(user_id, plan)
        console.print(f"[green]✓[/] {ledger.user_id} provisioned on plan [bold]{ledger.plan_tier}[/]")
        sys.exit(EXIT_CODE_PASS)
    except (VoiceQuotaError, ValueError, FileNotFoundError) as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def check(
    ctx: typer.Context,
    user_id: str = typer.Argument(..., help="User making the request"),
    kind: UsageKind = typer.Option(UsageKind.INPUT, "--kind", "-k", help="Speech-in or speech-out"),
    seconds: float = typer.Option(..., "--seconds", "-s", help="Requested duration in seconds")
):
    """
    Check whether a voice request would be admitted right now.

    Read-only: nothing is recorded. Exits with code 2 when denied.
    """
    try:
        service = get_service(ctx)
        decision = service.check(user_id, kind, seconds)
    except (VoiceQuotaError, ValueError, FileNotFoundError) as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    _display_decision(decision)
    sys.exit(EXIT_CODE_PASS if decision.allowed else EXIT_CODE_DENIED)


@app.command()
def record(
    ctx: typer.Context,
    user_id: str = typer.Argument(..., help="User the interaction belongs to"),
    input_seconds: float = typer.Option(0.0, "--input-seconds", "-i", help="Speech-in seconds"),
    output_seconds: float = typer.Option(0.0, "--output-seconds", "-o", help="Speech-out seconds")
):
    """Record a completed voice interaction."""
    try:
        service = get_service(ctx)
        result = service.commit(user_id, UsageEvent(input_seconds=input_seconds, output_seconds=output_seconds))
    except (VoiceQuotaError, ValueError, FileNotFoundError) as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    currency = service.config.pricing.currency
    cost = result.cost
    console.print(f"[green]✓[/] Recorded {cost.total_seconds:g}s (ratio {cost.ratio_label})")
    console.print(f"Actual cost: {_format_money(cost.actual_cost, currency)}")
    console.print(f"Budgeted cost: {_format_money(cost.budgeted_cost, currency)}")
    console.print(f"Savings: {_format_money(cost.savings, currency)}")
    if result.bonus.awarded:
        console.print(
            f"[bold magenta]+{result.bonus.bonus_minutes_awarded} bonus minute(s) earned![/] "
            f"Total earned: {result.bonus.bonus_minutes_earned}"
        )
    sys.exit(EXIT_CODE_PASS)


@app.command()
def stats(
    ctx: typer.Context,
    user_id: str = typer.Argument(..., help="User to report on"),
    as_json: bool = typer.Option(False, "--json", help="Print the snapshot as JSON")
):
    """Show a user's voice usage, remaining quota and bonus minutes."""
    try:
        service = get_service(ctx)
        snapshot = service.stats(user_id)
    except (VoiceQuotaError, ValueError, FileNotFoundError) as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    if as_json:
        typer.echo(json.dumps(snapshot.to_dict(), indent=2))
    else:
        _display_snapshot(snapshot)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def reset(
    ctx: typer.Context,
    user_id: str = typer.Argument(..., help="User whose usage to clear")
):
    """Force reset a user's usage counters (bonus state is kept)."""
    try:
        service = get_service(ctx)
        service.reset(user_id)
        console.print(f"[green]✓[/] Voice usage reset for {user_id}")
        sys.exit(EXIT_CODE_PASS)
    except (VoiceQuotaError, ValueError, FileNotFoundError) as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def pricing(ctx: typer.Context):
    """Show voice rates and what typical conversation mixes cost per minute."""
    try:
        config = load_quota_config(ctx.obj.get("config"))
    except (ValueError, FileNotFoundError) as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    rates = config.pricing
    console.print("\n[bold]Voice Pricing[/bold]")
    console.print("-" * 40)
    console.print(f"Budgeted cost/minute: {_format_money(rates.budgeted_cost_per_minute, rates.currency)}")
    console.print(f"Speech-in cost/second: {_format_money(rates.input_cost_per_second, rates.currency, 4)}")
    console.print(f"Speech-out cost/second: {_format_money(rates.output_cost_per_second, rates.currency, 4)}")
    console.print(f"Bonus: {_format_money(rates.bonus_threshold, rates.currency)} savings = 1 bonus minute")

    table = Table(title="Cost per minute by conversation mix")
    table.add_column("Mix (in:out)")
    table.add_column("Actual", justify="right")
    table.add_column("Savings", justify="right")
    for input_seconds in (30, 18, 6):
        cost = calculate_cost(input_seconds, 60 - input_seconds, rates)
        table.add_row(
            cost.ratio_label,
            _format_money(cost.actual_cost, rates.currency),
            _format_money(cost.savings, rates.currency),
        )
    console.print(table)
    sys.exit(EXIT_CODE_PASS)


def _format_money(amount, currency: str, places: int = 2) -> str:
    """Format money with currency code."""
    return f"{currency} {abs(amount):,.{places}f}"


def _display_decision(decision: Decision):
    """Display an admission decision."""
    if decision.allowed:
        console.print("[bold green]ALLOWED[/]")
    else:
        console.print(f"[bold red]DENIED[/] ({decision.reason.value})")
        console.print(decision.message)
        if decision.upgrade_required:
            console.print("[yellow]Upgrade your plan to use voice.[/]")

    remaining = decision.remaining
    console.print(f"Daily minutes left: {remaining.daily_minutes:,.2f}")
    console.print(f"Speech-in seconds left: {remaining.input_seconds:,.0f}")
    console.print(f"Speech-out seconds left: {remaining.output_seconds:,.0f}")
    console.print(f"Requests left this hour: {remaining.requests_this_hour}")


def _display_snapshot(snapshot: UsageSnapshot):
    """Display a usage snapshot as tables."""
    console.print(f"\n[bold]Voice usage for {snapshot.user_id}[/bold] (plan: {snapshot.plan_tier})")
    if not snapshot.has_access:
        console.print("[yellow]This plan does not include voice.[/]")

    table = Table()
    table.add_column("Meter")
    table.add_column("Used", justify="right")
    table.add_column("Limit", justify="right")
    table.add_column("Remaining", justify="right")
    for label, meter in (
        ("Daily minutes", snapshot.daily_minutes),
        ("Speech-in seconds", snapshot.input_seconds),
        ("Speech-out seconds", snapshot.output_seconds),
        ("Requests this hour", snapshot.hourly_requests),
    ):
        table.add_row(label, f"{meter.used:,.2f}", f"{meter.limit:,.2f}", f"{meter.remaining:,.2f}")
    console.print(table)

    console.print(
        f"Bonus minutes: {snapshot.bonus_minutes_available:g} available "
        f"({snapshot.bonus_minutes_earned} earned, {snapshot.bonus_minutes_used:g} used)"
    )
    console.print(f"Savings toward next bonus: {_format_money(snapshot.savings_accumulated, snapshot.currency)} "
                  f"({_format_money(snapshot.savings_to_next_bonus, snapshot.currency)} to go)")
    console.print(f"Daily reset: {snapshot.daily_resets_at:%Y-%m-%d %H:%M}")
    console.print(f"Hourly reset: {snapshot.hourly_resets_at:%H:%M}")


if __name__ == "__main__":
    app()
