"""Command line entrypoint for running the daily recalculation by hand."""

import asyncio
import json
from datetime import date
from typing import Annotated, Optional

import typer

from ledger_recalc.audit import configure_logging
from ledger_recalc.config import get_settings, validate_all_settings
from ledger_recalc.orchestrator import RecalcRunResult, create_app_components

app = typer.Typer(
    name="ledger-recalc",
    help="Daily ledger recalculation: balances, daily balance rows and monthly budget",
    no_args_is_help=True,
)


def _parse_date(value: Optional[str]) -> Optional[date]:
    """Parse date string in YYYY-MM-DD format."""
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        typer.echo(f"Invalid date format: {value}. Use YYYY-MM-DD", err=True)
        raise typer.Exit(1) from None


async def _run(day: Optional[date]) -> RecalcRunResult:
    flow, store = create_app_components()
    try:
        return await flow.run_daily_recalc(today=day)
    finally:
        await store.close()


@app.command("run")
def run(
    day: Annotated[
        Optional[str],
        typer.Option("--date", help="Day to recalculate (YYYY-MM-DD); defaults to today"),
    ] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
) -> None:
    """Run one recalculation and print its summary as JSON."""
    target = _parse_date(day)
    configure_logging(level="DEBUG" if verbose else get_settings().app.log_level)

    try:
        result = asyncio.run(_run(target))
    except Exception as e:
        typer.echo(f"Recalculation failed: {type(e).__name__}: {e}", err=True)
        raise typer.Exit(1) from None

    typer.echo(json.dumps(result.summary(), indent=2))
    if not result.ok:
        raise typer.Exit(1)


@app.command("check-config")
def check_config() -> None:
    """Report which configuration groups load from the environment."""
    results = validate_all_settings()
    typer.echo(json.dumps(results, indent=2))
    if not all(v for k, v in results.items() if not k.endswith("_error")):
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
