"""
CLI interface for the agent status line cost tracker.

Provides command-line access to cost stats and pricing.
"""

import sys
from dataclasses import replace
from typing import Optional

import typer
import yaml
from rich.console import Console

from agent_statusline.config.debug_log import configure_debug_logging
from agent_statusline.config.loader import AggregationMode, StatuslineConfig, load_config
from agent_statusline.core.cost_stats import compute_cost_stats
from agent_statusline.core.pricing import DEFAULT_PRICING, resolve_price
from agent_statusline.core.pricing_cache import PricingCache

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1


def _load(config_path: Optional[str], debug: bool = False) -> StatuslineConfig:
    try:
        config = load_config(config_path)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Invalid configuration:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)
    if debug and not config.debug:
        config = replace(config, debug=True)
    configure_debug_logging(config)
    return config


def _pricing_cache(config: StatuslineConfig) -> PricingCache:
    return PricingCache(
        config.pricing_cache_file,
        config.pricing_url,
        ttl_hours=config.pricing_ttl_hours,
    )


def _format_currency(amount: float) -> str:
    """Format currency with symbol and thousands separator."""
    return f"${abs(amount):,.2f}"


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """Agent status line cost tracker."""
    if ctx.invoked_subcommand is None:
        console.print("agent-statusline - Use --help to see available commands")


@app.command()
def costs(
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to YAML configuration file"
    ),
    aggregation: Optional[str] = typer.Option(
        None,
        "--aggregation",
        "-a",
        help="Cost aggregation: fixed|sliding"
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Write debug output to the debug log file"
    )
):
    """
    Show monthly, weekly and daily spend from the usage logs.

    Only bytes appended since the previous run are read; results are cached
    between invocations.
    """
    config = _load(config_path, debug)
    if aggregation is not None:
        try:
            mode = AggregationMode(aggregation.lower())
        except ValueError:
            console.print(f"[red]Error:[/] unknown aggregation mode '{aggregation}'")
            sys.exit(EXIT_CODE_FAIL)
        config = replace(config, aggregation_mode=mode)

    try:
        stats = compute_cost_stats(config)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    console.print(
        f"{_format_currency(stats.monthly_cost)}/"
        f"{_format_currency(stats.weekly_cost)}/"
        f"{_format_currency(stats.daily_cost)}",
        highlight=False,
    )
    sys.exit(EXIT_CODE_PASS)


@app.command()
def price(
    model: str = typer.Argument(..., help="Model id as written in the usage log"),
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="Path to YAML configuration file")
):
    """Show the pricing a model id resolves to."""
    config = _load(config_path)
    cache = _pricing_cache(config)
    table = cache.load_table(refresh=False)
    pricing = resolve_price(model, table)

    console.print(f"[bold]Model:[/bold] {model}")
    console.print(f"Input: {_format_currency(pricing.input)} per 1M tokens", highlight=False)
    console.print(f"Output: {_format_currency(pricing.output)} per 1M tokens", highlight=False)
    if pricing is DEFAULT_PRICING:
        console.print("[dim]No match in pricing table, using default pricing[/]")
    console.print(f"[dim]Pricing source: {cache.source}[/]")


@app.command("refresh-pricing")
def refresh_pricing(
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="Path to YAML configuration file")
):
    """Download the pricing table now and cache it."""
    config = _load(config_path)
    if _pricing_cache(config).fetch_and_store():
        console.print("[green]✓[/] Pricing updated")
        sys.exit(EXIT_CODE_PASS)
    console.print("[red]Failed to update pricing[/]")
    sys.exit(EXIT_CODE_FAIL)


if __name__ == "__main__":
    app()
