"""
CLI interface for Bedrock Usage.

Provides command-line access to the usage, trend and cost reports.
"""

import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.markup import escape

from bedrock_usage.cli.render import (
    render_cost,
    render_models,
    render_summary,
    render_trend,
    render_users,
)
from bedrock_usage.config.loader import (
    OutputFormat,
    ReportConfig,
    load_default_config,
    load_report_config,
)
from bedrock_usage.core.calendar import ReportWindow
from bedrock_usage.core.errors import NoDataError, SourceError
from bedrock_usage.core.reports import (
    build_cost_report,
    build_model_report,
    build_summary,
    build_trend,
    build_user_report,
)
from bedrock_usage.sources import CloudTrailSource, CloudWatchSource, CostExplorerSource
from bedrock_usage.utils.logging import setup_logging

app = typer.Typer(help="Analyze AWS Bedrock usage, costs, and trends.")
console = Console()
err_console = Console(stderr=True)
logger = logging.getLogger("bedrock_usage.cli")

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1


@dataclass(frozen=True)
class CliState:
    """Settings shared by every subcommand of one invocation."""
    config: ReportConfig
    window: ReportWindow


def _fail(message: str) -> None:
    err_console.print(f"[red]Error:[/] {escape(message)}")
    sys.exit(EXIT_CODE_FAIL)


def _metrics_source(config: ReportConfig) -> CloudWatchSource:
    return CloudWatchSource(region=config.region, max_workers=config.metrics.max_workers)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    region: Optional[str] = typer.Option(
        None,
        "--region",
        "-r",
        help="AWS region (default: us-east-1)"
    ),
    days: Optional[int] = typer.Option(
        None,
        "--days",
        "-d",
        min=1,
        help="Number of days to look back (default: 7)"
    ),
    output: Optional[OutputFormat] = typer.Option(
        None,
        "--output",
        "-o",
        case_sensitive=False,
        help="Output format (default: table)"
    ),
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="YAML config file (default: ~/.bedrock-usage.yaml if present)"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Show debug logging on stderr"
    ),
):
    """Bedrock Usage CLI."""
    try:
        config = load_report_config(str(config_path)) if config_path else load_default_config()
        config = config.with_overrides(region=region, days=days, output=output)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        _fail(str(e))

    # json and csv runs only log warnings
    if verbose:
        setup_logging("DEBUG")
    elif config.output is OutputFormat.TABLE:
        setup_logging("INFO")
    else:
        setup_logging("WARNING")

    # Every command of this invocation shares one window
    ctx.obj = CliState(config=config, window=ReportWindow.ending_now(config.days))

    if ctx.invoked_subcommand is None:
        console.print("Bedrock Usage - Use --help to see available commands")


@app.command()
def summary(ctx: typer.Context):
    """Show overall usage summary for the period."""
    state: CliState = ctx.obj
    logger.info("Fetching summary...")
    try:
        dataset = _metrics_source(state.config).fetch(state.window)
        result = build_summary(state.window, dataset)
    except (NoDataError, SourceError) as e:
        _fail(str(e))

    render_summary(result, state.window, state.config.output, console)


@app.command()
def models(ctx: typer.Context):
    """Show per-model usage breakdown."""
    state: CliState = ctx.obj
    logger.info("Fetching model metrics...")
    try:
        dataset = _metrics_source(state.config).fetch(state.window)
        report = build_model_report(state.window, dataset)
    except (NoDataError, SourceError) as e:
        _fail(str(e))

    render_models(report, state.window, state.config.output, console)


@app.command()
def trend(ctx: typer.Context):
    """Show daily usage trend over the period."""
    state: CliState = ctx.obj
    logger.info("Fetching daily trend...")
    try:
        dataset = _metrics_source(state.config).fetch(state.window)
        records = build_trend(state.window, dataset)
    except (NoDataError, SourceError) as e:
        _fail(str(e))

    render_trend(records, state.window, state.config.output, console)


@app.command()
def users(ctx: typer.Context):
    """Show per-user/role usage breakdown."""
    state: CliState = ctx.obj
    audit = state.config.audit

    window = state.window.capped(audit.max_days)
    if window.days < state.window.days:
        logger.warning(
            "CloudTrail only supports the last %d days. Capping at %d.",
            audit.max_days, audit.max_days
        )

    logger.info("Fetching CloudTrail events...")
    source = CloudTrailSource(region=state.config.region, event_names=audit.event_names)
    try:
        events = source.fetch(window)
    except SourceError as e:
        _fail(str(e))

    if not events:
        logger.info("No Bedrock invocation events found in the specified period.")

    report = build_user_report(events)
    render_users(report, window, state.config.output, console)


@app.command()
def cost(ctx: typer.Context):
    """Show cost analysis by usage type."""
    state: CliState = ctx.obj
    logger.info("Fetching cost data...")
    try:
        items = CostExplorerSource(metric=state.config.cost.metric).fetch(state.window)
    except SourceError as e:
        _fail(str(e))

    report = build_cost_report(state.window, items, top_n=state.config.cost.top_n)
    render_cost(report, state.window, state.config.output, console)


if __name__ == "__main__":
    app()
