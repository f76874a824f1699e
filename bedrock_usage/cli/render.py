"""
Report rendering for the CLI.

Tables go through Rich; JSON and CSV are written as plain text so they can
be piped into other tools.
"""

import csv
import io
import json
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, List, Sequence

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from bedrock_usage.config.loader import OutputFormat
from bedrock_usage.core.calendar import ReportWindow
from bedrock_usage.core.reconciler import MergedDailyRecord
from bedrock_usage.core.reports import (
    CostDateRecord,
    CostReport,
    ModelReport,
    UsageSummary,
    UserReport,
)

BAR_WIDTH = 30
BAR_CHAR = "█"
BREAKDOWN_MAX_LENGTH = 38
BREAKDOWN_CUT_LENGTH = 35
CENT = Decimal("0.01")


def _format_number(value: int) -> str:
    """Format a count with thousands separators."""
    return f"{value:,}"


def _round_money(amount: Decimal) -> Decimal:
    """Round money to cents, only ever at presentation time."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def _format_currency(amount: Decimal) -> str:
    """Format currency with symbol and thousands separators."""
    return f"${_round_money(amount):,.2f}"


def _bar(value: int, max_value: int, width: int = BAR_WIDTH) -> str:
    """Horizontal bar proportional to value/max_value."""
    if max_value <= 0 or value <= 0:
        return ""
    length = int(Decimal(value * width) / Decimal(max_value) + Decimal("0.5"))
    return BAR_CHAR * min(max(length, 0), width)


def format_breakdown(record: CostDateRecord) -> str:
    """One-line summary of a day's most expensive usage types."""
    parts = [f"{item.label}: {_format_currency(item.cost)}" for item in record.top]
    text = ", ".join(parts) or "-"
    if len(text) > BREAKDOWN_MAX_LENGTH:
        text = text[:BREAKDOWN_CUT_LENGTH] + "..."
    return text


def _title(console: Console, text: str, window: ReportWindow) -> None:
    console.print(f"\n[bold]=== {text} ({window.start_key} ~ {window.end_key}) ===[/bold]\n")


def _echo_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2))


def _echo_csv(header: Sequence[str], rows: List[Sequence[Any]]) -> None:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(header)
    writer.writerows(rows)
    typer.echo(buffer.getvalue(), nl=False)


def render_summary(summary: UsageSummary, window: ReportWindow, fmt: OutputFormat, console: Console) -> None:
    """Render the usage summary."""
    if fmt is OutputFormat.JSON:
        _echo_json({
            "period_start": summary.window_start,
            "period_end": summary.window_end,
            "total_invocations": summary.total_invocations,
            "total_input_tokens": summary.total_input_tokens,
            "total_output_tokens": summary.total_output_tokens,
            "active_models": summary.active_model_count,
        })
        return

    if fmt is OutputFormat.CSV:
        _echo_csv(
            ["period_start", "period_end", "total_invocations", "total_input_tokens",
             "total_output_tokens", "active_models"],
            [[summary.window_start, summary.window_end, summary.total_invocations,
              summary.total_input_tokens, summary.total_output_tokens, summary.active_model_count]],
        )
        return

    _title(console, "Bedrock Usage Summary", window)
    console.print(f"  Total Invocations:   {_format_number(summary.total_invocations):>15}")
    console.print(f"  Total Input Tokens:  {_format_number(summary.total_input_tokens):>15}")
    console.print(f"  Total Output Tokens: {_format_number(summary.total_output_tokens):>15}")
    console.print(f"  Active Models:       {summary.active_model_count:>15}")
    console.print()


def render_models(report: ModelReport, window: ReportWindow, fmt: OutputFormat, console: Console) -> None:
    """Render per-model totals."""
    if fmt is OutputFormat.JSON:
        _echo_json([
            {
                "model_id": record.model_id,
                "short_name": record.short_name,
                "invocations": record.invocations,
                "input_tokens": record.input_tokens,
                "output_tokens": record.output_tokens,
            }
            for record in report.records
        ])
        return

    if fmt is OutputFormat.CSV:
        _echo_csv(
            ["model_id", "short_name", "invocations", "input_tokens", "output_tokens"],
            [[r.model_id, r.short_name, r.invocations, r.input_tokens, r.output_tokens]
             for r in report.records],
        )
        return

    _title(console, "Bedrock Usage by Model", window)
    table = Table(show_footer=True, box=None, header_style="bold")
    table.add_column("Model", footer="[bold]TOTAL[/bold]")
    table.add_column("Invocations", justify="right", footer=_format_number(report.total_invocations))
    table.add_column("Input Tokens", justify="right", footer=_format_number(report.total_input_tokens))
    table.add_column("Output Tokens", justify="right", footer=_format_number(report.total_output_tokens))
    for record in report.records:
        table.add_row(
            escape(record.short_name),
            _format_number(record.invocations),
            _format_number(record.input_tokens),
            _format_number(record.output_tokens),
        )
    console.print(table)
    console.print()


def render_users(report: UserReport, window: ReportWindow, fmt: OutputFormat, console: Console) -> None:
    """Render per-user totals."""
    if fmt is OutputFormat.JSON:
        _echo_json([
            {
                "user": record.actor,
                "invocations": record.invocation_count,
                "top_model": record.top_model,
                "top_client": record.top_client,
                "models": [{"model": m.label, "count": m.count} for m in record.model_breakdown],
                "clients": [{"client": c.label, "count": c.count} for c in record.client_breakdown],
            }
            for record in report.records
        ])
        return

    if fmt is OutputFormat.CSV:
        _echo_csv(
            ["user", "invocations", "top_model", "top_client"],
            [[r.actor, r.invocation_count, r.top_model, r.top_client] for r in report.records],
        )
        return

    _title(console, "Bedrock Usage by User", window)
    if not report.records:
        console.print("  No events found.\n")
        return

    table = Table(show_footer=True, box=None, header_style="bold")
    table.add_column("User", footer="[bold]TOTAL[/bold]")
    table.add_column("Invocations", justify="right", footer=_format_number(report.total_invocations))
    table.add_column("Top Model")
    table.add_column("Client")
    for record in report.records:
        table.add_row(
            escape(record.actor),
            _format_number(record.invocation_count),
            escape(record.top_model),
            escape(record.top_client),
        )
    console.print(table)
    console.print()


def render_trend(records: List[MergedDailyRecord], window: ReportWindow, fmt: OutputFormat, console: Console) -> None:
    """Render the daily trend with a bar per day."""
    if fmt is OutputFormat.JSON:
        _echo_json([
            {
                "date": record.date,
                "invocations": record.invocations,
                "input_tokens": record.input_tokens,
                "output_tokens": record.output_tokens,
            }
            for record in records
        ])
        return

    if fmt is OutputFormat.CSV:
        _echo_csv(
            ["date", "invocations", "input_tokens", "output_tokens"],
            [[r.date, r.invocations, r.input_tokens, r.output_tokens] for r in records],
        )
        return

    max_invocations = max((record.invocations for record in records), default=0)

    _title(console, "Bedrock Daily Usage Trend", window)
    table = Table(box=None, header_style="bold")
    table.add_column("Date")
    table.add_column("Invocations", justify="right")
    table.add_column("Input Tokens", justify="right")
    table.add_column("Output Tokens", justify="right")
    table.add_column("", style="green", no_wrap=True)
    for record in records:
        table.add_row(
            record.date,
            _format_number(record.invocations),
            _format_number(record.input_tokens),
            _format_number(record.output_tokens),
            _bar(record.invocations, max_invocations),
        )
    console.print(table)
    console.print()


def render_cost(report: CostReport, window: ReportWindow, fmt: OutputFormat, console: Console) -> None:
    """Render daily cost with the top usage types per day."""
    if fmt is OutputFormat.JSON:
        _echo_json([
            {
                "date": record.date,
                "total_cost": float(_round_money(record.total)),
                "breakdown": [
                    {"usage_type": item.label, "cost": float(_round_money(item.cost))}
                    for item in record.breakdown
                ],
            }
            for record in report.records
        ])
        return

    if fmt is OutputFormat.CSV:
        header = ["date", "total_cost"]
        for i in range(1, report.top_n + 1):
            header += [f"usage_type_{i}", f"cost_{i}"]
        rows = []
        for record in report.records:
            row: List[Any] = [record.date, _round_money(record.total)]
            for i in range(report.top_n):
                if i < len(record.top):
                    row += [record.top[i].label, _round_money(record.top[i].cost)]
                else:
                    row += ["", _round_money(Decimal(0))]
            rows.append(row)
        _echo_csv(header, rows)
        return

    _title(console, "Bedrock Cost Report", window)
    table = Table(show_footer=True, box=None, header_style="bold")
    table.add_column("Date", footer="[bold]TOTAL[/bold]")
    table.add_column("Total Cost", justify="right", footer=_format_currency(report.total))
    table.add_column("Breakdown")
    for record in report.records:
        table.add_row(
            record.date,
            _format_currency(record.total),
            escape(format_breakdown(record)),
        )
    console.print(table)
    console.print()
