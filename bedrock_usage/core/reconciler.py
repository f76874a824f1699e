"""
Daily time-series reconciliation.

The metrics source reports sparse per-model samples: a model with no
traffic on a day simply has no sample. Reconciliation sums those samples
across models and lays them onto the full calendar, so every day of the
window is present exactly once.
"""

from dataclasses import dataclass
from typing import Dict, List, Mapping, Sequence

from .errors import NoDataError, ReconciliationError
from bedrock_usage.sources.models import MetricKind, MetricSeries


@dataclass(frozen=True)
class DailyPoint:
    """Cross-model total of one metric on one day."""
    date: str
    value: int


@dataclass(frozen=True)
class MergedDailyRecord:
    """All metric totals for one day."""
    date: str
    invocations: int
    input_tokens: int
    output_tokens: int


def reconcile_daily(
    series_per_entity: MetricSeries,
    metric_kind: MetricKind,
    dates: Sequence[str],
) -> List[DailyPoint]:
    """Sum per-model samples by day and zero-fill the window.

    Args:
        series_per_entity: Samples per model; ``None`` marks a model whose
            fetch failed and is treated as having no samples
        metric_kind: Metric to reconcile; samples of other kinds are ignored
        dates: Window dates in calendar order

    Returns:
        One point per entry of ``dates``, in the same order

    Raises:
        NoDataError: If no model is known or every model's fetch failed
    """
    available = {
        entity_id: samples
        for entity_id, samples in series_per_entity.items()
        if samples is not None
    }
    if not available:
        raise NoDataError(f"No {metric_kind.value} data available for any model")

    totals: Dict[str, int] = {}
    for samples in available.values():
        for sample in samples:
            if sample.metric_kind is not metric_kind:
                continue
            totals[sample.date] = totals.get(sample.date, 0) + sample.value

    return [DailyPoint(date=day, value=totals.get(day, 0)) for day in dates]


def merge_metric_kinds(
    series_by_kind: Mapping[MetricKind, Sequence[DailyPoint]],
    dates: Sequence[str],
) -> List[MergedDailyRecord]:
    """Zip reconciled series of each metric kind into per-day records.

    Raises:
        ReconciliationError: If a kind is missing or a series does not line
            up with ``dates``
    """
    for kind in MetricKind:
        if kind not in series_by_kind:
            raise ReconciliationError(f"Missing reconciled series for {kind.value}")
        series = series_by_kind[kind]
        if len(series) != len(dates):
            raise ReconciliationError(
                f"{kind.value} series has {len(series)} points for a {len(dates)}-day window"
            )
        for point, day in zip(series, dates):
            if point.date != day:
                raise ReconciliationError(
                    f"{kind.value} series is out of calendar order: {point.date} != {day}"
                )

    invocations = series_by_kind[MetricKind.INVOCATIONS]
    input_tokens = series_by_kind[MetricKind.INPUT_TOKENS]
    output_tokens = series_by_kind[MetricKind.OUTPUT_TOKENS]

    return [
        MergedDailyRecord(
            date=day,
            invocations=invocations[i].value,
            input_tokens=input_tokens[i].value,
            output_tokens=output_tokens[i].value,
        )
        for i, day in enumerate(dates)
    ]
