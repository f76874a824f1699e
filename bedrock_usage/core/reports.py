"""
Report construction.

Turns decoded source records into the structures the CLI renders: usage
summary, per-model totals, daily trend, per-user totals and daily cost.

Each builder is a pure function of its inputs. Identifier labels are cached
in ``NameMapping`` instances created per call, so nothing leaks from one
report into the next.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, List, Sequence

from .aggregator import aggregate
from .calendar import ReportWindow
from .errors import NoDataError
from .naming import NameMapping
from .reconciler import MergedDailyRecord, merge_metric_kinds, reconcile_daily
from bedrock_usage.sources.models import AuditEvent, CostLineItem, MetricDataset, MetricKind

logger = logging.getLogger(__name__)

DEFAULT_COST_TOP_N = 3


@dataclass(frozen=True)
class ModelUsageRecord:
    """Window totals for one model."""
    model_id: str
    short_name: str
    invocations: int
    input_tokens: int
    output_tokens: int


@dataclass
class ModelReport:
    """Per-model totals, busiest model first."""
    records: List[ModelUsageRecord]
    total_invocations: int
    total_input_tokens: int
    total_output_tokens: int

    @property
    def active_model_count(self) -> int:
        """Models invoked at least once in the window."""
        return sum(1 for record in self.records if record.invocations > 0)


@dataclass(frozen=True)
class UsageSummary:
    """Headline numbers for a window."""
    window_start: str
    window_end: str
    total_invocations: int
    total_input_tokens: int
    total_output_tokens: int
    active_model_count: int


@dataclass(frozen=True)
class BreakdownEntry:
    """Invocations of one user through one model or client."""
    key: str  # raw model id or user agent
    label: str
    count: int


@dataclass(frozen=True)
class UserUsageRecord:
    """Invocations attributed to one caller."""
    actor: str
    invocation_count: int
    model_breakdown: List[BreakdownEntry]
    client_breakdown: List[BreakdownEntry]
    top_model: str
    top_client: str


@dataclass
class UserReport:
    """Per-user totals, busiest caller first."""
    records: List[UserUsageRecord]
    total_invocations: int


@dataclass(frozen=True)
class UsageTypeCost:
    """Cost of one billing usage type on one day."""
    usage_type: str
    label: str
    cost: Decimal


@dataclass(frozen=True)
class CostDateRecord:
    """Cost of one day, most expensive usage type first.

    ``top`` holds the leading entries of ``breakdown`` shown in tables;
    ``total`` always covers the full breakdown.
    """
    date: str
    total: Decimal
    breakdown: List[UsageTypeCost] = field(default_factory=list)
    top: List[UsageTypeCost] = field(default_factory=list)


@dataclass
class CostReport:
    """Daily cost for every day of the window."""
    records: List[CostDateRecord]
    total: Decimal
    top_n: int = DEFAULT_COST_TOP_N


def _window_samples(dataset: MetricDataset, kind: MetricKind, dates: Sequence[str]):
    """Samples of one kind within the window, checking the kind has data."""
    series = dataset.for_kind(kind)
    available = [samples for samples in series.values() if samples is not None]
    if not available:
        raise NoDataError(f"No {kind.value} data available for any model")

    failed = len(series) - len(available)
    if failed:
        logger.warning("%s unavailable for %d of %d models, counted as zero", kind.value, failed, len(series))

    in_window = set(dates)
    for samples in available:
        for sample in samples:
            if sample.metric_kind is kind and sample.date in in_window:
                yield sample


def build_model_report(window: ReportWindow, dataset: MetricDataset) -> ModelReport:
    """Total each model's metrics over the window.

    Every model the source discovered appears, with zeros if it had no
    samples. Models are ranked by invocations; ties keep discovery order.

    Raises:
        NoDataError: If a metric kind has no data for any model
    """
    dates = window.dates
    names = NameMapping.for_models()

    sums: Dict[MetricKind, Dict[str, int]] = {}
    for kind in MetricKind:
        by_entity = aggregate(
            _window_samples(dataset, kind, dates),
            key_fn=lambda s: s.entity_id,
            value_fn=lambda s: s.value,
        )
        sums[kind] = {group.key: group.total for group in by_entity.groups}

    unranked = [
        ModelUsageRecord(
            model_id=entity_id,
            short_name=names.label(entity_id),
            invocations=sums[MetricKind.INVOCATIONS].get(entity_id, 0),
            input_tokens=sums[MetricKind.INPUT_TOKENS].get(entity_id, 0),
            output_tokens=sums[MetricKind.OUTPUT_TOKENS].get(entity_id, 0),
        )
        for entity_id in dataset.entity_ids
    ]
    ranked = aggregate(unranked, key_fn=lambda r: r.model_id, value_fn=lambda r: r.invocations)

    return ModelReport(
        records=[group.records[0] for group in ranked.groups],
        total_invocations=ranked.total,
        total_input_tokens=sum(r.input_tokens for r in unranked),
        total_output_tokens=sum(r.output_tokens for r in unranked),
    )


def build_summary(window: ReportWindow, dataset: MetricDataset) -> UsageSummary:
    """Headline totals for the window."""
    models = build_model_report(window, dataset)
    return UsageSummary(
        window_start=window.start_key,
        window_end=window.end_key,
        total_invocations=models.total_invocations,
        total_input_tokens=models.total_input_tokens,
        total_output_tokens=models.total_output_tokens,
        active_model_count=models.active_model_count,
    )


def build_trend(window: ReportWindow, dataset: MetricDataset) -> List[MergedDailyRecord]:
    """Daily totals across all models, one record per window day.

    Raises:
        NoDataError: If a metric kind has no data for any model
    """
    dates = window.dates
    series_by_kind = {
        kind: reconcile_daily(dataset.for_kind(kind), kind, dates)
        for kind in MetricKind
    }
    return merge_metric_kinds(series_by_kind, dates)


def build_user_report(events: Sequence[AuditEvent]) -> UserReport:
    """Count invocations per caller with their most used model and client.

    Models and clients are grouped by their raw identifiers, so two user
    agents sharing a label stay separate entries.
    """
    models = NameMapping.for_models()
    clients = NameMapping.for_clients()

    by_actor = aggregate(events, key_fn=lambda e: e.actor)

    records = []
    for group in by_actor.groups:
        model_breakdown = _breakdown(group.records, lambda e: e.model_id, models)
        client_breakdown = _breakdown(group.records, lambda e: e.client_agent, clients)
        records.append(UserUsageRecord(
            actor=group.key,
            invocation_count=group.total,
            model_breakdown=model_breakdown,
            client_breakdown=client_breakdown,
            top_model=model_breakdown[0].label,
            top_client=client_breakdown[0].label,
        ))

    logger.debug("Grouped %d events into %d users", by_actor.total, len(records))
    return UserReport(records=records, total_invocations=by_actor.total)


def _breakdown(events: Iterable[AuditEvent], key_fn, names: NameMapping) -> List[BreakdownEntry]:
    ranked = aggregate(events, key_fn=key_fn)
    return [
        BreakdownEntry(key=group.key, label=names.label(group.key), count=group.total)
        for group in ranked.groups
    ]


def build_cost_report(
    window: ReportWindow,
    items: Iterable[CostLineItem],
    top_n: int = DEFAULT_COST_TOP_N,
) -> CostReport:
    """Total cost per day with usage types ranked by cost.

    Days without line items are reported at zero. Line items dated outside
    the window are ignored. Each record keeps its full breakdown and the
    ``top_n`` most expensive usage types.
    """
    if top_n <= 0:
        raise ValueError("top_n must be > 0")

    dates = window.dates
    in_window = set(dates)

    kept = []
    for item in items:
        if item.date in in_window:
            kept.append(item)
        else:
            logger.debug("Ignoring cost item for %s outside %s ~ %s", item.date, window.start_key, window.end_key)

    labels = NameMapping.for_usage_types().build(item.usage_type for item in kept)
    by_date = aggregate(kept, key_fn=lambda i: i.date, value_fn=lambda i: i.amount, zero=Decimal(0))
    groups = {group.key: group for group in by_date.groups}

    records = []
    for day in dates:
        group = groups.get(day)
        if group is None:
            records.append(CostDateRecord(date=day, total=Decimal(0)))
            continue

        by_type = aggregate(
            group.records,
            key_fn=lambda i: i.usage_type,
            value_fn=lambda i: i.amount,
            zero=Decimal(0),
        )
        records.append(CostDateRecord(
            date=day,
            total=by_type.total,
            breakdown=_usage_type_costs(by_type.groups, labels),
            top=_usage_type_costs(by_type.top(top_n), labels),
        ))

    return CostReport(records=records, total=by_date.total, top_n=top_n)


def _usage_type_costs(groups, labels: Dict[str, str]) -> List[UsageTypeCost]:
    return [UsageTypeCost(usage_type=g.key, label=labels[g.key], cost=g.total) for g in groups]
