"""
Records handed from the data sources to the reporting core.

These are decoded, immutable views of what the metrics, audit and cost
services returned. Absence of a record means zero, never an error.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

UNKNOWN = "unknown"


class MetricKind(Enum):
    """Per-model counters published by the metrics service."""
    INVOCATIONS = "Invocations"
    INPUT_TOKENS = "InputTokenCount"
    OUTPUT_TOKENS = "OutputTokenCount"


@dataclass(frozen=True)
class MetricSample:
    """Daily sum of one metric for one model."""
    entity_id: str
    date: str  # YYYY-MM-DD, UTC
    metric_kind: MetricKind
    value: int

    def __post_init__(self):
        """Validate the sample value."""
        if self.value < 0:
            raise ValueError(f"metric value cannot be negative: {self.value}")


# entity id -> samples, or None when fetching that entity failed
MetricSeries = Mapping[str, Optional[List[MetricSample]]]


@dataclass(frozen=True)
class MetricDataset:
    """Everything the metrics source observed for one window.

    ``entity_ids`` keeps discovery order, which is the tie-break order of
    the per-model ranking.
    """
    entity_ids: Tuple[str, ...]
    series: Dict[MetricKind, Dict[str, Optional[List[MetricSample]]]] = field(default_factory=dict)

    def for_kind(self, kind: MetricKind) -> Dict[str, Optional[List[MetricSample]]]:
        """Series of one metric kind, with every known entity present."""
        by_entity = self.series.get(kind, {})
        return {entity_id: by_entity.get(entity_id) for entity_id in self.entity_ids}


@dataclass(frozen=True)
class AuditEvent:
    """One model invocation recorded by the audit service."""
    actor: str
    model_id: str
    client_agent: str
    timestamp: Optional[datetime] = None

    @classmethod
    def from_cloudtrail(cls, detail: Mapping[str, Any], timestamp: Optional[datetime] = None) -> "AuditEvent":
        """Decode the ``CloudTrailEvent`` payload of a lookup result.

        Missing fields resolve to ``"unknown"`` rather than dropping the event.
        """
        identity = detail.get("userIdentity") or {}
        request = detail.get("requestParameters") or {}
        return cls(
            actor=resolve_actor(identity),
            model_id=request.get("modelId") or UNKNOWN,
            client_agent=detail.get("userAgent") or UNKNOWN,
            timestamp=timestamp,
        )


def resolve_actor(identity: Mapping[str, Any]) -> str:
    """Pick the most specific name available for a calling identity.

    Order: IAM user name, session issuer user name, last segment of the
    ARN, then ``"unknown"``.
    """
    user_name = identity.get("userName")
    if user_name:
        return user_name

    session_context = identity.get("sessionContext") or {}
    issuer = session_context.get("sessionIssuer") or {}
    if issuer.get("userName"):
        return issuer["userName"]

    arn = identity.get("arn")
    if arn:
        suffix = arn.rsplit("/", 1)[-1]
        if suffix:
            return suffix

    return UNKNOWN


@dataclass(frozen=True)
class CostLineItem:
    """Cost of one usage type on one day."""
    date: str  # YYYY-MM-DD, UTC
    usage_type: str
    amount: Decimal

    def __post_init__(self):
        """Validate the amount."""
        if self.amount < 0:
            raise ValueError(f"cost amount cannot be negative: {self.amount}")
