"""
CloudTrail audit source.

CloudTrail's lookup API filters on a single event name per query, so each
invocation event name is queried separately and the pages merged. Events
are de-duplicated by id before they reach the report builders.
"""

import json
import logging
from typing import Any, Dict, Iterator, List, Optional, Sequence

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .models import AuditEvent
from bedrock_usage.core.calendar import ReportWindow
from bedrock_usage.core.errors import SourceError

logger = logging.getLogger(__name__)

DEFAULT_EVENT_NAMES = (
    "InvokeModel",
    "InvokeModelWithResponseStream",
    "Converse",
    "ConverseStream",
)
LOOKBACK_LIMIT_DAYS = 90
PAGE_SIZE = 50


class CloudTrailSource:
    """Bedrock invocation events from CloudTrail."""

    def __init__(
        self,
        region: str,
        client: Optional[Any] = None,
        event_names: Sequence[str] = DEFAULT_EVENT_NAMES,
    ):
        """Initialize the source.

        Raises:
            ValueError: If region or event_names is empty
        """
        if not region or not region.strip():
            raise ValueError("region is required and cannot be empty")
        if not event_names:
            raise ValueError("event_names cannot be empty")

        self.region = region
        self.event_names = tuple(event_names)
        self.client = client or boto3.client("cloudtrail", region_name=region)

    def iter_pages(self, event_name: str, window: ReportWindow) -> Iterator[Dict[str, Any]]:
        """Lazily yield lookup pages for one event name until exhausted."""
        paginator = self.client.get_paginator("lookup_events")
        yield from paginator.paginate(
            LookupAttributes=[{"AttributeKey": "EventName", "AttributeValue": event_name}],
            StartTime=window.start_time,
            EndTime=window.end_time,
            PaginationConfig={"PageSize": PAGE_SIZE},
        )

    def fetch(self, window: ReportWindow) -> List[AuditEvent]:
        """Fetch all invocation events in the window.

        A failing query for one event name is logged and skipped; the other
        names are still queried.

        Raises:
            SourceError: If the query failed for every event name
        """
        seen_ids = set()
        events: List[AuditEvent] = []
        failed = 0

        for event_name in self.event_names:
            fetched = 0
            try:
                for page in self.iter_pages(event_name, window):
                    for raw in page.get("Events", []):
                        event_id = raw.get("EventId")
                        if event_id:
                            if event_id in seen_ids:
                                continue
                            seen_ids.add(event_id)
                        event = self._decode(raw)
                        if event is not None:
                            events.append(event)
                            fetched += 1
            except (BotoCoreError, ClientError) as e:
                logger.error("Failed to query CloudTrail for %s events: %s", event_name, e)
                failed += 1
                continue
            logger.debug("Fetched %d %s events", fetched, event_name)

        if failed == len(self.event_names):
            raise SourceError(
                f"Failed to query CloudTrail for all {failed} event names", "cloudtrail"
            )

        return events

    @staticmethod
    def _decode(raw: Dict[str, Any]) -> Optional[AuditEvent]:
        """Decode one lookup result, or None if its payload is unreadable."""
        payload = raw.get("CloudTrailEvent")
        try:
            detail = json.loads(payload) if isinstance(payload, str) else payload
        except json.JSONDecodeError as e:
            logger.warning("Skipping event %s with unreadable payload: %s", raw.get("EventId"), e)
            return None

        if not isinstance(detail, dict):
            logger.warning("Skipping event %s without a payload", raw.get("EventId"))
            return None

        return AuditEvent.from_cloudtrail(detail, timestamp=raw.get("EventTime"))
