"""
Cost Explorer source.

Daily Bedrock cost grouped by billing usage type. The Cost Explorer API is
only served from us-east-1, whatever region the usage happened in.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .models import CostLineItem
from bedrock_usage.core.calendar import ReportWindow
from bedrock_usage.core.errors import SourceError

logger = logging.getLogger(__name__)

COST_EXPLORER_REGION = "us-east-1"
BEDROCK_SERVICE = "Amazon Bedrock"
COST_METRICS = ("BlendedCost", "UnblendedCost", "AmortizedCost")


class CostExplorerSource:
    """Bedrock cost line items from Cost Explorer."""

    def __init__(self, client: Optional[Any] = None, metric: str = "BlendedCost"):
        """Initialize the source.

        Raises:
            ValueError: If metric is not a supported cost metric
        """
        if metric not in COST_METRICS:
            raise ValueError(f"metric must be one of: {list(COST_METRICS)}")

        self.metric = metric
        self.client = client or boto3.client("ce", region_name=COST_EXPLORER_REGION)

    def fetch(self, window: ReportWindow) -> List[CostLineItem]:
        """Fetch daily cost per usage type for the window.

        Raises:
            SourceError: If any page of the query fails
        """
        request: Dict[str, Any] = {
            "TimePeriod": {"Start": window.start_key, "End": window.end_key},
            "Granularity": "DAILY",
            "Metrics": [self.metric],
            "Filter": {"Dimensions": {"Key": "SERVICE", "Values": [BEDROCK_SERVICE]}},
            "GroupBy": [{"Type": "DIMENSION", "Key": "USAGE_TYPE"}],
        }

        items: List[CostLineItem] = []
        while True:
            try:
                response = self.client.get_cost_and_usage(**request)
            except (BotoCoreError, ClientError) as e:
                raise SourceError(
                    "Failed to fetch Cost Explorer data. "
                    f"Ensure you have ce:GetCostAndUsage permissions. ({e})",
                    "cost-explorer",
                ) from e

            for period in response.get("ResultsByTime", []):
                day = period["TimePeriod"]["Start"]
                for group in period.get("Groups", []):
                    item = self._line_item(day, group)
                    if item is not None:
                        items.append(item)

            next_token = response.get("NextPageToken")
            if not next_token:
                break
            request["NextPageToken"] = next_token

        return items

    def _line_item(self, day: str, group: Dict[str, Any]) -> Optional[CostLineItem]:
        keys = group.get("Keys") or [""]
        raw_amount = group.get("Metrics", {}).get(self.metric, {}).get("Amount", "0")
        try:
            amount = Decimal(raw_amount)
        except (InvalidOperation, TypeError):
            amount = None
        if amount is None or not amount.is_finite():
            logger.warning("Skipping %s cost on %s with amount %r", keys[0], day, raw_amount)
            return None

        # Credits and refunds arrive as negative amounts
        if amount < 0:
            logger.warning("Skipping negative %s cost %s on %s", keys[0], amount, day)
            return None

        return CostLineItem(date=day, usage_type=keys[0], amount=amount)
