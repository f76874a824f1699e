"""
CloudWatch metrics source.

Discovers the models that published Bedrock metrics in a region and fetches
their daily sums.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .models import MetricDataset, MetricKind, MetricSample
from bedrock_usage.core.calendar import ReportWindow
from bedrock_usage.core.errors import NoDataError, SourceError

logger = logging.getLogger(__name__)

NAMESPACE = "AWS/Bedrock"
MODEL_DIMENSION = "ModelId"
DAY_SECONDS = 86400


def _sample_date(timestamp: Any) -> str:
    """UTC calendar day of a datapoint timestamp."""
    if isinstance(timestamp, datetime):
        if timestamp.tzinfo is not None:
            timestamp = timestamp.astimezone(timezone.utc)
        return timestamp.strftime("%Y-%m-%d")
    return str(timestamp)[:10]


def _to_count(value: Any) -> int:
    """Convert a datapoint sum to an exact integer count."""
    return int(Decimal(str(value)).to_integral_value(rounding=ROUND_HALF_UP))


class CloudWatchSource:
    """Bedrock invocation and token metrics from CloudWatch."""

    def __init__(self, region: str, client: Optional[Any] = None, max_workers: int = 4):
        """Initialize the source.

        Args:
            region: AWS region to query (required)
            client: Preconfigured CloudWatch client (built from region if omitted)
            max_workers: Parallel metric requests; 1 fetches sequentially

        Raises:
            ValueError: If region is empty or max_workers is not positive
        """
        if not region or not region.strip():
            raise ValueError("region is required and cannot be empty")
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")

        self.region = region
        self.max_workers = max_workers
        self.client = client or boto3.client("cloudwatch", region_name=region)

    def list_models(self) -> List[str]:
        """Model ids with an Invocations metric in this region, sorted."""
        paginator = self.client.get_paginator("list_metrics")
        model_ids = set()
        for page in paginator.paginate(Namespace=NAMESPACE, MetricName=MetricKind.INVOCATIONS.value):
            for metric in page.get("Metrics", []):
                for dimension in metric.get("Dimensions", []):
                    if dimension.get("Name") == MODEL_DIMENSION and dimension.get("Value"):
                        model_ids.add(dimension["Value"])
        return sorted(model_ids)

    def daily_samples(
        self,
        model_id: str,
        kind: MetricKind,
        window: ReportWindow,
    ) -> Optional[List[MetricSample]]:
        """Daily sums of one metric for one model.

        Returns:
            Samples (possibly empty), or None if the request failed
        """
        try:
            response = self.client.get_metric_statistics(
                Namespace=NAMESPACE,
                MetricName=kind.value,
                Dimensions=[{"Name": MODEL_DIMENSION, "Value": model_id}],
                StartTime=window.start_time,
                EndTime=window.end_time,
                Period=DAY_SECONDS,
                Statistics=["Sum"],
            )
        except (BotoCoreError, ClientError) as e:
            logger.warning("Failed to fetch %s for %s: %s", kind.value, model_id, e)
            return None

        return [
            MetricSample(
                entity_id=model_id,
                date=_sample_date(point["Timestamp"]),
                metric_kind=kind,
                value=_to_count(point.get("Sum", 0)),
            )
            for point in response.get("Datapoints", [])
        ]

    def fetch(self, window: ReportWindow) -> MetricDataset:
        """Fetch every metric kind for every model over the window.

        Raises:
            SourceError: If the model list could not be retrieved
            NoDataError: If no model published metrics in the region
        """
        try:
            model_ids = self.list_models()
        except (BotoCoreError, ClientError) as e:
            raise SourceError(f"Failed to list CloudWatch metrics: {e}", "cloudwatch") from e

        if not model_ids:
            raise NoDataError(f"No Bedrock models found in CloudWatch metrics for region {self.region}")

        logger.info("Fetching %d metrics for %d models", len(MetricKind), len(model_ids))

        tasks = [(model_id, kind) for kind in MetricKind for model_id in model_ids]
        if self.max_workers == 1:
            results = [self.daily_samples(model_id, kind, window) for model_id, kind in tasks]
        else:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                results = list(executor.map(lambda task: self.daily_samples(task[0], task[1], window), tasks))

        series: Dict[MetricKind, Dict[str, Optional[List[MetricSample]]]] = {kind: {} for kind in MetricKind}
        for (model_id, kind), samples in zip(tasks, results):
            series[kind][model_id] = samples

        return MetricDataset(entity_ids=tuple(model_ids), series=series)
