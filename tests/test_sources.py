"""
Unit tests for the AWS data sources.

All AWS clients are mocked; responses follow the shapes boto3 returns.
"""

import json
from datetime import date, datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock, Mock, patch

import pytest
from botocore.exceptions import ClientError, NoCredentialsError

from bedrock_usage.core.calendar import ReportWindow
from bedrock_usage.core.errors import NoDataError, SourceError
from bedrock_usage.sources.cloudtrail import DEFAULT_EVENT_NAMES, CloudTrailSource
from bedrock_usage.sources.cloudwatch import CloudWatchSource, _sample_date, _to_count
from bedrock_usage.sources.cost_explorer import CostExplorerSource
from bedrock_usage.sources.models import MetricKind

WINDOW = ReportWindow(days=2, end=date(2026, 2, 7))

HAIKU = "anthropic.claude-3-haiku-20240307-v1:0"
SONNET = "anthropic.claude-3-5-sonnet-20241022-v2:0"


def _client_error(operation="Operation"):
    return ClientError({"Error": {"Code": "AccessDeniedException", "Message": "denied"}}, operation)


def _paginator(pages):
    paginator = Mock()
    paginator.paginate.return_value = iter(pages)
    return paginator


def _metrics_page(*model_ids):
    return {
        "Metrics": [
            {"Namespace": "AWS/Bedrock", "MetricName": "Invocations",
             "Dimensions": [{"Name": "ModelId", "Value": model_id}]}
            for model_id in model_ids
        ]
    }


class TestCloudWatchHelpers:
    """Test datapoint conversion helpers."""

    def test_sample_date_in_utc(self):
        """Test that aware timestamps are converted to the UTC day."""
        stamp = datetime(2026, 2, 5, 0, 0, tzinfo=timezone.utc)
        assert _sample_date(stamp) == "2026-02-05"

    def test_sample_date_from_string(self):
        """Test that ISO strings are truncated to their date."""
        assert _sample_date("2026-02-05T00:00:00Z") == "2026-02-05"

    def test_to_count_is_exact(self):
        """Test that float sums become exact integers."""
        assert _to_count(123456789.0) == 123456789
        assert _to_count(2.0) == 2
        assert _to_count(0) == 0


class TestCloudWatchSource:
    """Test the CloudWatch metrics source."""

    def setup_method(self):
        """Set up a mocked CloudWatch client."""
        self.client = MagicMock()
        self.client.get_paginator.return_value = _paginator([_metrics_page(SONNET, HAIKU, SONNET)])
        self.client.get_metric_statistics.return_value = {"Datapoints": []}

    def test_init_validation(self):
        """Test that region and worker count are validated."""
        with pytest.raises(ValueError, match="region"):
            CloudWatchSource(region="", client=self.client)
        with pytest.raises(ValueError, match="max_workers"):
            CloudWatchSource(region="us-east-1", client=self.client, max_workers=0)

    @patch("bedrock_usage.sources.cloudwatch.boto3")
    def test_builds_client_for_region(self, mock_boto3):
        """Test that the client is created for the requested region."""
        source = CloudWatchSource(region="eu-west-1")

        mock_boto3.client.assert_called_once_with("cloudwatch", region_name="eu-west-1")
        assert source.client is mock_boto3.client.return_value

    def test_list_models_sorted_unique(self):
        """Test model discovery."""
        source = CloudWatchSource(region="us-east-1", client=self.client)

        assert source.list_models() == sorted([HAIKU, SONNET])
        self.client.get_paginator.assert_called_once_with("list_metrics")

    def test_daily_samples_request(self):
        """Test the metric statistics query and its decoding."""
        self.client.get_metric_statistics.return_value = {
            "Datapoints": [
                {"Timestamp": datetime(2026, 2, 5, tzinfo=timezone.utc), "Sum": 12.0, "Unit": "Count"},
                {"Timestamp": datetime(2026, 2, 6, tzinfo=timezone.utc), "Sum": 3.0, "Unit": "Count"},
            ]
        }
        source = CloudWatchSource(region="us-east-1", client=self.client)

        samples = source.daily_samples(HAIKU, MetricKind.INVOCATIONS, WINDOW)

        assert [(s.date, s.value) for s in samples] == [("2026-02-05", 12), ("2026-02-06", 3)]
        kwargs = self.client.get_metric_statistics.call_args.kwargs
        assert kwargs["Namespace"] == "AWS/Bedrock"
        assert kwargs["MetricName"] == "Invocations"
        assert kwargs["Dimensions"] == [{"Name": "ModelId", "Value": HAIKU}]
        assert kwargs["Period"] == 86400
        assert kwargs["Statistics"] == ["Sum"]
        assert kwargs["StartTime"] == WINDOW.start_time
        assert kwargs["EndTime"] == WINDOW.end_time

    def test_daily_samples_failure_returns_none(self):
        """Test that a failed request is reported as missing, not empty."""
        self.client.get_metric_statistics.side_effect = _client_error("GetMetricStatistics")
        source = CloudWatchSource(region="us-east-1", client=self.client)

        assert source.daily_samples(HAIKU, MetricKind.INVOCATIONS, WINDOW) is None

    @pytest.mark.parametrize("max_workers", [1, 4])
    def test_fetch_collects_every_kind_and_model(self, max_workers):
        """Test that fetch queries each model for each metric."""
        def statistics(**kwargs):
            if kwargs["MetricName"] == "Invocations":
                return {"Datapoints": [{"Timestamp": datetime(2026, 2, 5, tzinfo=timezone.utc), "Sum": 2.0}]}
            return {"Datapoints": []}

        self.client.get_metric_statistics.side_effect = statistics
        source = CloudWatchSource(region="us-east-1", client=self.client, max_workers=max_workers)

        dataset = source.fetch(WINDOW)

        assert set(dataset.entity_ids) == {HAIKU, SONNET}
        assert self.client.get_metric_statistics.call_count == 6
        invocations = dataset.for_kind(MetricKind.INVOCATIONS)
        assert all(len(samples) == 1 for samples in invocations.values())
        assert dataset.for_kind(MetricKind.OUTPUT_TOKENS)[HAIKU] == []

    def test_fetch_marks_failed_series(self):
        """Test that one failed request leaves None for that model only."""
        def statistics(**kwargs):
            model_id = kwargs["Dimensions"][0]["Value"]
            if model_id == HAIKU and kwargs["MetricName"] == "InputTokenCount":
                raise _client_error("GetMetricStatistics")
            return {"Datapoints": []}

        self.client.get_metric_statistics.side_effect = statistics
        source = CloudWatchSource(region="us-east-1", client=self.client, max_workers=1)

        dataset = source.fetch(WINDOW)

        assert dataset.for_kind(MetricKind.INPUT_TOKENS)[HAIKU] is None
        assert dataset.for_kind(MetricKind.INPUT_TOKENS)[SONNET] == []

    def test_fetch_no_models_raises(self):
        """Test that a region without Bedrock metrics is no data."""
        self.client.get_paginator.return_value = _paginator([{"Metrics": []}])
        source = CloudWatchSource(region="us-east-1", client=self.client)

        with pytest.raises(NoDataError, match="us-east-1"):
            source.fetch(WINDOW)

    def test_fetch_list_failure_raises(self):
        """Test that failing to list models is a source error."""
        self.client.get_paginator.return_value.paginate.side_effect = _client_error("ListMetrics")
        source = CloudWatchSource(region="us-east-1", client=self.client)

        with pytest.raises(SourceError) as excinfo:
            source.fetch(WINDOW)
        assert excinfo.value.source == "cloudwatch"


def _trail_event(event_id, user="alice", model_id=HAIKU, agent="Boto3/1.34.0"):
    return {
        "EventId": event_id,
        "EventName": "InvokeModel",
        "EventTime": datetime(2026, 2, 5, 12, 0, tzinfo=timezone.utc),
        "CloudTrailEvent": json.dumps({
            "userIdentity": {"type": "IAMUser", "userName": user},
            "requestParameters": {"modelId": model_id},
            "userAgent": agent,
        }),
    }


class TestCloudTrailSource:
    """Test the CloudTrail audit source."""

    def setup_method(self):
        """Set up a mocked CloudTrail client."""
        self.client = MagicMock()

    def _pages_by_event_name(self, pages):
        def paginate(**kwargs):
            event_name = kwargs["LookupAttributes"][0]["AttributeValue"]
            result = pages.get(event_name, [])
            if isinstance(result, Exception):
                raise result
            return iter(result)

        paginator = Mock()
        paginator.paginate.side_effect = paginate
        self.client.get_paginator.return_value = paginator
        return paginator

    def test_init_validation(self):
        """Test that region and event names are required."""
        with pytest.raises(ValueError):
            CloudTrailSource(region="", client=self.client)
        with pytest.raises(ValueError):
            CloudTrailSource(region="us-east-1", client=self.client, event_names=())

    def test_queries_each_event_name(self):
        """Test one lookup per event name with the window bounds."""
        paginator = self._pages_by_event_name({})
        source = CloudTrailSource(region="us-east-1", client=self.client)

        assert source.fetch(WINDOW) == []

        assert paginator.paginate.call_count == len(DEFAULT_EVENT_NAMES)
        kwargs = paginator.paginate.call_args.kwargs
        assert kwargs["StartTime"] == WINDOW.start_time
        assert kwargs["EndTime"] == WINDOW.end_time
        assert kwargs["PaginationConfig"] == {"PageSize": 50}

    def test_merges_pages_and_decodes(self):
        """Test that events from every page are decoded."""
        self._pages_by_event_name({
            "InvokeModel": [{"Events": [_trail_event("e1")]}, {"Events": [_trail_event("e2", user="bob")]}],
            "Converse": [{"Events": [_trail_event("e3", agent="aws-cli/2.15.0")]}],
        })
        source = CloudTrailSource(region="us-east-1", client=self.client)

        events = source.fetch(WINDOW)

        assert [e.actor for e in events] == ["alice", "bob", "alice"]
        assert events[2].client_agent == "aws-cli/2.15.0"
        assert events[0].timestamp == datetime(2026, 2, 5, 12, 0, tzinfo=timezone.utc)

    def test_deduplicates_by_event_id(self):
        """Test that an event returned twice is counted once."""
        self._pages_by_event_name({
            "InvokeModel": [{"Events": [_trail_event("e1"), _trail_event("e1")]}],
            "InvokeModelWithResponseStream": [{"Events": [_trail_event("e1")]}],
        })
        source = CloudTrailSource(region="us-east-1", client=self.client)

        assert len(source.fetch(WINDOW)) == 1

    def test_failed_event_name_skipped(self):
        """Test that one failing lookup does not lose the others."""
        self._pages_by_event_name({
            "InvokeModel": _client_error("LookupEvents"),
            "Converse": [{"Events": [_trail_event("e9")]}],
        })
        source = CloudTrailSource(region="us-east-1", client=self.client)

        events = source.fetch(WINDOW)

        assert len(events) == 1

    def test_all_event_names_failed_raises(self):
        """Test that a lookup failing for every event name is an error."""
        self._pages_by_event_name({name: _client_error("LookupEvents") for name in DEFAULT_EVENT_NAMES})
        source = CloudTrailSource(region="us-east-1", client=self.client)

        with pytest.raises(SourceError) as excinfo:
            source.fetch(WINDOW)

        assert excinfo.value.source == "cloudtrail"

    def test_missing_credentials_raises(self):
        """Test that missing credentials fail the fetch instead of returning nothing."""
        self._pages_by_event_name({"InvokeModel": NoCredentialsError()})
        source = CloudTrailSource(region="us-east-1", client=self.client, event_names=["InvokeModel"])

        with pytest.raises(SourceError):
            source.fetch(WINDOW)

    def test_unreadable_payload_skipped(self):
        """Test that events without a readable payload are dropped."""
        broken = {"EventId": "bad", "CloudTrailEvent": "{not json"}
        empty = {"EventId": "empty"}
        self._pages_by_event_name({"InvokeModel": [{"Events": [broken, empty, _trail_event("ok")]}]})
        source = CloudTrailSource(region="us-east-1", client=self.client)

        events = source.fetch(WINDOW)

        assert len(events) == 1
        assert events[0].actor == "alice"


def _cost_page(days, token=None):
    page = {
        "ResultsByTime": [
            {
                "TimePeriod": {"Start": day, "End": "2026-02-07"},
                "Total": {},
                "Groups": [
                    {"Keys": [usage_type], "Metrics": {"BlendedCost": {"Amount": amount, "Unit": "USD"}}}
                    for usage_type, amount in groups
                ],
            }
            for day, groups in days
        ]
    }
    if token:
        page["NextPageToken"] = token
    return page


class TestCostExplorerSource:
    """Test the Cost Explorer source."""

    def setup_method(self):
        """Set up a mocked Cost Explorer client."""
        self.client = MagicMock()

    @patch("bedrock_usage.sources.cost_explorer.boto3")
    def test_client_always_in_us_east_1(self, mock_boto3):
        """Test that Cost Explorer is queried in its only region."""
        CostExplorerSource()
        mock_boto3.client.assert_called_once_with("ce", region_name="us-east-1")

    def test_invalid_metric_rejected(self):
        """Test that unknown cost metrics are rejected."""
        with pytest.raises(ValueError):
            CostExplorerSource(client=self.client, metric="NetCost")

    def test_request_shape(self):
        """Test the daily, usage-type grouped Bedrock query."""
        self.client.get_cost_and_usage.return_value = _cost_page([])
        source = CostExplorerSource(client=self.client)

        source.fetch(WINDOW)

        kwargs = self.client.get_cost_and_usage.call_args.kwargs
        assert kwargs["TimePeriod"] == {"Start": "2026-02-05", "End": "2026-02-07"}
        assert kwargs["Granularity"] == "DAILY"
        assert kwargs["Metrics"] == ["BlendedCost"]
        assert kwargs["Filter"] == {"Dimensions": {"Key": "SERVICE", "Values": ["Amazon Bedrock"]}}
        assert kwargs["GroupBy"] == [{"Type": "DIMENSION", "Key": "USAGE_TYPE"}]

    def test_decodes_amounts_exactly(self):
        """Test that amounts are parsed as Decimals."""
        self.client.get_cost_and_usage.return_value = _cost_page([
            ("2026-02-05", [("USE1-InvokeModel-Anthropic-Claude-Haiku", "0.1234567")]),
        ])
        source = CostExplorerSource(client=self.client)

        items = source.fetch(WINDOW)

        assert len(items) == 1
        assert items[0].date == "2026-02-05"
        assert items[0].amount == Decimal("0.1234567")

    def test_follows_next_page_token(self):
        """Test that every page of results is read."""
        self.client.get_cost_and_usage.side_effect = [
            _cost_page([("2026-02-05", [("USE1-a", "1.00")])], token="page-2"),
            _cost_page([("2026-02-06", [("USE1-a", "2.00")])]),
        ]
        source = CostExplorerSource(client=self.client)

        items = source.fetch(WINDOW)

        assert [i.date for i in items] == ["2026-02-05", "2026-02-06"]
        second_call = self.client.get_cost_and_usage.call_args_list[1].kwargs
        assert second_call["NextPageToken"] == "page-2"

    def test_invalid_and_negative_amounts_skipped(self):
        """Test that credits and unparseable amounts are dropped."""
        self.client.get_cost_and_usage.return_value = _cost_page([
            ("2026-02-05", [("USE1-credit", "-5.00"), ("USE1-bad", "n/a"), ("USE1-ok", "0.50")]),
        ])
        source = CostExplorerSource(client=self.client)

        items = source.fetch(WINDOW)

        assert [i.usage_type for i in items] == ["USE1-ok"]

    def test_failure_raises_source_error(self):
        """Test that API errors carry a permission hint."""
        self.client.get_cost_and_usage.side_effect = _client_error("GetCostAndUsage")
        source = CostExplorerSource(client=self.client)

        with pytest.raises(SourceError, match="ce:GetCostAndUsage") as excinfo:
            source.fetch(WINDOW)
        assert excinfo.value.source == "cost-explorer"
