"""
Data sources for Bedrock usage reports.

Wraps the CloudWatch, CloudTrail and Cost Explorer APIs and decodes their
responses into the records consumed by the reporting core.
"""

from .cloudtrail import CloudTrailSource
from .cloudwatch import CloudWatchSource
from .cost_explorer import CostExplorerSource

__all__ = ["CloudTrailSource", "CloudWatchSource", "CostExplorerSource"]
