"""
Configuration management and loading.

Report defaults are read from an optional YAML file; command-line options
override them.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from bedrock_usage.sources.cloudtrail import DEFAULT_EVENT_NAMES, LOOKBACK_LIMIT_DAYS
from bedrock_usage.sources.cost_explorer import COST_METRICS

DEFAULT_CONFIG_PATH = Path.home() / ".bedrock-usage.yaml"


class OutputFormat(Enum):
    """Supported report output formats."""
    TABLE = "table"
    JSON = "json"
    CSV = "csv"


@dataclass(frozen=True)
class MetricsConfig:
    """Settings for the CloudWatch source."""
    max_workers: int = 4

    def __post_init__(self):
        """Validate worker count."""
        if self.max_workers < 1:
            raise ValueError("max_workers must be >= 1")


@dataclass(frozen=True)
class AuditConfig:
    """Settings for the CloudTrail source."""
    max_days: int = LOOKBACK_LIMIT_DAYS
    event_names: Tuple[str, ...] = DEFAULT_EVENT_NAMES

    def __post_init__(self):
        """Validate audit settings."""
        if self.max_days <= 0:
            raise ValueError("max_days must be > 0")
        if not self.event_names:
            raise ValueError("event_names cannot be empty")


@dataclass(frozen=True)
class CostConfig:
    """Settings for the Cost Explorer source and cost report."""
    top_n: int = 3
    metric: str = "BlendedCost"

    def __post_init__(self):
        """Validate cost settings."""
        if self.top_n <= 0:
            raise ValueError("top_n must be > 0")
        if self.metric not in COST_METRICS:
            raise ValueError(f"metric must be one of: {list(COST_METRICS)}")


@dataclass(frozen=True)
class ReportConfig:
    """Complete report configuration."""
    region: str = "us-east-1"
    days: int = 7
    output: OutputFormat = OutputFormat.TABLE
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    audit: AuditConfig = field(default_factory=AuditConfig)
    cost: CostConfig = field(default_factory=CostConfig)

    def __post_init__(self):
        """Validate top-level values."""
        if not self.region or not self.region.strip():
            raise ValueError("region cannot be empty")
        if self.days <= 0:
            raise ValueError("days must be > 0")

    def with_overrides(
        self,
        region: Optional[str] = None,
        days: Optional[int] = None,
        output: Optional[OutputFormat] = None,
    ) -> "ReportConfig":
        """Return a copy with command-line overrides applied."""
        changes: Dict[str, Any] = {}
        if region is not None:
            changes["region"] = region
        if days is not None:
            changes["days"] = days
        if output is not None:
            changes["output"] = output
        return replace(self, **changes) if changes else self


def load_report_config(path: str) -> ReportConfig:
    """Load and validate report configuration from a YAML file.

    Strict validation rejects unknown keys so that a typo never silently
    falls back to a default.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated ReportConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Report config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if raw_config is None:
        return ReportConfig()
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration file must contain a mapping")

    allowed_top_keys = {'region', 'days', 'output', 'metrics', 'audit', 'cost'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    values: Dict[str, Any] = {}

    if 'region' in raw_config:
        region = raw_config['region']
        if not isinstance(region, str) or not region.strip():
            raise ValueError("'region' must be a non-empty string")
        values['region'] = region

    if 'days' in raw_config:
        values['days'] = _positive_int(raw_config['days'], "days")

    if 'output' in raw_config:
        output = raw_config['output']
        if not isinstance(output, str):
            raise ValueError("'output' must be a string")
        try:
            values['output'] = OutputFormat(output.lower())
        except ValueError:
            valid_formats = [fmt.value for fmt in OutputFormat]
            raise ValueError(f"'output' must be one of: {valid_formats}")

    metrics_data = _section(raw_config, 'metrics', {'max_workers'})
    values['metrics'] = MetricsConfig(
        max_workers=_positive_int(metrics_data.get('max_workers', MetricsConfig.max_workers), "metrics.max_workers"),
    )

    audit_data = _section(raw_config, 'audit', {'max_days', 'event_names'})
    event_names = audit_data.get('event_names', list(DEFAULT_EVENT_NAMES))
    if (not isinstance(event_names, list) or not event_names
            or not all(isinstance(name, str) and name for name in event_names)):
        raise ValueError("'audit.event_names' must be a non-empty list of strings")
    values['audit'] = AuditConfig(
        max_days=_positive_int(audit_data.get('max_days', LOOKBACK_LIMIT_DAYS), "audit.max_days"),
        event_names=tuple(event_names),
    )

    cost_data = _section(raw_config, 'cost', {'top_n', 'metric'})
    metric = cost_data.get('metric', CostConfig.metric)
    if metric not in COST_METRICS:
        raise ValueError(f"'cost.metric' must be one of: {list(COST_METRICS)}")
    values['cost'] = CostConfig(
        top_n=_positive_int(cost_data.get('top_n', CostConfig.top_n), "cost.top_n"),
        metric=metric,
    )

    return ReportConfig(**values)


def load_default_config() -> ReportConfig:
    """Load ``~/.bedrock-usage.yaml`` if present, else built-in defaults."""
    if DEFAULT_CONFIG_PATH.exists():
        return load_report_config(str(DEFAULT_CONFIG_PATH))
    return ReportConfig()


def _section(raw_config: Dict, name: str, allowed_keys: set) -> Dict:
    """Return an optional sub-section, validating its keys."""
    data = raw_config.get(name)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"'{name}' must be a dictionary")

    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in {name}: {unknown_keys}")
    return data


def _positive_int(value: Any, path: str) -> int:
    """Validate that a setting is a positive integer."""
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"'{path}' must be a positive integer")
    return value
