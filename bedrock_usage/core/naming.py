"""
Display names for raw platform identifiers.

Model ids, client user agents and billing usage types all arrive in long,
provider-specific forms. Each is shortened by a table of rules:

- model ids and usage types run through a pipeline where every matching
  rule rewrites the value in turn;
- user agents are matched against a signature table where the first
  matching rule decides the label.

New providers or clients are added as rows, not branches.
"""

import re
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional, Pattern, Sequence

UNKNOWN_LABEL = "unknown"
OTHER_CLIENT_LABEL = "other"
MAX_CLIENT_TOKEN_LENGTH = 20

MODEL_PROVIDERS = ("anthropic", "amazon", "meta", "cohere", "ai21", "mistral", "stability")
INFERENCE_PROFILE_REGIONS = ("us", "eu", "apac", "us-gov", "global")
USAGE_OPERATIONS = ("InvokeModelWithResponseStream", "InvokeModel", "ConverseStream", "Converse")
USAGE_PROVIDERS = ("Anthropic", "Amazon", "Meta", "Cohere", "AI21", "Mistral", "Stability")


def _alternation(names: Sequence[str]) -> str:
    return "|".join(re.escape(name) for name in names)


@dataclass(frozen=True)
class Rule:
    """One row of a naming table.

    ``replacement`` is substituted for the match in a pipeline; in a
    signature table it is the label returned for a match. ``accept``
    optionally vetoes a pipeline rewrite by inspecting its result.
    """
    name: str
    pattern: Pattern[str]
    replacement: str = ""
    accept: Optional[Callable[[str], bool]] = None

    def rewrite(self, value: str) -> str:
        """Apply the rule to ``value``, returning it unchanged on no match."""
        if not self.pattern.search(value):
            return value
        candidate = self.pattern.sub(self.replacement, value, count=1)
        if self.accept is not None and not self.accept(candidate):
            return value
        return candidate


def run_pipeline(rules: Sequence[Rule], value: str) -> str:
    """Apply every rule of a pipeline in order."""
    for rule in rules:
        value = rule.rewrite(value)
    return value


def first_match(rules: Sequence[Rule], value: str) -> Optional[str]:
    """Return the label of the first signature rule matching ``value``."""
    for rule in rules:
        if rule.pattern.search(value):
            return rule.replacement
    return None


MODEL_RULES = (
    Rule("resource-locator", re.compile(r"^arn:.*/")),
    Rule("inference-profile", re.compile(rf"^(?:{_alternation(INFERENCE_PROFILE_REGIONS)})\.")),
    Rule("provider", re.compile(rf"^(?:{_alternation(MODEL_PROVIDERS)})\.")),
    Rule("version", re.compile(r":\d.*$")),
    Rule("date-stamp", re.compile(r"-\d{8}(?:-v\d+)?$")),
    # "claude-v2" must keep its only distinguishing suffix
    Rule("bare-version", re.compile(r"-v\d+$"), accept=lambda rest: "-" in rest),
)

CLIENT_RULES = (
    Rule("claude-code", re.compile(r"^(?:claude-cli|claude-code)"), "claude-code"),
    Rule("python-sdk", re.compile(r"Boto3|botocore"), "python-sdk"),
    Rule("aws-cli", re.compile(r"^aws-cli"), "aws-cli"),
    Rule("nodejs-sdk", re.compile(r"^aws-sdk-js"), "nodejs-sdk"),
    Rule("java-sdk", re.compile(r"^aws-sdk-java"), "java-sdk"),
    Rule("go-sdk", re.compile(r"^aws-sdk-go"), "go-sdk"),
    Rule("ruby-sdk", re.compile(r"^aws-sdk-ruby"), "ruby-sdk"),
    Rule("dotnet-sdk", re.compile(r"^aws-sdk-(?:dotnet|net)"), "dotnet-sdk"),
    Rule("anthropic-api", re.compile(r"Anthropic|^APN/"), "anthropic-api"),
)

USAGE_TYPE_RULES = (
    Rule("region", re.compile(r"^[A-Z]{2,4}[0-9]+-")),
    Rule("operation", re.compile(rf"^(?:{_alternation(USAGE_OPERATIONS)})-")),
    Rule("provider", re.compile(rf"^(?:{_alternation(USAGE_PROVIDERS)})-")),
)


def short_model_name(model_id: str) -> str:
    """Shorten a model id or ARN to its family name.

    Examples:
        ``arn:aws:bedrock:us-east-1::foundation-model/anthropic.claude-sonnet-4-5-20250514-v1:0``
        becomes ``claude-sonnet-4-5``; ``amazon.titan-text-express-v1``
        becomes ``titan-text-express``; ``anthropic.claude-v2:1`` becomes
        ``claude-v2``.
    """
    if not model_id:
        return UNKNOWN_LABEL
    return run_pipeline(MODEL_RULES, model_id) or model_id


def short_client_name(user_agent: str) -> str:
    """Name the client that produced a user-agent string."""
    if not user_agent:
        return UNKNOWN_LABEL

    label = first_match(CLIENT_RULES, user_agent)
    if label is not None:
        return label

    first_token = user_agent.split("/", 1)[0]
    if first_token and len(first_token) <= MAX_CLIENT_TOKEN_LENGTH:
        return first_token
    return OTHER_CLIENT_LABEL


def simplify_usage_type(usage_type: str) -> str:
    """Drop region, operation and provider prefixes from a usage type.

    ``USE1-InvokeModel-Anthropic-Claude-Haiku`` becomes ``Claude-Haiku``.
    Codes that no rule shortens are returned verbatim.
    """
    if not usage_type:
        return UNKNOWN_LABEL
    name = run_pipeline(USAGE_TYPE_RULES, usage_type)
    if not name:
        return usage_type
    return name


class NameMapping:
    """Memoized raw identifier to display label mapping.

    One instance belongs to one report; each distinct identifier is
    normalized once no matter how many records share it.
    """

    def __init__(self, normalize: Callable[[str], str]):
        self._normalize = normalize
        self._labels: Dict[str, str] = {}

    @classmethod
    def for_models(cls) -> "NameMapping":
        return cls(short_model_name)

    @classmethod
    def for_clients(cls) -> "NameMapping":
        return cls(short_client_name)

    @classmethod
    def for_usage_types(cls) -> "NameMapping":
        return cls(simplify_usage_type)

    def label(self, raw: str) -> str:
        """Return the label for ``raw``, deriving it on first use."""
        if raw not in self._labels:
            self._labels[raw] = self._normalize(raw)
        return self._labels[raw]

    def build(self, raws: Iterable[str]) -> Dict[str, str]:
        """Derive labels for a batch of identifiers.

        Returns:
            Mapping of each distinct identifier in ``raws`` to its label
        """
        return {raw: self.label(raw) for raw in dict.fromkeys(raws)}
