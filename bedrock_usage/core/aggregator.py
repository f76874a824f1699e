"""
Group-by, rank and total.

Every breakdown in the reports (models, users, clients, usage types) is the
same operation: group records by a key, sum a value per group, rank groups
by that sum and total them.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, Hashable, Iterable, List, TypeVar

from .errors import ReconciliationError

R = TypeVar("R")
K = TypeVar("K", bound=Hashable)

FLOAT_REL_TOL = 1e-9


def count_one(record: Any) -> int:
    """Value function counting each record once."""
    return 1


@dataclass
class Group(Generic[K, R]):
    """Records sharing one key and their summed value."""
    key: K
    total: Any = 0
    records: List[R] = field(default_factory=list)


@dataclass
class Aggregation(Generic[K, R]):
    """Ranked groups and the grand total over all of them."""
    groups: List[Group[K, R]]
    total: Any

    def top(self, n: int) -> List[Group[K, R]]:
        """The ``n`` highest-ranked groups. Does not affect ``total``."""
        if n < 0:
            raise ValueError("n cannot be negative")
        return self.groups[:n]


def aggregate(
    records: Iterable[R],
    key_fn: Callable[[R], K],
    value_fn: Callable[[R], Any] = count_one,
    zero: Any = 0,
) -> Aggregation[K, R]:
    """Group records by key and rank the groups by descending value.

    Equal totals keep the order in which their keys first appeared, so
    identical input always ranks identically. Values are summed as given:
    ints stay exact at any size and Decimals are never rounded here. Float
    totals only need to agree within FLOAT_REL_TOL of the summed magnitudes.

    Args:
        records: Records to group
        key_fn: Extracts the grouping key
        value_fn: Extracts the value to sum (counts records by default)
        zero: Starting value of every sum (``Decimal(0)`` for money)

    Returns:
        Aggregation with ranked groups and grand total

    Raises:
        ReconciliationError: If the grand total differs from the sum of
            the ungrouped values
    """
    groups: Dict[K, Group[K, R]] = {}
    raw_total = zero
    magnitude = abs(zero)

    for record in records:
        value = value_fn(record)
        raw_total += value
        magnitude += abs(value)

        key = key_fn(record)
        group = groups.get(key)
        if group is None:
            group = groups[key] = Group(key=key, total=zero)
        group.total += value
        group.records.append(record)

    # sorted() is stable, including with reverse=True
    ranked = sorted(groups.values(), key=lambda g: g.total, reverse=True)

    grand_total = zero
    for group in ranked:
        grand_total += group.total

    if not _totals_match(grand_total, raw_total, magnitude):
        raise ReconciliationError(
            f"Grouped total {grand_total} does not match ungrouped total {raw_total}"
        )

    return Aggregation(groups=ranked, total=grand_total)


def _totals_match(grouped: Any, raw: Any, magnitude: Any) -> bool:
    if isinstance(grouped, float) or isinstance(raw, float):
        return math.isclose(grouped, raw, rel_tol=FLOAT_REL_TOL, abs_tol=FLOAT_REL_TOL * magnitude)
    return grouped == raw
