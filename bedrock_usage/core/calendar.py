"""
Calendar windows for usage reports.

All dates are UTC calendar days in canonical ``YYYY-MM-DD`` form.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional

DATE_FORMAT = "%Y-%m-%d"


def generate_range(window_days: int, end_date_exclusive: date) -> List[str]:
    """Generate the consecutive days of a window, oldest first.

    Args:
        window_days: Number of days in the window
        end_date_exclusive: First day after the window

    Returns:
        ``window_days`` date keys ending the day before ``end_date_exclusive``

    Raises:
        ValueError: If window_days is not positive
    """
    if window_days <= 0:
        raise ValueError(f"window_days must be > 0, got {window_days}")

    first_day = end_date_exclusive - timedelta(days=window_days)
    return [
        (first_day + timedelta(days=offset)).strftime(DATE_FORMAT)
        for offset in range(window_days)
    ]


@dataclass(frozen=True)
class ReportWindow:
    """Closed historical window covered by one report.

    The end is captured once when the window is built so that a run
    straddling midnight still reports a consistent set of days.
    """
    days: int
    end: date  # exclusive

    def __post_init__(self):
        """Validate the window length."""
        if self.days <= 0:
            raise ValueError("days must be > 0")

    @classmethod
    def ending_now(cls, days: int, now: Optional[datetime] = None) -> "ReportWindow":
        """Build a window of ``days`` days ending before today (UTC)."""
        if now is None:
            now = datetime.now(timezone.utc)
        elif now.tzinfo is not None:
            now = now.astimezone(timezone.utc)
        return cls(days=days, end=now.date())

    @property
    def start(self) -> date:
        return self.end - timedelta(days=self.days)

    @property
    def dates(self) -> List[str]:
        return generate_range(self.days, self.end)

    @property
    def start_key(self) -> str:
        return self.start.strftime(DATE_FORMAT)

    @property
    def end_key(self) -> str:
        return self.end.strftime(DATE_FORMAT)

    @property
    def start_time(self) -> datetime:
        """Midnight UTC at the start of the window."""
        return datetime.combine(self.start, time.min, tzinfo=timezone.utc)

    @property
    def end_time(self) -> datetime:
        """Midnight UTC at the (exclusive) end of the window."""
        return datetime.combine(self.end, time.min, tzinfo=timezone.utc)

    def capped(self, max_days: int) -> "ReportWindow":
        """Return a window with the same end and at most ``max_days`` days."""
        if max_days <= 0:
            raise ValueError("max_days must be > 0")
        if self.days <= max_days:
            return self
        return ReportWindow(days=max_days, end=self.end)
