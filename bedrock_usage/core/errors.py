"""
Exceptions raised by the reporting core and its data sources.
"""


class UsageReportError(Exception):
    """Base class for report construction failures."""


class NoDataError(UsageReportError):
    """Raised when a source returned nothing usable for a report.

    Distinguishes "the source was unreachable for every entity" from a
    genuine zero-activity window, which is reported normally.
    """


class ReconciliationError(UsageReportError):
    """Raised when an internal invariant of a merge or aggregation breaks."""


class SourceError(UsageReportError):
    """Raised when a data source could not be queried at all."""
    def __init__(self, message: str, source: str):
        super().__init__(message)
        self.source = source
