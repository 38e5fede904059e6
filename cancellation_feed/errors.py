"""Exception types raised while building and publishing the cancellation feed."""
from __future__ import annotations


class CancellationFeedError(Exception):
    """Base class for every failure that aborts a publishing run."""


class ConfigurationError(CancellationFeedError):
    pass


class UpstreamFetchError(CancellationFeedError):
    def __init__(self, message: str, *, path: str, status: int | None = None) -> None:
        super().__init__(message)
        self.path = path
        self.status = status


class ScheduleQueryError(AssertionError):
    """A schedule query was built from something other than a trip or route filter."""


class EncodingError(CancellationFeedError):
    pass


class OutputWriteError(CancellationFeedError):
    def __init__(self, message: str, *, target: str) -> None:
        super().__init__(message)
        self.target = target
