"""Error taxonomy shared by the options, summary and chart services.

Client errors (``InvalidInputError`` and subclasses) are never retried and map
to HTTP 400.  Store errors are transient, retried at the data-access boundary
and surface as HTTP 503 once retries are exhausted.
"""

from __future__ import annotations


class DashboardError(Exception):
    """Base class for every error raised by the dashboard services."""

    title_key = "errors.internal"
    retryable = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidInputError(DashboardError):
    title_key = "errors.invalid_input"


class InvalidCursorError(InvalidInputError):
    """Cursor token failed decoding or verification.

    The message is fixed so that callers cannot tell why a token was rejected.
    """

    title_key = "errors.invalid_cursor"

    def __init__(self, message: str = "Invalid cursor") -> None:
        super().__init__(message)


class UnsupportedEntityError(InvalidInputError):
    title_key = "errors.unsupported_entity"


class InvalidRangeError(InvalidInputError):
    title_key = "errors.invalid_range"


class InvalidFilterError(InvalidInputError):
    title_key = "errors.invalid_filter"


class StoreError(DashboardError):
    title_key = "errors.store_unavailable"
    retryable = True


class StoreUnavailableError(StoreError):
    pass


class StoreTimeoutError(StoreError):
    title_key = "errors.store_timeout"
