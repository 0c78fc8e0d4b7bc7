"""ICS-specific exceptions for error handling."""

from enum import Enum
from typing import Optional

from ..exceptions import CalendarLinkError


class FetchFailure(str, Enum):
    """Failure class of a network-level fetch error."""

    TIMEOUT = "timeout"
    UNREACHABLE = "unreachable"
    HTTP_ERROR = "http_error"


class ICSError(CalendarLinkError):
    """Base exception for ICS-related errors."""


class ICSFetchError(ICSError):
    """Exception raised when the ICS feed cannot be fetched."""

    def __init__(
        self,
        message: str,
        kind: FetchFailure = FetchFailure.UNREACHABLE,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, status_code)
        self.kind = kind

    @property
    def retryable(self) -> bool:
        """Whether a later retry may succeed (timeouts, outages, 5xx/429)."""
        if self.kind is FetchFailure.HTTP_ERROR:
            return self.status_code is not None and (
                self.status_code >= 500 or self.status_code == 429
            )
        return True


class ICSInvalidFeedError(ICSError):
    """Exception raised when a fetched body is not an iCalendar feed."""


class ICSFeedTooLargeError(ICSInvalidFeedError):
    """Exception raised when a feed exceeds the configured size cap."""

    def __init__(self, message: str, limit_bytes: int):
        super().__init__(message)
        self.limit_bytes = limit_bytes


class ICSParseError(ICSError):
    """Exception raised when a single ICS component cannot be parsed.

    Raised inside the parser for one VEVENT and caught there; a whole feed
    never fails with this error.
    """
