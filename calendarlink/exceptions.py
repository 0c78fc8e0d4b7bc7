"""Top-level exception taxonomy for calendarlink."""

from typing import Optional


class CalendarLinkError(Exception):
    """Base exception for all calendarlink errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class CalendarValidationError(CalendarLinkError):
    """Raised for user-correctable input problems (bad URL, settings, date range)."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, status_code=400)
        self.field = field


class AuthenticationError(CalendarLinkError):
    """Raised when no authenticated user is attached to a request."""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, status_code=401)


class DecryptionError(CalendarLinkError):
    """Raised when a stored calendar secret cannot be decrypted.

    The message is always generic: the offending token is never included.
    """

    def __init__(self, message: str = "Stored calendar URL could not be decrypted"):
        super().__init__(message, status_code=500)
