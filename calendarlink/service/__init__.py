"""Calendar service facade and its result models."""

from .calendar_service import CalendarService
from .models import ConnectionStatus, ConnectionTestResult, SaveResult

__all__ = ["CalendarService", "ConnectionStatus", "ConnectionTestResult", "SaveResult"]
