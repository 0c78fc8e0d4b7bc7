"""Configuration for calendarlink."""

from .settings import CalendarLinkSettings, LoggingSettings, get_settings

__all__ = ["CalendarLinkSettings", "LoggingSettings", "get_settings"]
