"""Input validation: calendar URLs, providers, privacy settings."""

from .privacy import parse_date_range, parse_privacy_settings
from .providers import Provider, detect_provider, provider_display_name, provider_help_text
from .url_validator import (
    CalendarUrlValidator,
    UrlValidationResult,
    is_public_host,
    validate_calendar_url,
)

__all__ = [
    "CalendarUrlValidator",
    "Provider",
    "UrlValidationResult",
    "detect_provider",
    "is_public_host",
    "parse_date_range",
    "parse_privacy_settings",
    "provider_display_name",
    "provider_help_text",
    "validate_calendar_url",
]
