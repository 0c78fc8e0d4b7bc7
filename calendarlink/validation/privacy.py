"""Validation of caller-supplied privacy settings and date ranges."""

import json
from datetime import datetime, timedelta
from typing import Any, Mapping, Union

from pydantic import ValidationError

from ..exceptions import CalendarValidationError
from ..ics.models import DateRange, PrivacySettings

DEFAULT_MAX_RANGE_DAYS = 366

_BOOLEAN_KEYS = {
    "showEventDetails": "show_event_details",
    "externalCalendarEnabled": "external_calendar_enabled",
}
_RANGE_KEYS = {"syncDateRange": "sync_date_range"}
ALLOWED_KEYS = frozenset(
    [*_BOOLEAN_KEYS, *_BOOLEAN_KEYS.values(), *_RANGE_KEYS, *_RANGE_KEYS.values()]
)


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid value"
    message = errors[0].get("msg", "Invalid value")
    return message.removeprefix("Value error, ")


def parse_date_range(
    start: Union[str, datetime, None],
    end: Union[str, datetime, None],
    max_range_days: int = DEFAULT_MAX_RANGE_DAYS,
) -> DateRange:
    """Build a bounded DateRange from caller input.

    Raises:
        CalendarValidationError: If a bound is missing or unparsable, the range
            is empty or inverted, or it spans more than ``max_range_days``
    """
    if start is None or end is None or start == "" or end == "":
        raise CalendarValidationError("Both startDate and endDate are required", field="range")

    try:
        date_range = DateRange(start=start, end=end)
    except ValidationError as e:
        raise CalendarValidationError(
            f"Invalid date range: {_first_error(e)}", field="range"
        ) from None

    if date_range.span > timedelta(days=max_range_days):
        raise CalendarValidationError(
            f"Date range cannot exceed {max_range_days} days", field="range"
        )

    return date_range


def parse_privacy_settings(
    payload: Union[str, Mapping[str, Any], PrivacySettings, None],
    max_range_days: int = DEFAULT_MAX_RANGE_DAYS,
) -> PrivacySettings:
    """Validate caller privacy settings against the allow-list and merge defaults.

    Args:
        payload: JSON text (as sent in a query string), a mapping, an existing
            PrivacySettings, or None for defaults
        max_range_days: Upper bound for ``syncDateRange``

    Returns:
        Immutable PrivacySettings

    Raises:
        CalendarValidationError: For unknown keys, non-boolean flags or an
            invalid ``syncDateRange``
    """
    if payload is None:
        return PrivacySettings()
    if isinstance(payload, PrivacySettings):
        return payload

    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError:
            raise CalendarValidationError(
                "Privacy settings must be valid JSON", field="privacySettings"
            ) from None

    if not isinstance(payload, Mapping):
        raise CalendarValidationError(
            "Privacy settings must be an object", field="privacySettings"
        )

    unknown = sorted(set(payload) - ALLOWED_KEYS)
    if unknown:
        raise CalendarValidationError(
            f"Unrecognized privacy setting(s): {', '.join(unknown)}", field="privacySettings"
        )

    values: dict[str, Any] = {}
    for camel, snake in _BOOLEAN_KEYS.items():
        for key in (camel, snake):
            if key in payload:
                if not isinstance(payload[key], bool):
                    raise CalendarValidationError(f"{camel} must be a boolean", field=camel)
                values[snake] = payload[key]

    for camel, snake in _RANGE_KEYS.items():
        for key in (camel, snake):
            raw_range = payload.get(key)
            if raw_range is None:
                continue
            if isinstance(raw_range, DateRange):
                values[snake] = raw_range
                continue
            if not isinstance(raw_range, Mapping):
                raise CalendarValidationError(
                    f"{camel} must be an object with start and end", field=camel
                )
            values[snake] = parse_date_range(
                raw_range.get("start"), raw_range.get("end"), max_range_days
            )

    return PrivacySettings(**values)
