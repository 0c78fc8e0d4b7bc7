"""Data models for ICS calendar processing."""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator


def ensure_utc_aware(dt: datetime) -> datetime:
    """Return ``dt`` as an aware UTC datetime; naive values are taken as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def serialize_utc(dt: datetime) -> str:
    """Serialize a datetime as ISO-8601 UTC with a ``Z`` suffix."""
    return ensure_utc_aware(dt).isoformat().replace("+00:00", "Z")


class DateRange(BaseModel):
    """Half-open query window ``[start, end)``; both bounds are required."""

    start: datetime
    end: datetime

    model_config = ConfigDict(frozen=True)

    @field_validator("start", "end")
    @classmethod
    def normalize_to_utc(cls, v: datetime) -> datetime:
        return ensure_utc_aware(v)

    @model_validator(mode="after")
    def check_order(self) -> "DateRange":
        if self.start >= self.end:
            raise ValueError("Start date must be before end date")
        return self

    @property
    def span(self) -> timedelta:
        return self.end - self.start

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """Check whether ``[start, end]`` shares any instant with this range.

        Zero-length events count when they sit inside the range.
        """
        if start == end:
            return self.start <= start < self.end
        return start < self.end and end > self.start

    def to_log_dict(self) -> Dict[str, str]:
        return {"start": serialize_utc(self.start), "end": serialize_utc(self.end)}

    @field_serializer("start", "end")
    def serialize_bounds(self, dt: datetime) -> str:
        return serialize_utc(dt)


class PrivacySettings(BaseModel):
    """Per-request privacy configuration; details are hidden unless enabled."""

    show_event_details: bool = Field(default=False, alias="showEventDetails")
    external_calendar_enabled: bool = Field(default=True, alias="externalCalendarEnabled")
    sync_date_range: Optional[DateRange] = Field(default=None, alias="syncDateRange")

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    def to_flags(self) -> Dict[str, bool]:
        return {
            "showEventDetails": self.show_event_details,
            "externalCalendarEnabled": self.external_calendar_enabled,
        }


class RawIcsEvent(BaseModel):
    """One VEVENT (or one expanded occurrence) as read from the feed."""

    uid: str
    summary: str = ""
    description: Optional[str] = None
    location: Optional[str] = None
    dtstart: datetime
    dtend: datetime
    is_all_day: bool = False
    recurrence_rule: Optional[str] = None
    sequence_index: int = Field(default=0, description="Position in feed order")

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def check_times(self) -> "RawIcsEvent":
        if self.dtstart.tzinfo is None or self.dtend.tzinfo is None:
            raise ValueError("Event times must be timezone-aware")
        if self.dtend < self.dtstart:
            raise ValueError("Event end precedes its start")
        return self

    @property
    def duration(self) -> timedelta:
        return self.dtend - self.dtstart


class ExternalEvent(BaseModel):
    """Externally sourced event as exposed to calendar consumers."""

    id: str
    title: str
    start: datetime
    end: datetime
    description: Optional[str] = None
    is_external: Literal[True] = Field(default=True, alias="isExternal")

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @field_validator("start", "end")
    @classmethod
    def normalize_to_utc(cls, v: datetime) -> datetime:
        return ensure_utc_aware(v)

    @model_validator(mode="after")
    def check_order(self) -> "ExternalEvent":
        if self.start > self.end:
            raise ValueError("Event end precedes its start")
        return self

    @field_serializer("start", "end")
    def serialize_datetime(self, dt: datetime) -> str:
        return serialize_utc(dt)

    def to_api_dict(self) -> Dict[str, Any]:
        """Serialize with the JSON names of the HTTP contract."""
        return self.model_dump(by_alias=True, exclude_none=True)


class ICSParseStats(BaseModel):
    """Counters from the most recent parse."""

    total_components: int = 0
    parsed_events: int = 0
    dropped_events: int = 0
    recurring_events: int = 0
    expanded_occurrences: int = 0
    unsupported_rules: int = 0
