"""Result models returned by the calendar service."""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from ..ics.models import ExternalEvent, serialize_utc
from ..validation.providers import Provider, provider_display_name, provider_help_text

ConnectionState = Literal["connected", "disconnected"]

CORRUPTED = "corrupted"


class SaveResult(BaseModel):
    """Outcome of storing a calendar URL."""

    encrypted_url: str = Field(repr=False)
    saved_at: datetime
    provider: Provider

    model_config = ConfigDict(frozen=True)

    @field_serializer("saved_at")
    def serialize_saved_at(self, dt: datetime) -> str:
        return serialize_utc(dt)


class ConnectionStatus(BaseModel):
    """Connection state of a stored calendar link.

    ``url`` is the decrypted link, returned only to its owner and never logged.
    """

    url: Optional[str] = Field(default=None, repr=False)
    status: ConnectionState = "disconnected"
    provider: Optional[Provider] = None
    error: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @property
    def is_corrupted(self) -> bool:
        return self.error == CORRUPTED

    def to_api_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "status": self.status,
            "provider": self.provider.value if self.provider else None,
            "providerName": provider_display_name(self.provider) if self.provider else None,
            "helpText": provider_help_text(self.provider) if self.provider else None,
        }


class ConnectionTestResult(BaseModel):
    """Outcome of a dry-run fetch of a candidate calendar URL."""

    success: bool
    message: str
    provider: Provider = Provider.GENERIC
    event_count: int = 0
    sample_events: List[ExternalEvent] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    def to_api_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "provider": self.provider.value,
            "providerName": provider_display_name(self.provider),
            "helpText": provider_help_text(self.provider),
            "eventCount": self.event_count,
            "events": [event.to_api_dict() for event in self.sample_events],
        }
