"""Audit trail for calendar link operations."""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field

from .logging import (
    SecurityEvent,
    SecurityEventLogger,
    SecurityEventType,
    SecuritySeverity,
    get_security_logger,
)

logger = logging.getLogger(__name__)


class AuditAction(str, Enum):
    """Audited calendar operations."""

    CALENDAR_URL_UPDATED = "calendar_url_updated"
    CALENDAR_URL_REMOVED = "calendar_url_removed"
    CALENDAR_EVENTS_FETCHED = "calendar_events_fetched"
    PRIVACY_SETTINGS_UPDATED = "privacy_settings_updated"


class AuditEntry(BaseModel):
    """One append-only audit record.

    Only the sanitized URL (scheme and host) is ever attached.
    """

    action: AuditAction
    user_id: str
    sanitized_url: Optional[str] = None
    event_count: Optional[int] = None
    range: Optional[Dict[str, str]] = None
    privacy_settings: Optional[Dict[str, bool]] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)

    def to_log_dict(self) -> Dict[str, Any]:
        """Serialize with the camelCase keys consumed by the audit sink."""
        entry: Dict[str, Any] = {
            "action": self.action.value,
            "userId": self.user_id,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.sanitized_url is not None:
            entry["sanitizedUrl"] = self.sanitized_url
        if self.event_count is not None:
            entry["eventCount"] = self.event_count
        if self.range is not None:
            entry["range"] = self.range
        if self.privacy_settings is not None:
            entry["privacySettings"] = self.privacy_settings
        return entry


class AuditSink(Protocol):
    """Destination for audit entries (append-only, keyed by user + action)."""

    def record(self, entry: AuditEntry) -> None: ...


_ACTION_EVENT_TYPES = {
    AuditAction.CALENDAR_URL_UPDATED: SecurityEventType.DATA_MODIFICATION,
    AuditAction.CALENDAR_URL_REMOVED: SecurityEventType.DATA_MODIFICATION,
    AuditAction.CALENDAR_EVENTS_FETCHED: SecurityEventType.DATA_ACCESS,
    AuditAction.PRIVACY_SETTINGS_UPDATED: SecurityEventType.DATA_MODIFICATION,
}


class SecurityAuditSink:
    """Audit sink that forwards entries to the security event logger."""

    def __init__(self, security_logger: Optional[SecurityEventLogger] = None) -> None:
        self.security_logger = security_logger or get_security_logger()

    def record(self, entry: AuditEntry) -> None:
        self.security_logger.log_event(
            SecurityEvent(
                event_type=_ACTION_EVENT_TYPES[entry.action],
                severity=SecuritySeverity.LOW,
                user_id=entry.user_id,
                resource=entry.sanitized_url,
                action=entry.action.value,
                result="success",
                timestamp=entry.timestamp,
                details=entry.to_log_dict(),
            )
        )


class MemoryAuditSink:
    """Audit sink keeping entries in a list; used by the dev server and tests."""

    def __init__(self) -> None:
        self.entries: List[AuditEntry] = []

    def record(self, entry: AuditEntry) -> None:
        self.entries.append(entry)

    def actions(self) -> List[AuditAction]:
        return [entry.action for entry in self.entries]
