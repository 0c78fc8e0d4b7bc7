"""Security event logging, credential masking and URL redaction.

Calendar feed URLs are bearer capabilities: anyone holding the full URL can
read the calendar. Everything in this module exists so that only the origin
of such a URL, and never its path, query or ciphertext, reaches a log sink.
"""

import json
import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from logging.handlers import RotatingFileHandler
from pathlib import Path
from re import Pattern
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

INVALID_URL_MARKER = "[INVALID_URL]"

AUDIT_LOG_NAME = "security_audit.log"
AUDIT_MAX_BYTES = 50 * 1024 * 1024
AUDIT_BACKUP_COUNT = 10


class SecurityEventType(Enum):
    """Kinds of security-relevant events emitted by calendarlink."""

    # Rejected caller input (calendar URLs, privacy settings)
    INPUT_VALIDATION_FAILURE = "input_validation_failure"

    # Blocked fetch targets and other guard trips
    SYSTEM_SECURITY_VIOLATION = "system_security_violation"

    # Audit trail of calendar link reads and writes
    DATA_ACCESS = "data_access"
    DATA_MODIFICATION = "data_modification"


class SecuritySeverity(Enum):
    """Severity of a security event, ordered by priority."""

    LOW = ("low", 1)
    MEDIUM = ("medium", 2)
    HIGH = ("high", 3)
    CRITICAL = ("critical", 4)

    def __init__(self, name: str, priority: int):
        self.severity_name = name
        self.priority = priority

    def __str__(self) -> str:
        return self.severity_name

    def __lt__(self, other: "SecuritySeverity") -> bool:
        return self.priority < other.priority

    @property
    def log_level(self) -> int:
        return _SEVERITY_LOG_LEVELS[self]


_SEVERITY_LOG_LEVELS = {
    SecuritySeverity.LOW: logging.INFO,
    SecuritySeverity.MEDIUM: logging.WARNING,
    SecuritySeverity.HIGH: logging.ERROR,
    SecuritySeverity.CRITICAL: logging.CRITICAL,
}


@dataclass
class SecurityEvent:
    """One security or audit event, serialised as a single JSON log line."""

    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    event_type: SecurityEventType = SecurityEventType.SYSTEM_SECURITY_VIOLATION
    severity: SecuritySeverity = SecuritySeverity.LOW
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    user_id: Optional[str] = None
    resource: Optional[str] = None
    action: Optional[str] = None
    result: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "severity": str(self.severity),
            "timestamp": self.timestamp.isoformat(),
        }
        for name in ("user_id", "resource", "action", "result"):
            data[name] = getattr(self, name)
        data["details"] = self.details
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"), default=str)


def sanitize_url_for_logging(url: Optional[str]) -> str:
    """Reduce a URL to ``scheme://host[:port]`` for diagnostics.

    Userinfo, path, query and fragment are dropped.

    Args:
        url: URL to redact

    Returns:
        Redacted URL, or ``[INVALID_URL]`` when the input cannot be parsed
    """
    if not url or not isinstance(url, str):
        return INVALID_URL_MARKER

    try:
        parts = urlsplit(url.strip())
        hostname = parts.hostname
        port = parts.port
    except ValueError:
        return INVALID_URL_MARKER

    if not parts.scheme or not hostname:
        return INVALID_URL_MARKER

    origin = f"{parts.scheme.lower()}://"
    origin += f"[{hostname}]" if ":" in hostname else hostname
    if port is not None:
        origin += f":{port}"
    return origin


def _assignment_pattern(keyword: str) -> Pattern:
    """Match ``<keyword>=value`` / ``"<keyword>": "value"`` and capture the value."""
    return re.compile(rf'({keyword}["\s]*[:=]["\s]*)([^"\s,}}]+)', re.IGNORECASE)


class CredentialMaskingPatterns:
    """Regexes for secrets that may end up in free-text log messages.

    Each pattern captures an optional prefix to keep (group 1) and the secret
    to mask (group 2).
    """

    PATTERNS: Dict[str, Pattern] = {
        "password": _assignment_pattern("password"),
        "token": _assignment_pattern("token"),
        "api_key": _assignment_pattern("api[_-]?key"),
        "secret": _assignment_pattern("secret"),
        "encryption_key": _assignment_pattern("encryption[_-]?key"),
        "bearer": re.compile(r'(bearer["\s]+)([a-zA-Z0-9._-]+)', re.IGNORECASE),
        "auth_header": re.compile(
            r'(authorization["\s]*[:=]["\s]*["\']?)([^"\'}\s,]+)', re.IGNORECASE
        ),
        # Fernet tokens start with the version byte 0x80, base64 "gAAAAA"
        "fernet_token": re.compile(r"()(gAAAAA[a-zA-Z0-9_=-]{20,})"),
    }

    # Applied before PATTERNS so URL paths are gone before secrets are looked for
    URL_PATTERN: Pattern = re.compile(r"(?:https?|webcal)://[^\s\"'<>]+", re.IGNORECASE)

    # (max secret length, mask length); longer secrets get the widest mask
    MASK_TIERS = ((8, 3), (16, 6), (32, 8))
    WIDEST_MASK = 12

    @classmethod
    def get_mask_length(cls, original_length: int) -> int:
        for max_length, mask_length in cls.MASK_TIERS:
            if original_length <= max_length:
                return mask_length
        return cls.WIDEST_MASK

    @classmethod
    def create_mask(cls, credential: str, show_prefix: int = 2, show_suffix: int = 2) -> str:
        """Mask a secret, keeping a short prefix and suffix when it is long enough."""
        stars = "*" * cls.get_mask_length(len(credential))
        if len(credential) <= show_prefix + show_suffix + 2:
            return stars

        head = credential[:show_prefix]
        tail = credential[len(credential) - show_suffix :] if show_suffix else ""
        return f"{head}{stars}{tail}"


def mask_credentials(text: str, custom_patterns: Optional[Dict[str, Pattern]] = None) -> str:
    """Collapse URLs to their origin and mask credential-like substrings.

    Args:
        text: Log message or other free text
        custom_patterns: Extra patterns in the same group layout as
            ``CredentialMaskingPatterns.PATTERNS``

    Returns:
        The redacted text
    """
    if not text:
        return text

    redacted = CredentialMaskingPatterns.URL_PATTERN.sub(
        lambda m: sanitize_url_for_logging(m.group(0)), text
    )

    def replace(match: "re.Match[str]") -> str:
        groups = match.lastindex or 0
        keep = match.group(1) if groups >= 1 else ""
        secret = match.group(2) if groups >= 2 else match.group(0)
        return keep + CredentialMaskingPatterns.create_mask(secret)

    patterns = list(CredentialMaskingPatterns.PATTERNS.values())
    patterns.extend((custom_patterns or {}).values())
    for pattern in patterns:
        redacted = pattern.sub(replace, redacted)

    return redacted


class SecureFormatter(logging.Formatter):
    """Formatter that passes every formatted record through mask_credentials."""

    def __init__(
        self,
        *args: Any,
        enable_masking: bool = True,
        custom_patterns: Optional[Dict[str, Pattern]] = None,
        **kwargs: Any,
    ):
        super().__init__(*args, **kwargs)
        self.enable_masking = enable_masking
        self.custom_patterns = custom_patterns or {}

    def format(self, record: logging.LogRecord) -> str:
        formatted = super().format(record)
        if self.enable_masking:
            formatted = mask_credentials(formatted, self.custom_patterns)
        return formatted


class SecurityEventLogger:
    """Writes security events to ``calendarlink.security`` and the audit trail.

    Recent events are also kept in a bounded in-process cache so that tests
    and diagnostics can inspect them. The cache is filled even when security
    logging is disabled in settings.
    """

    def __init__(self, settings: Optional[Any] = None):
        self.settings = settings
        self.logger = logging.getLogger("calendarlink.security")
        self.audit_logger = self._setup_audit_logger()
        self._event_cache: List[SecurityEvent] = []
        self.cache_size = 1000

    def _logging_flag(self, name: str, default: bool) -> bool:
        logging_settings = getattr(self.settings, "logging", None)
        return bool(getattr(logging_settings, name, default))

    @property
    def enabled(self) -> bool:
        return self._logging_flag("security_enabled", True)

    def _setup_audit_logger(self) -> logging.Logger:
        audit_logger = logging.getLogger("calendarlink.security.audit")
        audit_logger.setLevel(logging.INFO)

        if not self._logging_flag("audit_file_enabled", False):
            return audit_logger

        audit_dir = Path(self.settings.data_dir) / "security" / "audit"
        audit_dir.mkdir(parents=True, exist_ok=True)

        handler = RotatingFileHandler(
            audit_dir / AUDIT_LOG_NAME,
            maxBytes=AUDIT_MAX_BYTES,
            backupCount=AUDIT_BACKUP_COUNT,
            encoding="utf-8",
        )
        handler.setFormatter(
            SecureFormatter(
                "%(asctime)s - SECURITY - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        audit_logger.handlers.clear()
        audit_logger.addHandler(handler)
        # Audit lines go only to the audit file, not to the console
        audit_logger.propagate = False
        return audit_logger

    def log_event(self, event: SecurityEvent) -> None:
        """Cache the event and, when enabled, log it as masked JSON."""
        self._remember(event)
        if not self.enabled:
            return

        try:
            payload = mask_credentials(event.to_json())
        except (TypeError, ValueError) as e:
            self.logger.error(f"Could not serialise security event {event.event_id}: {e}")
            return

        self.logger.log(event.severity.log_level, f"Security Event: {payload}")
        self.audit_logger.info(f"AUDIT: {payload}")

    def log_input_validation_failure(
        self, input_type: str, validation_error: str, details: Optional[Dict[str, Any]] = None
    ) -> None:
        """Record rejected caller input such as an invalid calendar URL."""
        self.log_event(
            SecurityEvent(
                event_type=SecurityEventType.INPUT_VALIDATION_FAILURE,
                severity=SecuritySeverity.MEDIUM,
                action="validate_input",
                result="failure",
                details={
                    **(details or {}),
                    "input_type": input_type,
                    "validation_error": validation_error,
                },
            )
        )

    def log_security_violation(
        self,
        violation_type: str,
        description: str,
        severity: SecuritySeverity = SecuritySeverity.HIGH,
        details: Optional[Dict[str, Any]] = None,
        resource: Optional[str] = None,
    ) -> None:
        """Record a tripped guard, e.g. a fetch aimed at an internal host."""
        self.log_event(
            SecurityEvent(
                event_type=SecurityEventType.SYSTEM_SECURITY_VIOLATION,
                severity=severity,
                resource=resource,
                action="security_check",
                result="violation",
                details={
                    **(details or {}),
                    "violation_type": violation_type,
                    "description": description,
                },
            )
        )

    def _remember(self, event: SecurityEvent) -> None:
        self._event_cache.append(event)
        overflow = len(self._event_cache) - self.cache_size
        if overflow > 0:
            del self._event_cache[:overflow]

    def get_recent_events(
        self,
        limit: int = 100,
        event_type: Optional[SecurityEventType] = None,
        severity: Optional[SecuritySeverity] = None,
    ) -> List[SecurityEvent]:
        """Return cached events, newest first.

        Args:
            limit: Maximum number of events to return
            event_type: Only events of this type
            severity: Only events at or above this severity
        """
        matches = [
            event
            for event in self._event_cache
            if (event_type is None or event.event_type == event_type)
            and (severity is None or event.severity.priority >= severity.priority)
        ]
        matches.sort(key=lambda e: e.timestamp, reverse=True)
        return matches[:limit]


_security_logger: Optional[SecurityEventLogger] = None


def get_security_logger(settings: Optional[Any] = None) -> SecurityEventLogger:
    """Return the process-wide security logger, creating it on first use."""
    global _security_logger
    if _security_logger is None:
        _security_logger = SecurityEventLogger(settings)
    return _security_logger


def init_security_logging(settings: Any) -> SecurityEventLogger:
    """Replace the process-wide security logger with one built from settings."""
    global _security_logger
    _security_logger = SecurityEventLogger(settings)
    return _security_logger
