"""Security: secret codec, audit trail and security event logging."""

from .audit import AuditAction, AuditEntry, AuditSink, MemoryAuditSink, SecurityAuditSink
from .codec import SecretCodec
from .logging import (
    SecureFormatter,
    SecurityEvent,
    SecurityEventLogger,
    SecurityEventType,
    SecuritySeverity,
    get_security_logger,
    init_security_logging,
    mask_credentials,
    sanitize_url_for_logging,
)

__all__ = [
    "AuditAction",
    "AuditEntry",
    "AuditSink",
    "MemoryAuditSink",
    "SecretCodec",
    "SecureFormatter",
    "SecurityAuditSink",
    "SecurityEvent",
    "SecurityEventLogger",
    "SecurityEventType",
    "SecuritySeverity",
    "get_security_logger",
    "init_security_logging",
    "mask_credentials",
    "sanitize_url_for_logging",
]
