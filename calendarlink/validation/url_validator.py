"""Calendar URL validation with SSRF protection."""

import ipaddress
import logging
import re
import socket
from dataclasses import dataclass
from typing import Optional, Union
from urllib.parse import urlsplit

from ..security.logging import SecurityEventLogger, get_security_logger, sanitize_url_for_logging

logger = logging.getLogger(__name__)

DEFAULT_MAX_URL_LENGTH = 2048

ALLOWED_SCHEMES = ("http", "https")
CALENDAR_HINTS = (".ics", "ical", "calendar", "webcal")

# Whitespace, control characters, quotes, angle brackets and backslashes
_SUSPICIOUS_CHARS = re.compile(r"[\s\x00-\x1f\x7f\\<>\"'`{}|^]")
# Legacy IPv4 spellings accepted by inet_aton: 2130706433, 0x7f000001, 0177.0.0.1, 127.1
_NUMERIC_HOST = re.compile(r"^(0x[0-9a-f]+|[0-9]+)(\.(0x[0-9a-f]+|[0-9]+)){0,3}$", re.IGNORECASE)

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


@dataclass(frozen=True)
class UrlValidationResult:
    """Outcome of validating a candidate calendar URL."""

    is_valid: bool
    error: Optional[str] = None
    normalized_url: Optional[str] = None
    looks_like_calendar: bool = False


def _parse_host_address(hostname: str) -> Optional[IPAddress]:
    """Interpret a hostname as an IP literal, including legacy IPv4 encodings."""
    try:
        return ipaddress.ip_address(hostname)
    except ValueError:
        pass

    if _NUMERIC_HOST.match(hostname):
        try:
            return ipaddress.IPv4Address(socket.inet_aton(hostname))
        except OSError:
            return None

    return None


def is_public_host(hostname: Optional[str]) -> bool:
    """Check that a host is not loopback, private, link-local or otherwise internal."""
    if not hostname:
        return False

    host = hostname.lower().rstrip(".")
    if host == "localhost" or host.endswith(".localhost"):
        return False

    address = _parse_host_address(host)
    if address is None:
        return True

    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped is not None:
        address = address.ipv4_mapped

    return not (
        address.is_private
        or address.is_loopback
        or address.is_link_local
        or address.is_reserved
        or address.is_unspecified
        or address.is_multicast
    )


class CalendarUrlValidator:
    """Validates vendor-supplied calendar URLs.

    Checks run in order and stop at the first failure: length, URL shape and
    scheme, suspicious characters and embedded credentials, then the host.
    Whether the URL looks like a calendar export is reported but never
    enforced; generic hosts are legal.
    """

    def __init__(
        self,
        max_url_length: int = DEFAULT_MAX_URL_LENGTH,
        security_logger: Optional[SecurityEventLogger] = None,
    ) -> None:
        self.max_url_length = max_url_length
        self.security_logger = security_logger

    @classmethod
    def from_settings(cls, settings) -> "CalendarUrlValidator":
        return cls(max_url_length=settings.max_url_length)

    def _reject(self, url: str, error: str) -> UrlValidationResult:
        security_logger = self.security_logger or get_security_logger()
        security_logger.log_input_validation_failure(
            "calendar_url", error, {"origin": sanitize_url_for_logging(url)}
        )
        return UrlValidationResult(is_valid=False, error=error)

    def validate(self, url: Optional[str]) -> UrlValidationResult:
        """Validate a candidate calendar URL.

        Args:
            url: Raw URL as typed by the vendor

        Returns:
            UrlValidationResult; ``normalized_url`` is the trimmed URL with a
            ``webcal://`` scheme rewritten to ``https://``
        """
        if not isinstance(url, str) or not url.strip():
            return UrlValidationResult(is_valid=False, error="Calendar URL is required")

        candidate = url.strip()
        if len(candidate) > self.max_url_length:
            return self._reject(candidate[:64], "Calendar URL is too long")

        if candidate.lower().startswith("webcal://"):
            candidate = "https://" + candidate[len("webcal://") :]

        try:
            parts = urlsplit(candidate)
            hostname = parts.hostname
            parts.port  # noqa: B018 - raises ValueError for a malformed port
        except ValueError:
            return self._reject(candidate, "Please enter a valid URL")

        if parts.scheme and parts.scheme.lower() not in ALLOWED_SCHEMES:
            return self._reject(candidate, "Invalid URL protocol")

        if not parts.scheme or not parts.netloc:
            return UrlValidationResult(is_valid=False, error="Please enter a valid URL")

        if _SUSPICIOUS_CHARS.search(candidate):
            return self._reject(candidate, "Calendar URL contains invalid characters")

        if "@" in parts.netloc:
            return self._reject(
                candidate, "Calendar URLs with embedded credentials are not supported"
            )

        if not hostname:
            return self._reject(candidate, "Please enter a valid URL")

        if not is_public_host(hostname):
            return self._reject(candidate, "Calendar URL must point to a public host")

        lowered = url.lower()
        looks_like_calendar = any(hint in lowered for hint in CALENDAR_HINTS)
        if not looks_like_calendar:
            logger.debug(
                f"URL for {sanitize_url_for_logging(candidate)} has no calendar export hint"
            )

        return UrlValidationResult(
            is_valid=True,
            normalized_url=candidate,
            looks_like_calendar=looks_like_calendar,
        )

    def is_safe_fetch_target(self, url: str) -> bool:
        """Scheme and host checks only; used to vet redirect hops."""
        try:
            parts = urlsplit(url)
        except ValueError:
            return False
        return parts.scheme.lower() in ALLOWED_SCHEMES and is_public_host(parts.hostname)


def validate_calendar_url(
    url: Optional[str], max_url_length: int = DEFAULT_MAX_URL_LENGTH
) -> UrlValidationResult:
    """Validate a calendar URL with default settings."""
    return CalendarUrlValidator(max_url_length=max_url_length).validate(url)
