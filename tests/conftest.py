"""Shared test configuration and fixtures."""

from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, Optional

import httpx
import pytest
from cryptography.fernet import Fernet

from calendarlink.config.settings import CalendarLinkSettings
from calendarlink.ics.fetcher import ICSFetcher
from calendarlink.ics.models import DateRange
from calendarlink.ics.parser import ICSParser
from calendarlink.ics.privacy_filter import PrivacyFilter
from calendarlink.security.audit import MemoryAuditSink
from calendarlink.security.codec import SecretCodec
from calendarlink.security.logging import SecurityEventLogger
from calendarlink.service.calendar_service import CalendarService
from calendarlink.validation.url_validator import CalendarUrlValidator

CALENDAR_URL = "https://calendar.google.com/calendar/ical/vendor%40gmail.com/private-abc123/basic.ics"

TEAM_SYNC_ICS = (
    "BEGIN:VCALENDAR\r\n"
    "VERSION:2.0\r\n"
    "PRODID:-//Test//EN\r\n"
    "BEGIN:VEVENT\r\n"
    "UID:team-sync-1\r\n"
    "DTSTART:20240315T140000Z\r\n"
    "DTEND:20240315T150000Z\r\n"
    "SUMMARY:Team Sync\r\n"
    "DESCRIPTION:Weekly planning\r\n"
    "END:VEVENT\r\n"
    "END:VCALENDAR\r\n"
)

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def _build_ics(*events: str) -> str:
    blocks = "".join(f"BEGIN:VEVENT\r\n{body.strip()}\r\nEND:VEVENT\r\n" for body in events)
    return f"BEGIN:VCALENDAR\r\nVERSION:2.0\r\nPRODID:-//Test//EN\r\n{blocks}END:VCALENDAR\r\n"


def _ics_response(
    body: str = TEAM_SYNC_ICS, status_code: int = 200, **kwargs: Any
) -> httpx.Response:
    headers = kwargs.pop("headers", {"Content-Type": "text/calendar; charset=utf-8"})
    return httpx.Response(status_code, content=body.encode("utf-8"), headers=headers, **kwargs)


@pytest.fixture
def build_ics():
    """Wrap VEVENT bodies (without BEGIN/END lines) in a calendar."""
    return _build_ics


@pytest.fixture
def ics_response():
    """Factory for mock ICS HTTP responses."""
    return _ics_response


@pytest.fixture
def team_sync_ics() -> str:
    return TEAM_SYNC_ICS


@pytest.fixture
def calendar_url() -> str:
    return CALENDAR_URL


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def march_range() -> DateRange:
    return DateRange(
        start=datetime(2024, 3, 1, tzinfo=timezone.utc),
        end=datetime(2024, 4, 1, tzinfo=timezone.utc),
    )


@pytest.fixture
def fernet_key() -> str:
    return Fernet.generate_key().decode("ascii")


@pytest.fixture
def test_settings(tmp_path, fernet_key) -> CalendarLinkSettings:
    """Real settings isolated from the user's config directory and environment."""
    return CalendarLinkSettings(
        encryption_key=fernet_key,
        previous_encryption_keys=[],
        config_dir=tmp_path / "config",
        data_dir=tmp_path / "data",
        connect_timeout=1.0,
        fetch_timeout=2.0,
        max_feed_bytes=64 * 1024,
        default_timezone="UTC",
        busy_placeholder="Busy",
        max_occurrences_per_event=1000,
        max_range_days=366,
    )


@pytest.fixture
def security_logger() -> SecurityEventLogger:
    return SecurityEventLogger()


@pytest.fixture
def audit_sink() -> MemoryAuditSink:
    return MemoryAuditSink()


@pytest.fixture
def codec(test_settings) -> SecretCodec:
    return SecretCodec.from_settings(test_settings)


class RecordingTransport(httpx.MockTransport):
    """MockTransport that remembers every request it served."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.requests: list[httpx.Request] = []

        def recording_handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(recording_handler)


@pytest.fixture
def make_fetcher(test_settings, security_logger):
    """Build an ICSFetcher whose shared client is backed by a mock transport."""
    clients: list[httpx.AsyncClient] = []

    def factory(
        handler: Callable[[httpx.Request], httpx.Response],
        settings: Optional[CalendarLinkSettings] = None,
    ) -> tuple[ICSFetcher, RecordingTransport]:
        transport = RecordingTransport(handler)
        client = httpx.AsyncClient(transport=transport)
        clients.append(client)
        fetcher = ICSFetcher(
            settings or test_settings, client=client, security_logger=security_logger
        )
        return fetcher, transport

    return factory


@pytest.fixture
def make_service(test_settings, codec, audit_sink, make_fetcher, security_logger):
    """Build a CalendarService around a mock-transport fetcher."""

    def factory(
        handler: Optional[Callable[[httpx.Request], httpx.Response]] = None,
    ) -> tuple[CalendarService, RecordingTransport]:
        fetcher, transport = make_fetcher(handler or (lambda request: _ics_response()))
        service = CalendarService(
            codec=codec,
            fetcher=fetcher,
            parser=ICSParser(test_settings),
            privacy_filter=PrivacyFilter.from_settings(test_settings),
            audit_sink=audit_sink,
            validator=CalendarUrlValidator(security_logger=security_logger),
            settings=test_settings,
            clock=lambda: NOW,
        )
        return service, transport

    return factory
