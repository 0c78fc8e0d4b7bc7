"""Calendar service facade: the only entry point the HTTP layer and CLI use."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping, Optional, Union

from ..exceptions import CalendarValidationError, DecryptionError
from ..ics.exceptions import (
    FetchFailure,
    ICSError,
    ICSFeedTooLargeError,
    ICSFetchError,
    ICSInvalidFeedError,
)
from ..ics.fetcher import ICSFetcher
from ..ics.models import DateRange, ExternalEvent, PrivacySettings
from ..ics.parser import ICSParser
from ..ics.privacy_filter import PrivacyFilter
from ..security.audit import AuditAction, AuditEntry, AuditSink, SecurityAuditSink
from ..security.codec import SecretCodec
from ..security.logging import sanitize_url_for_logging
from ..validation.privacy import parse_privacy_settings
from ..validation.providers import detect_provider
from ..validation.url_validator import CalendarUrlValidator
from .models import CORRUPTED, ConnectionStatus, ConnectionTestResult, SaveResult

logger = logging.getLogger(__name__)

SAMPLE_EVENT_COUNT = 3
TEST_WINDOW_DAYS = 365

PrivacyPayload = Union[str, Mapping[str, Any], PrivacySettings, None]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CalendarService:
    """Connects vendor calendar links to the rest of the application.

    Collaborators are injected so the HTTP layer, the CLI and tests can share
    one pooled fetcher or substitute fakes.
    """

    def __init__(
        self,
        codec: SecretCodec,
        fetcher: ICSFetcher,
        parser: ICSParser,
        privacy_filter: PrivacyFilter,
        audit_sink: AuditSink,
        validator: CalendarUrlValidator,
        settings: Any,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.codec = codec
        self.fetcher = fetcher
        self.parser = parser
        self.privacy_filter = privacy_filter
        self.audit_sink = audit_sink
        self.validator = validator
        self.settings = settings
        self.clock = clock

    @classmethod
    def from_settings(
        cls,
        settings: Any,
        audit_sink: Optional[AuditSink] = None,
        fetcher: Optional[ICSFetcher] = None,
    ) -> "CalendarService":
        """Wire the default collaborators from application settings."""
        validator = CalendarUrlValidator.from_settings(settings)
        return cls(
            codec=SecretCodec.from_settings(settings),
            fetcher=fetcher or ICSFetcher(settings, validator=validator),
            parser=ICSParser(settings),
            privacy_filter=PrivacyFilter.from_settings(settings),
            audit_sink=audit_sink or SecurityAuditSink(),
            validator=validator,
            settings=settings,
        )

    def _audit(self, action: AuditAction, user_id: str, **fields: Any) -> None:
        self.audit_sink.record(AuditEntry(action=action, user_id=user_id, **fields))

    def resolve_privacy_settings(self, payload: PrivacyPayload) -> PrivacySettings:
        """Validate caller privacy settings and merge them with defaults."""
        return parse_privacy_settings(payload, self.settings.max_range_days)

    def save_calendar_url(
        self, user_id: str, raw_url: Optional[str], privacy_settings: PrivacyPayload = None
    ) -> SaveResult:
        """Validate and encrypt a calendar URL for storage.

        Returns:
            SaveResult with the ciphertext to persist

        Raises:
            CalendarValidationError: If the URL or privacy settings are invalid
        """
        result = self.validator.validate(raw_url)
        if not result.is_valid or result.normalized_url is None:
            raise CalendarValidationError(result.error or "Invalid calendar URL", field="url")

        if privacy_settings is not None:
            self.resolve_privacy_settings(privacy_settings)

        encrypted = self.codec.encrypt(result.normalized_url)
        provider = detect_provider(result.normalized_url)
        saved_at = self.clock()

        self._audit(
            AuditAction.CALENDAR_URL_UPDATED,
            user_id,
            sanitized_url=sanitize_url_for_logging(result.normalized_url),
        )
        logger.info(f"Calendar link saved for user {user_id} ({provider.value})")
        return SaveResult(encrypted_url=encrypted, saved_at=saved_at, provider=provider)

    def remove_calendar_url(self, user_id: str) -> dict:
        """Record removal of a user's calendar link; safe to repeat."""
        self._audit(AuditAction.CALENDAR_URL_REMOVED, user_id)
        logger.info(f"Calendar link removed for user {user_id}")
        return {"removed": True}

    def get_connection_status(self, encrypted_url: Optional[str] = None) -> ConnectionStatus:
        """Report whether a stored link is usable.

        A token that no longer decrypts is reported as disconnected with
        ``error="corrupted"`` rather than raised.
        """
        if not encrypted_url:
            return ConnectionStatus(status="disconnected")

        try:
            url = self.codec.decrypt(encrypted_url)
        except DecryptionError:
            logger.warning("Stored calendar link could not be decrypted")
            return ConnectionStatus(status="disconnected", error=CORRUPTED)

        return ConnectionStatus(url=url, status="connected", provider=detect_provider(url))

    def save_privacy_settings(
        self, user_id: str, settings_payload: PrivacyPayload
    ) -> PrivacySettings:
        """Validate privacy settings for storage and audit the change.

        Raises:
            CalendarValidationError: If the payload is not acceptable
        """
        privacy = self.resolve_privacy_settings(settings_payload)
        self._audit(
            AuditAction.PRIVACY_SETTINGS_UPDATED, user_id, privacy_settings=privacy.to_flags()
        )
        return privacy

    async def get_events(
        self,
        user_id: str,
        encrypted_url: Optional[str],
        date_range: DateRange,
        privacy_settings: PrivacyPayload = None,
    ) -> list[ExternalEvent]:
        """Fetch a vendor's external events for a window, redacted per privacy settings.

        Returns ``[]`` without any network access when the integration is
        disabled or no link is stored.

        Raises:
            CalendarValidationError: If the privacy settings are invalid
            DecryptionError: If the stored link cannot be decrypted
            ICSFetchError: If the feed could not be downloaded
            ICSInvalidFeedError: If the download is not a calendar
        """
        privacy = self.resolve_privacy_settings(privacy_settings)
        if not privacy.external_calendar_enabled or not encrypted_url:
            logger.debug(f"External calendar skipped for user {user_id}")
            return []

        url = self.codec.decrypt(encrypted_url)
        origin = sanitize_url_for_logging(url)

        content = await self.fetcher.fetch(url)

        raw_events = self.parser.parse(content, date_range)
        events = self.privacy_filter.apply(raw_events, date_range, privacy)

        self._audit(
            AuditAction.CALENDAR_EVENTS_FETCHED,
            user_id,
            sanitized_url=origin,
            event_count=len(events),
            range=date_range.to_log_dict(),
            privacy_settings=privacy.to_flags(),
        )
        logger.info(f"Returned {len(events)} external events from {origin} for user {user_id}")
        return events

    async def test_connection(
        self, raw_url: Optional[str], privacy_settings: PrivacyPayload = None
    ) -> ConnectionTestResult:
        """Dry-run a candidate URL: validate, fetch and parse without storing anything.

        Failures are reported in the result, never raised.
        """
        result = self.validator.validate(raw_url)
        if not result.is_valid or result.normalized_url is None:
            return ConnectionTestResult(
                success=False, message=result.error or "Invalid calendar URL"
            )

        url = result.normalized_url
        provider = detect_provider(url)

        try:
            privacy = self.resolve_privacy_settings(privacy_settings)
        except CalendarValidationError as e:
            return ConnectionTestResult(success=False, message=e.message, provider=provider)

        now = self.clock()
        window = privacy.sync_date_range or DateRange(
            start=now, end=now + timedelta(days=TEST_WINDOW_DAYS)
        )

        try:
            content = await self.fetcher.fetch(url)
        except ICSFetchError as e:
            return ConnectionTestResult(
                success=False, message=self._fetch_failure_message(e), provider=provider
            )
        except ICSFeedTooLargeError:
            return ConnectionTestResult(
                success=False,
                message="This calendar is too large to import. Try sharing a smaller calendar.",
                provider=provider,
            )
        except ICSInvalidFeedError:
            return ConnectionTestResult(
                success=False,
                message=(
                    "This URL did not return calendar data. Make sure you copied the ICS "
                    "or iCal link, not the calendar's web page."
                ),
                provider=provider,
            )
        except ICSError as e:
            return ConnectionTestResult(success=False, message=e.message, provider=provider)

        raw_events = self.parser.parse(content, window)
        visible = self.privacy_filter.apply(
            raw_events, window, privacy.model_copy(update={"external_calendar_enabled": True})
        )

        if not visible:
            message = "Calendar connection successful! No events found in the current date range."
        else:
            message = (
                f"Calendar connection successful! Found {len(visible)} events. "
                "Your external events will appear on your calendar."
            )

        return ConnectionTestResult(
            success=True,
            message=message,
            provider=provider,
            event_count=len(visible),
            sample_events=visible[:SAMPLE_EVENT_COUNT],
        )

    def _fetch_failure_message(self, error: ICSFetchError) -> str:
        if error.kind is FetchFailure.TIMEOUT:
            return "The calendar server took too long to respond. Please try again later."
        if error.status_code in (401, 403):
            return "Access to this calendar was denied. Make sure the calendar is shared publicly."
        if error.status_code == 404:
            return "Calendar not found. Please check the URL and try again."
        if error.status_code is not None:
            return f"The calendar server returned an error (HTTP {error.status_code})."
        return (
            "Unable to access this calendar. Please check the URL and ensure it's "
            "publicly accessible."
        )
