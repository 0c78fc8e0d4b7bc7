"""Unit tests for range selection and privacy redaction."""

from datetime import datetime, timedelta, timezone

import pytest

from calendarlink.ics.models import PrivacySettings, RawIcsEvent
from calendarlink.ics.privacy_filter import PRIVATE_SUFFIX, UNTITLED_EVENT, PrivacyFilter

UTC = timezone.utc


def _raw(uid: str, start: datetime, hours: int = 1, summary: str = "Client call", **kwargs):
    return RawIcsEvent(
        uid=uid, summary=summary, dtstart=start, dtend=start + timedelta(hours=hours), **kwargs
    )


@pytest.fixture
def events():
    """Feed-ordered events around the March 2024 window."""
    return [
        _raw("late", datetime(2024, 3, 20, 9, tzinfo=UTC), description="Bring samples"),
        _raw("before", datetime(2024, 2, 10, 9, tzinfo=UTC)),
        _raw("early", datetime(2024, 3, 2, 9, tzinfo=UTC), summary=""),
        _raw("after", datetime(2024, 4, 2, 9, tzinfo=UTC)),
    ]


class TestPrivacyFilter:
    """Tests for PrivacyFilter.apply."""

    def test_details_hidden_by_default(self, events, march_range):
        """Test that titles become the placeholder and descriptions vanish."""
        visible = PrivacyFilter().apply(events, march_range, PrivacySettings())

        assert [e.id for e in visible] == ["early", "late"]
        assert {e.title for e in visible} == {"Busy"}
        assert all(e.description is None for e in visible)
        assert all(e.is_external for e in visible)

    def test_details_shown(self, events, march_range):
        """Test that summaries and descriptions pass through when allowed."""
        visible = PrivacyFilter().apply(
            events, march_range, PrivacySettings(show_event_details=True)
        )

        assert [e.title for e in visible] == [UNTITLED_EVENT, "Client call"]
        assert visible[1].description == "Bring samples"

    def test_disabled_integration_returns_nothing(self, events, march_range):
        """Test the kill switch."""
        settings = PrivacySettings(external_calendar_enabled=False)

        assert PrivacyFilter().apply(events, march_range, settings) == []

    def test_boundary_events(self, march_range):
        """Test half-open selection at both ends of the window."""
        events = [
            _raw("ends-at-start", datetime(2024, 2, 29, 23, tzinfo=UTC)),
            _raw("spills-in", datetime(2024, 2, 29, 23, 30, tzinfo=UTC)),
            _raw("starts-at-end", datetime(2024, 4, 1, tzinfo=UTC)),
        ]

        visible = PrivacyFilter().apply(events, march_range, PrivacySettings())

        assert [e.id for e in visible] == ["spills-in"]

    def test_equal_starts_keep_feed_order(self, march_range):
        """Test that sorting by start is stable."""
        start = datetime(2024, 3, 5, 10, tzinfo=UTC)
        events = [_raw("second-in-feed", start + timedelta(hours=1)), _raw("b", start), _raw("a", start)]

        visible = PrivacyFilter().apply(events, march_range, PrivacySettings())

        assert [e.id for e in visible] == ["b", "a", "second-in-feed"]

    def test_custom_placeholder(self, events, march_range, test_settings):
        """Test that the busy placeholder is configurable."""
        settings = test_settings.model_copy(update={"busy_placeholder": "Unavailable"})

        visible = PrivacyFilter.from_settings(settings).apply(
            events, march_range, PrivacySettings()
        )

        assert {e.title for e in visible} == {"Unavailable"}

    @pytest.mark.parametrize("placeholder", ["Busy", "Unavailable"])
    def test_hidden_title_never_repeats_summary(self, march_range, placeholder):
        """Test that a summary equal to the placeholder still gets a different title."""
        start = datetime(2024, 3, 5, 10, tzinfo=UTC)
        events = [_raw("same", start, summary=placeholder), _raw("other", start)]

        visible = PrivacyFilter(busy_placeholder=placeholder).apply(
            events, march_range, PrivacySettings()
        )

        assert [e.title for e in visible] == [placeholder + PRIVATE_SUFFIX, placeholder]
        assert all(e.title != raw.summary for e, raw in zip(visible, events))

    def test_output_times_are_utc(self, march_range):
        """Test that zoned event times are exposed in UTC."""
        plus_one = timezone(timedelta(hours=1))
        events = [_raw("zoned", datetime(2024, 3, 5, 10, tzinfo=plus_one))]

        [visible] = PrivacyFilter().apply(events, march_range, PrivacySettings())

        assert visible.start == datetime(2024, 3, 5, 9, tzinfo=UTC)
        assert visible.to_api_dict()["start"] == "2024-03-05T09:00:00Z"
