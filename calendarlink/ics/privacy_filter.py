"""Range selection and privacy projection of parsed events."""

import logging
from typing import Iterable

from .models import DateRange, ExternalEvent, PrivacySettings, RawIcsEvent

logger = logging.getLogger(__name__)

DEFAULT_BUSY_PLACEHOLDER = "Busy"
UNTITLED_EVENT = "Untitled event"
PRIVATE_SUFFIX = " (private)"


class PrivacyFilter:
    """Turns raw feed events into the events a client is allowed to see."""

    def __init__(self, busy_placeholder: str = DEFAULT_BUSY_PLACEHOLDER):
        self.busy_placeholder = busy_placeholder

    @classmethod
    def from_settings(cls, settings) -> "PrivacyFilter":
        return cls(busy_placeholder=settings.busy_placeholder)

    def apply(
        self,
        events: Iterable[RawIcsEvent],
        date_range: DateRange,
        settings: PrivacySettings,
    ) -> list[ExternalEvent]:
        """Select events overlapping ``date_range`` and redact them per ``settings``.

        With details hidden every title becomes the busy placeholder and
        descriptions are dropped. An event whose summary is the placeholder
        itself gets the placeholder with PRIVATE_SUFFIX instead, so a hidden
        title never repeats the summary. Output is sorted by start; events
        with the same start keep feed order.
        """
        if not settings.external_calendar_enabled:
            return []

        selected = [event for event in events if date_range.overlaps(event.dtstart, event.dtend)]
        selected.sort(key=lambda event: event.dtstart)

        visible = [self._project(event, settings.show_event_details) for event in selected]
        logger.debug(
            f"Privacy filter kept {len(visible)} events "
            f"(details {'shown' if settings.show_event_details else 'hidden'})"
        )
        return visible

    def _project(self, event: RawIcsEvent, show_details: bool) -> ExternalEvent:
        if show_details:
            title = event.summary or UNTITLED_EVENT
            description = event.description
        else:
            title = self.busy_placeholder
            if event.summary == title:
                title += PRIVATE_SUFFIX
            description = None

        return ExternalEvent(
            id=event.uid,
            title=title,
            start=event.dtstart,
            end=event.dtend,
            description=description,
        )
