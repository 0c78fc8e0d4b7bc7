"""RRULE expansion logic for the ICS parser."""

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Optional

from dateutil.rrule import DAILY, FR, MO, MONTHLY, SA, SU, TH, TU, WE, WEEKLY, YEARLY, rrule
from icalendar.prop import vRecur

from .models import DateRange, RawIcsEvent

logger = logging.getLogger(__name__)

DEFAULT_MAX_OCCURRENCES = 1000
DEFAULT_MAX_SCANNED = 20000

SUPPORTED_FREQUENCIES = {
    "DAILY": DAILY,
    "WEEKLY": WEEKLY,
    "MONTHLY": MONTHLY,
    "YEARLY": YEARLY,
}
SUPPORTED_PARTS = frozenset(["FREQ", "INTERVAL", "WKST", "UNTIL", "COUNT"])
WEEKDAYS = {"MO": MO, "TU": TU, "WE": WE, "TH": TH, "FR": FR, "SA": SA, "SU": SU}


class RRuleExpansionError(Exception):
    """Base exception for RRULE expansion errors."""


class RRuleParseError(RRuleExpansionError):
    """RRULE text is malformed or uses grammar outside the supported subset."""


class RRuleLimitError(RRuleExpansionError):
    """Reaching the requested window would walk too many occurrences."""


def occurrence_id(uid: str, start: datetime) -> str:
    """Stable id of one occurrence: ``<uid>_<YYYYMMDDTHHMMSSZ>``."""
    return f"{uid}_{start.astimezone(timezone.utc):%Y%m%dT%H%M%SZ}"


class RRuleExpander:
    """Expands a bounded subset of RRULE into individual occurrences.

    Supported: ``FREQ`` of DAILY, WEEKLY, MONTHLY or YEARLY with optional
    ``INTERVAL`` and ``WKST``, terminated by exactly one of ``UNTIL`` or
    ``COUNT``. Anything else raises RRuleParseError so the caller can fall
    back to the base occurrence.
    """

    def __init__(
        self,
        max_occurrences: int = DEFAULT_MAX_OCCURRENCES,
        max_scanned: int = DEFAULT_MAX_SCANNED,
    ):
        self.max_occurrences = max_occurrences
        self.max_scanned = max_scanned

    def build_rule(self, rrule_string: str, dtstart: datetime) -> rrule:
        """Translate RRULE text into a dateutil rule anchored at ``dtstart``.

        Raises:
            RRuleParseError: For malformed or unsupported rules
        """
        freq, kwargs = self._rule_arguments(rrule_string, dtstart)
        return rrule(SUPPORTED_FREQUENCIES[freq], **kwargs)

    def _rule_arguments(self, rrule_string: str, dtstart: datetime) -> tuple[str, dict]:
        try:
            parts = vRecur.from_ical(rrule_string.strip())
        except ValueError as e:
            raise RRuleParseError(f"Malformed RRULE: {e}") from None

        keys = {key.upper() for key in parts}
        unsupported = keys - SUPPORTED_PARTS
        if unsupported:
            raise RRuleParseError(f"Unsupported RRULE parts: {', '.join(sorted(unsupported))}")
        if "FREQ" not in keys:
            raise RRuleParseError("RRULE has no FREQ")
        if ("UNTIL" in keys) == ("COUNT" in keys):
            raise RRuleParseError("RRULE needs exactly one of UNTIL or COUNT")
        if any(len(values) != 1 for values in parts.values()):
            raise RRuleParseError("RRULE parts must have a single value")

        freq = str(parts["FREQ"][0]).upper()
        if freq not in SUPPORTED_FREQUENCIES:
            raise RRuleParseError(f"Unsupported RRULE frequency: {freq}")

        kwargs = {"dtstart": dtstart, "interval": 1}
        if "INTERVAL" in parts:
            interval = int(parts["INTERVAL"][0])
            if interval < 1:
                raise RRuleParseError("RRULE INTERVAL must be positive")
            kwargs["interval"] = interval
        if "WKST" in parts:
            wkst = str(parts["WKST"][0]).upper()
            if wkst not in WEEKDAYS:
                raise RRuleParseError(f"Invalid RRULE WKST: {wkst}")
            kwargs["wkst"] = WEEKDAYS[wkst]
        if "COUNT" in parts:
            count = int(parts["COUNT"][0])
            if count < 1:
                raise RRuleParseError("RRULE COUNT must be positive")
            kwargs["count"] = count
        else:
            kwargs["until"] = self._until(parts["UNTIL"][0], dtstart)

        return freq, kwargs

    @staticmethod
    def _until(value: object, dtstart: datetime) -> datetime:
        """Make UNTIL comparable with an aware DTSTART; date values are inclusive."""
        if isinstance(value, datetime):
            if value.tzinfo is None:
                return value.replace(tzinfo=dtstart.tzinfo)
            return value.astimezone(timezone.utc)
        if isinstance(value, date):
            return datetime.combine(value, time(23, 59, 59), tzinfo=dtstart.tzinfo)
        raise RRuleParseError("Invalid RRULE UNTIL value")

    @staticmethod
    def _fast_forward(freq: str, kwargs: dict, window_from: datetime) -> bool:
        """Move DTSTART of a DAILY or WEEKLY rule to just before ``window_from``.

        Every period of these rules yields exactly one occurrence, so whole
        periods can be skipped arithmetically. One period is kept in hand for
        DST shifts. COUNT shrinks by the number of skipped occurrences.

        Returns:
            False if COUNT runs out before the window, True otherwise
        """
        if freq not in ("DAILY", "WEEKLY"):
            return True

        dtstart = kwargs["dtstart"]
        period = kwargs["interval"] * (7 if freq == "WEEKLY" else 1)
        gap = window_from.replace(tzinfo=None) - dtstart.replace(tzinfo=None)
        periods = gap.days // period - 1
        if periods <= 0:
            return True

        if "count" in kwargs:
            kwargs["count"] -= periods
            if kwargs["count"] < 1:
                return False
        # Aware arithmetic on one tzinfo keeps the wall-clock time
        kwargs["dtstart"] = dtstart + timedelta(days=periods * period)
        return True

    def expand(
        self,
        event: RawIcsEvent,
        rrule_string: str,
        exdates: Iterable[datetime] = (),
        date_range: Optional[DateRange] = None,
    ) -> list[RawIcsEvent]:
        """Expand ``event`` into occurrences.

        Args:
            event: Base event; its ``dtstart`` carries the source time zone so
                local wall-clock times survive DST changes
            rrule_string: RRULE value
            exdates: Excluded occurrence starts (aware)
            date_range: Optional window; occurrences that do not overlap it are
                skipped

        Returns:
            Occurrences in chronological order, at most ``max_occurrences``

        Raises:
            RRuleParseError: For malformed or unsupported rules
            RRuleLimitError: If more than ``max_scanned`` occurrences precede
                the window
        """
        freq, kwargs = self._rule_arguments(rrule_string, event.dtstart)
        duration = event.duration
        excluded = {ex.astimezone(timezone.utc) for ex in exdates}

        window_from = None
        if date_range is not None:
            # Occurrences that start before the window can still overlap it
            window_from = date_range.start.astimezone(event.dtstart.tzinfo) - duration
            if not self._fast_forward(freq, kwargs, window_from):
                logger.debug(f"Recurring event {event.uid!r} ends before the requested range")
                return []

        rule = rrule(SUPPORTED_FREQUENCIES[freq], **kwargs)
        occurrences: list[RawIcsEvent] = []
        scanned = 0
        for start in rule:
            if window_from is not None and start < window_from:
                scanned += 1
                if scanned > self.max_scanned:
                    raise RRuleLimitError(
                        f"More than {self.max_scanned} occurrences before the requested range"
                    )
                continue
            if date_range is not None and start >= date_range.end:
                break
            if len(occurrences) >= self.max_occurrences:
                logger.warning(
                    f"Recurring event {event.uid!r} truncated at {self.max_occurrences} occurrences"
                )
                break

            end = start + duration
            if start.astimezone(timezone.utc) in excluded:
                continue
            if date_range is not None and not date_range.overlaps(start, end):
                continue

            occurrences.append(
                event.model_copy(
                    update={
                        "uid": occurrence_id(event.uid, start),
                        "dtstart": start,
                        "dtend": end,
                        "recurrence_rule": rrule_string,
                    }
                )
            )

        logger.debug(f"Expanded {event.uid!r} into {len(occurrences)} occurrences")
        return occurrences
