"""Tolerant iCalendar (RFC 5545) parser for external calendar feeds."""

import hashlib
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, timezone, tzinfo
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from icalendar.prop import vDate, vDatetime, vDuration

from .exceptions import ICSParseError
from .models import DateRange, ICSParseStats, RawIcsEvent
from .rrule_expander import DEFAULT_MAX_OCCURRENCES, RRuleExpander, RRuleExpansionError

logger = logging.getLogger(__name__)

READ_PROPERTIES = frozenset(
    ["UID", "SUMMARY", "DESCRIPTION", "LOCATION", "DTSTART", "DTEND", "DURATION", "RRULE", "EXDATE"]
)

_TEXT_ESCAPES = re.compile(r"\\([\\,;nN])")


@dataclass
class ContentLine:
    """One unfolded content line split into name, parameters and value."""

    name: str
    params: dict[str, str] = field(default_factory=dict)
    value: str = ""


def unfold_lines(content: str) -> list[str]:
    """Split on CRLF, LF or CR and join continuation lines.

    A continuation line starts with one space or tab; that character and the
    preceding line break are removed and nothing else is inserted.
    """
    lines: list[str] = []
    for physical in re.split(r"\r\n|\n|\r", content):
        if physical[:1] in (" ", "\t") and lines:
            lines[-1] += physical[1:]
        else:
            lines.append(physical)
    return [line for line in lines if line.strip()]


def split_content_line(line: str) -> Optional[ContentLine]:
    """Split ``NAME;PARAM=x;PARAM="a:b":value`` at the first unquoted colon.

    Returns None for lines without a separator.
    """
    in_quotes = False
    for index, char in enumerate(line):
        if char == '"':
            in_quotes = not in_quotes
        elif char == ":" and not in_quotes:
            head, value = line[:index], line[index + 1 :]
            break
    else:
        return None

    name, *raw_params = head.split(";")
    params: dict[str, str] = {}
    for raw in raw_params:
        key, sep, param_value = raw.partition("=")
        if sep:
            params[key.strip().upper()] = param_value.strip().strip('"')
    return ContentLine(name=name.strip().upper(), params=params, value=value)


def unescape_text(value: str) -> str:
    """Undo RFC 5545 TEXT escaping (``\\,`` ``\\;`` ``\\n`` ``\\N`` ``\\\\``)."""
    return _TEXT_ESCAPES.sub(lambda m: "\n" if m.group(1) in "nN" else m.group(1), value)


class ICSParser:
    """Parser for ICS feeds that never fails the whole feed for one bad event.

    Only ``VEVENT`` components are read. Every other component (including
    alarms nested in events) is skipped. Events with unusable times are
    dropped with a warning and counted in ``last_stats``.
    """

    def __init__(
        self,
        settings: Any = None,
        default_timezone: str = "UTC",
        max_occurrences: int = DEFAULT_MAX_OCCURRENCES,
    ) -> None:
        """Initialize the parser.

        Args:
            settings: Application settings; overrides the keyword defaults
            default_timezone: Zone for floating times and unknown TZIDs
            max_occurrences: Cap on occurrences per recurring event
        """
        if settings is not None:
            default_timezone = settings.default_timezone
            max_occurrences = settings.max_occurrences_per_event

        self.default_tz = self._zone(default_timezone) or timezone.utc
        self.expander = RRuleExpander(max_occurrences=max_occurrences)
        self.last_stats = ICSParseStats()

    @staticmethod
    def _zone(name: Optional[str]) -> Optional[tzinfo]:
        if not name:
            return None
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            return None

    def parse(self, content: str, date_range: Optional[DateRange] = None) -> list[RawIcsEvent]:
        """Parse feed text into raw events in feed order.

        Args:
            content: Feed text
            date_range: When given, recurring events only yield occurrences
                overlapping this window

        Returns:
            Events and expanded occurrences; ``[]`` when nothing parses
        """
        stats = ICSParseStats()
        events: list[RawIcsEvent] = []

        for index, block in enumerate(self._event_blocks(unfold_lines(content))):
            stats.total_components += 1
            try:
                event, rrule_string, exdates = self._build_event(block, index)
            except ICSParseError as e:
                stats.dropped_events += 1
                logger.warning(f"Dropping calendar event #{index}: {e.message}")
                continue

            stats.parsed_events += 1
            if rrule_string is None:
                events.append(event)
                continue

            stats.recurring_events += 1
            try:
                occurrences = self.expander.expand(event, rrule_string, exdates, date_range)
            except RRuleExpansionError as e:
                stats.unsupported_rules += 1
                logger.warning(f"Recurring event {event.uid!r} emitted once: {e}")
                events.append(event)
                continue

            stats.expanded_occurrences += len(occurrences)
            events.extend(occurrences)

        self.last_stats = stats
        logger.debug(
            f"Parsed ICS: {stats.total_components} events, {stats.parsed_events} parsed, "
            f"{stats.dropped_events} dropped, {stats.expanded_occurrences} occurrences"
        )
        return events

    def _event_blocks(self, lines: list[str]) -> list[list[ContentLine]]:
        blocks: list[list[ContentLine]] = []
        current: Optional[list[ContentLine]] = None
        nested_depth = 0

        for line in lines:
            parsed = split_content_line(line)
            if parsed is None:
                continue

            if parsed.name == "BEGIN":
                component = parsed.value.strip().upper()
                if current is None:
                    if component == "VEVENT":
                        current = []
                else:
                    nested_depth += 1
                continue

            if parsed.name == "END" and current is not None:
                if nested_depth:
                    nested_depth -= 1
                elif parsed.value.strip().upper() == "VEVENT":
                    blocks.append(current)
                    current = None
                continue

            if current is not None and not nested_depth and parsed.name in READ_PROPERTIES:
                current.append(parsed)

        if current is not None:
            logger.warning("Feed ended inside an unterminated VEVENT; ignoring it")

        return blocks

    def _build_event(
        self, block: list[ContentLine], index: int
    ) -> tuple[RawIcsEvent, Optional[str], list[datetime]]:
        props: dict[str, ContentLine] = {}
        exdates: list[datetime] = []

        for line in block:
            if line.name == "EXDATE":
                exdates.extend(self._parse_exdates(line))
            else:
                props.setdefault(line.name, line)

        if "DTSTART" not in props:
            raise ICSParseError("missing DTSTART")

        start, is_all_day = self._parse_date_value(props["DTSTART"])

        if "DTEND" in props:
            end, _ = self._parse_date_value(props["DTEND"])
        elif "DURATION" in props:
            try:
                end = start + vDuration.from_ical(props["DURATION"].value.strip())
            except ValueError:
                raise ICSParseError("unparsable DURATION") from None
        elif is_all_day:
            end = start + timedelta(days=1)
        else:
            end = start

        if end < start:
            raise ICSParseError("DTEND precedes DTSTART")

        summary = unescape_text(props["SUMMARY"].value) if "SUMMARY" in props else ""
        description = unescape_text(props["DESCRIPTION"].value) if "DESCRIPTION" in props else None
        location = unescape_text(props["LOCATION"].value) if "LOCATION" in props else None

        uid = props["UID"].value.strip() if "UID" in props else ""
        if not uid:
            uid = self._fallback_uid(start, summary)

        rrule_string = props["RRULE"].value.strip() if "RRULE" in props else None

        event = RawIcsEvent(
            uid=uid,
            summary=summary,
            description=description,
            location=location,
            dtstart=start,
            dtend=end,
            is_all_day=is_all_day,
            recurrence_rule=rrule_string,
            sequence_index=index,
        )
        return event, rrule_string or None, exdates

    def _parse_date_value(self, line: ContentLine) -> tuple[datetime, bool]:
        """Decode a DATE or DATE-TIME value into an aware datetime.

        Returns:
            ``(value, is_all_day)``; all-day values are local midnight

        Raises:
            ICSParseError: If the value cannot be decoded
        """
        raw = line.value.strip()
        tz = self._zone(line.params.get("TZID")) or self.default_tz

        if line.params.get("VALUE", "").upper() == "DATE" or len(raw) == 8:
            try:
                day = vDate.from_ical(raw)
            except ValueError:
                raise ICSParseError(f"unparsable {line.name} date") from None
            return datetime.combine(day, time.min, tzinfo=tz), True

        try:
            value = vDatetime.from_ical(raw)
        except ValueError:
            raise ICSParseError(f"unparsable {line.name} value") from None

        if value.tzinfo is None:
            return value.replace(tzinfo=tz), False
        return value.astimezone(timezone.utc), False

    def _parse_exdates(self, line: ContentLine) -> list[datetime]:
        exdates = []
        for raw in line.value.split(","):
            if not raw.strip():
                continue
            try:
                value, _ = self._parse_date_value(
                    ContentLine(name=line.name, params=line.params, value=raw)
                )
            except ICSParseError:
                logger.debug(f"Ignoring unparsable EXDATE value {raw.strip()!r}")
                continue
            exdates.append(value)
        return exdates

    @staticmethod
    def _fallback_uid(start: datetime, summary: str) -> str:
        digest = hashlib.sha1(
            f"{start.astimezone(timezone.utc).isoformat()}|{summary}".encode()
        ).hexdigest()
        return f"generated-{digest[:16]}"
