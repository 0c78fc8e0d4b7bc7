"""CLI module for CalendarLink.

Sub-commands wrap the same service the HTTP layer uses, so a calendar URL can
be checked or previewed from a terminal without running the server.
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Optional

from ..config.settings import CalendarLinkSettings, get_settings
from ..exceptions import CalendarLinkError, CalendarValidationError
from ..ics.fetcher import ICSFetcher
from ..ics.models import DateRange, ExternalEvent, PrivacySettings
from ..ics.parser import ICSParser
from ..ics.privacy_filter import PrivacyFilter
from ..security.codec import SecretCodec
from ..security.logging import init_security_logging
from ..service.calendar_service import CalendarService
from ..utils.logging import setup_logging
from ..validation.privacy import parse_date_range
from ..validation.url_validator import CalendarUrlValidator
from .parser import create_parser, parse_date

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1


def apply_cli_overrides(
    settings: CalendarLinkSettings, args: argparse.Namespace
) -> CalendarLinkSettings:
    """Apply logging flags from the command line to settings."""
    if getattr(args, "verbose", False):
        settings.logging.console_level = "VERBOSE"
    if getattr(args, "log_level", None):
        settings.logging.console_level = args.log_level
    if getattr(args, "quiet", False):
        settings.logging.console_level = "ERROR"
    if getattr(args, "no_log_colors", False):
        settings.logging.console_colors = False
    return settings


def run_generate_key(_settings: CalendarLinkSettings, _args: argparse.Namespace) -> int:
    print(SecretCodec.generate_key())
    return EXIT_OK


async def run_check(settings: CalendarLinkSettings, args: argparse.Namespace) -> int:
    """Test a candidate calendar URL and print the outcome."""
    service = CalendarService.from_settings(settings)
    try:
        result = await service.test_connection(args.url)
    finally:
        await service.fetcher.close()

    print(result.message)
    for event in result.sample_events:
        print(f"  {event.start.isoformat()}  {event.title}")
    return EXIT_OK if result.success else EXIT_FAILURE


async def fetch_events(
    settings: CalendarLinkSettings,
    url: str,
    date_range: DateRange,
    privacy: PrivacySettings,
) -> list[ExternalEvent]:
    """Validate, fetch, parse and filter one calendar URL without storing it.

    Raises:
        CalendarValidationError: If the URL is rejected
        ICSError: If the feed cannot be fetched or is not a calendar
    """
    validator = CalendarUrlValidator.from_settings(settings)
    result = validator.validate(url)
    if not result.is_valid or result.normalized_url is None:
        raise CalendarValidationError(result.error or "Invalid calendar URL", field="url")

    async with ICSFetcher(settings, validator=validator) as fetcher:
        content = await fetcher.fetch(result.normalized_url)

    raw_events = ICSParser(settings).parse(content, date_range)
    return PrivacyFilter.from_settings(settings).apply(raw_events, date_range, privacy)


async def run_events(settings: CalendarLinkSettings, args: argparse.Namespace) -> int:
    """Print the filtered events of a calendar URL as JSON."""
    date_range = parse_date_range(args.start, args.end, settings.max_range_days)
    privacy = PrivacySettings(show_event_details=args.show_details)

    events = await fetch_events(settings, args.url, date_range, privacy)
    print(
        json.dumps(
            {"events": [event.to_api_dict() for event in events], "totalCount": len(events)},
            indent=2,
        )
    )
    return EXIT_OK


def run_serve(settings: CalendarLinkSettings, args: argparse.Namespace) -> int:
    from ..web.server import start_server

    start_server(settings, host=args.host, port=args.port)
    return EXIT_OK


async def main_entry(argv: Optional[list[str]] = None, settings: Optional[Any] = None) -> int:
    """Parse arguments and run the selected command.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    settings = apply_cli_overrides(settings or get_settings(), args)
    setup_logging(settings)
    init_security_logging(settings)

    try:
        if args.command == "check":
            return await run_check(settings, args)
        if args.command == "events":
            return await run_events(settings, args)
        if args.command == "generate-key":
            return run_generate_key(settings, args)
    except CalendarLinkError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return EXIT_FAILURE

    parser.error(f"Unknown command: {args.command}")
    return EXIT_FAILURE


def main(argv: Optional[list[str]] = None) -> int:
    """Synchronous console-script entry point."""
    args = create_parser().parse_args(argv)
    if args.command == "serve":
        settings = apply_cli_overrides(get_settings(), args)
        setup_logging(settings)
        init_security_logging(settings)
        return run_serve(settings, args)

    return asyncio.run(main_entry(argv))


__all__ = [
    "apply_cli_overrides",
    "create_parser",
    "fetch_events",
    "main",
    "main_entry",
    "parse_date",
]
