"""Command-line argument parsing for CalendarLink."""

import argparse
import logging
from datetime import datetime, timezone

from .. import __version__

logger = logging.getLogger(__name__)

LOG_LEVELS = ["DEBUG", "VERBOSE", "INFO", "WARNING", "ERROR", "CRITICAL"]


def parse_date(date_str: str) -> datetime:
    """Parse a ``YYYY-MM-DD`` or ISO-8601 argument into an aware UTC datetime.

    Raises:
        argparse.ArgumentTypeError: If the value is not a date
    """
    try:
        value = datetime.fromisoformat(date_str.replace("Z", "+00:00"))
    except ValueError as err:
        raise argparse.ArgumentTypeError(
            f"Invalid date '{date_str}'. Use YYYY-MM-DD or an ISO-8601 timestamp"
        ) from err

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def create_parser() -> argparse.ArgumentParser:
    """Create the command line parser.

    Returns:
        argparse.ArgumentParser with one sub-command per operation
    """
    parser = argparse.ArgumentParser(
        prog="calendarlink",
        description="CalendarLink - external ICS calendar integration for vendor dashboards",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s generate-key                       # Print a new encryption key
  %(prog)s check https://example.com/cal.ics  # Test a calendar URL
  %(prog)s events https://example.com/cal.ics --start 2024-03-01 --end 2024-04-01
  %(prog)s serve --port 3000                  # Run the development API server
        """,
    )

    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}", help="Show version"
    )

    logging_group = parser.add_argument_group("logging", "Logging options")
    logging_group.add_argument(
        "--log-level", choices=LOG_LEVELS, help="Set the console log level"
    )
    logging_group.add_argument(
        "--verbose", "-v", action="store_true", help="Enable verbose logging"
    )
    logging_group.add_argument(
        "--quiet", "-q", action="store_true", help="Only show errors on the console"
    )
    logging_group.add_argument(
        "--no-log-colors", action="store_true", help="Disable colored console output"
    )

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True

    subparsers.add_parser("generate-key", help="Generate a Fernet key for stored calendar URLs")

    check = subparsers.add_parser("check", help="Validate and test-fetch a calendar URL")
    check.add_argument("url", help="Calendar ICS URL (http, https or webcal)")

    events = subparsers.add_parser("events", help="Print external events for a date range")
    events.add_argument("url", help="Calendar ICS URL (http, https or webcal)")
    events.add_argument("--start", type=parse_date, required=True, help="Range start")
    events.add_argument("--end", type=parse_date, required=True, help="Range end (exclusive)")
    events.add_argument(
        "--show-details", action="store_true", help="Show titles and descriptions"
    )

    serve = subparsers.add_parser("serve", help="Run the development API server")
    serve.add_argument("--host", help="Bind address (default from settings)")
    serve.add_argument("--port", type=int, help="Port (default from settings)")

    return parser
