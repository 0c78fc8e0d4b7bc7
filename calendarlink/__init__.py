"""CalendarLink - external calendar integration for marketplace vendors.

Validates, encrypts, fetches and parses vendor-supplied ICS calendar feeds
and exposes their busy time through a privacy filter.
"""

__version__ = "1.0.0"
__author__ = "CalendarLink Team"
__email__ = "support@calendarlink.local"
__description__ = "External ICS calendar integration service for vendor dashboards"

# Package metadata
__all__ = [
    "__author__",
    "__description__",
    "__email__",
    "__version__",
]
