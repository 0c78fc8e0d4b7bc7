"""Calendar provider detection for UI hints and help text.

Detection is cosmetic: the parser never branches on the provider.
"""

from enum import Enum
from typing import Optional
from urllib.parse import urlsplit


class Provider(str, Enum):
    """Known calendar providers."""

    GOOGLE = "google"
    OUTLOOK = "outlook"
    YAHOO = "yahoo"
    ICLOUD = "icloud"
    GENERIC = "generic"


# Checked in order; first substring hit wins
_PROVIDER_PATTERNS = (
    (Provider.GOOGLE, ("google.com",)),
    (Provider.OUTLOOK, ("outlook", "live.com", "office365")),
    (Provider.YAHOO, ("yahoo",)),
    (Provider.ICLOUD, ("icloud",)),
)

_DISPLAY_NAMES = {
    Provider.GOOGLE: "Google Calendar",
    Provider.OUTLOOK: "Outlook Calendar",
    Provider.YAHOO: "Yahoo Calendar",
    Provider.ICLOUD: "iCloud Calendar",
    Provider.GENERIC: "External Calendar",
}

_HELP_TEXT = {
    Provider.GOOGLE: (
        "To get your Google Calendar URL: 1. Open Google Calendar 2. Go to Settings "
        "3. Find your calendar in the left sidebar 4. Click the three dots next to it "
        "5. Select 'Settings and sharing' 6. Scroll down to 'Integrate calendar' "
        "7. Copy the 'Secret address in iCal format'"
    ),
    Provider.OUTLOOK: (
        "To get your Outlook Calendar URL: 1. Open Outlook Calendar 2. Go to Settings "
        "3. Select 'Shared calendars' 4. Under 'Publish a calendar' choose your calendar "
        "5. Click 'Publish' 6. Copy the ICS link"
    ),
    Provider.YAHOO: (
        "To get your Yahoo Calendar URL: 1. Open Yahoo Calendar 2. Click the calendar name "
        "3. Select 'Calendar Settings' 4. Go to the 'Sharing' tab 5. Copy the ICS link"
    ),
    Provider.ICLOUD: (
        "To get your iCloud Calendar URL: 1. Open iCloud Calendar 2. Click the share icon "
        "next to the calendar name 3. Enable 'Public Calendar' 4. Copy the webcal:// URL"
    ),
    Provider.GENERIC: (
        "Make sure your calendar URL is publicly accessible and in a supported format "
        "(Google Calendar, Outlook, Yahoo, iCloud, or iCal)."
    ),
}


def detect_provider(url: Optional[str]) -> Provider:
    """Classify a calendar URL by case-insensitive host/path substring match.

    Never raises; anything unrecognized (including garbage input) is GENERIC.
    """
    if not url or not isinstance(url, str):
        return Provider.GENERIC

    try:
        parts = urlsplit(url.strip())
        haystack = f"{parts.netloc}{parts.path}".lower()
    except ValueError:
        haystack = url.lower()

    if not haystack:
        haystack = url.lower()

    for provider, needles in _PROVIDER_PATTERNS:
        if any(needle in haystack for needle in needles):
            return provider

    return Provider.GENERIC


def provider_display_name(provider: Provider) -> str:
    """Human-readable provider name for the dashboard."""
    return _DISPLAY_NAMES[provider]


def provider_help_text(provider: Provider) -> str:
    """Instructions for obtaining a shareable ICS URL from the provider."""
    return _HELP_TEXT[provider]
