"""ICS calendar fetching, parsing and filtering."""

from .exceptions import (
    FetchFailure,
    ICSError,
    ICSFeedTooLargeError,
    ICSFetchError,
    ICSInvalidFeedError,
    ICSParseError,
)
from .fetcher import ICSFetcher
from .models import DateRange, ExternalEvent, ICSParseStats, PrivacySettings, RawIcsEvent
from .parser import ICSParser
from .privacy_filter import PrivacyFilter
from .rrule_expander import RRuleExpander

__all__ = [
    "DateRange",
    "ExternalEvent",
    "FetchFailure",
    "ICSError",
    "ICSFeedTooLargeError",
    "ICSFetchError",
    "ICSFetcher",
    "ICSInvalidFeedError",
    "ICSParseError",
    "ICSParseStats",
    "ICSParser",
    "PrivacyFilter",
    "PrivacySettings",
    "RRuleExpander",
    "RawIcsEvent",
]
