"""Vendor profile persistence seam.

Only the encrypted calendar token and privacy settings are stored; the
plaintext URL never reaches this layer.
"""

import asyncio
from datetime import datetime
from typing import Dict, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field

from ..ics.models import PrivacySettings


class CalendarLink(BaseModel):
    """Stored calendar link of one vendor."""

    owner_id: str
    encrypted_url: str = Field(repr=False)
    updated_at: datetime

    model_config = ConfigDict(frozen=True)


class VendorProfile(BaseModel):
    """The calendar-related slice of a vendor profile."""

    user_id: str
    calendar_link: Optional[CalendarLink] = None
    privacy_settings: Optional[PrivacySettings] = None
    updated_at: Optional[datetime] = None


class VendorProfileStore(Protocol):
    """Storage used by the HTTP layer."""

    async def get_profile(self, user_id: str) -> Optional[VendorProfile]: ...

    async def save_calendar_link(self, link: CalendarLink) -> None: ...

    async def clear_calendar_link(self, user_id: str) -> None: ...

    async def save_privacy_settings(
        self, user_id: str, settings: PrivacySettings, updated_at: datetime
    ) -> None: ...


class InMemoryVendorProfileStore:
    """Process-local store for the development server and tests.

    Profiles are created on first write unless ``auto_create`` is off, in
    which case only users registered through :meth:`add_profile` exist.
    """

    def __init__(self, auto_create: bool = True) -> None:
        self.auto_create = auto_create
        self._profiles: Dict[str, VendorProfile] = {}
        self._lock = asyncio.Lock()

    def add_profile(self, user_id: str) -> VendorProfile:
        profile = self._profiles.setdefault(user_id, VendorProfile(user_id=user_id))
        return profile

    async def get_profile(self, user_id: str) -> Optional[VendorProfile]:
        profile = self._profiles.get(user_id)
        if profile is None and self.auto_create:
            profile = self.add_profile(user_id)
        return profile

    async def _require(self, user_id: str) -> VendorProfile:
        profile = await self.get_profile(user_id)
        if profile is None:
            raise KeyError(user_id)
        return profile

    async def save_calendar_link(self, link: CalendarLink) -> None:
        async with self._lock:
            profile = await self._require(link.owner_id)
            profile.calendar_link = link
            profile.updated_at = link.updated_at

    async def clear_calendar_link(self, user_id: str) -> None:
        async with self._lock:
            profile = self._profiles.get(user_id)
            if profile is not None:
                profile.calendar_link = None

    async def save_privacy_settings(
        self, user_id: str, settings: PrivacySettings, updated_at: datetime
    ) -> None:
        async with self._lock:
            profile = await self._require(user_id)
            profile.privacy_settings = settings
            profile.updated_at = updated_at
