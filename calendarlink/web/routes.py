"""Vendor calendar API routes."""

import logging
from datetime import datetime
from typing import Any, Callable, Optional

from aiohttp import web

from ..exceptions import AuthenticationError, CalendarValidationError
from ..ics.models import serialize_utc
from ..service.calendar_service import CalendarService
from ..validation.privacy import parse_date_range
from .store import CalendarLink, VendorProfileStore

logger = logging.getLogger(__name__)

USER_ID_HEADER = "X-User-Id"

UserResolver = Callable[[web.Request], Optional[str]]


def header_user_resolver(request: web.Request) -> Optional[str]:
    """Development-only identity: trust the ``X-User-Id`` header."""
    user_id = request.headers.get(USER_ID_HEADER, "").strip()
    return user_id or None


def _iso(dt: Optional[datetime]) -> Optional[str]:
    return serialize_utc(dt) if dt is not None else None


def register_calendar_routes(
    app: web.Application,
    service: CalendarService,
    store: VendorProfileStore,
    user_resolver: UserResolver = header_user_resolver,
) -> None:
    """Register the vendor calendar endpoints.

    Args:
        app: aiohttp web application
        service: Calendar service facade
        store: Vendor profile storage
        user_resolver: Maps a request to the authenticated user id, or None
    """

    def current_user(request: web.Request) -> str:
        user_id = user_resolver(request)
        if not user_id:
            raise AuthenticationError()
        return user_id

    async def read_json(request: web.Request) -> dict[str, Any]:
        try:
            data = await request.json()
        except ValueError:
            raise CalendarValidationError("Request body must be valid JSON") from None
        if not isinstance(data, dict):
            raise CalendarValidationError("Request body must be a JSON object")
        return data

    def profile_not_found() -> web.Response:
        return web.json_response({"error": "Vendor profile not found"}, status=404)

    async def get_calendar_link(request: web.Request) -> web.Response:
        """Current link status for the signed-in vendor."""
        user_id = current_user(request)
        profile = await store.get_profile(user_id)
        if profile is None:
            return profile_not_found()

        link = profile.calendar_link
        status = service.get_connection_status(link.encrypted_url if link else None)
        if status.is_corrupted:
            return web.json_response(
                {"url": None, "status": "disconnected", "error": "Calendar URL corrupted"}
            )

        return web.json_response(
            {**status.to_api_dict(), "lastSync": _iso(link.updated_at) if link else None}
        )

    async def post_calendar_link(request: web.Request) -> web.Response:
        """Validate, encrypt and store a calendar URL."""
        user_id = current_user(request)
        data = await read_json(request)
        privacy_payload = data.get("privacySettings")

        profile = await store.get_profile(user_id)
        if profile is None:
            return profile_not_found()

        result = service.save_calendar_url(user_id, data.get("url"), privacy_payload)
        privacy = (
            service.save_privacy_settings(user_id, privacy_payload)
            if privacy_payload is not None
            else None
        )

        try:
            await store.save_calendar_link(
                CalendarLink(
                    owner_id=user_id, encrypted_url=result.encrypted_url, updated_at=result.saved_at
                )
            )
            if privacy is not None:
                await store.save_privacy_settings(user_id, privacy, result.saved_at)
        except Exception:
            logger.exception(f"Failed to store calendar link for user {user_id}")
            return web.json_response({"error": "Failed to save calendar URL"}, status=500)

        return web.json_response(
            {
                "success": True,
                "message": "Calendar URL saved successfully",
                "lastSync": _iso(result.saved_at),
                "provider": result.provider.value,
            }
        )

    async def delete_calendar_link(request: web.Request) -> web.Response:
        """Disconnect the vendor's calendar; repeating it is harmless."""
        user_id = current_user(request)
        service.remove_calendar_url(user_id)
        try:
            await store.clear_calendar_link(user_id)
        except Exception:
            logger.exception(f"Failed to remove calendar link for user {user_id}")
            return web.json_response({"error": "Failed to remove calendar URL"}, status=500)

        return web.json_response({"success": True, "message": "Calendar URL removed successfully"})

    async def get_external_events(request: web.Request) -> web.Response:
        """External events for ``startDate``..``endDate`` after privacy filtering."""
        user_id = current_user(request)
        date_range = parse_date_range(
            request.query.get("startDate"),
            request.query.get("endDate"),
            service.settings.max_range_days,
        )

        profile = await store.get_profile(user_id)
        if profile is None:
            return profile_not_found()

        privacy_param = request.query.get("privacySettings")
        privacy = service.resolve_privacy_settings(
            privacy_param if privacy_param is not None else profile.privacy_settings
        )

        link = profile.calendar_link
        events = await service.get_events(
            user_id, link.encrypted_url if link else None, date_range, privacy
        )
        synced = privacy.external_calendar_enabled and link is not None

        return web.json_response(
            {
                "events": [event.to_api_dict() for event in events],
                "lastSync": _iso(service.clock()) if synced else None,
                "totalCount": len(events),
                "privacySettings": privacy.to_flags(),
            }
        )

    async def post_test_calendar(request: web.Request) -> web.Response:
        """Dry-run a candidate URL without storing it."""
        current_user(request)
        data = await read_json(request)
        url = data.get("url")
        if not url or not isinstance(url, str):
            raise CalendarValidationError("Calendar URL is required", field="url")

        validation = service.validator.validate(url)
        if not validation.is_valid:
            raise CalendarValidationError(validation.error or "Invalid calendar URL", field="url")

        result = await service.test_connection(url, data.get("privacySettings"))
        return web.json_response(result.to_api_dict())

    async def get_calendar_privacy(request: web.Request) -> web.Response:
        """Stored privacy settings, or defaults."""
        user_id = current_user(request)
        profile = await store.get_profile(user_id)
        if profile is None:
            return profile_not_found()

        settings = service.resolve_privacy_settings(profile.privacy_settings)
        return web.json_response(
            {
                "settings": settings.model_dump(mode="json", by_alias=True),
                "hasCalendarConnected": profile.calendar_link is not None,
                "lastUpdated": _iso(profile.updated_at),
            }
        )

    async def post_calendar_privacy(request: web.Request) -> web.Response:
        """Validate and store privacy settings."""
        user_id = current_user(request)
        data = await read_json(request)

        profile = await store.get_profile(user_id)
        if profile is None:
            return profile_not_found()

        settings = service.save_privacy_settings(user_id, data)
        try:
            await store.save_privacy_settings(user_id, settings, service.clock())
        except Exception:
            logger.exception(f"Failed to store privacy settings for user {user_id}")
            return web.json_response({"error": "Failed to save privacy settings"}, status=500)

        return web.json_response(
            {
                "success": True,
                "message": "Privacy settings saved successfully",
                "settings": settings.model_dump(mode="json", by_alias=True),
            }
        )

    app.router.add_get("/vendor/calendar-link", get_calendar_link)
    app.router.add_post("/vendor/calendar-link", post_calendar_link)
    app.router.add_delete("/vendor/calendar-link", delete_calendar_link)
    app.router.add_get("/vendor/external-events", get_external_events)
    app.router.add_post("/vendor/test-calendar", post_test_calendar)
    app.router.add_get("/vendor/calendar-privacy", get_calendar_privacy)
    app.router.add_post("/vendor/calendar-privacy", post_calendar_privacy)
