"""aiohttp HTTP layer for vendor calendar links."""

from .middleware import error_middleware, request_id_middleware
from .routes import header_user_resolver, register_calendar_routes
from .server import create_app, start_server
from .store import CalendarLink, InMemoryVendorProfileStore, VendorProfile, VendorProfileStore

__all__ = [
    "CalendarLink",
    "InMemoryVendorProfileStore",
    "VendorProfile",
    "VendorProfileStore",
    "create_app",
    "error_middleware",
    "header_user_resolver",
    "register_calendar_routes",
    "request_id_middleware",
    "start_server",
]
