"""aiohttp application factory and development server."""

import asyncio
import logging
import signal
from typing import Any, Optional

from aiohttp import web

from ..security.audit import AuditSink
from ..service.calendar_service import CalendarService
from .middleware import error_middleware, request_id_middleware
from .routes import UserResolver, header_user_resolver, register_calendar_routes
from .store import InMemoryVendorProfileStore, VendorProfileStore

logger = logging.getLogger(__name__)


def create_app(
    settings: Any,
    service: Optional[CalendarService] = None,
    store: Optional[VendorProfileStore] = None,
    user_resolver: UserResolver = header_user_resolver,
    audit_sink: Optional[AuditSink] = None,
) -> web.Application:
    """Create the aiohttp application with calendar routes registered.

    Args:
        settings: Application settings
        service: Calendar service; built from settings when omitted
        store: Vendor profile store; in-memory when omitted
        user_resolver: Request-to-user mapping (header based by default)
        audit_sink: Audit sink used when the service is built here

    Returns:
        Configured application; its fetcher is closed on cleanup
    """
    service = service or CalendarService.from_settings(settings, audit_sink=audit_sink)
    store = store if store is not None else InMemoryVendorProfileStore()

    app = web.Application(middlewares=[request_id_middleware, error_middleware])
    app["settings"] = settings
    app["calendar_service"] = service
    app["profile_store"] = store

    register_calendar_routes(app, service, store, user_resolver)

    async def _close_fetcher(_app: web.Application) -> None:
        await service.fetcher.close()
        logger.debug("Calendar fetcher closed")

    app.on_cleanup.append(_close_fetcher)
    logger.debug("Web application created")
    return app


def create_runner(app: web.Application) -> web.AppRunner:
    """Runner that cancels a request handler when its client disconnects."""
    return web.AppRunner(app, handler_cancellation=True)


async def serve(settings: Any, host: Optional[str] = None, port: Optional[int] = None) -> None:
    """Run the development server until SIGINT or SIGTERM."""
    host = host or settings.web_host
    port = port or settings.web_port

    app = create_app(settings)
    runner = create_runner(app)
    await runner.setup()

    site = web.TCPSite(runner, host=host, port=port)
    stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Signal handlers are unavailable on Windows event loops
            pass

    try:
        await site.start()
        logger.info(f"Server started on http://{host}:{port}")
        await stop_event.wait()
    finally:
        logger.info("Shutting down server")
        await runner.cleanup()


def start_server(settings: Any, host: Optional[str] = None, port: Optional[int] = None) -> None:
    """Blocking entry point used by the CLI."""
    try:
        asyncio.run(serve(settings, host, port))
    except KeyboardInterrupt:
        logger.info("Server interrupted")
