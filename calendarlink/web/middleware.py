"""aiohttp middlewares: request correlation IDs and error mapping."""

import logging
import uuid
from collections.abc import Callable
from contextvars import ContextVar
from typing import Any

from aiohttp import web

from ..exceptions import (
    AuthenticationError,
    CalendarLinkError,
    CalendarValidationError,
    DecryptionError,
)
from ..ics.exceptions import ICSFetchError, ICSInvalidFeedError

logger = logging.getLogger(__name__)

# Correlation ID of the request being handled, for log lines outside handlers
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

REQUEST_ID_HEADER = "X-Request-ID"


@web.middleware
async def request_id_middleware(
    request: web.Request, handler: Callable[[web.Request], Any]
) -> web.StreamResponse:
    """Attach a correlation ID to the request and echo it in the response.

    An incoming ``X-Request-ID`` or ``X-Correlation-ID`` is reused; otherwise
    a UUID is generated.
    """
    request_id = (
        request.headers.get(REQUEST_ID_HEADER)
        or request.headers.get("X-Correlation-ID")
        or str(uuid.uuid4())
    )
    request_id_var.set(request_id)
    request["request_id"] = request_id

    response = await handler(request)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


def error_body(error: CalendarLinkError) -> tuple[dict[str, Any], int]:
    """Map a calendarlink exception to a JSON body and HTTP status."""
    if isinstance(error, CalendarValidationError):
        body: dict[str, Any] = {"error": error.message}
        if error.field:
            body["field"] = error.field
        return body, 400

    if isinstance(error, AuthenticationError):
        return {"error": "Unauthorized"}, 401

    if isinstance(error, DecryptionError):
        return {"error": "Calendar URL corrupted", "code": "calendar_url_corrupted"}, 500

    if isinstance(error, ICSFetchError):
        body = {
            "error": "Failed to fetch external calendar",
            "code": "fetch_failed",
            "failure": error.kind.value,
            "retryable": error.retryable,
            "message": error.message,
        }
        if error.status_code is not None:
            body["upstreamStatus"] = error.status_code
        return body, 500

    if isinstance(error, ICSInvalidFeedError):
        return {
            "error": "External calendar returned invalid data",
            "code": "invalid_feed",
            "message": error.message,
        }, 500

    return {"error": "Internal server error"}, 500


@web.middleware
async def error_middleware(
    request: web.Request, handler: Callable[[web.Request], Any]
) -> web.StreamResponse:
    """Turn calendarlink exceptions escaping a handler into JSON error responses."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except CalendarLinkError as e:
        body, status = error_body(e)
        log = logger.warning if status >= 500 else logger.info
        log(f"{request.method} {request.path} -> {status} ({type(e).__name__})")
        return web.json_response(body, status=status)
    except Exception:
        logger.exception(f"Unhandled error in {request.method} {request.path}")
        return web.json_response({"error": "Internal server error"}, status=500)
