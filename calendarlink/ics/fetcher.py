"""HTTP client for downloading ICS calendar files."""

import asyncio
import logging
from typing import Any, Optional

import httpx

from ..security.logging import SecurityEventLogger, get_security_logger, sanitize_url_for_logging
from ..validation.url_validator import CalendarUrlValidator
from .exceptions import FetchFailure, ICSFeedTooLargeError, ICSFetchError, ICSInvalidFeedError

logger = logging.getLogger(__name__)

ICS_MAGIC = "BEGIN:VCALENDAR"
EXPECTED_CONTENT_TYPES = ("text/calendar", "text/plain", "application/octet-stream")
MAX_REDIRECTS = 5


class ICSFetcher:
    """Async HTTP client for downloading ICS calendar feeds.

    One bounded GET per call: connect/read timeouts plus an overall deadline,
    a streamed byte cap, SSRF re-validation of every redirect hop, and no
    retries. Callers decide whether to try again.
    """

    def __init__(
        self,
        settings: Any,
        client: Optional[httpx.AsyncClient] = None,
        validator: Optional[CalendarUrlValidator] = None,
        security_logger: Optional[SecurityEventLogger] = None,
    ):
        """Initialize ICS fetcher.

        Args:
            settings: Application settings
            client: Optional shared client; it is not closed by this fetcher
            validator: URL validator used to vet redirect targets
            security_logger: Security event logger
        """
        self.settings = settings
        self.client = client
        self._owns_client = client is None
        self.validator = validator or CalendarUrlValidator.from_settings(settings)
        self.security_logger = security_logger or get_security_logger()

        logger.debug("ICS fetcher initialized")

    async def __aenter__(self) -> "ICSFetcher":
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _timeout(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self.settings.connect_timeout,
            read=self.settings.fetch_timeout,
            write=self.settings.connect_timeout,
            pool=self.settings.connect_timeout,
        )

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self.client is None or self.client.is_closed:
            self.client = httpx.AsyncClient(
                timeout=self._timeout(),
                follow_redirects=False,
                verify=True,
                headers={
                    "User-Agent": f"{self.settings.app_name}/1.0.0 ICS-Client",
                    "Accept": "text/calendar, text/plain, */*",
                    "Accept-Charset": "utf-8",
                    "Cache-Control": "no-cache",
                },
            )
            self._owns_client = True
        return self.client

    async def close(self) -> None:
        """Close the HTTP client if this fetcher created it."""
        if self._owns_client and self.client is not None and not self.client.is_closed:
            await self.client.aclose()

    def _log_blocked_target(self, url: str) -> None:
        self.security_logger.log_security_violation(
            "ssrf_attempt",
            "Blocked fetch of a non-public host",
            resource=sanitize_url_for_logging(url),
        )

    async def fetch(self, url: str) -> str:
        """Download an ICS feed and return its text.

        Args:
            url: Validated calendar URL (plaintext, held in memory only)

        Returns:
            Feed text starting with ``BEGIN:VCALENDAR``

        Raises:
            ICSFetchError: Timeout, unreachable host, blocked target or non-2xx
                status; ``kind`` tells them apart
            ICSFeedTooLargeError: Body exceeds ``max_feed_bytes``
            ICSInvalidFeedError: Body is not an iCalendar document
        """
        origin = sanitize_url_for_logging(url)

        if not self.validator.is_safe_fetch_target(url):
            self._log_blocked_target(url)
            raise ICSFetchError("Calendar URL is not allowed", FetchFailure.UNREACHABLE)

        client = await self._ensure_client()
        logger.debug(f"Fetching ICS from {origin}")

        try:
            return await asyncio.wait_for(
                self._download(client, url), timeout=self.settings.fetch_timeout
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.warning(f"Timeout fetching ICS from {origin}")
            raise ICSFetchError(
                f"Calendar did not respond within {self.settings.fetch_timeout:g}s",
                FetchFailure.TIMEOUT,
            ) from None
        except (httpx.TransportError, httpx.InvalidURL) as e:
            logger.warning(f"Network error fetching ICS from {origin}: {type(e).__name__}")
            raise ICSFetchError("Calendar host is unreachable", FetchFailure.UNREACHABLE) from None

    async def _download(self, client: httpx.AsyncClient, url: str) -> str:
        origin = sanitize_url_for_logging(url)
        current = url

        for _ in range(MAX_REDIRECTS + 1):
            async with client.stream(
                "GET", current, timeout=self._timeout(), follow_redirects=False
            ) as response:
                if response.is_redirect:
                    current = self._next_hop(response)
                    continue

                if not response.is_success:
                    logger.warning(f"HTTP {response.status_code} fetching ICS from {origin}")
                    raise ICSFetchError(
                        f"Calendar server returned HTTP {response.status_code}",
                        FetchFailure.HTTP_ERROR,
                        status_code=response.status_code,
                    )

                body = await self._read_body(response, origin)
                text = self._decode(body, response.charset_encoding)
                break
        else:
            logger.warning(f"Too many redirects fetching ICS from {origin}")
            raise ICSFetchError("Calendar URL redirected too many times", FetchFailure.UNREACHABLE)

        if not text.lstrip().upper().startswith(ICS_MAGIC):
            logger.warning(f"Response from {origin} is not an iCalendar feed")
            raise ICSInvalidFeedError(
                "The URL did not return calendar data. Check that it is a public ICS link."
            )

        logger.debug(f"Fetched {len(body)} bytes of ICS from {origin}")
        return text

    def _next_hop(self, response: httpx.Response) -> str:
        """Resolve a redirect target, refusing internal hosts before they are requested."""
        location = response.headers.get("location", "")
        try:
            next_url = str(response.url.join(location))
        except httpx.InvalidURL:
            next_url = ""
        if not location or not self.validator.is_safe_fetch_target(next_url):
            self._log_blocked_target(next_url or str(response.url))
            raise ICSFetchError(
                "Calendar URL redirected to a disallowed host", FetchFailure.UNREACHABLE
            )
        return next_url

    async def _read_body(self, response: httpx.Response, origin: str) -> bytes:
        max_bytes = self.settings.max_feed_bytes

        declared = response.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > max_bytes:
            raise ICSFeedTooLargeError(
                f"Calendar feed is larger than {max_bytes} bytes", limit_bytes=max_bytes
            )

        content_type = response.headers.get("content-type", "").lower()
        if content_type and not any(ct in content_type for ct in EXPECTED_CONTENT_TYPES):
            logger.warning(f"Unexpected content type from {origin}: {content_type}")

        body = bytearray()
        async for chunk in response.aiter_bytes():
            body.extend(chunk)
            if len(body) > max_bytes:
                raise ICSFeedTooLargeError(
                    f"Calendar feed is larger than {max_bytes} bytes", limit_bytes=max_bytes
                )
        return bytes(body)

    @staticmethod
    def _decode(body: bytes, charset: Optional[str]) -> str:
        encoding = charset or "utf-8"
        try:
            text = body.decode(encoding, errors="replace")
        except LookupError:
            text = body.decode("utf-8", errors="replace")
        return text.lstrip("\ufeff")
