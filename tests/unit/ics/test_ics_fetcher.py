"""Unit tests for the bounded ICS HTTP fetcher."""

import httpx
import pytest

from calendarlink.ics.exceptions import (
    FetchFailure,
    ICSFeedTooLargeError,
    ICSFetchError,
    ICSInvalidFeedError,
)
from calendarlink.ics.fetcher import MAX_REDIRECTS, ICSFetcher
from calendarlink.security.logging import SecurityEventType


class TestICSFetcher:
    """Tests for ICSFetcher.fetch."""

    @pytest.mark.asyncio
    async def test_returns_feed_text(self, make_fetcher, ics_response, calendar_url, team_sync_ics):
        """Test a successful download."""
        fetcher, transport = make_fetcher(lambda request: ics_response())

        text = await fetcher.fetch(calendar_url)

        assert text == team_sync_ics
        assert len(transport.requests) == 1
        assert str(transport.requests[0].url) == calendar_url

    @pytest.mark.asyncio
    async def test_strips_byte_order_mark(self, make_fetcher, ics_response, calendar_url, team_sync_ics):
        """Test that a UTF-8 BOM does not hide the calendar header."""
        fetcher, _ = make_fetcher(lambda request: ics_response("\ufeff" + team_sync_ics))

        text = await fetcher.fetch(calendar_url)

        assert text.startswith("BEGIN:VCALENDAR")

    @pytest.mark.asyncio
    async def test_decodes_declared_charset(self, make_fetcher, calendar_url, build_ics):
        """Test that the response charset is used for decoding."""
        body = build_ics("UID:c\r\nDTSTART:20240315T140000Z\r\nSUMMARY:Café tasting")
        fetcher, _ = make_fetcher(
            lambda request: httpx.Response(
                200,
                content=body.encode("iso-8859-1"),
                headers={"Content-Type": "text/calendar; charset=iso-8859-1"},
            )
        )

        text = await fetcher.fetch(calendar_url)

        assert "Café tasting" in text

    @pytest.mark.asyncio
    async def test_html_body_is_invalid_feed(self, make_fetcher, ics_response, calendar_url):
        """Test that a login page is not accepted as a calendar."""
        fetcher, _ = make_fetcher(
            lambda request: ics_response(
                "<html><body>Sign in</body></html>", headers={"Content-Type": "text/html"}
            )
        )

        with pytest.raises(ICSInvalidFeedError, match="did not return calendar data"):
            await fetcher.fetch(calendar_url)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("status", "retryable"), [(404, False), (403, False), (503, True), (429, True)])
    async def test_http_error_status(self, make_fetcher, calendar_url, status, retryable):
        """Test that non-2xx responses raise an HTTP_ERROR fetch error."""
        fetcher, _ = make_fetcher(lambda request: httpx.Response(status))

        with pytest.raises(ICSFetchError) as exc_info:
            await fetcher.fetch(calendar_url)

        assert exc_info.value.kind is FetchFailure.HTTP_ERROR
        assert exc_info.value.status_code == status
        assert exc_info.value.retryable is retryable

    @pytest.mark.asyncio
    async def test_timeout(self, make_fetcher, calendar_url):
        """Test that client timeouts are reported as TIMEOUT."""

        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        fetcher, _ = make_fetcher(handler)

        with pytest.raises(ICSFetchError) as exc_info:
            await fetcher.fetch(calendar_url)

        assert exc_info.value.kind is FetchFailure.TIMEOUT
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_unreachable_host(self, make_fetcher, calendar_url):
        """Test that connection failures are reported as UNREACHABLE."""

        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        fetcher, _ = make_fetcher(handler)

        with pytest.raises(ICSFetchError) as exc_info:
            await fetcher.fetch(calendar_url)

        assert exc_info.value.kind is FetchFailure.UNREACHABLE
        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_declared_length_over_cap(self, make_fetcher, ics_response, calendar_url, test_settings):
        """Test that an oversized Content-Length is refused before reading."""
        settings = test_settings.model_copy(update={"max_feed_bytes": 100})
        fetcher, _ = make_fetcher(lambda request: ics_response(), settings=settings)

        with pytest.raises(ICSFeedTooLargeError) as exc_info:
            await fetcher.fetch(calendar_url)

        assert exc_info.value.limit_bytes == 100

    @pytest.mark.asyncio
    async def test_streamed_body_over_cap(self, make_fetcher, calendar_url, test_settings):
        """Test that a chunked body is cut off once it passes the cap."""
        settings = test_settings.model_copy(update={"max_feed_bytes": 100})

        async def chunks():
            yield b"BEGIN:VCALENDAR\r\n"
            for _ in range(10):
                yield b"X-FILLER:" + b"x" * 40 + b"\r\n"

        fetcher, _ = make_fetcher(
            lambda request: httpx.Response(
                200, content=chunks(), headers={"Content-Type": "text/calendar"}
            ),
            settings=settings,
        )

        with pytest.raises(ICSFeedTooLargeError):
            await fetcher.fetch(calendar_url)

    @pytest.mark.asyncio
    async def test_internal_target_is_never_requested(self, make_fetcher, ics_response, security_logger):
        """Test that an internal URL is blocked before any request."""
        fetcher, transport = make_fetcher(lambda request: ics_response())

        with pytest.raises(ICSFetchError) as exc_info:
            await fetcher.fetch("http://127.0.0.1:8080/cal.ics")

        assert exc_info.value.kind is FetchFailure.UNREACHABLE
        assert transport.requests == []
        [event] = security_logger.get_recent_events(
            event_type=SecurityEventType.SYSTEM_SECURITY_VIOLATION
        )
        assert event.resource == "http://127.0.0.1:8080"
        assert event.details["violation_type"] == "ssrf_attempt"

    @pytest.mark.asyncio
    async def test_redirect_to_internal_host_is_blocked(self, make_fetcher, calendar_url):
        """Test that a redirect hop is validated before it is followed."""
        fetcher, transport = make_fetcher(
            lambda request: httpx.Response(
                302, headers={"Location": "http://169.254.169.254/latest/meta-data"}
            )
        )

        with pytest.raises(ICSFetchError, match="disallowed host"):
            await fetcher.fetch(calendar_url)

        assert [str(r.url) for r in transport.requests] == [calendar_url]

    @pytest.mark.asyncio
    async def test_public_redirect_is_followed(self, make_fetcher, ics_response, calendar_url):
        """Test that redirects to public hosts are followed."""

        def handler(request):
            if request.url.host == "calendar.google.com":
                return httpx.Response(301, headers={"Location": "https://cdn.example.com/cal.ics"})
            return ics_response()

        fetcher, transport = make_fetcher(handler)

        text = await fetcher.fetch(calendar_url)

        assert text.startswith("BEGIN:VCALENDAR")
        assert [r.url.host for r in transport.requests] == ["calendar.google.com", "cdn.example.com"]

    @pytest.mark.asyncio
    async def test_relative_redirect(self, make_fetcher, ics_response):
        """Test that relative Location headers resolve against the current URL."""

        def handler(request):
            if request.url.path == "/old.ics":
                return httpx.Response(302, headers={"Location": "/new.ics"})
            return ics_response()

        fetcher, transport = make_fetcher(handler)

        await fetcher.fetch("https://example.com/old.ics")

        assert str(transport.requests[-1].url) == "https://example.com/new.ics"

    @pytest.mark.asyncio
    async def test_redirect_loop_is_bounded(self, make_fetcher):
        """Test that redirect chains stop after the hop limit."""
        fetcher, transport = make_fetcher(
            lambda request: httpx.Response(302, headers={"Location": "https://example.com/loop.ics"})
        )

        with pytest.raises(ICSFetchError, match="redirected too many times"):
            await fetcher.fetch("https://example.com/loop.ics")

        assert len(transport.requests) == MAX_REDIRECTS + 1

    @pytest.mark.asyncio
    async def test_url_path_never_logged(self, make_fetcher, calendar_url, caplog):
        """Test that log lines carry only the origin of the calendar URL."""
        fetcher, _ = make_fetcher(lambda request: httpx.Response(404))

        with caplog.at_level("DEBUG", logger="calendarlink"):
            with pytest.raises(ICSFetchError):
                await fetcher.fetch(calendar_url)

        assert "https://calendar.google.com" in caplog.text
        assert "private-abc123" not in caplog.text


class TestICSFetcherClient:
    """Tests for client ownership."""

    @pytest.mark.asyncio
    async def test_shared_client_is_not_closed(self, test_settings):
        """Test that an injected client stays open after close()."""
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
        fetcher = ICSFetcher(test_settings, client=client)

        await fetcher.close()

        assert client.is_closed is False
        await client.aclose()

    @pytest.mark.asyncio
    async def test_owned_client_is_closed(self, test_settings):
        """Test that a client created by the fetcher is closed on exit."""
        async with ICSFetcher(test_settings) as fetcher:
            client = fetcher.client
            assert client is not None
            assert client.follow_redirects is False
            assert client.headers["User-Agent"].startswith(test_settings.app_name)

        assert client.is_closed is True
