"""Tests for the outbound fetch client and its error mapping."""

import httpx
import pytest

from errors import (
    AccessDeniedError,
    NotFoundError,
    UpstreamConnectionError,
    UpstreamHTTPError,
    UpstreamTimeoutError,
)
from http_client import absolute_url, browser_headers, classify_status, fetch_page


class TestHelpers:
    def test_classify_status(self):
        assert classify_status(200) == "success"
        assert classify_status(301) == "success"
        assert classify_status(429) == "retryable"
        assert classify_status(503) == "retryable"
        assert classify_status(403) == "fatal"
        assert classify_status(404) == "fatal"

    def test_absolute_url(self):
        assert absolute_url("/series/x/") == "https://toonstream.one/series/x/"
        assert absolute_url("home/") == "https://toonstream.one/home/"
        assert absolute_url("//cdn.example/a") == "https://cdn.example/a"
        assert absolute_url("https://other.example/") == "https://other.example/"

    def test_browser_headers(self):
        headers = browser_headers()
        assert "Chrome" in headers["User-Agent"]
        assert headers["Referer"] == "https://www.google.com/"
        assert browser_headers("https://toonstream.one/episode/x/")["Referer"] == "https://toonstream.one/episode/x/"


class TestFetchPage:
    @pytest.mark.asyncio
    async def test_returns_html(self, upstream, http_client):
        upstream.add("/home/", "<html>ok</html>")

        assert await fetch_page(http_client, "/home/") == "<html>ok</html>"
        assert upstream.requests[0].headers["Accept-Language"].startswith("en-US")

    @pytest.mark.asyncio
    async def test_follows_redirects(self, upstream, http_client):
        upstream.add("/old/", lambda request: httpx.Response(301, headers={"Location": "https://toonstream.one/new/"}))
        upstream.add("/new/", "<html>moved</html>")

        assert await fetch_page(http_client, "/old/") == "<html>moved</html>"

    @pytest.mark.asyncio
    async def test_404(self, http_client):
        with pytest.raises(NotFoundError) as exc_info:
            await fetch_page(http_client, "/missing/")
        assert exc_info.value.status == 404
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_403_is_access_denied(self, upstream, http_client):
        upstream.add("/home/", (403, "blocked"))

        with pytest.raises(AccessDeniedError, match="Access denied \\(403\\)"):
            await fetch_page(http_client, "/home/")

    @pytest.mark.asyncio
    async def test_server_error(self, upstream, http_client):
        upstream.add("/home/", (502, "bad gateway"))

        with pytest.raises(UpstreamHTTPError) as exc_info:
            await fetch_page(http_client, "/home/")
        assert exc_info.value.status == 502
        assert exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_timeout(self, upstream, http_client):
        upstream.add("/home/", httpx.ReadTimeout("timed out"))

        with pytest.raises(UpstreamTimeoutError, match="Request timeout"):
            await fetch_page(http_client, "/home/")

    @pytest.mark.asyncio
    async def test_connection_error(self, upstream, http_client):
        upstream.add("/home/", httpx.ConnectError("refused"))

        with pytest.raises(UpstreamConnectionError):
            await fetch_page(http_client, "/home/")
