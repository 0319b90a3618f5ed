"""Shared fixtures: a scripted upstream site, a fresh cache and an API client."""

from typing import Callable, Dict, List, Union

import httpx
import pytest
import pytest_asyncio

from cache import MemoryCache
from http_client import build_client

BASE = "https://toonstream.one"

Route = Union[str, tuple, Exception, Callable[[httpx.Request], httpx.Response]]


class FakeUpstream:
    """Maps full URLs to canned responses and records every request.

    A route is an HTML string (200), a (status, body) tuple, an exception to
    raise from the transport, or a callable taking the request. Unrouted URLs
    answer 404.
    """

    def __init__(self):
        self.routes: Dict[str, Route] = {}
        self.requests: List[httpx.Request] = []

    def add(self, url: str, response: Route):
        if url.startswith("/"):
            url = BASE + url
        self.routes[url] = response

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(str(request.url))
        if route is None:
            return httpx.Response(404, text="<html><body>Not Found</body></html>")
        if isinstance(route, Exception):
            raise route
        if callable(route):
            return route(request)
        if isinstance(route, tuple):
            status, body = route
            return httpx.Response(status, text=body)
        return httpx.Response(200, text=route)

    @property
    def urls(self) -> List[str]:
        return [str(request.url) for request in self.requests]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def cache():
    return MemoryCache()


@pytest_asyncio.fixture
async def http_client(upstream):
    client = build_client(transport=upstream.transport())
    yield client
    await client.aclose()


@pytest_asyncio.fixture
async def api(upstream, cache):
    """httpx client bound to the FastAPI app, with upstream and cache swapped in."""
    from app import app
    from browser import get_browser_session
    from cache import get_cache
    from http_client import get_http_client

    async def override_http_client():
        client = build_client(transport=upstream.transport())
        try:
            yield client
        finally:
            await client.aclose()

    app.dependency_overrides[get_http_client] = override_http_client
    app.dependency_overrides[get_cache] = lambda: cache
    app.dependency_overrides[get_browser_session] = lambda: None

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
