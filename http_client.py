# http_client.py
"""
Outbound HTTP for the upstream site.

Every request carries a desktop-browser header set, shares one cookie jar for
the lifetime of the process and follows a bounded number of redirects. Status
codes are turned into the typed errors from errors.py so callers can branch on
"not found" versus "blocked" versus "down".
"""
import logging
from typing import Dict, Optional

from httpx import (
    AsyncBaseTransport,
    AsyncClient,
    AsyncHTTPTransport,
    Cookies,
    RequestError,
    TimeoutException,
)

from config import settings
from errors import (
    AccessDeniedError,
    NotFoundError,
    UpstreamConnectionError,
    UpstreamHTTPError,
    UpstreamTimeoutError,
)

logger = logging.getLogger(__name__)

# Cookies set by the upstream (e.g. anti-bot challenges) survive across requests
SHARED_COOKIES = Cookies()

STATUS_SUCCESS = "success"
STATUS_RETRYABLE = "retryable"
STATUS_FATAL = "fatal"


def browser_headers(referer: Optional[str] = None) -> Dict[str, str]:
    return {
        "User-Agent": settings.USER_AGENT,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9",
        "Connection": "keep-alive",
        "Upgrade-Insecure-Requests": "1",
        "Sec-Fetch-Dest": "document",
        "Sec-Fetch-Mode": "navigate",
        "Sec-Fetch-Site": "none",
        "Sec-Fetch-User": "?1",
        "Sec-Ch-Ua": '"Not_A Brand";v="8", "Chromium";v="120", "Google Chrome";v="120"',
        "Sec-Ch-Ua-Mobile": "?0",
        "Sec-Ch-Ua-Platform": '"Windows"',
        "Cache-Control": "max-age=0",
        "Referer": referer or "https://www.google.com/",
    }


def classify_status(status_code: int) -> str:
    """Classify an HTTP status as success, retryable or fatal."""
    if status_code < 400:
        return STATUS_SUCCESS
    if status_code == 429 or status_code >= 500:
        return STATUS_RETRYABLE
    return STATUS_FATAL


def absolute_url(url: str) -> str:
    if url.startswith("http"):
        return url
    if url.startswith("//"):
        return "https:" + url
    return settings.BASE_URL + "/" + url.lstrip("/")


def build_client(transport: Optional[AsyncBaseTransport] = None) -> AsyncClient:
    if transport is None:
        transport = AsyncHTTPTransport(retries=settings.HTTP_RETRIES)
    return AsyncClient(
        transport=transport,
        headers=browser_headers(),
        cookies=SHARED_COOKIES,
        timeout=settings.REQUEST_TIMEOUT,
        follow_redirects=True,
        max_redirects=settings.MAX_REDIRECTS,
    )


# Dependency to provide HTTP client
async def get_http_client():
    client = build_client()
    try:
        yield client
    finally:
        SHARED_COOKIES.update(client.cookies)
        await client.aclose()


async def fetch_page(
    client: AsyncClient,
    url: str,
    timeout: Optional[float] = None,
    referer: Optional[str] = None,
) -> str:
    """
    Fetch an upstream page and return its HTML.

    Args:
        client: Async HTTP client
        url: Absolute URL or a path relative to the configured base URL
        timeout: Per-request timeout in seconds (defaults to REQUEST_TIMEOUT)
        referer: Referer header to send instead of the default

    Raises:
        NotFoundError: upstream answered 404
        AccessDeniedError: upstream answered 403
        UpstreamHTTPError: any other status >= 400
        UpstreamTimeoutError: the request exceeded its deadline
        UpstreamConnectionError: DNS, connect or redirect failures
    """
    full_url = absolute_url(url)
    logger.debug(f"Fetching {full_url}")

    try:
        response = await client.get(
            full_url,
            headers=browser_headers(referer),
            timeout=timeout or settings.REQUEST_TIMEOUT,
        )
    except TimeoutException as e:
        logger.error(f"Timeout while fetching {full_url}: {e!r}")
        raise UpstreamTimeoutError(f"Request timeout while fetching {full_url}")
    except RequestError as e:
        logger.error(f"Network error while fetching {full_url}: {e!r}")
        raise UpstreamConnectionError(f"Network error while fetching {full_url}: {e}")

    status = response.status_code
    outcome = classify_status(status)
    if outcome == STATUS_SUCCESS:
        return response.text

    if status == 403:
        logger.error(f"403 Forbidden for {full_url}")
        raise AccessDeniedError(full_url)
    if status == 404:
        logger.info(f"404 Not Found for {full_url}")
        raise NotFoundError(full_url)

    logger.error(f"HTTP error {status} ({outcome}) for {full_url}")
    raise UpstreamHTTPError(status, full_url)
