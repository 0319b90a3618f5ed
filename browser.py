# browser.py
"""
Optional headless-browser fallback for pages whose player markup is injected
by JavaScript. Only used when BROWSER_FALLBACK is enabled.

One Chromium instance is shared by the whole process. Access goes through an
asyncio.Lock so at most one page is driven at a time, and relaunches after a
crash are spaced at least BROWSER_MIN_LAUNCH_INTERVAL seconds apart.
"""
import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional, TypeVar

from playwright.async_api import Browser, BrowserContext, async_playwright
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from config import settings
from errors import ScrapeError, UpstreamTimeoutError
from http_client import browser_headers

logger = logging.getLogger(__name__)

T = TypeVar("T")

CHROMIUM_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--disable-dev-shm-usage",
    "--no-sandbox",
]


class BrowserSession:
    def __init__(
        self,
        headless: Optional[bool] = None,
        timeout: Optional[float] = None,
        min_launch_interval: Optional[float] = None,
    ):
        self.headless = settings.BROWSER_HEADLESS if headless is None else headless
        self.timeout = timeout or settings.BROWSER_TIMEOUT
        self.min_launch_interval = (
            settings.BROWSER_MIN_LAUNCH_INTERVAL if min_launch_interval is None else min_launch_interval
        )
        self._playwright = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._last_launch = 0.0
        self._lock: Optional[asyncio.Lock] = None
        self._loop = None

    def _get_lock(self) -> asyncio.Lock:
        """Get or create a lock bound to the running event loop."""
        current_loop = asyncio.get_running_loop()
        if self._lock is None or self._loop is not current_loop:
            self._lock = asyncio.Lock()
            self._loop = current_loop
        return self._lock

    @property
    def is_running(self) -> bool:
        return self._browser is not None and self._browser.is_connected()

    async def _teardown(self) -> None:
        context, browser, playwright = self._context, self._browser, self._playwright
        self._context = self._browser = self._playwright = None
        try:
            if context is not None:
                await context.close()
            if browser is not None:
                await browser.close()
        except Exception as e:
            logger.warning(f"Error while closing browser: {e}")
        finally:
            if playwright is not None:
                await playwright.stop()

    async def _ensure_context(self) -> BrowserContext:
        # Caller must hold the lock
        if self.is_running and self._context is not None:
            return self._context

        wait = self.min_launch_interval - (time.monotonic() - self._last_launch)
        if self._last_launch and wait > 0:
            logger.info(f"Waiting {wait:.1f}s before relaunching the browser")
            await asyncio.sleep(wait)

        await self._teardown()
        self._last_launch = time.monotonic()
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.headless,
                args=CHROMIUM_ARGS,
            )
            self._context = await self._browser.new_context(
                user_agent=settings.USER_AGENT,
                extra_http_headers={"Accept-Language": browser_headers()["Accept-Language"]},
                viewport={"width": 1366, "height": 768},
            )
        except Exception as e:
            logger.error(f"Browser launch failed: {e}")
            await self._teardown()
            raise ScrapeError(f"Browser launch failed: {e}")

        logger.info("Browser session started")
        return self._context

    async def with_exclusive_session(self, fn: Callable[[BrowserContext], Awaitable[T]]) -> T:
        """Run fn with the shared browser context while holding the session lock."""
        async with self._get_lock():
            context = await self._ensure_context()
            return await fn(context)

    async def fetch_html(self, url: str) -> str:
        """Render a page and return its HTML after DOMContentLoaded."""

        async def render(context: BrowserContext) -> str:
            page = await context.new_page()
            try:
                await page.goto(url, wait_until="domcontentloaded", timeout=self.timeout * 1000)
                return await page.content()
            finally:
                await page.close()

        logger.info(f"Rendering {url} in browser")
        try:
            return await self.with_exclusive_session(render)
        except ScrapeError:
            raise
        except PlaywrightTimeoutError:
            raise UpstreamTimeoutError(f"Browser timeout while loading {url}")
        except Exception as e:
            raise ScrapeError(f"Browser navigation failed for {url}: {e}")

    async def close(self) -> None:
        async with self._get_lock():
            if self._playwright is not None:
                await self._teardown()
                logger.info("Browser session closed")


_session = BrowserSession()


# Dependency to provide the browser fallback (None when disabled)
def get_browser_session() -> Optional[BrowserSession]:
    if not settings.BROWSER_FALLBACK:
        return None
    return _session


async def close_browser_session() -> None:
    await _session.close()
