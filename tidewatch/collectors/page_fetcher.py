"""Tidewatch — Page Fetchers (Playwright headless browser + plain httpx).

The Playwright fetcher renders the page so client-side fields (position
blob, voyage data) are present. The httpx fetcher is the drop-in
alternative when no browser is available; it returns the server HTML only.
"""

import asyncio
import logging
from typing import Optional

import httpx
from playwright.async_api import TimeoutError as PlaywrightTimeout
from playwright.async_api import async_playwright

from collectors.base_collector import BasePageFetcher, NavigationError, PageFetchError

logger = logging.getLogger("tidewatch.fetcher")

# Any of these means the detail page has rendered its data sections.
READY_SELECTORS = ["#djson", "h1.title", "table.tparams", ".vi__port"]

STEALTH_INIT_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
Object.defineProperty(navigator, 'languages', { get: () => ['en-US', 'en'] });
window.chrome = window.chrome || { runtime: {} };
"""

BROWSER_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--no-sandbox",
    "--disable-dev-shm-usage",
]


class PlaywrightPageFetcher(BasePageFetcher):
    """Headless Chromium fetcher. One browser per fetch, always closed."""

    def __init__(
        self,
        user_agent: str,
        navigation_timeout: float = 30.0,
        ready_timeout: float = 10.0,
        settle_delay: float = 3.0,
        attempts: int = 3,
        backoff: float = 2.0,
    ):
        super().__init__(name="playwright", attempts=attempts, backoff=backoff)
        self.user_agent = user_agent
        self.navigation_timeout = navigation_timeout
        self.ready_timeout = ready_timeout
        self.settle_delay = settle_delay

    async def fetch(self, url: str) -> str:
        try:
            return await self._render(url)
        except PageFetchError:
            raise
        except Exception as e:
            raise PageFetchError(url, self.attempts, e) from e

    async def _render(self, url: str) -> str:
        async with async_playwright() as p:
            browser = await p.chromium.launch(headless=True, args=BROWSER_ARGS)
            try:
                context = await browser.new_context(
                    user_agent=self.user_agent,
                    viewport={"width": 1366, "height": 900},
                    locale="en-US",
                )
                await context.add_init_script(STEALTH_INIT_SCRIPT)
                page = await context.new_page()

                async def navigate():
                    response = await page.goto(
                        url,
                        wait_until="domcontentloaded",
                        timeout=self.navigation_timeout * 1000,
                    )
                    if response is None:
                        raise NavigationError("no response")
                    if not response.ok:
                        raise NavigationError(f"HTTP {response.status}")

                await self.with_retries(url, navigate)

                try:
                    await page.wait_for_selector(
                        ", ".join(READY_SELECTORS),
                        timeout=self.ready_timeout * 1000,
                    )
                except PlaywrightTimeout:
                    logger.info("[playwright] No ready signal for %s within %.0fs", url, self.ready_timeout)

                await asyncio.sleep(self.settle_delay)
                return await page.content()
            finally:
                await browser.close()


class HttpxPageFetcher(BasePageFetcher):
    """Plain HTTP fetcher sharing the retry policy of the browser fetcher."""

    def __init__(
        self,
        user_agent: str,
        timeout: float = 30.0,
        attempts: int = 3,
        backoff: float = 2.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(name="httpx", attempts=attempts, backoff=backoff)
        self._http_client = httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            transport=transport,
            headers={
                "User-Agent": user_agent,
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                "Accept-Language": "en-US,en;q=0.9",
            },
        )

    async def fetch(self, url: str) -> str:
        async def get():
            resp = await self._http_client.get(url)
            resp.raise_for_status()
            return resp.text

        return await self.with_retries(url, get)

    async def close(self):
        await self._http_client.aclose()


def build_fetcher(s) -> BasePageFetcher:
    """Fetcher selected by ``settings.fetcher_backend``."""
    if s.fetcher_backend == "httpx":
        return HttpxPageFetcher(
            user_agent=s.user_agent,
            timeout=s.navigation_timeout,
            attempts=s.fetch_attempts,
            backoff=s.fetch_backoff,
        )
    return PlaywrightPageFetcher(
        user_agent=s.user_agent,
        navigation_timeout=s.navigation_timeout,
        ready_timeout=s.ready_timeout,
        settle_delay=s.settle_delay,
        attempts=s.fetch_attempts,
        backoff=s.fetch_backoff,
    )
