# PageFetcher.py

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import requests
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from config import HTTP_TIMEOUT_SECONDS, RENDER_MAX_LOADS, RENDER_TIMEOUT_MS, RENDER_WAIT_MS

logger = logging.getLogger('PageFetcher')

USER_AGENT = (
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) '
    'AppleWebKit/537.36 (KHTML, like Gecko) '
    'Chrome/120.0.0.0 Safari/537.36'
)

DEFAULT_HEADERS = {
    'User-Agent': USER_AGENT,
    'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8',
    'Accept-Language': 'en-US,en;q=0.5',
    'Connection': 'keep-alive',
    'Upgrade-Insecure-Requests': '1',
    'Cache-Control': 'max-age=0',
}

# "Load more" / pagination controls clicked while rendering
LOAD_MORE_SELECTORS = [
    'button:has-text("Load more")',
    'button:has-text("Show more")',
    'button:has-text("More events")',
    'a:has-text("Load more")',
    'a:has-text("Show more")',
    '[data-testid*="load-more"]',
    '[class*="load-more"]',
    '[id*="load-more"]',
]


class FetchError(Exception):
    """Both the rendering fetch and the plain GET failed."""
    def __init__(self, url: str, message: str, original_error: Optional[Exception] = None):
        self.url = url
        self.message = message
        self.original_error = original_error
        super().__init__(f"{url}: {message}")


@dataclass
class FetchedPage:
    html: str
    final_url: str


class BrowserHandle:
    """
    Headless Chromium owned by the caller.

    Create one per process (or per batch), pass it to PageFetcher and close
    it when done:

        async with BrowserHandle() as browser:
            fetcher = PageFetcher(browser)
    """

    def __init__(self, headless: bool = True):
        self.headless = headless
        self._playwright = None
        self._browser = None

    @property
    def started(self) -> bool:
        return self._browser is not None

    async def start(self) -> 'BrowserHandle':
        if self._browser is None:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(headless=self.headless)
            logger.info("Started headless browser")
        return self

    async def new_page(self):
        if self._browser is None:
            raise RuntimeError("BrowserHandle used before start()")
        context = await self._browser.new_context(
            user_agent=USER_AGENT,
            viewport={'width': 1920, 'height': 1080},
        )
        try:
            return await context.new_page()
        except Exception:
            await context.close()
            raise

    async def close(self) -> None:
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
            logger.info("Closed headless browser")

    async def __aenter__(self) -> 'BrowserHandle':
        return await self.start()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


class PageFetcher:
    """
    Page-fetch collaborator: render with the browser when one is available,
    otherwise (or on render failure) a plain HTTP GET with a desktop user agent.
    """

    def __init__(self, browser: Optional[BrowserHandle] = None, http_timeout: float = HTTP_TIMEOUT_SECONDS):
        self.browser = browser
        self.http_timeout = http_timeout

    async def fetch(self, url: str, max_loads: int = RENDER_MAX_LOADS, wait_ms: int = RENDER_WAIT_MS,
                    timeout_ms: int = RENDER_TIMEOUT_MS) -> FetchedPage:
        """
        Fetch a page's HTML.

        Args:
            url: Page URL
            max_loads: Upper bound on "load more" clicks
            wait_ms: Wait after navigation and after each click
            timeout_ms: Navigation timeout

        Returns:
            FetchedPage with HTML and the URL it was served from

        Raises:
            FetchError: when the plain GET fails as well
        """
        if self.browser is not None and self.browser.started:
            try:
                page = await self.render(url, max_loads, wait_ms, timeout_ms)
                logger.info(f"Browser rendering got {len(page.html)} bytes of HTML from {url}")
                return page
            except PlaywrightError as e:
                logger.warning(f"Browser rendering failed for {url}, falling back to HTTP GET: {e}")

        return await self.fetch_plain(url)

    async def render(self, url: str, max_loads: int, wait_ms: int, timeout_ms: int) -> FetchedPage:
        page = await self.browser.new_page()
        try:
            response = await page.goto(url, wait_until='networkidle', timeout=timeout_ms)
            if response is None:
                raise PlaywrightError(f"No response loading {url}")
            await page.wait_for_timeout(wait_ms)

            for _ in range(max_loads):
                if not await self._click_load_more(page, wait_ms):
                    break

            return FetchedPage(html=await page.content(), final_url=page.url or url)
        finally:
            await page.context.close()

    async def _click_load_more(self, page, wait_ms: int) -> bool:
        for selector in LOAD_MORE_SELECTORS:
            try:
                button = await page.query_selector(selector)
                if button and await button.is_visible():
                    await button.click()
                    await page.wait_for_timeout(wait_ms)
                    return True
            except PlaywrightError as e:
                logger.debug(f"Load-more click failed for '{selector}': {e}")
        return False

    async def fetch_plain(self, url: str) -> FetchedPage:
        loop = asyncio.get_running_loop()
        try:
            response = await loop.run_in_executor(
                None,
                lambda: requests.get(url, headers=DEFAULT_HEADERS, timeout=self.http_timeout)
            )
            response.raise_for_status()
        except requests.exceptions.Timeout as e:
            raise FetchError(url, f"Timeout after {self.http_timeout}s", e)
        except requests.exceptions.RequestException as e:
            raise FetchError(url, str(e), e)

        return FetchedPage(html=response.text, final_url=response.url or url)
