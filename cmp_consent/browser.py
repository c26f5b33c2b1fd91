"""Playwright browser session for running the CMP engine against live pages.

The engine itself only needs a loaded ``Page``; this module owns the
Playwright lifecycle around it for the CLI and for ad-hoc scripts.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from playwright.async_api import Browser, Page, Playwright, async_playwright

logger = logging.getLogger(__name__)


class BrowserEngineType:
    """Supported browser engine types."""
    CHROMIUM = "chromium"
    FIREFOX = "firefox"
    WEBKIT = "webkit"


class BrowserSession:
    """Async context manager owning one Playwright browser.

    Example::

        async with BrowserSession() as session:
            async with session.page() as page:
                await page.goto("https://example.com")
                record = await manager.parse_page(page)
    """

    def __init__(
        self,
        engine: str = BrowserEngineType.CHROMIUM,
        headless: bool = True,
        viewport: Optional[Dict[str, int]] = None,
        locale: Optional[str] = None,
        **launch_options
    ):
        """Initialize session.

        Args:
            engine: Browser engine to use (chromium, firefox, webkit)
            headless: Run browser in headless mode
            viewport: Viewport size dict with 'width' and 'height'
            locale: Locale for new browser contexts
            **launch_options: Extra Playwright launch options
        """
        self.engine = engine
        self.headless = headless
        self.viewport = viewport or {'width': 1920, 'height': 1080}
        self.locale = locale
        self.launch_options = launch_options
        self.playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None

    async def start(self) -> None:
        """Start Playwright and launch the browser."""
        if self.playwright is not None:
            logger.warning("Browser session already started")
            return

        logger.info(f"Starting browser session with engine: {self.engine}")

        try:
            self.playwright = await async_playwright().start()

            if self.engine == BrowserEngineType.FIREFOX:
                browser_type = self.playwright.firefox
            elif self.engine == BrowserEngineType.WEBKIT:
                browser_type = self.playwright.webkit
            else:
                browser_type = self.playwright.chromium

            self.browser = await browser_type.launch(headless=self.headless, **self.launch_options)
            logger.info(f"Browser launched successfully (headless={self.headless})")

        except Exception as e:
            logger.error(f"Failed to start browser: {e}")
            await self.stop()
            raise

    async def stop(self) -> None:
        """Close the browser and stop Playwright."""
        if self.browser:
            await self.browser.close()
            self.browser = None

        if self.playwright:
            await self.playwright.stop()
            self.playwright = None

        logger.debug("Browser session stopped")

    def _context_options(self) -> Dict[str, Any]:
        options: Dict[str, Any] = {'viewport': self.viewport}
        if self.locale:
            options['locale'] = self.locale
        return options

    @asynccontextmanager
    async def page(self, **context_overrides) -> AsyncGenerator[Page, None]:
        """Context manager for a single page in a fresh browser context.

        Each page gets its own context, so cookies and localStorage from a
        previous visit never leak into consent detection.

        Raises:
            RuntimeError: If the session is not started
        """
        if not self.browser:
            raise RuntimeError("Browser session not started. Call start() first.")

        options = self._context_options()
        options.update(context_overrides)

        context = await self.browser.new_context(**options)
        try:
            page = await context.new_page()
            yield page
        finally:
            await context.close()

    async def __aenter__(self) -> "BrowserSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()
