"""
Playwright-based page rendering with human-like pacing.
"""
import asyncio
import logging
import random
from typing import Callable, Optional

from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Page,
    async_playwright,
)

from .config import ScraperSettings
from .errors import RenderError
from .models import RenderedPage
from .utils import Sleeper, random_delay

logger = logging.getLogger(__name__)


LAUNCH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--no-first-run",
    "--no-default-browser-check",
    "--disable-extensions",
    "--disable-default-apps",
    "--disable-sync",
    "--password-store=basic",
    "--use-mock-keychain",
]
HEADLESS_ARGS = ["--disable-dev-shm-usage", "--no-sandbox", "--disable-gpu"]

# Masks the properties bot detectors read first. Formatted with the viewport size.
STEALTH_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
Object.defineProperty(navigator, 'plugins', {
  get: () => [
    { name: 'Chrome PDF Plugin', filename: 'internal-pdf-viewer', description: 'Portable Document Format', length: 1 },
    { name: 'Chrome PDF Viewer', filename: 'mhjfbmdgcfjbbpaeojofohoefgiehjai', description: 'Portable Document Format', length: 1 }
  ]
});
Object.defineProperty(navigator, 'languages', { get: () => ['en-US', 'en', 'he'] });
if (!window.chrome) {
  Object.defineProperty(window, 'chrome', { writable: true, enumerable: true, configurable: false, value: { runtime: {} } });
}
Object.defineProperty(screen, 'availWidth', { get: () => %(width)d });
Object.defineProperty(screen, 'availHeight', { get: () => %(height)d });
Object.defineProperty(screen, 'width', { get: () => %(width)d });
Object.defineProperty(screen, 'height', { get: () => %(height)d });
"""


def error_reason(e: Exception) -> str:
    """First line of a Playwright error; call logs follow on later lines."""
    text = str(e).strip()
    return text.splitlines()[0] if text else type(e).__name__


class BrowserSession:
    """
    One Chromium instance owned by a single pipeline run.

    The browser starts at the first navigation and is closed when the
    `async with` block exits, whatever the outcome. Every page gets its own
    context so each navigation presents a freshly drawn identity.
    """

    def __init__(
        self,
        settings: ScraperSettings,
        sleep: Sleeper = asyncio.sleep,
        driver: Callable = async_playwright,
    ):
        self.settings = settings
        self.timings = settings.timings
        self._sleep = sleep
        self._driver = driver
        self._playwright = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None
        self._current: Optional[RenderedPage] = None

    async def __aenter__(self) -> "BrowserSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _ensure_browser(self) -> Browser:
        if self._browser is not None and self._browser.is_connected():
            return self._browser

        args = list(LAUNCH_ARGS)
        if self.settings.headless:
            args += HEADLESS_ARGS

        # One driver per session, a dropped browser is relaunched on it
        if self._playwright is None:
            self._playwright = await self._driver().start()
        elif self._browser is not None:
            logger.warning(">>> Browser disconnected, relaunching")
        self._browser = await self._playwright.chromium.launch(
            headless=self.settings.headless,
            args=args,
        )
        logger.info(f">>> Browser launched (headless={self.settings.headless})")
        return self._browser

    async def _open_tab(self, url: str, stealth: bool = True) -> Page:
        """Fresh context and tab for `url`. Browser failures become RenderError."""
        await self._close_tab()
        try:
            browser = await self._ensure_browser()

            width, height = random.choice(self.settings.viewports)
            user_agent = random.choice(self.settings.user_agents)
            self._context = await browser.new_context(
                viewport={"width": width, "height": height},
                user_agent=user_agent,
                locale=self.settings.locale,
                extra_http_headers=self.settings.extra_headers,
            )
            self._context.set_default_navigation_timeout(self.settings.navigation_timeout_ms)
            if stealth:
                await self._context.add_init_script(STEALTH_SCRIPT % {"width": width, "height": height})
            self._page = await self._context.new_page()
        except PlaywrightError as e:
            await self._close_tab()
            raise RenderError(url, f"could not open tab: {error_reason(e)}") from e
        logger.debug(f"New tab: viewport={width}x{height} ua={user_agent[:60]}")
        return self._page

    async def _close_tab(self) -> None:
        if self._context is not None:
            try:
                await self._context.close()
            except PlaywrightError as e:
                logger.debug(f"Error closing context: {e}")
        self._context = None
        self._page = None
        self._current = None

    async def _snapshot(self, url: str, page_index: int) -> RenderedPage:
        page = self._require_page(url)
        try:
            title = await page.title()
            html = await page.content()
        except PlaywrightError as e:
            raise RenderError(url, f"snapshot failed: {error_reason(e)}") from e
        self._current = RenderedPage(url=url, page_index=page_index, title=title, html=html)
        return self._current

    def _require_page(self, url: str) -> Page:
        if self._page is None or self._page.is_closed():
            raise RenderError(url, "no open tab")
        return self._page

    async def render(self, url: str, page_index: int) -> RenderedPage:
        """Open `url` in a fresh tab the way a person would and snapshot it."""
        page = await self._open_tab(url)
        await random_delay(self.timings.pre_navigation, self._sleep)

        logger.info(f">>> Navigating to: {url}")
        try:
            await page.goto(url, wait_until="domcontentloaded", timeout=self.settings.navigation_timeout_ms)
        except PlaywrightError as e:
            await self._close_tab()
            raise RenderError(url, error_reason(e)) from e

        await self._simulate_human(page)
        rendered = await self._snapshot(url, page_index)
        logger.info(f">>> Page title: {rendered.title}")
        return rendered

    async def settle(self) -> RenderedPage:
        """Give dynamic content time to load, then snapshot the open tab again."""
        current = self._current
        if current is None:
            raise RenderError("", "settle() called before render()")
        await random_delay(self.timings.content_settle, self._sleep)
        return await self._snapshot(current.url, current.page_index)

    async def evade(self) -> RenderedPage:
        """One evasion attempt on the open tab: click, scroll, type, then wait it out."""
        current = self._current
        if current is None:
            raise RenderError("", "evade() called before render()")
        page = self._require_page(current.url)
        t = self.timings

        try:
            await page.mouse.click(random.random() * 800, random.random() * 600)
            await random_delay(t.evasion_click, self._sleep)
            await page.evaluate("window.scrollTo(0, document.body.scrollHeight / 4)")
            await random_delay(t.evasion_scroll, self._sleep)
            await page.keyboard.type("test", delay=100)
            await random_delay(t.evasion_typing, self._sleep)
        except PlaywrightError as e:
            logger.debug(f"Evasion interaction interrupted: {e}")

        await random_delay(t.evasion_wait, self._sleep)
        return await self._snapshot(current.url, current.page_index)

    async def probe(self, url: str, page_index: int) -> RenderedPage:
        """Re-render a page without the stealth pacing, for the next-page check."""
        page = await self._open_tab(url, stealth=False)
        try:
            await page.goto(url, wait_until="networkidle", timeout=self.settings.probe_timeout_ms)
        except PlaywrightError as e:
            await self._close_tab()
            raise RenderError(url, f"probe failed: {error_reason(e)}") from e
        await random_delay(self.timings.probe_settle, self._sleep)
        return await self._snapshot(url, page_index)

    async def _simulate_human(self, page: Page) -> None:
        t = self.timings
        try:
            for _ in range(3):
                await page.mouse.move(random.random() * 1200, random.random() * 800)
                await random_delay(t.mouse_move, self._sleep)

            await page.evaluate("window.scrollTo(0, Math.random() * 300)")
            await random_delay(t.first_scroll, self._sleep)

            await page.evaluate("window.scrollTo(0, Math.random() * 600)")
            await random_delay(t.second_scroll, self._sleep)

            # Top-left corner, away from links
            await page.mouse.click(random.random() * 100 + 50, random.random() * 100 + 50)
            await random_delay(t.inert_click, self._sleep)
        except PlaywrightError as e:
            # The page may navigate away under us; the snapshot still decides
            logger.debug(f"Interaction sequence interrupted: {e}")

    async def close(self) -> None:
        """Release the tab, the browser and the Playwright driver."""
        await self._close_tab()
        if self._browser is not None:
            try:
                await self._browser.close()
            except PlaywrightError as e:
                logger.debug(f"Error closing browser: {e}")
            self._browser = None
            logger.info(">>> Browser closed")
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
