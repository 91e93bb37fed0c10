"""Headless browser rendering: URL + selector in, extracted text out."""

import base64
import logging
from dataclasses import dataclass
from typing import Protocol

from playwright.sync_api import Browser, BrowserContext, Playwright, sync_playwright
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from webtracker.config import Settings
from webtracker.models import SelectorType

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
]


@dataclass
class RenderResult:
    """Outcome of one page render; failures carry ``error`` instead of raising."""

    success: bool
    text: str | None = None
    title: str | None = None
    screenshot: str | None = None
    html: str | None = None
    error: str | None = None

    @classmethod
    def failed(cls, error: str) -> "RenderResult":
        return cls(success=False, error=error)


class Renderer(Protocol):
    def fetch(
        self,
        url: str,
        selector: str | None = None,
        selector_type: SelectorType = SelectorType.CSS,
    ) -> RenderResult: ...

    def fetch_page(self, url: str) -> RenderResult: ...


def playwright_selector(selector: str, selector_type: SelectorType) -> str:
    if selector_type == SelectorType.XPATH and not selector.startswith("xpath="):
        return f"xpath={selector}"
    return selector


class PlaywrightRenderer:
    """
    Renders pages in headless Chromium.

    One browser is shared by every fetch between ``start`` and ``close``;
    each fetch gets its own page. Navigation and selector waits are bounded
    by the configured timeouts; a timeout is an ordinary failed result.
    """

    def __init__(self, settings: Settings | None = None, headless: bool = True):
        self.settings = settings or Settings()
        self.headless = headless
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None

    def start(self) -> None:
        if self._context is not None:
            return
        self._playwright = sync_playwright().start()
        self._browser = self._playwright.chromium.launch(headless=self.headless, args=LAUNCH_ARGS)
        self._context = self._browser.new_context(
            viewport={"width": 1280, "height": 720},
            user_agent=USER_AGENT,
            ignore_https_errors=True,
        )
        logger.info("Renderer started")

    def close(self) -> None:
        if self._context is not None:
            self._context.close()
        if self._browser is not None:
            self._browser.close()
        if self._playwright is not None:
            self._playwright.stop()
        self._context = self._browser = self._playwright = None
        logger.info("Renderer closed")

    def __enter__(self) -> "PlaywrightRenderer":
        self.start()
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def fetch(
        self,
        url: str,
        selector: str | None = None,
        selector_type: SelectorType = SelectorType.CSS,
    ) -> RenderResult:
        """Extract the first element matching ``selector`` (or the body text) from ``url``."""
        self.start()
        page = self._context.new_page()
        try:
            logger.debug("Rendering %s", url)
            self._open(page, url)
            title = page.title()

            if selector:
                target = playwright_selector(selector, selector_type)
                try:
                    page.wait_for_selector(target, timeout=self.settings.selector_timeout_ms)
                except PlaywrightTimeoutError:
                    logger.warning("Selector %r not found on %s", selector, url)
                    return RenderResult(success=False, title=title, error=f"Selector not found: {selector}")
                text = page.locator(target).first.text_content() or ""
            else:
                text = page.text_content("body") or ""

            shot = page.screenshot(type="jpeg", quality=self.settings.screenshot_quality, full_page=False)
            return RenderResult(
                success=True,
                text=text.strip(),
                title=title,
                screenshot=base64.b64encode(shot).decode("ascii"),
            )
        except PlaywrightError as e:
            logger.warning("Failed to render %s: %s", url, e)
            return RenderResult.failed(str(e))
        finally:
            page.close()

    def fetch_page(self, url: str) -> RenderResult:
        """Full rendered HTML of ``url``, for element scanning."""
        self.start()
        page = self._context.new_page()
        try:
            self._open(page, url)
            return RenderResult(success=True, title=page.title(), html=page.content())
        except PlaywrightError as e:
            logger.warning("Failed to render %s: %s", url, e)
            return RenderResult.failed(str(e))
        finally:
            page.close()

    def _open(self, page, url: str) -> None:
        page.goto(url, wait_until="domcontentloaded", timeout=self.settings.render_timeout_ms)
        # dynamic content
        page.wait_for_timeout(self.settings.settle_ms)
