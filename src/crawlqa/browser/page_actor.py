"""
Page Actor

Drives the single page of a discovery run: navigation with retry, capture
of screenshot/DOM/title, element inventory, and returning to an origin page
after an exploratory interaction.
"""

import asyncio
import base64
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..config.settings import CrawlConfig, TimeoutConfig
from ..core.errors import CaptureError, NavigationError, RunFatalError
from ..utils.navigation import same_document
from .elements import EXTRACT_ELEMENTS_JS, build_inventory

logger = logging.getLogger(__name__)

COOKIE_ACCEPT_SELECTORS = [
    '[id*="cookie-accept"]',
    '[id*="cookie"] button[type="button"]',
    '[class*="cookie"] button',
    'text="Accept All"',
    'text="Accept all cookies"',
    'text="Allow All"',
]


@dataclass
class PageCapture:
    """Everything recorded about a page at one moment."""
    url: str
    title: str
    dom: str
    screenshot: Optional[bytes] = None

    @property
    def screenshot_base64(self) -> Optional[str]:
        if not self.screenshot:
            return None
        return base64.b64encode(self.screenshot).decode('ascii')


class PageActor:
    """Wraps a Playwright page for discovery."""

    def __init__(self, page, config: Optional[CrawlConfig] = None,
                 timeouts: Optional[TimeoutConfig] = None):
        self.page = page
        self.config = config or CrawlConfig()
        self.timeouts = timeouts or TimeoutConfig()

    @property
    def url(self) -> str:
        return self.page.url

    async def navigate(self, url: str, depth: int) -> None:
        """
        Load `url`, retrying once after a fixed delay.

        Raises RunFatalError when the start page (depth 0) cannot be loaded and
        NavigationError for any deeper page.
        """
        attempts = self.config.navigation_attempts
        last_error = ""

        for attempt in range(1, attempts + 1):
            try:
                response = await self.page.goto(
                    url, wait_until='domcontentloaded', timeout=self.timeouts.navigation_timeout
                )
                if response is not None and response.status >= 400:
                    last_error = f"HTTP {response.status}"
                else:
                    await self._settle()
                    if self.config.accept_cookies:
                        await self.accept_cookies()
                    logger.info(f"🌐 Loaded {url}")
                    return
            except Exception as e:
                last_error = str(e)

            if attempt < attempts:
                logger.warning(f"⚠️ Navigation attempt {attempt} to {url} failed ({last_error}), retrying")
                await asyncio.sleep(self.config.retry_delay)

        if depth == 0:
            raise RunFatalError(f"Start page {url} is unreachable: {last_error}",
                                context={"url": url})
        raise NavigationError(url, attempts, last_error)

    async def _settle(self) -> None:
        try:
            await self.page.wait_for_load_state('networkidle', timeout=self.timeouts.settle_timeout)
        except Exception as e:
            logger.debug(f"Network did not go idle: {e}")

    async def capture(self) -> PageCapture:
        """Screenshot, DOM and title. A failed screenshot is tolerated."""
        screenshot = None
        try:
            screenshot = await self.page.screenshot(full_page=False)
        except Exception as e:
            logger.warning(f"⚠️ Screenshot failed for {self.page.url}: {e}")

        try:
            dom = await self.page.content()
            title = await self.page.title()
        except Exception as e:
            raise CaptureError(f"Could not capture {self.page.url}: {e}") from e

        return PageCapture(url=self.page.url, title=title or "", dom=dom, screenshot=screenshot)

    async def extract_elements(self) -> List[Dict[str, Any]]:
        try:
            raw = await self.page.evaluate(EXTRACT_ELEMENTS_JS)
        except Exception as e:
            logger.warning(f"⚠️ Element extraction failed on {self.page.url}: {e}")
            return []

        inventory = build_inventory(raw or [])
        logger.info(f"🔍 Found {len(inventory)} interactive element(s)")
        return inventory

    async def go_back(self) -> bool:
        try:
            await self.page.go_back(wait_until='domcontentloaded',
                                    timeout=self.timeouts.navigation_timeout)
        except Exception as e:
            logger.warning(f"⚠️ History back failed: {e}")
            return False
        await self._settle()
        return True

    async def return_to(self, origin_url: str) -> bool:
        """
        Get back to `origin_url` after an interaction: history back when the
        URL changed, a reload of the origin when only in-page state changed.
        """
        if not same_document(self.page.url, origin_url):
            if await self.go_back() and same_document(self.page.url, origin_url):
                return True
            logger.warning(f"⚠️ Could not return to {origin_url} (at {self.page.url})")
            return False

        try:
            await self.page.goto(origin_url, wait_until='domcontentloaded',
                                 timeout=self.timeouts.navigation_timeout)
        except Exception as e:
            logger.warning(f"⚠️ Reload of {origin_url} failed: {e}")
            return False
        await self._settle()
        return True

    async def accept_cookies(self) -> bool:
        """Dismiss a cookie banner if one is showing."""
        for selector in COOKIE_ACCEPT_SELECTORS:
            try:
                matches = self.page.locator(selector)
                if await matches.count() == 0:
                    continue
                await matches.first.click(timeout=self.timeouts.element_wait_timeout)
                logger.info("🍪 Accepted cookie banner")
                return True
            except Exception as e:
                logger.debug(f"Cookie selector {selector} not clickable: {e}")
        return False
