"""
Browser Management

Launches a Playwright engine (chromium, firefox or webkit) with one isolated
context and page, and tears it down again.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import replace
from typing import Optional

from playwright.async_api import Browser, BrowserContext, Page, async_playwright

from ..config.settings import BrowserConfig

logger = logging.getLogger(__name__)


class BrowserManager:
    """
    Owns the Playwright driver, browser, context and page for one session.
    """

    def __init__(self, config: Optional[BrowserConfig] = None):
        self.config = config or BrowserConfig()

        self.playwright = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self.page: Optional[Page] = None

        self.is_setup = False

    async def setup(self) -> Page:
        """Start the configured engine and return its page."""
        if self.is_setup:
            logger.warning("Browser already setup")
            return self.page

        try:
            logger.info(f"🚀 Setting up {self.config.engine}...")
            self.playwright = await async_playwright().start()

            launcher = getattr(self.playwright, self.config.engine)
            launch_args = {'headless': self.config.headless}
            # Chromium-only switches
            if self.config.engine == 'chromium':
                launch_args['args'] = self.config.args
            self.browser = await launcher.launch(**launch_args)

            self.context = await self.browser.new_context(
                viewport={
                    'width': self.config.viewport_width,
                    'height': self.config.viewport_height
                },
                user_agent=self.config.user_agent
            )
            self.page = await self.context.new_page()
            self._attach_listeners(self.page)

            self.is_setup = True
            logger.info(f"✅ {self.config.engine} ready")
            return self.page

        except Exception as e:
            logger.error(f"Browser setup failed: {e}")
            await self.cleanup()
            raise

    def _attach_listeners(self, page: Page) -> None:
        engine = self.config.engine

        def on_console(msg):
            if msg.type == 'error':
                logger.debug(f"🖥️ {engine} console error: {msg.text}")

        def on_page_error(error):
            logger.warning(f"🐛 {engine} page error: {error}")

        page.on('console', on_console)
        page.on('pageerror', on_page_error)

    async def cleanup(self) -> None:
        """Close everything that was opened; errors are logged, not raised."""
        for name in ('context', 'browser'):
            resource = getattr(self, name)
            if resource is None:
                continue
            try:
                await resource.close()
            except Exception as e:
                logger.debug(f"Error closing {name}: {e}")
            setattr(self, name, None)

        if self.playwright is not None:
            try:
                await self.playwright.stop()
            except Exception as e:
                logger.debug(f"Error stopping Playwright: {e}")
            self.playwright = None

        self.page = None
        self.is_setup = False
        logger.info(f"🧹 {self.config.engine} closed")


@asynccontextmanager
async def browser_session(config: Optional[BrowserConfig] = None, engine: Optional[str] = None):
    """Yield a ready page on a fresh browser; `engine` overrides the configured one."""
    config = config or BrowserConfig()
    if engine and engine != config.engine:
        config = replace(config, engine=engine)

    manager = BrowserManager(config)
    page = await manager.setup()
    try:
        yield page
    finally:
        await manager.cleanup()
