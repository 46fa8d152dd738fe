"""
Step execution shared by scenario exploration and cross-browser test runs.
"""

import asyncio
import logging
from typing import Optional

from ..config.settings import CrawlConfig, TimeoutConfig
from ..core.errors import ResolutionFailure
from ..core.models import Step, StepAction, Target
from ..locator.self_healing import ActionOutcome, SelfHealingLocator
from .test_data import resolve_fill_value

logger = logging.getLogger(__name__)

DEFAULT_WAIT_MS = 1000


class StepRunner:
    """Executes one `Step` on a page through the self-healing locator."""

    def __init__(self, locator: Optional[SelfHealingLocator] = None,
                 crawl_config: Optional[CrawlConfig] = None,
                 timeouts: Optional[TimeoutConfig] = None):
        self.timeouts = timeouts or TimeoutConfig()
        self.crawl_config = crawl_config or CrawlConfig()
        self.locator = locator or SelfHealingLocator(self.timeouts.action_timeout)

    async def run(self, page, step: Step, healing: bool = True) -> Optional[ActionOutcome]:
        """
        Perform the step. Returns the locator outcome for element actions and
        None for page-level or skipped steps. Raises on failure.
        """
        action = step.action

        if action == StepAction.UNKNOWN:
            logger.warning(f"⚠️ Skipping unsupported action '{step.raw_action}'")
            return None

        if action == StepAction.NAVIGATE:
            url = step.value or (step.target.selector if step.target else None)
            if not url:
                raise ValueError("navigate step without a URL")
            await page.goto(url, wait_until='domcontentloaded',
                            timeout=self.timeouts.navigation_timeout)
            return None

        if action == StepAction.WAIT and step.target is None:
            await asyncio.sleep(_wait_ms(step.value) / 1000)
            return None

        target = step.target
        if target is None and action == StepAction.VERIFY and step.value:
            target = Target(selector=f'text="{step.value}"')
        if action == StepAction.WAIT:
            action = StepAction.VERIFY
        if target is None:
            raise ResolutionFailure("", action.value, [], "step has no target")

        value = step.value
        if action == StepAction.FILL:
            value = resolve_fill_value(
                value,
                selector=target.selector,
                text=target.text or '',
                element_type=target.tag,
                username=self.crawl_config.auth_username,
                password=self.crawl_config.auth_password,
            )

        return await self.locator.act(page, target, action, value, healing=healing)


def _wait_ms(value: Optional[str]) -> float:
    try:
        return max(0.0, float(value))
    except (TypeError, ValueError):
        return DEFAULT_WAIT_MS
