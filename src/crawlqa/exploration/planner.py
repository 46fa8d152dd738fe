"""
Scenario Planner

Asks the decision oracle for interaction scenarios and persists them exactly
as ranked. A failing or confused oracle means no scenarios, never a failed
page.
"""

import logging
from typing import Any, Dict, List, Optional

from ..browser.page_actor import PageCapture
from ..core.errors import OracleError, PersistenceError
from ..core.models import DiscoveredPage, InteractionScenario
from ..oracle.base import DecisionOracle, OracleObservation, parse_scenarios
from ..storage.base import DiscoveryStore

logger = logging.getLogger(__name__)


class ScenarioPlanner:

    def __init__(self, store: DiscoveryStore, oracle: DecisionOracle,
                 max_scenarios: Optional[int] = None):
        self.store = store
        self.oracle = oracle
        self.max_scenarios = max_scenarios

    async def plan_scenarios(self, page: DiscoveredPage, capture: PageCapture,
                             elements: List[Dict[str, Any]]) -> List[InteractionScenario]:
        observation = OracleObservation(
            url=page.url,
            title=capture.title,
            dom=capture.dom,
            elements=elements,
            screenshot_base64=capture.screenshot_base64,
            is_virtual=page.is_virtual,
        )

        try:
            raw = await self.oracle.suggest_scenarios(observation)
        except OracleError as e:
            logger.warning(f"⚠️ No scenarios for {page.url}: {e}")
            return []
        except Exception as e:
            logger.error(f"❌ Oracle crashed on {page.url}: {e}")
            return []

        scenarios = parse_scenarios(raw, page.id, page.run_id, self.max_scenarios)

        persisted: List[InteractionScenario] = []
        for scenario in scenarios:
            try:
                stored = self.store.add_scenario(scenario)
            except PersistenceError as e:
                logger.error(f"❌ Could not save scenario '{scenario.name}': {e}")
                continue
            if stored is None:
                logger.debug(f"Scenario '{scenario.name}' already exists for page {page.id}")
                continue
            persisted.append(stored)

        logger.info(f"🧠 Planned {len(persisted)} scenario(s) for {page.url}")
        return persisted
