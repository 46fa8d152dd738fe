"""
User Flow Detection

Chains the navigation edges recorded during discovery into multi-page
journeys. Each journey starts on a page nothing navigated to and follows
replayable navigations until it reaches a page with none.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..core.models import DiscoveredPage, InteractionScenario, PageEdge, Step

logger = logging.getLogger(__name__)

NAVIGATE_EDGE = "navigate"


@dataclass
class UserFlow:
    pages: List[DiscoveredPage]
    scenarios: List[InteractionScenario] = field(default_factory=list)

    @property
    def start(self) -> DiscoveredPage:
        return self.pages[0]

    @property
    def end(self) -> DiscoveredPage:
        return self.pages[-1]

    @property
    def steps(self) -> List[Step]:
        return [step for scenario in self.scenarios for step in scenario.steps]

    @property
    def name(self) -> str:
        return f"Flow: {_screen_name(self.start)} to {_screen_name(self.end)}"

    @property
    def description(self) -> str:
        return " > ".join(_screen_name(page) for page in self.pages)


def _screen_name(page: DiscoveredPage) -> str:
    return page.title or page.url


def find_user_flows(pages: List[DiscoveredPage], edges: List[PageEdge],
                    scenarios: Dict[int, InteractionScenario],
                    min_pages: int = 3, max_flows: Optional[int] = None) -> List[UserFlow]:
    """
    Every root-to-leaf path through the navigation graph with at least
    `min_pages` pages, in discovery order.

    Only edges made by a scenario that navigated cleanly are followed, so each
    hop can be replayed.
    """
    by_id = {page.id: page for page in pages if not page.is_virtual}
    outgoing: Dict[int, List[PageEdge]] = {}
    targets = set()

    for edge in sorted(edges, key=lambda e: e.id or 0):
        if edge.action != NAVIGATE_EDGE or edge.scenario_id is None:
            continue
        scenario = scenarios.get(edge.scenario_id)
        if scenario is None or scenario.outcome != "navigated":
            continue
        if edge.from_page_id not in by_id or edge.to_page_id not in by_id:
            continue
        outgoing.setdefault(edge.from_page_id, []).append(edge)
        targets.add(edge.to_page_id)

    flows: List[UserFlow] = []

    def walk(page_id: int, trail: List[PageEdge]) -> None:
        seen = {page_id} | {t.from_page_id for t in trail}
        onward = [e for e in outgoing.get(page_id, []) if e.to_page_id not in seen]
        if not onward:
            if len(trail) + 1 >= min_pages:
                flows.append(UserFlow(
                    pages=[by_id[trail[0].from_page_id]] + [by_id[e.to_page_id] for e in trail],
                    scenarios=[scenarios[e.scenario_id] for e in trail],
                ))
            return
        for edge in onward:
            walk(edge.to_page_id, trail + [edge])

    for page_id in sorted(outgoing):
        if page_id not in targets:
            walk(page_id, [])

    if max_flows is not None and len(flows) > max_flows:
        logger.info(f"🧭 Keeping {max_flows} of {len(flows)} user flows")
        flows = flows[:max_flows]
    return flows
