"""
Decision Oracle Contract

An oracle looks at a captured page (screenshot, DOM, element inventory) and
proposes ranked interaction scenarios. Its answer is loosely typed; this
module turns it into closed `Step` records.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..core.models import InteractionScenario, Priority, Step, StepAction, Target

logger = logging.getLogger(__name__)


@dataclass
class OracleObservation:
    """What the oracle gets to see of a page."""
    url: str
    title: str
    dom: str
    elements: List[Dict[str, Any]] = field(default_factory=list)
    screenshot_base64: Optional[str] = None
    is_virtual: bool = False


class DecisionOracle(ABC):
    """Proposes interaction scenarios for a page."""

    @abstractmethod
    async def suggest_scenarios(self, observation: OracleObservation) -> List[Dict[str, Any]]:
        """
        Return scenario dicts, best first. Implementations raise OracleError
        when the backend is unreachable or the answer cannot be parsed.
        """


def parse_step(raw: Any) -> Optional[Step]:
    """Build a Step from a loosely-typed dict; None when it is not a dict."""
    if not isinstance(raw, dict):
        return None

    raw_action = raw.get('action') or raw.get('type')
    action = StepAction.parse(raw_action)

    target_raw = raw.get('target')
    if isinstance(target_raw, dict):
        selector = target_raw.get('selector') or ''
        text = target_raw.get('text') or target_raw.get('textContent')
        tag = target_raw.get('tag') or target_raw.get('elementType')
        attributes = target_raw.get('attributes') or {}
    else:
        selector = raw.get('selector') or (target_raw if isinstance(target_raw, str) else '')
        text = raw.get('textContent') or raw.get('text')
        tag = raw.get('elementType') or raw.get('element_type') or raw.get('tag')
        attributes = raw.get('attributes') or {}

    target = None
    if selector or text:
        target = Target(
            selector=str(selector or ''),
            text=str(text) if text else None,
            tag=str(tag).lower() if tag else None,
            attributes={str(k): str(v) for k, v in attributes.items()} if isinstance(attributes, dict) else {},
        )
        if not target.selector and target.text:
            target.selector = f'text="{target.text}"'

    value = raw.get('value')
    return Step(
        action=action,
        target=target,
        value=str(value) if value is not None else None,
        description=raw.get('description'),
        raw_action=str(raw_action) if raw_action is not None else None,
    )


def parse_scenarios(payload: Any, page_id: int, run_id: Optional[int] = None,
                    limit: Optional[int] = None) -> List[InteractionScenario]:
    """
    Turn oracle output (a list, or a dict with a `scenarios` list) into
    scenarios in the order given. Entries without usable steps are dropped.
    """
    if isinstance(payload, dict):
        payload = payload.get('scenarios', [])
    if not isinstance(payload, list):
        logger.warning(f"Oracle returned {type(payload).__name__}, expected a list of scenarios")
        return []

    scenarios: List[InteractionScenario] = []
    for index, raw in enumerate(payload):
        if not isinstance(raw, dict):
            continue

        steps = [s for s in (parse_step(r) for r in raw.get('steps') or []) if s is not None]
        if not steps:
            logger.debug(f"Dropping scenario #{index + 1} without steps")
            continue

        scenarios.append(InteractionScenario(
            page_id=page_id,
            run_id=run_id,
            name=str(raw.get('name') or f"Scenario {index + 1}"),
            description=str(raw.get('description') or ''),
            expected_outcome=str(raw.get('expected_final_outcome') or raw.get('expected_outcome') or ''),
            priority=Priority.parse(raw.get('priority')),
            steps=steps,
        ))
        if limit and len(scenarios) >= limit:
            break

    return scenarios
