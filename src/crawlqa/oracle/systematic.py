"""
Systematic Oracle

Builds scenarios directly from the element inventory without a model:
forms are filled and submitted, buttons and links clicked, selects and
checkboxes exercised. Useful offline and as a deterministic baseline.
"""

import logging
from collections import OrderedDict
from typing import Any, Dict, List

from .base import DecisionOracle, OracleObservation

logger = logging.getLogger(__name__)

HIGH_PRIORITY_WORDS = ('submit', 'login', 'log in', 'sign in', 'sign up', 'register',
                       'save', 'search', 'checkout', 'continue', 'next', 'open', 'add')
FIELD_TYPES = ('input', 'textarea')


class SystematicOracle(DecisionOracle):
    """Deterministic scenario builder over the element inventory."""

    def __init__(self, max_scenarios: int = 10, include_links: bool = True):
        self.max_scenarios = max_scenarios
        self.include_links = include_links

    async def suggest_scenarios(self, observation: OracleObservation) -> List[Dict[str, Any]]:
        scenarios = self._form_scenarios(observation.elements)
        scenarios += self._element_scenarios(observation.elements)

        unique: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
        for scenario in scenarios:
            unique.setdefault(scenario['name'], scenario)

        ranked = sorted(unique.values(), key=lambda s: _PRIORITY_ORDER[s['priority']])
        logger.info(f"🔍 Systematic oracle built {len(ranked)} scenario(s) for {observation.url}")
        return ranked[:self.max_scenarios]

    def _form_scenarios(self, elements: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        forms: "OrderedDict[int, List[Dict[str, Any]]]" = OrderedDict()
        for element in elements:
            form_index = element.get('form_index')
            if form_index is not None and form_index >= 0:
                forms.setdefault(form_index, []).append(element)

        scenarios = []
        for form_index, members in forms.items():
            steps = []
            submit = None
            for element in members:
                kind = element.get('element_type')
                if kind in FIELD_TYPES:
                    steps.append(_step('fill', element, value=_credential_value(element)))
                elif kind == 'select':
                    steps.append(_step('select', element))
                elif kind == 'checkbox':
                    steps.append(_step('check', element))
                elif kind == 'button' and submit is None:
                    submit = element
            if not steps:
                continue
            if submit is not None:
                steps.append(_step('click', submit))
            scenarios.append({
                'name': f"Submit form {form_index + 1}",
                'description': f"Fill {len(steps)} field(s) and submit",
                'priority': 'high',
                'steps': steps,
                'expected_final_outcome': 'Form is accepted or shows validation feedback',
            })
        return scenarios

    def _element_scenarios(self, elements: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        scenarios = []
        for element in elements:
            if element.get('form_index', -1) not in (None, -1):
                continue
            kind = element.get('element_type')
            label = _label(element)

            if kind == 'button':
                priority = 'high' if _is_primary(label) else 'medium'
                scenarios.append(_single(f"Click {label}", 'click', element, priority))
            elif kind == 'link' and self.include_links:
                scenarios.append(_single(f"Follow {label}", 'click', element, 'low'))
            elif kind == 'select':
                scenarios.append(_single(f"Choose {label}", 'select', element, 'medium'))
            elif kind == 'checkbox':
                scenarios.append(_single(f"Toggle {label}", 'check', element, 'low'))
            elif kind in FIELD_TYPES and 'search' in label.lower():
                scenarios.append(_single(f"Search via {label}", 'fill', element, 'medium'))
        return scenarios


_PRIORITY_ORDER = {'high': 1, 'medium': 2, 'low': 3}


def _label(element: Dict[str, Any]) -> str:
    attributes = element.get('attributes') or {}
    label = (element.get('text') or attributes.get('aria-label')
             or attributes.get('placeholder') or attributes.get('name')
             or element.get('selector') or 'element')
    return ' '.join(str(label).split())[:60]


def _is_primary(label: str) -> bool:
    lowered = label.lower()
    return any(word in lowered for word in HIGH_PRIORITY_WORDS)


def _credential_value(element: Dict[str, Any]):
    attributes = element.get('attributes') or {}
    hint = f"{element.get('selector', '')} {attributes.get('name', '')} {attributes.get('type', '')}".lower()
    if 'password' in hint:
        return '{auth_password}'
    if 'user' in hint or 'login' in hint:
        return '{auth_username}'
    return None


def _step(action: str, element: Dict[str, Any], value=None) -> Dict[str, Any]:
    step = {
        'action': action,
        'selector': element.get('selector'),
        'textContent': element.get('text'),
        'elementType': element.get('tag'),
        'attributes': element.get('attributes') or {},
    }
    if value is not None:
        step['value'] = value
    return step


def _single(name: str, action: str, element: Dict[str, Any], priority: str) -> Dict[str, Any]:
    return {
        'name': name,
        'description': f"{action} on {element.get('element_type')}",
        'priority': priority,
        'steps': [_step(action, element)],
        'expected_final_outcome': '',
    }
