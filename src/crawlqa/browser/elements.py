"""
Element Inventory

Collects actionable controls from a live page and assigns each one a unique
selector plus alternatives. The inventory is handed to the decision oracle
as-is, so selectors here are the ones scenarios will refer to.
"""

import logging
import re
from collections import Counter
from typing import Any, Dict, List

from ..core.models import Target
from ..locator.self_healing import build_candidates

logger = logging.getLogger(__name__)

# Runs in the page; returns plain dicts for visible, enabled controls.
EXTRACT_ELEMENTS_JS = """
() => {
  const isVisible = (el) => {
    const rect = el.getBoundingClientRect();
    const style = window.getComputedStyle(el);
    return rect.width > 0 && rect.height > 0 &&
      style.visibility !== 'hidden' && style.display !== 'none';
  };
  const forms = Array.from(document.forms);
  const selector = [
    'button:not([disabled])',
    'a[href]:not([href="#"]):not([href=""])',
    'input:not([type="hidden"]):not([disabled])',
    'select:not([disabled])',
    'textarea:not([disabled])',
    '[role="button"]', '[role="tab"]', '[role="menuitem"]',
    '[role="checkbox"]', '[role="link"]'
  ].join(', ');
  const seen = new Set();
  const out = [];
  document.querySelectorAll(selector).forEach((el) => {
    if (seen.has(el) || !isVisible(el)) return;
    seen.add(el);
    const form = el.closest('form');
    out.push({
      tag: el.tagName.toLowerCase(),
      type: el.getAttribute('type') || '',
      id: el.id || '',
      name: el.getAttribute('name') || '',
      class_name: typeof el.className === 'string' ? el.className : '',
      aria_label: el.getAttribute('aria-label') || '',
      placeholder: el.getAttribute('placeholder') || '',
      data_testid: el.getAttribute('data-testid') || '',
      role: el.getAttribute('role') || '',
      href: el.getAttribute('href') || '',
      text: (el.innerText || el.value || '').trim().slice(0, 100),
      form_index: form ? forms.indexOf(form) : -1
    });
  });
  return out;
}
"""

GENERATED_CLASS_RE = re.compile(r'^(ng-|mat-|css-|jsx-|sc-)')

ELEMENT_PRIORITY = {
    'input': 9, 'textarea': 9, 'select': 9, 'checkbox': 8,
    'button': 8, 'link': 7, 'other': 5,
}


def classify(raw: Dict[str, Any]) -> str:
    tag = raw.get('tag', '')
    input_type = (raw.get('type') or '').lower()
    role = raw.get('role', '')

    if tag == 'a' or role == 'link':
        return 'link'
    if tag == 'select':
        return 'select'
    if tag == 'textarea':
        return 'textarea'
    if tag == 'input':
        if input_type in ('checkbox', 'radio'):
            return 'checkbox'
        if input_type in ('submit', 'button', 'reset', 'image'):
            return 'button'
        return 'input'
    if role == 'checkbox':
        return 'checkbox'
    if tag == 'button' or role in ('button', 'tab', 'menuitem'):
        return 'button'
    return 'other'


def _stable_classes(class_name: str) -> List[str]:
    return [c for c in (class_name or '').split() if c and not GENERATED_CLASS_RE.match(c)][:2]


def _base_selector(raw: Dict[str, Any]) -> str:
    selector = raw.get('tag', '*')
    if raw.get('type'):
        selector += f'[type="{raw["type"]}"]'
    classes = _stable_classes(raw.get('class_name', ''))
    if classes:
        selector += '.' + '.'.join(classes)
    if raw.get('role'):
        selector += f'[role="{raw["role"]}"]'
    return selector


def unique_selectors(raw_elements: List[Dict[str, Any]]) -> List[str]:
    """One selector per element: id, test id, unique name/aria-label, else structural + nth."""
    name_counts = Counter((r.get('tag'), r.get('name')) for r in raw_elements if r.get('name'))
    aria_counts = Counter((r.get('tag'), r.get('aria_label')) for r in raw_elements if r.get('aria_label'))
    base_selectors = [_base_selector(r) for r in raw_elements]
    base_counts = Counter(base_selectors)
    base_seen: Counter = Counter()

    selectors = []
    for raw, base in zip(raw_elements, base_selectors):
        tag = raw.get('tag', '*')
        if raw.get('id') and re.match(r'^[A-Za-z_][\w-]*$', raw['id']):
            selectors.append(f"#{raw['id']}")
        elif raw.get('data_testid'):
            selectors.append(f'[data-testid="{raw["data_testid"]}"]')
        elif raw.get('name') and name_counts[(tag, raw['name'])] == 1:
            selectors.append(f'{tag}[name="{raw["name"]}"]')
        elif raw.get('aria_label') and aria_counts[(tag, raw['aria_label'])] == 1:
            selectors.append(f'{tag}[aria-label="{raw["aria_label"]}"]')
        elif base_counts[base] > 1:
            selectors.append(f'{base} >> nth={base_seen[base]}')
        else:
            selectors.append(base)
        base_seen[base] += 1
    return selectors


def build_inventory(raw_elements: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Normalise raw DOM records into the inventory shape the oracle consumes."""
    raw_elements = [r for r in raw_elements if isinstance(r, dict)]
    inventory = []

    for raw, selector in zip(raw_elements, unique_selectors(raw_elements)):
        element_type = classify(raw)
        attributes = {
            key: raw[source] for key, source in (
                ('id', 'id'), ('name', 'name'), ('type', 'type'), ('aria-label', 'aria_label'),
                ('placeholder', 'placeholder'), ('data-testid', 'data_testid'), ('role', 'role'),
                ('href', 'href'),
            ) if raw.get(source)
        }
        target = Target(selector=selector, text=raw.get('text') or None, tag=raw.get('tag'),
                        attributes=attributes)
        alternatives = [c.selector for c in build_candidates(target)[1:]]

        inventory.append({
            'element_type': element_type,
            'tag': raw.get('tag'),
            'text': raw.get('text', ''),
            'selector': selector,
            'alternatives': alternatives,
            'attributes': attributes,
            'href': raw.get('href') or None,
            'form_index': raw.get('form_index', -1),
            'priority': ELEMENT_PRIORITY.get(element_type, 5),
        })

    return inventory
