"""
SPA State Change Detection

Fingerprints the rendered DOM and decides whether an interaction produced a
new UI state at the same URL (modal opened, route/hash change, large content
swap). Significant same-URL states are recorded as virtual pages, keyed by a
state identifier derived from the delta so that reaching the same state twice
yields the same identifier.
"""

import hashlib
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from bs4 import BeautifulSoup
from bs4.element import Tag

from ..core.errors import CaptureError

logger = logging.getLogger(__name__)

MODAL_SELECTORS = [
    '[role="dialog"]',
    '[role="alertdialog"]',
    '[aria-modal="true"]',
    '.modal',
    '.dialog',
    '.popup',
    '.drawer',
]

MAIN_CONTENT_SELECTORS = ['main', '[role="main"]', '#root', '#app', '.main-content', 'body']

COUNT_SELECTORS = {
    'buttons': 'button, [role="button"], input[type="submit"], input[type="button"]',
    'links': 'a[href]',
    'inputs': 'input:not([type="hidden"]), textarea, select',
    'forms': 'form',
}

CONTENT_CHANGE_THRESHOLD = 3
UI_CHANGE_THRESHOLD = 5


@dataclass
class StateFingerprint:
    """Structural fingerprint of one UI state."""
    url: str
    pathname: str
    hash: str
    title: str
    main_content: Dict[str, Any]
    modals: List[str]
    counts: Dict[str, int]
    state_hash: str

    @property
    def modal_count(self) -> int:
        return len(self.modals)


@dataclass
class StateDelta:
    """Outcome of comparing two fingerprints."""
    is_significant: bool
    change_type: Optional[str] = None
    state_identifier: Optional[str] = None
    description: str = ""
    details: Dict[str, Any] = field(default_factory=dict)


def _is_visible(element: Tag) -> bool:
    node = element
    while isinstance(node, Tag):
        if node.has_attr('hidden') or node.get('aria-hidden') == 'true':
            return False
        style = (node.get('style') or '').replace(' ', '').lower()
        if 'display:none' in style or 'visibility:hidden' in style:
            return False
        node = node.parent
    return True


def _text_of(element: Tag, limit: int = 200) -> str:
    return ' '.join(element.get_text(' ', strip=True).split())[:limit]


def _signature(element: Tag) -> str:
    classes = '.'.join(element.get('class', [])[:3])
    return f"{element.name}.{classes}:{_text_of(element, 50)}"


def _visible_modals(soup: BeautifulSoup) -> List[str]:
    found: List[Tag] = []
    for selector in MODAL_SELECTORS:
        for element in soup.select(selector):
            if any(seen is element for seen in found) or not _is_visible(element):
                continue
            found.append(element)

    # Nested matches (e.g. .modal inside [role=dialog]) count once.
    outermost = [
        el for el in found
        if not any(parent is other for other in found for parent in el.parents)
    ]
    return sorted(_signature(el) for el in outermost)


def _main_content(soup: BeautifulSoup) -> Dict[str, Any]:
    for selector in MAIN_CONTENT_SELECTORS:
        main = soup.select_one(selector)
        if main is not None:
            break
    else:
        return {'tag': None, 'classes': [], 'child_count': 0, 'text_hash': ''}

    text = _text_of(main)
    return {
        'tag': main.name,
        'classes': main.get('class', [])[:5],
        'child_count': len(main.find_all(recursive=False)),
        'text_hash': hashlib.md5(text.encode('utf-8')).hexdigest()[:12],
    }


def fingerprint_html(html: str, url: str, title: Optional[str] = None) -> StateFingerprint:
    """Build a fingerprint from serialised DOM."""
    soup = BeautifulSoup(html or '', 'html.parser')
    if title is None:
        title = soup.title.get_text(strip=True) if soup.title else ''

    counts = {
        name: sum(1 for el in soup.select(selector) if _is_visible(el))
        for name, selector in COUNT_SELECTORS.items()
    }
    parsed = urlparse(url or '')
    main = _main_content(soup)
    modals = _visible_modals(soup)

    structure = {
        'pathname': parsed.path or '/',
        'hash': parsed.fragment,
        'title': title,
        'main': main,
        'modals': modals,
        'counts': counts,
    }
    state_hash = hashlib.md5(json.dumps(structure, sort_keys=True).encode('utf-8')).hexdigest()

    return StateFingerprint(
        url=url,
        pathname=structure['pathname'],
        hash=parsed.fragment,
        title=title,
        main_content=main,
        modals=modals,
        counts=counts,
        state_hash=state_hash,
    )


def compare(before: StateFingerprint, after: StateFingerprint) -> StateDelta:
    """
    Classify the change between two fingerprints. The first matching rule wins:
    modal opened, modal closed, route change, hash change, content change,
    interactive-element change.
    """
    change_type = None
    description = ""
    details: Dict[str, Any] = {}

    if after.modal_count > before.modal_count:
        change_type = 'modal_opened'
        description = f"Modal opened ({before.modal_count} → {after.modal_count})"
        details['modals'] = [m for m in after.modals if m not in before.modals]
    elif after.modal_count < before.modal_count:
        change_type = 'modal_closed'
        description = f"Modal closed ({before.modal_count} → {after.modal_count})"
    elif after.pathname != before.pathname:
        change_type = 'route_change'
        description = f"Route changed {before.pathname} → {after.pathname}"
    elif after.hash != before.hash:
        change_type = 'hash_change'
        description = f"Hash changed #{before.hash} → #{after.hash}"
    else:
        child_diff = abs(after.main_content['child_count'] - before.main_content['child_count'])
        ui_diff = sum(
            abs(after.counts.get(k, 0) - before.counts.get(k, 0))
            for k in ('buttons', 'inputs', 'forms')
        )
        if child_diff >= CONTENT_CHANGE_THRESHOLD:
            change_type = 'content_change'
            description = f"Main content changed by {child_diff} element(s)"
            details['child_diff'] = child_diff
        elif ui_diff >= UI_CHANGE_THRESHOLD:
            change_type = 'ui_change'
            description = f"{ui_diff} interactive element(s) changed"
            details['ui_diff'] = ui_diff

    if change_type is None:
        return StateDelta(is_significant=False, description="No significant change")

    return StateDelta(
        is_significant=True,
        change_type=change_type,
        state_identifier=f"{change_type}_{after.state_hash[:8]}",
        description=description,
        details=details,
    )


class StateChangeDetector:
    """Takes tagged snapshots of a live page and compares them."""

    def __init__(self, page, settle_timeout: int = 2000):
        self.page = page
        self.settle_timeout = settle_timeout
        self.snapshots: Dict[str, StateFingerprint] = {}

    async def snapshot(self, tag: str) -> StateFingerprint:
        try:
            html = await self.page.content()
            title = await self.page.title()
            url = self.page.url
        except Exception as e:
            raise CaptureError(f"State snapshot '{tag}' failed: {e}") from e

        fingerprint = fingerprint_html(html, url, title)
        self.snapshots[tag] = fingerprint
        logger.debug(f"📸 State snapshot '{tag}': {fingerprint.state_hash[:8]}")
        return fingerprint

    def detect(self, before_tag: str, after_tag: str) -> StateDelta:
        before = self.snapshots.get(before_tag)
        after = self.snapshots.get(after_tag)
        if before is None or after is None:
            missing = before_tag if before is None else after_tag
            raise KeyError(f"No snapshot recorded under '{missing}'")

        delta = compare(before, after)
        if delta.is_significant:
            logger.info(f"🔄 {delta.description} [{delta.state_identifier}]")
        return delta

    async def wait_for_settlement(self) -> None:
        """Bounded wait for network idle; a timeout is not an error."""
        try:
            await self.page.wait_for_load_state('networkidle', timeout=self.settle_timeout)
        except Exception as e:
            logger.debug(f"Settlement wait ended early: {e}")

    def discard(self, *tags: str) -> None:
        for tag in tags:
            self.snapshots.pop(tag, None)
