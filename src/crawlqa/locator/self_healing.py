"""
Self-Healing Element Locator

Turns a logical target (a selector plus hints such as id, text or
placeholder) into an element that can actually be acted upon.

Resolution order:
    primary selector (pseudo text-match syntax rewritten to a text lookup)
    → attribute variants, substring match before exact match
    → text-content fallback
    → tag + text fallback

Clicks escalate standard → forced → script-dispatched. Fills and selects
follow transient overlays (search popovers, dropdowns) into their own input
and accept the first suggestion.
"""

import logging
import re
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ..core.errors import ResolutionFailure
from ..core.models import StepAction, Target

logger = logging.getLogger(__name__)

TEXT_PSEUDO_RE = re.compile(
    r'^(?P<base>.*?):(?:has-text|contains)\(\s*(?P<q>["\'])(?P<text>.*?)(?P=q)\s*\)(?P<rest>.*)$'
)
TEXT_ENGINE_RE = re.compile(r'^text\s*=\s*(?P<q>["\']?)(?P<text>.*?)(?P=q)$')
ID_RE = re.compile(r'#(?P<value>[A-Za-z_][\w-]*)')
CLASS_RE = re.compile(r'\.(?P<value>-?[A-Za-z_][\w-]*)')
TAG_RE = re.compile(r'^(?P<value>[a-zA-Z][\w-]*)')
ATTR_RE = re.compile(
    r'\[\s*(?P<name>[\w-]+)\s*[*^$~|]?=\s*(?P<q>["\'])(?P<value>.*?)(?P=q)\s*\]'
)
QUOTED_RE = re.compile(r'"[^"]*"|\'[^\']*\'')

HINT_ATTRIBUTES = ('id', 'name', 'aria-label', 'placeholder', 'data-testid')

OVERLAY_SELECTOR = (
    '[role="dialog"], [role="listbox"], .dropdown-menu, .autocomplete, [class*="popover"]'
)
OVERLAY_INPUT_SELECTOR = (
    ':is([role="dialog"], [role="listbox"], .dropdown-menu, .autocomplete, '
    '[class*="popover"]) input'
)
SUGGESTION_SELECTOR = '[role="option"]'


def _quote(value: str) -> str:
    return value.replace('\\', '\\\\').replace('"', '\\"')


def normalize_selector(selector: str) -> Tuple[str, Optional[str]]:
    """
    Rewrite `:has-text("x")` / `:contains("x")` into a plain `text="x"` lookup.

    Returns (selector, extracted_text).
    """
    selector = (selector or '').strip()
    match = TEXT_PSEUDO_RE.match(selector)
    if match:
        text = match.group('text')
        return f'text="{_quote(text)}"', text
    return selector, None


@dataclass
class TargetHints:
    """Everything the resolver can infer about the intended element."""
    id: Optional[str] = None
    classes: List[str] = field(default_factory=list)
    tag: Optional[str] = None
    text: Optional[str] = None
    attributes: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_target(cls, target: Target) -> 'TargetHints':
        raw = (target.selector or '').strip()
        hints = cls()

        pseudo = TEXT_PSEUDO_RE.match(raw)
        if pseudo:
            hints.text = pseudo.group('text')
            raw = pseudo.group('base')

        engine = TEXT_ENGINE_RE.match(raw)
        if engine:
            hints.text = engine.group('text')
            raw = ''

        for match in ATTR_RE.finditer(raw):
            hints.attributes.setdefault(match.group('name').lower(), match.group('value'))

        # Ignore '#' and '.' inside quoted attribute values.
        unquoted = QUOTED_RE.sub('""', raw)
        id_match = ID_RE.search(unquoted)
        if id_match:
            hints.id = id_match.group('value')
        hints.classes = [m.group('value') for m in CLASS_RE.finditer(unquoted.split('[')[0])]
        tag_match = TAG_RE.match(unquoted)
        if tag_match:
            hints.tag = tag_match.group('value').lower()

        if 'id' in hints.attributes and not hints.id:
            hints.id = hints.attributes['id']
        for key, value in (target.attributes or {}).items():
            if value:
                hints.attributes.setdefault(key.lower(), str(value))
        if not hints.id and hints.attributes.get('id'):
            hints.id = hints.attributes['id']
        if target.text and not hints.text:
            hints.text = target.text.strip()
        if target.tag and not hints.tag:
            hints.tag = target.tag.lower()

        return hints


@dataclass
class Candidate:
    selector: str
    strategy: str


@dataclass
class ActionOutcome:
    """Which candidate and interaction mode succeeded."""
    selector: str
    strategy: str
    candidate_index: int
    mode: str
    duration: float = 0.0

    @property
    def healed(self) -> bool:
        return self.candidate_index > 0 or self.mode in ('force', 'script')


@dataclass
class HealRecord:
    original_selector: str
    healed_selector: str
    strategy: str
    mode: str
    timestamp: float = field(default_factory=time.time)


def build_candidates(target: Target) -> List[Candidate]:
    """Ordered, de-duplicated locator candidates for a target."""
    primary, _ = normalize_selector(target.selector)
    hints = TargetHints.from_target(target)

    ordered: List[Candidate] = []
    if primary:
        ordered.append(Candidate(primary, 'primary'))

    attribute_values: List[Tuple[str, str]] = []
    if hints.id:
        attribute_values.append(('id', hints.id))
    for name in HINT_ATTRIBUTES[1:]:
        if hints.attributes.get(name):
            attribute_values.append((name, hints.attributes[name]))

    for name, value in attribute_values:
        quoted = _quote(value)
        ordered.append(Candidate(f'[{name}*="{quoted}"]', f'{name}-contains'))
        ordered.append(Candidate(f'[{name}="{quoted}"]', f'{name}-exact'))

    for cls in hints.classes[:2]:
        ordered.append(Candidate(f'[class*="{_quote(cls)}"]', 'class-contains'))
        ordered.append(Candidate(f'.{cls}', 'class-exact'))

    if hints.text:
        text = _quote(hints.text)
        ordered.append(Candidate(f'text="{text}"', 'text'))
        if hints.tag:
            ordered.append(Candidate(f'{hints.tag} >> text="{text}"', 'tag-text'))

    seen = set()
    unique = []
    for candidate in ordered:
        if candidate.selector in seen:
            continue
        seen.add(candidate.selector)
        unique.append(candidate)
    return unique


class SelfHealingLocator:
    """
    Resolves targets on a page and performs actions on them.

    With healing disabled only the primary selector and a standard
    interaction are attempted.
    """

    def __init__(self, action_timeout: int = 5000):
        self.action_timeout = action_timeout
        self.heal_history: List[HealRecord] = []

    def candidates(self, target: Target) -> List[Candidate]:
        return build_candidates(target)

    async def act(self, page, target: Target, action: StepAction,
                  value: Optional[str] = None, healing: bool = True) -> ActionOutcome:
        candidates = self.candidates(target)
        if not healing:
            candidates = candidates[:1]

        start = time.time()
        tried: List[str] = []
        last_error = "no candidates"

        for index, candidate in enumerate(candidates):
            tried.append(candidate.selector)
            try:
                locator = await self._locate(page, candidate.selector)
            except Exception as e:
                last_error = f"invalid selector: {e}"
                continue
            if locator is None:
                last_error = "element not found"
                continue

            try:
                mode = await self._perform(page, locator, action, value, healing)
            except Exception as e:
                last_error = str(e)
                logger.debug(f"{action.value} via '{candidate.selector}' failed: {e}")
                continue

            outcome = ActionOutcome(
                selector=candidate.selector,
                strategy=candidate.strategy,
                candidate_index=index,
                mode=mode,
                duration=time.time() - start,
            )
            if outcome.healed:
                self.heal_history.append(HealRecord(
                    original_selector=target.selector,
                    healed_selector=candidate.selector,
                    strategy=candidate.strategy,
                    mode=mode,
                ))
                logger.warning(
                    f"🩹 Healed {action.value}: '{target.selector}' → '{candidate.selector}' "
                    f"({candidate.strategy}, {mode})"
                )
            return outcome

        raise ResolutionFailure(target.selector, action.value, tried, last_error)

    async def _locate(self, page, selector: str):
        matches = page.locator(selector)
        if await matches.count() == 0:
            return None
        locator = matches.first
        try:
            await locator.scroll_into_view_if_needed(timeout=self.action_timeout)
        except Exception as e:
            logger.debug(f"Could not scroll to '{selector}': {e}")
        return locator

    async def _perform(self, page, locator, action: StepAction, value: Optional[str],
                       healing: bool) -> str:
        if action == StepAction.CLICK:
            return await self._click(locator, escalate=healing)
        if action == StepAction.SUBMIT:
            mode = await self._click(locator, escalate=healing)
            try:
                await page.wait_for_load_state('load', timeout=self.action_timeout)
            except Exception as e:
                logger.debug(f"No load event after submit: {e}")
            return mode
        if action == StepAction.FILL:
            return await self._fill(page, locator, value or '')
        if action == StepAction.SELECT:
            return await self._select(page, locator, value)
        if action == StepAction.CHECK:
            await locator.check(timeout=self.action_timeout)
            return 'standard'
        if action == StepAction.HOVER:
            await locator.hover(timeout=self.action_timeout)
            return 'standard'
        if action == StepAction.VERIFY:
            await locator.wait_for(state='visible', timeout=self.action_timeout)
            return 'standard'
        raise ValueError(f"'{action.value}' is not an element action")

    async def _click(self, locator, escalate: bool) -> str:
        try:
            await locator.click(timeout=self.action_timeout)
            return 'standard'
        except Exception as e:
            if not escalate:
                raise
            logger.debug(f"Standard click failed, forcing: {e}")

        try:
            await locator.click(timeout=self.action_timeout, force=True)
            return 'force'
        except Exception as e:
            logger.debug(f"Forced click failed, dispatching via script: {e}")

        await locator.evaluate('el => el.click()')
        return 'script'

    async def _overlay_count(self, page) -> int:
        try:
            return await page.locator(OVERLAY_SELECTOR).count()
        except Exception:
            return 0

    async def _open_overlay(self, page, locator) -> bool:
        """Pre-click the control; True when a new overlay appeared."""
        before = await self._overlay_count(page)
        try:
            await locator.click(timeout=self.action_timeout)
        except Exception as e:
            logger.debug(f"Pre-click failed: {e}")
            return False
        return await self._overlay_count(page) > before

    async def _fill_overlay(self, page, value: str) -> bool:
        inputs = page.locator(OVERLAY_INPUT_SELECTOR)
        if await inputs.count() == 0:
            return False
        await inputs.first.fill(value, timeout=self.action_timeout)
        await self._accept_first_suggestion(page)
        return True

    async def _accept_first_suggestion(self, page) -> bool:
        suggestions = page.locator(SUGGESTION_SELECTOR)
        if await suggestions.count() == 0:
            return False
        await suggestions.first.click(timeout=self.action_timeout)
        return True

    async def _fill(self, page, locator, value: str) -> str:
        if await self._open_overlay(page, locator) and await self._fill_overlay(page, value):
            return 'overlay'
        await locator.fill(value, timeout=self.action_timeout)
        return 'standard'

    async def _select(self, page, locator, value: Optional[str]) -> str:
        tag = await locator.evaluate('el => el.tagName.toLowerCase()')
        if tag == 'select':
            if value:
                await locator.select_option(value, timeout=self.action_timeout)
            else:
                await locator.select_option(index=1, timeout=self.action_timeout)
            return 'native'

        if await self._open_overlay(page, locator):
            if value and await self._fill_overlay(page, value):
                return 'overlay'
            if value:
                option = page.locator(f'{SUGGESTION_SELECTOR} >> text="{_quote(value)}"')
                if await option.count() > 0:
                    await option.first.click(timeout=self.action_timeout)
                    return 'overlay'
            if await self._accept_first_suggestion(page):
                return 'overlay'

        raise ValueError("Control is neither a native select nor opens an option list")
