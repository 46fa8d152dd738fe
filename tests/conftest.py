"""
Shared fixtures: an in-process stand-in for the parts of the Playwright page
and locator API the engine uses, driven by a tiny scripted site.
"""

from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, List, Optional, Set
from urllib.parse import urljoin

import pytest

from crawlqa.config.settings import CrawlConfig, CrawlQAConfig, TimeoutConfig
from crawlqa.core.models import Run
from crawlqa.storage.memory import InMemoryStore


def _key(url: str) -> str:
    return url.split('#')[0].rstrip('/')


class FakeResponse:
    def __init__(self, status: int):
        self.status = status


class FakeElement:
    """One element on a fake document and what activating it does."""

    def __init__(self, selectors: List[str], tag: str = 'button', text: str = '',
                 id: Optional[str] = None, name: Optional[str] = None,
                 type: Optional[str] = None, href: Optional[str] = None,
                 role: Optional[str] = None, form_index: int = -1,
                 extract: bool = True, sets_flag: Optional[str] = None,
                 clears_flag: Optional[str] = None, when_flag: Optional[str] = None,
                 fail_modes: Optional[Set[str]] = None,
                 on_click: Optional[Callable[['FakePage'], None]] = None):
        self.selectors = selectors
        self.tag = tag
        self.text = text
        self.id = id
        self.name = name
        self.type = type
        self.href = href
        self.role = role
        self.form_index = form_index
        self.extract = extract
        self.sets_flag = sets_flag
        self.clears_flag = clears_flag
        self.when_flag = when_flag
        self.fail_modes = fail_modes or set()
        self.on_click = on_click
        self.value = None

    def raw(self) -> Dict[str, Any]:
        return {
            'tag': self.tag,
            'type': self.type or '',
            'id': self.id or '',
            'name': self.name or '',
            'class_name': '',
            'aria_label': '',
            'placeholder': '',
            'data_testid': '',
            'role': self.role or '',
            'href': self.href or '',
            'text': self.text,
            'form_index': self.form_index,
        }

    def activate(self, page: 'FakePage') -> None:
        if self.on_click:
            self.on_click(page)
        if self.clears_flag:
            page.flags.discard(self.clears_flag)
        if self.sets_flag:
            page.flags.add(self.sets_flag)
        if self.href:
            page.follow(self.href)


BODY = FakeElement(['body'], tag='body', extract=False)


class FakeDocument:
    def __init__(self, url: str, title: str = '', body: str = '', status: int = 200,
                 elements: Optional[List[FakeElement]] = None,
                 flag_html: Optional[Dict[str, str]] = None):
        self.url = url
        self.title = title
        self.body = body
        self.status = status
        self.elements = elements or []
        self.flag_html = flag_html or {}

    def add_element(self, **attrs) -> FakeElement:
        element = FakeElement(**attrs)
        self.elements.append(element)
        return element


class FakeSite:
    """URL → document map plus the pages opened on it."""

    def __init__(self):
        self.documents: Dict[str, FakeDocument] = {}
        self.unreachable: Set[str] = set()
        self.pages: List['FakePage'] = []

    def add(self, url: str, title: str = '', body: str = '', status: int = 200,
            elements: Optional[List[Dict[str, Any]]] = None,
            flag_html: Optional[Dict[str, str]] = None) -> FakeDocument:
        document = FakeDocument(
            url, title, body, status,
            elements=[FakeElement(**attrs) for attrs in (elements or [])],
            flag_html=flag_html,
        )
        self.documents[_key(url)] = document
        return document

    def lookup(self, url: str) -> Optional[FakeDocument]:
        return self.documents.get(_key(url))

    def new_page(self) -> 'FakePage':
        page = FakePage(self)
        self.pages.append(page)
        return page

    def session_factory(self, failing_engines: Optional[Set[str]] = None):
        """Drop-in for `browser_session`: engine name → async context yielding a page."""
        failing = failing_engines or set()

        @asynccontextmanager
        async def session(engine: str):
            if engine in failing:
                raise RuntimeError(f"{engine} is not installed")
            page = self.new_page()
            page.engine = engine
            yield page

        return session


class FakePage:
    def __init__(self, site: FakeSite):
        self.site = site
        self.url = 'about:blank'
        self.history: List[str] = []
        self.flags: Set[str] = set()
        self.actions: List[tuple] = []
        self.goto_calls: List[str] = []
        self.fail_back = False
        self.engine = None

    @property
    def document(self) -> Optional[FakeDocument]:
        return self.site.lookup(self.url)

    def elements(self) -> List[FakeElement]:
        if self.document is None:
            return []
        return [el for el in self.document.elements
                if el.when_flag is None or el.when_flag in self.flags]

    def record(self, *action) -> None:
        self.actions.append(action)

    def _load(self, url: str) -> None:
        if self.url != 'about:blank':
            self.history.append(self.url)
        self.url = url
        self.flags = set()

    def follow(self, href: str) -> None:
        self._load(urljoin(self.url, href))

    async def goto(self, url, wait_until=None, timeout=None):
        self.goto_calls.append(url)
        if _key(url) in {_key(u) for u in self.site.unreachable}:
            raise Exception(f"net::ERR_CONNECTION_REFUSED at {url}")
        document = self.site.lookup(url)
        self._load(url)
        return FakeResponse(document.status if document else 404)

    async def go_back(self, wait_until=None, timeout=None):
        if self.fail_back or not self.history:
            raise Exception("Cannot go back")
        self.url = self.history.pop()
        self.flags = set()
        return FakeResponse(200)

    async def wait_for_load_state(self, state=None, timeout=None):
        return None

    async def title(self) -> str:
        return self.document.title if self.document else ''

    async def content(self) -> str:
        document = self.document
        if document is None:
            return '<html><body></body></html>'
        extra = ''.join(html for flag, html in document.flag_html.items() if flag in self.flags)
        return (f'<html><head><title>{document.title}</title></head>'
                f'<body>{document.body}{extra}</body></html>')

    async def screenshot(self, full_page=False, **kwargs) -> bytes:
        return b'\x89PNG fake'

    async def evaluate(self, script, *args):
        return [el.raw() for el in self.elements() if el.extract]

    def locator(self, selector: str) -> 'FakeLocator':
        return FakeLocator(self, selector)

    def on(self, event, handler):
        return None


class FakeLocator:
    def __init__(self, page: FakePage, selector: str):
        self.page = page
        self.selector = selector

    def _matches(self) -> List[FakeElement]:
        if self.selector == 'body':
            return [BODY] if self.page.document is not None else []
        return [el for el in self.page.elements() if self.selector in el.selectors]

    def _element(self) -> FakeElement:
        matches = self._matches()
        if not matches:
            raise Exception(f"Timeout waiting for {self.selector}")
        return matches[0]

    @property
    def first(self) -> 'FakeLocator':
        return self

    async def count(self) -> int:
        return len(self._matches())

    async def scroll_into_view_if_needed(self, timeout=None):
        self._element()

    async def click(self, timeout=None, force=False):
        element = self._element()
        mode = 'force' if force else 'standard'
        if mode in element.fail_modes:
            raise Exception(f"{mode} click intercepted on {self.selector}")
        self.page.record('click', self.selector, mode)
        element.activate(self.page)

    async def evaluate(self, script):
        element = self._element()
        if 'tagName' in script:
            return element.tag
        if 'script' in element.fail_modes:
            raise Exception("script click failed")
        self.page.record('click', self.selector, 'script')
        element.activate(self.page)
        return None

    async def fill(self, value, timeout=None):
        element = self._element()
        if 'fill' in element.fail_modes:
            raise Exception(f"{self.selector} is not editable")
        element.value = value
        self.page.record('fill', self.selector, value)

    async def select_option(self, value=None, index=None, timeout=None):
        element = self._element()
        if element.tag != 'select':
            raise Exception("Element is not a <select> element")
        element.value = value if value is not None else f"index:{index}"
        self.page.record('select', self.selector, element.value)

    async def check(self, timeout=None):
        self._element()
        self.page.record('check', self.selector, None)

    async def hover(self, timeout=None):
        self._element()
        self.page.record('hover', self.selector, None)

    async def wait_for(self, state='visible', timeout=None):
        self._element()


@pytest.fixture
def site():
    return FakeSite()


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def run(store):
    return store.create_run(Run(target_url="https://shop.test/"))


@pytest.fixture
def config(tmp_path):
    """Fast settings: no retry pauses or per-step delays."""
    return CrawlQAConfig(
        crawl=CrawlConfig(max_depth=1, max_pages=5, retry_delay=0, action_delay=0,
                          accept_cookies=False),
        timeouts=TimeoutConfig(settle_timeout=10),
        artifacts_dir=str(tmp_path / "sessions"),
    )
