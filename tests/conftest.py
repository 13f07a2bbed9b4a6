"""In-memory stand-ins for Playwright pages, locators, contexts and browsers.

Elements are registered per CSS selector on a FakePage and may be added or
hidden while a test runs, so polling behaviour can be exercised without a
browser. Elements may carry click hooks and canned evaluate() results so
scenario bodies can run end to end against a FakePage.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from playwright.async_api import Error as PlaywrightError


@dataclass
class FakeElement:
    text: str = ""
    visible: bool = True
    role: str = ""
    name: str = ""
    testid: str = ""
    attrs: dict = field(default_factory=dict)
    evaluations: dict = field(default_factory=dict)
    on_click: object = None
    on_press: object = None


class FakeLocator:
    def __init__(self, page, source, description="locator"):
        self.page = page
        self._source = source
        self.description = description
        self.clicks = 0

    def _items(self):
        return list(self._source())

    def _check(self):
        if self.description in self.page.broken_selectors:
            raise PlaywrightError(f"Unexpected token in selector '{self.description}'")

    @property
    def first(self):
        return FakeLocator(self.page, lambda: self._items()[:1], self.description)

    def nth(self, index):
        return FakeLocator(self.page, lambda: self._items()[index:index + 1], self.description)

    def filter(self, has_text=None):
        def matches(el):
            if has_text is None:
                return True
            if isinstance(has_text, re.Pattern):
                return bool(has_text.search(el.text))
            return has_text.lower() in el.text.lower()
        return FakeLocator(self.page, lambda: [el for el in self._items() if matches(el)], self.description)

    def locator(self, selector):
        return self.page.locator(selector)

    async def is_visible(self):
        self._check()
        items = self._items()
        return bool(items) and items[0].visible

    async def count(self):
        self._check()
        return len(self._items())

    async def text_content(self):
        items = self._items()
        return items[0].text if items else None

    async def get_attribute(self, name):
        items = self._items()
        return items[0].attrs.get(name) if items else None

    async def is_enabled(self):
        return bool(self._items())

    async def click(self, **kwargs):
        self.clicks += 1
        self.page.clicked.append(self.description)
        items = self._items()
        if items and items[0].on_click is not None:
            items[0].on_click(self.page)

    async def tap(self, **kwargs):
        await self.click()

    async def hover(self, **kwargs):
        return None

    async def fill(self, value, **kwargs):
        items = self._items()
        if items:
            items[0].attrs["value"] = value

    async def press(self, key, **kwargs):
        items = self._items()
        if items and items[0].on_press is not None:
            items[0].on_press(self.page, key)

    async def evaluate(self, script, arg=None):
        items = self._items()
        if not items:
            return None
        for needle, value in items[0].evaluations.items():
            if needle in script:
                return value
        return None

    async def evaluate_all(self, script, arg=None):
        return [el.attrs.get("href") for el in self._items()]


class FakeKeyboard:
    def __init__(self):
        self.pressed: list[str] = []

    async def press(self, key):
        self.pressed.append(key)


class FakePage:
    def __init__(self, url="about:blank"):
        self.url = url
        self.elements: dict[str, list[FakeElement]] = {}
        self.broken_selectors: set[str] = set()
        self.listeners: dict[str, list] = {}
        self.responses: dict[str, object] = {}
        self.goto_error: Exception | None = None
        self.page_title = ""
        self.clicked: list[str] = []
        self.screenshots: list[str] = []
        self.history: list[str] = []
        self.scripts: dict = {}
        self.keyboard = FakeKeyboard()

    def add(self, selector, *elements):
        self.elements.setdefault(selector, []).extend(elements)
        return elements[0] if elements else None

    def _all(self):
        for items in self.elements.values():
            yield from items

    def locator(self, selector):
        return FakeLocator(self, lambda: self.elements.get(selector, []), selector)

    def get_by_role(self, role, name=None):
        def items():
            return [el for el in self._all() if el.role == role and (name is None or name.search(el.name))]
        return FakeLocator(self, items, f"role={role}")

    def get_by_text(self, text, exact=False):
        return FakeLocator(self, lambda: [el for el in self._all() if text.lower() in el.text.lower()], f"text={text}")

    def get_by_test_id(self, value):
        return FakeLocator(self, lambda: [el for el in self._all() if el.testid == value], f"testid={value}")

    def on(self, event, handler):
        self.listeners.setdefault(event, []).append(handler)

    def remove_listener(self, event, handler):
        self.listeners.get(event, []).remove(handler)

    def emit(self, event, payload):
        for handler in list(self.listeners.get(event, [])):
            handler(payload)

    def listener_count(self):
        return sum(len(v) for v in self.listeners.values())

    def navigate(self, url):
        self.history.append(self.url)
        self.url = url

    async def go_back(self, **kwargs):
        if self.history:
            self.url = self.history.pop()

    async def evaluate(self, script, arg=None):
        if script in self.scripts:
            return self.scripts[script]
        for needle, value in self.scripts.items():
            if needle in script:
                return value
        return None

    async def goto(self, url, wait_until=None, timeout=None):
        if self.goto_error is not None:
            raise self.goto_error
        self.navigate(url)
        return self.responses.get(url, FakeResponse(200, url=url))

    async def title(self):
        return self.page_title

    async def wait_for_load_state(self, state="load", timeout=None):
        return None

    async def screenshot(self, path=None, full_page=False):
        Path(path).write_bytes(b"png")
        self.screenshots.append(path)

    async def query_selector_all(self, selector):
        return []

    def set_default_timeout(self, timeout):
        self.default_timeout = timeout

    def set_default_navigation_timeout(self, timeout):
        self.default_navigation_timeout = timeout


@dataclass
class FakeResponse:
    status: int
    status_text: str = ""
    url: str = ""


@dataclass
class FakeConsoleMessage:
    type: str
    text: str
    location: dict = field(default_factory=dict)


class FakeContext:
    def __init__(self, page, request=None):
        self.page = page
        self.request = request
        self.closed = False
        self.options: dict = {}

    async def new_page(self):
        return self.page

    async def grant_permissions(self, permissions):
        self.permissions = list(permissions)

    async def close(self):
        self.closed = True


class FakeBrowser:
    def __init__(self, page=None, error=None, request=None):
        self.page = page or FakePage()
        self.error = error
        self.request = request
        self.contexts: list[FakeContext] = []

    async def new_context(self, **options):
        if self.error is not None:
            raise self.error
        context = FakeContext(self.page, self.request)
        context.options = options
        self.contexts.append(context)
        return context


@pytest.fixture
def page():
    return FakePage("https://docs.example.com/")


@pytest.fixture
def browser(page):
    return FakeBrowser(page)
