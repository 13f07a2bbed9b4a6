import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from playwright.async_api import Error as PlaywrightError

from waiter import DEFAULT_POLL_INTERVAL_MS, wait_until


# Upper bound for a single pass over all strategies, however short timeout_ms is.
PASS_BUDGET_MS = 5000


# Ordered selector strategies for the logical UI concepts the suite looks for.
# Order is preference: the first strategy whose first match is visible wins.
STRATEGIES = {
    "main-heading": [
        ("h1 element", {"engine": "css", "value": "h1"}),
        ("level-1 heading role", {"engine": "css", "value": "[role='heading'][aria-level='1']"}),
    ],
    "any-heading": [
        ("heading tags", {"engine": "css", "value": "h1, h2, h3, [role='heading']"}),
    ],
    "logo": [
        ("header image", {"engine": "css", "value": "header img"}),
        ("aria-label mentioning the site", {"engine": "css", "value": "[aria-label*='Playwright']"}),
        ("logo class", {"engine": "css", "value": ".logo, [class*='logo']"}),
    ],
    "main-content": [
        ("main landmark", {"engine": "css", "value": "main, [role='main']"}),
        ("article", {"engine": "css", "value": "article"}),
        ("docs content class", {"engine": "css", "value": ".docs-content, .content"}),
    ],
    "nav-menu": [
        ("nav element", {"engine": "css", "value": "nav"}),
        ("navigation role", {"engine": "css", "value": "[role='navigation']"}),
    ],
    "hamburger-menu": [
        ("menu toggle button", {"engine": "role", "role": "button", "name_regex": r"menu|navigation"}),
        ("menu aria-label", {"engine": "css", "value": "button[aria-label*='menu' i], button[aria-label*='nav' i]"}),
        ("hamburger class", {"engine": "css", "value": "[class*='hamburger'], [class*='mobile-menu'], .navbar__toggle"}),
    ],
    "get-started-link": [
        ("get started link role", {"engine": "role", "role": "link", "name_regex": r"get\s*started"}),
        ("get started text", {"engine": "text", "text": "Get started"}),
    ],
    "code-block": [
        ("pre element", {"engine": "css", "value": "pre"}),
        ("code element", {"engine": "css", "value": "code, [class*='code'], [class*='snippet']"}),
    ],
    "language-selector": [
        ("language aria-label", {"engine": "css", "value": "[aria-label*='language' i]"}),
        ("language button class", {"engine": "css", "value": "[role='button'][class*='lang']"}),
        ("language tabs", {"engine": "css", "value": "[role='tab'], [class*='tab']", "has_text": r"JavaScript|Python|Java|C#|TypeScript"}),
        ("language listbox", {"engine": "css", "value": "[class*='language'] select, [role='listbox']"}),
    ],
    "copy-button": [
        ("copy title", {"engine": "css", "value": "button[title*='Copy' i]"}),
        ("copy aria-label", {"engine": "css", "value": "[aria-label*='copy' i]"}),
        ("copy class", {"engine": "css", "value": ".copy-button, [class*='copyButton']"}),
        ("copy text button", {"engine": "css", "value": "button", "has_text": r"copy"}),
    ],
    "search-input": [
        ("search placeholder", {"engine": "css", "value": "[placeholder*='Search']"}),
        ("search aria-label", {"engine": "css", "value": "[aria-label*='search' i]"}),
        ("search input type", {"engine": "css", "value": "input[type='search']"}),
        ("search container input", {"engine": "css", "value": "[class*='search'] input"}),
    ],
    "search-results": [
        ("results listbox", {"engine": "css", "value": "[role='listbox']"}),
        ("results class", {"engine": "css", "value": "[class*='result'], [class*='suggestion']"}),
    ],
    "features-section": [
        ("feature section", {"engine": "css", "value": "[class*='feature'], [class*='highlights'], section",
                             "has_text": r"feature|capability|highlight|cross-browser|auto-wait"}),
    ],
    "sidebar": [
        ("aside", {"engine": "css", "value": "aside"}),
        ("sidebar class", {"engine": "css", "value": "[class*='sidebar']"}),
        ("docs nav", {"engine": "css", "value": "nav[class*='doc']"}),
        ("navigation role", {"engine": "css", "value": "[role='navigation']"}),
    ],
    "table-of-contents": [
        ("toc class", {"engine": "css", "value": "[class*='toc'], [class*='contents']"}),
        ("toc nav label", {"engine": "css", "value": "nav[aria-label*='table' i]"}),
    ],
    "github-link": [
        ("github link", {"engine": "css", "value": "a", "has_text": r"github|repository"}),
        ("github href", {"engine": "css", "value": "a[href*='github.com']"}),
    ],
    "community-link": [
        ("community link", {"engine": "css", "value": "a", "has_text": r"discord|community|chat"}),
    ],
}


@dataclass(frozen=True)
class Found:
    locator: Any
    strategy_index: int
    description: str

    def __bool__(self) -> bool:
        return True


@dataclass(frozen=True)
class NotFound:
    tried: tuple = ()

    def __bool__(self) -> bool:
        return False


@dataclass(frozen=True)
class ResolveError:
    """The automation provider failed while resolving (bad selector, closed page)."""
    description: str
    error: Exception = field(compare=False)

    def __bool__(self) -> bool:
        return False


def normalize_strategies(strategies) -> list[tuple[str, dict]]:
    """Accept (description, target) pairs, bare target dicts or bare CSS strings."""
    out = []
    for i, s in enumerate(strategies):
        if isinstance(s, tuple) and len(s) == 2:
            out.append((s[0], s[1]))
        elif isinstance(s, dict):
            out.append((s.get("description") or f"strategy {i + 1}", s))
        elif isinstance(s, str):
            out.append((s, {"engine": "css", "value": s}))
        else:
            raise TypeError(f"Unsupported selector strategy: {s!r}")
    return out


def build_locator(scope, target: dict):
    """Build the first-in-document-order locator for a target under scope."""
    engine = target.get("engine", "css")
    if engine == "testid":
        loc = scope.get_by_test_id(target["value"])
    elif engine == "css":
        loc = scope.locator(target["value"])
    elif engine == "text":
        loc = scope.get_by_text(target["text"], exact=False)
    elif engine == "role":
        name_pattern = re.compile(target.get("name_regex", ".*"), re.I)
        loc = scope.get_by_role(target["role"], name=name_pattern)
    else:
        raise ValueError(f"Unknown selector engine: {engine}")
    if target.get("has_text"):
        loc = loc.filter(has_text=re.compile(target["has_text"], re.I))
    return loc.first


async def resolve(
    scope,
    strategies,
    timeout_ms: float = 0,
    poll_interval_ms: float = DEFAULT_POLL_INTERVAL_MS,
) -> Found | NotFound | ResolveError:
    """Return the first strategy that resolves to a visible element.

    Strategies are re-checked every poll interval until timeout_ms elapses.
    timeout_ms=0 performs exactly one pass. Absence is a NotFound result, not
    an exception.
    """
    strategies = normalize_strategies(strategies)
    if not strategies:
        return NotFound()
    current = {"description": strategies[0][0]}

    async def attempt():
        for index, (description, target) in enumerate(strategies):
            current["description"] = description
            loc = build_locator(scope, target)
            if await loc.is_visible():
                return Found(loc, index, description)
        return None

    try:
        result = await wait_until(attempt, timeout_ms, poll_interval_ms, min_evaluation_ms=PASS_BUDGET_MS)
    except PlaywrightError as e:
        return ResolveError(current["description"], e)
    if result:
        return result.value
    return NotFound(tuple(d for d, _ in strategies))


def load_overrides(path: str | Path | None) -> dict:
    if not path:
        return {}
    p = Path(path)
    if not p.exists():
        return {}
    data = json.loads(p.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"Selector overrides in {p} must be a JSON object keyed by concept name")
    return data


def strategies_for(name: str, overrides: dict | None = None) -> list[tuple[str, dict]]:
    """Registry lookup; user overrides go first so they win under declaration order."""
    cands = []
    if overrides and name in overrides:
        cands.extend(normalize_strategies(overrides[name]))
    if name in STRATEGIES:
        cands.extend(STRATEGIES[name])
    if not cands:
        raise KeyError(f"No selector strategies registered for '{name}'")
    return cands


async def build_element_inventory(page, limit: int = 200) -> dict:
    """Collect a lightweight element inventory to help repair stale strategies."""
    inventory: dict[str, list] = {
        "testids": [],
        "aria_labels": [],
        "buttons": [],
        "links": [],
        "headings": [],
    }

    async def collect_attr(selector: str, attr: str, key: str):
        for el in (await page.query_selector_all(selector))[:limit]:
            v = await el.get_attribute(attr)
            if v and v not in inventory[key]:
                inventory[key].append(v)

    async def collect_text(selector: str, key: str):
        for el in (await page.query_selector_all(selector))[:limit]:
            txt = ((await el.inner_text()) or "").strip()
            if txt and txt not in inventory[key]:
                inventory[key].append(txt[:80])

    await collect_attr("[data-testid]", "data-testid", "testids")
    await collect_attr("[aria-label]", "aria-label", "aria_labels")
    await collect_text("button, [role='button']", "buttons")
    await collect_text("a[href], [role='link']", "links")
    await collect_text("h1, h2, h3", "headings")
    return inventory
