import asyncio
import json
import re
import urllib.parse
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from error_sink import ErrorSink, default_classifier
from outcomes import (
    AggregateFailure,
    AssertionViolation,
    InfrastructureError,
    ScenarioSkipped,
    WaitTimeout,
)
from resolver import (
    Found,
    NotFound,
    ResolveError,
    build_element_inventory,
    load_overrides,
    normalize_strategies,
    resolve,
    strategies_for,
)
from soft_assert import SoftAssertions
from suite_config import SuiteSettings, context_options
from waiter import wait_until


ACTION_TIMEOUT_MS = 10000


@dataclass(frozen=True)
class Scenario:
    name: str
    func: Callable[["ScenarioContext"], Awaitable[None]]
    title: str = ""
    device: str = "desktop"
    classifier: Optional[Callable] = None
    check_errors: bool = True


SCENARIOS: dict[str, Scenario] = {}


def scenario(name: str, *, title: str = "", device: str = "desktop", classifier=None, check_errors: bool = True):
    """Register an async scenario body under a unique name."""
    def register(func):
        if name in SCENARIOS:
            raise ValueError(f"Scenario '{name}' is already registered")
        SCENARIOS[name] = Scenario(name, func, title or name, device, classifier, check_errors)
        return func
    return register


def select_scenarios(names: list[str] | None = None) -> list[Scenario]:
    if not names:
        return list(SCENARIOS.values())
    unknown = [n for n in names if n not in SCENARIOS]
    if unknown:
        raise KeyError(f"Unknown scenario(s): {', '.join(unknown)}. Available: {', '.join(SCENARIOS)}")
    return [SCENARIOS[n] for n in names]


def sanitize_for_filename(text: str) -> str:
    text = re.sub(r"[^\w\s-]", "", text)
    text = re.sub(r"[-\s]+", "_", text)
    return text.strip("_").lower()[:100]


def describe(what) -> str:
    """Human label for a concept name or an explicit strategy list."""
    if isinstance(what, str):
        return what
    strategies = normalize_strategies(what)
    return strategies[0][0] if strategies else "element"


def artifact_path(run_dir: Path, scenario_name: str, kind: str, extension: str = "png") -> Path:
    return run_dir / "screenshots" / f"scenario_{sanitize_for_filename(scenario_name)}_{sanitize_for_filename(kind)}.{extension}"


@dataclass
class Navigation:
    url: str
    response: Any
    load_ms: float

    @property
    def status(self) -> Optional[int]:
        return self.response.status if self.response is not None else None


@dataclass
class ScenarioResult:
    name: str
    title: str = ""
    device: str = "desktop"
    status: str = "passed"
    classification: str = ""
    reasons: list[str] = field(default_factory=list)
    checks: list[dict] = field(default_factory=list)
    errors: list[dict] = field(default_factory=list)
    elapsed_ms: float = 0.0
    url: str = ""
    screenshot: str = ""
    inventory: str = ""
    metrics: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "title": self.title,
            "device": self.device,
            "status": self.status,
            "classification": self.classification,
            "error": "; ".join(self.reasons),
            "reasons": list(self.reasons),
            "checks": list(self.checks),
            "errors": list(self.errors),
            "elapsed_ms": round(self.elapsed_ms),
            "url": self.url,
            "screenshot": self.screenshot,
            "inventory": self.inventory,
            "metrics": dict(self.metrics),
        }


class ScenarioContext:
    """Everything one scenario may touch: its own page, context and collectors."""

    def __init__(self, name: str, page, context, settings: SuiteSettings, overrides: dict | None = None, verbose: bool = False):
        self.name = name
        self.page = page
        self.context = context
        self.settings = settings
        self.overrides = overrides or {}
        self.verbose = verbose
        self.soft = SoftAssertions()
        self.state = "init"
        self.missing: list[str] = []
        self.metrics: dict[str, float] = {}

    @property
    def browser_name(self) -> str:
        return self.settings.browser

    @property
    def base_host(self) -> str:
        return urllib.parse.urlparse(self.settings.base_url).hostname or ""

    def log(self, message: str) -> None:
        if self.verbose:
            print(message)

    def url(self, path: str = "/") -> str:
        if path.startswith("http"):
            return path
        return self.settings.base_url.rstrip("/") + "/" + path.lstrip("/")

    async def goto(self, path: str = "/", wait_until: str = "networkidle") -> Navigation:
        """Navigate and measure load time from request to the wait condition."""
        self.state = "navigating"
        target = self.url(path)
        loop = asyncio.get_running_loop()
        start = loop.time()
        self.log(f"→ Navigating to {target}")
        try:
            response = await self.page.goto(target, wait_until=wait_until, timeout=self.settings.navigation_timeout_ms)
        except PlaywrightTimeoutError:
            raise WaitTimeout(f"navigation to {target}", (loop.time() - start) * 1000, self.settings.navigation_timeout_ms)
        load_ms = (loop.time() - start) * 1000
        self.state = "probing"
        self.log(f"✓ Loaded {target} in {load_ms:.0f}ms")
        return Navigation(target, response, load_ms)

    def expect(self, what: str, condition, expected, actual) -> None:
        """Hard assertion: raise immediately with expected/actual values."""
        if not condition:
            raise AssertionViolation(what, expected, actual)

    def expect_status(self, nav: Navigation, expected: int = 200) -> None:
        self.expect(f"HTTP status for {nav.url}", nav.status == expected, expected, nav.status)

    def skip(self, reason: str):
        self.log(f"↷ Skipping {self.name}: {reason}")
        raise ScenarioSkipped(reason)

    def strategies(self, name: str):
        return strategies_for(name, self.overrides)

    async def resolve(self, what, scope=None, timeout_ms: float | None = None) -> Found | NotFound:
        """Resolve a registered concept name or an explicit strategy list.

        ResolveError re-raises the provider error so it is never mistaken for absence.
        """
        strategies = self.strategies(what) if isinstance(what, str) else what
        label = describe(what)
        timeout = self.settings.resolve_timeout_ms if timeout_ms is None else timeout_ms
        result = await resolve(scope if scope is not None else self.page, strategies, timeout, self.settings.poll_interval_ms)
        if isinstance(result, ResolveError):
            self.log(f"✖ Resolving {label} failed at '{result.description}': {result.error}")
            raise result.error
        if result:
            self.log(f"✓ Resolved {label} via '{result.description}'")
        else:
            self.log(f"→ {label} not found")
            self.missing.append(label)
        return result

    async def require(self, what, scope=None, timeout_ms: float | None = None) -> Found:
        """Resolve or skip the whole scenario."""
        found = await self.resolve(what, scope, timeout_ms)
        if not found:
            self.skip(f"{describe(what)} not found")
        return found

    async def must_find(self, what, scope=None, timeout_ms: float | None = None) -> Found:
        """Resolve or fail the scenario with an assertion violation."""
        found = await self.resolve(what, scope, timeout_ms)
        label = describe(what)
        self.expect(f"{label} is visible", bool(found), "visible element", "not found")
        return found

    async def wait_until(self, predicate, timeout_ms: float | None = None):
        timeout = self.settings.resolve_timeout_ms if timeout_ms is None else timeout_ms
        return await wait_until(predicate, timeout, self.settings.poll_interval_ms)

    async def settle(self, timeout_ms: float = 5000) -> None:
        """Wait for network idle after an interaction, bounded; not settling is not an error."""
        try:
            await self.page.wait_for_load_state("networkidle", timeout=timeout_ms)
        except PlaywrightTimeoutError:
            self.log(f"⚠️ Network did not go idle within {timeout_ms}ms")


def classify_failure(result: ScenarioResult, classification: str, reasons: list[str]) -> None:
    result.status = "failed"
    result.classification = classification
    result.reasons = reasons


async def run_scenario(
    browser,
    sc: Scenario,
    settings: SuiteSettings,
    playwright=None,
    run_dir: Path | None = None,
    overrides: dict | None = None,
    verbose: bool = False,
) -> ScenarioResult:
    result = ScenarioResult(name=sc.name, title=sc.title, device=sc.device)
    loop = asyncio.get_running_loop()
    start = loop.time()

    try:
        context = await browser.new_context(**context_options(sc.device, playwright))
        page = await context.new_page()
    except (PlaywrightError, ValueError) as e:
        classify_failure(result, "infrastructure", [f"Could not start execution context: {e}"])
        result.elapsed_ms = (loop.time() - start) * 1000
        return result

    ctx = ScenarioContext(sc.name, page, context, settings, overrides, verbose)
    sink = ErrorSink(page)
    classifier = sc.classifier or default_classifier
    try:
        page.set_default_timeout(ACTION_TIMEOUT_MS)
        page.set_default_navigation_timeout(settings.navigation_timeout_ms)
        sink.start_capture()
        try:
            await asyncio.wait_for(sc.func(ctx), timeout=settings.scenario_timeout_ms / 1000)
            ctx.state = "verifying"
            critical = sink.stop_capture(classifier)
            if sc.check_errors:
                ctx.soft.check(
                    "no critical console or network errors",
                    not critical,
                    "; ".join(f"[{e.source}] {e.message} {e.url}".strip() for e in critical[:5]),
                )
            ctx.soft.finalize()
            result.status = "passed"
        finally:
            sink.stop_capture(classifier)
            ctx.state = "finalized"
            result.errors = [e.to_dict() for e in sink.observed]
            result.checks = [c.to_dict() for c in ctx.soft.checks]
            result.metrics = dict(ctx.metrics)
    except ScenarioSkipped as e:
        result.status = "skipped"
        result.classification = "precondition-absent"
        result.reasons = [e.reason]
    except asyncio.TimeoutError:
        classify_failure(result, "timeout", [f"Scenario exceeded {settings.scenario_timeout_ms}ms"])
    except (WaitTimeout, PlaywrightTimeoutError) as e:
        classify_failure(result, "timeout", [str(e).splitlines()[0]])
    except AggregateFailure as e:
        classify_failure(result, "assertion", [f"{c.name}: {c.reason}" for c in e.failures])
    except AssertionError as e:
        classify_failure(result, "assertion", [str(e) or repr(e)])
    except PlaywrightError as e:
        classify_failure(result, "error", [str(e).splitlines()[0] if str(e) else repr(e)])
    except Exception as e:
        classify_failure(result, "error", [f"{type(e).__name__}: {e}"])
    finally:
        result.elapsed_ms = (loop.time() - start) * 1000
        try:
            result.url = page.url
        except PlaywrightError:
            result.url = ""
        if result.status == "failed" and run_dir is not None:
            await save_failure_artifacts(ctx, result, run_dir)
        try:
            await context.close()
        except PlaywrightError as e:
            print(f"⚠️ Could not close context for {sc.name}: {e}")
    return result


async def save_failure_artifacts(ctx: ScenarioContext, result: ScenarioResult, run_dir: Path) -> None:
    shot = artifact_path(run_dir, ctx.name, "failure")
    shot.parent.mkdir(parents=True, exist_ok=True)
    try:
        await ctx.page.screenshot(path=str(shot), full_page=True)
        result.screenshot = str(shot)
        ctx.log(f"📸 Failure screenshot saved: {shot.name}")
    except PlaywrightError as e:
        ctx.log(f"⚠️ Could not save failure screenshot: {e}")
    if ctx.missing:
        inv_path = artifact_path(run_dir, ctx.name, "inventory", extension="json")
        try:
            inventory = await build_element_inventory(ctx.page)
            inventory["missing"] = list(ctx.missing)
            inv_path.write_text(json.dumps(inventory, indent=2), encoding="utf-8")
            result.inventory = str(inv_path)
            ctx.log(f"🧭 Element inventory saved to {inv_path}")
        except PlaywrightError as e:
            ctx.log(f"🧭 Element inventory failed: {e}")


def summarize(results: list[ScenarioResult]) -> dict:
    return {
        "total": len(results),
        "passed": sum(1 for r in results if r.status == "passed"),
        "failed": sum(1 for r in results if r.status == "failed"),
        "skipped": sum(1 for r in results if r.status == "skipped"),
    }


def print_result_line(r: ScenarioResult) -> None:
    if r.status == "passed":
        print(f"✓ Passed: {r.name} ({r.elapsed_ms:.0f}ms)")
    elif r.status == "skipped":
        print(f"↷ Skipped: {r.name} — {'; '.join(r.reasons)}")
    else:
        err = "; ".join(r.reasons)
        err_excerpt = err if len(err) < 300 else (err[:297] + "...")
        print(f"✖ Failed [{r.classification}]: {r.name} — {err_excerpt} (url={r.url})")


async def run_suite(scenarios: list[Scenario], settings: SuiteSettings, run_dir: Path, verbose: bool = False) -> dict:
    """Run scenarios in isolated contexts of one browser, `settings.workers` at a time."""
    run_dir.mkdir(parents=True, exist_ok=True)
    overrides = load_overrides(settings.selector_overrides)

    async with async_playwright() as p:
        browser_type = getattr(p, settings.browser, None)
        if browser_type is None or settings.browser not in ("chromium", "firefox", "webkit"):
            raise InfrastructureError(f"Unsupported browser: {settings.browser}")
        try:
            browser = await browser_type.launch(headless=settings.headless)
        except PlaywrightError as e:
            raise InfrastructureError(f"Could not launch {settings.browser}: {e}") from e

        semaphore = asyncio.Semaphore(max(1, settings.workers))

        async def run_one(sc: Scenario) -> ScenarioResult:
            async with semaphore:
                if verbose:
                    print(f"\n===== Running Scenario: {sc.name} ({sc.device}) =====")
                r = await run_scenario(browser, sc, settings, playwright=p, run_dir=run_dir, overrides=overrides, verbose=verbose)
                print_result_line(r)
                return r

        try:
            results = await asyncio.gather(*(run_one(sc) for sc in scenarios))
        finally:
            await browser.close()

    return {
        "base_url": settings.base_url,
        "browser": settings.browser,
        "tests": [r.to_dict() for r in results],
        "summary": summarize(results),
    }
