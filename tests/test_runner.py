import asyncio

import pytest

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from error_sink import make_classifier
from runner import (
    SCENARIOS,
    Scenario,
    ScenarioResult,
    artifact_path,
    describe,
    run_scenario,
    sanitize_for_filename,
    scenario,
    select_scenarios,
    summarize,
)
from suite_config import SuiteSettings

from conftest import FakeBrowser, FakeConsoleMessage, FakeElement, FakeResponse


SETTINGS = SuiteSettings(base_url="https://docs.example.com", resolve_timeout_ms=50, poll_interval_ms=10)


async def run(browser, body, settings=SETTINGS, **kwargs):
    return await run_scenario(browser, Scenario("under-test", body, **kwargs), settings)


@pytest.mark.asyncio
async def test_passing_scenario(browser, page):
    page.add("h1", FakeElement(text="Playwright"))

    async def body(ctx):
        nav = await ctx.goto("/")
        ctx.expect_status(nav, 200)
        found = await ctx.must_find("main-heading")
        ctx.soft.check("heading has text", await found.locator.text_content())

    result = await run(browser, body)

    assert result.status == "passed"
    assert result.url == "https://docs.example.com/"
    assert [c["name"] for c in result.checks] == ["heading has text", "no critical console or network errors"]
    assert browser.contexts[0].closed


@pytest.mark.asyncio
async def test_missing_precondition_skips(browser):
    async def body(ctx):
        await ctx.goto("/docs/intro")
        await ctx.require("language-selector", timeout_ms=0)
        raise AssertionError("unreachable")

    result = await run(browser, body)

    assert result.status == "skipped"
    assert result.classification == "precondition-absent"
    assert result.reasons == ["language-selector not found"]


@pytest.mark.asyncio
async def test_unexpected_status_is_an_assertion_failure(browser, page):
    page.responses["https://docs.example.com/docs/missing"] = FakeResponse(404)

    async def body(ctx):
        ctx.expect_status(await ctx.goto("/docs/missing"), 200)

    result = await run(browser, body)

    assert result.status == "failed"
    assert result.classification == "assertion"
    assert "expected 200, actual 404" in result.reasons[0]
    assert "expected 200, actual 404" in result.to_dict()["error"]


@pytest.mark.asyncio
async def test_missing_required_element_fails(browser):
    async def body(ctx):
        await ctx.must_find("logo", timeout_ms=0)

    result = await run(browser, body)

    assert result.classification == "assertion"
    assert result.reasons == ["logo is visible: expected 'visible element', actual 'not found'"]


@pytest.mark.asyncio
async def test_soft_failures_are_aggregated(browser):
    async def body(ctx):
        ctx.soft.failed("image 1 has alt text", "missing alt")
        ctx.soft.skipped("copy button", "not rendered")
        ctx.soft.failed("field #q is labelled", "no label")

    result = await run(browser, body)

    assert result.classification == "assertion"
    assert result.reasons == ["image 1 has alt text: missing alt", "field #q is labelled: no label"]
    assert [c["status"] for c in result.checks] == ["failed", "skipped", "failed", "passed"]


@pytest.mark.asyncio
async def test_scenario_deadline_is_a_timeout(browser):
    async def body(ctx):
        await asyncio.sleep(5)

    settings = SuiteSettings(scenario_timeout_ms=50)
    result = await run(browser, body, settings=settings)

    assert result.classification == "timeout"
    assert result.reasons == ["Scenario exceeded 50ms"]
    assert browser.contexts[0].closed


@pytest.mark.asyncio
async def test_navigation_timeout_is_a_timeout(browser, page):
    page.goto_error = PlaywrightTimeoutError("Timeout 60000ms exceeded")

    async def body(ctx):
        await ctx.goto("/")

    result = await run(browser, body)

    assert result.classification == "timeout"
    assert result.reasons[0].startswith("Timed out waiting for navigation to https://docs.example.com/")


@pytest.mark.asyncio
async def test_wait_timeout_from_condition(browser, page):
    page.add("h1", FakeElement(text=""))

    async def body(ctx):
        heading = await ctx.must_find("main-heading")
        text = await ctx.wait_until(heading.locator.text_content, 30)
        text.unwrap("heading text")

    result = await run(browser, body)

    assert result.classification == "timeout"
    assert "heading text" in result.reasons[0]


@pytest.mark.asyncio
async def test_context_start_failure_is_infrastructure(page):
    browser = FakeBrowser(page, error=PlaywrightError("Browser has been closed"))

    async def body(ctx):
        raise AssertionError("unreachable")

    result = await run(browser, body)

    assert result.status == "failed"
    assert result.classification == "infrastructure"
    assert "Browser has been closed" in result.reasons[0]


@pytest.mark.asyncio
async def test_provider_error_during_resolution_is_an_error(browser, page):
    page.broken_selectors.add("h1")

    async def body(ctx):
        await ctx.resolve("main-heading")

    result = await run(browser, body)

    assert result.classification == "error"
    assert "Unexpected token" in result.reasons[0]


@pytest.mark.asyncio
async def test_unknown_concept_name_is_an_error(browser):
    async def body(ctx):
        await ctx.goto("/docs/intro")
        await ctx.resolve("language-selecter")

    result = await run(browser, body)

    assert result.status == "failed"
    assert result.classification == "error"
    assert result.reasons[0].startswith("KeyError:")
    assert "language-selecter" in result.reasons[0]
    assert browser.contexts[0].closed


@pytest.mark.asyncio
async def test_bug_in_one_body_does_not_abort_the_others(page):
    async def broken(ctx):
        await ctx.goto("/")
        len(None)

    async def healthy(ctx):
        await ctx.goto("/")

    browser = FakeBrowser(page)
    results = await asyncio.gather(
        run_scenario(browser, Scenario("broken", broken), SETTINGS),
        run_scenario(browser, Scenario("healthy", healthy), SETTINGS),
    )

    assert [r.status for r in results] == ["failed", "passed"]
    assert results[0].classification == "error"
    assert results[0].reasons[0].startswith("TypeError:")
    assert all(c.closed for c in browser.contexts)


@pytest.mark.asyncio
async def test_setup_failure_before_capture_is_an_error(page):
    class UnconfigurablePage(type(page)):
        def set_default_timeout(self, timeout):
            raise RuntimeError("page is not configurable")

    broken_page = UnconfigurablePage(page.url)
    browser = FakeBrowser(broken_page)

    async def body(ctx):
        raise AssertionError("unreachable")

    result = await run(browser, body)

    assert result.status == "failed"
    assert result.classification == "error"
    assert result.reasons == ["RuntimeError: page is not configurable"]
    assert broken_page.listener_count() == 0
    assert browser.contexts[0].closed


@pytest.mark.asyncio
async def test_critical_console_error_fails_scenario(browser, page):
    async def body(ctx):
        await ctx.goto("/")
        page.emit("console", FakeConsoleMessage("error", "Uncaught ReferenceError: foo is not defined"))
        page.emit("console", FakeConsoleMessage("error", "ResizeObserver loop limit exceeded"))

    result = await run(browser, body)

    assert result.classification == "assertion"
    assert result.reasons[0].startswith("no critical console or network errors: [console] Uncaught ReferenceError")
    assert len(result.errors) == 2
    assert page.listener_count() == 0


@pytest.mark.asyncio
async def test_error_checks_can_be_relaxed(browser, page):
    async def body(ctx):
        page.emit("console", FakeConsoleMessage("error", "Uncaught TypeError"))

    relaxed = await run(browser, body, check_errors=False)
    assert relaxed.status == "passed"
    assert relaxed.errors[0]["classification"] == "critical"

    classified = await run(FakeBrowser(page), body, classifier=make_classifier(r"Uncaught"))
    assert classified.status == "passed"
    assert classified.errors[0]["classification"] == "ignorable"


@pytest.mark.asyncio
async def test_failure_artifacts(browser, page, tmp_path):
    async def body(ctx):
        await ctx.goto("/")
        await ctx.must_find("search-input", timeout_ms=0)

    result = await run_scenario(browser, Scenario("search box", body), SETTINGS, run_dir=tmp_path)

    assert result.screenshot == str(tmp_path / "screenshots" / "scenario_search_box_failure.png")
    assert result.inventory.endswith("scenario_search_box_inventory.json")
    assert '"missing"' in (tmp_path / "screenshots" / "scenario_search_box_inventory.json").read_text()


@pytest.mark.asyncio
async def test_device_preset_reaches_context(page):
    class FakePlaywright:
        devices = {"iPad": {"viewport": {"width": 810, "height": 1080}, "is_mobile": True, "default_browser_type": "webkit"}}

    browser = FakeBrowser(page)

    async def body(ctx):
        pass

    await run_scenario(browser, Scenario("tablet", body, device="iPad"), SETTINGS, playwright=FakePlaywright())
    assert browser.contexts[0].options == {"viewport": {"width": 810, "height": 1080}, "is_mobile": True}


def test_registry():
    @scenario("registry-sample", title="Registry sample")
    async def sample_body(ctx):
        pass

    try:
        assert SCENARIOS["registry-sample"].title == "Registry sample"
        assert select_scenarios(["registry-sample"])[0].func is sample_body
        with pytest.raises(ValueError):
            scenario("registry-sample")(sample_body)
        with pytest.raises(KeyError):
            select_scenarios(["no-such-scenario"])
    finally:
        SCENARIOS.pop("registry-sample")


def test_helpers(tmp_path):
    assert sanitize_for_filename("Mobile view (iPhone SE)") == "mobile_view_iphone_se"
    assert describe("logo") == "logo"
    assert describe([("docs link", {"engine": "css", "value": "a"})]) == "docs link"
    assert artifact_path(tmp_path, "code-copy", "failure") == tmp_path / "screenshots" / "scenario_code_copy_failure.png"


def test_summarize():
    results = [
        ScenarioResult("a"),
        ScenarioResult("b", status="failed"),
        ScenarioResult("c", status="skipped"),
        ScenarioResult("d"),
    ]
    assert summarize(results) == {"total": 4, "passed": 2, "failed": 1, "skipped": 1}
