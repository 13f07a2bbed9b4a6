"""Scenarios for the documentation site.

Each scenario gets a fresh browser context. Optional UI affordances are
recorded as soft checks (or skip the scenario when they are its whole point);
HTTP status, titles and load budgets are hard assertions.
"""

import re
import urllib.parse

from error_sink import DEFAULT_IGNORABLE_PATTERNS, make_classifier
from link_probe import probe_links, record_probe_results, sample_links
from runner import scenario
from waiter import wait_for_stable_text, wait_for_text


DOC_PAGES = ["/docs/intro", "/docs/locators", "/docs/actions"]
INSTALL_PAGES = ["/docs/intro", "/docs/getting-started-vscode"]
DOC_SECTIONS = ["Intro", "Getting Started", "Guides", "API", "Community"]
NAV_LINKS = "nav a, [role='navigation'] a"

performance_classifier = make_classifier(*DEFAULT_IGNORABLE_PATTERNS, r"Uncaught")

FCP_SCRIPT = """() => {
    const fcp = performance.getEntriesByType('paint').find(e => e.name === 'first-contentful-paint');
    return fcp ? fcp.startTime : null;
}"""

NAVIGATION_TIMING_SCRIPT = """() => {
    const nav = performance.getEntriesByType('navigation')[0];
    if (!nav) return null;
    return {dom_content_loaded: nav.domContentLoadedEventEnd, load_complete: nav.loadEventEnd};
}"""

CLIPBOARD_SCRIPT = """async () => {
    try { return await navigator.clipboard.readText(); } catch (e) { return ''; }
}"""

VISIBLE_CODE_MENTIONS_SCRIPT = """(els, needle) => els.some(e =>
    e.offsetParent !== null && (e.textContent || '').toLowerCase().includes(needle))"""

IN_VIEWPORT_SCRIPT = """el => {
    const r = el.getBoundingClientRect();
    return r.top >= -5 && r.top <= window.innerHeight;
}"""


def by_css(description: str, css: str, has_text: str | None = None):
    target = {"engine": "css", "value": css}
    if has_text:
        target["has_text"] = has_text
    return (description, target)


def by_role(description: str, role: str, name_regex: str):
    return (description, {"engine": "role", "role": role, "name_regex": name_regex})


async def heading_text(ctx, where: str) -> str:
    heading = await ctx.must_find("main-heading")
    result = await wait_for_text(heading.locator, ctx.settings.heading_budget_ms, ctx.settings.poll_interval_ms)
    return result.unwrap(f"heading text on {where}")


@scenario("homepage-load", title="Homepage load and title verification")
async def homepage_load(ctx):
    nav = await ctx.goto("/")
    ctx.expect_status(nav, 200)
    ctx.metrics["load_ms"] = round(nav.load_ms)

    title = await ctx.page.title()
    ctx.expect("page title", re.search(ctx.settings.title_pattern, title, re.I), f"/{ctx.settings.title_pattern}/", title)

    text = await heading_text(ctx, "homepage")
    ctx.soft.check("main heading has text", len(text) > 0)
    await ctx.must_find("logo")

    budget = ctx.settings.home_load_budget_ms
    ctx.expect("homepage load time (ms)", nav.load_ms < budget, f"< {budget}", round(nav.load_ms))
    ctx.expect("page host", ctx.base_host in ctx.page.url, ctx.base_host, ctx.page.url)


@scenario("get-started", title="Get started link navigation")
async def get_started(ctx):
    await ctx.goto("/")
    link = await ctx.must_find("get-started-link")
    await link.locator.click()

    landed = await ctx.wait_until(
        lambda: re.search(r"docs|install|getting-started", urllib.parse.urlparse(ctx.page.url).path), 10000
    )
    landed.unwrap("getting started URL")
    await ctx.settle()

    await ctx.must_find([by_css("installation heading", "h1, h2, [role='heading']", r"Installation|Getting Started")])
    await ctx.must_find("code-block")


@scenario("main-menu", title="Main menu navigation")
async def main_menu(ctx):
    await ctx.goto("/")
    await ctx.must_find("nav-menu")

    items = ctx.page.locator(NAV_LINKS)
    count = await items.count()
    ctx.expect("navigation link count", count > 0, "> 0", count)

    menu_links = []
    for i in range(min(count, 5)):
        text = ((await items.nth(i).text_content()) or "").strip()
        if text:
            menu_links.append(text)
    ctx.expect("named navigation links", len(menu_links) > 0, "> 0", 0)

    for name in menu_links[:3]:
        item = await ctx.resolve([by_role(f"menu link {name}", "link", re.escape(name))], timeout_ms=0)
        if not item:
            ctx.soft.skipped(f"menu link '{name}'", "not visible")
            continue
        await item.locator.click()
        await ctx.page.wait_for_load_state("domcontentloaded")
        ctx.soft.check(f"menu link '{name}' stays on site", ctx.base_host in ctx.page.url, f"navigated to {ctx.page.url}")
        await ctx.page.go_back()
        await ctx.settle()

    # Browser back button
    await ctx.goto("/")
    initial = ctx.page.url
    target = None
    for i in range(await items.count()):
        candidate = items.nth(i)
        href = await candidate.get_attribute("href") or ""
        absolute = urllib.parse.urljoin(initial, href)
        if href and not href.startswith("#") and absolute.rstrip("/") != initial.rstrip("/") and await candidate.is_visible():
            target = candidate
            break
    if target is None:
        ctx.soft.skipped("browser back button", "no navigation link leaves the homepage")
        return
    await target.click()
    moved = await ctx.wait_until(lambda: ctx.page.url != initial, 10000)
    ctx.expect("URL after clicking a navigation link", bool(moved), f"not {initial}", ctx.page.url)
    await ctx.page.go_back()
    back = await ctx.wait_until(lambda: ctx.page.url == initial, 10000)
    ctx.expect("URL after going back", bool(back), initial, ctx.page.url)


@scenario("language-selector", title="Language/framework selector")
async def language_selector(ctx):
    await ctx.goto("/docs/intro")
    await ctx.require("language-selector")

    code = ctx.page.locator("pre, code")
    count = await code.count()
    ctx.expect("code block count", count > 0, "> 0", count)

    for language, pattern in (("Python", r"Python"), ("JavaScript", r"JavaScript|TypeScript")):
        option = await ctx.resolve([
            by_role(f"{language} button", "button", pattern),
            by_role(f"{language} tab", "tab", pattern),
        ], timeout_ms=0)
        if not option:
            ctx.soft.skipped(f"{language} option", "not visible")
            continue
        await option.locator.click()
        settled = await wait_for_stable_text(code.first, 3000, ctx.settings.poll_interval_ms)
        ctx.soft.check(f"code examples render after selecting {language}", settled, "code text did not settle")


@scenario("code-copy", title="Code snippet copy")
async def code_copy(ctx):
    await ctx.goto("/docs/intro")
    blocks = ctx.page.locator("pre")
    count = await blocks.count()
    ctx.expect("code block count", count > 0, "> 0", count)

    first = blocks.first
    await first.hover()
    copy = await ctx.resolve("copy-button", scope=first.locator("xpath=.."), timeout_ms=2000)
    if not copy:
        copy = await ctx.resolve("copy-button", timeout_ms=0)
    if not copy:
        ctx.skip("copy button not found on page")

    clipboard_readable = ctx.browser_name == "chromium"
    if clipboard_readable:
        await ctx.context.grant_permissions(["clipboard-read", "clipboard-write"])
    await copy.locator.click()

    if clipboard_readable:
        copied = await ctx.wait_until(lambda: ctx.page.evaluate(CLIPBOARD_SCRIPT), 3000)
        ctx.soft.check("clipboard receives the snippet", copied, "clipboard stayed empty")
    else:
        ctx.soft.skipped("clipboard receives the snippet", f"clipboard is not readable in {ctx.browser_name}")

    for i in range(min(count, 2)):
        await blocks.nth(i).hover()


@scenario("search", title="Documentation search")
async def search(ctx):
    query = "locators"
    await ctx.goto("/")
    trigger = await ctx.require("search-input")
    await trigger.locator.click()

    # Some sites open a search modal with its own field.
    field = await ctx.resolve([
        by_css("search field", "input[type='search'], input[placeholder*='Search' i], [class*='search'] input"),
    ], timeout_ms=2000)
    if not field:
        ctx.skip("search field not available after activating search")
    await field.locator.fill(query)

    has_results = False
    results = await ctx.resolve("search-results", timeout_ms=3000)
    if results:
        entries = ctx.page.locator("[role='option'], [class*='result-item'], li").filter(has_text=re.compile(r"locator|docs", re.I))
        entry_count = await entries.count()
        ctx.soft.check("search lists matching entries", entry_count > 0, "no matching result entries")
        has_results = entry_count > 0

    if not has_results:
        await field.locator.press("Enter")
        await ctx.settle()
        hits = ctx.page.locator("[class*='result'], h2, h3").filter(has_text=re.compile(query, re.I))
        has_results = (await hits.count()) > 0 or "search" in ctx.page.url

    if not has_results:
        ctx.skip("search results could not be verified")

    hit = await ctx.resolve([
        by_css("result option", "[role='option']", r"locator|docs"),
        by_css("result link", "a", r"locator|docs"),
    ], timeout_ms=0)
    if not hit:
        ctx.soft.skipped("open a search result", "no visible result")
        return
    await hit.locator.click()
    await ctx.page.wait_for_load_state("domcontentloaded")
    ctx.soft.check("search result opens a page on the site", ctx.base_host in ctx.page.url, f"landed on {ctx.page.url}")


@scenario("docs-content", title="Documentation content visibility")
async def docs_content(ctx):
    for path in DOC_PAGES:
        nav = await ctx.goto(path)
        ctx.expect_status(nav, 200)

        text = await heading_text(ctx, path)
        ctx.soft.check(f"heading on {path} has text", len(text) > 0)
        await ctx.must_find("main-content")

        code_count = await ctx.page.locator("pre, code[class*='language']").count()
        ctx.expect(f"code blocks on {path}", code_count > 0, "> 0", code_count)

        images = ctx.page.locator("img")
        for i in range(min(await images.count(), 20)):
            img = images.nth(i)
            src = await img.get_attribute("src")
            if not src:
                ctx.soft.failed(f"image {i + 1} on {path} has src", "missing src")
                continue
            if await img.get_attribute("loading") == "lazy":
                ctx.soft.skipped(f"image {src} on {path} loaded", "lazy-loaded")
                continue
            loaded = await ctx.wait_until(lambda img=img: img.evaluate("el => el.complete && el.naturalHeight > 0"), 5000)
            ctx.soft.check(f"image {src} on {path} loaded", loaded, "naturalHeight is 0")

        heading_count = await ctx.page.locator("h1, h2, h3, h4, h5, h6").count()
        ctx.expect(f"headings on {path}", heading_count > 0, "> 0", heading_count)
        link_count = await ctx.page.locator("a[href]").count()
        ctx.expect(f"links on {path}", link_count > 0, "> 0", link_count)

        internal = ctx.page.locator(f"a[href*='{ctx.base_host}']").first
        if await internal.is_visible():
            href = await internal.get_attribute("href") or ""
            pattern = rf"^/|^https?://{re.escape(ctx.base_host)}"
            ctx.soft.check(f"internal link on {path} is well-formed", re.match(pattern, href), href)

        body = (await ctx.page.locator("body").text_content()) or ""
        ctx.expect(f"body text length on {path}", len(body) > 100, "> 100", len(body))


@scenario("feature-highlights", title="Feature highlights section")
async def feature_highlights(ctx):
    await ctx.goto("/")
    section = await ctx.require("features-section")

    cards = ctx.page.locator("[class*='card'], [class*='feature-item'], li, div").filter(
        has_text=re.compile(r"auto-wait|cross-browser|debug|codegen|record", re.I)
    )
    count = await cards.count()
    ctx.expect("feature card count", count > 0, "> 0", count)

    for i in range(min(count, 5)):
        card = cards.nth(i)
        ctx.soft.check(f"feature card {i + 1} visible", await card.is_visible(), "not visible")
        text = ((await card.text_content()) or "").strip()
        ctx.soft.check(f"feature card {i + 1} readable", len(text) > 5, f"text {text!r}")
        link = card.locator("a").first
        if await link.is_visible():
            ctx.soft.check(f"feature card {i + 1} link has href", await link.get_attribute("href"), "empty href")

    icons = section.locator.locator("img, svg, [class*='icon']")
    icon_count = await icons.count()
    ctx.expect("feature images or icons", icon_count > 0, "> 0", icon_count)


@scenario("installation", title="Installation instructions: package manager selection")
async def installation(ctx):
    status = None
    for path in INSTALL_PAGES:
        nav = await ctx.goto(path)
        status = nav.status
        if status == 200:
            break
    ctx.expect("installation page status", status == 200, 200, status)
    await ctx.must_find("main-content")

    code = ctx.page.locator("pre, code")
    available = 0
    for manager in ("npm", "yarn", "pnpm"):
        option = await ctx.resolve([
            by_role(f"{manager} tab", "tab", rf"^{manager}$"),
            by_role(f"{manager} button", "button", rf"\b{manager}\b"),
        ], timeout_ms=0)
        if not option:
            ctx.soft.skipped(f"{manager} option", "not visible")
            continue
        available += 1
        await option.locator.click()
        shown = await ctx.wait_until(lambda m=manager: code.evaluate_all(VISIBLE_CODE_MENTIONS_SCRIPT, m), 3000)
        ctx.soft.check(f"{manager} command shown", shown, f"no visible code block mentions {manager}")

    if not available:
        ctx.skip("no package manager options found")


@scenario("mobile-view", title="Mobile view (iPhone SE)", device="iPhone SE")
async def mobile_view(ctx):
    await ctx.goto("/")
    ctx.expect("page host", ctx.base_host in ctx.page.url, ctx.base_host, ctx.page.url)
    await ctx.must_find([by_css("main landmark", "main, [role='main']"), by_css("body child", "body > *")])

    accessible = bool(await ctx.resolve("nav-menu", timeout_ms=0))
    if not accessible:
        toggle = await ctx.resolve("hamburger-menu", timeout_ms=0)
        if toggle:
            await toggle.locator.click()
            accessible = True
    ctx.expect("navigation accessible", accessible, "visible nav or menu toggle", "neither")

    font_size = await ctx.page.locator("p, h1, h2, h3, li, a").first.evaluate(
        "el => parseFloat(window.getComputedStyle(el).fontSize)"
    )
    ctx.soft.check("text is at least 12px", font_size >= 12, f"{font_size}px")

    overflow = await ctx.page.evaluate("() => document.body.scrollWidth - window.innerWidth")
    ctx.soft.check("no horizontal overflow", overflow < 50, f"overflows by {overflow}px")

    link = await ctx.resolve([by_css("docs link", "a", r"docs|guide|tutorial")], timeout_ms=0)
    if not link:
        ctx.soft.skipped("subpage readable on mobile", "no docs link visible")
        return
    await link.locator.click()
    await ctx.settle()
    ctx.soft.check("subpage readable on mobile", await ctx.resolve("main-content"), "main content not visible")


@scenario("tablet-view", title="Tablet view (iPad)", device="iPad")
async def tablet_view(ctx):
    await ctx.goto("/")
    ctx.expect("page host", ctx.base_host in ctx.page.url, ctx.base_host, ctx.page.url)
    await ctx.must_find("main-content")
    await ctx.must_find("nav-menu")

    body_width = await ctx.page.evaluate("() => document.body.scrollWidth")
    window_width = await ctx.page.evaluate("() => window.innerWidth")
    ctx.expect("page width (px)", body_width <= window_width + 50, f"<= {window_width + 50}", body_width)

    button = ctx.page.get_by_role("button").first
    if await button.is_visible():
        await button.tap()
        ctx.soft.passed("tap on a button")
    else:
        ctx.soft.skipped("tap on a button", "no visible button")


@scenario("cross-browser", title="Functionality consistency across browsers", check_errors=False)
async def cross_browser(ctx):
    await ctx.goto("/")
    ctx.log(f"→ Testing on {ctx.browser_name}")
    ctx.expect("page host", ctx.base_host in ctx.page.url, ctx.base_host, ctx.page.url)

    await ctx.must_find("main-heading")
    await ctx.must_find([
        by_css("absolute internal link", f"a[href*='{ctx.base_host}']"),
        by_css("relative link", "a[href^='/']"),
    ])

    code = ctx.page.locator("pre, code")
    if await code.count() > 0:
        content = (await code.first.text_content()) or ""
        ctx.soft.check("code snippet has content", content.strip(), "empty code block")


@scenario("homepage-performance", title="Homepage performance", classifier=performance_classifier)
async def homepage_performance(ctx):
    nav = await ctx.goto("/")
    ctx.expect_status(nav, 200)
    ctx.metrics["load_ms"] = round(nav.load_ms)
    print(f"⏱ Homepage loaded in {nav.load_ms:.0f}ms")
    budget = ctx.settings.home_load_budget_ms
    ctx.expect("homepage load time (ms)", nav.load_ms < budget, f"< {budget}", round(nav.load_ms))

    fcp = await ctx.page.evaluate(FCP_SCRIPT)
    if fcp is None:
        ctx.soft.skipped("first contentful paint", "no paint timing entry")
    else:
        ctx.metrics["fcp_ms"] = round(fcp)
        ctx.soft.check(f"first contentful paint < {ctx.settings.fcp_budget_ms}ms", fcp < ctx.settings.fcp_budget_ms, f"FCP {fcp:.0f}ms")

    timing = await ctx.page.evaluate(NAVIGATION_TIMING_SCRIPT)
    if timing:
        ctx.metrics.update({k: round(v) for k, v in timing.items() if v})


@scenario("subpage-performance", title="Documentation subpage performance")
async def subpage_performance(ctx):
    nav = await ctx.goto("/docs/intro")
    ctx.metrics["load_ms"] = round(nav.load_ms)
    print(f"⏱ Docs page loaded in {nav.load_ms:.0f}ms")
    budget = ctx.settings.subpage_load_budget_ms
    ctx.expect("docs page load time (ms)", nav.load_ms < budget, f"< {budget}", round(nav.load_ms))


@scenario("accessibility", title="Accessibility basics")
async def accessibility(ctx):
    await ctx.goto("/")

    buttons = ctx.page.locator("button")
    for i in range(min(await buttons.count(), 5)):
        button = buttons.nth(i)
        name = (await button.get_attribute("aria-label")) or ((await button.text_content()) or "").strip()
        ctx.soft.check(f"button {i + 1} has an accessible name", name, "no aria-label or text")

    images = ctx.page.locator("img")
    for i in range(min(await images.count(), 10)):
        img = images.nth(i)
        alt = await img.get_attribute("alt")
        role = await img.get_attribute("role")
        ctx.soft.check(f"image {i + 1} has alt text or is decorative", alt is not None or role == "presentation", "missing alt")

    await ctx.page.keyboard.press("Tab")
    focused = await ctx.page.evaluate("() => document.activeElement && document.activeElement.tagName.toLowerCase()")
    ctx.soft.check("Tab moves keyboard focus", focused, "no active element")

    headings = ctx.page.locator("h1, h2, h3, h4, h5, h6")
    if await headings.count() > 0:
        first_tag = await headings.first.evaluate("el => el.tagName")
        ctx.soft.check("first heading is H1 or H2", first_tag in ("H1", "H2"), f"first heading is {first_tag}")

    inputs = ctx.page.locator("input, textarea, select")
    for i in range(await inputs.count()):
        field = inputs.nth(i)
        field_id = await field.get_attribute("id")
        if not field_id:
            continue
        labelled = await ctx.page.locator(f'label[for="{field_id}"]').is_visible()
        ctx.soft.check(
            f"field #{field_id} is labelled",
            labelled or await field.get_attribute("aria-label"),
            "no visible label and no aria-label",
        )


@scenario("external-links", title="External links verification")
async def external_links(ctx):
    await ctx.goto("/")
    urls = await sample_links(ctx.page, "a[href*='http'], a[href*='//']", ctx.settings.link_sample_size, external_only=True)
    ctx.log(f"→ Sampled {len(urls)} external link(s)")
    if not urls:
        ctx.skip("no external links on page")
    results = await probe_links(ctx.context.request, urls, ctx.settings.link_probe_timeout_ms, verbose=ctx.verbose)
    record_probe_results(ctx.soft, results)
    ctx.metrics["links_checked"] = len(results)


@scenario("community-links", title="GitHub and community links")
async def community_links(ctx):
    await ctx.goto("/")

    github = await ctx.resolve("github-link", timeout_ms=0)
    if github:
        href = await github.locator.get_attribute("href") or ""
        ctx.soft.check("GitHub link points to github.com", "github.com" in href, href)
        ctx.soft.check(f"GitHub link points to {ctx.settings.repository}", ctx.settings.repository in href, href)
    else:
        ctx.soft.skipped("GitHub link", "not visible")

    community = await ctx.resolve("community-link", timeout_ms=0)
    if community:
        ctx.soft.check("community link has href", await community.locator.get_attribute("href"), "empty href")
    else:
        ctx.soft.skipped("community link", "not visible")


@scenario("sidebar", title="Sidebar navigation")
async def sidebar(ctx):
    await ctx.goto("/docs/intro")
    bar = await ctx.require("sidebar")

    link_count = await bar.locator.locator("a, [role='button']").count()
    ctx.expect("sidebar link count", link_count > 0, "> 0", link_count)

    section_count = await bar.locator.locator("li, [class*='section'], [class*='item']").filter(has_text=re.compile(r"^[A-Z]")).count()
    for i in range(min(section_count, 3)):
        # Re-resolve after every navigation.
        bar = await ctx.must_find("sidebar")
        sections = bar.locator.locator("li, [class*='section'], [class*='item']").filter(has_text=re.compile(r"^[A-Z]"))
        link = sections.nth(i).locator("a").first
        if not await link.is_visible():
            continue
        await link.click()
        await ctx.page.wait_for_load_state("domcontentloaded")
        ctx.soft.check(f"sidebar section {i + 1} shows content", await ctx.resolve("main-content"), "main content not visible")

    bar = await ctx.must_find("sidebar")
    active = bar.locator.locator("a[aria-current='page'], a.active, [class*='active'] a").first
    if await active.is_visible():
        ctx.soft.passed("current page highlighted in sidebar")
    else:
        ctx.soft.skipped("current page highlighted in sidebar", "no active indicator")

    expandable = bar.locator.locator("button[aria-expanded], [class*='expand'], [class*='collapse']").first
    if await expandable.is_visible():
        await expandable.click()
        nested = expandable.locator("xpath=..").locator("a, li")
        appeared = await ctx.wait_until(lambda: nested.count(), 2000)
        ctx.soft.check("expanding a section shows nested items", appeared, "no nested items")

    toggle = await ctx.resolve("hamburger-menu", timeout_ms=0)
    if toggle:
        await toggle.locator.click()
        mobile_bar = await ctx.resolve([by_css("aside", "aside"), by_css("sidebar class", "[class*='sidebar']")])
        ctx.soft.check("menu toggle reveals the sidebar", mobile_bar, "sidebar not visible after toggle")

    await ctx.page.evaluate("() => window.scrollBy(0, 500)")
    still = await ctx.resolve("sidebar")
    ctx.expect("sidebar visible after scrolling", bool(still), "visible", "not found")


@scenario("table-of-contents", title="Table of contents navigation")
async def table_of_contents(ctx):
    await ctx.goto("/docs/intro")
    toc = await ctx.require("table-of-contents")

    links = toc.locator.locator("a")
    count = await links.count()
    ctx.expect("table of contents link count", count > 0, "> 0", count)

    for i in range(min(count, 2)):
        link = links.nth(i)
        href = await link.get_attribute("href") or ""
        if not href.startswith("#"):
            continue
        await link.click()
        target = ctx.page.locator(f"[id='{href[1:]}']")
        if await target.count() == 0:
            ctx.soft.failed(f"anchor {href} exists", "no element with that id")
            continue
        reached = await ctx.wait_until(
            lambda t=target, h=href: ctx.page.url.endswith(h) or t.evaluate(IN_VIEWPORT_SCRIPT),
            2000,
        )
        ctx.soft.check(f"anchor {href} is reached", reached, "neither URL fragment nor viewport changed")


@scenario("docs-sections", title="Main documentation sections are reachable")
async def docs_sections(ctx):
    await ctx.goto("/docs")
    for section in DOC_SECTIONS:
        link = await ctx.resolve([by_css(f"{section} link", "a", re.escape(section))], timeout_ms=0)
        if link:
            ctx.soft.check(f"{section} link is enabled", await link.locator.is_enabled(), "disabled")
        else:
            ctx.soft.skipped(f"{section} link", "not visible")
