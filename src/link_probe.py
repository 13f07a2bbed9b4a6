import asyncio
import urllib.parse
from dataclasses import dataclass
from typing import Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from soft_assert import SoftAssertions


BROKEN_STATUSES = {404, 500}
SKIPPED_SCHEMES = ("mailto:", "tel:", "javascript:")


@dataclass
class LinkProbeResult:
    url: str
    status: Optional[int] = None
    timed_out: bool = False
    error: str = ""
    elapsed_ms: float = 0.0

    @property
    def outcome(self):
        if self.timed_out:
            return "timeout"
        if self.status is not None:
            return self.status
        return "transport-error"

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "outcome": self.outcome,
            "status": self.status,
            "error": self.error,
            "elapsed_ms": round(self.elapsed_ms),
        }


def host_of(url: str) -> str:
    return (urllib.parse.urlparse(url).hostname or "").lower()


def is_external(url: str, base_host: str) -> bool:
    host = host_of(url)
    if not host:
        return False
    return not (host == base_host or host.endswith("." + base_host))


async def sample_links(page, selector: str = "a[href]", limit: int = 5, external_only: bool = False) -> list[str]:
    """Return up to `limit` distinct absolute hrefs in document order."""
    base_url = page.url
    base_host = host_of(base_url)
    urls: list[str] = []
    for href in await page.locator(selector).evaluate_all("els => els.map(e => e.getAttribute('href'))"):
        if not href or href.startswith("#") or href.lower().startswith(SKIPPED_SCHEMES):
            continue
        absolute = urllib.parse.urljoin(base_url, href)
        if not absolute.startswith(("http://", "https://")):
            continue
        if external_only and not is_external(absolute, base_host):
            continue
        if absolute not in urls:
            urls.append(absolute)
        if len(urls) >= limit:
            break
    return urls


async def probe_link(request_context, url: str, timeout_ms: float) -> LinkProbeResult:
    """HEAD one URL without following redirects; never raises."""
    loop = asyncio.get_running_loop()
    start = loop.time()
    try:
        # Outer guard in case the provider ignores its own timeout.
        response = await asyncio.wait_for(
            request_context.head(url, timeout=timeout_ms, max_redirects=0),
            timeout=timeout_ms / 1000 + 1,
        )
        return LinkProbeResult(url, status=response.status, elapsed_ms=(loop.time() - start) * 1000)
    except (PlaywrightTimeoutError, asyncio.TimeoutError) as e:
        return LinkProbeResult(url, timed_out=True, error=str(e) or "timeout",
                               elapsed_ms=(loop.time() - start) * 1000)
    except PlaywrightError as e:
        elapsed = (loop.time() - start) * 1000
        if "timeout" in str(e).lower():
            return LinkProbeResult(url, timed_out=True, error=str(e), elapsed_ms=elapsed)
        return LinkProbeResult(url, error=str(e), elapsed_ms=elapsed)


async def probe_links(request_context, urls: list[str], timeout_ms: float = 10000, verbose: bool = False) -> list[LinkProbeResult]:
    """Probe each URL in order; exactly one result per URL."""
    results = []
    for url in urls:
        if verbose:
            print(f"→ Probing link: {url}")
        result = await probe_link(request_context, url, timeout_ms)
        if verbose:
            print(f"  {url} → {result.outcome}")
        results.append(result)
    return results


def record_probe_results(soft: SoftAssertions, results: list[LinkProbeResult], broken_statuses=BROKEN_STATUSES) -> None:
    for r in results:
        name = f"link {r.url}"
        if r.timed_out:
            soft.failed(name, f"timeout after {r.elapsed_ms:.0f}ms")
        elif r.status is None:
            soft.skipped(name, f"transport error: {r.error}")
        elif r.status in broken_statuses:
            soft.failed(name, f"HTTP {r.status}")
        else:
            soft.passed(name)
