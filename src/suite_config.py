import os
from dataclasses import dataclass, replace


# Context kwargs per device preset. Names other than "desktop" are Playwright
# device descriptors and are looked up on the running Playwright instance.
DESKTOP_VIEWPORT = {"width": 1366, "height": 900}
DEVICE_PRESETS = ("desktop", "iPhone SE", "iPad")


def _env_int(environ, name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer, got {raw!r}")


@dataclass(frozen=True)
class SuiteSettings:
    base_url: str = "https://playwright.dev"
    title_pattern: str = "Playwright"
    headless: bool = True
    browser: str = "chromium"
    workers: int = 3
    navigation_timeout_ms: int = 60000
    resolve_timeout_ms: int = 3000
    poll_interval_ms: int = 100
    scenario_timeout_ms: int = 180000
    link_probe_timeout_ms: int = 10000
    link_sample_size: int = 5
    home_load_budget_ms: int = 5000
    subpage_load_budget_ms: int = 3000
    fcp_budget_ms: int = 2000
    heading_budget_ms: int = 5000
    repository: str = "microsoft/playwright"
    selector_overrides: str = "data/selectors_overrides.json"

    @classmethod
    def from_env(cls, environ=None) -> "SuiteSettings":
        env = os.environ if environ is None else environ
        d = cls()
        return cls(
            base_url=env.get("DOCS_BASE_URL", d.base_url),
            title_pattern=env.get("DOCS_TITLE_PATTERN", d.title_pattern),
            repository=env.get("DOCS_REPOSITORY", d.repository),
            headless=env.get("HEADLESS", "true").lower() == "true",
            browser=env.get("BROWSER", d.browser),
            workers=_env_int(env, "MAX_WORKERS", d.workers),
            navigation_timeout_ms=_env_int(env, "NAVIGATION_TIMEOUT_MS", d.navigation_timeout_ms),
            resolve_timeout_ms=_env_int(env, "RESOLVE_TIMEOUT_MS", d.resolve_timeout_ms),
            poll_interval_ms=_env_int(env, "POLL_INTERVAL_MS", d.poll_interval_ms),
            scenario_timeout_ms=_env_int(env, "SCENARIO_TIMEOUT_MS", d.scenario_timeout_ms),
            link_probe_timeout_ms=_env_int(env, "LINK_PROBE_TIMEOUT_MS", d.link_probe_timeout_ms),
            selector_overrides=env.get("SELECTOR_OVERRIDES", d.selector_overrides),
        )

    def with_overrides(self, **kwargs) -> "SuiteSettings":
        """Apply CLI overrides, ignoring options that were not given."""
        return replace(self, **{k: v for k, v in kwargs.items() if v is not None})


def context_options(device: str, playwright=None) -> dict:
    if device == "desktop":
        return {"viewport": dict(DESKTOP_VIEWPORT)}
    if playwright is None:
        raise ValueError(f"Device preset '{device}' needs a Playwright instance")
    try:
        options = dict(playwright.devices[device])
    except KeyError:
        raise ValueError(f"Unknown device preset: {device}")
    options.pop("default_browser_type", None)
    return options
