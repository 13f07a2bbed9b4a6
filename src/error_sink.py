"""Scoped capture of console errors and failed network responses for one page."""

import re
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Optional


CRITICAL = "critical"
IGNORABLE = "ignorable"

# Known-benign noise: layout observer chatter, framework promise warnings and
# third-party analytics/telemetry beacons.
DEFAULT_IGNORABLE_PATTERNS = [
    r"ResizeObserver loop",
    r"non-error promise rejection",
    r"analytics",
    r"telemetry",
    r"googletagmanager",
]


@dataclass
class ObservedError:
    source: str  # "console" | "network"
    message: str
    timestamp: float
    url: str = ""
    status: Optional[int] = None
    classification: str = CRITICAL

    def to_dict(self) -> dict:
        return {
            "source": self.source,
            "message": self.message,
            "timestamp": self.timestamp,
            "url": self.url,
            "status": self.status,
            "classification": self.classification,
        }


Classifier = Callable[[ObservedError], bool]


def make_classifier(*patterns: str) -> Classifier:
    """Classifier that marks an error ignorable when message or URL matches any pattern."""
    rx = re.compile("|".join(f"(?:{p})" for p in patterns), re.I) if patterns else None

    def is_ignorable(err: ObservedError) -> bool:
        if rx is None:
            return False
        return bool(rx.search(err.message) or (err.url and rx.search(err.url)))

    return is_ignorable


default_classifier = make_classifier(*DEFAULT_IGNORABLE_PATTERNS)


class ErrorSink:
    def __init__(self, page):
        self.page = page
        self.observed: list[ObservedError] = []
        self._active = False
        self._stopped = False

    @property
    def active(self) -> bool:
        return self._active

    def _on_console(self, msg) -> None:
        if msg.type != "error":
            return
        location = msg.location or {}
        self.observed.append(ObservedError(
            source="console",
            message=msg.text,
            timestamp=time.time(),
            url=location.get("url", "") if isinstance(location, dict) else "",
        ))

    def _on_response(self, response) -> None:
        if response.status < 400:
            return
        self.observed.append(ObservedError(
            source="network",
            message=f"HTTP {response.status} {response.status_text or ''}".strip(),
            timestamp=time.time(),
            url=response.url,
            status=response.status,
        ))

    def start_capture(self) -> "ErrorSink":
        if self._active or self._stopped:
            raise RuntimeError("ErrorSink capture can only be started once")
        self.page.on("console", self._on_console)
        self.page.on("response", self._on_response)
        self._active = True
        return self

    def stop_capture(self, classifier: Classifier | None = None) -> list[ObservedError]:
        """Unsubscribe (first call only) and return the critical errors."""
        if self._active:
            self.page.remove_listener("console", self._on_console)
            self.page.remove_listener("response", self._on_response)
            self._active = False
            self._stopped = True
        classifier = classifier or default_classifier
        critical = []
        for err in self.observed:
            err.classification = IGNORABLE if classifier(err) else CRITICAL
            if err.classification == CRITICAL:
                critical.append(err)
        return critical


@contextmanager
def capture_errors(page):
    """Yield an active ErrorSink; listeners are always removed on exit."""
    sink = ErrorSink(page).start_capture()
    try:
        yield sink
    finally:
        if sink.active:
            sink.stop_capture()
