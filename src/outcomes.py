"""Exceptions that classify how a scenario ended."""


class ScenarioSkipped(Exception):
    """A required precondition was never met; the scenario does not apply."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class AssertionViolation(AssertionError):
    """Hard failure carrying the concrete expected and actual values."""

    def __init__(self, what: str, expected, actual):
        super().__init__(f"{what}: expected {expected!r}, actual {actual!r}")
        self.what = what
        self.expected = expected
        self.actual = actual


class WaitTimeout(Exception):
    """A navigation, condition wait or probe did not settle before its deadline."""

    def __init__(self, what: str, elapsed_ms: float, timeout_ms: float):
        super().__init__(f"Timed out waiting for {what} after {elapsed_ms:.0f}ms (limit {timeout_ms:.0f}ms)")
        self.what = what
        self.elapsed_ms = elapsed_ms
        self.timeout_ms = timeout_ms


class AggregateFailure(AssertionError):
    """Raised by SoftAssertions.finalize() with every failed check."""

    def __init__(self, failures: list):
        self.failures = list(failures)
        lines = [f"{f.name}: {f.reason}" for f in self.failures]
        super().__init__(f"{len(self.failures)} check(s) failed: " + "; ".join(lines))


class InfrastructureError(RuntimeError):
    """The browser or an execution context could not be started."""
