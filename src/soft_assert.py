from dataclasses import dataclass, field

from outcomes import AggregateFailure


@dataclass(frozen=True)
class Pass:
    status = "passed"
    reason = ""


@dataclass(frozen=True)
class Fail:
    reason: str
    status = "failed"


@dataclass(frozen=True)
class Skip:
    reason: str
    status = "skipped"


@dataclass(frozen=True)
class Check:
    name: str
    status: str
    reason: str = ""

    def to_dict(self) -> dict:
        return {"name": self.name, "status": self.status, "reason": self.reason}


@dataclass
class SoftReport:
    status: str
    checks: list[Check] = field(default_factory=list)

    @property
    def skipped(self) -> list[Check]:
        return [c for c in self.checks if c.status == "skipped"]


class SoftAssertions:
    """Collects independent check outcomes; only Fail entries fail finalize()."""

    def __init__(self):
        self.checks: list[Check] = []

    def record(self, name: str, outcome: Pass | Fail | Skip) -> Check:
        check = Check(name, outcome.status, outcome.reason)
        self.checks.append(check)
        return check

    def passed(self, name: str) -> Check:
        return self.record(name, Pass())

    def failed(self, name: str, reason: str) -> Check:
        return self.record(name, Fail(reason))

    def skipped(self, name: str, reason: str) -> Check:
        return self.record(name, Skip(reason))

    def check(self, name: str, condition, reason: str = "") -> bool:
        ok = bool(condition)
        self.record(name, Pass() if ok else Fail(reason or "condition was false"))
        return ok

    @property
    def failures(self) -> list[Check]:
        return [c for c in self.checks if c.status == "failed"]

    def finalize(self) -> SoftReport:
        failures = self.failures
        if failures:
            raise AggregateFailure(failures)
        return SoftReport("passed", list(self.checks))
