"""Models for scenario results and the assembled report."""

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

type TestStatus = Literal["passed", "failed", "skipped"]

type ErrorKind = Literal[
    "auth", "network", "service", "configuration", "invalid_input", "error"
]


@dataclass(frozen=True, kw_only=True)
class TestResult:
    """Result of a single scenario attempt.

    `duration` covers exactly one attempt, in seconds.
    """

    __test__ = False

    scenario_id: str
    status: TestStatus
    duration: float
    message: str | None = None
    error_kind: ErrorKind | None = None
    error_detail: str | None = None
    http_status: int | None = None

    def __post_init__(self) -> None:
        if self.duration < 0:
            raise ValueError(f"duration must be non-negative, got {self.duration}")


@dataclass(frozen=True, kw_only=True)
class ServiceReport:
    """Results for one service, in scenario execution order."""

    service: str
    results: Sequence[TestResult]
    endpoint: str | None = None
    auth_method: str | None = None


@dataclass(frozen=True, kw_only=True)
class Summary:
    total: int = 0
    passed: int = 0
    failed: int = 0
    skipped: int = 0


@dataclass(frozen=True, kw_only=True)
class Report:
    """Finished run, services in the order they were requested.

    `total_duration` is the wall-clock span of the whole run.
    """

    timestamp: datetime
    summary: Summary
    total_duration: float
    services: Sequence[ServiceReport] = field(default_factory=list)
    incomplete: bool = False

    def results(self) -> Sequence[TestResult]:
        return [result for service in self.services for result in service.results]
