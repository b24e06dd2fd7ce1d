"""Folds per-service results into one report."""

from collections import Counter
from collections.abc import Sequence
from datetime import datetime

from aitools_connect.models.result import Report, ServiceReport, Summary, TestResult


def summarize(results: Sequence[TestResult]) -> Summary:
    """Single tally over all results by status."""
    counts = Counter(result.status for result in results)
    return Summary(
        total=len(results),
        passed=counts["passed"],
        failed=counts["failed"],
        skipped=counts["skipped"],
    )


def build_report(
    services: Sequence[ServiceReport],
    *,
    timestamp: datetime,
    total_duration: float,
    incomplete: bool = False,
) -> Report:
    """Assemble the report.

    Args:
        services: Service reports, already in requested order
        timestamp: When the run started
        total_duration: Wall-clock span of the whole run, in seconds
        incomplete: Whether the run was interrupted

    """
    results = [result for service in services for result in service.results]
    return Report(
        timestamp=timestamp,
        summary=summarize(results),
        total_duration=max(total_duration, 0.0),
        services=list(services),
        incomplete=incomplete,
    )
