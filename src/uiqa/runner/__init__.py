"""
Parallel test execution.

Runs test callables concurrently with one browser session per worker and
optional re-runs of failed tests.
"""

from uiqa.runner.parallel import (
    CaseResult,
    CaseStatus,
    ParallelRunner,
    RunSummary,
    TestCase,
    TestRetryAnalyzer,
)

__all__ = [
    "CaseResult",
    "CaseStatus",
    "ParallelRunner",
    "RunSummary",
    "TestCase",
    "TestRetryAnalyzer",
]
