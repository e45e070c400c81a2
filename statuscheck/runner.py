"""Runs many checkers concurrently, one thread per endpoint check.

Attempts within a single check stay sequential; only different endpoints
overlap.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from .checks import HTTPChecker
from .config import settings
from .errors import ConfigurationError
from .results import Result, Status, format_duration

logger = logging.getLogger(__name__)


@dataclass
class RunReport:
    results: list[Result] = field(default_factory=list)
    errors: list[tuple[str, str]] = field(default_factory=list)  # (checker name, message)

    @property
    def all_healthy(self) -> bool:
        return not self.errors and all(r.healthy for r in self.results)


def _run_one(checker: HTTPChecker) -> Result | ConfigurationError:
    try:
        result = checker.check()
    except ConfigurationError as e:
        logger.warning("Check %s not run: %s", checker.name, e)
        return e

    level = logging.INFO if result.status is Status.HEALTHY else logging.WARNING
    logger.log(
        level, "Check %s: %s (median %s)%s",
        checker.name, result.status.value, format_duration(result.stats.median),
        f" - {result.notice}" if result.notice else "",
    )
    return result


def run_checks(checkers: Sequence[HTTPChecker], max_workers: int | None = None) -> RunReport:
    """Check every endpoint and return results in input order."""
    report = RunReport()
    if not checkers:
        logger.info("No checkers configured")
        return report

    with ThreadPoolExecutor(max_workers=max_workers or settings.max_workers) as executor:
        outcomes = list(executor.map(_run_one, checkers))

    for checker, outcome in zip(checkers, outcomes):
        if isinstance(outcome, ConfigurationError):
            report.errors.append((checker.name, str(outcome)))
        else:
            report.results.append(outcome)
    return report
