"""
Verification outcome and report schemas.

Outcome is produced by one verification task for one query.
Report aggregates every outcome plus the aggregate budget checks.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from osqtool.errors import MultiError


class OutcomeStatus(str, Enum):
    """Classification of a single query's verification."""
    VERIFIED = "verified"
    PARTIAL = "partial"
    ERRORED = "errored"


@dataclass(frozen=True)
class Outcome:
    """
    Result of verifying one query.

    Attributes:
        name: Query name
        status: verified, partial (skipped for platform) or errored
        elapsed: Wall-clock seconds of the single run (0 when not run)
        row_count: Rows returned by the run
        sample: Formatted rows attached when the row budget is exceeded
        incompatible_platform: Platform that caused a skip, if any
        daily_runs: 86400 // interval, when the interval is usable
        daily_duration: daily_runs * elapsed
        error: The error recorded for an errored query
    """
    name: str
    status: OutcomeStatus
    elapsed: float = 0.0
    row_count: int = 0
    sample: tuple = ()
    incompatible_platform: Optional[str] = None
    daily_runs: int = 0
    daily_duration: float = 0.0
    error: Optional[Exception] = None


@dataclass
class Report:
    """
    Aggregate verification result.

    Always carries totals, even when `error` is set. Callers inspect the
    counts to tell a total failure from a partial one.
    """
    verified: int = 0
    partial: int = 0
    errored: int = 0
    total_daily_duration: float = 0.0
    total_daily_runs: int = 0
    outcomes: dict = field(default_factory=dict)
    errors: list = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.verified + self.partial + self.errored

    @property
    def failures(self) -> list:
        """Errored outcomes, sorted by name."""
        return [
            self.outcomes[name] for name in sorted(self.outcomes)
            if self.outcomes[name].status is OutcomeStatus.ERRORED
        ]

    @property
    def error(self) -> Optional[MultiError]:
        """Combined error, or None when the batch passed."""
        if not self.errors:
            return None
        return MultiError(self.errors)

    def summary(self) -> str:
        return (
            f"{self.total} queries found: {self.verified} verified, "
            f"{self.errored} errored, {self.partial} partial"
        )
