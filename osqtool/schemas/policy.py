"""
Policy schema - the explicit configuration threaded through resolution
and verification.

One immutable Policy value replaces process-wide flags. Durations are in
seconds. A budget set to None is unlimited.
"""

from dataclasses import dataclass
from typing import Optional


DEFAULT_INTERVAL = 3600
MIN_INTERVAL = 15
MAX_INTERVAL = 86400
MAX_DURATION = 4.0
MAX_QUERY_DAILY_DURATION = 60.0
MAX_TOTAL_DAILY_DURATION = 600.0
MAX_RESULTS = 1000


@dataclass(frozen=True)
class Policy:
    """
    Configuration for the resolver and the verification engine.

    Attributes:
        default_interval: Interval for queries declaring none
        tag_intervals: Ordered "tag=modifier" rules
        min_interval: Lower clamp applied to every interval
        max_interval: Upper clamp applied to every interval
        exclude: Query names removed from the active set
        exclude_tags: Queries carrying any of these tags are removed
        platforms: Allow-list of platforms; empty allows all
        concurrency_limit: Worker-pool width; <= 0 means CPU count
        max_duration: Ceiling on one execution's elapsed time
        max_query_daily_duration: Ceiling on elapsed * runs per day
        max_total_daily_duration: Ceiling on the sum of daily durations
        max_results: Ceiling on rows returned by one execution
    """
    default_interval: int = DEFAULT_INTERVAL
    tag_intervals: tuple = ()
    min_interval: int = MIN_INTERVAL
    max_interval: int = MAX_INTERVAL
    exclude: frozenset = frozenset()
    exclude_tags: frozenset = frozenset()
    platforms: frozenset = frozenset()
    concurrency_limit: int = 0
    max_duration: Optional[float] = MAX_DURATION
    max_query_daily_duration: Optional[float] = MAX_QUERY_DAILY_DURATION
    max_total_daily_duration: Optional[float] = MAX_TOTAL_DAILY_DURATION
    max_results: Optional[int] = MAX_RESULTS

    def __post_init__(self):
        # Accept any iterable from callers, store hashable immutables
        object.__setattr__(self, "tag_intervals", tuple(self.tag_intervals))
        for name in ("exclude", "exclude_tags", "platforms"):
            values = getattr(self, name)
            object.__setattr__(self, name, frozenset(v for v in values if v))
        if self.default_interval <= 0:
            raise ValueError("default_interval must be positive")
