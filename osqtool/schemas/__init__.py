"""
osqtool.schemas - Data structures shared by the parser, resolver and verifier.

QueryRecord -> (resolve with Policy) -> QueryRecord -> Outcome -> Report

Lifecycle:
1. QueryRecord: Created by the directive parser from immutable source text
2. Policy: One explicit configuration value for resolution and verification
3. Outcome: Per-query verification result (verified, partial, errored)
4. Report: Aggregate totals, budgets and the combined error
"""

from .query import QueryRecord, SHORT_QUERY_LEN
from .policy import Policy
from .report import Outcome, OutcomeStatus, Report

__all__ = [
    "QueryRecord",
    "SHORT_QUERY_LEN",
    "Policy",
    "Outcome",
    "OutcomeStatus",
    "Report",
]
