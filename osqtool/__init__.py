"""
osqtool - Manage and verify osquery query packs

Parses queries with embedded `--` directives, resolves their schedule from
a policy, and verifies every query against osqueryi within time and result
budgets.
"""

__version__ = "0.1.0"
__author__ = "osqtool authors"


__all__ = [
    "QueryRecord",
    "Policy",
    "Report",
    "parse",
    "resolve",
    "verify",
    "MetadataStore",
]

from .schemas import QueryRecord, Policy, Report
from .directives import parse
from .resolver import resolve
from .verifier import verify
from .store import MetadataStore
