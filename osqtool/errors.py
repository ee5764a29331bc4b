"""
Error classes for osqtool.

These error types describe where a failure happened and how far it spreads:
- ParseError: a directive value could not be converted (one record)
- LoadError: a source could not be read or decoded (one source)
- ConflictError: two sources define the same query name (whole operation)
- ScheduleConfigError: a tag-interval rule is unparseable (rule skipped)
- ScheduleError: a record has no usable interval at verification time
- BudgetExceeded: a verification budget was breached (recorded per query)
- ExecutionError: the execution backend failed (recorded per query)

Record-level errors are collected into the verification Report and returned
together as a MultiError. Only load-time conflicts and I/O failures abort.
"""


class OsqtoolError(Exception):
    """Base exception for osqtool."""
    pass


class ParseError(OsqtoolError):
    """A directive value could not be converted to its expected type."""
    pass


class LoadError(OsqtoolError):
    """
    A query source could not be loaded.

    Examples:
    - File or directory not readable
    - Pack is not valid JSON
    - Pack fields have the wrong type
    """
    pass


class ConflictError(OsqtoolError):
    """Two sources define a query with the same name."""

    def __init__(self, names, sources=None):
        self.names = sorted(names)
        self.sources = sources or {}
        detail = ", ".join(
            f"{n} ({self.sources[n]})" if n in self.sources else n
            for n in self.names
        )
        super().__init__(f"duplicate query name(s): {detail}")


class ConfigError(OsqtoolError):
    """Policy configuration is missing or invalid."""
    pass


class ScheduleConfigError(ConfigError):
    """A tag-interval rule cannot be parsed. The rule is skipped."""
    pass


class ScheduleError(OsqtoolError):
    """A record's interval is not a positive integer number of seconds."""
    pass


class BudgetExceeded(OsqtoolError):
    """
    A verification budget was breached.

    Raised for single-run duration, per-query daily duration, total daily
    duration, and result-row ceilings. Never stops the batch.
    """
    pass


class ExecutionError(OsqtoolError):
    """The execution backend failed to run a query."""
    pass


class VerificationError(OsqtoolError):
    """Aggregate verification failure that no single query caused."""
    pass


class MultiError(OsqtoolError):
    """Several errors returned together once a batch completes."""

    def __init__(self, errors):
        self.errors = list(errors)
        lines = [f"{len(self.errors)} error(s) occurred:"]
        lines.extend(f"\t* {e}" for e in self.errors)
        super().__init__("\n".join(lines))

    def __iter__(self):
        return iter(self.errors)

    def __len__(self) -> int:
        return len(self.errors)
