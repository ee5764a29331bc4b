"""
QueryRecord schema - one query plus its scheduling and provenance metadata.

A QueryRecord is created once by the directive parser (or the pack codec,
which routes the query text through the parser). Both query text forms are
derived together at parse time and never recomputed separately.
"""

from dataclasses import dataclass, field
from typing import Optional


# Cut-off for when a query is rendered within a single line
SHORT_QUERY_LEN = 80


@dataclass(frozen=True)
class QueryRecord:
    """
    A parsed monitoring query.

    Attributes:
        name: Unique identifier (file stem or pack key)
        query_text: Multi-line executable text, ends with ';'
        query_text_compact: Same text on one line, ends with ';'
        description: First comment line of the source
        extended_description: Further free-text comment lines
        interval: Seconds between runs as a string; None when unset
        platform: Target OS tag (linux, darwin, windows, posix, ...)
        version: Minimum osquery version, passed through
        shard: Shard percentage, passed through
        value: Free-form value note, passed through
        tags: Labels used by interval rules and exclusion filters
        source_path: Where the record was loaded from (not compared)
    """
    name: str
    query_text: str
    query_text_compact: str
    description: str = ""
    extended_description: str = ""
    interval: Optional[str] = None
    platform: Optional[str] = None
    version: Optional[str] = None
    shard: Optional[int] = None
    value: Optional[str] = None
    tags: frozenset = frozenset()
    source_path: Optional[str] = field(default=None, compare=False)

    @property
    def query(self) -> str:
        """The form written into packs: compact for short queries."""
        if len(self.query_text_compact) > SHORT_QUERY_LEN:
            return self.query_text
        return self.query_text_compact
