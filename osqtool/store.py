"""
MetadataStore - in-memory mapping of query name -> QueryRecord.

Names are unique. Adding or merging a name that already exists is a
ConflictError: combining sources never silently shadows a query.
"""

import logging
from typing import Iterable, Iterator, Mapping, Optional, Union

from osqtool.errors import ConflictError
from osqtool.schemas import QueryRecord

logger = logging.getLogger(__name__)


class MetadataStore:
    """
    Store of QueryRecords keyed by name.

    Iteration is over names in sorted order.
    """

    def __init__(self, records: Optional[Iterable[QueryRecord]] = None):
        self._records: dict[str, QueryRecord] = {}
        for record in records or ():
            self.add(record)

    def add(self, record: QueryRecord) -> None:
        """
        Add a record.

        Raises:
            ConflictError: If a record with the same name exists
        """
        existing = self._records.get(record.name)
        if existing is not None:
            raise ConflictError(
                [record.name],
                {record.name: f"{existing.source_path or '?'} and {record.source_path or '?'}"},
            )
        self._records[record.name] = record

    def merge(self, other: Union["MetadataStore", Mapping[str, QueryRecord]]) -> None:
        """
        Merge every record from another store or mapping.

        All names are checked before anything is added, so a conflict
        leaves this store unchanged.

        Raises:
            ConflictError: Naming every duplicate
        """
        incoming = other.as_dict() if isinstance(other, MetadataStore) else dict(other)
        duplicates = sorted(set(incoming) & set(self._records))
        if duplicates:
            sources = {
                n: f"{self._records[n].source_path or '?'} and {incoming[n].source_path or '?'}"
                for n in duplicates
            }
            raise ConflictError(duplicates, sources)
        self._records.update(incoming)
        logger.debug("merged %d queries (now %d)", len(incoming), len(self._records))

    def get(self, name: str) -> Optional[QueryRecord]:
        return self._records.get(name)

    def names(self) -> list[str]:
        return sorted(self._records)

    def records(self) -> list[QueryRecord]:
        """Records sorted by name."""
        return [self._records[n] for n in self.names()]

    def as_dict(self) -> dict[str, QueryRecord]:
        return dict(self._records)

    def __contains__(self, name: object) -> bool:
        return name in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[str]:
        return iter(self.names())

    def __repr__(self) -> str:
        return f"MetadataStore(queries={len(self._records)})"
