"""
Loader - read query sources from disk into a MetadataStore.

Sources:
- <name>.sql files (name is the file stem)
- directories, searched recursively for *.sql
- pack files (*.conf, *.json), or "-" for a pack on stdin

Any I/O failure is a LoadError; duplicate names across or within sources
are a ConflictError. Both abort the load.
"""

import logging
import sys
from pathlib import Path
from typing import Iterable, Mapping, Union

from osqtool.directives import parse, render
from osqtool.errors import LoadError, ParseError
from osqtool.pack import parse_pack
from osqtool.schemas import QueryRecord
from osqtool.store import MetadataStore

logger = logging.getLogger(__name__)


QUERY_SUFFIX = ".sql"
PACK_SUFFIXES = (".conf", ".json")

PathLike = Union[str, Path]


def _read_bytes(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as e:
        raise LoadError(f"read {path}: {e}") from e


def load_query_file(path: PathLike) -> QueryRecord:
    """Load and parse a single .sql file."""
    path = Path(path)
    try:
        return parse(path.stem, _read_bytes(path), source_path=str(path))
    except ParseError as e:
        raise LoadError(f"parse {path}: {e}") from e


def load_directory(path: PathLike) -> MetadataStore:
    """Recursively load every .sql file below a directory."""
    path = Path(path)
    if not path.is_dir():
        raise LoadError(f"not a directory: {path}")

    store = MetadataStore()
    for sql_path in sorted(path.rglob(f"*{QUERY_SUFFIX}")):
        if not sql_path.is_file():
            continue
        logger.info("found query: %s", sql_path)
        store.add(load_query_file(sql_path))
    return store


def load_pack_file(path: PathLike) -> MetadataStore:
    """Load a pack file; "-" reads the pack from stdin."""
    if str(path) == "-":
        content = sys.stdin.read()
        source = "<stdin>"
    else:
        content = _read_bytes(Path(path))
        source = str(path)
    return MetadataStore(parse_pack(content, source_path=source).queries.values())


def load_path(path: PathLike) -> MetadataStore:
    """Load a directory, pack file or single query file."""
    if str(path) == "-":
        return load_pack_file(path)

    path = Path(path)
    if not path.exists():
        raise LoadError(f"stat {path}: no such file or directory")
    if path.is_dir():
        return load_directory(path)
    if path.suffix in PACK_SUFFIXES:
        return load_pack_file(path)
    return MetadataStore([load_query_file(path)])


def load_paths(paths: Iterable[PathLike]) -> MetadataStore:
    """
    Load and merge several sources.

    Raises:
        LoadError: If any source cannot be read or decoded
        ConflictError: If two sources share a query name
    """
    store = MetadataStore()
    for path in paths:
        store.merge(load_path(path))
    logger.info("loaded %d queries", len(store))
    return store


def save_to_directory(records: Mapping[str, QueryRecord], destination: PathLike) -> list[Path]:
    """Write each record to <destination>/<name>.sql."""
    destination = Path(destination)
    destination.mkdir(parents=True, exist_ok=True)

    written = []
    for name in sorted(records):
        data = render(records[name]).encode("utf-8")
        path = destination / f"{name}{QUERY_SUFFIX}"
        logger.info("Writing %d bytes to %s ...", len(data), path)
        try:
            path.write_bytes(data)
        except OSError as e:
            raise LoadError(f"write {path}: {e}") from e
        written.append(path)
    return written
