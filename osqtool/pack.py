"""
Pack codec - osquery pack JSON <-> QueryRecords.

A pack is a JSON object:

    {
      "platform": "posix",
      "queries": {
        "name": {"query": "...", "interval": 3600, "platform": "linux", ...}
      }
    }

Top-level platform, version and shard are defaults for queries lacking their
own value. `interval` may be a JSON number or a string; a number must be
a whole number of seconds.

Rendered packs continue long query lines with a trailing backslash for
readability; parse_pack understands that form.
"""

import json
import logging
import re
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Mapping, Optional, Union

from osqtool.directives import parse
from osqtool.errors import LoadError, ParseError
from osqtool.schemas import QueryRecord

logger = logging.getLogger(__name__)


# What render_pack writes in place of a "\n" escape
CONTINUATION = " \\\n    "

# An unescaped "\n" escape: preceded by an even run of backslashes
_NEWLINE_ESCAPE_RE = re.compile(r"(?<!\\)((?:\\\\)*)\\n")
_BACKSLASH_NEWLINE_RE = re.compile(r"\\\r?\n")


@dataclass
class Pack:
    """Decoded pack: records plus the top-level defaults."""
    queries: dict = field(default_factory=dict)
    platform: Optional[str] = None
    version: Optional[str] = None
    shard: Optional[int] = None


def _interval(name: str, value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise LoadError(f"{name}: interval must be a number or string, got {value!r}")
    text = str(value).strip()
    return text or None


def _shard(name: str, value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise LoadError(f"{name}: shard must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise LoadError(f"{name}: shard must be an integer, got {value!r}")


def _text(name: str, key: str, value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, (str, int, float)) or isinstance(value, bool):
        raise LoadError(f"{name}: {key} must be a string, got {value!r}")
    return str(value) or None


def _record(name: str, data: Any, pack: Pack, source_path: Optional[str]) -> QueryRecord:
    if not isinstance(data, dict):
        raise LoadError(f"{name}: query entry must be an object")
    query = data.get("query")
    if not isinstance(query, str):
        raise LoadError(f"{name}: missing 'query' string")

    try:
        record = parse(name, query, source_path=source_path)
    except ParseError as e:
        raise LoadError(f"{source_path or 'pack'}: {e}") from e

    platform = _text(name, "platform", data.get("platform")) or pack.platform or record.platform
    version = _text(name, "version", data.get("version")) or pack.version or record.version
    shard = _shard(name, data.get("shard"))
    if shard is None:
        shard = pack.shard

    return replace(
        record,
        interval=_interval(name, data.get("interval")) or record.interval,
        platform=platform,
        version=version,
        shard=shard,
        description=_text(name, "description", data.get("description")) or record.description,
        extended_description=(
            _text(name, "extended_description", data.get("extended_description"))
            or record.extended_description
        ),
        value=_text(name, "value", data.get("value")) or record.value,
    )


def parse_pack(content: Union[bytes, str], source_path: Optional[str] = None) -> Pack:
    """
    Decode a pack into QueryRecords.

    Args:
        content: Pack JSON text or bytes
        source_path: Provenance kept on every record

    Returns:
        Pack with records keyed by name and top-level defaults applied

    Raises:
        LoadError: If the JSON is malformed or fields have the wrong type
    """
    try:
        text = content.decode("utf-8") if isinstance(content, bytes) else content
    except UnicodeDecodeError as e:
        raise LoadError(f"decode {source_path or 'pack'}: {e}") from e

    # Undo rendered continuations, then any hand-written backslash-newline
    text = text.replace(CONTINUATION, "\\n")
    text = _BACKSLASH_NEWLINE_RE.sub(r"\\n", text)

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise LoadError(f"{source_path or 'pack'}: invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise LoadError(f"{source_path or 'pack'}: top level must be an object")

    queries = data.get("queries")
    if queries is None:
        queries = {}
    if not isinstance(queries, dict):
        raise LoadError(f"{source_path or 'pack'}: 'queries' must be an object")

    pack = Pack(
        platform=_text("pack", "platform", data.get("platform")),
        version=_text("pack", "version", data.get("version")),
        shard=_shard("pack", data.get("shard")),
    )
    for name, entry in queries.items():
        pack.queries[name] = _record(name, entry, pack, source_path)

    logger.info("decoded %d queries from %s", len(pack.queries), source_path or "pack")
    return pack


def _entry(record: QueryRecord) -> dict:
    entry: dict[str, Any] = {"query": record.query}
    if record.interval is not None:
        entry["interval"] = int(record.interval) if record.interval.isdigit() else record.interval
    if record.platform:
        entry["platform"] = record.platform
    if record.version:
        entry["version"] = record.version
    if record.shard is not None:
        entry["shard"] = record.shard
    if record.description:
        entry["description"] = record.description
    if record.extended_description:
        entry["extended_description"] = record.extended_description
    if record.value:
        entry["value"] = record.value
    return entry


def render_pack(
    records: Union[Mapping[str, QueryRecord], Iterable[QueryRecord]],
    single_quotes: bool = False,
) -> str:
    """
    Render records as pack JSON.

    Args:
        records: Mapping of name -> record, or an iterable of records
        single_quotes: Replace escaped double quotes with single quotes

    Returns:
        Pack JSON text, queries sorted by name
    """
    if isinstance(records, Mapping):
        records = records.values()
    by_name = {r.name: r for r in records}

    pack = {"queries": {name: _entry(by_name[name]) for name in sorted(by_name)}}
    out = json.dumps(pack, indent=2, ensure_ascii=False)

    # Does not handle a double-quoted string holding a single quote
    if single_quotes:
        out = out.replace('\\"', "'")

    return _NEWLINE_ESCAPE_RE.sub(lambda m: m.group(1) + CONTINUATION, out)
