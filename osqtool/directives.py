"""
Directive parser - turn query source text into a QueryRecord.

Query sources are SQL interleaved with `--` comment lines. Comment-only
lines may carry directives:

    -- Returns a list of malware matches from macOS XProtect
    --
    -- interval: 1200
    -- platform: darwin
    -- tags: persistent often

    SELECT * FROM xprotect_reports;

The first comment-only line is the description. Recognized directive names
are interval, platform, version, shard, tags and value; anything else is
ignored. A `--` inside a quoted string literal is not a comment.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from osqtool.durations import parse_duration
from osqtool.errors import ParseError
from osqtool.schemas import QueryRecord

logger = logging.getLogger(__name__)


COMMENT_MARKER = "--"

# Name suffix -> platform, checked case-insensitively
PLATFORM_SUFFIXES = (
    ("-linux", "linux"),
    ("_linux", "linux"),
    ("-macos", "darwin"),
    ("-darwin", "darwin"),
    ("-windows", "windows"),
    ("-posix", "posix"),
    ("-unix", "posix"),
)


class DirectiveKind(Enum):
    INTERVAL = "interval"
    PLATFORM = "platform"
    VERSION = "version"
    SHARD = "shard"
    TAGS = "tags"
    VALUE = "value"
    UNKNOWN = "unknown"


_KINDS_BY_NAME = {k.value: k for k in DirectiveKind if k is not DirectiveKind.UNKNOWN}


@dataclass(frozen=True)
class Directive:
    """A `key: value` annotation from a comment-only line."""
    kind: DirectiveKind
    key: str
    value: str


def split_comment(line: str) -> Optional[tuple[str, str]]:
    """Split a line at its first `--` that is not inside a string literal.

    A `--` is inside a literal when the single quotes on both sides of it
    are odd in number, or the double quotes on both sides are.

    Returns:
        (before, after) around the comment marker, or None when the line
        has no comment.
    """
    start = 0
    while True:
        idx = line.find(COMMENT_MARKER, start)
        if idx < 0:
            return None
        before = line[:idx]
        after = line[idx + len(COMMENT_MARKER):]
        quoted = (
            (before.count("'") % 2 == 1 and after.count("'") % 2 == 1)
            or (before.count('"') % 2 == 1 and after.count('"') % 2 == 1)
        )
        if not quoted:
            return before, after
        start = idx + len(COMMENT_MARKER)


def classify(content: str) -> Optional[Directive]:
    """Classify comment content as a directive.

    Returns None when the content has no `key: value` shape.
    """
    key, sep, value = content.partition(":")
    if not sep:
        return None
    key = key.strip()
    kind = _KINDS_BY_NAME.get(key, DirectiveKind.UNKNOWN)
    return Directive(kind=kind, key=key, value=value.strip())


def infer_platform(name: str) -> Optional[str]:
    """Infer a platform from the query name's suffix."""
    lowered = name.lower()
    for suffix, platform in PLATFORM_SUFFIXES:
        if lowered.endswith(suffix):
            return platform
    return None


def _parse_interval(value: str) -> str:
    try:
        return str(int(value))
    except ValueError:
        pass
    try:
        return str(int(parse_duration(value)))
    except ValueError:
        raise ParseError(f"interval: {value!r} is not an integer or duration")


def _parse_shard(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ParseError(f"shard: {value!r} is not an integer")


def _terminate(text: str) -> str:
    if not text.endswith(";"):
        text += ";"
    return text


def parse(name: str, source: Union[bytes, str], source_path: Optional[str] = None) -> QueryRecord:
    """
    Parse query source text into a QueryRecord.

    Args:
        name: Query name (file stem or pack key)
        source: Raw source text or bytes (UTF-8)
        source_path: Optional provenance, kept on the record

    Returns:
        QueryRecord with both query text forms and all directives

    Raises:
        ParseError: If a directive value cannot be converted
    """
    try:
        text = source.decode("utf-8") if isinstance(source, bytes) else source
    except UnicodeDecodeError as e:
        raise ParseError(f"{name}: {e}") from e

    code: list[str] = []
    description: Optional[str] = None
    extended: list[str] = []
    fields: dict = {}
    tags: set[str] = set()

    for raw in text.split("\n"):
        line = raw.rstrip("\r")
        split = split_comment(line)
        if split is None:
            code.append(line)
            continue

        before, after = split
        if before.strip():
            # Inline comment: keep the statement, drop the comment
            code.append(before.rstrip())
            continue

        content = after.strip()
        first = description is None
        if first:
            description = content

        directive = classify(content)
        if directive is None or directive.kind is DirectiveKind.UNKNOWN:
            if directive is not None:
                logger.debug("%s: ignoring unknown directive %r", name, directive.key)
            if not first and content:
                extended.append(content)
            continue

        try:
            if directive.kind is DirectiveKind.INTERVAL:
                fields["interval"] = _parse_interval(directive.value)
            elif directive.kind is DirectiveKind.SHARD:
                fields["shard"] = _parse_shard(directive.value)
            elif directive.kind is DirectiveKind.TAGS:
                tags.update(directive.value.split())
            else:
                fields[directive.kind.value] = directive.value or None
        except ParseError as e:
            raise ParseError(f"{name}: {e}") from e

    query_text = _terminate("\n".join(code).strip())
    query_text_compact = _terminate(" ".join(s.strip() for s in code if s.strip()))

    if fields.get("platform") is None:
        fields["platform"] = infer_platform(name)

    return QueryRecord(
        name=name,
        query_text=query_text,
        query_text_compact=query_text_compact,
        description=description or "",
        extended_description="\n".join(extended),
        tags=frozenset(tags),
        source_path=source_path,
        **fields,
    )


def _agrees(record: QueryRecord, directive: Directive) -> bool:
    """True if reading `directive` back would leave `record` unchanged."""
    try:
        if directive.kind is DirectiveKind.INTERVAL:
            return _parse_interval(directive.value) == record.interval
        if directive.kind is DirectiveKind.SHARD:
            return _parse_shard(directive.value) == record.shard
    except ParseError:
        return False
    if directive.kind is DirectiveKind.TAGS:
        return set(directive.value.split()) <= record.tags
    return (directive.value or None) == getattr(record, directive.kind.value)


def _free_text(record: QueryRecord, text: str, description: bool = False) -> str:
    """Comment text that reads back as free text, never as a directive.

    A line shaped like a directive is quoted unless it is the description
    and agrees with the record.
    """
    directive = classify(text)
    if directive is None or directive.kind is DirectiveKind.UNKNOWN:
        return text
    if description and _agrees(record, directive):
        return text
    return f'"{text}"'


def render(record: QueryRecord) -> str:
    """Render a QueryRecord back into query source text.

    Parsing the rendered text yields an equivalent record. Free text that
    the comment form cannot carry is normalised: a multi-line description
    is folded onto one line, blank extended lines are dropped, and
    directive-shaped lines are quoted.
    """
    lines = []

    description = " ".join(s.strip() for s in record.description.split("\n") if s.strip())
    if description:
        lines.append(f"-- {_free_text(record, description, description=True)}")

    lines.append("--")

    extended = [s.strip() for s in record.extended_description.split("\n") if s.strip()]
    if extended:
        for ed in extended:
            lines.append(f"-- {_free_text(record, ed)}")
        lines.append("-- ")

    if record.interval is not None:
        lines.append(f"-- interval: {record.interval}")

    if record.platform:
        lines.append(f"-- platform: {record.platform}")

    if record.shard is not None:
        lines.append(f"-- shard: {record.shard}")

    if record.tags:
        lines.append(f"-- tags: {' '.join(sorted(record.tags))}")

    if record.value:
        lines.append(f"-- value: {record.value}")

    if record.version:
        lines.append(f"-- version: {record.version}")

    lines.append("")
    lines.append(record.query_text)

    return "\n".join(lines) + "\n"
