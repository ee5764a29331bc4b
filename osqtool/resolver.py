"""
Schedule constraint resolver - filter records and settle their intervals.

resolve() is a pure function of records and Policy:

1. Drop records excluded by name, by tag, or by the platform allow-list.
2. Records without an interval start at the default interval; every
   matching tag rule, in table order, updates the running value.
3. Every surviving interval is clamped to [min_interval, max_interval].

Tag rule modifiers, tried in order:
    "300"   absolute interval in seconds
    "6h"    absolute interval as a duration literal
    "2x"    multiply the running interval
    "x/4"   divide the running interval
"""

import logging
import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Mapping

from osqtool.durations import parse_duration
from osqtool.errors import ScheduleConfigError
from osqtool.schemas import Policy, QueryRecord

logger = logging.getLogger(__name__)


_MULTIPLY_RE = re.compile(r"^(\d+(?:\.\d+)?)x$")
_DIVIDE_RE = re.compile(r"^x/(\d+(?:\.\d+)?)$")


class ModifierOp(Enum):
    SET = "set"
    MULTIPLY = "multiply"
    DIVIDE = "divide"


@dataclass(frozen=True)
class TagRule:
    """A compiled `tag=modifier` rule."""
    tag: str
    op: ModifierOp
    operand: float
    source: str

    def apply(self, interval: int) -> int:
        if self.op is ModifierOp.SET:
            return int(self.operand)
        if self.op is ModifierOp.MULTIPLY:
            return int(interval * self.operand)
        return int(interval / self.operand)


def parse_modifier(text: str) -> tuple[ModifierOp, float]:
    """
    Interpret a tag modifier.

    Raises:
        ScheduleConfigError: If no interpretation applies
    """
    value = text.strip()
    try:
        return ModifierOp.SET, int(value)
    except ValueError:
        pass
    try:
        return ModifierOp.SET, parse_duration(value)
    except ValueError:
        pass
    match = _MULTIPLY_RE.match(value)
    if match:
        return ModifierOp.MULTIPLY, float(match.group(1))
    match = _DIVIDE_RE.match(value)
    if match and float(match.group(1)) > 0:
        return ModifierOp.DIVIDE, float(match.group(1))
    raise ScheduleConfigError(f"unparseable interval modifier: {text!r}")


def parse_tag_rule(rule: str) -> TagRule:
    """Parse one "tag=modifier" rule."""
    tag, sep, modifier = rule.partition("=")
    tag = tag.strip()
    if not sep or not tag:
        raise ScheduleConfigError(f"tag interval rule must be tag=modifier: {rule!r}")
    try:
        op, operand = parse_modifier(modifier)
    except ScheduleConfigError as e:
        raise ScheduleConfigError(f"{rule!r}: {e}") from e
    return TagRule(tag=tag, op=op, operand=operand, source=rule)


def compile_tag_rules(rules) -> list[TagRule]:
    """Compile the tag-interval table, reporting and skipping bad rules."""
    compiled = []
    for rule in rules:
        try:
            compiled.append(parse_tag_rule(rule))
        except ScheduleConfigError as e:
            logger.error("skipping tag interval rule: %s", e)
    return compiled


def excluded_reason(record: QueryRecord, policy: Policy):
    """Why a record is removed from the active set, or None to keep it."""
    if record.name in policy.exclude:
        return "excluded by name"
    tags = sorted(record.tags & policy.exclude_tags)
    if tags:
        return f"excluded by tag {tags[0]!r}"
    if policy.platforms and record.platform and record.platform not in policy.platforms:
        return f"platform {record.platform!r} not in {sorted(policy.platforms)}"
    return None


def resolve_interval(record: QueryRecord, policy: Policy, rules: list[TagRule]) -> int:
    """Interval for a record declaring none: default, then tag rules."""
    interval = policy.default_interval
    for rule in rules:
        if rule.tag not in record.tags:
            continue
        interval = rule.apply(interval)
        logger.debug("%s: %s -> %ds", record.name, rule.source, interval)
    return interval


def clamp(interval: int, policy: Policy) -> int:
    if interval > policy.max_interval:
        interval = policy.max_interval
    if interval < policy.min_interval:
        interval = policy.min_interval
    return interval


def resolve(records: Mapping[str, QueryRecord], policy: Policy) -> dict[str, QueryRecord]:
    """
    Filter records and resolve every surviving interval.

    Args:
        records: Mapping of name -> record (left untouched)
        policy: Resolution policy

    Returns:
        New mapping of name -> record with intervals set and clamped
    """
    logger.info("applying policy: %s", policy)
    rules = compile_tag_rules(policy.tag_intervals)

    resolved: dict[str, QueryRecord] = {}
    for name in sorted(records):
        record = records[name]

        reason = excluded_reason(record, policy)
        if reason:
            logger.info("Skipping %s - %s", name, reason)
            continue

        if record.interval is None:
            interval = resolve_interval(record, policy, rules)
            logger.info("setting %r interval to %ds", name, interval)
        else:
            try:
                interval = int(record.interval)
            except ValueError:
                logger.warning("%r: interval %r is not an integer", name, record.interval)
                resolved[name] = record
                continue

        clamped = clamp(interval, policy)
        if clamped != interval:
            logger.info("overriding %r interval %ds to %ds", name, interval, clamped)

        resolved[name] = replace(record, interval=str(clamped))

    return resolved
