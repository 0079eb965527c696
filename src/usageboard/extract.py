"""
heuristic field extraction for usage log records.

Records have no fixed schema, so tokens and costs are found by
sniffing key names across the whole JSON tree, and by regex
scans over the free text of the line. The two passes are
independent and their results are summed by the classifier.
"""

import math
import re
from collections.abc import Iterator
from datetime import datetime, timezone
from typing import TypeAlias

from usageboard.categories import CategoryRules
from usageboard.models import TokenCounts

# JSON values as produced by json.loads
JSONValue: "TypeAlias" = (
    "None | bool | int | float | str | list[JSONValue] | dict[str, JSONValue]"
)

_TEXT_TOKEN_PATTERNS: "tuple[tuple[str, re.Pattern[str], int], ...]" = (
    ("input", re.compile(r"(prompt|input)[_ ]?tokens\s*[:=]\s*(\d+)", re.I), 2),
    ("output", re.compile(r"(completion|output)[_ ]?tokens\s*[:=]\s*(\d+)", re.I), 2),
    ("cache", re.compile(r"cache[_ ]?tokens\s*[:=]\s*(\d+)", re.I), 1),
)
_COST_RE = re.compile(r"cost\s*[:=]\s*\$?([0-9]+(?:\.[0-9]+)?)", re.I)
_DOLLAR_RE = re.compile(r"\$([0-9]+(?:\.[0-9]+)?)")
_NON_NUMERIC_RE = re.compile(r"[^0-9.]")
_LEADING_TS_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?Z")

_COST_KEYWORDS = ("cost", "price", "usd", "spend")
_PROVIDER_FIELDS = ("provider", "vendor", "apiProvider", "modelProvider")
_MODEL_FIELDS = ("model", "modelName", "engine")
_USER_FIELDS = ("user", "username", "owner", "profile", "author", "actor")

# numeric epoch values above this are taken as milliseconds
_EPOCH_MILLIS_THRESHOLD = 1e11


def is_number(value: "object") -> "bool":
    """
    true for finite JSON numbers. bool is excluded even though
    it subclasses int.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        # ints beyond float range
        return False


def iter_fields(value: "JSONValue") -> "Iterator[tuple[str, JSONValue]]":
    """
    visits every key/value pair of every object in the tree,
    depth first, descending through arrays and nested objects.
    """
    if isinstance(value, list):
        for item in value:
            yield from iter_fields(item)
    elif isinstance(value, dict):
        for key, item in value.items():
            yield key, item
            if isinstance(item, (dict, list)):
                yield from iter_fields(item)


def tokens_from_object(record: "JSONValue") -> "TokenCounts":
    counts = {"input": 0, "output": 0, "cache": 0}
    for key, value in iter_fields(record):
        if not is_number(value) or value < 0:
            continue

        name = key.lower()
        if "token" not in name:
            continue

        if "prompt" in name or "input" in name:
            counts["input"] += value
        elif "completion" in name or "output" in name:
            counts["output"] += value
        elif "cache" in name:
            counts["cache"] += value

    return TokenCounts(**counts)


def _parse_amount(raw: "str") -> "float | None":
    """
    float() of a long digit run gives inf rather than an error,
    so out-of-range amounts are rejected here as well.
    """
    try:
        amount = float(raw)
    except ValueError:
        return None
    return amount if math.isfinite(amount) else None


def _parse_cost_string(raw: "str") -> "float | None":
    stripped = _NON_NUMERIC_RE.sub("", raw)
    if not stripped:
        return 0.0
    return _parse_amount(stripped)


def cost_from_object(record: "JSONValue") -> "float":
    cost = 0.0
    for key, value in iter_fields(record):
        name = key.lower()
        if not any(keyword in name for keyword in _COST_KEYWORDS):
            continue

        if is_number(value):
            if value > 0:
                cost += value
        elif isinstance(value, str):
            parsed = _parse_cost_string(value)
            if parsed is not None:
                cost += parsed

    return cost


def tokens_from_text(text: "str") -> "TokenCounts":
    counts = {"input": 0, "output": 0, "cache": 0}
    for kind, pattern, group in _TEXT_TOKEN_PATTERNS:
        for match in pattern.finditer(text):
            try:
                counts[kind] += int(match.group(group))
            except ValueError:
                # digit runs past the int conversion limit
                continue
    return TokenCounts(**counts)


def cost_from_text(text: "str") -> "float":
    """
    sums an explicit "cost: X" match and, independently, the first
    bare "$X" amount. A line like "cost: $5" matches both and
    yields 10.0; existing dashboards were built on that total.
    """
    cost = 0.0
    for pattern in (_COST_RE, _DOLLAR_RE):
        match = pattern.search(text)
        if match:
            cost += _parse_amount(match.group(1)) or 0.0

    return cost


def scan_text(record: "dict[str, JSONValue]") -> "str":
    """
    joins the top-level string values of a record, which is the
    text the regex pass and category inference look at.
    """
    return " ".join(v for v in record.values() if isinstance(v, str))


def _first_present(
    record: "dict[str, JSONValue] | None",
    keys: "tuple[str, ...]",
) -> "str":
    if not record:
        return ""
    for key in keys:
        value = record.get(key)
        if value:
            return value if isinstance(value, str) else str(value)
    return ""


def infer_provider(
    record: "dict[str, JSONValue] | None",
    text: "str",
    rules: "CategoryRules",
) -> "str":
    return rules.provider_for(
        _first_present(record, _PROVIDER_FIELDS),
        _first_present(record, _MODEL_FIELDS),
        text,
    )


def infer_user(
    record: "dict[str, JSONValue] | None",
    text: "str",
    rules: "CategoryRules",
) -> "str":
    return rules.user_for(_first_present(record, _USER_FIELDS), text)


def parse_timestamp(value: "JSONValue") -> "datetime | None":
    """
    converts a timestamp candidate to an aware UTC datetime. Naive
    values are taken as UTC. Returns None when unparseable or when
    the instant falls outside the datetime range in UTC.
    """
    if is_number(value):
        seconds = value / 1000 if value > _EPOCH_MILLIS_THRESHOLD else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    if not isinstance(value, str) or not value:
        return None

    try:
        parsed = datetime.fromisoformat(value.strip())
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    except (OverflowError, ValueError):
        return None


def extract_timestamp(
    line: "str",
    record: "dict[str, JSONValue] | None",
) -> "datetime | None":
    candidate: "JSONValue" = None
    if record:
        candidate = record.get("time")
        if not candidate:
            meta = record.get("_meta")
            if isinstance(meta, dict):
                candidate = meta.get("date")

    if not candidate:
        match = _LEADING_TS_RE.match(line)
        candidate = match.group(0) if match else None

    return parse_timestamp(candidate)
