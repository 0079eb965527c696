import json

from usageboard.categories import CategoryRules
from usageboard.extract import (
    JSONValue,
    cost_from_object,
    cost_from_text,
    extract_timestamp,
    infer_provider,
    infer_user,
    is_number,
    scan_text,
    tokens_from_object,
    tokens_from_text,
)
from usageboard.models import TokenCounts, UsageEvent

# anything shorter cannot carry a usable signal
_MIN_LINE_LENGTH = 4


def _parse_record(line: "str") -> "dict[str, JSONValue] | None":
    if not line.strip().startswith("{"):
        return None
    try:
        record = json.loads(line)
    except ValueError:
        return None
    return record if isinstance(record, dict) else None


def classify_line(
    line: "str",
    rules: "CategoryRules",
    source: "str" = "",
    text_fallback: "bool" = False,
) -> "UsageEvent | None":
    """
    turns one raw log line into a UsageEvent, or None when the
    line carries neither tokens nor cost.

    JSON lines are walked structurally and their top-level
    strings are scanned as text; anything else (including broken
    JSON) is scanned as plain text. Both results are summed
    unless text_fallback is set, in which case the text pass only
    fills in a signal the structured pass found nothing for.
    """
    if len(line) < _MIN_LINE_LENGTH:
        return None

    record = _parse_record(line)
    text = scan_text(record) if record is not None else line

    text_tokens = tokens_from_text(text)
    text_cost = cost_from_text(text)
    if record is not None:
        obj_tokens = tokens_from_object(record)
        obj_cost = cost_from_object(record)
    else:
        obj_tokens = TokenCounts()
        obj_cost = 0.0

    if text_fallback:
        tokens = obj_tokens if obj_tokens.total else text_tokens
        cost = obj_cost if obj_cost else text_cost
    else:
        tokens = obj_tokens + text_tokens
        cost = obj_cost + text_cost

    if tokens.total == 0 and cost == 0:
        return None

    # sums of in-range fields can still leave float range
    if not is_number(tokens.total) or not is_number(cost):
        return None

    return UsageEvent(
        timestamp=extract_timestamp(line, record),
        provider=infer_provider(record, text, rules),
        user=infer_user(record, text, rules),
        tokens=tokens,
        cost=cost,
        source=source,
    )
