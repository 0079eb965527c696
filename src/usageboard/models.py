from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType

UNKNOWN = "Unknown"

# trailing window used by the "live" indicator
REALTIME_WINDOW_MINUTES = 5


@dataclass(frozen=True, slots=True)
class TokenCounts:
    """
    TokenCounts holds the three token kinds tracked
    for every usage event.
    """

    input: "float" = 0
    output: "float" = 0
    cache: "float" = 0

    @property
    def total(self) -> "float":
        return self.input + self.output + self.cache

    def __add__(self, other: "TokenCounts") -> "TokenCounts":
        return TokenCounts(
            input=self.input + other.input,
            output=self.output + other.output,
            cache=self.cache + other.cache,
        )

    def to_dict(self) -> "dict[str, float]":
        return {"input": self.input, "output": self.output, "cache": self.cache}


@dataclass(frozen=True, slots=True)
class UsageEvent:
    """
    UsageEvent represents a single qualifying log line.
    It is consumed by the aggregator right after it is
    extracted and never stored.
    """

    timestamp: "datetime | None"
    provider: "str"
    user: "str"
    tokens: "TokenCounts"
    # cost observed in the line itself, 0 when the line carried none
    cost: "float"
    # originating file name, diagnostic only
    source: "str" = ""


@dataclass(frozen=True, slots=True)
class SeriesPoint:
    label: "str"
    value: "float"

    def to_dict(self) -> "dict[str, object]":
        return {"label": self.label, "value": self.value}


@dataclass(frozen=True, slots=True)
class RealtimeWindow:
    requests: "int" = 0
    cost: "float" = 0.0
    tokens: "TokenCounts" = field(default_factory=TokenCounts)
    window_minutes: "int" = REALTIME_WINDOW_MINUTES

    def to_dict(self) -> "dict[str, object]":
        return {
            "windowMinutes": self.window_minutes,
            "requests": self.requests,
            "cost": self.cost,
            "tokens": self.tokens.to_dict(),
        }


@dataclass(frozen=True, slots=True)
class UsageSummary:
    total_cost: "float" = 0.0
    total_requests: "int" = 0
    tokens: "TokenCounts" = field(default_factory=TokenCounts)

    def to_dict(self) -> "dict[str, object]":
        return {
            "totalCost": self.total_cost,
            "totalRequests": self.total_requests,
            "tokens": self.tokens.to_dict(),
        }


def _seeded(labels: "tuple[str, ...]") -> "dict[str, float]":
    seeded = {label: 0.0 for label in labels}
    seeded.setdefault(UNKNOWN, 0.0)
    return seeded


@dataclass(frozen=True, slots=True)
class UsageSnapshot:
    """
    UsageSnapshot is the aggregate handed to the reporting
    side. It is built once per aggregation pass and never
    mutated afterwards, so the same instance can be shared
    between requests.
    """

    log_dir: "str"
    last_updated: "datetime"
    summary: "UsageSummary" = field(default_factory=UsageSummary)
    providers: "Mapping[str, float]" = field(default_factory=dict)
    users: "Mapping[str, float]" = field(default_factory=dict)
    realtime: "RealtimeWindow" = field(default_factory=RealtimeWindow)
    daily: "tuple[SeriesPoint, ...]" = ()
    weekly: "tuple[SeriesPoint, ...]" = ()
    monthly: "tuple[SeriesPoint, ...]" = ()
    warnings: "tuple[str, ...]" = ()
    source_files: "tuple[str, ...]" = ()

    def __post_init__(self) -> "None":
        # freeze the category maps; frozen dataclasses need object.__setattr__
        object.__setattr__(self, "providers", MappingProxyType(dict(self.providers)))
        object.__setattr__(self, "users", MappingProxyType(dict(self.users)))

    @classmethod
    def empty(
        cls,
        log_dir: "str",
        last_updated: "datetime",
        warnings: "list[str]",
        provider_labels: "tuple[str, ...]" = (),
        user_labels: "tuple[str, ...]" = (),
    ) -> "UsageSnapshot":
        """
        builds a zeroed snapshot, used when the log directory
        cannot be reached at all.
        """
        return cls(
            log_dir=log_dir,
            last_updated=last_updated,
            providers=_seeded(provider_labels),
            users=_seeded(user_labels),
            warnings=tuple(warnings),
        )

    @property
    def token_breakdown(self) -> "dict[str, float]":
        tokens = self.summary.tokens
        return {
            "Input Tokens": tokens.input,
            "Output Tokens": tokens.output,
            "Cache Tokens": tokens.cache,
            "Total Tokens": tokens.total,
        }

    def to_dict(self) -> "dict[str, object]":
        """
        renders the snapshot as the JSON document consumed
        by the dashboard UI.
        """
        return {
            "logDir": self.log_dir,
            "sourceFiles": list(self.source_files),
            "lastUpdated": self.last_updated.isoformat(),
            "warnings": list(self.warnings),
            "summary": self.summary.to_dict(),
            "providers": dict(self.providers),
            "users": dict(self.users),
            "tokenBreakdown": self.token_breakdown,
            "realtime": self.realtime.to_dict(),
            "timeseries": {
                "daily": [p.to_dict() for p in self.daily],
                "weekly": [p.to_dict() for p in self.weekly],
                "monthly": [p.to_dict() for p in self.monthly],
            },
        }


@dataclass(frozen=True, slots=True)
class CacheEntry:
    signature: "str"
    snapshot: "UsageSnapshot"
    # unix timestamp of when the entry was stored
    updated_at: "float"
    # build sequence number, used to refuse stale swaps
    sequence: "int" = 0
