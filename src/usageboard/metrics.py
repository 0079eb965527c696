from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram

from usageboard.models import UsageSnapshot

_TOKEN_KINDS = ("input", "output", "cache")


def create_usage_metrics(
    registry: "CollectorRegistry" = REGISTRY,
) -> "dict[str, Gauge]":
    """
    creates the gauge families mirrored from each snapshot.
     - cost_usd: accumulated cost labeled by provider.
     - user_cost_usd: accumulated cost labeled by user.
     - tokens: accumulated tokens labeled by kind
     (input/output/cache).
     - requests: number of usage events seen.
     - realtime_*: activity inside the trailing window.
    """
    return {
        "cost_usd": Gauge(
            "usageboard_cost_usd",
            "Accumulated LLM cost in USD by provider",
            ["provider"],
            registry=registry,
        ),
        "user_cost_usd": Gauge(
            "usageboard_user_cost_usd",
            "Accumulated LLM cost in USD by user",
            ["user"],
            registry=registry,
        ),
        "tokens": Gauge(
            "usageboard_tokens",
            "Accumulated tokens by kind",
            ["kind"],
            registry=registry,
        ),
        "requests": Gauge(
            "usageboard_requests",
            "Number of usage events found in the logs",
            registry=registry,
        ),
        "realtime_requests": Gauge(
            "usageboard_realtime_requests",
            "Usage events inside the realtime window",
            registry=registry,
        ),
        "realtime_cost_usd": Gauge(
            "usageboard_realtime_cost_usd",
            "Cost in USD inside the realtime window",
            registry=registry,
        ),
    }


class MetricsUpdater:
    """
    mirrors UsageSnapshot totals and pipeline health into
    Prometheus metrics.
    """

    def __init__(self, registry: "CollectorRegistry" = REGISTRY) -> "None":
        self._registry: "CollectorRegistry" = registry
        self._usage: "dict[str, Gauge]" = create_usage_metrics(registry)
        self._parse_duration: "Histogram" = Histogram(
            "usageboard_parse_duration_seconds",
            "Duration of full log aggregation passes",
            registry=registry,
        )
        self._read_errors: "Counter" = Counter(
            "usageboard_read_errors_total",
            "Total number of log files that failed to read",
            ["source"],
            registry=registry,
        )
        self._cache_hits: "Counter" = Counter(
            "usageboard_cache_hits_total",
            "Total number of snapshot requests served from cache",
            registry=registry,
        )
        self._refresh_errors: "Counter" = Counter(
            "usageboard_refresh_errors_total",
            "Total number of failed background refreshes",
            registry=registry,
        )
        self._last_refresh_success: "Gauge" = Gauge(
            "usageboard_last_refresh_success_timestamp_seconds",
            "Unix timestamp of the last successful snapshot refresh",
            registry=registry,
        )

    @property
    def registry(self) -> "CollectorRegistry":
        return self._registry

    def update_snapshot(self, snapshot: "UsageSnapshot") -> "None":
        """
        sets every usage gauge from the snapshot's values. Gauges
        are set rather than incremented since each snapshot already
        holds full totals.
        """
        for provider, cost in snapshot.providers.items():
            self._usage["cost_usd"].labels(provider=provider).set(cost)
        for user, cost in snapshot.users.items():
            self._usage["user_cost_usd"].labels(user=user).set(cost)

        tokens = snapshot.summary.tokens
        for kind in _TOKEN_KINDS:
            self._usage["tokens"].labels(kind=kind).set(getattr(tokens, kind))

        self._usage["requests"].set(snapshot.summary.total_requests)
        self._usage["realtime_requests"].set(snapshot.realtime.requests)
        self._usage["realtime_cost_usd"].set(snapshot.realtime.cost)

    def observe_parse_duration(self, duration_seconds: "float") -> "None":
        self._parse_duration.observe(duration_seconds)

    def inc_read_error(self, source: "str") -> "None":
        self._read_errors.labels(source=source).inc()

    def inc_cache_hit(self) -> "None":
        self._cache_hits.inc()

    def inc_refresh_error(self) -> "None":
        self._refresh_errors.inc()

    def set_last_refresh_success(self, timestamp: "float") -> "None":
        self._last_refresh_success.set(timestamp)
