from collections import defaultdict
from datetime import datetime, timedelta, timezone, tzinfo

import structlog

from usageboard.extract import is_number
from usageboard.models import (
    REALTIME_WINDOW_MINUTES,
    UNKNOWN,
    RealtimeWindow,
    SeriesPoint,
    TokenCounts,
    UsageEvent,
    UsageSnapshot,
    UsageSummary,
)
from usageboard.pricing import PricingTable

logger = structlog.get_logger()

NO_LOG_FILES_WARNING = "No .log files found in log directory."
NO_EVENTS_WARNING = (
    "No usage events detected. Enable usage logging or verify log format."
)


def day_key(moment: "datetime") -> "str":
    return moment.strftime("%Y-%m-%d")


def week_key(moment: "datetime") -> "str":
    """
    ISO-8601 week label, e.g. 2024-W01. Days around new year
    belong to the year owning the week's Thursday.
    """
    year, week, _ = moment.isocalendar()
    return f"{year}-W{week:02d}"


def month_key(moment: "datetime") -> "str":
    return moment.strftime("%Y-%m")


def _series(buckets: "dict[str, float]") -> "tuple[SeriesPoint, ...]":
    # key formats sort chronologically as plain strings
    return tuple(SeriesPoint(label, buckets[label]) for label in sorted(buckets))


class UsageAggregator:
    """
    UsageAggregator folds UsageEvents into running totals,
    per-category cost maps, calendar buckets and the realtime
    window. Every update is a plain sum, so the order events
    are added in does not change the result.

    Cost is the observed cost of the event when positive and an
    estimate from the pricing table otherwise.
    """

    def __init__(
        self,
        pricing: "PricingTable",
        now: "datetime",
        provider_labels: "tuple[str, ...]" = (),
        user_labels: "tuple[str, ...]" = (),
        report_tz: "tzinfo" = timezone.utc,
    ) -> "None":
        self._pricing = pricing
        self._now = now
        self._report_tz = report_tz
        self._window = timedelta(minutes=REALTIME_WINDOW_MINUTES)

        self._total_cost: "float" = 0.0
        self._total_requests: "int" = 0
        self._tokens: "TokenCounts" = TokenCounts()

        self._providers: "dict[str, float]" = {label: 0.0 for label in provider_labels}
        self._providers.setdefault(UNKNOWN, 0.0)
        self._users: "dict[str, float]" = {label: 0.0 for label in user_labels}
        self._users.setdefault(UNKNOWN, 0.0)

        self._daily: "defaultdict[str, float]" = defaultdict(float)
        self._weekly: "defaultdict[str, float]" = defaultdict(float)
        self._monthly: "defaultdict[str, float]" = defaultdict(float)

        self._realtime_requests: "int" = 0
        self._realtime_cost: "float" = 0.0
        self._realtime_tokens: "TokenCounts" = TokenCounts()

    def effective_cost(self, event: "UsageEvent") -> "float":
        """
        returns the observed cost, or the estimate when the line
        carried no cost. An observed cost is never overridden.
        """
        if event.cost > 0:
            return event.cost
        return self._pricing.estimate(event.provider, event.tokens)

    def add(self, event: "UsageEvent") -> "bool":
        """
        folds one event. Returns False, leaving every total untouched,
        when the event would push a total past float range.
        """
        cost = self.effective_cost(event)
        tokens = self._tokens + event.tokens
        if not is_number(self._total_cost + cost) or not is_number(tokens.total):
            logger.debug("usage_event_out_of_range", source=event.source)
            return False

        self._total_cost += cost
        self._total_requests += 1
        self._tokens = tokens
        self._providers[event.provider] = (
            self._providers.get(event.provider, 0.0) + cost
        )
        self._users[event.user] = self._users.get(event.user, 0.0) + cost

        if event.timestamp is None:
            return True

        try:
            local = event.timestamp.astimezone(self._report_tz)
        except OverflowError:
            # instants at the edge of the datetime range have no
            # representation in the report zone; they count in the
            # totals but in no calendar bucket
            return True

        self._daily[day_key(local)] += cost
        self._weekly[week_key(local)] += cost
        self._monthly[month_key(local)] += cost

        if self._now - event.timestamp <= self._window:
            self._realtime_requests += 1
            self._realtime_cost += cost
            self._realtime_tokens += event.tokens

        return True

    def build(
        self,
        log_dir: "str",
        source_files: "list[str]",
        warnings: "list[str]",
    ) -> "UsageSnapshot":
        """
        freezes the current totals into a snapshot. The warning for
        an empty pass is added here so callers only report what went
        wrong while reading.
        """
        warnings = list(warnings)
        if not self._total_requests:
            warnings.append(NO_EVENTS_WARNING)

        return UsageSnapshot(
            log_dir=log_dir,
            last_updated=self._now,
            summary=UsageSummary(
                total_cost=self._total_cost,
                total_requests=self._total_requests,
                tokens=self._tokens,
            ),
            providers=self._providers,
            users=self._users,
            realtime=RealtimeWindow(
                requests=self._realtime_requests,
                cost=self._realtime_cost,
                tokens=self._realtime_tokens,
            ),
            daily=_series(self._daily),
            weekly=_series(self._weekly),
            monthly=_series(self._monthly),
            warnings=tuple(warnings),
            source_files=tuple(source_files),
        )
