import random
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from usageboard.aggregator import (
    NO_EVENTS_WARNING,
    UsageAggregator,
    day_key,
    month_key,
    week_key,
)
from usageboard.models import TokenCounts, UsageEvent
from usageboard.pricing import PricingTable, ProviderRates

PROVIDERS = ("Anthropic", "OpenAI", "Google")
USERS = ("Don", "Amanda")


def _event(
    provider: "str" = "Anthropic",
    user: "str" = "Unknown",
    cost: "float" = 0.0,
    timestamp: "datetime | None" = None,
    tokens: "TokenCounts | None" = None,
) -> "UsageEvent":
    return UsageEvent(
        timestamp=timestamp,
        provider=provider,
        user=user,
        tokens=tokens or TokenCounts(),
        cost=cost,
    )


def _aggregator(
    now: "datetime",
    pricing: "PricingTable | None" = None,
    **kwargs: "object",
) -> "UsageAggregator":
    return UsageAggregator(
        pricing or PricingTable.default(),
        now=now,
        provider_labels=PROVIDERS,
        user_labels=USERS,
        **kwargs,
    )


class TestCalendarKeys:
    def test_iso_week_at_year_start(self) -> "None":
        assert week_key(datetime(2024, 1, 1, tzinfo=timezone.utc)) == "2024-W01"

    def test_iso_week_at_year_end(self) -> "None":
        moment = datetime(2023, 12, 31, 23, 59, 59, tzinfo=timezone.utc)
        assert week_key(moment) == "2023-W52"

    def test_iso_week_belongs_to_next_year(self) -> "None":
        # Monday 2024-12-30 is in the first week of 2025
        assert week_key(datetime(2024, 12, 30, tzinfo=timezone.utc)) == "2025-W01"

    def test_day_and_month(self) -> "None":
        moment = datetime(2024, 2, 9, 5, 0, tzinfo=timezone.utc)
        assert day_key(moment) == "2024-02-09"
        assert month_key(moment) == "2024-02"


class TestTotals:
    def test_requests_tokens_and_cost(self, fixed_now: "datetime") -> "None":
        agg = _aggregator(fixed_now)
        agg.add(_event(cost=1.0, tokens=TokenCounts(input=10, output=5)))
        agg.add(_event(provider="OpenAI", cost=2.0, tokens=TokenCounts(cache=4)))
        snapshot = agg.build("/logs", ["a.log"], [])

        assert snapshot.summary.total_requests == 2
        assert snapshot.summary.total_cost == 3.0
        assert snapshot.summary.tokens == TokenCounts(input=10, output=5, cache=4)
        assert snapshot.token_breakdown["Total Tokens"] == 19

    def test_categories_are_seeded(self, fixed_now: "datetime") -> "None":
        snapshot = _aggregator(fixed_now).build("/logs", [], [])
        assert dict(snapshot.providers) == {
            "Anthropic": 0.0,
            "OpenAI": 0.0,
            "Google": 0.0,
            "Unknown": 0.0,
        }
        assert dict(snapshot.users) == {"Don": 0.0, "Amanda": 0.0, "Unknown": 0.0}

    def test_new_categories_are_added(self, fixed_now: "datetime") -> "None":
        agg = _aggregator(fixed_now)
        agg.add(_event(provider="Mistral", user="Ops", cost=1.5))
        snapshot = agg.build("/logs", [], [])
        assert snapshot.providers["Mistral"] == 1.5
        assert snapshot.users["Ops"] == 1.5

    def test_category_costs_sum_to_total(self, fixed_now: "datetime") -> "None":
        agg = _aggregator(fixed_now)
        agg.add(_event(provider="Anthropic", user="Don", cost=1.25))
        agg.add(_event(provider="Google", user="Amanda", cost=0.75))
        snapshot = agg.build("/logs", [], [])
        assert sum(snapshot.providers.values()) == snapshot.summary.total_cost
        assert sum(snapshot.users.values()) == snapshot.summary.total_cost


class TestCostEstimation:
    def test_estimates_when_cost_missing(self, fixed_now: "datetime") -> "None":
        pricing = PricingTable({"Anthropic": ProviderRates(input_per_million=2.0)})
        agg = _aggregator(fixed_now, pricing)
        agg.add(_event(tokens=TokenCounts(input=500_000)))
        assert agg.build("/logs", [], []).summary.total_cost == pytest.approx(1.0)

    def test_observed_cost_is_never_overridden(self, fixed_now: "datetime") -> "None":
        pricing = PricingTable({"Anthropic": ProviderRates(input_per_million=100.0)})
        agg = _aggregator(fixed_now, pricing)
        event = _event(cost=3.0, tokens=TokenCounts(input=1_000_000))
        assert agg.effective_cost(event) == 3.0
        agg.add(event)
        assert agg.build("/logs", [], []).summary.total_cost == 3.0


class TestTimeSeries:
    def test_buckets_and_ordering(self, fixed_now: "datetime") -> "None":
        agg = _aggregator(fixed_now)
        agg.add(_event(cost=1.0, timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc)))
        agg.add(
            _event(
                cost=2.0,
                timestamp=datetime(2023, 12, 31, 23, 59, 59, tzinfo=timezone.utc),
            )
        )
        agg.add(_event(cost=4.0, timestamp=datetime(2024, 1, 2, tzinfo=timezone.utc)))
        agg.add(_event(cost=8.0))
        snapshot = agg.build("/logs", [], [])

        assert [(p.label, p.value) for p in snapshot.daily] == [
            ("2023-12-31", 2.0),
            ("2024-01-01", 1.0),
            ("2024-01-02", 4.0),
        ]
        assert [(p.label, p.value) for p in snapshot.weekly] == [
            ("2023-W52", 2.0),
            ("2024-W01", 5.0),
        ]
        assert [(p.label, p.value) for p in snapshot.monthly] == [
            ("2023-12", 2.0),
            ("2024-01", 5.0),
        ]
        # events without a timestamp still count towards totals
        assert snapshot.summary.total_cost == 15.0

    def test_report_timezone_shifts_buckets(self, fixed_now: "datetime") -> "None":
        agg = _aggregator(fixed_now, report_tz=ZoneInfo("America/New_York"))
        agg.add(_event(cost=1.0, timestamp=datetime(2024, 1, 1, 2, tzinfo=timezone.utc)))
        snapshot = agg.build("/logs", [], [])
        assert [p.label for p in snapshot.daily] == ["2023-12-31"]
        assert [p.label for p in snapshot.weekly] == ["2023-W52"]


class TestRealtimeWindow:
    def test_counts_recent_events_only(self, fixed_now: "datetime") -> "None":
        agg = _aggregator(fixed_now)
        agg.add(
            _event(
                cost=1.0,
                tokens=TokenCounts(input=3),
                timestamp=fixed_now - timedelta(minutes=2),
            )
        )
        agg.add(_event(cost=1.0, timestamp=fixed_now - timedelta(minutes=5)))
        agg.add(_event(cost=1.0, timestamp=fixed_now - timedelta(minutes=6)))
        agg.add(_event(cost=1.0))
        realtime = agg.build("/logs", [], []).realtime

        assert realtime.window_minutes == 5
        assert realtime.requests == 2
        assert realtime.cost == 2.0
        assert realtime.tokens == TokenCounts(input=3)


class TestOrderIndependence:
    def test_shuffled_events_give_same_totals(self, fixed_now: "datetime") -> "None":
        base = datetime(2024, 3, 1, tzinfo=timezone.utc)
        events = [
            _event(
                provider=PROVIDERS[i % 3],
                user=USERS[i % 2],
                cost=float(i % 4),
                tokens=TokenCounts(input=i, output=2 * i),
                timestamp=base + timedelta(days=i),
            )
            for i in range(20)
        ]
        shuffled = list(events)
        random.Random(7).shuffle(shuffled)

        first = _aggregator(fixed_now)
        second = _aggregator(fixed_now)
        for event in events:
            first.add(event)
        for event in shuffled:
            second.add(event)
        a = first.build("/logs", [], [])
        b = second.build("/logs", [], [])

        assert a.summary == b.summary
        assert dict(a.providers) == dict(b.providers)
        assert dict(a.users) == dict(b.users)
        assert a.daily == b.daily
        assert a.weekly == b.weekly
        assert a.monthly == b.monthly


class TestWarnings:
    def test_no_events_warning(self, fixed_now: "datetime") -> "None":
        snapshot = _aggregator(fixed_now).build("/logs", [], ["earlier problem"])
        assert snapshot.warnings == ("earlier problem", NO_EVENTS_WARNING)

    def test_no_warning_with_events(self, fixed_now: "datetime") -> "None":
        agg = _aggregator(fixed_now)
        agg.add(_event(cost=1.0))
        assert agg.build("/logs", [], []).warnings == ()


class TestOutOfRange:
    def test_event_overflowing_totals_is_rejected(
        self, fixed_now: "datetime"
    ) -> "None":
        agg = _aggregator(fixed_now)
        assert agg.add(_event(cost=1.5e308)) is True
        assert agg.add(_event(cost=1.5e308)) is False
        assert agg.add(_event(cost=1.0, tokens=TokenCounts(input=5))) is True

        snapshot = agg.build("/logs", [], [])
        assert snapshot.summary.total_requests == 2
        assert snapshot.summary.total_cost == 1.5e308 + 1.0
        assert snapshot.summary.tokens.input == 5

    def test_timestamp_unrepresentable_in_report_zone(
        self, fixed_now: "datetime"
    ) -> "None":
        agg = _aggregator(fixed_now, report_tz=ZoneInfo("America/New_York"))
        edge = datetime(1, 1, 1, tzinfo=timezone.utc)

        assert agg.add(_event(cost=2.0, timestamp=edge)) is True
        agg.add(_event(cost=1.0, timestamp=fixed_now))

        snapshot = agg.build("/logs", [], [])
        assert snapshot.summary.total_cost == 3.0
        assert [p.value for p in snapshot.daily] == [1.0]
