import asyncio
import json
import time
from datetime import datetime, timezone, tzinfo
from typing import Callable

import structlog

from usageboard.aggregator import NO_LOG_FILES_WARNING, UsageAggregator
from usageboard.cache import SnapshotCache
from usageboard.categories import CategoryRules
from usageboard.classifier import classify_line
from usageboard.metrics import MetricsUpdater
from usageboard.models import UsageEvent, UsageSnapshot
from usageboard.pricing import load_pricing
from usageboard.source.base import LogFile, LogSource

logger = structlog.get_logger()


def _utcnow() -> "datetime":
    return datetime.now(timezone.utc)


def compute_signature(files: "list[LogFile]") -> "str":
    """
    fingerprints the file set from names, mtimes and sizes.
    Any change to any file yields a different signature.
    """
    return json.dumps([f.signature for f in files])


class UsageCollector:
    """
    UsageCollector is responsible for turning a log source into
    UsageSnapshots. get_snapshot() is the single entry point for
    readers: it stats the log files, serves the cached snapshot
    when nothing changed, and otherwise re-parses every file.
    run() keeps refreshing in the background so metrics stay
    current without a reader polling.
    """

    def __init__(
        self,
        source: "LogSource",
        metrics_updater: "MetricsUpdater",
        rules: "CategoryRules | None" = None,
        pricing: "str | None" = None,
        cache: "SnapshotCache | None" = None,
        refresh_interval_seconds: "int" = 60,
        report_tz: "tzinfo" = timezone.utc,
        text_fallback: "bool" = False,
        clock: "Callable[[], datetime]" = _utcnow,
    ) -> "None":
        self._source = source
        self._metrics = metrics_updater
        self._rules = rules or CategoryRules()
        self._pricing = pricing
        self._cache = cache or SnapshotCache()
        self._interval = refresh_interval_seconds
        self._report_tz = report_tz
        self._text_fallback = text_fallback
        self._clock = clock
        self._stop_event: "asyncio.Event" = asyncio.Event()

    def stop(self) -> "None":
        """
        signals the refresh loop to stop after the current cycle.
        """
        self._stop_event.set()

    async def run(self) -> "None":
        """
        runs the background refresh loop until stop() is called.
        A failing refresh is logged and retried on the next cycle.
        """
        while not self._stop_event.is_set():
            try:
                await self.get_snapshot()
            except Exception:
                logger.exception("usage_refresh_error", log_dir=self._source.location)
                self._metrics.inc_refresh_error()

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
            except TimeoutError:
                pass

    async def get_snapshot(self) -> "UsageSnapshot":
        """
        returns the current UsageSnapshot. Repeated calls over an
        unchanged file set return the same instance.
        """
        try:
            files = list(await self._source.list_files())
        except OSError as err:
            logger.warning(
                "log_directory_missing",
                log_dir=self._source.location,
                error=str(err),
            )
            snapshot = UsageSnapshot.empty(
                log_dir=self._source.location,
                last_updated=self._clock(),
                warnings=[f"Log directory not found: {self._source.location}"],
                provider_labels=self._rules.provider_labels,
                user_labels=self._rules.user_labels,
            )
            self._metrics.update_snapshot(snapshot)
            return snapshot

        signature = compute_signature(files)
        cached = self._cache.lookup(signature)
        if cached is not None:
            self._metrics.inc_cache_hit()
            logger.debug("usage_cache_hit", files=len(files))
            return cached

        return await self._cache.get_or_build(signature, lambda: self._build(files))

    async def _build(self, files: "list[LogFile]") -> "UsageSnapshot":
        start = time.monotonic()
        logger.info(
            "usage_parse_start",
            log_dir=self._source.location,
            files=len(files),
        )

        pricing = await load_pricing(self._pricing)
        aggregator = UsageAggregator(
            pricing,
            now=self._clock(),
            provider_labels=self._rules.provider_labels,
            user_labels=self._rules.user_labels,
            report_tz=self._report_tz,
        )

        warnings: "list[str]" = []
        if not files:
            warnings.append(NO_LOG_FILES_WARNING)

        # one file at a time; each is streamed line by line off the loop
        for log_file in files:
            try:
                events = await asyncio.to_thread(self._read_events, log_file)
            except OSError as err:
                logger.warning(
                    "log_file_read_failed",
                    path=log_file.path,
                    error=str(err),
                )
                self._metrics.inc_read_error(log_file.name)
                warnings.append(f"Failed to read {log_file.path}: {err}")
                continue

            count = sum(aggregator.add(event) for event in events)
            logger.debug("log_file_parsed", path=log_file.path, events=count)

        snapshot = aggregator.build(
            log_dir=self._source.location,
            source_files=[f.name for f in files],
            warnings=warnings,
        )

        duration = time.monotonic() - start
        self._metrics.observe_parse_duration(duration)
        self._metrics.update_snapshot(snapshot)
        self._metrics.set_last_refresh_success(time.time())
        logger.info(
            "usage_parse_end",
            events=snapshot.summary.total_requests,
            total_cost=snapshot.summary.total_cost,
            warnings=len(snapshot.warnings),
            duration=round(duration, 3),
        )
        return snapshot

    def _read_events(self, log_file: "LogFile") -> "list[UsageEvent]":
        """
        classifies every line of one file. Nothing is folded until the
        whole file has been read, so a file that fails partway through
        contributes no events.
        """
        events: "list[UsageEvent]" = []
        for line in self._source.iter_lines(log_file):
            event = classify_line(
                line,
                self._rules,
                source=log_file.name,
                text_fallback=self._text_fallback,
            )
            if event is not None:
                events.append(event)

        return events
