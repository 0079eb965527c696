import asyncio
import time
from typing import Awaitable, Callable

import structlog

from usageboard.models import CacheEntry, UsageSnapshot

logger = structlog.get_logger()

SnapshotBuilder = Callable[[], Awaitable[UsageSnapshot]]


class SnapshotCache:
    """
    SnapshotCache: Is a single-slot cache of the last built
    UsageSnapshot, keyed by the signature of the log files it
    was built from.

    Concurrent requests for the same signature share one
    in-flight build instead of parsing the logs redundantly.
    The slot is only replaced once a build has succeeded, and a
    build that started earlier never overwrites a newer entry.
    """

    def __init__(self) -> "None":
        self._entry: "CacheEntry | None" = None
        self._inflight: "dict[str, asyncio.Task[UsageSnapshot]]" = {}
        self._sequence: "int" = 0

    @property
    def entry(self) -> "CacheEntry | None":
        return self._entry

    def lookup(self, signature: "str") -> "UsageSnapshot | None":
        """
        returns the cached snapshot when the signature matches.
        """
        entry = self._entry
        if entry is not None and entry.signature == signature:
            return entry.snapshot
        return None

    def invalidate(self) -> "None":
        self._entry = None

    async def get_or_build(
        self,
        signature: "str",
        build: "SnapshotBuilder",
    ) -> "UsageSnapshot":
        """
        returns the cached snapshot for the signature, or awaits a
        build. Errors from the build propagate to every awaiter and
        leave the previous entry untouched.
        """
        cached = self.lookup(signature)
        if cached is not None:
            return cached

        task = self._inflight.get(signature)
        if task is None:
            self._sequence += 1
            task = asyncio.create_task(self._build(signature, build, self._sequence))
            self._inflight[signature] = task
        else:
            logger.debug("snapshot_build_joined")

        # shield so one cancelled waiter does not cancel the shared build
        return await asyncio.shield(task)

    async def _build(
        self,
        signature: "str",
        build: "SnapshotBuilder",
        sequence: "int",
    ) -> "UsageSnapshot":
        try:
            snapshot = await build()
        finally:
            self._inflight.pop(signature, None)

        self._swap(CacheEntry(signature, snapshot, time.time(), sequence))
        return snapshot

    def _swap(self, entry: "CacheEntry") -> "None":
        current = self._entry
        if current is not None and current.sequence > entry.sequence:
            logger.debug(
                "snapshot_swap_skipped",
                stored_sequence=current.sequence,
                sequence=entry.sequence,
            )
            return
        self._entry = entry
