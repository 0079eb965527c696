from dataclasses import dataclass
from typing import Iterator, Protocol, Sequence


@dataclass(frozen=True, slots=True)
class LogFile:
    """
    LogFile describes one candidate log file at the time
    it was listed. mtime_ns and size are None when the file
    could not be stat'ed.
    """

    name: "str"
    path: "str"
    mtime_ns: "int | None"
    size: "int | None"

    @property
    def signature(self) -> "str":
        if self.mtime_ns is None or self.size is None:
            return f"{self.name}:missing"
        return f"{self.name}:{self.mtime_ns / 1_000_000}:{self.size}"


class LogSource(Protocol):
    """
    LogSource stands as the common protocol for anything
    that hands usage log lines to the collector.

    list_files() raises FileNotFoundError (or another OSError)
    when the source location itself is unreachable.
    """

    @property
    def location(self) -> "str": ...

    async def list_files(self) -> "Sequence[LogFile]": ...

    def iter_lines(self, log_file: "LogFile") -> "Iterator[str]": ...
