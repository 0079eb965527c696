import asyncio
import os
from pathlib import Path
from typing import Iterator

import structlog

from usageboard.source.base import LogFile

logger = structlog.get_logger()

LOG_SUFFIX = ".log"


class DirectoryLogSource:
    """
    DirectoryLogSource implements the LogSource protocol over a
    directory of append-only *.log files. Files are listed in
    name order and read lazily, one line at a time, so a large
    log never has to fit in memory.
    """

    def __init__(self, directory: "str") -> "None":
        self._directory = Path(directory).expanduser()

    @property
    def location(self) -> "str":
        return str(self._directory)

    async def list_files(self) -> "list[LogFile]":
        """
        lists and stats every *.log file off the event loop.
        """
        return await asyncio.to_thread(self._list_files)

    def _list_files(self) -> "list[LogFile]":
        # scandir raises FileNotFoundError/NotADirectoryError for a
        # missing directory, which the collector reports as a warning
        with os.scandir(self._directory) as entries:
            names = sorted(e.name for e in entries if e.name.endswith(LOG_SUFFIX))

        files: "list[LogFile]" = []
        for name in names:
            path = self._directory / name
            try:
                stat = path.stat()
            except OSError as err:
                # the file vanished or is unreadable between listing and stat
                logger.debug("log_file_stat_failed", path=str(path), error=str(err))
                files.append(LogFile(name, str(path), None, None))
                continue

            files.append(LogFile(name, str(path), stat.st_mtime_ns, stat.st_size))

        return files

    def iter_lines(self, log_file: "LogFile") -> "Iterator[str]":
        """
        yields lines without their line terminator. Undecodable
        bytes are replaced rather than failing the whole file.
        """
        with open(log_file.path, encoding="utf-8", errors="replace") as fh:
            for line in fh:
                yield line.rstrip("\r\n")
