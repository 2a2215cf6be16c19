"""Append-only session log files.

File format:
  <timestamp millis>,<raw JSON payload>\\n
  <timestamp millis>,<raw JSON payload>\\n
  ...

No header or footer.  Lines are written in receipt order, so timestamps are
non-decreasing within a file; the reader stops a time-window scan at the
first line past the window.

File names follow ``<address>_<yyyyMMdd_HHmmss>.log`` and an existing file is
never reopened for writing.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Iterator, TextIO

from .codec import MAX_TIMESTAMP, TelemetryEvent, decode_line, encode_line

logger = logging.getLogger(__name__)

LOG_FILENAME_EXTENSION = "log"
FILENAME_DATE_FORMAT = "%Y%m%d_%H%M%S"


def session_filename(address: str, started: datetime | None = None) -> str:
    """Log file name for a capture of *address* started at *started*."""
    if started is None:
        started = datetime.now()
    suffix = started.strftime(FILENAME_DATE_FORMAT)
    return f"{address}_{suffix}.{LOG_FILENAME_EXTENSION}"


def list_log_files(directory: str | Path) -> list[Path]:
    """Return the log files in *directory*, sorted by name."""
    directory = Path(directory)
    if not directory.is_dir():
        raise FileNotFoundError(f"log directory not found: {directory}")
    suffix = f".{LOG_FILENAME_EXTENSION}"
    return sorted(
        p for p in directory.iterdir()
        if p.is_file() and p.name.lower().endswith(suffix)
    )


# ---------------------------------------------------------------------------
# Writer
# ---------------------------------------------------------------------------

class LogWriter:
    """Writes events to a new log file, one line each.

    ``append`` and ``close`` may be called from different threads; they are
    serialised so ``close`` waits for an in-flight ``append`` and nothing is
    written afterwards.
    """

    def __init__(self, directory: str | Path, filename: str):
        directory = Path(directory)
        if not directory.is_dir():
            raise NotADirectoryError(f"log directory not usable: {directory}")

        self.path = directory / filename
        # "x" refuses to overwrite an existing session log.
        self._f: TextIO | None = open(self.path, "x", encoding="utf-8")
        self._lock = threading.Lock()
        self.written = 0
        self.failed = 0

    @property
    def closed(self) -> bool:
        return self._f is None

    def append(self, event: TelemetryEvent) -> bool:
        """Write one event.  Returns False if the write failed or the
        writer is closed."""
        line = encode_line(event)
        with self._lock:
            if self._f is None:
                logger.warning("Dropping event after log was closed: %s", line)
                return False
            try:
                self._f.write(line)
                self._f.write("\n")
            except OSError as exc:
                self.failed += 1
                logger.error("Failed to write line to log file: %s", exc)
                return False
            self.written += 1
            return True

    def close(self) -> None:
        """Flush and close the file.  Safe to call more than once."""
        with self._lock:
            if self._f is None:
                return
            f, self._f = self._f, None
            try:
                f.close()
            except OSError as exc:
                logger.error("Failed to finish writing to log file: %s", exc)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


def open_session_log(directory: str | Path, address: str,
                     started: datetime | None = None) -> LogWriter:
    """Create the log file for a new capture session."""
    return LogWriter(directory, session_filename(address, started))


# ---------------------------------------------------------------------------
# Reader
# ---------------------------------------------------------------------------

class LogReader:
    """Reads events from a log file in file order."""

    def __init__(self, path: str | Path):
        self._path = Path(path)
        self._f: TextIO | None = None
        self.malformed = 0

    @property
    def path(self) -> Path:
        return self._path

    @property
    def closed(self) -> bool:
        return self._f is None

    def open(self) -> None:
        """Open the file.  Raises FileNotFoundError if it does not exist."""
        if self._f is None:
            self._f = open(self._path, "r", encoding="utf-8")

    def events(self) -> Iterator[TelemetryEvent]:
        """Iterate over every well-formed line.  Malformed lines are
        logged and skipped."""
        if self._f is None:
            self.open()

        assert self._f is not None
        for line in self._f:
            event = decode_line(line)
            if event is None:
                self.malformed += 1
                continue
            yield event

    def matching(self, msg_type: str, start: int = 0,
                 end: int = MAX_TIMESTAMP) -> Iterator[TelemetryEvent]:
        """Iterate over events of *msg_type* with start <= timestamp <= end.

        Stops at the first event after *end*; later lines are not read.
        """
        logger.debug("Collecting matching logs for type=%s start=%d end=%d.",
                     msg_type, start, end)
        for event in self.events():
            logger.debug("# %s", event)
            if event.is_before(start):
                continue
            if event.is_after(end):
                break
            if not event.has_type(msg_type):
                continue
            yield event

    def close(self) -> None:
        if self._f:
            self._f.close()
            self._f = None

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, *exc):
        self.close()


class LogScan:
    """Single-pass iterator over the matching events of one log file.

    Owns its reader: the file is closed when the iterator is exhausted,
    on ``close()``, or on leaving a ``with`` block, whether or not
    iteration ever started.
    """

    def __init__(self, reader: LogReader, msg_type: str, start: int, end: int):
        self._reader = reader
        self._events = reader.matching(msg_type, start, end)

    @property
    def closed(self) -> bool:
        return self._reader.closed

    def __iter__(self) -> LogScan:
        return self

    def __next__(self) -> TelemetryEvent:
        try:
            return next(self._events)
        except StopIteration:
            self.close()
            raise

    def close(self) -> None:
        self._events.close()
        self._reader.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def __del__(self):
        self.close()


def scan(path: str | Path, msg_type: str, start: int = 0,
         end: int = MAX_TIMESTAMP) -> LogScan:
    """Scan *path* for events of *msg_type* within [start, end].

    The file is opened immediately, so a missing file raises
    FileNotFoundError here rather than on first iteration.
    """
    reader = LogReader(path)
    reader.open()
    return LogScan(reader, msg_type, start, end)
