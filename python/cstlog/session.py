"""Capture session: one device connection feeding one session log file.

Lifecycle:
  CONNECTING -> STREAMING -> CLOSING -> CLOSED
  CONNECTING -> CLOSED                      (connect failed)

Shutdown can be requested by a signal handler, by the optional duration
timer, or by the reader thread when the connection drops.  Every trigger
ends up setting the same one-shot event (a signal handler only records its
reason, which ``run()`` forwards on its next wait slice); the thread blocked
in ``run()`` wakes up and performs the teardown, once: stop the reader (its
in-flight message is still written), close the connection, then close the
log.
"""

from __future__ import annotations

import enum
import logging
import signal
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable

from .codec import TelemetryEvent
from .storage import LogWriter, open_session_log
from .transport import CONNECT_TIMEOUT, Transport, WebSocketTransport

logger = logging.getLogger(__name__)

# How long teardown waits for the reader thread to finish its current message.
READER_JOIN_TIMEOUT = 5.0
_WAIT_SLICE = 0.5


class SessionState(enum.Enum):
    CONNECTING = "connecting"
    STREAMING = "streaming"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class SessionStats:
    received: int = 0
    written: int = 0
    failed: int = 0
    reason: str | None = None


def current_millis() -> int:
    return time.time_ns() // 1_000_000


class CaptureSession:
    """Captures messages from ``ws://<address>`` into a new session log.

    The log file is created on construction, so an existing file with the
    same name raises FileExistsError before any connection is attempted.
    """

    def __init__(self, address: str, log_directory: str | Path,
                 duration: float | None = None, *,
                 connect_timeout: float = CONNECT_TIMEOUT,
                 connect: Callable[[], Transport] | None = None,
                 clock: Callable[[], int] = current_millis,
                 started: datetime | None = None):
        self.address = address
        self.url = f"ws://{address}"
        self.duration = duration
        self.state = SessionState.CONNECTING
        self.stats = SessionStats()

        if connect is None:
            def connect() -> Transport:
                return WebSocketTransport(self.url, timeout=connect_timeout)
        self._connect = connect
        self._clock = clock

        self._writer: LogWriter = open_session_log(log_directory, address, started)
        self._transport: Transport | None = None
        self._reader: threading.Thread | None = None
        self._timer: threading.Timer | None = None

        self._shutdown = threading.Event()
        self._lock = threading.Lock()
        self._closing = False
        # Set by signal handlers, polled by run().
        self._signalled: str | None = None

    @property
    def log_path(self) -> Path:
        return self._writer.path

    def run(self) -> SessionStats:
        """Connect and stream until a shutdown is requested.

        Raises ConnectionError if the initial connect fails; the (empty) log
        is closed first.
        """
        try:
            self._transport = self._connect()
        except BaseException as exc:
            # Any failure, not only ConnectionError, leaves the log closed.
            self.stats.reason = f"connect failed: {exc}"
            self.close()
            raise

        logger.info("Connected to WebSocket (%s) successfully.", self.url)
        self.state = SessionState.STREAMING

        message = f"init:[{self._clock()}]"
        logger.debug("Sending %s to device.", message)
        try:
            self._transport.write(message)
        except ConnectionError as exc:
            self.request_shutdown(f"connection lost: {exc}")

        self._reader = threading.Thread(
            target=self._read_loop, name="cstlog-reader", daemon=True)
        self._reader.start()

        if self.duration is not None and self.duration > 0:
            self._timer = threading.Timer(
                self.duration, self.request_shutdown,
                args=("capture duration elapsed",))
            self._timer.daemon = True
            self._timer.start()

        while not self._shutdown.wait(_WAIT_SLICE):
            if self._signalled is not None:
                self.request_shutdown(self._signalled)

        self.close()
        return self.stats

    def request_shutdown(self, reason: str) -> None:
        """Ask the session to stop.  Safe from other threads; only the
        first reason is kept."""
        if self.stats.reason is None:
            self.stats.reason = reason
        self._shutdown.set()

    def signal_shutdown(self, reason: str) -> None:
        """Signal-handler form of ``request_shutdown``.

        Takes no locks (the handler may interrupt the main thread inside
        ``Event.wait``); ``run()`` acts on it within one wait slice.
        """
        if self._signalled is None:
            self._signalled = reason

    def on_message(self, text: str) -> None:
        """Record one received message."""
        logger.debug("%s", text)
        self.stats.received += 1
        self._writer.append(TelemetryEvent(self._clock(), text))

    def close(self) -> None:
        """Tear the session down.  Only the first call does anything."""
        with self._lock:
            if self._closing:
                return
            self._closing = True

        self.state = SessionState.CLOSING
        self._shutdown.set()
        logger.info("Terminating (%s).", self.stats.reason or "closed")

        if self._timer is not None:
            self._timer.cancel()

        if self._reader is not None and self._reader is not threading.current_thread():
            self._reader.join(READER_JOIN_TIMEOUT)
            if self._reader.is_alive():
                logger.warning("Reader thread did not stop within %.1fs",
                               READER_JOIN_TIMEOUT)

        if self._transport is not None:
            self._transport.close()

        self._writer.close()
        self.stats.written = self._writer.written
        self.stats.failed = self._writer.failed
        self.state = SessionState.CLOSED
        logger.info("Closed %s: %d messages received, %d lines written, "
                    "%d failed writes.", self.log_path, self.stats.received,
                    self.stats.written, self.stats.failed)

    def _read_loop(self) -> None:
        assert self._transport is not None
        while not self._shutdown.is_set():
            try:
                text = self._transport.read()
            except ConnectionError as exc:
                logger.error("Failed to receive message from WebSocket: %s", exc)
                self.request_shutdown(f"connection lost: {exc}")
                return
            if text is None:
                continue
            self.on_message(text)


def install_signal_handlers(session: CaptureSession) -> None:
    """Route SIGINT and SIGTERM to ``session.signal_shutdown``.

    Must be called from the main thread.
    """
    def _handler(signum, frame):
        session.signal_shutdown(f"received {signal.Signals(signum).name}")

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)
