"""Transport adapters for device telemetry streams."""

from __future__ import annotations

import logging
from typing import Protocol

import websocket

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 5.0
POLL_INTERVAL = 1.0


class Transport(Protocol):
    """Abstract message transport.

    ``read`` returns one text message, or None if nothing arrived within the
    poll interval.  It raises ConnectionError once the remote end is gone.
    """

    def read(self) -> str | None: ...
    def write(self, text: str) -> None: ...
    def close(self) -> None: ...


class WebSocketTransport:
    """Text WebSocket client transport (requires websocket-client)."""

    def __init__(self, url: str, timeout: float = CONNECT_TIMEOUT,
                 poll_interval: float = POLL_INTERVAL):
        self.url = url
        try:
            self._ws = websocket.create_connection(url, timeout=timeout)
        # ValueError: unparsable address, e.g. a non-numeric port.
        except (websocket.WebSocketException, OSError, ValueError) as exc:
            raise ConnectionError(f"failed to connect to {url}: {exc}") from exc
        self._ws.settimeout(poll_interval)

    @classmethod
    def for_address(cls, address: str, timeout: float = CONNECT_TIMEOUT,
                    poll_interval: float = POLL_INTERVAL) -> WebSocketTransport:
        """Connect to ``ws://<address>``."""
        return cls(f"ws://{address}", timeout, poll_interval)

    def read(self) -> str | None:
        try:
            opcode, data = self._ws.recv_data()
        except (websocket.WebSocketTimeoutException, TimeoutError):
            return None
        except (websocket.WebSocketException, OSError) as exc:
            raise ConnectionError(f"connection lost: {exc}") from exc

        if opcode == websocket.ABNF.OPCODE_CLOSE:
            raise ConnectionError("connection closed by remote end")
        if isinstance(data, bytes):
            return data.decode("utf-8", errors="replace")
        return data

    def write(self, text: str) -> None:
        try:
            self._ws.send(text)
        except (websocket.WebSocketException, OSError) as exc:
            raise ConnectionError(f"failed to send: {exc}") from exc

    def close(self) -> None:
        try:
            self._ws.close(timeout=1.0)
        except (websocket.WebSocketException, OSError) as exc:
            logger.debug("Ignoring error while closing %s: %s", self.url, exc)
