"""Log line codec for captured telemetry events.

Line format:
  <timestamp millis>,<raw JSON payload>

The payload is kept as the raw text received from the device and is only
parsed when a reader asks for it.  Payloads may contain commas; only the
first comma separates the timestamp.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from functools import cached_property
from typing import Any

logger = logging.getLogger(__name__)

# Upper bound used when a query has no end time.
MAX_TIMESTAMP = 2**63 - 1
MIN_TIMESTAMP = -2**63

_TIMESTAMP_RE = re.compile(r"-?[0-9]+")


@dataclass(frozen=True)
class TelemetryEvent:
    timestamp: int
    raw_payload: str

    @cached_property
    def payload(self) -> dict[str, Any] | None:
        """Decoded JSON object, or None if the payload is not one.

        Parsed on first access and memoised, including failures.
        """
        try:
            obj = json.loads(self.raw_payload)
        except ValueError as exc:
            logger.error("Failed to parse payload as JSON: %s", exc)
            return None
        if not isinstance(obj, dict):
            logger.error("Payload is not a JSON object: %.80s", self.raw_payload)
            return None
        return obj

    def has_type(self, msg_type: str) -> bool:
        """True if the decoded payload carries the *msg_type* key (e.g. "fm")."""
        payload = self.payload
        return payload is not None and msg_type in payload

    def is_before(self, timestamp: int) -> bool:
        return self.timestamp < timestamp

    def is_after(self, timestamp: int) -> bool:
        return self.timestamp > timestamp


def encode_line(event: TelemetryEvent) -> str:
    """Serialise *event* as one log line (without the terminator)."""
    return f"{event.timestamp},{event.raw_payload}"


def decode_line(line: str) -> TelemetryEvent | None:
    """Parse one log line.  Returns None for malformed lines."""
    line = line.rstrip("\r\n")
    segments = line.split(",", 1)
    if len(segments) != 2:
        logger.error("Malformed log line (no separator): %s", line)
        return None

    # Plain ASCII decimal within int64; int() alone also takes "1_000", "+5".
    if _TIMESTAMP_RE.fullmatch(segments[0]) is None:
        logger.error("Malformed log line (bad timestamp): %s", line)
        return None
    timestamp = int(segments[0])
    if not MIN_TIMESTAMP <= timestamp <= MAX_TIMESTAMP:
        logger.error("Malformed log line (timestamp out of range): %s", line)
        return None

    return TelemetryEvent(timestamp, segments[1])
