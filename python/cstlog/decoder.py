"""Decode telemetry payloads into ordered, display-labelled field records.

A field record is a list of ``(display name, value)`` string pairs.  Order
matters (the first record of a file defines the table header) and names may
repeat, so records are never collapsed into a dict.

Unit arrays are labelled by position:

  one row          PA1 .. PA4 (or PS1, PS2)
  row 0 of many    combiner, per-field policy (see ``schema.Combiner``)
  row 1            MSTR PA1 ..
  row i >= 2       SLV_<i-1> PA1 ..
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import numpy as np

from .codec import TelemetryEvent
from .schema import FIELDS, Combiner, FieldDef, Layout, ValueKind, classify

logger = logging.getLogger(__name__)

FieldRecord = list[tuple[str, str]]

TIMESTAMP_COLUMN = "Timestamp (UTC)"
COMBINER_PREFIX = "CMBNR"
MASTER_PREFIX = "MSTR"
SLAVE_PREFIX = "SLV"


class FieldDecodeError(ValueError):
    """One field of a recognised message could not be decoded."""


def format_timestamp(timestamp: int) -> str:
    """Format epoch millis as an ISO-8601 instant truncated to seconds.

    Instants outside datetime's range (years 1..9999) are shown as raw
    millis.
    """
    try:
        dt = datetime.fromtimestamp(timestamp // 1000, tz=timezone.utc)
    except (ValueError, OverflowError, OSError):
        return f"{timestamp}ms"
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


def role_prefix(index: int, count: int) -> str:
    """Display prefix for row *index* of a unit array with *count* rows.

    Row 0 has no prefix here; multi-row arrays handle it through the
    field's combiner policy.
    """
    if index == 0:
        return ""
    if index == 1:
        return f"{MASTER_PREFIX} "
    return f"{SLAVE_PREFIX}_{index - 1} "


def decode_fields(event: TelemetryEvent) -> FieldRecord:
    """Decode *event* into a field record.

    Always starts with the timestamp.  Unknown message types produce only
    the timestamp.  A field that fails to decode is logged and left out.
    """
    record: FieldRecord = [(TIMESTAMP_COLUMN, format_timestamp(event.timestamp))]

    payload = event.payload
    msg_type = classify(payload)
    if msg_type is None:
        logger.warning("Unexpected message type; don't know how to format "
                       "this line: %s", event.raw_payload)
        return record

    assert payload is not None
    body = payload[msg_type.value]
    if not isinstance(body, dict):
        logger.error("%s message body is not an object: %s",
                     msg_type.value, event.raw_payload)
        return record

    for fd in FIELDS[msg_type]:
        try:
            record.extend(decode_field(fd, body))
        except FieldDecodeError as exc:
            logger.error("Failed to decode %s field %s: %s",
                         msg_type.value, fd.key, exc)

    return record


def decode_field(fd: FieldDef, body: dict[str, Any]) -> FieldRecord:
    """Decode one field of a message body.  Raises FieldDecodeError."""
    try:
        value = body[fd.key]
    except KeyError:
        raise FieldDecodeError(f"missing key {fd.key!r}") from None

    if fd.layout == Layout.SCALAR:
        return [(fd.label, _convert(value, fd.kind))]
    if fd.layout == Layout.HEAD:
        return _decode_head(fd, _array(fd, value))
    if fd.layout == Layout.ROWS:
        return _decode_rows(fd, _array(fd, value))
    if fd.layout == Layout.UNITS:
        return _decode_units(fd, _array(fd, value))
    if fd.layout == Layout.UNIT_SCALARS:
        return _decode_unit_scalars(fd, _array(fd, value))
    raise FieldDecodeError(f"unsupported layout {fd.layout!r}")


# ---------------------------------------------------------------------------
# Layouts
# ---------------------------------------------------------------------------

def _decode_head(fd: FieldDef, values: list[Any]) -> FieldRecord:
    # Columns come from the leading elements, repeated for every element.
    pairs: FieldRecord = []
    for _ in values:
        for j, label in enumerate(fd.labels):
            pairs.append((label, _convert(_item(fd, values, j), fd.kind)))
    return pairs


def _decode_rows(fd: FieldDef, rows: list[Any]) -> FieldRecord:
    pairs: FieldRecord = []
    for row in rows:
        row = _array(fd, row)
        for j, label in enumerate(fd.labels):
            pairs.append((label, _convert(_item(fd, row, j), fd.kind)))
    return pairs


def _decode_units(fd: FieldDef, rows: list[Any]) -> FieldRecord:
    pairs: FieldRecord = []
    count = len(rows)
    for i, row in enumerate(rows):
        row = _array(fd, row)
        if i == 0 and count > 1:
            pairs.extend(_combiner_pairs(fd, row))
            continue
        prefix = role_prefix(i, count)
        for j in range(fd.width):
            name = f"{prefix}{fd.unit}{j + 1} {fd.label}"
            pairs.append((name, _convert(_item(fd, row, j), fd.kind)))
    return pairs


def _combiner_pairs(fd: FieldDef, row: list[Any]) -> FieldRecord:
    pairs: FieldRecord = []
    if fd.combiner == Combiner.BY_ROW:
        # Indexed by the outer row (always 0), once per unit column.
        for _ in range(fd.width):
            name = f"{COMBINER_PREFIX} {fd.label}"
            pairs.append((name, _convert(_item(fd, row, 0), fd.kind)))
    elif fd.combiner == Combiner.PAIRS:
        for _ in range(fd.width):
            for k in range(2):
                name = f"{COMBINER_PREFIX} {fd.label} {k + 1}"
                pairs.append((name, _convert(_item(fd, row, k), fd.kind)))
    return pairs


def _decode_unit_scalars(fd: FieldDef, values: list[Any]) -> FieldRecord:
    pairs: FieldRecord = []
    count = len(values)
    for i, value in enumerate(values):
        if i == 0 and count > 1:
            continue
        name = f"{role_prefix(i, count)}{fd.label}"
        pairs.append((name, _convert(value, fd.kind)))
    return pairs


# ---------------------------------------------------------------------------
# Value helpers
# ---------------------------------------------------------------------------

def _array(fd: FieldDef, value: Any) -> list[Any]:
    if not isinstance(value, list):
        raise FieldDecodeError(f"{fd.key} expected an array, got {value!r}")
    return value


def _item(fd: FieldDef, values: list[Any], index: int) -> Any:
    try:
        return values[index]
    except IndexError:
        raise FieldDecodeError(
            f"{fd.key} index {index} out of range (length {len(values)})"
        ) from None


def _convert(value: Any, kind: ValueKind) -> str:
    """Render a JSON value as a display string of the given kind."""
    if kind == ValueKind.STRING:
        if not isinstance(value, str):
            raise FieldDecodeError(f"expected a string, got {value!r}")
        return value

    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise FieldDecodeError(f"expected a number, got {value!r}")

    try:
        if kind == ValueKind.INT:
            if isinstance(value, int):
                return str(value)
            if isinstance(value, str):
                try:
                    return str(int(value))
                except ValueError:
                    value = float(value)
            return str(int(value))
        # Device values are single precision.
        return str(np.float32(float(value)))
    except (ValueError, OverflowError) as exc:
        raise FieldDecodeError(f"cannot convert {value!r}: {exc}") from None
