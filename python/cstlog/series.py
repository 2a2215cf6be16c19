"""Extract one decoded field of a log as numpy arrays.

    ts, values = series("cst-logs/10.0.0.5_20180601_120000.log",
                        "sm", "MSTR PA1 Supply Current")

``ts`` holds epoch millis (int64); ``values`` is float64 with NaN where the
field was missing or not numeric.
"""

from __future__ import annotations

from pathlib import Path

import numpy as np

from .codec import MAX_TIMESTAMP
from .decoder import decode_fields
from .storage import scan


def series(path: str | Path, msg_type: str, field_name: str,
           start: int = 0, end: int = MAX_TIMESTAMP) -> tuple[np.ndarray, np.ndarray]:
    """Return (timestamps, values) for *field_name* of every matching event.

    Uses the first pair with that display name when a record repeats it.
    """
    timestamps: list[int] = []
    values: list[float] = []

    for event in scan(path, msg_type, start, end):
        value = np.nan
        for name, text in decode_fields(event):
            if name == field_name:
                value = _to_float(text)
                break
        timestamps.append(event.timestamp)
        values.append(value)

    return np.asarray(timestamps, dtype=np.int64), np.asarray(values, dtype=np.float64)


def summarize(values: np.ndarray) -> dict[str, float]:
    """min / max / mean over the non-NaN values (NaN if there are none)."""
    finite = values[~np.isnan(values)]
    if finite.size == 0:
        return {"count": 0, "min": np.nan, "max": np.nan, "mean": np.nan}
    return {
        "count": int(finite.size),
        "min": float(finite.min()),
        "max": float(finite.max()),
        "mean": float(finite.mean()),
    }


def _to_float(text: str) -> float:
    try:
        return float(text)
    except ValueError:
        return np.nan
