#!/usr/bin/env python3
"""Write a synthetic session log for trying out the query commands.

Creates ./cst-logs/demo_<date>.log with a minute of fm/cc/hc/sm traffic
from a master and one slave.

Usage:
    python examples/synthetic_log.py
    cst-logs info cst-logs/demo_*.log
    cst-logs query sm
"""

import json
import math
import os
import random

from cstlog.codec import TelemetryEvent
from cstlog.session import current_millis
from cstlog.storage import open_session_log

LOG_DIR = "cst-logs"
UNITS = 3  # combiner, master, one slave


def fm(t):
    return {"fm": {
        "rs": 3,
        "ec[]": [0],
        "ll[]": [[round(1.5 + 0.1 * math.sin(t), 2), 2.5]],
        "paa[]": [[0] * 4 for _ in range(UNITS)],
        "saa[]": [[0, 0] for _ in range(UNITS)],
    }}


def cc():
    return {"cc": {
        "cf": 1000, "sl": 1, "su": 0, "cl": 50, "la": 0.5,
        "f[]": [440.0, 880.0], "t[]": [1.5, 2.5], "km[]": [3],
        "pl": 7, "vd": 12, "zr": 4, "lm": 2.0,
    }}


def hc():
    return {"hc": {
        "u1fv[]": ["1.4.2"], "u1sn[]": [1001], "u2p[]": [0], "u2fv[]": ["2.0"],
        "u2pafv[]": [["3.1"] * 4 for _ in range(UNITS)],
        "u2pasn[]": [[2000 + 10 * u + i for i in range(4)] for u in range(UNITS)],
        "u2psp[]": [[0, 0] for _ in range(UNITS)],
        "u2pssn[]": [[f"S{u}{i}" for i in range(2)] for u in range(UNITS)],
    }}


def sm(t):
    def rows(base, spread):
        return [[base + random.randint(-spread, spread) for _ in range(4)]
                for _ in range(UNITS)]

    return {"sm": {
        "is[]": [[12 + random.randint(-1, 1)] * 2 for _ in range(UNITS)],
        "vs[]": [[48, 48] for _ in range(UNITS)],
        "ts[]": [[35, 36] for _ in range(UNITS)],
        "ia[]": rows(8, 1),
        "ta[]": rows(40 + int(5 * math.sin(t / 10)), 2),
        "fa[]": rows(3000, 100),
        "pa[]": rows(50, 3),
        "vc[]": rows(47, 3),
        "om[]": rows(1200, 0),
        "ob[]": rows(1100, 0),
        "of[]": rows(900, 0),
        "bi[]": [1] * UNITS,
        "me[]": [1] * UNITS,
    }}


os.makedirs(LOG_DIR, exist_ok=True)
start = current_millis() - 60_000

with open_session_log(LOG_DIR, "demo") as w:
    w.append(TelemetryEvent(start, json.dumps(hc())))
    w.append(TelemetryEvent(start, json.dumps(cc())))
    for i in range(60):
        ts = start + i * 1000
        w.append(TelemetryEvent(ts, json.dumps(fm(i))))
        w.append(TelemetryEvent(ts + 500, json.dumps(sm(i))))

print(f"Wrote {w.written} events to {w.path}")
