"""Telemetry message types and the field decoding table.

Each device message is a JSON object with a single type key (``fm``, ``cc``,
``hc``, ``sm``) whose value holds the message fields.  Array-valued keys
carry a ``[]`` suffix on the wire.  This module describes, per type, which
keys are shown, how their values are converted, and how array positions map
to hardware units (see ``cstlog.decoder``).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Any


class MessageType(str, Enum):
    FM = "fm"
    CC = "cc"
    HC = "hc"
    SM = "sm"


# Classification order when more than one type key is present.
TYPE_PRIORITY = (MessageType.FM, MessageType.CC, MessageType.HC, MessageType.SM)


def classify(payload: dict[str, Any] | None) -> MessageType | None:
    """Return the first known type key present in *payload*."""
    if payload is None:
        return None
    for msg_type in TYPE_PRIORITY:
        if msg_type.value in payload:
            return msg_type
    return None


class ValueKind(IntEnum):
    INT = 0
    FLOAT = 1
    STRING = 2


class Layout(IntEnum):
    SCALAR = 0        # plain value
    HEAD = 1          # array; columns read from the array itself, once per element
    ROWS = 2          # array of rows; columns read from each row
    UNITS = 3         # array of rows, one row per unit (combiner/master/slaves)
    UNIT_SCALARS = 4  # array of values, one per unit (master/slaves)


class Combiner(IntEnum):
    """What row 0 of a multi-row unit array stands for."""

    NONE = 0
    BY_ROW = 1   # "CMBNR <label>" once per column, value row0[0]
    PAIRS = 2    # "CMBNR <label> 1/2" per column, values row0[0], row0[1]
    SKIP = 3     # row 0 is not shown


@dataclass
class FieldDef:
    key: str
    layout: Layout
    kind: ValueKind
    labels: tuple[str, ...]
    unit: str = ""
    width: int = 1
    combiner: Combiner = Combiner.NONE

    @property
    def label(self) -> str:
        return self.labels[0]


def _scalar(key: str, label: str, kind: ValueKind = ValueKind.INT) -> FieldDef:
    return FieldDef(key, Layout.SCALAR, kind, (label,))


def _head(key: str, *labels: str, kind: ValueKind = ValueKind.INT) -> FieldDef:
    return FieldDef(key, Layout.HEAD, kind, labels)


def _pa(key: str, label: str, combiner: Combiner,
        kind: ValueKind = ValueKind.INT) -> FieldDef:
    return FieldDef(key, Layout.UNITS, kind, (label,), "PA", 4, combiner)


def _ps(key: str, label: str, kind: ValueKind = ValueKind.INT) -> FieldDef:
    return FieldDef(key, Layout.UNITS, kind, (label,), "PS", 2, Combiner.SKIP)


# Display labels
PA_ALARM = "Alarm"
PA_FIRMWARE_VERSION = "Firmware V"
PA_SERIAL_NUMBER = "Serial Num"
PA_SUPPLY_CURRENT = "Supply Current"
PA_HEATSINK_TEMPERATURE = "Heatsink Temp"
PA_FAN_SPEED = "Fan Speed"
PA_RF_LEVEL_OUT = "RF Lvl Out"
PA_RF_LEVEL_COMB = "RF Lvl Comb."
PA_MAIN_ON_TIME = "Main On-Time"
PA_BIAS_ON_TIME = "BIAS On-Time"
PA_FAN_ON_TIME = "Fan On-Time"

PS_ALARM = "Alarm"
PS_COMM_ERRORS = "Comm Errors"
PS_SERIAL_NUMBER = "Serial Num"
PS_SUPPLY_CURRENT = "Supply Current"
PS_DC_VOLTAGE = "DC Voltage"
PS_HEATSINK_TEMPERATURE = "Heatsink Temp"

DFS_BIAS = "DFS BIAS"
PA_PS_ENABLE = "PA & PS Enable"


FIELDS: dict[MessageType, list[FieldDef]] = {
    MessageType.FM: [
        _scalar("rs", "DFS State"),
        _head("ec[]", "DFS Error"),
        FieldDef("ll[]", Layout.ROWS, ValueKind.FLOAT,
                 ("DFS Line Lvl 1", "DFS Line Lvl 2")),
        _pa("paa[]", PA_ALARM, Combiner.BY_ROW),
        _ps("saa[]", PS_ALARM),
    ],
    MessageType.CC: [
        _scalar("cf", "DFS Centre Freq"),
        _scalar("sl", "DFS Src LSB"),
        _scalar("su", "DFS Src USB"),
        _scalar("cl", "DFS Carrier Lvl"),
        _scalar("la", "DFS Lvl Adj", ValueKind.FLOAT),
        _head("f[]", "DFS Tone 1 Freq", "DFS Tone 2 Freq", kind=ValueKind.FLOAT),
        _head("t[]", "DFS Tone 1 Time", "DFS Tone 2 Time", kind=ValueKind.FLOAT),
        _head("km[]", "DFS Key Mask"),
        _scalar("pl", "DFS Power Lvl"),
        _scalar("vd", "DFS VDAC"),
        _scalar("zr", "DFS Amp z-Ratio"),
        _scalar("lm", "DFS Lvl Max", ValueKind.FLOAT),
    ],
    MessageType.HC: [
        _head("u1fv[]", "DFS U1 Firmware V", kind=ValueKind.STRING),
        _head("u1sn[]", "DFS Serial Num"),
        _head("u2p[]", "DFS U2 Comm Errors"),
        _head("u2fv[]", "DFS U2 Firmware V", kind=ValueKind.STRING),
        _pa("u2pafv[]", PA_FIRMWARE_VERSION, Combiner.BY_ROW, ValueKind.STRING),
        _pa("u2pasn[]", PA_SERIAL_NUMBER, Combiner.BY_ROW),
        _ps("u2psp[]", PS_COMM_ERRORS),
        _ps("u2pssn[]", PS_SERIAL_NUMBER, ValueKind.STRING),
    ],
    MessageType.SM: [
        _ps("is[]", PS_SUPPLY_CURRENT),
        _ps("vs[]", PS_DC_VOLTAGE),
        _ps("ts[]", PS_HEATSINK_TEMPERATURE),
        _pa("ia[]", PA_SUPPLY_CURRENT, Combiner.BY_ROW),
        _pa("ta[]", PA_HEATSINK_TEMPERATURE, Combiner.PAIRS),
        _pa("fa[]", PA_FAN_SPEED, Combiner.SKIP),
        _pa("pa[]", PA_RF_LEVEL_OUT, Combiner.SKIP),
        _pa("vc[]", PA_RF_LEVEL_COMB, Combiner.SKIP),
        _pa("om[]", PA_MAIN_ON_TIME, Combiner.BY_ROW),
        _pa("ob[]", PA_BIAS_ON_TIME, Combiner.BY_ROW),
        _pa("of[]", PA_FAN_ON_TIME, Combiner.BY_ROW),
        FieldDef("bi[]", Layout.UNIT_SCALARS, ValueKind.INT, (DFS_BIAS,),
                 combiner=Combiner.SKIP),
        FieldDef("me[]", Layout.UNIT_SCALARS, ValueKind.INT, (PA_PS_ENABLE,),
                 combiner=Combiner.SKIP),
    ],
}
