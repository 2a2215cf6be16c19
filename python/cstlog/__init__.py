"""cstlog - CST device telemetry capture and log query tooling."""

from .codec import TelemetryEvent, encode_line, decode_line, MAX_TIMESTAMP
from .schema import MessageType, FieldDef, ValueKind, Layout, Combiner, classify
from .decoder import FieldRecord, FieldDecodeError, decode_fields, decode_field
from .storage import LogWriter, LogReader, LogScan, scan, list_log_files, open_session_log
from .session import CaptureSession, SessionState, SessionStats

__all__ = [
    "TelemetryEvent", "encode_line", "decode_line", "MAX_TIMESTAMP",
    "MessageType", "FieldDef", "ValueKind", "Layout", "Combiner", "classify",
    "FieldRecord", "FieldDecodeError", "decode_fields", "decode_field",
    "LogWriter", "LogReader", "LogScan", "scan", "list_log_files", "open_session_log",
    "CaptureSession", "SessionState", "SessionStats",
]
