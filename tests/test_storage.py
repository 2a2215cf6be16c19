"""Test the log line codec, the session log writer and the log scanner.

Run from the repo root:
    python3 tests/test_storage.py
"""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "python"))

import tempfile
import threading
from datetime import datetime
from pathlib import Path

from cstlog.codec import MAX_TIMESTAMP, TelemetryEvent, decode_line, encode_line
from cstlog.storage import (
    LogReader, LogWriter, list_log_files, open_session_log, scan,
    session_filename,
)


FM = '{"fm":{"rs":3}}'
CC = '{"cc":{"cf":1000}}'


def write_log(path, lines):
    with open(path, "w", encoding="utf-8") as f:
        for line in lines:
            f.write(line + "\n")


# ---------------------------------------------------------------------------
# Codec
# ---------------------------------------------------------------------------

def test_codec_roundtrip():
    """decode_line(encode_line(e)) == e, including payloads with commas."""
    print("test_codec_roundtrip...", end="")

    events = [
        TelemetryEvent(0, "{}"),
        TelemetryEvent(1528000000123, '{"fm":{"rs":3,"ec[]":[0]}}'),
        TelemetryEvent(42, "a,b,,c"),
        TelemetryEvent(7, ""),
    ]
    for e in events:
        line = encode_line(e)
        assert decode_line(line) == e
        assert decode_line(line + "\n") == e

    assert encode_line(TelemetryEvent(1000, '{"a":1}')) == '1000,{"a":1}'

    print(" OK")


def test_decode_line_malformed():
    """Lines without a separator or with a bad timestamp decode to None."""
    print("test_decode_line_malformed...", end="")

    assert decode_line("abc,{}") is None
    assert decode_line("12345") is None
    assert decode_line("") is None
    assert decode_line("1.5,{}") is None

    # Only plain ASCII decimal digits with an optional minus sign
    for bad in ("1_000", " 12 ", "+5", "١٢", "0x10", "-", ""):
        assert decode_line(bad + ",{}") is None, bad

    # int64 range
    assert decode_line(f"{MAX_TIMESTAMP + 1},{{}}") is None
    assert decode_line(f"{-2**63 - 1},{{}}") is None
    assert decode_line(f"{MAX_TIMESTAMP},{{}}").timestamp == MAX_TIMESTAMP
    assert decode_line(f"{-2**63},{{}}").timestamp == -2**63

    event = decode_line("-5,{}")
    assert event is not None and event.timestamp == -5

    print(" OK")


def test_payload_decoded_once():
    """Payload decoding is lazy, memoised and sticky on failure."""
    print("test_payload_decoded_once...", end="")

    good = TelemetryEvent(1, FM)
    assert "payload" not in good.__dict__
    assert good.has_type("fm")
    assert not good.has_type("cc")
    assert good.payload is good.payload

    bad = TelemetryEvent(1, "not json")
    assert bad.payload is None
    assert "payload" in bad.__dict__
    assert not bad.has_type("fm")

    not_object = TelemetryEvent(1, "[1, 2]")
    assert not_object.payload is None

    # Cached state does not affect equality
    assert TelemetryEvent(1, FM) == good

    print(" OK")


# ---------------------------------------------------------------------------
# Writer
# ---------------------------------------------------------------------------

def test_writer_appends_lines():
    print("test_writer_appends_lines...", end="")

    with tempfile.TemporaryDirectory() as tmpdir:
        with LogWriter(tmpdir, "dev.log") as w:
            assert w.append(TelemetryEvent(1000, FM))
            assert w.append(TelemetryEvent(2000, CC))

        text = Path(tmpdir, "dev.log").read_text(encoding="utf-8")
        assert text == f"1000,{FM}\n2000,{CC}\n"
        assert w.written == 2

    print(" OK")


def test_writer_refuses_existing_file():
    """An existing session log is never reopened or truncated."""
    print("test_writer_refuses_existing_file...", end="")

    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir, "dev.log")
        path.write_text("1,{}\n", encoding="utf-8")

        try:
            LogWriter(tmpdir, "dev.log")
        except FileExistsError:
            pass
        else:
            raise AssertionError("expected FileExistsError")

        assert path.read_text(encoding="utf-8") == "1,{}\n"

    print(" OK")


def test_writer_missing_directory():
    print("test_writer_missing_directory...", end="")

    with tempfile.TemporaryDirectory() as tmpdir:
        try:
            LogWriter(os.path.join(tmpdir, "nope"), "dev.log")
        except NotADirectoryError:
            pass
        else:
            raise AssertionError("expected NotADirectoryError")

    print(" OK")


def test_writer_close_idempotent():
    """close() twice is harmless; append after close writes nothing."""
    print("test_writer_close_idempotent...", end="")

    with tempfile.TemporaryDirectory() as tmpdir:
        w = LogWriter(tmpdir, "dev.log")
        w.append(TelemetryEvent(1, FM))
        w.close()
        assert w.closed
        w.close()
        assert not w.append(TelemetryEvent(2, FM))

        lines = Path(tmpdir, "dev.log").read_text(encoding="utf-8").splitlines()
        assert lines == [f"1,{FM}"]

    print(" OK")


def test_writer_close_during_appends():
    """Concurrent close never leaves a partial line behind."""
    print("test_writer_close_during_appends...", end="")

    with tempfile.TemporaryDirectory() as tmpdir:
        w = LogWriter(tmpdir, "dev.log")
        started = threading.Event()

        def produce(base):
            for i in range(500):
                w.append(TelemetryEvent(base + i, FM))
                if i == 10:
                    started.set()

        threads = [threading.Thread(target=produce, args=(n * 10_000,))
                   for n in range(4)]
        for t in threads:
            t.start()
        started.wait(5)
        w.close()
        for t in threads:
            t.join()

        lines = Path(tmpdir, "dev.log").read_text(encoding="utf-8").splitlines()
        assert len(lines) == w.written
        for line in lines:
            event = decode_line(line)
            assert event is not None and event.raw_payload == FM

    print(" OK")


def test_session_filename():
    print("test_session_filename...", end="")

    started = datetime(2018, 6, 1, 9, 5, 7)
    assert session_filename("10.0.0.5", started) == "10.0.0.5_20180601_090507.log"

    with tempfile.TemporaryDirectory() as tmpdir:
        w = open_session_log(tmpdir, "10.0.0.5", started)
        w.close()
        assert w.path.name == "10.0.0.5_20180601_090507.log"

        try:
            open_session_log(tmpdir, "10.0.0.5", started)
        except FileExistsError:
            pass
        else:
            raise AssertionError("expected FileExistsError")

    print(" OK")


def test_list_log_files():
    print("test_list_log_files...", end="")

    with tempfile.TemporaryDirectory() as tmpdir:
        for name in ("b.log", "a.LOG", "notes.txt"):
            Path(tmpdir, name).write_text("", encoding="utf-8")
        os.mkdir(os.path.join(tmpdir, "sub.log"))

        names = [p.name for p in list_log_files(tmpdir)]
        assert names == ["a.LOG", "b.log"]

        try:
            list_log_files(os.path.join(tmpdir, "missing"))
        except FileNotFoundError:
            pass
        else:
            raise AssertionError("expected FileNotFoundError")

    print(" OK")


# ---------------------------------------------------------------------------
# Scanner
# ---------------------------------------------------------------------------

def test_scan_time_window():
    """Window is inclusive and the scan stops at the first later event."""
    print("test_scan_time_window...", end="")

    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "dev.log")
        write_log(path, [
            f"1000,{FM}",
            f"2000,{FM}",
            f"2500,{CC}",
            f"3000,{FM}",
            f"4000,{FM}",
            f"4001,{FM}",
            # Out of order: in the window but after the stop point
            f"3500,{FM}",
        ])

        found = [e.timestamp for e in scan(path, "fm", 2000, 4000)]
        assert found == [2000, 3000, 4000]

        found = [e.timestamp for e in scan(path, "cc", 2000, 4000)]
        assert found == [2500]

        # Default window is unbounded
        found = [e.timestamp for e in scan(path, "fm")]
        assert found == [1000, 2000, 3000, 4000, 4001, 3500]

        assert [e.timestamp for e in scan(path, "fm", 0, MAX_TIMESTAMP)] == found

    print(" OK")


def test_scan_skips_malformed_lines():
    """A malformed line is reported and skipped; later lines still match."""
    print("test_scan_skips_malformed_lines...", end="")

    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "dev.log")
        write_log(path, [
            f"1000,{FM}",
            "abc,{}",
            "no separator",
            "2000,not json",
            f"3000,{FM}",
        ])

        found = [e.timestamp for e in scan(path, "fm")]
        assert found == [1000, 3000]

        with LogReader(path) as reader:
            events = list(reader.events())
            assert len(events) == 3
            assert reader.malformed == 2

    print(" OK")


def test_scan_missing_file():
    """A missing file fails when the scan is created, not later."""
    print("test_scan_missing_file...", end="")

    with tempfile.TemporaryDirectory() as tmpdir:
        try:
            scan(os.path.join(tmpdir, "missing.log"), "fm")
        except FileNotFoundError:
            pass
        else:
            raise AssertionError("expected FileNotFoundError")

    print(" OK")


def test_scan_is_lazy():
    print("test_scan_is_lazy...", end="")

    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "dev.log")
        write_log(path, [f"{ts},{FM}" for ts in range(1, 101)])

        it = scan(path, "fm")
        assert next(it).timestamp == 1
        assert next(it).timestamp == 2
        assert len(list(it)) == 98
        assert it.closed
        assert list(it) == []

    print(" OK")


def test_scan_close_releases_file():
    """A scan closed before (or during) iteration releases its file."""
    print("test_scan_close_releases_file...", end="")

    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "dev.log")
        write_log(path, [f"{ts},{FM}" for ts in range(1, 11)])

        it = scan(path, "fm")
        assert not it.closed
        it.close()
        assert it.closed
        assert list(it) == []

        with scan(path, "fm") as it:
            assert next(it).timestamp == 1
        assert it.closed

    print(" OK")


if __name__ == "__main__":
    print("cstlog storage tests")
    print("====================\n")

    test_codec_roundtrip()
    test_decode_line_malformed()
    test_payload_decoded_once()
    test_writer_appends_lines()
    test_writer_refuses_existing_file()
    test_writer_missing_directory()
    test_writer_close_idempotent()
    test_writer_close_during_appends()
    test_session_filename()
    test_list_log_files()
    test_scan_time_window()
    test_scan_skips_malformed_lines()
    test_scan_missing_file()
    test_scan_is_lazy()
    test_scan_close_releases_file()

    print("\nAll tests passed.")
