"""cst-logs command-line tool."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from datetime import datetime, timedelta, timezone

from .codec import MAX_TIMESTAMP
from .decoder import FieldRecord, decode_fields, format_timestamp
from .schema import classify
from .series import series, summarize
from .session import CaptureSession, install_signal_handlers
from .storage import LogReader, list_log_files, scan
from .transport import CONNECT_TIMEOUT

logger = logging.getLogger(__name__)

DEFAULT_LOG_DIRECTORY = "cst-logs"
LOG_FORMAT = "[%(levelname)s] [%(asctime)s] %(message)s"

# Exit statuses (argparse usage errors exit with 2)
EXIT_DIRECTORY = 3
EXIT_LOG_FILE = 4
EXIT_CONNECT = 5
EXIT_MISSING_FILE = 6

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _parse_instant(text: str) -> int | None:
    """Parse an ISO-8601 instant (e.g. 2018-06-01T12:00:00Z) to epoch millis."""
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return (dt - _EPOCH) // timedelta(milliseconds=1)


def _window(args: argparse.Namespace) -> tuple[int, int]:
    """Resolve the optional start/end arguments to a millis window."""
    start, end = 0, MAX_TIMESTAMP
    if args.start is not None:
        parsed = _parse_instant(args.start)
        if parsed is None:
            logger.warning("Failed to parse start date provided (%s), "
                           "defaulting to no start bound.", args.start)
        else:
            start = parsed
    if args.end is not None:
        parsed = _parse_instant(args.end)
        if parsed is None:
            logger.warning("Failed to parse end date provided (%s), "
                           "defaulting to no end bound.", args.end)
        else:
            end = parsed
    return start, end


def _format_duration(ms: int) -> str:
    """Format a millisecond duration as a human-readable string."""
    if ms < 1_000:
        return f"{ms}ms"
    s = ms / 1_000
    if s < 60:
        return f"{s:.2f}s"
    if s < 3600:
        return f"{s / 60:.1f}m"
    return f"{s / 3600:.1f}h"


def render_table(records: list[FieldRecord]) -> str:
    """Render field records as an ASCII table.

    The first record's display names are the header.  Shorter records are
    padded with blanks; values past the header width are not shown.
    """
    headers = [name for name, _ in records[0]]
    ncols = len(headers)
    rows: list[list[str]] = []
    for record in records:
        values = [value for _, value in record]
        if len(values) != ncols:
            logger.warning("Record has %d fields, table has %d columns.",
                           len(values), ncols)
        rows.append((values + [""] * ncols)[:ncols])

    widths = [len(h) for h in headers]
    for row in rows:
        for i, value in enumerate(row):
            widths[i] = max(widths[i], len(value))

    def line(cells: list[str]) -> str:
        return "| " + " | ".join(c.ljust(w) for c, w in zip(cells, widths)) + " |"

    rule = "+" + "+".join("-" * (w + 2) for w in widths) + "+"
    header_rule = "+" + "+".join("=" * (w + 2) for w in widths) + "+"

    out = [rule, line(headers), header_rule]
    out.extend(line(row) for row in rows)
    out.append(rule)
    return "\n".join(out)


def cmd_capture(args: argparse.Namespace) -> None:
    """Capture a device stream into a new session log."""
    try:
        os.makedirs(args.log_dir, exist_ok=True)
    except OSError as exc:
        logger.error("Failed to create directory: %s (%s)", args.log_dir, exc)
        sys.exit(EXIT_DIRECTORY)

    try:
        session = CaptureSession(args.address, args.log_dir, args.duration,
                                 connect_timeout=args.connect_timeout)
    except FileExistsError as exc:
        logger.error("Refusing to overwrite existing log file: %s", exc.filename)
        sys.exit(EXIT_LOG_FILE)
    except OSError as exc:
        logger.error("Failed to open a log file in %s: %s", args.log_dir, exc)
        sys.exit(EXIT_LOG_FILE)

    install_signal_handlers(session)
    logger.info("Writing %s to %s.", session.url, session.log_path)

    try:
        session.run()
    except ConnectionError as exc:
        logger.error("Failed to connect to WebSocket (%s): %s", session.url, exc)
        sys.exit(EXIT_CONNECT)


def cmd_query(args: argparse.Namespace) -> None:
    """Print a table of matching events for every log file."""
    start, end = _window(args)

    if args.file:
        files = args.file
    else:
        try:
            files = list_log_files(args.log_dir)
        except OSError as exc:
            logger.error("Failed to list files in directory (%s): %s",
                         args.log_dir, exc)
            sys.exit(EXIT_DIRECTORY)
        logger.debug("Detected %d files in log directory provided (%s).",
                     len(files), args.log_dir)

    for path in files:
        name = os.path.basename(path)
        logger.debug(">>>>> %s", name)
        try:
            records = [decode_fields(event)
                       for event in scan(path, args.type, start, end)]
        except FileNotFoundError as exc:
            logger.error("Failed to open file because it doesn't exist: %s",
                         exc.filename)
            sys.exit(EXIT_MISSING_FILE)

        if records:
            print(f"File: {name}")
            print(render_table(records))
        else:
            logger.debug("No matching log lines were found.")
        logger.debug("<<<<< %s", name)


def cmd_info(args: argparse.Namespace) -> None:
    """Print summary info about a session log file."""
    try:
        file_size = os.path.getsize(args.file)
    except FileNotFoundError:
        logger.error("Failed to open file because it doesn't exist: %s", args.file)
        sys.exit(EXIT_MISSING_FILE)

    with LogReader(args.file) as reader:
        type_counts: dict[str, int] = {}
        ts_min: int | None = None
        ts_max: int | None = None
        total = 0

        for event in reader.events():
            total += 1
            if ts_min is None or event.timestamp < ts_min:
                ts_min = event.timestamp
            if ts_max is None or event.timestamp > ts_max:
                ts_max = event.timestamp
            msg_type = classify(event.payload)
            if msg_type is not None:
                key = msg_type.value
            elif event.payload is None:
                key = "(undecodable)"
            else:
                key = "(other)"
            type_counts[key] = type_counts.get(key, 0) + 1

        print(f"File:       {args.file}")
        print(f"Size:       {file_size:,} bytes")
        print(f"Events:     {total:,}")
        print(f"Malformed:  {reader.malformed:,}")

        if ts_min is not None and ts_max is not None:
            print(f"Time range: {format_timestamp(ts_min)} to {format_timestamp(ts_max)}")
            print(f"Duration:   {_format_duration(ts_max - ts_min)}")
        else:
            print("Time range: (empty)")

        print(f"\nTypes ({len(type_counts)}):")
        for key, count in sorted(type_counts.items()):
            print(f"  {key:<14s}  {count:8,}")


def cmd_series(args: argparse.Namespace) -> None:
    """Print one decoded field over time as CSV."""
    start, end = _window(args)
    try:
        ts, values = series(args.file, args.type, args.field, start, end)
    except FileNotFoundError as exc:
        logger.error("Failed to open file because it doesn't exist: %s", exc.filename)
        sys.exit(EXIT_MISSING_FILE)

    print(f"timestamp,{args.field}")
    for t, v in zip(ts, values):
        print(f"{format_timestamp(int(t))},{v:g}")

    stats = summarize(values)
    print(f"# count={stats['count']} min={stats['min']:g} "
          f"max={stats['max']:g} mean={stats['mean']:g}")


def _add_window_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("start", nargs="?", help="Start instant, e.g. 2018-06-01T12:00:00Z")
    p.add_argument("end", nargs="?", help="End instant (required with start)")


def main() -> None:
    parser = argparse.ArgumentParser(prog="cst-logs", description="CST telemetry logging tool")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command")

    # capture
    p_capture = sub.add_parser("capture", help="Capture telemetry from a device")
    p_capture.add_argument("address", help="Device address (host[:port])")
    p_capture.add_argument("duration", nargs="?", type=float, default=None,
                           help="Stop after this many seconds")
    p_capture.add_argument("--log-dir", default=DEFAULT_LOG_DIRECTORY,
                           help="Directory for session logs")
    p_capture.add_argument("--connect-timeout", type=float, default=CONNECT_TIMEOUT,
                           help="Connection timeout in seconds")

    # query
    p_query = sub.add_parser("query", help="Tabulate events of one type")
    p_query.add_argument("type", help="Message type (e.g. fm, cc, hc, sm)")
    _add_window_args(p_query)
    p_query.add_argument("--log-dir", default=DEFAULT_LOG_DIRECTORY,
                         help="Directory of session logs")
    p_query.add_argument("--file", action="append",
                         help="Query this log file instead of the directory "
                              "(may be repeated)")

    # info
    p_info = sub.add_parser("info", help="Show summary info about a log file")
    p_info.add_argument("file", help="Path to .log file")

    # series
    p_series = sub.add_parser("series", help="Print one decoded field over time")
    p_series.add_argument("file", help="Path to .log file")
    p_series.add_argument("type", help="Message type (e.g. sm)")
    p_series.add_argument("field", help='Display name, e.g. "MSTR PA1 Supply Current"')
    _add_window_args(p_series)

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format=LOG_FORMAT,
        stream=sys.stderr,
    )

    if args.command in ("query", "series") and (args.start is None) != (args.end is None):
        parser.error("start and end times must be specified together")

    if args.command == "capture":
        cmd_capture(args)
    elif args.command == "query":
        cmd_query(args)
    elif args.command == "info":
        cmd_info(args)
    elif args.command == "series":
        cmd_series(args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
