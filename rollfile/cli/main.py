# rollfile/cli/main.py
"""Command-line front end.

``rollfile tee`` copies standard input into a rolling file (``SIGHUP``
requests a rotation); ``rollfile validate`` checks a YAML config file and
prints the normalised result as JSON.
"""
from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
import threading
from typing import Any, BinaryIO, Dict, List, Optional

from ..errors import ConfigError, RollfileError, format_error
from ..io.config import load_config
from ..writer import RollingFile
from ._config import find_config
from ._exit import IO_ERR, OK, USER_ERR

logger = logging.getLogger(__name__)

_LOG_FORMAT = "[rollfile] %(levelname)s %(name)s: %(message)s"


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format=_LOG_FORMAT,
        stream=sys.stderr,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rollfile",
        description="Size- and time-rotated log files",
        allow_abbrev=False,
    )
    try:
        from rollfile import __version__ as _VER  # lazy import to avoid side effects
    except ImportError:
        _VER = "unknown"
    parser.add_argument("--version", action="version", version=f"rollfile {_VER}")
    subparsers = parser.add_subparsers(dest="command")

    tee = subparsers.add_parser("tee", help="copy stdin into a rolling file")
    tee.add_argument("-c", "--config", help="YAML config file (default: discovered)")
    tee.add_argument("-f", "--filename", help="live log file")
    tee.add_argument("--max-size", type=int, help="size cap in megabytes (default 100)")
    tee.add_argument("--max-backups", type=int, help="backups to keep (0 keeps all)")
    tee.add_argument("--max-age", type=int, help="days to keep backups (0 keeps all)")
    tee.add_argument("--compress", action="store_true", default=None, help="gzip backups")
    tee.add_argument("--local-time", action="store_true", default=None, help="local time in backup names")
    tee.add_argument("--rotation-interval", help="rotate after this long, e.g. 24h or 90m")
    tee.add_argument(
        "--rotate-at-minute", type=int, action="append", dest="rotate_at_minutes",
        help="rotate at this minute past every hour (repeatable)",
    )
    tee.add_argument(
        "--rotate-at", action="append", dest="rotate_at",
        help="rotate daily at HH:MM (repeatable)",
    )
    tee.add_argument("--passthrough", action="store_true", help="also echo input to stdout")
    tee.add_argument("-v", "--verbose", action="store_true", help="debug logging on stderr")
    tee.set_defaults(func=_run_tee)

    val = subparsers.add_parser("validate", help="check a config file")
    val.add_argument("path", nargs="?", help="YAML config file (default: discovered)")
    val.add_argument("-v", "--verbose", action="store_true", help="report which file was used")
    val.set_defaults(func=_run_validate)

    return parser


_OVERRIDES = (
    "filename",
    "max_size",
    "max_backups",
    "max_age",
    "compress",
    "local_time",
    "rotation_interval",
    "rotate_at_minutes",
    "rotate_at",
)


def _overrides(ns: argparse.Namespace) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key in _OVERRIDES:
        v = getattr(ns, key, None)
        if v is not None:
            out[key] = v
    return out


def _copy(src: BinaryIO, writer: RollingFile, rotate_requested: threading.Event, echo: Optional[BinaryIO]) -> None:
    limit = writer.max_bytes
    for line in src:
        if rotate_requested.is_set():
            rotate_requested.clear()
            writer.rotate()
        # A line longer than the cap would be rejected whole; split it.
        for start in range(0, len(line), limit):
            writer.write(line[start : start + limit])
        if echo is not None:
            echo.write(line)
            echo.flush()


def _run_tee(ns: argparse.Namespace) -> int:
    _setup_logging(ns.verbose)
    path = find_config(ns.config)
    logger.info("config: %s", path or "built-in defaults")
    try:
        cfg = load_config(str(path) if path else None)
        writer = RollingFile(cfg, **_overrides(ns))
    except ConfigError as e:
        print(format_error(e), file=sys.stderr)
        return USER_ERR

    rotate_requested = threading.Event()
    if hasattr(signal, "SIGHUP"):
        # The handler runs on the main thread, possibly mid-write; just flag it.
        signal.signal(signal.SIGHUP, lambda *_: rotate_requested.set())

    echo = sys.stdout.buffer if ns.passthrough else None
    try:
        with writer:
            _copy(sys.stdin.buffer, writer, rotate_requested, echo)
    except KeyboardInterrupt:
        return OK
    except (RollfileError, OSError) as e:
        print(format_error(e), file=sys.stderr)
        return IO_ERR
    return OK


def _run_validate(ns: argparse.Namespace) -> int:
    _setup_logging(ns.verbose)
    path = find_config(ns.path)
    if path is None:
        print("ConfigError: no config file found", file=sys.stderr)
        return USER_ERR
    logger.info("config: %s", path)
    try:
        cfg = load_config(str(path))
    except ConfigError as e:
        print(format_error(e), file=sys.stderr)
        return USER_ERR
    sys.stdout.write(json.dumps(cfg.to_dict(), sort_keys=True, separators=(",", ":")) + "\n")
    return OK


def main(argv: Optional[List[str]] = None) -> int:
    if argv is None:
        argv = sys.argv[1:]
    parser = build_parser()
    ns = parser.parse_args(argv)
    if not hasattr(ns, "func"):
        parser.print_help(sys.stderr)
        return USER_ERR
    return int(ns.func(ns))


if __name__ == "__main__":
    raise SystemExit(main())
