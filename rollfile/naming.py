"""Backup name codec.

A backup of ``/var/log/app/server.log`` sealed at 2016-11-04 18:30 UTC because
the file grew too large is called::

    /var/log/app/server-2016-11-04T18-30-00.000-size.log

and, once the mill has compressed it, ``server-2016-11-04T18-30-00.000-size.log.gz``.
With ``after_ext`` the stamp goes after the whole filename instead
(``server.log-2016-11-04T18-30-00.000-size``).

Timestamp layouts are ``strftime`` strings plus one extra directive, ``%<n>f``,
which renders the first *n* (1..6) fractional-second digits. ``%f`` alone
means six digits. Decoding is strict: a name is accepted only if re-rendering
the parsed instant reproduces the embedded timestamp exactly, so look-alike
files never get a guessed timestamp.
"""
from __future__ import annotations

import os
import re
from datetime import datetime, timezone
from typing import Tuple

from .errors import (
    ConfigError,
    MalformedNameError,
    MismatchedExtensionError,
    MismatchedPrefixError,
    UnparsableTimestampError,
)

__all__ = [
    "DEFAULT_LAYOUT",
    "COMPRESS_SUFFIX",
    "REASON_SIZE",
    "REASON_TIME",
    "REASONS",
    "backup_name",
    "prefix_and_ext",
    "time_from_name",
    "render_timestamp",
    "parse_timestamp",
    "layout_digits",
    "truncate_fraction",
    "validate_layout",
]

DEFAULT_LAYOUT = "%Y-%m-%dT%H-%M-%S.%3f"
COMPRESS_SUFFIX = ".gz"

REASON_SIZE = "size"
REASON_TIME = "time"
REASONS = frozenset({REASON_SIZE, REASON_TIME})

# `%%` is matched first so an escaped percent never starts a fraction token.
_TOKEN_RE = re.compile(r"%%|%([1-9]?)f")

# Fields present in the reference instant; a layout that drops any of them
# cannot be used to order backups and fails validation.
_REFERENCE = datetime(2017, 11, 23, 21, 47, 38, 654321)


# ---- layout helpers -------------------------------------------------------

def layout_digits(layout: str) -> int:
    """Number of fractional-second digits the layout renders (0 if none)."""
    digits = 0
    for m in _TOKEN_RE.finditer(layout):
        if m.group(0) == "%%":
            continue
        digits = int(m.group(1) or 6)
    return digits


def truncate_fraction(instant: datetime, digits: int) -> datetime:
    """Drop sub-second precision beyond ``digits`` (0..6) decimal places."""
    if digits < 0 or digits > 6:
        raise ValueError(f"fractional digits must be within 0..6, got {digits}")
    step = 10 ** (6 - digits)
    return instant.replace(microsecond=(instant.microsecond // step) * step)


def render_timestamp(instant: datetime, layout: str) -> str:
    micros = f"{instant.microsecond:06d}"

    def _sub(m: "re.Match[str]") -> str:
        if m.group(0) == "%%":
            return "%%"
        return micros[: int(m.group(1) or 6)]

    return instant.strftime(_TOKEN_RE.sub(_sub, layout))


def parse_timestamp(text: str, layout: str) -> datetime:
    """Parse ``text`` under ``layout``; returns a naive datetime.

    Raises ValueError when the text does not match or does not re-render to
    itself.
    """
    pattern = _TOKEN_RE.sub(lambda m: "%%" if m.group(0) == "%%" else "%f", layout)
    parsed = datetime.strptime(text, pattern)
    if parsed.tzinfo is not None:
        parsed = parsed.replace(tzinfo=None)
    if render_timestamp(parsed, layout) != text:
        raise ValueError(f"timestamp {text!r} does not round-trip under layout {layout!r}")
    return parsed


def validate_layout(layout: str) -> str:
    """Return ``layout`` if it renders and parses back the same instant.

    Raises ConfigError for empty layouts, layouts containing a path
    separator, fractional precision beyond microseconds, and layouts that
    lose information on the round trip.
    """
    if not isinstance(layout, str) or not layout.strip():
        raise ConfigError("backup_time_format: empty timestamp layout")
    if "/" in layout or os.sep in layout:
        raise ConfigError(f"backup_time_format: path separator in layout {layout!r}")
    for m in _TOKEN_RE.finditer(layout):
        if m.group(0) != "%%" and int(m.group(1) or 6) > 6:
            raise ConfigError(
                f"backup_time_format: at most 6 fractional digits supported, got {layout!r}"
            )
    expected = truncate_fraction(_REFERENCE, layout_digits(layout))
    try:
        rendered = render_timestamp(_REFERENCE, layout)
        parsed = parse_timestamp(rendered, layout)
    except ValueError as e:
        raise ConfigError(f"backup_time_format: layout {layout!r} does not parse back: {e}") from e
    if parsed != expected:
        raise ConfigError(
            f"backup_time_format: layout {layout!r} does not round-trip "
            f"({expected.isoformat()} came back as {parsed.isoformat()})"
        )
    return layout


# ---- names ----------------------------------------------------------------

def prefix_and_ext(filename: str, after_ext: bool = False) -> Tuple[str, str]:
    """Framing shared by every backup of ``filename``.

    The prefix carries the trailing ``-`` separator.
    """
    base = os.path.basename(filename)
    if after_ext:
        return base + "-", ""
    root, ext = os.path.splitext(base)
    return root + "-", ext


def backup_name(
    filename: str,
    reason: str,
    instant: datetime,
    *,
    local_time: bool = False,
    layout: str = DEFAULT_LAYOUT,
    after_ext: bool = False,
) -> str:
    """Full path of the backup ``filename`` becomes when sealed at ``instant``."""
    directory = os.path.dirname(filename)
    prefix, ext = prefix_and_ext(filename, after_ext)
    t = instant.astimezone() if local_time else instant.astimezone(timezone.utc)
    stamp = render_timestamp(t, layout)
    return os.path.join(directory, f"{prefix}{stamp}-{reason}{ext}")


def time_from_name(
    name: str,
    prefix: str,
    ext: str,
    *,
    layout: str = DEFAULT_LAYOUT,
    local_time: bool = False,
) -> datetime:
    """Rotation instant embedded in backup ``name`` (timezone-aware).

    ``ext`` is the full trailing framing to strip, so callers pass
    ``ext + COMPRESS_SUFFIX`` to recognise compressed backups.

    With ``local_time`` a stamp from the hour repeated when DST ends is
    ambiguous; it decodes to the first occurrence (``fold=0``), so such a
    backup can sort up to an hour early.
    """
    if not name.startswith(prefix):
        raise MismatchedPrefixError(f"mismatched prefix: {name!r} does not start with {prefix!r}")
    if not name.endswith(ext):
        raise MismatchedExtensionError(f"mismatched extension: {name!r} does not end with {ext!r}")
    end = len(name) - len(ext)
    if end < len(prefix):
        raise MalformedNameError(f"malformed backup name: {name!r}")
    body = name[len(prefix):end]
    stamp, sep, reason = body.rpartition("-")
    if not sep or reason not in REASONS:
        raise MalformedNameError(f"malformed backup name: no rotation reason in {name!r}")
    try:
        parsed = parse_timestamp(stamp, layout)
    except ValueError as e:
        raise UnparsableTimestampError(f"cannot parse {stamp!r} as {layout!r}: {e}") from e
    if local_time:
        return parsed.astimezone()
    return parsed.replace(tzinfo=timezone.utc)
