"""RollingFile: a byte writer that keeps one live file and rolls it over.

``RollingFile`` opens or creates its file on the first write. If the file
already exists and the write fits under the size cap it is appended to;
otherwise the file is sealed (renamed to a timestamped backup, see
`rollfile.naming`) and a fresh one is created under the original name. The
configured filename is therefore always the current file.

Rotation is triggered by, in this order of precedence:

* ``rotation_interval`` having elapsed since the last rotation (reason
  ``time``),
* the pending write not fitting in the live file (reason ``size``),
* a scheduled mark from ``rotate_at_minutes`` / ``rotate_at`` firing in the
  background (reason ``time``),
* an explicit call to `RollingFile.rotate`.

After each rotation the mill is poked to enforce ``max_backups`` /
``max_age`` and to gzip old backups. Only one process may write a given
filename.
"""
from __future__ import annotations

import logging
import os
import sys
import tempfile
import threading
from datetime import datetime, timedelta
from typing import Any, BinaryIO, Optional

from .clock import Clock, SYSTEM_CLOCK
from .errors import RotationError, WriteTooLargeError
from .io.config import RollingConfig, validate_config
from .io.fs import carry_owner, open_append, open_new, replace_file
from .mill import Mill
from .naming import REASON_SIZE, REASON_TIME, backup_name
from .schedule import ScheduledRotator, normalize_marks

__all__ = ["RollingFile", "default_filename"]

logger = logging.getLogger(__name__)


def default_filename() -> str:
    """``<tempdir>/<program>-rollfile.log``, used when no filename is configured."""
    prog = os.path.basename(sys.argv[0]) if sys.argv and sys.argv[0] else "python"
    return os.path.join(tempfile.gettempdir(), f"{prog}-rollfile.log")


class RollingFile:
    """Size- and time-rotated append-only file.

    Parameters
    ----------
    config: RollingConfig, optional
        Static configuration; keyword ``options`` override its fields and are
        validated the same way as a YAML file.
    clock: Clock
        Source of "now" for rotation decisions, backup names and retention.

    Raises
    ------
    ConfigError
        If the configuration is invalid (e.g. a non round-tripping
        ``backup_time_format``).
    """

    def __init__(
        self,
        config: Optional[RollingConfig] = None,
        *,
        clock: Clock = SYSTEM_CLOCK,
        **options: Any,
    ) -> None:
        data = (config or RollingConfig()).to_dict()
        data.update(options)
        self.config = validate_config(data)
        self.filename = self.config.filename or default_filename()
        self._clock = clock

        self._lock = threading.Lock()
        self._file: Optional[BinaryIO] = None
        self._size = 0
        self._last_rotation: Optional[datetime] = None
        self._closed = False

        cfg = self.config
        self._mill = Mill(
            self.filename,
            max_backups=cfg.max_backups,
            max_age=cfg.max_age,
            compress=cfg.compress,
            layout=cfg.backup_time_format,
            local_time=cfg.local_time,
            after_ext=cfg.append_time_after_ext,
            clock=clock,
        )
        self._scheduler = ScheduledRotator(
            self._rotate_scheduled,
            normalize_marks(cfg.rotate_at_minutes, cfg.rotate_at),
            clock=clock,
            local_time=cfg.local_time,
            poll_interval=cfg.schedule_poll_interval,
        )

    def __repr__(self) -> str:
        return f"RollingFile({self.filename!r}, max_bytes={self.max_bytes})"

    # ---- public API -------------------------------------------------------

    @property
    def max_bytes(self) -> int:
        return self.config.max_bytes

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def size(self) -> int:
        """Bytes in the live file as far as this writer knows."""
        return self._size

    @property
    def last_rotation(self) -> Optional[datetime]:
        return self._last_rotation

    def writable(self) -> bool:
        return True

    def write(self, data: bytes) -> int:
        """Append ``data`` to the live file, rotating first when due.

        Returns ``len(data)``. A write larger than the size cap raises
        WriteTooLargeError without touching the disk; a failed rotation raises
        RotationError and nothing is written.
        """
        n = len(data)
        with self._lock:
            limit = self.max_bytes
            if n > limit:
                raise WriteTooLargeError(n, limit)
            try:
                if self._file is None:
                    self._open_existing_or_new(n)
                    self._last_rotation = self._clock.now()
                    if not self._closed:
                        self._scheduler.start()
                if self._interval_due():
                    self._rotate(REASON_TIME)
                elif self._size + n > limit:
                    self._rotate(REASON_SIZE)
                self._file.write(data)
                self._file.flush()
                self._size += n
            finally:
                if self._closed:
                    self._close_file()
        return n

    def rotate(self) -> None:
        """Seal the live file now and start a new one.

        For callers rotating on an external signal such as SIGHUP. The backup
        is stamped ``time`` when an interval rotation was due anyway,
        ``size`` otherwise.
        """
        with self._lock:
            reason = REASON_TIME if self._interval_due() else REASON_SIZE
            try:
                self._rotate(reason)
                if not self._closed:
                    self._scheduler.start()
            finally:
                if self._closed:
                    self._close_file()

    def flush(self) -> None:
        with self._lock:
            if self._file is not None:
                self._file.flush()

    def close(self) -> None:
        """Stop background work and close the live file. Idempotent."""
        # Background tasks first and outside the lock: a scheduled rotation
        # may be waiting on it.
        self._scheduler.stop()
        self._mill.stop()
        with self._lock:
            self._closed = True
            self._close_file()

    def __enter__(self) -> "RollingFile":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # ---- internals (caller holds self._lock) ------------------------------

    def _interval_due(self) -> bool:
        interval = self.config.rotation_interval
        if interval <= 0 or self._last_rotation is None:
            return False
        return self._clock.now() - self._last_rotation >= timedelta(seconds=interval)

    def _close_file(self) -> None:
        f, self._file = self._file, None
        if f is not None:
            f.close()

    def _open_existing_or_new(self, write_len: int) -> None:
        # Backups left over from a previous run get compressed/pruned too.
        self._mill.signal()
        try:
            st = os.stat(self.filename)
        except FileNotFoundError:
            self._open_new(REASON_SIZE)
            return
        except OSError as e:
            raise RotationError(f"error getting log file info: {e}") from e

        if st.st_size + write_len > self.max_bytes:
            self._rotate(REASON_SIZE)
            return
        try:
            self._file = open_append(self.filename)
        except OSError:
            self._open_new(REASON_SIZE)
            return
        self._size = st.st_size

    def _rotate(self, reason: str) -> None:
        self._close_file()
        self._open_new(reason)
        self._last_rotation = self._clock.now()
        self._mill.signal()

    def _rotate_scheduled(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._rotate(REASON_TIME)

    def _open_new(self, reason: str) -> None:
        """Move an existing live file aside and create an empty one."""
        name = self.filename
        cfg = self.config
        directory = os.path.dirname(name)
        if directory:
            try:
                os.makedirs(directory, exist_ok=True)
            except OSError as e:
                raise RotationError(f"can't make directories for new logfile: {e}") from e

        mode = cfg.file_mode
        try:
            st: Optional[os.stat_result] = os.stat(name)
        except FileNotFoundError:
            st = None
        except OSError as e:
            raise RotationError(f"error getting log file info: {e}") from e

        if st is not None:
            mode = st.st_mode & 0o7777
            backup = backup_name(
                name,
                reason,
                self._clock.now(),
                local_time=cfg.local_time,
                layout=cfg.backup_time_format,
                after_ext=cfg.append_time_after_ext,
            )
            try:
                replace_file(name, backup)
            except OSError as e:
                raise RotationError(f"can't rename log file: {e}") from e
            logger.debug("rotated %s -> %s (%s)", name, backup, reason)

        try:
            f = open_new(name, mode)
        except OSError as e:
            raise RotationError(f"can't open new logfile: {e}") from e
        if st is not None:
            try:
                carry_owner(name, st)
            except OSError as e:
                f.close()
                raise RotationError(f"can't set owner of new logfile: {e}") from e
        self._file = f
        self._size = 0
