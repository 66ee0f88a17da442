"""Retention and compression of backup files ("the mill").

After every rotation the writer pokes the mill through a one-slot queue. The
worker rescans the log directory on its own, so it shares no state with the
write path beyond that queue and never makes a writer wait.
"""
from __future__ import annotations

import logging
import os
import queue
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from .clock import Clock, SYSTEM_CLOCK
from .errors import BackupNameError
from .io.fs import compress_file
from .naming import COMPRESS_SUFFIX, DEFAULT_LAYOUT, prefix_and_ext, time_from_name

__all__ = ["BackupFile", "list_backups", "plan_cycle", "Mill"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BackupFile:
    name: str
    path: str
    timestamp: datetime

    @property
    def compressed(self) -> bool:
        return self.name.endswith(COMPRESS_SUFFIX)

    @property
    def logical_name(self) -> str:
        """Name with any compression suffix removed; a backup and its .gz share it."""
        if self.compressed:
            return self.name[: -len(COMPRESS_SUFFIX)]
        return self.name


def list_backups(
    filename: str,
    *,
    layout: str = DEFAULT_LAYOUT,
    local_time: bool = False,
    after_ext: bool = False,
) -> List[BackupFile]:
    """Backups of ``filename`` found next to it, newest first.

    Directories and names the codec rejects are skipped. Equal timestamps are
    ordered by logical name so the order never depends on the directory
    listing.
    """
    directory = os.path.dirname(filename) or "."
    prefix, ext = prefix_and_ext(filename, after_ext)
    found: List[BackupFile] = []
    with os.scandir(directory) as it:
        for entry in it:
            if entry.is_dir():
                continue
            for suffix in (ext, ext + COMPRESS_SUFFIX):
                try:
                    ts = time_from_name(entry.name, prefix, suffix, layout=layout, local_time=local_time)
                except BackupNameError:
                    continue
                found.append(BackupFile(entry.name, entry.path, ts))
                break
    found.sort(key=lambda b: (b.timestamp, b.logical_name), reverse=True)
    return found


def plan_cycle(
    files: List[BackupFile],
    *,
    max_backups: int = 0,
    max_age_days: int = 0,
    compress: bool = False,
    now: Optional[datetime] = None,
) -> Tuple[List[BackupFile], List[BackupFile]]:
    """Split newest-first ``files`` into ``(remove, compress)`` lists."""
    remove: List[BackupFile] = []
    remaining = list(files)

    if max_backups > 0 and max_backups < len(remaining):
        preserved = set()
        kept: List[BackupFile] = []
        for f in remaining:
            preserved.add(f.logical_name)
            if len(preserved) > max_backups:
                remove.append(f)
            else:
                kept.append(f)
        remaining = kept

    if max_age_days > 0:
        if now is None:
            raise ValueError("now is required when max_age_days is set")
        cutoff = now - timedelta(days=max_age_days)
        kept = []
        for f in remaining:
            if f.timestamp < cutoff:
                remove.append(f)
            else:
                kept.append(f)
        remaining = kept

    to_compress: List[BackupFile] = []
    if compress:
        packed = {f.logical_name for f in remaining if f.compressed}
        to_compress = [f for f in remaining if not f.compressed and f.name not in packed]
    return remove, to_compress


class Mill:
    """Single background worker applying retention and compression."""

    def __init__(
        self,
        filename: str,
        *,
        max_backups: int = 0,
        max_age: int = 0,
        compress: bool = False,
        layout: str = DEFAULT_LAYOUT,
        local_time: bool = False,
        after_ext: bool = False,
        clock: Clock = SYSTEM_CLOCK,
        name: str = "rollfile-mill",
    ) -> None:
        self.filename = filename
        self.max_backups = int(max_backups)
        self.max_age = int(max_age)
        self.compress = bool(compress)
        self.layout = layout
        self.local_time = local_time
        self.after_ext = after_ext
        self._clock = clock
        self._name = name
        self._queue: "queue.Queue[Optional[bool]]" = queue.Queue(maxsize=1)
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stopped = False

    @property
    def enabled(self) -> bool:
        return self.max_backups > 0 or self.max_age > 0 or self.compress

    @property
    def running(self) -> bool:
        t = self._thread
        return t is not None and t.is_alive()

    def signal(self) -> None:
        """Queue a cycle unless one is already pending. Never blocks."""
        if not self.enabled:
            return
        with self._lock:
            if self._stopped:
                return
            if self._thread is None:
                self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
                self._thread.start()
            try:
                self._queue.put_nowait(True)
            except queue.Full:
                pass

    def stop(self, timeout: Optional[float] = None) -> None:
        """Let the worker finish pending work, then wait for it to exit."""
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
            t = self._thread
        if t is None:
            return
        self._queue.put(None)
        if t is not threading.current_thread():
            t.join(timeout)

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            if item is None:
                return
            try:
                self.run_once()
            except Exception:  # noqa: BLE001 - a bad cycle must not kill the worker
                logger.warning("mill cycle for %s failed", self.filename, exc_info=True)

    def run_once(self) -> None:
        """One retention + compression pass over the log directory."""
        if not self.enabled:
            return
        try:
            files = list_backups(
                self.filename,
                layout=self.layout,
                local_time=self.local_time,
                after_ext=self.after_ext,
            )
        except OSError as e:
            logger.warning("can't read log file directory for %s: %s", self.filename, e)
            return

        remove, to_compress = plan_cycle(
            files,
            max_backups=self.max_backups,
            max_age_days=self.max_age,
            compress=self.compress,
            now=self._clock.now(),
        )
        for f in remove:
            try:
                os.remove(f.path)
                logger.debug("removed old backup %s", f.name)
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning("can't remove old backup %s: %s", f.path, e)
        for f in to_compress:
            try:
                compress_file(f.path, f.path + COMPRESS_SUFFIX)
                logger.debug("compressed backup %s", f.name)
            except OSError as e:
                logger.warning("can't compress backup %s: %s", f.path, e)
