from __future__ import annotations

import gzip
import os
import random
import shutil
import time
from pathlib import Path
from typing import BinaryIO, Optional

__all__ = [
    "DEFAULT_FILE_MODE",
    "open_new",
    "open_append",
    "replace_file",
    "carry_owner",
    "compress_file",
]

# New live files are private to owner and group unless an older live file
# dictates otherwise. Subject to the process umask like any os.open().
DEFAULT_FILE_MODE = 0o640


def _fsync_best_effort(path: Path) -> None:
    """Best-effort directory fsync after a rename.

    On Windows, fsync on directories may fail; ignore in that case.
    """
    try:
        fd = os.open(str(path), os.O_RDONLY)
        try:
            os.fsync(fd)
        finally:
            os.close(fd)
    except OSError:
        pass


def open_new(path: str, mode: int = DEFAULT_FILE_MODE) -> BinaryIO:
    """Create (or truncate) ``path`` for writing with permission bits ``mode``."""
    fd = os.open(path, os.O_CREAT | os.O_WRONLY | os.O_TRUNC, mode)
    return os.fdopen(fd, "wb")


def open_append(path: str) -> BinaryIO:
    fd = os.open(path, os.O_APPEND | os.O_WRONLY)
    return os.fdopen(fd, "ab")


def replace_file(src: str, dst: str, *, retries: int = 5, backoff_ms: int = 10) -> None:
    """Rename ``src`` to ``dst``, overwriting ``dst``.

    Windows sharing violations (PermissionError while another handle is open)
    are retried with a short jittered backoff; everything else is raised
    immediately.
    """
    delay = backoff_ms / 1000.0
    attempts = retries if os.name == "nt" else 1
    for attempt in range(attempts):
        try:
            os.replace(src, dst)
            break
        except PermissionError:
            if attempt == attempts - 1:
                raise
        time.sleep(delay + random.uniform(0, delay * 0.25))
        delay = min(delay * 1.5, 0.25)
    _fsync_best_effort(Path(dst).parent)


def carry_owner(path: str, st: os.stat_result) -> None:
    """Give ``path`` the uid/gid recorded in ``st`` (POSIX only).

    A no-op when the owner already matches, so unprivileged processes never
    call chown on their own files.
    """
    if not hasattr(os, "chown"):
        return
    current = os.stat(path)
    if (current.st_uid, current.st_gid) == (st.st_uid, st.st_gid):
        return
    os.chown(path, st.st_uid, st.st_gid)


def compress_file(src: str, dst: str) -> None:
    """Gzip ``src`` into ``dst`` and remove ``src`` once ``dst`` is complete.

    ``dst`` inherits the source's mode and owner. On any failure the partial
    ``dst`` is removed, ``src`` is left in place, and the error is raised.
    """
    with open(src, "rb") as f_in:
        st = os.fstat(f_in.fileno())
        created: Optional[str] = None
        try:
            fd = os.open(dst, os.O_CREAT | os.O_TRUNC | os.O_WRONLY, st.st_mode & 0o7777)
            created = dst
            with os.fdopen(fd, "wb") as raw:
                with gzip.GzipFile(fileobj=raw, mode="wb") as gz:
                    shutil.copyfileobj(f_in, gz)
                raw.flush()
                os.fsync(raw.fileno())
            carry_owner(dst, st)
        except BaseException:
            if created is not None:
                try:
                    os.remove(created)
                except FileNotFoundError:
                    pass
            raise
    os.remove(src)
