from __future__ import annotations

import os
import time
from typing import Callable

__all__ = ["exists_with_content", "file_count", "wait_for", "backup_path"]


def exists_with_content(path: str, content: bytes) -> None:
    assert os.path.isfile(path), f"expected {path} to exist"
    with open(path, "rb") as f:
        assert f.read() == content


def file_count(directory: str) -> int:
    return len(os.listdir(directory))


def wait_for(cond: Callable[[], bool], timeout: float = 5.0, step: float = 0.01) -> bool:
    """Poll ``cond`` until it holds or ``timeout`` seconds pass."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if cond():
            return True
        time.sleep(step)
    return cond()


def backup_path(directory: str, stamp: str, reason: str = "size", name: str = "foobar", ext: str = ".log") -> str:
    return os.path.join(directory, f"{name}-{stamp}-{reason}{ext}")
