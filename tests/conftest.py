# tests/conftest.py
from __future__ import annotations

import threading
import time
from datetime import datetime, timedelta, timezone

import pytest

# Fixed instant all clock-driven tests start from unless they set their own.
FAKE_START = datetime(2024, 3, 1, 12, 0, 0, 123000, tzinfo=timezone.utc)


class FakeClock:
    """Controllable clock; thread-safe so background loops can read it."""

    def __init__(self, start: datetime = FAKE_START) -> None:
        self._now = start
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def set(self, when: datetime) -> None:
        with self._lock:
            self._now = when

    def advance(self, **kw) -> datetime:
        with self._lock:
            self._now = self._now + timedelta(**kw)
            return self._now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def eastern_time(monkeypatch):
    """Pin the process-local zone to US Eastern (DST on 2025-03-09, off 2025-11-02)."""
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset unavailable")
    # POSIX rule string; needs no tz database.
    monkeypatch.setenv("TZ", "EST5EDT,M3.2.0,M11.1.0")
    time.tzset()
    yield
    monkeypatch.undo()
    time.tzset()


@pytest.fixture
def log_path(tmp_path):
    """Live log file name inside a fresh directory."""
    return str(tmp_path / "foobar.log")
