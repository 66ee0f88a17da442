from __future__ import annotations

import logging
import os
import threading
import time
from datetime import datetime, timezone

from rollfile import RollingFile
from rollfile.schedule import ScheduledRotator, next_slot, normalize_marks

from tests.helpers.files import exists_with_content, wait_for


def _utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


class _Counter:
    def __init__(self, fail_first=False):
        self.calls = 0
        self._fail_first = fail_first
        self._lock = threading.Lock()

    def __call__(self):
        with self._lock:
            self.calls += 1
            if self._fail_first and self.calls == 1:
                raise OSError("disk on fire")


# ---- marks ----------------------------------------------------------------

def test_minutes_expand_to_every_hour():
    slots = normalize_marks([15])
    assert len(slots) == 24
    assert slots[0] == (0, 15)
    assert slots[-1] == (23, 15)


def test_invalid_minutes_are_dropped():
    assert normalize_marks([-1, 60, True, "7"]) == []
    assert len(normalize_marks([-1, 5, 60])) == 24


def test_invalid_times_are_dropped():
    got = normalize_marks(times=["12:30", "14:45", "25:00", "12:60", "noon", "1:2:3", 600])
    assert got == [(12, 30), (14, 45)]


def test_marks_are_merged_and_deduplicated():
    slots = normalize_marks([0, 30], ["12:30", "14:45"])
    assert len(slots) == 49
    assert slots == sorted(slots)
    assert normalize_marks([0, 30], ["12:30", "14:45", "25:00"])[:3] == [(0, 0), (0, 30), (1, 0)]


def test_no_marks():
    assert normalize_marks() == []
    assert normalize_marks([], []) == []


def test_next_slot_same_day():
    slots = normalize_marks([0, 15, 30])
    assert next_slot(_utc(2025, 5, 12, 14, 0, 59), slots) == _utc(2025, 5, 12, 14, 15)


def test_next_slot_is_strictly_after_now():
    slots = normalize_marks([0, 15, 30])
    assert next_slot(_utc(2025, 5, 12, 14, 15), slots) == _utc(2025, 5, 12, 14, 30)


def test_next_slot_wraps_to_tomorrow():
    assert next_slot(_utc(2025, 5, 12, 23, 50), [(10, 0)]) == _utc(2025, 5, 13, 10, 0)
    assert next_slot(_utc(2025, 12, 31, 23, 50), [(0, 0)]) == _utc(2026, 1, 1, 0, 0)


def test_next_slot_without_slots():
    assert next_slot(_utc(2025, 5, 12), []) is None
    assert next_slot(_utc(2025, 5, 12), [], local_time=True) is None


def _local_hhmm(instant):
    local = instant.astimezone()
    return local.hour, local.minute


def test_local_slot_same_day_after_spring_forward(eastern_time):
    # 01:00 EST; noon that day is already EDT.
    got = next_slot(_utc(2025, 3, 9, 6, 0), [(12, 0)], local_time=True)
    assert got == _utc(2025, 3, 9, 16, 0)
    assert _local_hhmm(got) == (12, 0)


def test_local_slot_next_day_after_spring_forward(eastern_time):
    # Saturday 15:00 EST; Sunday 10:00 is EDT.
    got = next_slot(_utc(2025, 3, 8, 20, 0), [(10, 0)], local_time=True)
    assert got == _utc(2025, 3, 9, 14, 0)
    assert _local_hhmm(got) == (10, 0)


def test_local_slot_after_fall_back(eastern_time):
    # 01:00 EDT; noon that day is EST.
    got = next_slot(_utc(2025, 11, 2, 5, 0), [(12, 0)], local_time=True)
    assert got == _utc(2025, 11, 2, 17, 0)
    assert _local_hhmm(got) == (12, 0)


def test_local_slot_inside_spring_forward_gap(eastern_time):
    # 02:30 does not exist on 2025-03-09; the next real 02:30 is the day after.
    got = next_slot(_utc(2025, 3, 9, 8, 0), [(2, 30)], local_time=True)
    assert _local_hhmm(got) == (2, 30)
    assert got.astimezone().date().isoformat() == "2025-03-10"


# ---- background loop ------------------------------------------------------

def test_rotator_fires_once_per_slot(clock):
    rotate = _Counter()
    clock.set(_utc(2025, 5, 12, 12, 0))
    r = ScheduledRotator(rotate, [(12, 30)], clock=clock, poll_interval=0.01)
    try:
        assert r.start()
        assert r.running
        time.sleep(0.05)
        assert rotate.calls == 0
        clock.set(_utc(2025, 5, 12, 12, 30))
        assert wait_for(lambda: rotate.calls == 1)
        time.sleep(0.05)
        assert rotate.calls == 1
    finally:
        r.stop()
    assert not r.running


def test_local_time_rotator_fires_at_wall_clock_across_dst(clock, eastern_time):
    rotate = _Counter()
    clock.set(_utc(2025, 3, 9, 6, 0))
    r = ScheduledRotator(rotate, [(12, 0)], clock=clock, local_time=True, poll_interval=0.01)
    try:
        r.start()
        clock.set(_utc(2025, 3, 9, 16, 0))
        assert wait_for(lambda: rotate.calls == 1)
    finally:
        r.stop()


def test_rotator_stop_is_final(clock):
    r = ScheduledRotator(_Counter(), [(12, 30)], clock=clock, poll_interval=0.01)
    assert r.start()
    r.stop()
    r.stop()
    assert not r.running
    assert not r.start()


def test_rotator_without_slots_never_starts(clock):
    r = ScheduledRotator(_Counter(), [], clock=clock)
    assert not r.start()
    assert not r.running
    r.stop()


def test_rotator_survives_failed_rotation(clock, caplog):
    rotate = _Counter(fail_first=True)
    clock.set(_utc(2025, 5, 12, 12, 0))
    r = ScheduledRotator(rotate, [(12, 30), (12, 45)], clock=clock, poll_interval=0.01)
    with caplog.at_level(logging.WARNING, logger="rollfile.schedule"):
        r.start()
        try:
            clock.set(_utc(2025, 5, 12, 12, 30))
            assert wait_for(lambda: rotate.calls == 1)
            clock.set(_utc(2025, 5, 12, 12, 45))
            assert wait_for(lambda: rotate.calls == 2)
        finally:
            r.stop()
    assert any("scheduled rotation" in rec.getMessage() for rec in caplog.records)


# ---- through the writer ---------------------------------------------------

def _writer(log_path, clock, **kw):
    return RollingFile(filename=log_path, size_unit=1, schedule_poll_interval=0.01, clock=clock, **kw)


def test_writer_rotates_at_quarter_hour(tmp_path, log_path, clock):
    clock.set(_utc(2025, 5, 12, 14, 0, 59))
    backup = str(tmp_path / "foobar-2025-05-12T14-15-00.000-time.log")
    with _writer(log_path, clock, rotate_at_minutes=[0, 15, 30]) as w:
        w.write(b"first\n")
        assert w._scheduler.running
        clock.set(_utc(2025, 5, 12, 14, 1))
        w.write(b"more\n")
        time.sleep(0.05)
        assert os.listdir(str(tmp_path)) == ["foobar.log"]
        clock.set(_utc(2025, 5, 12, 14, 15))
        assert wait_for(lambda: os.path.exists(backup))
        w.write(b"second\n")
    assert not w._scheduler.running
    exists_with_content(backup, b"first\nmore\n")
    exists_with_content(log_path, b"second\n")


def test_writer_rotates_at_time_of_day(tmp_path, log_path, clock):
    clock.set(_utc(2025, 5, 12, 9, 59))
    backup = str(tmp_path / "foobar-2025-05-12T10-00-00.000-time.log")
    with _writer(log_path, clock, rotate_at=["10:00"]) as w:
        w.write(b"before\n")
        clock.set(_utc(2025, 5, 12, 10, 0))
        assert wait_for(lambda: os.path.exists(backup))
    exists_with_content(backup, b"before\n")
    exists_with_content(log_path, b"")


def test_scheduler_waits_for_first_write(log_path, clock):
    with _writer(log_path, clock, rotate_at_minutes=[0]) as w:
        assert not w._scheduler.running


def test_scheduled_rotation_after_close_is_skipped(tmp_path, log_path, clock):
    w = _writer(log_path, clock, rotate_at_minutes=[0])
    w.write(b"boo!")
    w.close()
    w._rotate_scheduled()
    assert os.listdir(str(tmp_path)) == ["foobar.log"]
