"""Wall-clock rotation marks and the background loop that fires them.

Marks come in two shapes: minutes past every hour (``rotate_at_minutes``)
and absolute times of day (``rotate_at``, ``"HH:MM"``). Both are folded into
one sorted list of ``(hour, minute)`` slots. Invalid entries are dropped
without raising so a partially wrong schedule still runs its valid part.
"""
from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from .clock import Clock, SYSTEM_CLOCK

__all__ = ["Slot", "normalize_marks", "next_slot", "ScheduledRotator"]

logger = logging.getLogger(__name__)

Slot = Tuple[int, int]

DEFAULT_POLL_INTERVAL = 1.0


def _parse_hhmm(text: object) -> Optional[Slot]:
    if not isinstance(text, str):
        return None
    parts = text.split(":")
    if len(parts) != 2:
        return None
    try:
        hour, minute = int(parts[0]), int(parts[1])
    except ValueError:
        return None
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        return None
    return hour, minute


def normalize_marks(
    minutes: Optional[Iterable[int]] = None,
    times: Optional[Iterable[str]] = None,
) -> List[Slot]:
    """Sorted, deduplicated daily slots for the given marks.

    >>> normalize_marks([0, 30], ["12:30", "14:45", "25:00"])[:3]
    [(0, 0), (0, 30), (1, 0)]
    """
    slots = set()
    dropped: List[object] = []
    for m in minutes or ():
        if isinstance(m, bool) or not isinstance(m, int) or not 0 <= m <= 59:
            dropped.append(m)
            continue
        slots.update((h, m) for h in range(24))
    for t in times or ():
        slot = _parse_hhmm(t)
        if slot is None:
            dropped.append(t)
            continue
        slots.add(slot)
    if dropped:
        logger.debug("ignoring invalid rotation marks: %r", dropped)
    return sorted(slots)


def next_slot(now: datetime, slots: Sequence[Slot], *, local_time: bool = False) -> Optional[datetime]:
    """Earliest slot strictly after ``now``, wrapping to the next day.

    Slots are wall-clock times: in the system's local zone when
    ``local_time`` is set, otherwise in ``now``'s own zone. Each candidate
    is placed in its zone separately, so a slot on the far side of a DST
    change keeps its ``HH:MM``. An ambiguous local time resolves to its
    first occurrence. ``slots`` must be sorted.
    """
    if not slots:
        return None
    if local_time:
        wall = now.astimezone().replace(tzinfo=None)

        def place(naive: datetime) -> datetime:
            return naive.astimezone()

    else:
        wall = now.replace(tzinfo=None)
        tz = now.tzinfo

        def place(naive: datetime) -> datetime:
            return naive.replace(tzinfo=tz)

    # Three days covers a slot swallowed by a spring-forward gap.
    for days in range(3):
        day = wall + timedelta(days=days)
        for hour, minute in slots:
            candidate = place(day.replace(hour=hour, minute=minute, second=0, microsecond=0))
            if candidate > now:
                return candidate
    return None


class ScheduledRotator:
    """Background thread that calls ``rotate()`` at every configured slot.

    The wait between slots is chopped into steps of at most
    ``poll_interval`` seconds and the clock is re-read after each step, so
    clock jumps and oversleeping are picked up promptly. ``rotate`` errors are
    logged and the loop moves on to the following slot.
    """

    def __init__(
        self,
        rotate: Callable[[], None],
        slots: Sequence[Slot],
        *,
        clock: Clock = SYSTEM_CLOCK,
        local_time: bool = False,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        name: str = "rollfile-schedule",
    ) -> None:
        self._rotate = rotate
        self._slots = list(slots)
        self._clock = clock
        self._local_time = local_time
        self._poll_interval = max(0.001, float(poll_interval))
        self._name = name
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._start_lock = threading.Lock()

    @property
    def slots(self) -> List[Slot]:
        return list(self._slots)

    @property
    def running(self) -> bool:
        t = self._thread
        return t is not None and t.is_alive()

    def _now(self) -> datetime:
        now = self._clock.now()
        return now.astimezone() if self._local_time else now.astimezone(timezone.utc)

    def start(self) -> bool:
        """Start the loop once; returns whether it is running.

        The first slot is chosen here, against the clock at call time. A
        stopped rotator stays stopped.
        """
        if not self._slots:
            return False
        with self._start_lock:
            if self._thread is not None or self._stop.is_set():
                return self.running
            first = next_slot(self._now(), self._slots, local_time=self._local_time)
            self._thread = threading.Thread(target=self._run, args=(first,), name=self._name, daemon=True)
            self._thread.start()
        return True

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop the loop and wait for it to exit. Safe to call repeatedly."""
        self._stop.set()
        t = self._thread
        if t is not None and t is not threading.current_thread():
            t.join(timeout)

    def _wait_until(self, slot: datetime) -> bool:
        while True:
            remaining = (slot - self._now()).total_seconds()
            if remaining <= 0:
                return not self._stop.is_set()
            if self._stop.wait(min(remaining, self._poll_interval)):
                return False

    def _run(self, slot: Optional[datetime]) -> None:
        while slot is not None and not self._stop.is_set():
            if not self._wait_until(slot):
                return
            logger.debug("scheduled rotation at %s", slot.isoformat())
            try:
                self._rotate()
            except Exception:  # noqa: BLE001 - the loop must outlive a failed rotation
                logger.warning("scheduled rotation at %s failed", slot.isoformat(), exc_info=True)
            slot = next_slot(max(self._now(), slot), self._slots, local_time=self._local_time)
