"""
Simulation Clock

Wall-clock time plus a user-controlled offset. The offset lets a viewer
scrub backwards and forwards; every consumer of "now" in the tracking
session reads this clock so all objects agree on the same instant.
"""

import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from orbit_tracker.time_scales import as_utc


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SimulationClock:
    """
    Shiftable clock.

    Args:
        now: Source of wall-clock time (injectable for tests)
        offset: Initial offset from wall-clock time
    """

    def __init__(self, now: Optional[Callable[[], datetime]] = None,
                 offset: timedelta = timedelta(0)):
        self._now = now or _utcnow
        self._offset = offset
        self._lock = threading.Lock()

    def time(self) -> datetime:
        """Current simulation time (UTC)."""
        with self._lock:
            return as_utc(self._now()) + self._offset

    @property
    def offset(self) -> timedelta:
        with self._lock:
            return self._offset

    def set_offset(self, offset: timedelta) -> None:
        with self._lock:
            self._offset = offset

    def set_time(self, when: datetime) -> None:
        """Shift the clock so that it currently reads ``when``."""
        with self._lock:
            self._offset = as_utc(when) - as_utc(self._now())

    def advance(self, delta: timedelta) -> datetime:
        with self._lock:
            self._offset += delta
            return as_utc(self._now()) + self._offset

    def rewind(self, delta: timedelta) -> datetime:
        return self.advance(-delta)

    def reset(self) -> None:
        """Return to wall-clock time."""
        self.set_offset(timedelta(0))
