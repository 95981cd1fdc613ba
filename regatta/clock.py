"""
Adjustable clock that decouples simulated time from wall-clock time

Used to replay a regatta at a different speed or to pretend the current time
is something else while testing and demoing.
"""

import logging
from datetime import datetime, timezone
from threading import Lock

logger = logging.getLogger(__name__)


class SystemTimeSource:
    """Wall-clock time in UTC"""

    def now(self):
        return datetime.now(timezone.utc)


class VirtualClock:
    """
    Clock reporting reference_time + (real_now - reference_real_time) * speed.

    Reads and reconfiguration may happen on different threads, so the
    reference fields are only touched while holding the lock.
    """

    def __init__(self, time_source=None):
        self.time_source = time_source or SystemTimeSource()
        self._lock = Lock()
        now = self.time_source.now()
        self._reference_time = now
        self._reference_real_time = now
        self._speed = 1.0

    @property
    def speed(self):
        with self._lock:
            return self._speed

    def _now(self, real_now):
        elapsed = real_now - self._reference_real_time
        return self._reference_time + elapsed * self._speed

    def now(self):
        """Current simulated time"""
        real_now = self.time_source.now()
        with self._lock:
            return self._now(real_now)

    def real_now(self):
        """Actual wall-clock time, never affected by the mapping"""
        return self.time_source.now()

    def set_speed(self, speed):
        """Change the speed factor without a jump in simulated time"""
        real_now = self.time_source.now()
        with self._lock:
            self._reference_time = self._now(real_now)
            self._reference_real_time = real_now
            self._speed = float(speed)
        logger.info(f"Clock speed set to {speed}")

    def set_offset(self, offset):
        """Run simulated time behind real time by offset (a timedelta)"""
        real_now = self.time_source.now()
        with self._lock:
            self._reference_time = real_now - offset
            self._reference_real_time = real_now

    def set_time_mapping(self, real_time, fake_time):
        """Report fake_time at the moment the wall clock shows real_time"""
        with self._lock:
            self._reference_time = fake_time
            self._reference_real_time = real_time

    def set_current_time_as(self, fake_time):
        """Report fake_time right now, keeping the current speed"""
        real_now = self.time_source.now()
        with self._lock:
            self._reference_time = fake_time
            self._reference_real_time = real_now
        logger.info(f"Clock set to {fake_time.isoformat()}")

    def reset(self):
        """Back to real time at normal speed"""
        real_now = self.time_source.now()
        with self._lock:
            self._reference_time = real_now
            self._reference_real_time = real_now
            self._speed = 1.0
        logger.info("Clock reset to real time")
