"""
Data records shared by the tracker modules
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Optional


def parse_time(value):
    """
    Convert a timestamp from JSON or the database into an aware UTC datetime

    Args:
        value: ISO format string (a trailing 'Z' is accepted) or datetime

    Returns:
        datetime: Timezone-aware datetime in UTC, or None if value is None

    Raises:
        TypeError: If value is neither a string nor a datetime
        ValueError: If the string is not ISO format
    """
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace('Z', '+00:00'))
    elif not isinstance(value, datetime):
        raise TypeError(f"Expected ISO string or datetime, got {type(value).__name__}")
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_time(value):
    """Fixed-width ISO string, so that text columns sort chronologically"""
    return parse_time(value).isoformat(timespec='microseconds')


@dataclass(frozen=True)
class Fix:
    """A single raw GPS sample"""

    latitude: float
    longitude: float
    measured_at: datetime
    sent_at: Optional[datetime] = None


@dataclass(frozen=True)
class EnrichedFix:
    """
    A fix plus the motion state derived from the boat's previous fix.

    Attributes:
        distance: Cumulative distance sailed in nautical miles
        heading: Degrees in [0, 360), clockwise from north
        velocity: Knots
        regatta_id: Event window the fix falls into, if any
    """

    latitude: float
    longitude: float
    measured_at: datetime
    sent_at: Optional[datetime] = None
    distance: float = 0.0
    heading: float = 0.0
    velocity: float = 0.0
    regatta_id: Optional[str] = None

    def to_dict(self):
        return {
            'measure_time': format_time(self.measured_at),
            'latitude': self.latitude,
            'longitude': self.longitude,
            'heading': self.heading,
            'distance': self.distance,
            'velocity': self.velocity,
            'regatta_id': self.regatta_id,
        }


@dataclass(frozen=True)
class Buoy:
    """
    A versioned course mark.

    Attributes:
        pass_angle: Bearing (degrees) the gate line points to from the buoy
        clockwise: True if the buoy must be rounded clockwise
        tolerance: Metres the gate extends behind the buoy
        sequence: Position of the buoy in the course order
    """

    id: str
    version: int
    latitude: float
    longitude: float
    pass_angle: float
    clockwise: bool
    tolerance: float
    valid_from: datetime
    valid_to: Optional[datetime] = None
    sequence: int = 0

    def to_dict(self):
        return {
            'id': self.id,
            'version': self.version,
            'latitude': self.latitude,
            'longitude': self.longitude,
            'pass_angle': self.pass_angle,
            'is_pass_direction_clockwise': self.clockwise,
            'tolerance_in_meters': self.tolerance,
        }


@dataclass(frozen=True)
class Round:
    """One lap of a boat in a regatta; end_time is None while the lap is open"""

    id: int
    regatta_id: str
    boat: str
    start_time: datetime
    end_time: Optional[datetime] = None


@dataclass(frozen=True)
class Section:
    """The leg of a round between two consecutive buoys"""

    id: int
    round_id: int
    regatta_id: str
    boat: str
    start_time: datetime
    end_time: Optional[datetime] = None
    buoy_start: Optional[str] = None
    buoy_end: Optional[str] = None


@dataclass
class BoatProgress:
    """
    Race progress of one boat in one regatta.

    current_round counts from 1 (0 before the first round is opened) and
    current_section is the 0-based index of the leg that ends at buoy
    current_section. closed is set once the boat leaves the regatta.
    """

    regatta_id: str
    current_round: int = 0
    current_section: int = 0
    round_start_time: Optional[datetime] = None
    section_start_time: Optional[datetime] = None
    completed_round_durations: List[timedelta] = field(default_factory=list)
    completed_section_durations: List[timedelta] = field(default_factory=list)
    closed: bool = False

    @property
    def section_number(self):
        """Section identifier as recorded in the store (1-based)"""
        return self.current_section + 1
