"""
Tests for position enrichment and the per-boat poll cycle
"""

import pytest
from datetime import datetime, timedelta, timezone

from regatta.enrichment import BoatUpdater, enrich_fixes, validate_batch
from regatta.errors import ConsistencyError, InputError, SourceError
from regatta.memory_store import MemoryStore
from regatta.models import Buoy, EnrichedFix, Fix

LAT = 53.5655
LON = 10.0091
BOAT = 'Bluebird'
REGATTA = 'ASV.24h.2024'
T0 = datetime(2024, 8, 3, 12, 0, tzinfo=timezone.utc)
REGATTAS = [(REGATTA, datetime(2024, 8, 3, 11, 0, tzinfo=timezone.utc),
             datetime(2024, 8, 4, 12, 0, tzinfo=timezone.utc))]
BUOYS = [Buoy(f'B{k}', 1, LAT, LON + 0.1 * k, 0, True, 100,
              datetime(2024, 1, 1, tzinfo=timezone.utc), sequence=k) for k in range(4)]


def at(seconds):
    return T0 + timedelta(seconds=seconds)


def no_window(time):
    return None


class FakeSource:
    """Position source serving a fixed list of fixes"""

    def __init__(self, fixes=(), error=None):
        self.fixes = list(fixes)
        self.error = error
        self.calls = []

    def fetch(self, boat, since, until):
        self.calls.append((boat, since, until))
        if self.error:
            raise self.error
        return [fix for fix in self.fixes if since < fix.measured_at <= until]


class FixedClock:

    def __init__(self, now):
        self.now_value = now

    def now(self):
        return self.now_value

    def real_now(self):
        return self.now_value


class TestEnrichFixes:
    """Tests for enrich_fixes"""

    def test_first_fix_starts_at_zero(self):
        """Test the first fix ever has no distance, heading or speed"""
        result = enrich_fixes(None, [Fix(LAT, LON, at(0))], no_window)
        assert len(result) == 1
        assert (result[0].distance, result[0].heading, result[0].velocity) == (0, 0, 0)

    def test_motion_state(self):
        """Test distance, heading and velocity of a move north"""
        fixes = [Fix(0, 0, at(0)), Fix(1 / 60, 0, at(3600))]
        result = enrich_fixes(None, fixes, no_window)
        assert result[1].distance == pytest.approx(1)
        assert result[1].heading == pytest.approx(0)
        assert result[1].velocity == pytest.approx(1)

    def test_distance_accumulates(self):
        """Test distance adds up over the track, starting from the last fix"""
        last = EnrichedFix(0, 0, at(0), distance=5.0)
        fixes = [Fix(1 / 60, 0, at(60)), Fix(2 / 60, 0, at(120))]
        result = enrich_fixes(last, fixes, no_window)
        assert [fix.distance for fix in result] == pytest.approx([6, 7])

    def test_heading_kept_when_not_moving(self):
        """Test a boat that did not move keeps its heading"""
        last = EnrichedFix(0, 0, at(0), heading=123.0, velocity=4.0)
        result = enrich_fixes(last, [Fix(0, 0, at(10))], no_window)
        assert result[0].heading == 123.0
        assert result[0].velocity == 0

    def test_heading_is_normalized(self):
        """Test a move west gives 270 instead of -90"""
        result = enrich_fixes(None, [Fix(0, 0, at(0)), Fix(0, -0.01, at(10))], no_window)
        assert result[1].heading == pytest.approx(270)

    def test_velocity_kept_without_time(self):
        """Test two fixes with the same time keep the previous velocity"""
        last = EnrichedFix(0, 0, at(0), velocity=4.0)
        result = enrich_fixes(last, [Fix(0.01, 0, at(0))], no_window)
        assert result[0].velocity == 4.0
        assert result[0].distance == pytest.approx(0.6)

    def test_regatta_lookup(self):
        """Test every fix is tagged with the regatta running at its time"""
        def window(time):
            return REGATTA if time >= at(10) else None

        result = enrich_fixes(None, [Fix(0, 0, at(0)), Fix(0, 0, at(10))], window)
        assert [fix.regatta_id for fix in result] == [None, REGATTA]


class TestValidateBatch:
    """Tests for validate_batch"""

    def test_ascending_batch(self):
        """Test an ordered batch after the last fix passes"""
        last = EnrichedFix(0, 0, at(0))
        validate_batch(last, [Fix(0, 0, at(0)), Fix(0, 0, at(1)), Fix(0, 0, at(1))])

    def test_batch_older_than_last(self):
        """Test a batch starting before the last processed fix is rejected"""
        last = EnrichedFix(0, 0, at(10))
        with pytest.raises(InputError):
            validate_batch(last, [Fix(0, 0, at(5))])

    def test_unordered_batch(self):
        """Test a batch out of order is rejected"""
        with pytest.raises(InputError):
            validate_batch(None, [Fix(0, 0, at(5)), Fix(0, 0, at(2))])


class TestBoatUpdater:
    """Tests for one poll cycle"""

    def setup_method(self):
        self.store = MemoryStore(regattas=REGATTAS, buoys=BUOYS)
        self.config = {'tracking_start_time': at(-3600), 'buoy_far_off_distance': 1000}
        self.clock = FixedClock(at(100))

    def make_updater(self, source):
        return BoatUpdater(BOAT, self.store, source, self.clock, self.config)

    def test_poll_stores_and_tracks(self):
        """Test a poll enriches, stores and starts race progress"""
        source = FakeSource([Fix(LAT + 0.001, LON - 0.001, at(0)), Fix(LAT + 0.001, LON + 0.001, at(10))])
        updater = self.make_updater(source)

        assert updater.poll() == 2
        assert self.store.commits == 1
        assert len(self.store.positions[BOAT]) == 2
        assert updater.race.progress.section_number == 2
        assert source.calls == [(BOAT, at(-3600), at(100))]

    def test_poll_continues_from_last_fix(self):
        """Test the second poll asks only for fixes after the last stored one"""
        source = FakeSource([Fix(LAT, LON + 0.01, at(0))])
        updater = self.make_updater(source)
        updater.poll()

        source.fixes.append(Fix(LAT, LON + 0.011, at(20)))
        assert updater.poll() == 1
        assert source.calls[-1] == (BOAT, at(0), at(100))
        assert self.store.positions[BOAT][-1].distance > 0

    def test_empty_poll(self):
        """Test nothing to fetch commits nothing"""
        updater = self.make_updater(FakeSource())
        assert updater.poll() == 0
        assert self.store.commits == 0

    def test_source_error_propagates(self):
        """Test a failing source leaves the store untouched"""
        updater = self.make_updater(FakeSource(error=SourceError('timeout')))
        with pytest.raises(SourceError):
            updater.poll()
        assert self.store.positions == {}

    def test_failed_batch_is_rolled_back(self):
        """Test a consistency fault discards the whole batch and the progress change"""
        source = FakeSource([Fix(LAT + 0.001, LON - 0.001, at(0))])
        updater = self.make_updater(source)
        updater.poll()
        saved_progress = updater.race.progress
        assert saved_progress.current_section == 0

        # Section closed behind the tracker's back
        self.store.end_section(1, 1, REGATTA, BOAT, at(5))
        self.store.commit()

        source.fixes.append(Fix(LAT + 0.001, LON + 0.001, at(10)))
        with pytest.raises(ConsistencyError):
            updater.poll()

        assert len(self.store.positions[BOAT]) == 1
        assert updater.race.progress == saved_progress
