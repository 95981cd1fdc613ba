"""
Round and section tracking for one boat

Consecutive enriched fixes are fed through RaceProgress.advance(). Entering
a regatta's time window opens a round and a section, crossing the gate of
the buoy that ends the current section moves on to the next section (and
after the last buoy to the next round), and leaving the window closes
whatever is open. Every change is written to the store right away; the
caller commits or rolls back the whole batch.
"""

import logging

from regatta.buoys import BUOY_FAR_OFF_DISTANCE, crossed
from regatta.errors import ConsistencyError, InputError
from regatta.models import BoatProgress

logger = logging.getLogger(__name__)


class RaceProgress:
    """Owns the BoatProgress of one boat and keeps the store in step with it"""

    def __init__(self, store, boat, far_off_distance=BUOY_FAR_OFF_DISTANCE):
        self.store = store
        self.boat = boat
        self.far_off_distance = far_off_distance
        self.progress = None

    def process(self, last_fix, fixes):
        """
        Advance through a batch of enriched fixes

        Args:
            last_fix: Last fix processed before this batch, or None if the
                      boat has never been seen
            fixes: EnrichedFix objects in ascending measure time
        """
        previous = last_fix
        for fix in fixes:
            if previous is None:
                if fix.regatta_id is not None:
                    self._resume(fix.regatta_id, fix.measured_at)
            else:
                self.advance(previous, fix)
            previous = fix

    def advance(self, old_fix, new_fix):
        """Apply the transition for one pair of consecutive fixes"""
        seconds = (new_fix.measured_at - old_fix.measured_at).total_seconds()
        if seconds == 0:
            return
        if seconds < 0:
            raise InputError(f"{self.boat}: fix at {new_fix.measured_at} is older than {old_fix.measured_at}")

        old_window = old_fix.regatta_id
        new_window = new_fix.regatta_id

        if old_window is None and new_window is None:
            return

        if old_window != new_window:
            if old_window is not None:
                self._close(old_window, new_fix.measured_at)
            if new_window is not None:
                self._resume(new_window, new_fix.measured_at)
            return

        progress = self.progress
        if (progress is None or progress.regatta_id != new_window or progress.closed
                or not progress.current_round or progress.section_start_time is None):
            progress = self._resume(new_window, new_fix.measured_at)

        self._check_crossing(progress, old_fix, new_fix)

    def rebuild(self, regatta_id, at):
        """
        Derive the progress of the boat in a regatta from the store alone

        Args:
            regatta_id: Regatta to look at
            at: Time used to look up the course when the open round has
                no open section

        Returns:
            BoatProgress: current_round is 0 if the boat has no rounds yet;
                          closed is set if no round is open
        """
        progress = BoatProgress(regatta_id)
        progress.completed_round_durations = [
            r.end_time - r.start_time for r in self.store.rounds(regatta_id, self.boat) if r.end_time]
        progress.completed_section_durations = [
            s.end_time - s.start_time for s in self.store.sections(regatta_id, self.boat) if s.end_time]

        current = self.store.open_round(regatta_id, self.boat)
        if current is None:
            current = self.store.last_closed_round(regatta_id, self.boat)
            if current is None:
                return progress
            progress.closed = True
        else:
            progress.round_start_time = current.start_time
        progress.current_round = current.id

        section = self.store.open_section(current.id, regatta_id, self.boat)
        if section is not None:
            progress.current_section = section.id - 1
            progress.section_start_time = section.start_time
            return progress

        section = self.store.last_closed_section(current.id, regatta_id, self.boat)
        if section is None:
            return progress
        if progress.closed:
            progress.current_section = section.id - 1
        else:
            # Round still open, so the next section is the one to sail
            progress.current_section = section.id % (len(self.store.active_buoys(at)) or 1)
        return progress

    def _resume(self, regatta_id, at):
        """Pick up the open round and section, opening the next ones if needed"""
        progress = self.rebuild(regatta_id, at)

        if progress.closed or not progress.current_round:
            progress.current_round += 1
            progress.current_section = 0
            progress.closed = False
            progress.round_start_time = at
            progress.section_start_time = None
            self.store.start_round(progress.current_round, regatta_id, self.boat, at)
            logger.info(f"{self.boat} started round {progress.current_round} in {regatta_id}")

        if progress.section_start_time is None:
            self._start_section(progress, progress.current_section, at)

        self.progress = progress
        return progress

    def _close(self, regatta_id, at):
        progress = self.progress
        if progress is None or progress.regatta_id != regatta_id or progress.closed:
            progress = self.rebuild(regatta_id, at)

        if progress.closed or not progress.current_round or progress.section_start_time is None:
            raise ConsistencyError(f"{self.boat} left {regatta_id} without an open round and section")

        self._end_section(progress, at)
        self._end_round(progress, at)
        progress.closed = True
        self.progress = progress
        logger.info(f"{self.boat} left {regatta_id} in round {progress.current_round}, "
                    f"section {progress.section_number}")

    def _buoys(self, at):
        buoys = self.store.active_buoys(at)
        if not buoys:
            raise InputError(f"No buoys active at {at}")
        return buoys

    def _check_crossing(self, progress, old_fix, new_fix):
        at = new_fix.measured_at
        buoys = self._buoys(at)
        if progress.current_section >= len(buoys):
            raise InputError(f"{self.boat}: section {progress.section_number} but only {len(buoys)} buoys active")

        passed = crossed(buoys, old_fix, new_fix, self.far_off_distance)
        if not passed[progress.current_section]:
            return

        buoy = buoys[progress.current_section]
        logger.info(f"{self.boat} passed {buoy.id} in round {progress.current_round}, "
                    f"section {progress.section_number} at {at.isoformat()}")
        self._end_section(progress, at)

        if progress.current_section == len(buoys) - 1:
            duration = self._end_round(progress, at)
            logger.info(f"✓ {self.boat} finished round {progress.current_round} in {duration}")
            progress.current_round += 1
            progress.round_start_time = at
            self.store.start_round(progress.current_round, progress.regatta_id, self.boat, at)
            self._start_section(progress, 0, at, buoys)
        else:
            self._start_section(progress, progress.current_section + 1, at, buoys)

    def _start_section(self, progress, index, at, buoys=None):
        if buoys is None:
            buoys = self._buoys(at)
        if index >= len(buoys):
            raise InputError(f"{self.boat}: section {index + 1} but only {len(buoys)} buoys active")

        progress.current_section = index
        progress.section_start_time = at
        self.store.start_section(progress.section_number, progress.current_round, progress.regatta_id,
                                 self.boat, at, buoys[index - 1], buoys[index])

    def _end_section(self, progress, at):
        if not self.store.end_section(progress.section_number, progress.current_round,
                                      progress.regatta_id, self.boat, at):
            raise ConsistencyError(f"{self.boat}: section {progress.section_number} of round "
                                   f"{progress.current_round} in {progress.regatta_id} is not open")
        progress.completed_section_durations.append(at - progress.section_start_time)
        progress.section_start_time = None

    def _end_round(self, progress, at):
        if not self.store.end_round(progress.current_round, progress.regatta_id, self.boat, at):
            raise ConsistencyError(f"{self.boat}: round {progress.current_round} "
                                   f"in {progress.regatta_id} is not open")
        duration = at - progress.round_start_time
        progress.completed_round_durations.append(duration)
        progress.round_start_time = None
        return duration
