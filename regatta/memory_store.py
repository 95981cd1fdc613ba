"""
In-memory store with the same interface as Database

Used by the tests and for dry runs without a database. Writes become
visible immediately and are kept or discarded by commit() and rollback().
"""

import copy
from dataclasses import replace

from regatta.errors import ConsistencyError
from regatta.models import Round, Section


class MemoryStore:

    def __init__(self, regattas=(), buoys=()):
        """
        Args:
            regattas: Iterable of (id, start_time, end_time)
            buoys: Iterable of Buoy
        """
        self.regattas = list(regattas)
        self.buoys = list(buoys)
        self.positions = {}
        self.raw_positions = {}
        self.round_rows = []
        self.section_rows = []
        self.commits = 0
        self._saved = self._snapshot()

    def _snapshot(self):
        return copy.deepcopy((self.positions, self.raw_positions, self.round_rows, self.section_rows))

    def commit(self):
        self._saved = self._snapshot()
        self.commits += 1

    def rollback(self):
        self.positions, self.raw_positions, self.round_rows, self.section_rows = copy.deepcopy(self._saved)

    def close(self):
        pass

    # Positions

    def append_enriched_fixes(self, boat, fixes):
        self.positions.setdefault(boat, []).extend(fixes)

    def last_enriched_fix(self, boat, lower_bound, upper_bound):
        matching = [fix for fix in self.positions.get(boat, [])
                    if lower_bound <= fix.measured_at <= upper_bound]
        return matching[-1] if matching else None

    def positions_between(self, boat, start_time, end_time):
        matching = [fix for fix in self.positions.get(boat, [])
                    if start_time <= fix.measured_at <= end_time]
        return list(reversed(matching))

    def insert_raw_fixes(self, boat, fixes):
        rows = self.raw_positions.setdefault(boat, [])
        rows.extend(fixes)
        rows.sort(key=lambda fix: fix.measured_at)

    def raw_fixes(self, boat, since, until):
        return [fix for fix in self.raw_positions.get(boat, [])
                if since < fix.measured_at <= until]

    # Regattas and course

    def event_window_at(self, time):
        for regatta_id, start_time, end_time in sorted(self.regattas, key=lambda r: r[1]):
            if start_time <= time < end_time:
                return regatta_id
        return None

    def active_buoys(self, time):
        active = [buoy for buoy in self.buoys
                  if buoy.valid_from <= time and (buoy.valid_to is None or buoy.valid_to > time)]
        return sorted(active, key=lambda buoy: (buoy.sequence, buoy.id))

    # Rounds and sections

    def rounds(self, regatta_id, boat, until=None):
        return sorted((r for r in self.round_rows
                       if r.regatta_id == regatta_id and r.boat == boat
                       and (until is None or r.start_time <= until)),
                      key=lambda r: r.id)

    def open_round(self, regatta_id, boat):
        open_rounds = [r for r in self.rounds(regatta_id, boat) if r.end_time is None]
        return open_rounds[-1] if open_rounds else None

    def last_closed_round(self, regatta_id, boat):
        closed = [r for r in self.rounds(regatta_id, boat) if r.end_time is not None]
        return closed[-1] if closed else None

    def start_round(self, round_id, regatta_id, boat, start_time):
        if any(r.id == round_id for r in self.rounds(regatta_id, boat)):
            raise ConsistencyError(f"round {round_id} of {boat} in {regatta_id} already exists")
        self.round_rows.append(Round(round_id, regatta_id, boat, start_time))

    def end_round(self, round_id, regatta_id, boat, end_time):
        for i, r in enumerate(self.round_rows):
            if (r.id, r.regatta_id, r.boat) == (round_id, regatta_id, boat) and r.end_time is None:
                self.round_rows[i] = replace(r, end_time=end_time)
                return True
        return False

    def sections(self, regatta_id, boat, until=None):
        return sorted((s for s in self.section_rows
                       if s.regatta_id == regatta_id and s.boat == boat
                       and (until is None or s.start_time <= until)),
                      key=lambda s: (s.round_id, s.id))

    def _round_sections(self, round_id, regatta_id, boat):
        return [s for s in self.sections(regatta_id, boat) if s.round_id == round_id]

    def open_section(self, round_id, regatta_id, boat):
        open_sections = [s for s in self._round_sections(round_id, regatta_id, boat) if s.end_time is None]
        return open_sections[-1] if open_sections else None

    def last_closed_section(self, round_id, regatta_id, boat):
        closed = [s for s in self._round_sections(round_id, regatta_id, boat) if s.end_time is not None]
        return closed[-1] if closed else None

    def start_section(self, section_id, round_id, regatta_id, boat, start_time, buoy_start, buoy_end):
        if any(s.id == section_id for s in self._round_sections(round_id, regatta_id, boat)):
            raise ConsistencyError(
                f"section {section_id} of round {round_id} for {boat} in {regatta_id} already exists")
        self.section_rows.append(Section(section_id, round_id, regatta_id, boat, start_time,
                                         buoy_start=buoy_start.id, buoy_end=buoy_end.id))

    def end_section(self, section_id, round_id, regatta_id, boat, end_time):
        for i, s in enumerate(self.section_rows):
            if ((s.id, s.round_id, s.regatta_id, s.boat) == (section_id, round_id, regatta_id, boat)
                    and s.end_time is None):
                self.section_rows[i] = replace(s, end_time=end_time)
                return True
        return False
