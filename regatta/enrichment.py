"""
Position enrichment: turns raw fixes into fixes with distance, heading and speed
and drives the race progress of a boat once per poll
"""

import copy
import logging

from regatta.buoys import BUOY_FAR_OFF_DISTANCE
from regatta.errors import InputError
from regatta.models import EnrichedFix
from regatta.motion import calculate_heading, distance_nm, normalize_heading, velocity_knots
from regatta.progress import RaceProgress

logger = logging.getLogger(__name__)


def validate_batch(last, fixes):
    """
    Reject batches that would have to be merged into already processed history

    Args:
        last: Last processed fix of the boat, or None
        fixes: Newly fetched fixes

    Raises:
        InputError: If the batch starts before the last processed fix or is
                    not in ascending measure time
    """
    previous = last.measured_at if last is not None else None
    for fix in fixes:
        if previous is not None and fix.measured_at < previous:
            raise InputError(f"Fix at {fix.measured_at.isoformat()} is older than {previous.isoformat()}")
        previous = fix.measured_at


def enrich_fixes(last, fixes, window_lookup):
    """
    Derive motion state for each fix from its predecessor

    Distance accumulates over the whole track. Heading only changes when the
    boat actually moved and velocity only when time passed; otherwise the
    previous values are carried over. The very first fix of a boat starts at
    zero for all three.

    Args:
        last: Last EnrichedFix of the boat, or None
        fixes: Fix objects in ascending measure time
        window_lookup: Callable mapping a time to a regatta id or None

    Returns:
        list: EnrichedFix objects, one per input fix
    """
    enriched = []
    previous = last

    for fix in fixes:
        regatta_id = window_lookup(fix.measured_at)

        if previous is None:
            item = EnrichedFix(fix.latitude, fix.longitude, fix.measured_at, fix.sent_at,
                               regatta_id=regatta_id)
        else:
            step = distance_nm(previous.latitude, previous.longitude, fix.latitude, fix.longitude)

            heading = previous.heading
            if step > 0:
                heading = normalize_heading(calculate_heading(previous.latitude, previous.longitude,
                                                              fix.latitude, fix.longitude))

            seconds = (fix.measured_at - previous.measured_at).total_seconds()
            velocity = velocity_knots(step, seconds)
            if velocity is None:
                velocity = previous.velocity

            item = EnrichedFix(fix.latitude, fix.longitude, fix.measured_at, fix.sent_at,
                               distance=previous.distance + step,
                               heading=heading,
                               velocity=velocity,
                               regatta_id=regatta_id)

        enriched.append(item)
        previous = item

    return enriched


class BoatUpdater:
    """
    One boat's poll cycle: fetch, enrich, store and track progress.

    A poll is all or nothing. If anything fails, the store is rolled back
    and the in-memory progress is restored before the error propagates, so
    the next poll starts again from the last committed fix.
    """

    def __init__(self, boat, store, source, clock, config):
        self.boat = boat
        self.store = store
        self.source = source
        self.clock = clock
        self.config = config
        self.race = RaceProgress(store, boat, config.get('buoy_far_off_distance', BUOY_FAR_OFF_DISTANCE))

    def poll(self):
        """
        Run one poll cycle

        Returns:
            int: Number of fixes processed
        """
        real_now = self.clock.real_now()
        tracking_start = self.config['tracking_start_time']
        saved_progress = copy.deepcopy(self.race.progress)

        try:
            last = self.store.last_enriched_fix(self.boat, tracking_start, real_now)
            since = last.measured_at if last is not None else tracking_start
            fixes = self.source.fetch(self.boat, since, real_now)
            if not fixes:
                logger.debug(f"No new positions for {self.boat}")
                return 0

            validate_batch(last, fixes)
            enriched = enrich_fixes(last, fixes, self.store.event_window_at)
            self.store.append_enriched_fixes(self.boat, enriched)
            self.race.process(last, enriched)
            self.store.commit()
        except Exception:
            self.store.rollback()
            self.race.progress = saved_progress
            raise

        logger.debug(f"Processed {len(enriched)} positions for {self.boat}")
        return len(enriched)
