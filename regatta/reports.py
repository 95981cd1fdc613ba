"""
Views on the recorded race for the web API
"""

from datetime import timedelta

from regatta.motion import calculate_heading, normalize_heading


def _elapsed_seconds(start_time, end_time, now):
    # Entries still open, or closed later than now, count up to now
    if end_time is None or end_time > now:
        return (now - start_time).total_seconds()
    return (end_time - start_time).total_seconds()


def round_times(store, regatta_id, boat, now):
    """
    Elapsed time of every round and section a boat started by now

    Args:
        store: Database or MemoryStore
        regatta_id: Regatta to report on
        boat: Boat id
        now: Current (simulated) time

    Returns:
        dict: {'round_times': [seconds, ...], 'section_times': [seconds, ...]}
    """
    rounds = store.rounds(regatta_id, boat, until=now)
    sections = store.sections(regatta_id, boat, until=now)
    return {
        'round_times': [_elapsed_seconds(r.start_time, r.end_time, now) for r in rounds],
        'section_times': [_elapsed_seconds(s.start_time, s.end_time, now) for s in sections],
    }


def pearl_chain(positions, end_time, interval):
    """
    Sample a boat's trail at fixed intervals going back from end_time

    Args:
        positions: EnrichedFix objects, newest first
        end_time: Time the chain is anchored at
        interval: Seconds between two pearls

    Returns:
        list: Dicts with latitude, longitude and heading, newest first. The
              heading points from the next older fix to the sampled one.
    """
    if len(positions) < 2 or interval <= 0:
        return []

    step = timedelta(seconds=interval)
    next_stop = end_time - step
    chain = []

    for index, fix in enumerate(positions[:-1]):
        if fix.measured_at >= next_stop:
            continue
        older = positions[index + 1]
        chain.append({
            'latitude': fix.latitude,
            'longitude': fix.longitude,
            'heading': normalize_heading(calculate_heading(older.latitude, older.longitude,
                                                           fix.latitude, fix.longitude)),
        })
        next_stop -= step

    return chain
