"""
Data server integration for raw GPS fixes
"""

import logging

import requests

from regatta.errors import SourceError
from regatta.models import Fix, format_time, parse_time

logger = logging.getLogger(__name__)


def fetch_positions(boat, since, until, config):
    """
    Fetch the fixes a boat reported in (since, until] from the data server

    Args:
        boat: Boat id as known to the data server
        since: Exclusive lower bound (datetime)
        until: Inclusive upper bound (datetime)
        config: Configuration dict with 'data_server_url' and 'data_server_timeout'

    Returns:
        list: Fix objects in the order the server sent them

    Raises:
        SourceError: If the server is unreachable, times out or answers
                     with anything but a well-formed 200 reply
    """
    data = {
        'boat': boat,
        'start_time': format_time(since),
        'end_time': format_time(until),
    }

    try:
        response = requests.post(config['data_server_url'], json=data,
                                 timeout=config.get('data_server_timeout', 5))
    except requests.Timeout as e:
        raise SourceError(f"Data server timeout for {boat}") from e
    except requests.RequestException as e:
        raise SourceError(f"Data server unreachable for {boat}: {e}") from e

    if response.status_code != 200:
        raise SourceError(f"Data server error for {boat}: {response.status_code} - {response.text}")

    try:
        positions = response.json().get('positions_at_time') or []
        fixes = [_parse_fix(pos) for pos in positions]
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        raise SourceError(f"Malformed data server reply for {boat}: {e}") from e

    logger.debug(f"Fetched {len(fixes)} positions for {boat}")
    return fixes


def _parse_fix(pos):
    return Fix(
        latitude=float(pos['latitude']),
        longitude=float(pos['longitude']),
        measured_at=parse_time(pos['measure_time']),
        sent_at=parse_time(pos.get('send_time')),
    )


class DataServerSource:
    """Position source backed by the data server's HTTP interface"""

    def __init__(self, config):
        self.config = config

    def fetch(self, boat, since, until):
        return fetch_positions(boat, since, until, self.config)
