"""
Configuration module for the regatta tracker
"""

import os
from datetime import datetime, timezone
from pathlib import Path

from regatta.models import Buoy, parse_time

# Load .env file if it exists (for local development)
env_path = Path(__file__).parent.parent / '.env'
if env_path.exists():
    with open(env_path) as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith('#') and '=' in line:
                key, value = line.split('=', 1)
                os.environ.setdefault(key, value)

# Database detection - PostgreSQL when a URL is configured, SQLite locally
USE_POSTGRES = os.environ.get('RENDER') is not None or os.environ.get('DATABASE_URL') is not None

if USE_POSTGRES:
    DB_URL = os.environ.get('DATABASE_URL')
else:
    DB_URL = None


def _env_bool(name, default):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


# Configuration
CONFIG = {
    # Data server delivering raw GPS fixes
    'data_server_url': os.environ.get('DATA_SERVER_URL', 'http://localhost:8090/readpositions'),
    'data_server_timeout': float(os.environ.get('DATA_SERVER_TIMEOUT', 5)),   # seconds
    'get_data_from_server': _env_bool('GET_DATA_FROM_SERVER', True),
    'position_source': os.environ.get('POSITION_SOURCE', 'data_server'),    # or 'database'

    # Polling
    'boats': [b.strip() for b in os.environ.get('BOATS', 'Bluebird').split(',') if b.strip()],
    'poll_interval': float(os.environ.get('POLL_INTERVAL', 1.0)),            # seconds
    # Fixes before this time are never fetched
    'tracking_start_time': parse_time(os.environ.get('TRACKING_START_TIME', '2024-01-01T00:00:00+00:00')),

    # Gate length on the course side of every buoy
    'buoy_far_off_distance': 1000,  # metres

    # Database
    'sqlite_db': os.environ.get('SQLITE_DB', 'regatta.db'),
    'postgres_url': DB_URL,
    'db_read_timeout': 1,    # seconds
    'db_write_timeout': 60,  # seconds
}

# Seed data for a fresh database
DEFAULT_BOATS = [
    ('Bluebird', 'Conger', 118.0),
    ('Vivace', 'Kielzugvogel', 108.0),
    ('Polyflyer', 'H-Jolle Elb', 110.0),
]

DEFAULT_REGATTAS = [
    ('ASV.24h.2024', datetime(2024, 8, 3, 11, 0, tzinfo=timezone.utc), datetime(2024, 8, 4, 12, 0, tzinfo=timezone.utc)),
    ('ASV.24h.2025', datetime(2025, 8, 2, 11, 0, tzinfo=timezone.utc), datetime(2025, 8, 3, 12, 0, tzinfo=timezone.utc)),
]

# Alster course, in rounding order
_COURSE_START = datetime(2023, 12, 31, 22, 0, tzinfo=timezone.utc)
DEFAULT_BUOYS = [
    Buoy('Schwanenwik bridge', 1, 53.565538, 10.009123, 90, True, 100, _COURSE_START, sequence=0),
    Buoy('Kennedy bridge', 1, 53.562266, 10.004220, 225, True, 100, _COURSE_START, sequence=1),
    Buoy('Langer Zug', 1, 53.575497, 10.005418, 45, True, 100, _COURSE_START, sequence=2),
    Buoy('Pier', 1, 53.577880, 10.008151, 180, True, 100, _COURSE_START, sequence=3),
]
