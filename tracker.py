#!/usr/bin/env python3

"""
Regatta tracker daemon

This script:
1. Prepares the database (tables, boats, regattas and the buoy course)
2. Polls the position source for every tracked boat, one thread per boat
3. Stores enriched positions and the rounds and sections each boat sails
4. Runs until interrupted, then lets in-flight polls finish before exiting
"""

import os
import sys
import signal
import logging

from regatta.clock import VirtualClock
from regatta.config import CONFIG, USE_POSTGRES, DEFAULT_BOATS, DEFAULT_REGATTAS, DEFAULT_BUOYS
from regatta.data_server import DataServerSource
from regatta.database import Database, DatabaseSource
from regatta.poller import Tracker

# Configure logging
log_level = os.environ.get('LOG_LEVEL', 'INFO')
handlers = [logging.StreamHandler(sys.stdout)]
if os.environ.get('LOG_FILE'):
    handlers.append(logging.FileHandler(os.environ['LOG_FILE']))
logging.basicConfig(
    level=getattr(logging, log_level),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=handlers
)
logger = logging.getLogger(__name__)


def open_database():
    """Connected Database for one poller thread"""
    db = Database(CONFIG, use_postgres=USE_POSTGRES)
    db.connect()
    return db


def make_source(db):
    """Position source selected by CONFIG['position_source']"""
    if CONFIG['position_source'] == 'database':
        return DatabaseSource(db)
    return DataServerSource(CONFIG)


def prepare_database():
    """Create tables and seed boats, regattas and buoys"""
    db = open_database()
    try:
        db.create_tables()
        db.seed(DEFAULT_BOATS, DEFAULT_REGATTAS, DEFAULT_BUOYS)
    finally:
        db.close()


def start_tracker(clock):
    """Prepare the database and start polling all configured boats"""
    prepare_database()
    tracker = Tracker(CONFIG['boats'], open_database, make_source, clock, CONFIG)
    tracker.start()
    logger.info(f"✓ Tracking {len(CONFIG['boats'])} boats: {', '.join(CONFIG['boats'])}")
    return tracker


def main():
    """Main execution"""
    logger.info(f"{'='*60}")
    logger.info("Regatta tracker")
    logger.info(f"Database: {'PostgreSQL' if USE_POSTGRES else 'SQLite (local)'}")
    logger.info(f"Position source: {CONFIG['position_source']}")
    logger.info(f"{'='*60}")

    if not CONFIG['get_data_from_server']:
        logger.info("GET_DATA_FROM_SERVER is off, nothing to do")
        return

    try:
        tracker = start_tracker(VirtualClock())
    except Exception as e:
        logger.error(f"✗ ERROR: {e}")
        sys.exit(1)

    def shutdown(signum, frame):
        logger.info("Shutting down, waiting for running polls...")
        tracker.stop()

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    # Short waits keep the main thread responsive to signals
    while not tracker.wait(timeout=1):
        pass

    logger.info("Done!")


if __name__ == '__main__':
    main()
