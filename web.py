#!/usr/bin/env python3
"""
JSON API for the regatta tracker: live positions, round times and clock control
"""

from flask import Flask, jsonify, request
from flask_cors import CORS
import os
import sys
import logging
from datetime import timedelta

from regatta.clock import VirtualClock
from regatta.config import CONFIG, USE_POSTGRES
from regatta.database import Database
from regatta.models import format_time, parse_time
from regatta.progress import RaceProgress
from regatta.reports import pearl_chain, round_times

app = Flask(__name__)

# Configure logging
log_level = os.environ.get('LOG_LEVEL', 'INFO')
logging.basicConfig(
    level=getattr(logging, log_level),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)
logger = logging.getLogger(__name__)

# In development, allow all origins for testing
allowed_origins = os.environ.get('ALLOWED_ORIGINS', '*')
CORS(app, resources={r"/api/*": {"origins": allowed_origins}})
logger.info(f"CORS enabled for origins: {allowed_origins}")

# Simulated time shared by all requests and the trackers started from here
clock = VirtualClock()


def get_db():
    """Get a connected store"""
    try:
        db = Database(CONFIG, use_postgres=USE_POSTGRES)
        db.connect()
        return db
    except Exception as e:
        logger.error(f"Database connection error: {e}")
        raise


def _request_boat():
    """Boat id from the JSON body, or None if the request is malformed"""
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not data.get('boat'):
        return None, data
    return data['boat'], data


def _bad_request(message):
    logger.warning(f"Bad request to {request.path}: {message}")
    return jsonify({'error': message}), 400


@app.route('/api/ping')
def api_ping():
    """Liveness check"""
    return jsonify({'status': 'ok'})


@app.route('/api/position', methods=['POST'])
def api_position():
    """Latest enriched position of a boat with its current round and section"""
    boat, _ = _request_boat()
    if boat is None:
        return _bad_request('boat is required')

    # Simulated time may not run ahead of real time
    if clock.now() > clock.real_now():
        clock.reset()
    now = clock.now()

    db = get_db()
    try:
        position = db.last_enriched_fix(boat, CONFIG['tracking_start_time'], now)
        if position is None:
            return jsonify({'error': f'no position for {boat}'}), 404

        round_number = 0
        section_number = 0
        if position.regatta_id is not None:
            progress = RaceProgress(db, boat).rebuild(position.regatta_id, now)
            if progress.current_round and not progress.closed:
                round_number = progress.current_round
                section_number = progress.section_number
    finally:
        db.close()

    result = position.to_dict()
    result['round'] = round_number
    result['section'] = section_number
    return jsonify(result)


@app.route('/api/pearl-chain', methods=['POST'])
def api_pearl_chain():
    """Trail of a boat sampled every interval seconds over the last length seconds"""
    boat, data = _request_boat()
    if boat is None:
        return _bad_request('boat is required')

    try:
        length = float(data.get('length', 0))
        interval = float(data.get('interval', 0))
    except (TypeError, ValueError):
        return _bad_request('length and interval must be numbers')

    if length <= 0 or interval <= 0:
        return jsonify({'positions': []})

    end_time = clock.now()
    db = get_db()
    try:
        positions = db.positions_between(boat, end_time - timedelta(seconds=length), end_time)
    finally:
        db.close()

    return jsonify({'positions': pearl_chain(positions, end_time, interval)})


@app.route('/api/round-times', methods=['POST'])
def api_round_times():
    """Elapsed seconds per round and section in the regatta running now"""
    boat, _ = _request_boat()
    if boat is None:
        return _bad_request('boat is required')

    now = clock.now()
    db = get_db()
    try:
        regatta_id = db.event_window_at(now)
        if regatta_id is None:
            return jsonify({'round_times': [], 'section_times': []})
        times = round_times(db, regatta_id, boat, now)
    finally:
        db.close()

    return jsonify(times)


@app.route('/api/buoys')
def api_buoys():
    """Course buoys valid at the current simulated time"""
    db = get_db()
    try:
        buoys = db.active_buoys(clock.now())
    finally:
        db.close()

    return jsonify([buoy.to_dict() for buoy in buoys])


@app.route('/api/clock', methods=['GET'])
def api_clock():
    """Current simulated time"""
    return jsonify({'time': format_time(clock.now()), 'speed': clock.speed})


@app.route('/api/clock', methods=['POST'])
def api_set_clock():
    """Jump the clock to clock_time and let it run at clock_speed"""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return _bad_request('JSON body required')

    try:
        clock_time = parse_time(data['clock_time']) if data.get('clock_time') else None
        clock_speed = float(data['clock_speed']) if data.get('clock_speed') is not None else None
    except (TypeError, ValueError) as e:
        return _bad_request(f'invalid clock configuration: {e}')

    if clock_time is not None:
        clock.set_current_time_as(clock_time)
    if clock_speed is not None:
        clock.set_speed(clock_speed)

    return jsonify({'time': format_time(clock.now()), 'speed': clock.speed})


@app.route('/api/clock/reset', methods=['POST'])
def api_reset_clock():
    """Back to real time at normal speed"""
    clock.reset()
    return jsonify({'time': format_time(clock.now()), 'speed': clock.speed})


if __name__ == '__main__':
    from tracker import start_tracker

    tracker = None
    if CONFIG['get_data_from_server']:
        tracker = start_tracker(clock)

    port = int(os.environ.get('PORT', 5000))
    # Debug mode only for local development
    debug_mode = os.environ.get('FLASK_DEBUG', 'False').lower() == 'true'
    try:
        app.run(host='0.0.0.0', port=port, debug=debug_mode, use_reloader=False)
    finally:
        if tracker is not None:
            tracker.stop()
            tracker.wait(CONFIG['db_write_timeout'])
