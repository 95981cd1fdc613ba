"""
Database abstraction layer for the regatta tracker
Supports both SQLite (local development) and PostgreSQL (production)
"""

import logging
import sqlite3

import psycopg2

from regatta.config import USE_POSTGRES
from regatta.errors import ConsistencyError
from regatta.models import Buoy, EnrichedFix, Fix, Round, Section, format_time, parse_time

logger = logging.getLogger(__name__)

INTEGRITY_ERRORS = (sqlite3.IntegrityError, psycopg2.IntegrityError)


class Database:
    """
    Database abstraction layer supporting both SQLite and PostgreSQL.

    Also serves as the tracker's store: enriched positions, regattas,
    buoys, rounds and sections. Queries are written with '?' placeholders
    and translated for PostgreSQL. Nothing is committed implicitly; the
    caller decides when a batch is complete.
    """

    def __init__(self, config, use_postgres=USE_POSTGRES):
        """
        Initialize database connection

        Args:
            config: Configuration dict with 'sqlite_db' and 'postgres_url' keys
            use_postgres: If True, use PostgreSQL; otherwise SQLite
        """
        self.config = config
        self.use_postgres = use_postgres
        self.read_timeout = config.get('db_read_timeout', 1)
        self.write_timeout = config.get('db_write_timeout', 60)
        self.conn = None
        self.cursor = None
        self._statement_timeout = None

    def connect(self):
        """Establish database connection"""
        if self.use_postgres:
            logger.info("Connecting to PostgreSQL...")
            self.conn = psycopg2.connect(self.config['postgres_url'],
                                         connect_timeout=max(1, int(self.read_timeout)))
            self.cursor = self.conn.cursor()
        else:
            logger.info(f"Connecting to SQLite: {self.config['sqlite_db']}")
            self.conn = sqlite3.connect(self.config['sqlite_db'], timeout=self.write_timeout)
            self.cursor = self.conn.cursor()

    def create_tables(self):
        """Create database tables if they don't exist"""
        if self.use_postgres:
            self._create_postgres_tables()
        else:
            self._create_sqlite_tables()

        self.conn.commit()

    def _create_postgres_tables(self):
        """Create PostgreSQL tables"""
        self.cursor.execute('''
            CREATE TABLE IF NOT EXISTS boats (
                id TEXT PRIMARY KEY,
                class TEXT,
                yardstick DOUBLE PRECISION
            )
        ''')

        self.cursor.execute('''
            CREATE TABLE IF NOT EXISTS regattas (
                id TEXT PRIMARY KEY,
                start_time TIMESTAMP WITH TIME ZONE NOT NULL,
                end_time TIMESTAMP WITH TIME ZONE NOT NULL
            )
        ''')

        self.cursor.execute('''
            CREATE TABLE IF NOT EXISTS buoys (
                id TEXT NOT NULL,
                version INTEGER NOT NULL,
                sequence INTEGER NOT NULL,
                latitude DOUBLE PRECISION NOT NULL,
                longitude DOUBLE PRECISION NOT NULL,
                pass_angle DOUBLE PRECISION NOT NULL,
                is_pass_direction_clockwise BOOLEAN NOT NULL,
                tolerance DOUBLE PRECISION NOT NULL,
                start_time TIMESTAMP WITH TIME ZONE NOT NULL,
                end_time TIMESTAMP WITH TIME ZONE,
                PRIMARY KEY (id, version)
            )
        ''')

        self.cursor.execute('''
            CREATE TABLE IF NOT EXISTS rounds (
                id INTEGER NOT NULL,
                regatta_id TEXT NOT NULL,
                boat_id TEXT NOT NULL,
                start_time TIMESTAMP WITH TIME ZONE NOT NULL,
                end_time TIMESTAMP WITH TIME ZONE,
                PRIMARY KEY (id, regatta_id, boat_id),
                FOREIGN KEY (regatta_id) REFERENCES regattas(id),
                FOREIGN KEY (boat_id) REFERENCES boats(id)
            )
        ''')

        self.cursor.execute('''
            CREATE TABLE IF NOT EXISTS sections (
                id INTEGER NOT NULL,
                round_id INTEGER NOT NULL,
                regatta_id TEXT NOT NULL,
                boat_id TEXT NOT NULL,
                buoy_id_start TEXT NOT NULL,
                buoy_version_start INTEGER NOT NULL,
                buoy_id_end TEXT NOT NULL,
                buoy_version_end INTEGER NOT NULL,
                start_time TIMESTAMP WITH TIME ZONE NOT NULL,
                end_time TIMESTAMP WITH TIME ZONE,
                PRIMARY KEY (id, round_id, regatta_id, boat_id),
                FOREIGN KEY (round_id, regatta_id, boat_id) REFERENCES rounds(id, regatta_id, boat_id),
                FOREIGN KEY (buoy_id_start, buoy_version_start) REFERENCES buoys(id, version),
                FOREIGN KEY (buoy_id_end, buoy_version_end) REFERENCES buoys(id, version)
            )
        ''')

        self.cursor.execute('''
            CREATE TABLE IF NOT EXISTS positions (
                id BIGSERIAL PRIMARY KEY,
                regatta_id TEXT,
                boat_id TEXT NOT NULL,
                latitude DOUBLE PRECISION NOT NULL,
                longitude DOUBLE PRECISION NOT NULL,
                measure_time TIMESTAMP WITH TIME ZONE NOT NULL,
                send_time TIMESTAMP WITH TIME ZONE,
                distance DOUBLE PRECISION NOT NULL DEFAULT 0,
                heading DOUBLE PRECISION NOT NULL DEFAULT 0,
                velocity DOUBLE PRECISION NOT NULL DEFAULT 0,
                FOREIGN KEY (regatta_id) REFERENCES regattas(id),
                FOREIGN KEY (boat_id) REFERENCES boats(id)
            )
        ''')

        self.cursor.execute('''
            CREATE TABLE IF NOT EXISTS raw_positions (
                id BIGSERIAL PRIMARY KEY,
                boat_id TEXT NOT NULL,
                latitude DOUBLE PRECISION NOT NULL,
                longitude DOUBLE PRECISION NOT NULL,
                measure_time TIMESTAMP WITH TIME ZONE NOT NULL,
                send_time TIMESTAMP WITH TIME ZONE
            )
        ''')

        self._create_indexes()

    def _create_sqlite_tables(self):
        """Create SQLite tables"""
        self.cursor.execute('''
            CREATE TABLE IF NOT EXISTS boats (
                id TEXT PRIMARY KEY,
                class TEXT,
                yardstick REAL
            )
        ''')

        self.cursor.execute('''
            CREATE TABLE IF NOT EXISTS regattas (
                id TEXT PRIMARY KEY,
                start_time TEXT NOT NULL,
                end_time TEXT NOT NULL
            )
        ''')

        self.cursor.execute('''
            CREATE TABLE IF NOT EXISTS buoys (
                id TEXT NOT NULL,
                version INTEGER NOT NULL,
                sequence INTEGER NOT NULL,
                latitude REAL NOT NULL,
                longitude REAL NOT NULL,
                pass_angle REAL NOT NULL,
                is_pass_direction_clockwise INTEGER NOT NULL,
                tolerance REAL NOT NULL,
                start_time TEXT NOT NULL,
                end_time TEXT,
                PRIMARY KEY (id, version)
            )
        ''')

        self.cursor.execute('''
            CREATE TABLE IF NOT EXISTS rounds (
                id INTEGER NOT NULL,
                regatta_id TEXT NOT NULL,
                boat_id TEXT NOT NULL,
                start_time TEXT NOT NULL,
                end_time TEXT,
                PRIMARY KEY (id, regatta_id, boat_id),
                FOREIGN KEY (regatta_id) REFERENCES regattas(id),
                FOREIGN KEY (boat_id) REFERENCES boats(id)
            )
        ''')

        self.cursor.execute('''
            CREATE TABLE IF NOT EXISTS sections (
                id INTEGER NOT NULL,
                round_id INTEGER NOT NULL,
                regatta_id TEXT NOT NULL,
                boat_id TEXT NOT NULL,
                buoy_id_start TEXT NOT NULL,
                buoy_version_start INTEGER NOT NULL,
                buoy_id_end TEXT NOT NULL,
                buoy_version_end INTEGER NOT NULL,
                start_time TEXT NOT NULL,
                end_time TEXT,
                PRIMARY KEY (id, round_id, regatta_id, boat_id),
                FOREIGN KEY (round_id, regatta_id, boat_id) REFERENCES rounds(id, regatta_id, boat_id)
            )
        ''')

        self.cursor.execute('''
            CREATE TABLE IF NOT EXISTS positions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                regatta_id TEXT,
                boat_id TEXT NOT NULL,
                latitude REAL NOT NULL,
                longitude REAL NOT NULL,
                measure_time TEXT NOT NULL,
                send_time TEXT,
                distance REAL NOT NULL DEFAULT 0,
                heading REAL NOT NULL DEFAULT 0,
                velocity REAL NOT NULL DEFAULT 0,
                FOREIGN KEY (boat_id) REFERENCES boats(id)
            )
        ''')

        self.cursor.execute('''
            CREATE TABLE IF NOT EXISTS raw_positions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                boat_id TEXT NOT NULL,
                latitude REAL NOT NULL,
                longitude REAL NOT NULL,
                measure_time TEXT NOT NULL,
                send_time TEXT
            )
        ''')

        self._create_indexes()

    def _create_indexes(self):
        self.cursor.execute('CREATE INDEX IF NOT EXISTS idx_positions_boat_time ON positions(boat_id, measure_time)')
        self.cursor.execute('CREATE INDEX IF NOT EXISTS idx_raw_positions_boat_time ON raw_positions(boat_id, measure_time)')
        self.cursor.execute('CREATE INDEX IF NOT EXISTS idx_regattas_start ON regattas(start_time)')
        self.cursor.execute('CREATE INDEX IF NOT EXISTS idx_buoys_start ON buoys(start_time)')

    def seed(self, boats=(), regattas=(), buoys=()):
        """
        Insert boats, regattas and buoys that are not present yet

        Args:
            boats: Iterable of (id, class, yardstick)
            regattas: Iterable of (id, start_time, end_time)
            buoys: Iterable of Buoy
        """
        for boat in boats:
            self.execute('INSERT INTO boats (id, class, yardstick) VALUES (?, ?, ?) ON CONFLICT DO NOTHING', boat)

        for regatta_id, start_time, end_time in regattas:
            self.execute('''
                INSERT INTO regattas (id, start_time, end_time) VALUES (?, ?, ?)
                ON CONFLICT DO NOTHING
            ''', (regatta_id, self._ts(start_time), self._ts(end_time)))

        for buoy in buoys:
            self.execute('''
                INSERT INTO buoys (id, version, sequence, latitude, longitude, pass_angle,
                                   is_pass_direction_clockwise, tolerance, start_time, end_time)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT DO NOTHING
            ''', (buoy.id, buoy.version, buoy.sequence, buoy.latitude, buoy.longitude,
                  buoy.pass_angle, buoy.clockwise, buoy.tolerance,
                  self._ts(buoy.valid_from), self._ts(buoy.valid_to)))

        self.commit()

    def _ts(self, value):
        """Timestamp parameter in the representation the backend expects"""
        if value is None:
            return None
        if self.use_postgres:
            return parse_time(value)
        return format_time(value)

    def _set_timeout(self, seconds):
        # SQLite only waits on locks, which the connect timeout covers
        if not self.use_postgres or self._statement_timeout == seconds:
            return
        self.cursor.execute('SET statement_timeout = %s', (int(seconds * 1000),))
        self._statement_timeout = seconds

    def execute(self, query, params=None, timeout=None):
        """Execute a query"""
        self._set_timeout(timeout or self.write_timeout)
        if self.use_postgres:
            query = query.replace('?', '%s')
        if params:
            self.cursor.execute(query, params)
        else:
            self.cursor.execute(query)

    def read(self, query, params=None):
        """Execute a read-only query with the shorter read timeout"""
        self.execute(query, params, timeout=self.read_timeout)

    def fetchone(self):
        """Fetch one result"""
        return self.cursor.fetchone()

    def fetchall(self):
        """Fetch all results"""
        return self.cursor.fetchall()

    def commit(self):
        """Commit transaction"""
        self.conn.commit()

    def rollback(self):
        """Discard everything written since the last commit"""
        if self.conn:
            self.conn.rollback()
            # A SET inside the discarded transaction is undone as well
            self._statement_timeout = None

    def close(self):
        """Close database connection"""
        if self.conn:
            self.conn.close()

    # Positions

    def append_enriched_fixes(self, boat, fixes):
        """Store enriched fixes of a boat"""
        for fix in fixes:
            self.execute('''
                INSERT INTO positions (regatta_id, boat_id, latitude, longitude, measure_time,
                                       send_time, distance, heading, velocity)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ''', (fix.regatta_id, boat, fix.latitude, fix.longitude, self._ts(fix.measured_at),
                  self._ts(fix.sent_at), fix.distance, fix.heading, fix.velocity))
        logger.debug(f"Stored {len(fixes)} positions for {boat}")

    def last_enriched_fix(self, boat, lower_bound, upper_bound):
        """
        Latest enriched fix of a boat within [lower_bound, upper_bound]

        Returns:
            EnrichedFix or None if the boat has no positions in the range
        """
        self.read('''
            SELECT latitude, longitude, measure_time, send_time, distance, heading, velocity, regatta_id
            FROM positions
            WHERE boat_id = ? AND measure_time >= ? AND measure_time <= ?
            ORDER BY measure_time DESC, id DESC
            LIMIT 1
        ''', (boat, self._ts(lower_bound), self._ts(upper_bound)))
        row = self.fetchone()
        if row is None:
            return None
        return self._row_to_enriched_fix(row)

    def positions_between(self, boat, start_time, end_time):
        """Enriched fixes of a boat within [start_time, end_time], newest first"""
        self.read('''
            SELECT latitude, longitude, measure_time, send_time, distance, heading, velocity, regatta_id
            FROM positions
            WHERE boat_id = ? AND measure_time >= ? AND measure_time <= ?
            ORDER BY measure_time DESC, id DESC
        ''', (boat, self._ts(start_time), self._ts(end_time)))
        return [self._row_to_enriched_fix(row) for row in self.fetchall()]

    @staticmethod
    def _row_to_enriched_fix(row):
        lat, lon, measure_time, send_time, distance, heading, velocity, regatta_id = row
        return EnrichedFix(
            latitude=lat,
            longitude=lon,
            measured_at=parse_time(measure_time),
            sent_at=parse_time(send_time),
            distance=distance,
            heading=heading,
            velocity=velocity,
            regatta_id=regatta_id,
        )

    def insert_raw_fixes(self, boat, fixes):
        """Store raw fixes to be served by DatabaseSource"""
        for fix in fixes:
            self.execute('''
                INSERT INTO raw_positions (boat_id, latitude, longitude, measure_time, send_time)
                VALUES (?, ?, ?, ?, ?)
            ''', (boat, fix.latitude, fix.longitude, self._ts(fix.measured_at), self._ts(fix.sent_at)))

    def raw_fixes(self, boat, since, until):
        """Raw fixes of a boat with since < measure_time <= until, oldest first"""
        self.read('''
            SELECT latitude, longitude, measure_time, send_time
            FROM raw_positions
            WHERE boat_id = ? AND measure_time > ? AND measure_time <= ?
            ORDER BY measure_time, id
        ''', (boat, self._ts(since), self._ts(until)))
        return [Fix(lat, lon, parse_time(measure_time), parse_time(send_time))
                for lat, lon, measure_time, send_time in self.fetchall()]

    # Regattas and course

    def event_window_at(self, time):
        """Id of the regatta running at time, or None"""
        self.read('''
            SELECT id FROM regattas
            WHERE start_time <= ? AND end_time > ?
            ORDER BY start_time
            LIMIT 1
        ''', (self._ts(time), self._ts(time)))
        row = self.fetchone()
        return row[0] if row else None

    def active_buoys(self, time):
        """Buoy versions valid at time, in course order"""
        self.read('''
            SELECT id, version, latitude, longitude, pass_angle, is_pass_direction_clockwise,
                   tolerance, start_time, end_time, sequence
            FROM buoys
            WHERE start_time <= ? AND (end_time IS NULL OR end_time > ?)
            ORDER BY sequence, id
        ''', (self._ts(time), self._ts(time)))
        return [
            Buoy(buoy_id, version, lat, lon, pass_angle, bool(clockwise), tolerance,
                 parse_time(start_time), parse_time(end_time), sequence)
            for buoy_id, version, lat, lon, pass_angle, clockwise, tolerance, start_time, end_time, sequence
            in self.fetchall()
        ]

    # Rounds and sections

    def rounds(self, regatta_id, boat, until=None):
        """Rounds of a boat in a regatta, optionally only those started by until"""
        query = 'SELECT id, regatta_id, boat_id, start_time, end_time FROM rounds WHERE regatta_id = ? AND boat_id = ?'
        params = [regatta_id, boat]
        if until is not None:
            query += ' AND start_time <= ?'
            params.append(self._ts(until))
        self.read(query + ' ORDER BY id', tuple(params))
        return [self._row_to_round(row) for row in self.fetchall()]

    def open_round(self, regatta_id, boat):
        """The round without end time, or None"""
        self.read('''
            SELECT id, regatta_id, boat_id, start_time, end_time FROM rounds
            WHERE regatta_id = ? AND boat_id = ? AND end_time IS NULL
            ORDER BY id DESC LIMIT 1
        ''', (regatta_id, boat))
        row = self.fetchone()
        return self._row_to_round(row) if row else None

    def last_closed_round(self, regatta_id, boat):
        """The highest-numbered finished round, or None"""
        self.read('''
            SELECT id, regatta_id, boat_id, start_time, end_time FROM rounds
            WHERE regatta_id = ? AND boat_id = ? AND end_time IS NOT NULL
            ORDER BY id DESC LIMIT 1
        ''', (regatta_id, boat))
        row = self.fetchone()
        return self._row_to_round(row) if row else None

    def start_round(self, round_id, regatta_id, boat, start_time):
        try:
            self.execute('''
                INSERT INTO rounds (id, regatta_id, boat_id, start_time) VALUES (?, ?, ?, ?)
            ''', (round_id, regatta_id, boat, self._ts(start_time)))
        except INTEGRITY_ERRORS as e:
            raise ConsistencyError(f"round {round_id} of {boat} in {regatta_id} already exists") from e

    def end_round(self, round_id, regatta_id, boat, end_time):
        """Close an open round. Returns False if no such open round exists."""
        self.execute('''
            UPDATE rounds SET end_time = ?
            WHERE id = ? AND regatta_id = ? AND boat_id = ? AND end_time IS NULL
        ''', (self._ts(end_time), round_id, regatta_id, boat))
        return self.cursor.rowcount == 1

    def sections(self, regatta_id, boat, until=None):
        """Sections of a boat in a regatta in sailing order"""
        query = '''
            SELECT id, round_id, regatta_id, boat_id, start_time, end_time, buoy_id_start, buoy_id_end
            FROM sections WHERE regatta_id = ? AND boat_id = ?
        '''
        params = [regatta_id, boat]
        if until is not None:
            query += ' AND start_time <= ?'
            params.append(self._ts(until))
        self.read(query + ' ORDER BY round_id, id', tuple(params))
        return [self._row_to_section(row) for row in self.fetchall()]

    def open_section(self, round_id, regatta_id, boat):
        self.read('''
            SELECT id, round_id, regatta_id, boat_id, start_time, end_time, buoy_id_start, buoy_id_end
            FROM sections
            WHERE round_id = ? AND regatta_id = ? AND boat_id = ? AND end_time IS NULL
            ORDER BY id DESC LIMIT 1
        ''', (round_id, regatta_id, boat))
        row = self.fetchone()
        return self._row_to_section(row) if row else None

    def last_closed_section(self, round_id, regatta_id, boat):
        self.read('''
            SELECT id, round_id, regatta_id, boat_id, start_time, end_time, buoy_id_start, buoy_id_end
            FROM sections
            WHERE round_id = ? AND regatta_id = ? AND boat_id = ? AND end_time IS NOT NULL
            ORDER BY id DESC LIMIT 1
        ''', (round_id, regatta_id, boat))
        row = self.fetchone()
        return self._row_to_section(row) if row else None

    def start_section(self, section_id, round_id, regatta_id, boat, start_time, buoy_start, buoy_end):
        try:
            self.execute('''
                INSERT INTO sections (id, round_id, regatta_id, boat_id, buoy_id_start, buoy_version_start,
                                      buoy_id_end, buoy_version_end, start_time)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ''', (section_id, round_id, regatta_id, boat, buoy_start.id, buoy_start.version,
                  buoy_end.id, buoy_end.version, self._ts(start_time)))
        except INTEGRITY_ERRORS as e:
            raise ConsistencyError(
                f"section {section_id} of round {round_id} for {boat} in {regatta_id} already exists") from e

    def end_section(self, section_id, round_id, regatta_id, boat, end_time):
        """Close an open section. Returns False if no such open section exists."""
        self.execute('''
            UPDATE sections SET end_time = ?
            WHERE id = ? AND round_id = ? AND regatta_id = ? AND boat_id = ? AND end_time IS NULL
        ''', (self._ts(end_time), section_id, round_id, regatta_id, boat))
        return self.cursor.rowcount == 1

    @staticmethod
    def _row_to_round(row):
        round_id, regatta_id, boat, start_time, end_time = row
        return Round(round_id, regatta_id, boat, parse_time(start_time), parse_time(end_time))

    @staticmethod
    def _row_to_section(row):
        section_id, round_id, regatta_id, boat, start_time, end_time, buoy_start, buoy_end = row
        return Section(section_id, round_id, regatta_id, boat, parse_time(start_time),
                       parse_time(end_time), buoy_start, buoy_end)


class DatabaseSource:
    """Position source reading raw fixes from the raw_positions table"""

    def __init__(self, db):
        self.db = db

    def fetch(self, boat, since, until):
        return self.db.raw_fixes(boat, since, until)
