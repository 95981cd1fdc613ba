"""
Tests for the JSON API
"""

import pytest
from datetime import datetime, timedelta, timezone

import web
from regatta.clock import VirtualClock
from regatta.memory_store import MemoryStore
from regatta.models import Buoy, EnrichedFix
from regatta.progress import RaceProgress

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


class FakeTimeSource:

    def __init__(self, now):
        self.current = now

    def now(self):
        return self.current


@pytest.fixture
def store():
    store = MemoryStore(regattas=REGATTAS, buoys=BUOYS)
    fixes = [
        EnrichedFix(LAT + 0.001, LON - 0.001, at(0), regatta_id=REGATTA),
        EnrichedFix(LAT + 0.001, LON + 0.001, at(10), distance=0.1, heading=90.0, velocity=36.0,
                    regatta_id=REGATTA),
    ]
    store.append_enriched_fixes(BOAT, fixes)
    RaceProgress(store, BOAT).process(None, fixes)
    store.commit()
    return store


@pytest.fixture
def client(store, monkeypatch):
    monkeypatch.setattr(web, 'get_db', lambda: store)
    monkeypatch.setattr(web, 'clock', VirtualClock(FakeTimeSource(at(100))))
    monkeypatch.setitem(web.CONFIG, 'tracking_start_time', at(-3600))
    web.app.config['TESTING'] = True
    with web.app.test_client() as client:
        yield client


class TestApi:
    """Tests for the API routes"""

    def test_ping(self, client):
        """Test liveness check"""
        response = client.get('/api/ping')
        assert response.status_code == 200
        assert response.get_json() == {'status': 'ok'}

    def test_position(self, client):
        """Test latest position with round and section"""
        response = client.post('/api/position', json={'boat': BOAT})
        assert response.status_code == 200

        data = response.get_json()
        assert data['latitude'] == LAT + 0.001
        assert data['heading'] == 90.0
        assert data['velocity'] == 36.0
        assert data['round'] == 1
        assert data['section'] == 2
        assert data['measure_time'] == '2024-08-03T12:00:10.000000+00:00'

    def test_position_unknown_boat(self, client):
        """Test a boat without positions"""
        response = client.post('/api/position', json={'boat': 'Vivace'})
        assert response.status_code == 404

    def test_position_requires_boat(self, client):
        """Test malformed requests are rejected"""
        assert client.post('/api/position', json={}).status_code == 400
        assert client.post('/api/position', data='not json').status_code == 400

    def test_round_times(self, client):
        """Test round and section times in the running regatta"""
        response = client.post('/api/round-times', json={'boat': BOAT})
        assert response.get_json() == {'round_times': [100.0], 'section_times': [10.0, 90.0]}

    def test_round_times_outside_regatta(self, client):
        """Test no times when no regatta is running"""
        web.clock.set_current_time_as(datetime(2024, 1, 1, tzinfo=timezone.utc))
        response = client.post('/api/round-times', json={'boat': BOAT})
        assert response.get_json() == {'round_times': [], 'section_times': []}

    def test_pearl_chain(self, client):
        """Test the trail over the last minutes"""
        response = client.post('/api/pearl-chain', json={'boat': BOAT, 'length': 600, 'interval': 30})
        positions = response.get_json()['positions']
        assert len(positions) == 1
        assert positions[0]['longitude'] == LON + 0.001
        assert positions[0]['heading'] == pytest.approx(90, abs=1)

    def test_pearl_chain_invalid_parameters(self, client):
        """Test non-positive or malformed parameters"""
        response = client.post('/api/pearl-chain', json={'boat': BOAT, 'length': 0, 'interval': 30})
        assert response.get_json() == {'positions': []}
        response = client.post('/api/pearl-chain', json={'boat': BOAT, 'length': 'x', 'interval': 30})
        assert response.status_code == 400

    def test_buoys(self, client):
        """Test the active course"""
        data = client.get('/api/buoys').get_json()
        assert [buoy['id'] for buoy in data] == ['B0', 'B1', 'B2', 'B3']
        assert data[0]['is_pass_direction_clockwise'] is True
        assert data[0]['tolerance_in_meters'] == 100

    def test_clock(self, client):
        """Test reading, setting and resetting the clock"""
        assert client.get('/api/clock').get_json()['time'] == '2024-08-03T12:01:40.000000+00:00'

        response = client.post('/api/clock', json={'clock_time': '2024-08-03T11:00:00Z', 'clock_speed': 2})
        assert response.get_json() == {'time': '2024-08-03T11:00:00.000000+00:00', 'speed': 2.0}

        response = client.post('/api/clock/reset')
        assert response.get_json() == {'time': '2024-08-03T12:01:40.000000+00:00', 'speed': 1.0}

    def test_clock_invalid(self, client):
        """Test invalid clock configuration is rejected"""
        response = client.post('/api/clock', json={'clock_time': 'yesterday'})
        assert response.status_code == 400

    def test_clock_time_not_a_string(self, client):
        """Test a numeric clock_time is rejected and the clock left alone"""
        response = client.post('/api/clock', json={'clock_time': 12345})
        assert response.status_code == 400
        assert web.clock.now() == at(100)

    def test_position_after_leaving_regatta(self, client, store):
        """Test a boat with no open round reports round and section 0"""
        store.end_section(2, 1, REGATTA, BOAT, at(50))
        store.end_round(1, REGATTA, BOAT, at(50))
        store.commit()

        data = client.post('/api/position', json={'boat': BOAT}).get_json()
        assert data['round'] == 0
        assert data['section'] == 0

    def test_position_resets_clock_ahead_of_real_time(self, client):
        """Test simulated time running ahead of real time is reset"""
        web.clock.set_current_time_as(at(5000))
        client.post('/api/position', json={'boat': BOAT})
        assert web.clock.now() == web.clock.real_now()
