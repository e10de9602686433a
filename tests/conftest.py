import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from route_intel.cache import RouteCache
from route_intel.config import Settings
from route_intel.geodesy import path_length
from route_intel.models import Coordinate, GeoPoint, RouteAccuracy, SessionDistanceRecord
from route_intel.provider import ProviderRoute

START = datetime(2024, 6, 3, 8, 0, tzinfo=UTC)
METERS_PER_DEG_LAT = 111_195.0


class FakeProvider:
    """In-memory provider: echoes the waypoints as geometry, distance = path length x scale."""

    def __init__(self, max_waypoints=25, delay=0.0, fail=None, scale=1.1, fail_on=None):
        self.max_waypoints = max_waypoints
        self.delay = delay
        self.fail = fail
        self.fail_on = fail_on
        self.scale = scale
        self.calls: list[list] = []
        self.closed = False

    async def snap_to_route(self, waypoints, mode, timeout):
        self.calls.append(list(waypoints))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail is not None and (self.fail_on is None or len(self.calls) == self.fail_on):
            raise self.fail
        km = path_length(waypoints) * self.scale
        return ProviderRoute(
            geometry=[GeoPoint(latitude=p.latitude, longitude=p.longitude) for p in waypoints],
            distance_km=km,
            duration_min=km * 1.5,
        )

    async def aclose(self):
        self.closed = True


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def _straight_trail(n, step_m=100.0, interval_s=10.0, origin=(28.6139, 77.2090)):
    lat0, lng0 = origin
    return [
        Coordinate(
            latitude=lat0 + i * step_m / METERS_PER_DEG_LAT,
            longitude=lng0,
            timestamp=START + timedelta(seconds=i * interval_s),
        )
        for i in range(n)
    ]


def _zigzag_trail(n, step_m=100.0, interval_s=10.0, origin=(28.6139, 77.2090)):
    lat0, lng0 = origin
    offset = step_m / METERS_PER_DEG_LAT
    return [
        Coordinate(
            latitude=lat0 + i * offset,
            longitude=lng0 + (offset if i % 2 else 0.0),
            timestamp=START + timedelta(seconds=i * interval_s),
        )
        for i in range(n)
    ]


@pytest.fixture
def straight_trail():
    return _straight_trail


@pytest.fixture
def zigzag_trail():
    return _zigzag_trail


@pytest.fixture
def static_trail():
    """20 fixes jittering within a few meters over 15 minutes."""
    lat0, lng0 = 28.6139, 77.2090
    return [
        Coordinate(
            latitude=lat0 + 0.00003 * (i % 3),
            longitude=lng0 + 0.00003 * ((i * 7) % 3),
            timestamp=START + timedelta(seconds=i * 15 * 60 / 19),
        )
        for i in range(20)
    ]


@pytest.fixture
def delhi_trail():
    return [
        Coordinate(latitude=28.6139, longitude=77.2090, timestamp=START),
        Coordinate(latitude=28.6129, longitude=77.2295, timestamp=START + timedelta(minutes=10)),
        Coordinate(latitude=28.5535, longitude=77.2588, timestamp=START + timedelta(minutes=25)),
    ]


@pytest.fixture
def fake_provider():
    return FakeProvider


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def settings():
    return Settings(provider_api_key="test-key")


@pytest.fixture
def cache():
    return RouteCache()


@pytest.fixture
def make_session():
    def _make(
        day,
        km,
        hours=1.0,
        start_hour=9,
        logs=60,
        accuracy=RouteAccuracy.PRECISE,
        session_id=None,
        open_session=False,
    ):
        check_in = datetime(day.year, day.month, day.day, start_hour, tzinfo=UTC)
        return SessionDistanceRecord(
            session_id=session_id or f"s-{day.isoformat()}-{start_hour}",
            user_id="u-1",
            check_in=check_in,
            check_out=None if open_session else check_in + timedelta(hours=hours),
            total_km=km,
            gps_log_count=logs,
            route_accuracy=accuracy,
        )

    return _make
