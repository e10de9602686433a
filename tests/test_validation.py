"""Tests for coordinate cleaning and jitter removal."""

from datetime import timedelta

from route_intel.models import Coordinate
from route_intel.validation import clean_trail, drop_jitter


class TestCleanTrail:
    def test_keeps_valid_and_counts_rejected(self):
        raw = [
            {"lat": 28.6139, "lng": 77.2090, "timestamp": "2024-06-03T08:00:00Z"},
            {"lat": 95.0, "lng": 77.2090, "timestamp": "2024-06-03T08:01:00Z"},
            {"lat": float("nan"), "lng": 77.2090, "timestamp": "2024-06-03T08:02:00Z"},
            {"lat": 28.6140, "lng": 77.2091},
            {"lat": "abc", "lng": 77.2090, "timestamp": "2024-06-03T08:03:00Z"},
            {"latitude": 28.6129, "lon": 77.2295, "timestamp": "2024-06-03T08:04:00Z"},
        ]
        cleaned = clean_trail(raw)
        assert cleaned.rejected == 4
        assert [p.latitude for p in cleaned.points] == [28.6139, 28.6129]
        assert cleaned.points[1].longitude == 77.2295

    def test_preserves_order_and_instances(self, straight_trail):
        trail = straight_trail(5)
        cleaned = clean_trail(reversed(trail))
        assert cleaned.points == list(reversed(trail))
        assert cleaned.rejected == 0

    def test_naive_timestamps_are_utc(self):
        cleaned = clean_trail([{"lat": 1, "lng": 2, "timestamp": "2024-06-03T08:00:00"}])
        assert cleaned.points[0].timestamp.utcoffset() == timedelta(0)


class TestDropJitter:
    def test_short_trails_untouched(self, straight_trail):
        trail = straight_trail(2)
        assert drop_jitter(trail) == trail

    def test_drops_near_duplicates(self, straight_trail):
        trail = straight_trail(4)
        duplicate = Coordinate(
            latitude=trail[1].latitude + 0.00001,
            longitude=trail[1].longitude,
            timestamp=trail[1].timestamp + timedelta(seconds=5),
        )
        noisy = [trail[0], trail[1], duplicate, *trail[2:]]
        assert drop_jitter(noisy) == trail

    def test_drops_implausible_jump_keeps_endpoints(self, straight_trail):
        trail = straight_trail(4)
        jump = Coordinate(
            latitude=trail[1].latitude + 0.1,
            longitude=trail[1].longitude,
            timestamp=trail[1].timestamp + timedelta(seconds=5),
        )
        noisy = [trail[0], trail[1], jump, *trail[2:]]
        cleaned = drop_jitter(noisy)
        assert jump not in cleaned
        assert cleaned[0] == trail[0]
        assert cleaned[-1] == trail[-1]
