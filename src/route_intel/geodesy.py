"""Great-circle distance, bearings and polyline encoding (no external dependencies)."""

from __future__ import annotations

import math
from typing import Iterable, Sequence

EARTH_RADIUS_KM = 6371.0088  # IUGG mean Earth radius

POLYLINE_PRECISION = 5


def _latlng(point) -> tuple[float, float]:
    if isinstance(point, (tuple, list)):
        return float(point[0]), float(point[1])
    return point.latitude, point.longitude


def distance(a, b) -> float:
    """Haversine distance in kilometers between two points.

    Args:
        a: Object with ``latitude``/``longitude`` attributes, or a ``(lat, lng)`` tuple.
        b: Same as ``a``.

    Returns:
        Distance in kilometers; 0.0 for coincident points.
    """

    lat1, lng1 = _latlng(a)
    lat2, lng2 = _latlng(b)
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    h = math.sin(d_phi / 2.0) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2.0) ** 2
    # rounding can push h just outside [0, 1] for antipodal points
    h = min(1.0, max(0.0, h))
    c = 2.0 * math.atan2(math.sqrt(h), math.sqrt(1.0 - h))
    return EARTH_RADIUS_KM * c


def path_length(trail: Sequence) -> float:
    """Sum of haversine distances over consecutive points, in kilometers."""

    if len(trail) < 2:
        return 0.0
    return sum(distance(trail[i - 1], trail[i]) for i in range(1, len(trail)))


def bearing(a, b) -> float:
    """Initial bearing from ``a`` to ``b`` in degrees, normalized to [0, 360)."""

    lat1, lng1 = _latlng(a)
    lat2, lng2 = _latlng(b)
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_lambda = math.radians(lng2 - lng1)

    x = math.sin(d_lambda) * math.cos(phi2)
    y = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(d_lambda)
    return (math.degrees(math.atan2(x, y)) + 360.0) % 360.0


def heading_change(first: float, second: float) -> float:
    """Signed turn from bearing ``first`` to bearing ``second``, in [-180, 180)."""

    return (second - first + 180.0) % 360.0 - 180.0


def bounding_diagonal_km(trail: Sequence) -> float:
    """Diagonal of the lat/lng bounding box of a trail, in kilometers."""

    if len(trail) < 2:
        return 0.0
    coords = [_latlng(p) for p in trail]
    lats = [c[0] for c in coords]
    lngs = [c[1] for c in coords]
    return distance((min(lats), min(lngs)), (max(lats), max(lngs)))


def _encode_value(value: int) -> str:
    value = ~(value << 1) if value < 0 else value << 1
    chunks: list[str] = []
    while value >= 0x20:
        chunks.append(chr((0x20 | (value & 0x1F)) + 63))
        value >>= 5
    chunks.append(chr(value + 63))
    return "".join(chunks)


def encode_polyline(points: Iterable, precision: int = POLYLINE_PRECISION) -> str:
    """Encode points with the signed-delta, 5-bit chunk polyline algorithm."""

    factor = 10**precision
    out: list[str] = []
    prev_lat = prev_lng = 0
    for point in points:
        lat, lng = _latlng(point)
        ilat = round(lat * factor)
        ilng = round(lng * factor)
        out.append(_encode_value(ilat - prev_lat))
        out.append(_encode_value(ilng - prev_lng))
        prev_lat, prev_lng = ilat, ilng
    return "".join(out)


def _decode_value(encoded: str, index: int) -> tuple[int, int]:
    result = 0
    shift = 0
    while True:
        if index >= len(encoded):
            raise ValueError("Truncated polyline")
        b = ord(encoded[index]) - 63
        if b < 0 or b > 0x3F:
            raise ValueError(f"Invalid polyline character {encoded[index]!r} at {index}")
        index += 1
        result |= (b & 0x1F) << shift
        shift += 5
        if b < 0x20:
            break
    value = ~(result >> 1) if result & 1 else result >> 1
    return value, index


def decode_polyline(encoded: str, precision: int = POLYLINE_PRECISION) -> list[tuple[float, float]]:
    """Decode a polyline string into ``(lat, lng)`` tuples.

    Raises:
        ValueError: If the string is truncated or contains characters outside the alphabet.
    """

    factor = 10**precision
    coords: list[tuple[float, float]] = []
    index = 0
    lat = lng = 0
    while index < len(encoded):
        d_lat, index = _decode_value(encoded, index)
        d_lng, index = _decode_value(encoded, index)
        lat += d_lat
        lng += d_lng
        coords.append((lat / factor, lng / factor))
    return coords
