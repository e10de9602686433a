"""Segment computation between consecutive route geometry points."""

from pydantic import BaseModel

from .geodesy import distance
from .models import GeoPoint


class Segment(BaseModel):
    """A great-circle segment between two consecutive geometry points."""

    segment: str
    start_point: int
    end_point: int
    start_lat: float
    start_lng: float
    end_lat: float
    end_lng: float
    length_m: float
    length_km: float
    cumulative_km_start: float
    cumulative_km_end: float


SEGMENT_FIELDS = list(Segment.model_fields)


def compute_segments(points: list[GeoPoint]) -> list[Segment]:
    """Compute segments between consecutive points with haversine lengths and cumulative km."""
    segments: list[Segment] = []
    cumulative_km = 0.0

    for i in range(1, len(points)):
        p1, p2 = points[i - 1], points[i]
        length_km = distance(p1, p2)

        seg = Segment(
            segment=f"{i} -> {i + 1}",
            start_point=i,
            end_point=i + 1,
            start_lat=p1.latitude,
            start_lng=p1.longitude,
            end_lat=p2.latitude,
            end_lng=p2.longitude,
            length_m=length_km * 1000,
            length_km=length_km,
            cumulative_km_start=cumulative_km,
            cumulative_km_end=cumulative_km + length_km,
        )
        segments.append(seg)
        cumulative_km += length_km

    return segments
