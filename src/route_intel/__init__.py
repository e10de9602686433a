"""Route resolution and movement analytics for field-worker GPS trails."""

from .analytics import (
    consistency_score,
    daily_stats,
    efficiency_score,
    monthly_stats,
    percent_change,
    trail_quality,
    weekly_stats,
)
from .cache import RouteCache, fingerprint
from .classifier import ClassifierConfig, classify
from .config import Settings
from .engine import RouteResolutionEngine, build_engine
from .geodesy import decode_polyline, distance, encode_polyline, path_length
from .models import (
    Coordinate,
    GeoPoint,
    RouteAccuracy,
    RouteComplexity,
    RouteMethod,
    RouteResult,
    RoutingDecision,
    SessionDistanceRecord,
    TrailQuality,
)
from .provider import DirectionsClient, ProviderError, ProviderRoute

__all__ = [
    "ClassifierConfig",
    "Coordinate",
    "DirectionsClient",
    "GeoPoint",
    "ProviderError",
    "ProviderRoute",
    "RouteAccuracy",
    "RouteCache",
    "RouteComplexity",
    "RouteMethod",
    "RouteResolutionEngine",
    "RouteResult",
    "RoutingDecision",
    "SessionDistanceRecord",
    "Settings",
    "TrailQuality",
    "build_engine",
    "classify",
    "consistency_score",
    "daily_stats",
    "decode_polyline",
    "distance",
    "efficiency_score",
    "encode_polyline",
    "fingerprint",
    "monthly_stats",
    "path_length",
    "percent_change",
    "trail_quality",
    "weekly_stats",
]
