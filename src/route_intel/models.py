"""Pydantic data models for route resolution and session analytics."""

from datetime import UTC, date, datetime
from enum import Enum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .geodesy import encode_polyline


def _as_utc(value: datetime) -> datetime:
    # Naive timestamps are treated as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class Coordinate(BaseModel):
    """A single GPS fix from a field session."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    latitude: float = Field(
        ge=-90, le=90, allow_inf_nan=False, validation_alias=AliasChoices("latitude", "lat")
    )
    longitude: float = Field(
        ge=-180, le=180, allow_inf_nan=False, validation_alias=AliasChoices("longitude", "lng", "lon")
    )
    timestamp: datetime
    speed: float | None = Field(default=None, ge=0, allow_inf_nan=False)
    accuracy: float | None = Field(default=None, ge=0, allow_inf_nan=False)

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)


class GeoPoint(BaseModel):
    """A point of route geometry (no timestamp)."""

    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float


class RouteComplexity(str, Enum):
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"


class RouteMethod(str, Enum):
    EXTERNAL_API = "external_api"
    ALGORITHMIC = "algorithmic"
    CACHE_HIT = "cache_hit"
    RETURN_JOURNEY_CACHED = "return_journey_cached"
    INSUFFICIENT_DATA = "insufficient_data"


class RouteAccuracy(str, Enum):
    PRECISE = "precise"
    STANDARD = "standard"
    ESTIMATED = "estimated"


class DistanceTrend(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class EfficiencyTrend(str, Enum):
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"


class RoutingDecision(BaseModel):
    """Outcome of classifying a trail: is an external routing call worth it."""

    use_external_api: bool
    is_static_location: bool
    complexity: RouteComplexity
    confidence: float = Field(ge=0, le=100)
    reasons: list[str] = Field(default_factory=list)
    insufficient_data: bool = False
    point_count: int = 0
    path_km: float = 0.0
    straight_line_km: float = 0.0
    spread_m: float = 0.0
    time_span_min: float = 0.0


class RouteDiagnostics(BaseModel):
    """How a route figure was obtained."""

    api_calls_made: int = 0
    cache_hit: bool = False
    original_point_count: int = 0
    processed_point_count: int = 0
    rejected_point_count: int = 0
    calculation_time_ms: float = 0.0
    resolved_method: RouteMethod | None = None
    fallback_reason: str | None = None
    routing_reasons: list[str] = Field(default_factory=list)


class RouteResult(BaseModel):
    """Resolved route for a trail. ``success`` is always true; trust is in method/accuracy."""

    geometry: list[GeoPoint]
    distance_km: float = Field(ge=0)
    duration_min: float = Field(ge=0)
    method: RouteMethod
    accuracy: RouteAccuracy
    success: bool = True
    diagnostics: RouteDiagnostics = Field(default_factory=RouteDiagnostics)

    def encoded_polyline(self) -> str:
        return encode_polyline(self.geometry)


class SessionDistanceRecord(BaseModel):
    """A stored, already-resolved field session."""

    session_id: str
    user_id: str
    check_in: datetime
    check_out: datetime | None = None
    total_km: float = Field(default=0.0, ge=0)
    gps_log_count: int = Field(default=0, ge=0)
    route_accuracy: RouteAccuracy | None = None

    @field_validator("check_in", "check_out")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        return None if value is None else _as_utc(value)

    @property
    def active_hours(self) -> float:
        if self.check_out is None:
            return 0.0
        return max(0.0, (self.check_out - self.check_in).total_seconds() / 3600.0)


class PeriodChange(BaseModel):
    """Difference between a period and the one before it."""

    previous_km: float = 0.0
    previous_hours: float = 0.0
    km_change: float = 0.0
    km_percent_change: float = 0.0
    hours_change: float = 0.0
    hours_percent_change: float = 0.0


class PeriodStats(BaseModel):
    """Totals and scores for a daily, weekly or monthly period."""

    period_start: datetime
    period_end: datetime
    total_km: float = 0.0
    total_active_hours: float = 0.0
    session_count: int = 0
    quality_score: float = Field(default=0.0, ge=0, le=1)
    consistency_score: float = Field(default=0.0, ge=0, le=100)
    efficiency_score: int = Field(default=0, ge=0, le=100)


class DailyStats(PeriodStats):
    day: date
    day_name: str
    avg_speed_kmh: float = 0.0


class WeeklyStats(PeriodStats):
    daily: list[DailyStats]
    avg_efficiency_kmh: float = 0.0
    best_day: DailyStats | None = None
    worst_day: DailyStats | None = None
    active_days: int = 0
    change: PeriodChange = Field(default_factory=PeriodChange)


class MonthlyStats(PeriodStats):
    month: int
    year: int
    weekly: list[WeeklyStats]
    peak_week_start: date | None = None
    peak_week_km: float = 0.0
    active_days: int = 0
    utilization_rate: float = 0.0
    avg_daily_km: float = 0.0
    avg_efficiency_kmh: float = 0.0
    trend: DistanceTrend = DistanceTrend.STABLE
    efficiency_trend: EfficiencyTrend = EfficiencyTrend.STABLE
    change: PeriodChange = Field(default_factory=PeriodChange)


class EfficiencyScore(BaseModel):
    """Composite 0-100 score: speed (40), route optimization (30), productivity (30)."""

    score: int = Field(ge=0, le=100)
    speed_efficiency: int = 0
    route_optimization: int = 0
    productivity: int = 0


class TrailQuality(BaseModel):
    """GPS data quality of a recorded trail."""

    total_readings: int = 0
    readings_with_accuracy: int = 0
    avg_accuracy_m: float = 0.0
    max_accuracy_m: float = 0.0
    good_readings: int = 0
    time_gaps: int = 0
    avg_interval_s: float = 0.0
    continuity: float = Field(default=0.0, ge=0, le=100)
    avg_reported_speed: float = 0.0
    max_reported_speed: float = 0.0
    overall_score: int = Field(default=0, ge=0, le=100)
    issues: list[str] = Field(default_factory=list)
