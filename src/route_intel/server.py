"""FastAPI server for route resolution and session analytics."""

from __future__ import annotations

import csv
import io
from contextlib import asynccontextmanager
from datetime import date
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from .analytics import daily_stats, monthly_stats, trail_quality, weekly_stats
from .config import Settings
from .engine import RouteResolutionEngine, build_engine
from .models import (
    Coordinate,
    DailyStats,
    MonthlyStats,
    RouteResult,
    SessionDistanceRecord,
    TrailQuality,
    WeeklyStats,
)
from .segments import SEGMENT_FIELDS, Segment, compute_segments


class ResolveRequest(BaseModel):
    coordinates: list[Coordinate]
    mode: str | None = None


class TrailQualityRequest(BaseModel):
    coordinates: list[Coordinate]
    accuracy_threshold_m: float = Field(default=10.0, gt=0)


class _AnalyticsRequest(BaseModel):
    sessions: list[SessionDistanceRecord] = Field(default_factory=list)
    tz: str = "UTC"


class DailyRequest(_AnalyticsRequest):
    day: date = Field(alias="date")


class WeeklyRequest(_AnalyticsRequest):
    week_start: date


class MonthlyRequest(_AnalyticsRequest):
    month: int
    year: int


def _zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=f"Unknown time zone: {name}") from exc


def create_app(engine: RouteResolutionEngine | None = None, settings: Settings | None = None) -> FastAPI:
    """Build the application around an engine (one is built from settings/environment otherwise)."""

    engine = engine or build_engine(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await app.state.engine.aclose()

    app = FastAPI(title="Route Intel", version="0.1.0", lifespan=lifespan)
    app.state.engine = engine

    @app.post("/routes/resolve")
    async def resolve_route(
        body: ResolveRequest,
        request: Request,
        format: str = Query("json", pattern="^(csv|json)$"),
    ) -> RouteResult:
        """Resolve a GPS trail to a route.

        Returns the ``RouteResult`` as JSON, or the route geometry as CSV segments.
        """
        result = await request.app.state.engine.resolve_route(body.coordinates, body.mode)

        if format == "csv":
            return _segments_to_csv_response(compute_segments(result.geometry))
        return result

    @app.post("/trails/quality")
    async def trails_quality(body: TrailQualityRequest) -> TrailQuality:
        return trail_quality(body.coordinates, body.accuracy_threshold_m)

    @app.post("/analytics/daily")
    async def analytics_daily(body: DailyRequest) -> DailyStats:
        return daily_stats(body.sessions, body.day, _zone(body.tz))

    @app.post("/analytics/weekly")
    async def analytics_weekly(body: WeeklyRequest) -> WeeklyStats:
        return weekly_stats(body.sessions, body.week_start, _zone(body.tz))

    @app.post("/analytics/monthly")
    async def analytics_monthly(body: MonthlyRequest) -> MonthlyStats:
        try:
            return monthly_stats(body.sessions, body.month, body.year, _zone(body.tz))
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @app.get("/cache/stats")
    async def cache_stats(request: Request) -> dict[str, int]:
        return request.app.state.engine.cache.stats()

    @app.get("/health")
    async def health(request: Request) -> dict:
        return {"status": "ok", "provider_configured": request.app.state.engine.provider is not None}

    return app


def _segments_to_csv_response(segments: list[Segment]) -> StreamingResponse:
    """Convert segments to a streaming CSV response."""

    def generate():
        buf = io.StringIO()
        writer = csv.DictWriter(buf, fieldnames=SEGMENT_FIELDS)
        writer.writeheader()
        yield buf.getvalue()
        buf.seek(0)
        buf.truncate(0)

        for seg in segments:
            writer.writerow(seg.model_dump())
            yield buf.getvalue()
            buf.seek(0)
            buf.truncate(0)

    return StreamingResponse(
        generate(),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=route_segments.csv"},
    )


app = create_app()
