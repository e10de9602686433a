"""Road-snapping / directions provider client.

The client speaks a Directions-style JSON API over ``httpx``. Responses are
validated against an explicit schema and converted to ``ProviderRoute``
immediately, so provider field names never leave this module.
"""

from __future__ import annotations

import logging
from typing import Protocol, Sequence

import httpx
from pydantic import BaseModel, Field, ValidationError

from .config import DEFAULT_PROVIDER_URL
from .geodesy import decode_polyline
from .models import GeoPoint

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """Any failure to obtain a route from the provider."""


class ProviderRoute(BaseModel):
    """A route for one chunk of waypoints, in internal units."""

    geometry: list[GeoPoint]
    distance_km: float = Field(ge=0)
    duration_min: float = Field(ge=0)


class RouteProvider(Protocol):
    max_waypoints: int

    async def snap_to_route(self, waypoints: Sequence, mode: str, timeout: float) -> ProviderRoute: ...

    async def aclose(self) -> None: ...


# Wire schema (Google Directions JSON shape)


class _Quantity(BaseModel):
    value: float = Field(ge=0)


class _Leg(BaseModel):
    distance: _Quantity
    duration: _Quantity


class _OverviewPolyline(BaseModel):
    points: str


class _Route(BaseModel):
    overview_polyline: _OverviewPolyline
    legs: list[_Leg] = Field(min_length=1)


class DirectionsPayload(BaseModel):
    status: str
    routes: list[_Route] = Field(default_factory=list)
    error_message: str | None = None


def _fmt(point) -> str:
    return f"{point.latitude:.6f},{point.longitude:.6f}"


class DirectionsClient:
    """Async client for a Directions-style endpoint.

    Args:
        api_key: Provider key, sent as the ``key`` query parameter.
        base_url: Endpoint URL.
        max_waypoints: Largest number of points (origin and destination included) per call.
        http_client: Optional pre-built ``httpx.AsyncClient``; one is created (and owned) otherwise.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_PROVIDER_URL,
        max_waypoints: int = 25,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.max_waypoints = max_waypoints
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient()

    async def snap_to_route(self, waypoints: Sequence, mode: str, timeout: float) -> ProviderRoute:
        if len(waypoints) < 2:
            raise ProviderError("At least 2 waypoints are required")
        if len(waypoints) > self.max_waypoints:
            raise ProviderError(f"{len(waypoints)} waypoints exceed the per-call limit of {self.max_waypoints}")

        params = {
            "origin": _fmt(waypoints[0]),
            "destination": _fmt(waypoints[-1]),
            "mode": mode,
            "key": self.api_key,
        }
        if len(waypoints) > 2:
            params["waypoints"] = "|".join(_fmt(p) for p in waypoints[1:-1])

        try:
            response = await self._client.get(self.base_url, params=params, timeout=timeout)
        except httpx.TimeoutException as exc:
            raise ProviderError(f"Provider timed out after {timeout:.1f}s") from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"Provider request failed: {exc.__class__.__name__}") from exc

        if response.status_code >= 400:
            raise ProviderError(f"Provider returned HTTP {response.status_code}")

        try:
            payload = DirectionsPayload.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise ProviderError("Malformed provider payload") from exc

        if payload.status != "OK":
            detail = f": {payload.error_message}" if payload.error_message else ""
            raise ProviderError(f"Provider status {payload.status}{detail}")
        if not payload.routes:
            raise ProviderError("Provider returned no routes")

        return _to_provider_route(payload.routes[0])

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def _to_provider_route(route: _Route) -> ProviderRoute:
    try:
        coords = decode_polyline(route.overview_polyline.points)
    except ValueError as exc:
        raise ProviderError("Undecodable route geometry") from exc

    meters = sum(leg.distance.value for leg in route.legs)
    seconds = sum(leg.duration.value for leg in route.legs)
    return ProviderRoute(
        geometry=[GeoPoint(latitude=lat, longitude=lng) for lat, lng in coords],
        distance_km=meters / 1000.0,
        duration_min=seconds / 60.0,
    )
