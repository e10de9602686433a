"""Route resolution: cache, classifier and provider glued behind one call that never fails."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Iterable, Sequence

from .cache import RouteCache, fingerprint
from .classifier import ClassifierConfig, classify
from .config import Settings
from .geodesy import bearing, distance, heading_change, path_length
from .models import (
    Coordinate,
    GeoPoint,
    RouteAccuracy,
    RouteDiagnostics,
    RouteMethod,
    RouteResult,
    RoutingDecision,
)
from .provider import DirectionsClient, ProviderError, RouteProvider
from .validation import clean_trail, drop_jitter

logger = logging.getLogger(__name__)

SIGNIFICANT_TURN_DEG = 30.0
NO_PROVIDER_REASON = "no provider configured"


class _ChunkFailure(Exception):
    def __init__(self, reason: str, calls: int):
        super().__init__(reason)
        self.reason = reason
        self.calls = calls


def _evenly_spaced(items: list[int], k: int) -> list[int]:
    if k <= 0:
        return []
    if k >= len(items):
        return list(items)
    if k == 1:
        return [items[len(items) // 2]]
    step = (len(items) - 1) / (k - 1)
    return sorted({items[round(i * step)] for i in range(k)})


def optimize_waypoints(trail: Sequence[Coordinate], budget: int) -> tuple[list[Coordinate], bool]:
    """Reduce a trail to at most ``budget`` waypoints.

    Jitter is dropped first. The endpoints and every point where the heading turns by
    more than 30 degrees are kept, and the remaining slots are filled with evenly
    spaced points. Order is preserved.

    Returns:
        The waypoints and whether the trail was downsampled.
    """

    if len(trail) <= budget:
        return list(trail), False

    points = drop_jitter(trail)
    if len(points) <= budget:
        return points, True

    last = len(points) - 1
    turns = []
    for i in range(1, last):
        if distance(points[i - 1], points[i]) == 0 or distance(points[i], points[i + 1]) == 0:
            continue
        change = heading_change(bearing(points[i - 1], points[i]), bearing(points[i], points[i + 1]))
        if abs(change) > SIGNIFICANT_TURN_DEG:
            turns.append(i)

    if len(turns) + 2 >= budget:
        keep = [0, *_evenly_spaced(turns, budget - 2), last]
    else:
        mandatory = {0, last, *turns}
        others = [i for i in range(len(points)) if i not in mandatory]
        keep = sorted(mandatory | set(_evenly_spaced(others, budget - len(mandatory))))

    return [points[i] for i in keep], True


def chunk_waypoints(waypoints: Sequence, size: int) -> list[list]:
    """Split waypoints into ordered chunks of at most ``size``; neighbours share their boundary point."""

    if size < 2:
        raise ValueError("Chunk size must be at least 2")
    if len(waypoints) <= size:
        return [list(waypoints)]
    step = size - 1
    return [list(waypoints[start:start + size]) for start in range(0, len(waypoints) - 1, step)]


def _as_geometry(points: Iterable[Coordinate]) -> list[GeoPoint]:
    return [GeoPoint(latitude=p.latitude, longitude=p.longitude) for p in points]


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000.0, 3)


class RouteResolutionEngine:
    """Turns a GPS trail into a distance, duration and geometry.

    The engine prefers the external provider when the classifier says the trail is
    worth it, and always has an algorithmic answer ready otherwise. Identical
    concurrent requests share one computation through the injected cache.
    """

    def __init__(
        self,
        cache: RouteCache,
        provider: RouteProvider | None = None,
        settings: Settings | None = None,
    ):
        self.settings = settings or Settings()
        self.cache = cache
        self.provider = provider
        self.classifier_config = ClassifierConfig.from_settings(self.settings)
        if provider is None:
            logger.info("No routing provider configured, routes will be resolved algorithmically")

    async def resolve_route(self, trail: Iterable[Coordinate | dict[str, Any]], mode: str | None = None) -> RouteResult:
        started = time.perf_counter()
        mode = mode or self.settings.default_mode
        cleaned = clean_trail(trail)
        points = cleaned.points

        if len(points) < 2:
            logger.info("Insufficient data: %d valid point(s), %d rejected", len(points), cleaned.rejected)
            return RouteResult(
                geometry=_as_geometry(points),
                distance_km=0.0,
                duration_min=0.0,
                method=RouteMethod.INSUFFICIENT_DATA,
                accuracy=RouteAccuracy.ESTIMATED,
                diagnostics=RouteDiagnostics(
                    original_point_count=len(points),
                    processed_point_count=len(points),
                    rejected_point_count=cleaned.rejected,
                    calculation_time_ms=_elapsed_ms(started),
                    resolved_method=RouteMethod.INSUFFICIENT_DATA,
                    routing_reasons=[f"insufficient data: {len(points)} valid point(s), at least 2 required"],
                ),
            )

        key = fingerprint(points, mode, self.settings.fingerprint_precision)
        try:
            cached = self.cache.lookup(key)
            if cached is not None:
                logger.debug("Cache hit for %s", key[:12])
                return self._from_cache(cached, cleaned.rejected, started)
            result = await self.cache.get_or_compute(
                key,
                lambda: self._compute(points, mode, cleaned.rejected, started),
                ttl_for=self._ttl_for,
            )
        except Exception:
            logger.exception("Route resolution failed unexpectedly, using algorithmic route")
            return self._algorithmic(
                points,
                rejected=cleaned.rejected,
                started=started,
                reasons=[],
                fallback_reason="unexpected error during route resolution",
            )

        logger.info(
            "Resolved %d points via %s: %.3f km in %.1f ms",
            len(points),
            result.method.value,
            result.distance_km,
            result.diagnostics.calculation_time_ms,
        )
        return result

    def _ttl_for(self, result: RouteResult) -> float | None:
        if result.diagnostics.fallback_reason is not None:
            return self.settings.fallback_cache_ttl_s
        return None

    def _from_cache(self, cached: RouteResult, rejected: int, started: float) -> RouteResult:
        original = cached.diagnostics.resolved_method or cached.method
        diagnostics = cached.diagnostics.model_copy(
            update={
                "cache_hit": True,
                "api_calls_made": 0,
                "resolved_method": original,
                "rejected_point_count": rejected,
                "calculation_time_ms": _elapsed_ms(started),
            }
        )
        return cached.model_copy(update={"method": RouteMethod.CACHE_HIT, "diagnostics": diagnostics})

    async def _compute(
        self, points: list[Coordinate], mode: str, rejected: int, started: float
    ) -> RouteResult:
        decision = classify(points, self.classifier_config)

        if not decision.use_external_api:
            return self._algorithmic(points, rejected, started, decision.reasons)
        reverse = self._return_journey(points, rejected, started, decision)
        if reverse is not None:
            return reverse
        if self.provider is None:
            return self._algorithmic(points, rejected, started, [*decision.reasons, NO_PROVIDER_REASON])

        waypoints, downsampled = optimize_waypoints(points, self.settings.waypoint_budget)
        try:
            return await self._call_provider(points, waypoints, downsampled, mode, rejected, started, decision)
        except _ChunkFailure as failure:
            logger.warning(
                "Provider failed after %d call(s) (%s), falling back to algorithmic route",
                failure.calls,
                failure.reason,
            )
            return self._algorithmic(
                points,
                rejected,
                started,
                decision.reasons,
                fallback_reason=failure.reason,
                api_calls=failure.calls,
                processed=len(waypoints),
            )

    def _return_journey(
        self, points: list[Coordinate], rejected: int, started: float, decision: RoutingDecision
    ) -> RouteResult | None:
        """Reuse a cached provider route whose endpoints are this trail's, swapped."""

        start, end = points[0], points[-1]
        tolerance = self.settings.return_match_km
        if distance(start, end) <= tolerance:
            return None

        def matches(result: RouteResult) -> bool:
            return (
                result.diagnostics.resolved_method == RouteMethod.EXTERNAL_API
                and len(result.geometry) >= 2
                and distance(start, result.geometry[-1]) <= tolerance
                and distance(end, result.geometry[0]) <= tolerance
            )

        cached = self.cache.find(matches)
        if cached is None:
            return None
        logger.info("Reusing cached route in reverse for return journey (%.3f km)", cached.distance_km)
        return RouteResult(
            geometry=list(reversed(cached.geometry)),
            distance_km=cached.distance_km,
            duration_min=cached.duration_min,
            method=RouteMethod.RETURN_JOURNEY_CACHED,
            accuracy=RouteAccuracy.STANDARD,
            diagnostics=RouteDiagnostics(
                cache_hit=True,
                original_point_count=len(points),
                processed_point_count=len(points),
                rejected_point_count=rejected,
                calculation_time_ms=_elapsed_ms(started),
                resolved_method=RouteMethod.RETURN_JOURNEY_CACHED,
                routing_reasons=[*decision.reasons, "return journey: reusing cached route in reverse"],
            ),
        )

    async def _call_provider(
        self,
        points: list[Coordinate],
        waypoints: list[Coordinate],
        downsampled: bool,
        mode: str,
        rejected: int,
        started: float,
        decision: RoutingDecision,
    ) -> RouteResult:
        max_per_call = min(self.settings.max_waypoints_per_call, self.provider.max_waypoints)
        chunks = chunk_waypoints(waypoints, max_per_call)
        timeout = self.settings.provider_timeout_s

        geometry: list[GeoPoint] = []
        distance_km = 0.0
        duration_min = 0.0
        calls = 0
        for index, chunk in enumerate(chunks):
            calls += 1
            try:
                route = await asyncio.wait_for(self.provider.snap_to_route(chunk, mode, timeout), timeout=timeout)
            except ProviderError as exc:
                raise _ChunkFailure(f"provider error on chunk {index + 1}/{len(chunks)}: {exc}", calls) from exc
            except TimeoutError as exc:
                raise _ChunkFailure(
                    f"provider timed out on chunk {index + 1}/{len(chunks)} after {timeout:.1f}s", calls
                ) from exc
            except Exception as exc:
                logger.exception("Unexpected provider failure on chunk %d", index + 1)
                raise _ChunkFailure(f"unexpected provider failure: {exc.__class__.__name__}", calls) from exc

            segment = route.geometry
            if geometry and segment and segment[0] == geometry[-1]:
                segment = segment[1:]
            geometry.extend(segment)
            distance_km += route.distance_km
            duration_min += route.duration_min

        return RouteResult(
            geometry=geometry,
            distance_km=distance_km,
            duration_min=duration_min,
            method=RouteMethod.EXTERNAL_API,
            accuracy=RouteAccuracy.STANDARD if downsampled else RouteAccuracy.PRECISE,
            diagnostics=RouteDiagnostics(
                api_calls_made=calls,
                original_point_count=len(points),
                processed_point_count=len(waypoints),
                rejected_point_count=rejected,
                calculation_time_ms=_elapsed_ms(started),
                resolved_method=RouteMethod.EXTERNAL_API,
                routing_reasons=list(decision.reasons),
            ),
        )

    def _algorithmic(
        self,
        points: list[Coordinate],
        rejected: int,
        started: float,
        reasons: list[str],
        fallback_reason: str | None = None,
        api_calls: int = 0,
        processed: int | None = None,
    ) -> RouteResult:
        distance_km = path_length(points)
        return RouteResult(
            geometry=_as_geometry(points),
            distance_km=distance_km,
            duration_min=distance_km * self.settings.minutes_per_km,
            method=RouteMethod.ALGORITHMIC,
            accuracy=RouteAccuracy.ESTIMATED,
            diagnostics=RouteDiagnostics(
                api_calls_made=api_calls,
                original_point_count=len(points),
                processed_point_count=len(points) if processed is None else processed,
                rejected_point_count=rejected,
                calculation_time_ms=_elapsed_ms(started),
                resolved_method=RouteMethod.ALGORITHMIC,
                fallback_reason=fallback_reason,
                routing_reasons=list(reasons),
            ),
        )

    async def aclose(self) -> None:
        if self.provider is not None:
            await self.provider.aclose()


def build_engine(settings: Settings | None = None) -> RouteResolutionEngine:
    """Wire cache, provider and engine from settings (environment when omitted)."""

    settings = settings or Settings.from_env()
    cache = RouteCache(ttl_seconds=settings.cache_ttl_s, max_entries=settings.cache_max_entries)
    provider = None
    if settings.provider_configured:
        provider = DirectionsClient(
            api_key=settings.provider_api_key,
            base_url=settings.provider_base_url,
            max_waypoints=settings.max_waypoints_per_call,
        )
    return RouteResolutionEngine(cache, provider=provider, settings=settings)
