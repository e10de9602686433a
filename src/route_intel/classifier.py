"""Movement intelligence: decide whether a trail is worth an external routing call.

A trail is scored on three signals:

- how many fixes it has,
- how winding it is (path length over straight-line start-to-end distance),
- how erratic its heading is (spread of turn angles between segments).

Workers who have not moved (spread below the static displacement threshold)
never trigger an external call, whatever the other signals say.
"""

from __future__ import annotations

import logging
import statistics
from dataclasses import dataclass
from typing import Sequence

from .config import Settings
from .geodesy import bearing, bounding_diagonal_km, distance, heading_change, path_length
from .models import Coordinate, RouteComplexity, RoutingDecision

logger = logging.getLogger(__name__)

MAX_SINUOSITY = 10.0
MIN_SEGMENT_M = 1.0  # shorter segments have no meaningful bearing

SIGNAL_WEIGHTS = {
    "points": 0.3,
    "sinuosity": 0.4,
    "heading": 0.3,
}


@dataclass(frozen=True, slots=True)
class ClassifierConfig:
    static_displacement_m: float = 30.0
    external_point_threshold: int = 25
    significant_turn_deg: float = 30.0
    return_proximity_km: float = 0.1
    return_ratio: float = 0.3

    @classmethod
    def from_settings(cls, settings: Settings) -> ClassifierConfig:
        return cls(
            static_displacement_m=settings.static_displacement_m,
            external_point_threshold=settings.external_point_threshold,
        )


@dataclass(frozen=True, slots=True)
class MovementPattern:
    """Geometric summary of a trail."""

    point_count: int = 0
    path_km: float = 0.0
    straight_line_km: float = 0.0
    sinuosity: float = 1.0
    spread_m: float = 0.0
    time_span_min: float = 0.0
    avg_speed_kmh: float = 0.0
    heading_stdev_deg: float = 0.0
    direction_changes: int = 0
    is_returning: bool = False


def analyze_movement(trail: Sequence[Coordinate], config: ClassifierConfig | None = None) -> MovementPattern:
    config = config or ClassifierConfig()
    n = len(trail)
    if n < 2:
        return MovementPattern(point_count=n)

    path_km = path_length(trail)
    straight_km = distance(trail[0], trail[-1])
    if straight_km * 1000 >= MIN_SEGMENT_M:
        sinuosity = min(path_km / straight_km, MAX_SINUOSITY)
    else:
        # closed loop: maximally winding unless nothing moved at all
        sinuosity = MAX_SINUOSITY if path_km * 1000 >= MIN_SEGMENT_M else 1.0

    bearings = [
        bearing(trail[i - 1], trail[i])
        for i in range(1, n)
        if distance(trail[i - 1], trail[i]) * 1000 >= MIN_SEGMENT_M
    ]
    turns = [heading_change(bearings[i - 1], bearings[i]) for i in range(1, len(bearings))]
    heading_stdev = statistics.pstdev(turns) if len(turns) >= 2 else 0.0
    direction_changes = sum(1 for t in turns if abs(t) > config.significant_turn_deg)

    span_min = max(0.0, (trail[-1].timestamp - trail[0].timestamp).total_seconds() / 60.0)
    avg_speed = path_km / (span_min / 60.0) if span_min > 0 else 0.0

    return MovementPattern(
        point_count=n,
        path_km=path_km,
        straight_line_km=straight_km,
        sinuosity=sinuosity,
        spread_m=bounding_diagonal_km(trail) * 1000,
        time_span_min=span_min,
        avg_speed_kmh=avg_speed,
        heading_stdev_deg=heading_stdev,
        direction_changes=direction_changes,
        is_returning=_is_return_journey(trail, config),
    )


def _is_return_journey(trail: Sequence[Coordinate], config: ClassifierConfig) -> bool:
    """True when enough of the last 40% of fixes are back near the start."""
    n = len(trail)
    if n < 6:
        return False
    start = trail[0]
    tail = trail[int(n * 0.6):]
    near = sum(1 for p in tail if distance(start, p) <= config.return_proximity_km)
    return near / len(tail) >= config.return_ratio


def _signal_scores(pattern: MovementPattern) -> dict[str, int]:
    points = 2 if pattern.point_count > 50 else 1 if pattern.point_count > 10 else 0
    sinuosity = 2 if pattern.sinuosity > 1.5 else 1 if pattern.sinuosity > 1.15 else 0
    heading = 2 if pattern.heading_stdev_deg > 60 else 1 if pattern.heading_stdev_deg > 25 else 0
    return {"points": points, "sinuosity": sinuosity, "heading": heading}


def _bucket(score: int) -> RouteComplexity:
    if score >= 4:
        return RouteComplexity.COMPLEX
    if score >= 2:
        return RouteComplexity.MODERATE
    return RouteComplexity.SIMPLE


def _agreement_confidence(scores: dict[str, int], use_external: bool) -> float:
    target = 1.0 if use_external else 0.0
    agreement = sum(
        weight * (1.0 - abs(scores[name] / 2.0 - target)) for name, weight in SIGNAL_WEIGHTS.items()
    )
    return round(40.0 + 60.0 * agreement, 1)


def classify(trail: Sequence[Coordinate], config: ClassifierConfig | None = None) -> RoutingDecision:
    """Produce a routing decision for a validated, time-ordered trail.

    Never raises: malformed coordinates are expected to be filtered out beforehand,
    and trails with fewer than two points yield a terminal "insufficient data" decision.
    """
    config = config or ClassifierConfig()
    n = len(trail)
    if n < 2:
        return RoutingDecision(
            use_external_api=False,
            is_static_location=False,
            complexity=RouteComplexity.SIMPLE,
            confidence=100.0,
            reasons=[f"insufficient data: {n} point(s), at least 2 required"],
            insufficient_data=True,
            point_count=n,
        )

    pattern = analyze_movement(trail, config)
    common = dict(
        point_count=n,
        path_km=pattern.path_km,
        straight_line_km=pattern.straight_line_km,
        spread_m=pattern.spread_m,
        time_span_min=pattern.time_span_min,
    )

    if pattern.spread_m < config.static_displacement_m:
        confidence = 70.0 + 30.0 * (1.0 - pattern.spread_m / config.static_displacement_m)
        decision = RoutingDecision(
            use_external_api=False,
            is_static_location=True,
            complexity=RouteComplexity.SIMPLE,
            confidence=round(min(100.0, confidence), 1),
            reasons=[
                f"static location, <{config.static_displacement_m:.0f} m displacement "
                f"({pattern.spread_m:.1f} m) over {pattern.time_span_min:.1f} minutes"
            ],
            **common,
        )
        logger.debug("Trail of %d points classified static (%.1f m spread)", n, pattern.spread_m)
        return decision

    scores = _signal_scores(pattern)
    score = sum(scores.values())
    complexity = _bucket(score)
    many_points = n > config.external_point_threshold
    use_external = complexity != RouteComplexity.SIMPLE or many_points

    reasons: list[str] = []
    if complexity != RouteComplexity.SIMPLE:
        reasons.append(f"route complexity {complexity.value} (score {score}) warrants API usage")
    elif many_points:
        reasons.append(f"{n} points exceed threshold of {config.external_point_threshold}, API usage warranted")
    else:
        reasons.append(f"route complexity simple (score {score}), algorithmic routing is sufficient")
    reasons.append(
        f"path {pattern.path_km:.2f} km vs straight line {pattern.straight_line_km:.2f} km "
        f"(sinuosity {pattern.sinuosity:.2f})"
    )
    reasons.append(
        f"{pattern.direction_changes} direction changes, heading change spread {pattern.heading_stdev_deg:.0f} deg"
    )
    if pattern.is_returning:
        reasons.append("return journey detected")

    logger.debug(
        "Trail of %d points: complexity=%s score=%d external=%s", n, complexity.value, score, use_external
    )
    return RoutingDecision(
        use_external_api=use_external,
        is_static_location=False,
        complexity=complexity,
        confidence=_agreement_confidence(scores, use_external),
        reasons=reasons,
        **common,
    )
