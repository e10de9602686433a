"""Coordinate sanitizing ahead of classification and routing."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Sequence

from pydantic import ValidationError

from .geodesy import distance
from .models import Coordinate

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CleanedTrail:
    """Valid coordinates in their original order plus the number dropped."""

    points: list[Coordinate]
    rejected: int


def clean_trail(raw: Iterable[Coordinate | dict[str, Any]]) -> CleanedTrail:
    """Keep only structurally valid fixes.

    Accepts ``Coordinate`` instances or mappings (``lat``/``lng``/``lon`` aliases are
    understood). Anything out of range, non-finite, non-numeric or missing a
    timestamp is dropped. Order is preserved.
    """

    points: list[Coordinate] = []
    rejected = 0
    for index, item in enumerate(raw):
        if isinstance(item, Coordinate):
            points.append(item)
            continue
        try:
            points.append(Coordinate.model_validate(item))
        except ValidationError as exc:
            rejected += 1
            logger.debug("Dropping coordinate %d: %s", index, exc.errors(include_url=False))
    return CleanedTrail(points=points, rejected=rejected)


def drop_jitter(
    trail: Sequence[Coordinate],
    min_step_m: float = 5.0,
    max_speed_kmh: float = 150.0,
) -> list[Coordinate]:
    """Remove near-duplicate consecutive fixes and implausible jumps.

    The last fix is always kept so the trail still ends where the worker stopped.

    Args:
        trail: Time-ordered coordinates.
        min_step_m: Fixes closer than this to the previously kept fix are dropped.
        max_speed_kmh: Fixes implying a faster movement from the previously kept fix are dropped.
    """

    if len(trail) <= 2:
        return list(trail)

    kept = [trail[0]]
    for current in trail[1:-1]:
        previous = kept[-1]
        step_km = distance(previous, current)
        if step_km * 1000 < min_step_m:
            continue
        hours = (current.timestamp - previous.timestamp).total_seconds() / 3600.0
        if hours > 0 and step_km / hours > max_speed_kmh:
            logger.debug("Dropping implausible jump of %.3f km in %.1f s", step_km, hours * 3600)
            continue
        kept.append(current)
    kept.append(trail[-1])
    return kept
