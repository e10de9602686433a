"""Runtime configuration loaded from environment variables."""

from __future__ import annotations

import os
from collections.abc import Mapping

from pydantic import BaseModel, Field

ENV_PREFIX = "ROUTE_INTEL_"

DEFAULT_PROVIDER_URL = "https://maps.googleapis.com/maps/api/directions/json"

# field name -> environment variable (without prefix)
_ENV_FIELDS = {
    "provider_base_url": "PROVIDER_URL",
    "provider_timeout_s": "PROVIDER_TIMEOUT_S",
    "max_waypoints_per_call": "MAX_WAYPOINTS",
    "waypoint_budget": "WAYPOINT_BUDGET",
    "cache_ttl_s": "CACHE_TTL_S",
    "fallback_cache_ttl_s": "FALLBACK_CACHE_TTL_S",
    "cache_max_entries": "CACHE_MAX_ENTRIES",
    "fingerprint_precision": "FINGERPRINT_PRECISION",
    "static_displacement_m": "STATIC_DISPLACEMENT_M",
    "external_point_threshold": "EXTERNAL_POINT_THRESHOLD",
    "minutes_per_km": "MINUTES_PER_KM",
    "return_match_km": "RETURN_MATCH_KM",
    "default_mode": "DEFAULT_MODE",
}


class Settings(BaseModel):
    """Tunables for the route resolution engine.

    A missing ``provider_api_key`` is a valid configuration: the engine then runs
    permanently in algorithmic mode.
    """

    provider_api_key: str | None = None
    provider_base_url: str = DEFAULT_PROVIDER_URL
    provider_timeout_s: float = Field(default=8.0, gt=0)
    max_waypoints_per_call: int = Field(default=25, ge=2)
    waypoint_budget: int = Field(default=100, ge=2)
    cache_ttl_s: float = Field(default=24 * 60 * 60.0, gt=0)
    fallback_cache_ttl_s: float = Field(default=300.0, ge=0)
    cache_max_entries: int = Field(default=500, ge=1)
    fingerprint_precision: int = Field(default=5, ge=0, le=8)
    static_displacement_m: float = Field(default=30.0, gt=0)
    external_point_threshold: int = Field(default=25, ge=2)
    minutes_per_km: float = Field(default=2.0, ge=0)
    return_match_km: float = Field(default=0.1, ge=0)
    default_mode: str = "driving"

    @property
    def provider_configured(self) -> bool:
        return bool(self.provider_api_key)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """Build settings from ``ROUTE_INTEL_*`` variables.

        The API key is read from ``ROUTE_INTEL_PROVIDER_API_KEY`` and falls back to
        ``GOOGLE_MAPS_API_KEY``. Blank values are treated as unset.

        Raises:
            pydantic.ValidationError: If a variable holds an invalid value.
        """
        env = os.environ if environ is None else environ
        values: dict[str, str] = {}

        api_key = (env.get(f"{ENV_PREFIX}PROVIDER_API_KEY") or env.get("GOOGLE_MAPS_API_KEY") or "").strip()
        if api_key:
            values["provider_api_key"] = api_key

        for field, suffix in _ENV_FIELDS.items():
            raw = env.get(ENV_PREFIX + suffix, "").strip()
            if raw:
                values[field] = raw

        return cls.model_validate(values)
