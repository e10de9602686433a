"""Tests for environment-driven settings."""

import pytest
from pydantic import ValidationError

from route_intel.config import DEFAULT_PROVIDER_URL, Settings


class TestSettingsFromEnv:
    def test_defaults(self):
        settings = Settings.from_env({})
        assert settings.provider_api_key is None
        assert settings.provider_configured is False
        assert settings.provider_base_url == DEFAULT_PROVIDER_URL
        assert settings.cache_ttl_s == 86400
        assert settings.fallback_cache_ttl_s == 300
        assert settings.max_waypoints_per_call == 25
        assert settings.minutes_per_km == 2.0
        assert settings.return_match_km == 0.1

    def test_reads_prefixed_variables(self):
        settings = Settings.from_env(
            {
                "ROUTE_INTEL_PROVIDER_API_KEY": "abc",
                "ROUTE_INTEL_MAX_WAYPOINTS": "10",
                "ROUTE_INTEL_PROVIDER_TIMEOUT_S": "2.5",
                "ROUTE_INTEL_DEFAULT_MODE": "walking",
                "ROUTE_INTEL_RETURN_MATCH_KM": "0.25",
            }
        )
        assert settings.provider_api_key == "abc"
        assert settings.provider_configured is True
        assert settings.max_waypoints_per_call == 10
        assert settings.provider_timeout_s == 2.5
        assert settings.default_mode == "walking"
        assert settings.return_match_km == 0.25

    def test_google_key_fallback(self):
        assert Settings.from_env({"GOOGLE_MAPS_API_KEY": "g"}).provider_api_key == "g"
        both = {"ROUTE_INTEL_PROVIDER_API_KEY": "r", "GOOGLE_MAPS_API_KEY": "g"}
        assert Settings.from_env(both).provider_api_key == "r"

    def test_blank_values_are_unset(self):
        settings = Settings.from_env({"ROUTE_INTEL_PROVIDER_API_KEY": "  ", "ROUTE_INTEL_CACHE_TTL_S": ""})
        assert settings.provider_configured is False
        assert settings.cache_ttl_s == 86400

    @pytest.mark.parametrize(
        "name, value",
        [
            ("ROUTE_INTEL_PROVIDER_TIMEOUT_S", "0"),
            ("ROUTE_INTEL_MAX_WAYPOINTS", "1"),
            ("ROUTE_INTEL_CACHE_TTL_S", "soon"),
        ],
    )
    def test_invalid_values_raise(self, name, value):
        with pytest.raises(ValidationError):
            Settings.from_env({name: value})
