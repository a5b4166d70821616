import json

import pytest

from progressive_lod.config import DEFAULT_MAX_LEVELS, LodSettings, LoggingToggles, load_lod_settings
from progressive_lod.errors import ConfigurationError


def test_lod_settings_defaults():
    settings = load_lod_settings({})
    assert settings.max_levels_to_load == DEFAULT_MAX_LEVELS == 10
    assert settings.use_range_requests is False
    assert settings.throttle_range_reads is False
    assert settings.logging == LoggingToggles()


def test_lod_settings_json_bundle():
    env = {
        "PROGRESSIVE_LOD_CONFIG": json.dumps(
            {
                "max_levels": 4,
                "range_requests": True,
                "throttle_reads": "yes",
                "log": ["deferred", "buckets"],
            }
        )
    }
    settings = load_lod_settings(env)
    assert settings.max_levels_to_load == 4
    assert settings.use_range_requests is True
    assert settings.throttle_range_reads is True
    assert settings.logging.log_deferred is True
    assert settings.logging.log_buckets is True
    assert settings.logging.log_levels is False


def test_lod_settings_env_overrides_bundle():
    env = {
        "PROGRESSIVE_LOD_CONFIG": json.dumps({"max_levels": 4, "range_requests": True}),
        "PROGRESSIVE_LOD_MAX_LEVELS": "2",
        "PROGRESSIVE_LOD_RANGE_REQUESTS": "0",
        "PROGRESSIVE_LOD_LOG": "all",
    }
    settings = load_lod_settings(env)
    assert settings.max_levels_to_load == 2
    assert settings.use_range_requests is False
    assert settings.logging == LoggingToggles(log_deferred=True, log_buckets=True, log_levels=True)


def test_lod_settings_ignores_malformed_values():
    env = {
        "PROGRESSIVE_LOD_CONFIG": "{not json",
        "PROGRESSIVE_LOD_MAX_LEVELS": "many",
        "PROGRESSIVE_LOD_THROTTLE_READS": "sometimes",
        "PROGRESSIVE_LOD_LOG": "levels,unknown",
    }
    settings = load_lod_settings(env)
    assert settings.max_levels_to_load == DEFAULT_MAX_LEVELS
    assert settings.throttle_range_reads is False
    assert settings.logging == LoggingToggles(log_levels=True)


@pytest.mark.parametrize("raw", ["0", "-3"])
def test_lod_settings_rejects_non_positive_cap(raw):
    with pytest.raises(ConfigurationError):
        load_lod_settings({"PROGRESSIVE_LOD_MAX_LEVELS": raw})


@pytest.mark.parametrize("value", [0, -1, 2.5, True, "3"])
def test_settings_model_validates_cap(value):
    with pytest.raises(ConfigurationError):
        LodSettings(max_levels_to_load=value)
