"""Configuration for the progressive LOD scheduler."""

from .loader import load_lod_settings
from .models import DEFAULT_MAX_LEVELS, LodSettings, LoggingToggles, validate_max_levels

__all__ = [
    "DEFAULT_MAX_LEVELS",
    "LodSettings",
    "LoggingToggles",
    "load_lod_settings",
    "validate_max_levels",
]
