"""Configuration dataclasses for progressive LOD loading."""

from __future__ import annotations

from dataclasses import dataclass, field

from progressive_lod.errors import ConfigurationError

DEFAULT_MAX_LEVELS = 10


@dataclass(frozen=True)
class LoggingToggles:
    log_deferred: bool = False
    log_buckets: bool = False
    log_levels: bool = False


@dataclass(frozen=True)
class LodSettings:
    """Top-level scheduler settings."""

    max_levels_to_load: int = DEFAULT_MAX_LEVELS
    use_range_requests: bool = False
    # Issue bucket reads one level ahead instead of all at once on ready.
    throttle_range_reads: bool = False
    logging: LoggingToggles = field(default_factory=LoggingToggles)

    def __post_init__(self) -> None:
        validate_max_levels(self.max_levels_to_load)


def validate_max_levels(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"max_levels_to_load must be an integer (got {value!r})")
    if value <= 0:
        raise ConfigurationError("max_levels_to_load must be greater than zero")
    return value


__all__ = ["DEFAULT_MAX_LEVELS", "LodSettings", "LoggingToggles", "validate_max_levels"]
