"""Environment parsing for ``LodSettings``.

Values come from an optional JSON bundle (``PROGRESSIVE_LOD_CONFIG``) and are
then overridden by individual variables:

- ``PROGRESSIVE_LOD_MAX_LEVELS``: positive integer cap on levels per object
- ``PROGRESSIVE_LOD_RANGE_REQUESTS``: bucket binary-chunk reads per level
- ``PROGRESSIVE_LOD_THROTTLE_READS``: issue bucket reads one level ahead
- ``PROGRESSIVE_LOD_LOG``: comma separated flags (``deferred``, ``buckets``,
  ``levels``) or ``all``
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterable, Mapping
from typing import Optional

from .models import DEFAULT_MAX_LEVELS, LodSettings, LoggingToggles

logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}

_LOG_FLAG_MAP: dict[str, str] = {
    "deferred": "log_deferred",
    "buckets": "log_buckets",
    "levels": "log_levels",
}


def _cfg_bool(value: object, default: bool) -> bool:
    if value is None:
        return bool(default)
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        val = value.strip().lower()
        if val in _TRUTHY:
            return True
        if val in _FALSY:
            return False
    return bool(default)


def _cfg_int(value: object, default: int) -> int:
    if value is None:
        return int(default)
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            logger.warning("invalid integer %r; using %d", value, int(default))
            return int(default)
    return int(default)


def _split_flags(raw: object) -> set[str]:
    result: set[str] = set()
    items: Iterable[object]
    if raw is None:
        return result
    if isinstance(raw, str):
        items = raw.split(",")
    elif isinstance(raw, Iterable):
        items = raw
    else:
        return result
    for item in items:
        token = str(item).strip().lower()
        if token:
            result.add(token)
    return result


def _load_json_config(env: Mapping[str, str], name: str) -> dict[str, object]:
    raw = env.get(name)
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except Exception:
        logger.warning("Failed to parse %s; ignoring", name, exc_info=True)
        return {}
    if isinstance(data, dict):
        return data
    logger.warning("%s must be a JSON object; ignoring", name)
    return {}


def _logging_toggles(flags: set[str]) -> LoggingToggles:
    if "all" in flags:
        return LoggingToggles(**{attr: True for attr in _LOG_FLAG_MAP.values()})
    kwargs = {attr: flag in flags for flag, attr in _LOG_FLAG_MAP.items()}
    unknown = flags.difference(_LOG_FLAG_MAP)
    if unknown:
        logger.debug("ignoring unknown log flags: %s", ",".join(sorted(unknown)))
    return LoggingToggles(**kwargs)


def load_lod_settings(env: Optional[Mapping[str, str]] = None) -> LodSettings:
    """Build ``LodSettings`` by reading the environment once.

    Raises ``ConfigurationError`` when the resolved level cap is not positive.
    """

    env = os.environ if env is None else env
    bundle = _load_json_config(env, "PROGRESSIVE_LOD_CONFIG")

    max_levels = _cfg_int(bundle.get("max_levels"), DEFAULT_MAX_LEVELS)
    use_range_requests = _cfg_bool(bundle.get("range_requests"), False)
    throttle = _cfg_bool(bundle.get("throttle_reads"), False)
    flags = _split_flags(bundle.get("log"))

    if "PROGRESSIVE_LOD_MAX_LEVELS" in env:
        max_levels = _cfg_int(env["PROGRESSIVE_LOD_MAX_LEVELS"], max_levels)
    if "PROGRESSIVE_LOD_RANGE_REQUESTS" in env:
        use_range_requests = _cfg_bool(env["PROGRESSIVE_LOD_RANGE_REQUESTS"], use_range_requests)
    if "PROGRESSIVE_LOD_THROTTLE_READS" in env:
        throttle = _cfg_bool(env["PROGRESSIVE_LOD_THROTTLE_READS"], throttle)
    if "PROGRESSIVE_LOD_LOG" in env:
        flags |= _split_flags(env["PROGRESSIVE_LOD_LOG"])

    settings = LodSettings(
        max_levels_to_load=max_levels,
        use_range_requests=use_range_requests,
        throttle_range_reads=throttle,
        logging=_logging_toggles(flags),
    )
    logger.debug(
        "lod settings: max_levels=%d range_requests=%s throttle_reads=%s",
        settings.max_levels_to_load,
        settings.use_range_requests,
        settings.throttle_range_reads,
    )
    return settings


__all__ = ["load_lod_settings"]
