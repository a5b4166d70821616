"""Consumer tracking for material variants.

Materials may be shared across meshes, so a superseded material variant is
only disposed once no live consumer still references it.  The registry is
owned by the coordinator; the check-then-dispose sequence relies on the
single-threaded event loop.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .host import MaterialConsumer
    from .metrics import Metrics

logger = logging.getLogger(__name__)

UsageKey = tuple[int, int]


@dataclass
class MaterialUsage:
    variant: int
    draw_mode: int
    material: Any
    consumers: list[MaterialConsumer] = field(default_factory=list)

    def in_use(self) -> bool:
        for consumer in self.consumers:
            if getattr(consumer, "disposed", False):
                continue
            if consumer.material is self.material:
                return True
        return False


class MaterialUsageRegistry:
    """Map of (material variant, draw mode) to the constructed material and its consumers."""

    def __init__(self, *, metrics: Optional[Metrics] = None) -> None:
        self._entries: dict[UsageKey, MaterialUsage] = {}
        self._metrics = metrics

    def track(self, variant: int, draw_mode: int, material: Any, consumer: MaterialConsumer) -> MaterialUsage:
        key = (int(variant), int(draw_mode))
        entry = self._entries.get(key)
        if entry is None or entry.material is not material:
            if entry is not None:
                logger.debug("material usage replaced: variant=%d draw_mode=%d", key[0], key[1])
            entry = MaterialUsage(variant=key[0], draw_mode=key[1], material=material)
            self._entries[key] = entry
        if not any(existing is consumer for existing in entry.consumers):
            entry.consumers.append(consumer)
        return entry

    def get(self, variant: int, draw_mode: int) -> Optional[MaterialUsage]:
        return self._entries.get((int(variant), int(draw_mode)))

    def release_if_unused(self, variant: int, draw_mode: int) -> bool:
        """Dispose the tracked material if nothing live references it."""

        key = (int(variant), int(draw_mode))
        entry = self._entries.get(key)
        if entry is None or entry.in_use():
            return False
        self._dispose(key, entry)
        return True

    def sweep(self) -> int:
        """Dispose every tracked material with no live consumer."""

        disposed = 0
        for key, entry in tuple(self._entries.items()):
            if not entry.in_use():
                self._dispose(key, entry)
                disposed += 1
        return disposed

    def _dispose(self, key: UsageKey, entry: MaterialUsage) -> None:
        del self._entries[key]
        logger.debug("dispose material: variant=%d draw_mode=%d", key[0], key[1])
        entry.material.dispose()
        if self._metrics is not None:
            self._metrics.inc("lod_disposed_total")

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def clear(self) -> None:
        self._entries.clear()


__all__ = ["MaterialUsage", "MaterialUsageRegistry"]
