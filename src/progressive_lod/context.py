"""Explicit load contexts threaded through host calls."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class VariantKind(str, Enum):
    NODE = "node"
    MATERIAL = "material"

    @property
    def title(self) -> str:
        return self.value.capitalize()


@dataclass(frozen=True)
class LoadContext:
    """Immutable snapshot describing which LOD level a load belongs to."""

    kind: VariantKind
    level: int
    path: str

    @property
    def deferred(self) -> bool:
        """True when I/O issued under this context waits for the previous level."""

        return self.level > 0

    @property
    def previous_level(self) -> Optional[int]:
        return self.level - 1 if self.level > 0 else None

    def child(self, path: str) -> "LoadContext":
        return LoadContext(kind=self.kind, level=self.level, path=path)


def bucket_level(load_context: Optional[LoadContext]) -> int:
    """Range bucket index for a request; requests outside LOD loads use level 0."""

    if load_context is None:
        return 0
    return int(load_context.level)


def in_node_lod(load_context: Optional[LoadContext]) -> bool:
    """True for any level of a node LOD load, level 0 included.

    Material LOD splitting is suppressed under node LOD at every level, so the
    node level alone picks the material variant.  This is keyed on the node
    kind rather than on the level index, so a load nested in a material LOD
    level is not suppressed.
    """

    return load_context is not None and load_context.kind is VariantKind.NODE


__all__ = ["LoadContext", "VariantKind", "bucket_level", "in_node_lod"]
