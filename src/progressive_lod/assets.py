"""Minimal asset declaration model consumed by the LOD scheduler.

Only the fields the scheduler reads are modelled: node/material/buffer arrays,
per-object extension payloads, and the ``extensionsUsed`` list.  Parsing of the
container itself is done by the host; ``AssetDocument.from_payload`` accepts
the already-decoded JSON document.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Optional, TypeVar

from .errors import ArrayItemError

EXTENSION_NAME = "MSFT_lod"

T = TypeVar("T")


@dataclass(frozen=True)
class NodeDef:
    index: int
    name: Optional[str] = None
    mesh: Optional[int] = None
    children: tuple[int, ...] = ()
    extensions: Mapping[str, Any] = field(default_factory=dict)

    @property
    def path(self) -> str:
        return f"/nodes/{self.index}"


@dataclass(frozen=True)
class MaterialDef:
    index: int
    name: Optional[str] = None
    extensions: Mapping[str, Any] = field(default_factory=dict)

    @property
    def path(self) -> str:
        return f"/materials/{self.index}"


@dataclass(frozen=True)
class BufferDef:
    index: int
    byte_length: int
    uri: Optional[str] = None

    @property
    def path(self) -> str:
        return f"/buffers/{self.index}"


@dataclass(frozen=True)
class AssetDocument:
    nodes: tuple[NodeDef, ...] = ()
    materials: tuple[MaterialDef, ...] = ()
    buffers: tuple[BufferDef, ...] = ()
    extensions_used: tuple[str, ...] = ()

    def is_extension_used(self, name: str) -> bool:
        return name in self.extensions_used

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "AssetDocument":
        """Build a document from a decoded glTF JSON mapping."""

        nodes = tuple(
            NodeDef(
                index=idx,
                name=entry.get("name"),
                mesh=entry.get("mesh"),
                children=tuple(int(c) for c in entry.get("children", ())),
                extensions=dict(entry.get("extensions") or {}),
            )
            for idx, entry in enumerate(payload.get("nodes") or ())
        )
        materials = tuple(
            MaterialDef(
                index=idx,
                name=entry.get("name"),
                extensions=dict(entry.get("extensions") or {}),
            )
            for idx, entry in enumerate(payload.get("materials") or ())
        )
        buffers = tuple(
            BufferDef(
                index=idx,
                byte_length=int(entry.get("byteLength", 0)),
                uri=entry.get("uri"),
            )
            for idx, entry in enumerate(payload.get("buffers") or ())
        )
        used = tuple(str(name) for name in payload.get("extensionsUsed") or ())
        return cls(nodes=nodes, materials=materials, buffers=buffers, extensions_used=used)


def lod_ids(obj: NodeDef | MaterialDef) -> Optional[tuple[int, ...]]:
    """Return the declared LOD variant ids (finest first), or None if absent."""

    ext = obj.extensions.get(EXTENSION_NAME)
    if ext is None:
        return None
    return tuple(int(i) for i in ext.get("ids", ()))


def get_array_item(context: str, array: Optional[Sequence[T]], index: int) -> T:
    """Index-checked lookup into a declared array."""

    if array is None or isinstance(index, bool) or not isinstance(index, int):
        raise ArrayItemError(context, index)
    if index < 0 or index >= len(array):
        raise ArrayItemError(context, index)
    return array[index]


__all__ = [
    "EXTENSION_NAME",
    "AssetDocument",
    "BufferDef",
    "MaterialDef",
    "NodeDef",
    "get_array_item",
    "lod_ids",
]
