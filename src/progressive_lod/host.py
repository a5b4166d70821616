"""Protocols for the host asset-loading runtime.

The scheduler never constructs renderables or performs I/O itself; it drives
these collaborators.  Variant loads are plain callables returning awaitables
and must issue their binary buffer-view requests (through
``LodCoordinator.load_buffer_view``) before returning, so that every request
for a level is folded into its range bucket before the bucket is read.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, Optional, Protocol, runtime_checkable

from .assets import AssetDocument, MaterialDef, NodeDef
from .context import LoadContext


@runtime_checkable
class Renderable(Protocol):
    def set_enabled(self, enabled: bool) -> None: ...

    def dispose(self) -> None: ...


@runtime_checkable
class MaterialConsumer(Protocol):
    """A mesh (or anything else) that holds a reference to a material."""

    material: Any
    disposed: bool


class RangeReader(Protocol):
    def read_range(self, start: int, length: int) -> Awaitable[bytes]: ...


Assign = Callable[[Any], None]


class AssetLoaderHost(Protocol):
    document: AssetDocument
    bin: Optional[RangeReader]

    def is_extension_used(self, name: str) -> bool: ...

    def load_node_variant(
        self,
        context: str,
        node: NodeDef,
        assign: Assign,
        load_context: LoadContext,
    ) -> Awaitable[Renderable]: ...

    def load_material_variant(
        self,
        context: str,
        material: MaterialDef,
        consumer: MaterialConsumer,
        draw_mode: int,
        assign: Assign,
        load_context: LoadContext,
    ) -> Awaitable[Any]: ...

    def load_uri(self, context: str, prop: Any, uri: str) -> Awaitable[bytes]: ...

    def add_completion(self, awaitable: Awaitable[Any]) -> None: ...


__all__ = [
    "AssetLoaderHost",
    "Assign",
    "MaterialConsumer",
    "RangeReader",
    "Renderable",
]
