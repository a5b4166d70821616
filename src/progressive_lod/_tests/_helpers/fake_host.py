"""In-memory host runtime for exercising the LOD coordinator.

The fake host records every visibility change, disposal and I/O request in a
single ordered ``events`` list so tests can assert on ordering.  Variant loads
can be held open with ``gate(path)`` (an ``asyncio.Event``) or failed with
``fail(path, exc)``; buffer views and URIs requested by a variant are declared
up front and issued synchronously, as the host contract requires.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Optional

from progressive_lod.assets import EXTENSION_NAME, AssetDocument, BufferDef, MaterialDef, NodeDef
from progressive_lod.context import LoadContext


class FakeRenderable:
    def __init__(self, name: str, events: list[tuple[str, str]]) -> None:
        self.name = name
        self.enabled: Optional[bool] = None
        self.disposed = False
        self._events = events

    def set_enabled(self, enabled: bool) -> None:
        self.enabled = bool(enabled)
        self._events.append(("show" if enabled else "hide", self.name))

    def dispose(self) -> None:
        self.disposed = True
        self._events.append(("dispose", self.name))

    def __repr__(self) -> str:
        return f"FakeRenderable({self.name!r})"


@dataclass
class FakeMesh:
    name: str
    material: Any = None
    disposed: bool = False


class CountingReader:
    """Range reader over an in-memory payload that records every read."""

    def __init__(self, data: bytes, *, fail: Optional[BaseException] = None) -> None:
        self.data = data
        self.calls: list[tuple[int, int]] = []
        self.fail = fail
        self.gate: Optional[asyncio.Event] = None

    async def read_range(self, start: int, length: int) -> bytes:
        self.calls.append((int(start), int(length)))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail is not None:
            raise self.fail
        return self.data[start : start + length]


@dataclass
class VariantIO:
    """Sub-resource requests a variant issues while it is being loaded."""

    views: list[tuple[int, int, int]] = field(default_factory=list)  # (buffer, offset, length)
    uris: list[str] = field(default_factory=list)


class FakeHost:
    def __init__(
        self,
        document: AssetDocument,
        *,
        reader: Any = None,
        io: Optional[Mapping[str, VariantIO]] = None,
    ) -> None:
        self.document = document
        self.bin = reader
        self.coordinator: Any = None
        self.events: list[tuple[str, str]] = []
        self.completions: list[Awaitable[Any]] = []
        self.payloads: dict[str, list[Any]] = {}
        self.io: dict[str, VariantIO] = dict(io or {})
        self.load_contexts: dict[str, LoadContext] = {}
        self._gates: dict[str, asyncio.Event] = {}
        self._failures: dict[str, BaseException] = {}

    # Test controls ------------------------------------------------------
    def gate(self, path: str) -> asyncio.Event:
        event = self._gates.get(path)
        if event is None:
            event = asyncio.Event()
            self._gates[path] = event
        return event

    def fail(self, path: str, exc: BaseException) -> None:
        self._failures[path] = exc

    def names(self, kind: str) -> list[str]:
        return [name for event, name in self.events if event == kind]

    # Host protocol ------------------------------------------------------
    def is_extension_used(self, name: str) -> bool:
        return self.document.is_extension_used(name)

    def add_completion(self, awaitable: Awaitable[Any]) -> None:
        self.completions.append(awaitable)

    def load_node_variant(self, context, node: NodeDef, assign, load_context: LoadContext):
        self.load_contexts[context] = load_context
        renderable = FakeRenderable(f"node{node.index}", self.events)
        assign(renderable)
        pending = self._issue_io(context, load_context)
        return self._finish(context, renderable, pending)

    def load_material_variant(self, context, material: MaterialDef, consumer, draw_mode, assign, load_context):
        self.load_contexts[context] = load_context
        constructed = FakeRenderable(f"material{material.index}", self.events)
        assign(constructed)
        pending = self._issue_io(context, load_context)
        return self._finish(context, constructed, pending)

    async def load_uri(self, context: str, prop: Any, uri: str) -> bytes:
        self.events.append(("uri", uri))
        return uri.encode()

    # Internals ------------------------------------------------------------
    def _issue_io(self, context: str, load_context: LoadContext) -> list[Awaitable[Any]]:
        declared = self.io.get(context)
        if declared is None:
            return []
        pending: list[Awaitable[Any]] = []
        for buffer_index, offset, length in declared.views:
            buffer = self.document.buffers[buffer_index]
            view = self.coordinator.load_buffer_view(context, buffer, offset, length, load_context)
            assert view is not None, "range requests must be enabled for declared views"
            pending.append(view)
        for uri in declared.uris:
            deferred = self.coordinator.load_uri(context, None, uri, load_context)
            pending.append(deferred if deferred is not None else self.load_uri(context, None, uri))
        return pending

    async def _finish(self, context: str, renderable: FakeRenderable, pending: list[Awaitable[Any]]) -> FakeRenderable:
        self.payloads[context] = [await item for item in pending]
        gate = self._gates.get(context)
        if gate is not None:
            await gate.wait()
        failure = self._failures.get(context)
        if failure is not None:
            raise failure
        self.events.append(("loaded", context))
        return renderable


def lod_node(index: int, ids: Iterable[int]) -> NodeDef:
    return NodeDef(index=index, extensions={EXTENSION_NAME: {"ids": list(ids)}})


def lod_material(index: int, ids: Iterable[int]) -> MaterialDef:
    return MaterialDef(index=index, extensions={EXTENSION_NAME: {"ids": list(ids)}})


def make_document(
    *,
    nodes: Iterable[NodeDef] = (),
    materials: Iterable[MaterialDef] = (),
    buffers: Iterable[BufferDef] = (BufferDef(index=0, byte_length=1024),),
    use_lod: bool = True,
) -> AssetDocument:
    return AssetDocument(
        nodes=tuple(nodes),
        materials=tuple(materials),
        buffers=tuple(buffers),
        extensions_used=(EXTENSION_NAME,) if use_lod else (),
    )


def plain_nodes(count: int, start: int = 0) -> list[NodeDef]:
    return [NodeDef(index=start + i) for i in range(count)]


def attach_coordinator(host: FakeHost, **settings: Any):
    """Create a coordinator for ``host`` and wire it back for variant I/O."""

    from progressive_lod.config import LodSettings
    from progressive_lod.coordinator import LodCoordinator

    coordinator = LodCoordinator(host, settings=LodSettings(**settings))
    host.coordinator = coordinator
    return coordinator


async def drain(turns: int = 10) -> None:
    for _ in range(turns):
        await asyncio.sleep(0)
