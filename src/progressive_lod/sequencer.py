"""Per-object LOD sequencing for nodes and materials.

Every level of an object is issued at once; ordering comes from the gating
around the loads, not from a queue:

* each renderable is hidden while it loads,
* level ``i`` swaps in only after its own load settles *and* level ``i-1`` of
  the same object finished its swap, so the coarser level is always shown
  before anything disposes it,
* the swap disposes every earlier level still holding a resource (the one on
  screen, plus hidden leftovers of failed levels) before showing level ``i``.

Level tasks are registered in the per-kind ``LevelArena`` so the coordinator
can build the cross-object barrier for each level.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional, TypeVar

from .assets import MaterialDef, NodeDef, get_array_item, lod_ids
from .context import LoadContext, VariantKind, in_node_lod
from .errors import ArrayItemError, ConfigurationError
from .level_logging import LevelLogger
from .levels import LevelArena
from .ranges import RangeCoalescer
from .signal import CancelToken, DeferredSignal
from .usage import MaterialUsageRegistry

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .host import AssetLoaderHost, Assign, MaterialConsumer
    from .metrics import Metrics

logger = logging.getLogger(__name__)

T = TypeVar("T")


def resolve_lod_levels(
    context: str,
    base: T,
    array: Optional[Sequence[T]],
    ids: Sequence[int],
    max_levels: int,
) -> list[T]:
    """Return LOD variants ordered coarsest to finest.

    ``ids`` are declared finest first; they are walked from last to first and
    capped so that ``max_levels`` entries remain once ``base`` (the finest
    variant) is appended.  Intermediate levels are the ones dropped.
    """

    if int(max_levels) <= 0:
        raise ConfigurationError("max_levels_to_load must be greater than zero")

    variants: list[T] = []
    for idx in range(len(ids) - 1, -1, -1):
        if len(variants) >= int(max_levels) - 1:
            break
        variant_id = ids[idx]
        variants.append(get_array_item(f"{context}/ids/{variant_id}", array, variant_id))
    variants.append(base)
    return variants


@dataclass
class LevelRecord:
    """State of one LOD level of one object."""

    level: int
    variant: Any
    load_context: LoadContext
    task: Optional[asyncio.Task] = field(default=None, repr=False)
    resource: Any = field(default=None, repr=False)
    loaded: bool = False
    shown: bool = False
    swapped: DeferredSignal = field(default_factory=DeferredSignal, repr=False)

    @property
    def state(self) -> str:
        if self.task is None:
            return "not started"
        if self.shown:
            return "shown"
        return "loaded" if self.loaded else "loading"


Issue = Callable[[LevelRecord], Awaitable[Any]]
Swap = Callable[[LevelRecord, list[LevelRecord], Any], None]


class LodSequencer:
    """Shared issue/await/swap algorithm; subclasses define load and dispose."""

    kind: VariantKind

    def __init__(
        self,
        host: AssetLoaderHost,
        *,
        arena: LevelArena,
        ranges: RangeCoalescer,
        usage: MaterialUsageRegistry,
        token: CancelToken,
        level_log: LevelLogger,
        metrics: Metrics,
        max_levels: int = 10,
    ) -> None:
        self._host = host
        self._arena = arena
        self._ranges = ranges
        self._usage = usage
        self._token = token
        self._log = level_log
        self._metrics = metrics
        self.max_levels = int(max_levels)

    # ------------------------------------------------------------------
    def _sequence(
        self,
        context: str,
        obj: Any,
        array: Optional[Sequence[Any]],
        ids: Sequence[int],
        issue: Issue,
        swap: Swap,
    ) -> asyncio.Future:
        loop = asyncio.get_running_loop()
        try:
            variants = resolve_lod_levels(context, obj, array, ids, self.max_levels)
        except ArrayItemError as exc:
            logger.warning("%s LOD resolution failed: %s", self.kind.value, exc)
            failed = loop.create_future()
            failed.set_exception(exc)
            self._host.add_completion(failed)
            return failed

        records = [
            LevelRecord(
                level=idx,
                variant=variant,
                load_context=LoadContext(kind=self.kind, level=idx, path=f"#{variant.path}"),
            )
            for idx, variant in enumerate(variants)
        ]

        self._log.open(context)
        try:
            for record in records:
                self._log.log("%s LOD %d -> %s", self.kind.value, record.level, record.load_context.path)
                handle = issue(record)
                record.task = loop.create_task(self._complete(record, records, handle, swap))
                self._arena.add_task(record.level, record.task)
                if record.level == 0 and len(self._ranges) != 0:
                    self._ranges.schedule_read(0)
        finally:
            self._log.close()

        first = records[0].task
        assert first is not None
        return first

    async def _complete(
        self,
        record: LevelRecord,
        records: list[LevelRecord],
        handle: Awaitable[Any],
        swap: Swap,
    ) -> Any:
        previous = records[record.level - 1].swapped if record.level > 0 else None
        try:
            try:
                resource = await handle
            except Exception:
                # A failed level still settles in order, so every earlier
                # level has swapped before a finer one looks back.
                if previous is not None:
                    await previous.wait()
                raise
            record.loaded = True
            if record.resource is None:
                record.resource = resource
            if previous is not None:
                await previous.wait()
            if self._token.cancelled:
                logger.debug(
                    "%s LOD %d swap abandoned: %s",
                    self.kind.value,
                    record.level,
                    record.load_context.path,
                )
                return resource
            # Earlier levels have all settled; any still holding a resource is
            # either the one on screen or a failed level's hidden leftover.
            superseded = [prev for prev in records[: record.level] if prev.resource is not None]
            swap(record, superseded, resource)
            record.shown = True
            self._metrics.inc("lod_swaps_total")
            return resource
        finally:
            record.swapped.resolve()


class NodeLodSequencer(LodSequencer):
    kind = VariantKind.NODE

    def load(self, context: str, node: NodeDef) -> Optional[asyncio.Future]:
        """Issue every LOD level of ``node``; returns the level-0 task.

        Returns None when the node declares no LOD variants.
        """

        ids = lod_ids(node)
        if ids is None:
            return None

        def issue(record: LevelRecord) -> Awaitable[Any]:
            def assign(transform: Any) -> None:
                record.resource = transform
                transform.set_enabled(False)

            return self._host.load_node_variant(
                record.load_context.path,
                record.variant,
                assign,
                record.load_context,
            )

        return self._sequence(context, node, self._host.document.nodes, ids, issue, self._swap)

    def _swap(self, record: LevelRecord, superseded: list[LevelRecord], transform: Any) -> None:
        for previous in superseded:
            previous.resource.dispose()
            previous.resource = None
        if superseded:
            self._metrics.inc("lod_disposed_total", len(superseded))
            self._usage.sweep()
        transform.set_enabled(True)


class MaterialLodSequencer(LodSequencer):
    kind = VariantKind.MATERIAL

    def load(
        self,
        context: str,
        material: MaterialDef,
        consumer: MaterialConsumer,
        draw_mode: int,
        assign: Assign,
        load_context: Optional[LoadContext] = None,
    ) -> Optional[asyncio.Future]:
        """Issue every LOD level of ``material`` for ``consumer``.

        Returns None when the material declares no LOD variants, or when it is
        requested from inside a node LOD load at any level (the node level
        already picks the material variant).  Loads nested in a material LOD
        level are not suppressed.

        Only level 0 is registered with the usage registry at construction,
        since it is assigned right away.  Finer levels are registered when they
        swap in, so a sweep never sees a material that is built but not yet
        shown.
        """

        if in_node_lod(load_context):
            return None
        ids = lod_ids(material)
        if ids is None:
            return None

        def issue(record: LevelRecord) -> Awaitable[Any]:
            def assign_variant(constructed: Any) -> None:
                record.resource = constructed
                if record.level == 0:
                    self._usage.track(record.variant.index, draw_mode, constructed, consumer)
                    assign(constructed)

            return self._host.load_material_variant(
                record.load_context.path,
                record.variant,
                consumer,
                draw_mode,
                assign_variant,
                record.load_context,
            )

        def swap(record: LevelRecord, superseded: list[LevelRecord], constructed: Any) -> None:
            if record.level != 0:
                assign(constructed)
            self._usage.track(record.variant.index, draw_mode, constructed, consumer)
            for previous in superseded:
                # A failed level was never registered; register it so the
                # consumer check decides whether it can go.
                if self._usage.get(previous.variant.index, draw_mode) is None:
                    self._usage.track(previous.variant.index, draw_mode, previous.resource, consumer)
                self._usage.release_if_unused(previous.variant.index, draw_mode)
                previous.resource = None

        return self._sequence(context, material, self._host.document.materials, ids, issue, swap)


__all__ = [
    "LevelRecord",
    "LodSequencer",
    "MaterialLodSequencer",
    "NodeLodSequencer",
    "resolve_lod_levels",
]
