"""Lifecycle coordinator for progressive LOD loading.

``LodCoordinator`` is the object a host instantiates (through the extension
registry) for an asset that declares ``MSFT_lod``.  It owns the per-kind level
arenas, the range coalescer, the deferred-I/O dispatcher, the material usage
registry, and the node/material sequencers, and exposes the host-facing hooks.

Once the host has issued every object load it calls ``on_ready``: the
coordinator then joins each level across all objects and, when a level has
settled everywhere, fires the level event, resolves the level's signal so the
next level's deferred I/O can start, and manages the performance spans.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import Any, Optional

from .assets import EXTENSION_NAME, BufferDef, MaterialDef, NodeDef
from .config import LodSettings, load_lod_settings, validate_max_levels
from .context import LoadContext, VariantKind
from .dispatcher import DeferredIODispatcher, load_buffer_view, load_uri
from .errors import LodError
from .events import LevelObservable
from .host import AssetLoaderHost, Assign, MaterialConsumer
from .level_logging import LevelLoadedLogger, LevelLogger
from .levels import LevelArena, LevelSlot
from .metrics import Metrics
from .ranges import RangeCoalescer
from .registry import register_extension
from .sequencer import MaterialLodSequencer, NodeLodSequencer
from .signal import CancelToken
from .usage import MaterialUsageRegistry

logger = logging.getLogger(__name__)


def _pending_gauge(kind: VariantKind) -> str:
    return f"lod_{kind.value}_levels_pending"


class LodCoordinator:
    """Owns LOD scheduling state for one asset load."""

    name = EXTENSION_NAME

    def __init__(
        self,
        host: AssetLoaderHost,
        *,
        settings: Optional[LodSettings] = None,
        metrics: Optional[Metrics] = None,
    ) -> None:
        self._settings = settings if settings is not None else load_lod_settings()
        self._host: Optional[AssetLoaderHost] = host
        self.enabled = bool(host.is_extension_used(EXTENSION_NAME))
        self._metrics = metrics if metrics is not None else Metrics()
        self._token = CancelToken()
        self._disposed = False

        self._arenas: dict[VariantKind, LevelArena] = {
            VariantKind.NODE: LevelArena(VariantKind.NODE),
            VariantKind.MATERIAL: LevelArena(VariantKind.MATERIAL),
        }
        self._usage = MaterialUsageRegistry(metrics=self._metrics)
        self._ranges = RangeCoalescer(
            host.bin,
            token=self._token,
            metrics=self._metrics,
            log_buckets=self._settings.logging.log_buckets,
        )
        self._dispatcher = DeferredIODispatcher(
            self._arenas,
            token=self._token,
            metrics=self._metrics,
            log_deferred=self._settings.logging.log_deferred,
        )
        self._level_log = LevelLogger(logger, verbose=self._settings.logging.log_levels)
        self._loaded_log = LevelLoadedLogger(logger)

        shared = dict(
            ranges=self._ranges,
            usage=self._usage,
            token=self._token,
            level_log=self._level_log,
            metrics=self._metrics,
            max_levels=self._settings.max_levels_to_load,
        )
        self._nodes: Optional[NodeLodSequencer] = NodeLodSequencer(
            host, arena=self._arenas[VariantKind.NODE], **shared
        )
        self._materials: Optional[MaterialLodSequencer] = MaterialLodSequencer(
            host, arena=self._arenas[VariantKind.MATERIAL], **shared
        )

        self.on_node_level_loaded = LevelObservable("node level loaded")
        self.on_material_level_loaded = LevelObservable("material level loaded")

    # ------------------------------------------------------------------
    @property
    def max_levels_to_load(self) -> int:
        return self._settings.max_levels_to_load if self._nodes is None else self._nodes.max_levels

    @max_levels_to_load.setter
    def max_levels_to_load(self, value: int) -> None:
        value = validate_max_levels(value)
        for sequencer in (self._nodes, self._materials):
            if sequencer is not None:
                sequencer.max_levels = value

    @property
    def settings(self) -> LodSettings:
        return self._settings

    @property
    def metrics(self) -> Metrics:
        return self._metrics

    @property
    def ranges(self) -> RangeCoalescer:
        return self._ranges

    @property
    def usage(self) -> MaterialUsageRegistry:
        return self._usage

    @property
    def disposed(self) -> bool:
        return self._disposed

    def arena(self, kind: VariantKind) -> LevelArena:
        return self._arenas[kind]

    def _active_host(self) -> AssetLoaderHost:
        if self._host is None:
            raise LodError("LOD coordinator has been disposed")
        return self._host

    # Host hooks --------------------------------------------------------
    def load_node(self, context: str, node: NodeDef) -> Optional[asyncio.Future]:
        """Load every LOD level of ``node``; resolves with the coarsest renderable."""

        self._active_host()
        assert self._nodes is not None
        return self._nodes.load(context, node)

    def load_material(
        self,
        context: str,
        material: MaterialDef,
        consumer: MaterialConsumer,
        draw_mode: int,
        assign: Assign,
        load_context: Optional[LoadContext] = None,
    ) -> Optional[asyncio.Future]:
        self._active_host()
        assert self._materials is not None
        return self._materials.load(context, material, consumer, draw_mode, assign, load_context)

    def load_uri(
        self,
        context: str,
        prop: Any,
        uri: str,
        load_context: Optional[LoadContext] = None,
    ) -> Optional[Awaitable[bytes]]:
        host = self._active_host()
        return load_uri(self._dispatcher, host, context, prop, uri, load_context)

    def load_buffer_view(
        self,
        context: str,
        buffer: BufferDef,
        byte_offset: int,
        byte_length: int,
        load_context: Optional[LoadContext] = None,
    ) -> Optional[Awaitable[Any]]:
        host = self._active_host()
        return load_buffer_view(
            self._ranges,
            host,
            context,
            buffer,
            byte_offset,
            byte_length,
            load_context,
            use_range_requests=self._settings.use_range_requests,
        )

    # Level advancement ---------------------------------------------------
    def on_ready(self) -> None:
        """Join every level across objects and start background range reads."""

        host = self._active_host()
        loop = asyncio.get_running_loop()
        for kind, observable in (
            (VariantKind.NODE, self.on_node_level_loaded),
            (VariantKind.MATERIAL, self.on_material_level_loaded),
        ):
            arena = self._arenas[kind]
            level_count = len(arena)
            if level_count:
                self._metrics.set(_pending_gauge(kind), sum(1 for slot in arena if not slot.settled))
            previous: Optional[LevelSlot] = None
            for slot in arena:
                if slot.aggregate is None:
                    slot.aggregate = loop.create_task(self._settle_level(slot, previous, level_count, observable))
                    host.add_completion(slot.aggregate)
                previous = slot

        for level in self._ranges.levels():
            if level == 0:
                continue
            if self._settings.throttle_range_reads and not self._level_settled(level - 1):
                continue
            self._ranges.issue_read(level)

    async def _settle_level(
        self,
        slot: LevelSlot,
        previous: Optional[LevelSlot],
        level_count: int,
        observable: LevelObservable,
    ) -> None:
        results = await asyncio.gather(*slot.tasks, return_exceptions=True)
        if previous is not None:
            # Events and spans advance in level order.
            await previous.signal
        if self._token.cancelled:
            # Release deferred waiters; they observe the token and abandon.
            slot.signal.resolve()
            return
        failures = [result for result in results if isinstance(result, BaseException)]
        slot.settled = True
        self._metrics.set(_pending_gauge(slot.kind), level_count - slot.level - 1)

        if slot.level != 0:
            self._metrics.end_span(slot.name)
        self._metrics.inc("lod_levels_loaded_total")
        self._loaded_log.log(kind=slot.kind.value, level=slot.level, objects=len(results), failures=len(failures))
        if not failures:
            observable.notify(slot.level)

        if slot.level != level_count - 1:
            self._metrics.start_span(f"{slot.kind.title} LOD {slot.level + 1}")
        slot.signal.resolve()

        if self._settings.throttle_range_reads and self._level_settled(slot.level):
            self._ranges.issue_read(slot.level + 1)

    def _level_settled(self, level: int) -> bool:
        for arena in self._arenas.values():
            slot = arena.get(level)
            if slot is not None and not slot.settled:
                return False
        return True

    # Teardown ------------------------------------------------------------
    def dispose(self, *, cancel_pending: bool = False) -> None:
        """Stop level advancement and release tracking state.

        By default in-flight work is abandoned: it may still settle, but its
        outcome is no longer consumed.  ``cancel_pending=True`` additionally
        cancels every tracked task and bucket read.
        """

        if self._disposed:
            return
        self._disposed = True

        try:
            swept = self._usage.sweep()
            if swept:
                logger.debug("disposed %d unused materials", swept)
        except Exception:
            logger.warning("unused material sweep failed during dispose", exc_info=True)

        self._token.cancel("disposed")
        if cancel_pending:
            for arena in self._arenas.values():
                for task in arena.all_tasks():
                    task.cancel()
            self._ranges.cancel_pending()

        self._host = None
        self._nodes = None
        self._materials = None
        for arena in self._arenas.values():
            arena.clear()
        self._ranges.clear()
        self._usage.clear()

        self.on_node_level_loaded.clear()
        self.on_material_level_loaded.clear()
        logger.debug("lod coordinator disposed (cancel_pending=%s)", cancel_pending)


register_extension(EXTENSION_NAME, LodCoordinator)


__all__ = ["LodCoordinator"]
