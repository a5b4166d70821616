"""Deferral of non-LOD-aware I/O issued from inside LOD level loads."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import TYPE_CHECKING, Any, Optional, TypeVar

from .context import LoadContext, VariantKind, bucket_level
from .errors import MissingBinaryPayloadError
from .levels import LevelArena
from .ranges import RangeCoalescer
from .signal import CancelToken

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .assets import BufferDef
    from .host import AssetLoaderHost
    from .metrics import Metrics

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DeferredIODispatcher:
    """Push I/O for level ``i`` behind level ``i-1``'s completion signal."""

    def __init__(
        self,
        arenas: Mapping[VariantKind, LevelArena],
        *,
        token: CancelToken,
        metrics: Metrics,
        log_deferred: bool = False,
    ) -> None:
        self._arenas = arenas
        self._token = token
        self._metrics = metrics
        self._log_deferred = bool(log_deferred)

    def maybe_defer(
        self,
        request: Callable[[], Awaitable[T]],
        load_context: Optional[LoadContext],
    ) -> Optional[Awaitable[T]]:
        """Return a deferred awaitable for ``request`` or None to run it directly."""

        if load_context is None or not load_context.deferred:
            return None
        previous = load_context.previous_level
        assert previous is not None
        signal = self._arenas[load_context.kind].slot(previous).signal
        self._metrics.inc("lod_deferred_requests_total")
        log_level = logging.INFO if self._log_deferred else logging.DEBUG
        logger.log(
            log_level,
            "deferred: %s LOD %d request waits for LOD %d (%s)",
            load_context.kind.value,
            load_context.level,
            previous,
            load_context.path,
        )
        return self._run_after(signal, request, load_context)

    async def _run_after(self, signal: Any, request: Callable[[], Awaitable[T]], load_context: LoadContext) -> T:
        await signal
        if self._token.cancelled:
            logger.debug("deferred request abandoned after dispose: %s", load_context.path)
            raise asyncio.CancelledError(f"deferred request abandoned: {load_context.path}")
        return await request()


def load_uri(
    dispatcher: DeferredIODispatcher,
    host: AssetLoaderHost,
    context: str,
    prop: Any,
    uri: str,
    load_context: Optional[LoadContext],
) -> Optional[Awaitable[bytes]]:
    """Defer a host URI fetch when issued from inside a level > 0 load."""

    return dispatcher.maybe_defer(lambda: host.load_uri(context, prop, uri), load_context)


def load_buffer_view(
    ranges: RangeCoalescer,
    host: AssetLoaderHost,
    context: str,
    buffer: BufferDef,
    byte_offset: int,
    byte_length: int,
    load_context: Optional[LoadContext],
    *,
    use_range_requests: bool,
) -> Optional[Awaitable[Any]]:
    """Route a binary-chunk buffer view into the current level's bucket.

    Returns None when range requests are disabled or the buffer has its own
    URI.  Requests made outside any LOD load are bucketed into level 0.
    """

    if not use_range_requests or buffer.uri:
        return None
    if host.bin is None:
        raise MissingBinaryPayloadError(f"{context}: Uri is missing or the binary asset is missing its binary chunk")
    return ranges.record_range(bucket_level(load_context), byte_offset, byte_length)


__all__ = ["DeferredIODispatcher", "load_buffer_view", "load_uri"]
