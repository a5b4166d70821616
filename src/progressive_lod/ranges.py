"""Per-level byte-range coalescing.

Sub-resources of one LOD level tend to be scattered but close together in the
packed binary payload.  Every request made while a level loads is folded into
that level's bucket, and a single read for the bucket's merged extent serves
all of them.  A bucket is sealed when its read is issued; later requests must
fall entirely inside the sealed extent.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

import numpy as np

from .errors import BucketSealedError, MissingBinaryPayloadError, RangeReadError
from .signal import CancelToken, DeferredSignal

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .host import RangeReader
    from .metrics import Metrics

logger = logging.getLogger(__name__)


@dataclass
class RangeBucket:
    """Merged byte range for one LOD level (``end`` is inclusive)."""

    level: int
    start: int
    end: int
    loaded: DeferredSignal = field(repr=False, default_factory=DeferredSignal)
    sealed: bool = False
    requests: int = 0

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def contains(self, start: int, end: int) -> bool:
        return self.start <= start and end <= self.end

    def widen(self, start: int, end: int) -> None:
        if self.contains(start, end):
            return
        if self.sealed:
            raise BucketSealedError(
                f"level {self.level} bucket [{self.start}, {self.end}] already issued; "
                f"cannot widen to include [{start}, {end}]"
            )
        self.start = min(self.start, start)
        self.end = max(self.end, end)


def _as_uint8(data: object) -> np.ndarray:
    if isinstance(data, np.ndarray):
        return data.reshape(-1).view(np.uint8)
    return np.frombuffer(data, dtype=np.uint8)  # type: ignore[arg-type]


class RangeCoalescer:
    """Accumulates byte ranges per level and issues one read per level."""

    def __init__(
        self,
        reader: Optional[RangeReader],
        *,
        token: Optional[CancelToken] = None,
        metrics: Optional[Metrics] = None,
        log_buckets: bool = False,
    ) -> None:
        self._reader = reader
        self._token = token or CancelToken()
        self._metrics = metrics
        self._log_buckets = bool(log_buckets)
        self._buckets: dict[int, RangeBucket] = {}
        self._scheduled: set[int] = set()
        self._tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    def record_range(self, level: int, start: int, length: int):
        """Fold ``[start, start+length)`` into ``level``'s bucket.

        Returns an awaitable yielding a ``uint8`` view of the requested bytes
        once the bucket's read completes.
        """

        level = int(level)
        start = int(start)
        length = int(length)
        if length <= 0:
            raise ValueError(f"byte length must be positive (got {length})")
        if start < 0:
            raise ValueError(f"byte offset must be non-negative (got {start})")
        end = start + length - 1

        bucket = self._buckets.get(level)
        if bucket is None:
            bucket = RangeBucket(level=level, start=start, end=end, loaded=DeferredSignal(label=f"bucket {level}"))
            self._buckets[level] = bucket
        else:
            bucket.widen(start, end)
        bucket.requests += 1

        if self._log_buckets:
            logger.info(
                "bucket record: level=%d request=[%d, %d] bucket=[%d, %d] requests=%d",
                level,
                start,
                end,
                bucket.start,
                bucket.end,
                bucket.requests,
            )
        return self._slice(bucket, start, length)

    async def _slice(self, bucket: RangeBucket, start: int, length: int) -> np.ndarray:
        data = await bucket.loaded
        view = _as_uint8(data)
        offset = start - bucket.start
        if offset + length > view.size:
            raise RangeReadError(
                f"short read for level {bucket.level}: need {offset + length} bytes, got {view.size}"
            )
        return view[offset : offset + length]

    # ------------------------------------------------------------------
    def issue_read(self, level: int) -> Optional[asyncio.Task]:
        """Seal ``level``'s bucket and start its single read."""

        bucket = self._buckets.get(int(level))
        if bucket is None:
            logger.debug("bucket read skipped: level=%d has no bucket", int(level))
            return None
        if bucket.sealed:
            logger.debug("bucket read skipped: level=%d already issued", int(level))
            return None
        bucket.sealed = True
        task = asyncio.get_running_loop().create_task(self._read(bucket))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def schedule_read(self, level: int) -> None:
        """Issue ``level``'s read on the next loop turn.

        Calls made before the pending issue runs collapse into it, so every
        load started in the same synchronous pass folds into the bucket first.
        """

        level = int(level)
        if level in self._scheduled:
            return
        bucket = self._buckets.get(level)
        if bucket is not None and bucket.sealed:
            return
        self._scheduled.add(level)
        asyncio.get_running_loop().call_soon(self._issue_scheduled, level)

    def _issue_scheduled(self, level: int) -> None:
        self._scheduled.discard(level)
        if self._token.cancelled:
            return
        self.issue_read(level)

    async def _read(self, bucket: RangeBucket) -> None:
        if self._reader is None:
            bucket.loaded.reject(
                MissingBinaryPayloadError(f"level {bucket.level}: asset has no binary chunk to read from")
            )
            return
        logger.debug("bucket read: level=%d range=[%d, %d] bytes=%d", bucket.level, bucket.start, bucket.end, bucket.length)
        try:
            data = await self._reader.read_range(bucket.start, bucket.length)
        except Exception as exc:
            logger.warning(
                "bucket read failed: level=%d range=[%d, %d]: %s",
                bucket.level,
                bucket.start,
                bucket.end,
                exc,
            )
            bucket.loaded.reject(exc)
            return
        if self._token.cancelled:
            logger.debug("bucket read abandoned after dispose: level=%d", bucket.level)
            return
        if self._metrics is not None:
            self._metrics.inc("lod_bucket_reads_total")
            self._metrics.inc("lod_bucket_bytes_total", bucket.length)
        bucket.loaded.resolve(data)

    # ------------------------------------------------------------------
    def bucket(self, level: int) -> Optional[RangeBucket]:
        return self._buckets.get(int(level))

    def levels(self) -> tuple[int, ...]:
        return tuple(sorted(self._buckets))

    def __len__(self) -> int:
        return len(self._buckets)

    def cancel_pending(self) -> None:
        for task in tuple(self._tasks):
            task.cancel()

    def clear(self) -> None:
        self._buckets.clear()
        self._scheduled.clear()


__all__ = ["RangeBucket", "RangeCoalescer"]
