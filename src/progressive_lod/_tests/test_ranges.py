from __future__ import annotations

import asyncio

import numpy as np
import pytest

from progressive_lod._tests._helpers.fake_host import CountingReader
from progressive_lod.errors import BucketSealedError, MissingBinaryPayloadError
from progressive_lod.metrics import Metrics
from progressive_lod.ranges import RangeCoalescer
from progressive_lod.signal import CancelToken

PAYLOAD = bytes(range(64))


def test_requests_merge_into_one_bucket_and_slice_at_original_offsets() -> None:
    async def _run() -> None:
        reader = CountingReader(PAYLOAD)
        ranges = RangeCoalescer(reader)

        first = ranges.record_range(0, 10, 5)
        second = ranges.record_range(0, 0, 8)
        bucket = ranges.bucket(0)
        assert bucket is not None
        assert (bucket.start, bucket.end) == (0, 14)
        assert bucket.requests == 2

        ranges.issue_read(0)
        a, b = await asyncio.gather(first, second)

        assert reader.calls == [(0, 15)]
        assert a.dtype == np.uint8
        assert a.tobytes() == PAYLOAD[10:15]
        assert b.tobytes() == PAYLOAD[0:8]

    asyncio.run(_run())


def test_levels_get_independent_buckets() -> None:
    async def _run() -> None:
        reader = CountingReader(PAYLOAD)
        ranges = RangeCoalescer(reader)

        low = ranges.record_range(0, 4, 4)
        high = ranges.record_range(1, 40, 10)
        assert ranges.levels() == (0, 1)

        ranges.issue_read(1)
        assert (await high).tobytes() == PAYLOAD[40:50]
        assert reader.calls == [(40, 10)]

        ranges.issue_read(0)
        assert (await low).tobytes() == PAYLOAD[4:8]

    asyncio.run(_run())


def test_read_failure_rejects_every_waiter() -> None:
    async def _run() -> None:
        reader = CountingReader(PAYLOAD, fail=OSError("transport down"))
        ranges = RangeCoalescer(reader)
        waiters = [ranges.record_range(2, off, 4) for off in (0, 8, 16)]

        ranges.issue_read(2)
        results = await asyncio.gather(*waiters, return_exceptions=True)

        assert len(reader.calls) == 1
        assert all(isinstance(r, OSError) and "transport down" in str(r) for r in results)

    asyncio.run(_run())


def test_widening_after_issue_is_rejected() -> None:
    async def _run() -> None:
        reader = CountingReader(PAYLOAD)
        reader.gate = asyncio.Event()
        ranges = RangeCoalescer(reader)
        first = ranges.record_range(0, 8, 8)
        ranges.issue_read(0)

        with pytest.raises(BucketSealedError):
            ranges.record_range(0, 0, 4)

        inside = ranges.record_range(0, 10, 2)
        reader.gate.set()
        assert (await inside).tobytes() == PAYLOAD[10:12]
        assert (await first).tobytes() == PAYLOAD[8:16]
        assert reader.calls == [(8, 8)]

    asyncio.run(_run())


def test_issue_read_is_once_per_level() -> None:
    async def _run() -> None:
        reader = CountingReader(PAYLOAD)
        metrics = Metrics()
        ranges = RangeCoalescer(reader, metrics=metrics)
        view = ranges.record_range(3, 0, 4)

        assert ranges.issue_read(3) is not None
        assert ranges.issue_read(3) is None
        assert ranges.issue_read(9) is None

        await view
        assert reader.calls == [(0, 4)]
        assert metrics.counter("lod_bucket_reads_total") == 1

    asyncio.run(_run())


def test_schedule_read_collapses_same_turn_requests() -> None:
    async def _run() -> None:
        reader = CountingReader(PAYLOAD)
        ranges = RangeCoalescer(reader)

        a = ranges.record_range(0, 20, 4)
        ranges.schedule_read(0)
        b = ranges.record_range(0, 2, 4)
        ranges.schedule_read(0)

        assert (await a).tobytes() == PAYLOAD[20:24]
        assert (await b).tobytes() == PAYLOAD[2:6]
        assert reader.calls == [(2, 22)]

    asyncio.run(_run())


def test_missing_reader_rejects_with_missing_payload() -> None:
    async def _run() -> None:
        ranges = RangeCoalescer(None)
        view = ranges.record_range(0, 0, 4)
        ranges.issue_read(0)
        with pytest.raises(MissingBinaryPayloadError):
            await view

    asyncio.run(_run())


def test_cancelled_token_abandons_read_result() -> None:
    async def _run() -> None:
        reader = CountingReader(PAYLOAD)
        reader.gate = asyncio.Event()
        token = CancelToken()
        ranges = RangeCoalescer(reader, token=token)
        ranges.record_range(0, 0, 4)
        task = ranges.issue_read(0)
        bucket = ranges.bucket(0)
        assert task is not None and bucket is not None

        token.cancel()
        reader.gate.set()
        await task

        assert bucket.loaded.done is False

    asyncio.run(_run())


def test_non_positive_length_is_rejected() -> None:
    ranges = RangeCoalescer(None)
    with pytest.raises(ValueError):
        ranges.record_range(0, 0, 0)
    assert len(ranges) == 0
