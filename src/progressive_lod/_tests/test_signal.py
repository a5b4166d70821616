from __future__ import annotations

import asyncio

import pytest

from progressive_lod.signal import CancelToken, DeferredSignal


def test_waiter_attached_after_resolve_sees_value() -> None:
    async def _run() -> None:
        signal: DeferredSignal[str] = DeferredSignal(label="late")
        assert signal.resolve("v") is True

        assert await signal == "v"
        assert await signal.wait() == "v"

    asyncio.run(_run())


def test_all_waiters_observe_same_value() -> None:
    async def _run() -> None:
        signal: DeferredSignal[int] = DeferredSignal()
        waiters = [asyncio.ensure_future(signal.wait()) for _ in range(3)]
        await asyncio.sleep(0)
        assert not any(w.done() for w in waiters)

        signal.resolve(7)
        assert await asyncio.gather(*waiters) == [7, 7, 7]

    asyncio.run(_run())


def test_second_resolve_is_ignored() -> None:
    async def _run() -> None:
        signal: DeferredSignal[int] = DeferredSignal()
        assert signal.resolve(1) is True
        assert signal.resolve(2) is False
        assert signal.reject(RuntimeError("late")) is False
        assert await signal == 1

    asyncio.run(_run())


def test_reject_propagates_to_every_waiter() -> None:
    async def _run() -> None:
        signal: DeferredSignal[int] = DeferredSignal()
        early = asyncio.ensure_future(signal.wait())
        await asyncio.sleep(0)
        signal.reject(OSError("boom"))

        with pytest.raises(OSError, match="boom"):
            await early
        with pytest.raises(OSError, match="boom"):
            await signal
        assert signal.failed is True

    asyncio.run(_run())


def test_cancelled_waiter_leaves_signal_intact() -> None:
    async def _run() -> None:
        signal: DeferredSignal[str] = DeferredSignal()
        doomed = asyncio.ensure_future(signal.wait())
        survivor = asyncio.ensure_future(signal.wait())
        await asyncio.sleep(0)

        doomed.cancel()
        with pytest.raises(asyncio.CancelledError):
            await doomed

        signal.resolve("ok")
        assert await survivor == "ok"

    asyncio.run(_run())


def test_done_callbacks_run_before_and_after_settlement() -> None:
    async def _run() -> None:
        seen: list[str] = []
        signal: DeferredSignal[str] = DeferredSignal(label="cb")
        signal.add_done_callback(lambda s: seen.append(f"early:{s.result()}"))
        signal.resolve("x")
        signal.add_done_callback(lambda s: seen.append(f"late:{s.result()}"))
        await asyncio.sleep(0)
        assert seen == ["early:x", "late:x"]

    asyncio.run(_run())


def test_result_before_settlement_raises() -> None:
    signal: DeferredSignal[int] = DeferredSignal()
    assert signal.done is False
    with pytest.raises(asyncio.InvalidStateError):
        signal.result()


def test_resolve_without_running_loop() -> None:
    signal: DeferredSignal[int] = DeferredSignal()
    seen: list[int] = []
    signal.add_done_callback(lambda s: seen.append(s.result()))
    signal.resolve(3)
    assert seen == [3]
    assert signal.result() == 3


def test_cancel_token_is_sticky() -> None:
    token = CancelToken()
    assert token.cancelled is False
    token.cancel("disposed")
    token.cancel("again")
    assert token.cancelled is True
    assert token.reason == "disposed"
