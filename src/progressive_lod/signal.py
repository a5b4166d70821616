"""One-shot completion primitives shared by the LOD scheduler.

``DeferredSignal`` is a promise with an explicit ``resolve``/``reject`` that is
decoupled from whoever produces the value.  Any number of waiters may attach
before or after settlement; all of them observe the same outcome.  The backing
``asyncio.Future`` is created lazily on the running loop the first time
somebody waits, so signals can be created from synchronous code paths.

``CancelToken`` is the cooperative cancellation flag checked by continuations
after every await point.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Generator
from typing import Any, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_PENDING = "pending"
_RESOLVED = "resolved"
_REJECTED = "rejected"


def _consume_exception(fut: asyncio.Future) -> None:
    # Marks the exception retrieved when every waiter went away.
    if not fut.cancelled():
        fut.exception()


class DeferredSignal(Generic[T]):
    """Settle-once, multi-waiter completion signal."""

    __slots__ = ("_label", "_state", "_value", "_error", "_future", "_callbacks")

    def __init__(self, *, label: str = "") -> None:
        self._label = label
        self._state = _PENDING
        self._value: Optional[T] = None
        self._error: Optional[BaseException] = None
        self._future: Optional[asyncio.Future] = None
        self._callbacks: list[Callable[[DeferredSignal[T]], None]] = []

    # ------------------------------------------------------------------
    @property
    def label(self) -> str:
        return self._label

    @property
    def done(self) -> bool:
        return self._state != _PENDING

    @property
    def failed(self) -> bool:
        return self._state == _REJECTED

    def resolve(self, value: T = None) -> bool:  # type: ignore[assignment]
        """Settle successfully with ``value``; returns False if already settled."""

        if self._state != _PENDING:
            logger.debug("signal %s already %s; resolve ignored", self._label or "<anon>", self._state)
            return False
        self._state = _RESOLVED
        self._value = value
        self._settle()
        return True

    def reject(self, error: BaseException) -> bool:
        """Settle with ``error``; returns False if already settled."""

        if self._state != _PENDING:
            logger.debug("signal %s already %s; reject ignored", self._label or "<anon>", self._state)
            return False
        self._state = _REJECTED
        self._error = error
        self._settle()
        return True

    def result(self) -> T:
        if self._state == _PENDING:
            raise asyncio.InvalidStateError(f"signal {self._label or '<anon>'} is not settled")
        if self._state == _REJECTED:
            assert self._error is not None
            raise self._error
        return self._value  # type: ignore[return-value]

    async def wait(self) -> T:
        if self._state != _PENDING:
            return self.result()
        fut = self._ensure_future()
        # Shielded so a cancelled waiter leaves the signal and other waiters intact.
        return await asyncio.shield(fut)

    def __await__(self) -> Generator[Any, None, T]:
        return self.wait().__await__()

    def add_done_callback(self, callback: Callable[[DeferredSignal[T]], None]) -> None:
        """Run ``callback(signal)`` once settled (immediately scheduled if already settled)."""

        if self._state != _PENDING:
            self._dispatch(callback)
            return
        self._callbacks.append(callback)

    # ------------------------------------------------------------------
    def _ensure_future(self) -> asyncio.Future:
        fut = self._future
        if fut is None:
            fut = asyncio.get_running_loop().create_future()
            fut.add_done_callback(_consume_exception)
            self._future = fut
        return fut

    def _settle(self) -> None:
        fut = self._future
        if fut is not None and not fut.done():
            if self._state == _REJECTED:
                fut.set_exception(self._error)  # type: ignore[arg-type]
            else:
                fut.set_result(self._value)
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            self._dispatch(callback)

    def _dispatch(self, callback: Callable[[DeferredSignal[T]], None]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            callback(self)
            return
        loop.call_soon(callback, self)

    def __repr__(self) -> str:
        return f"DeferredSignal(label={self._label!r}, state={self._state})"


class CancelToken:
    """Cooperative cancellation flag checked at continuation boundaries."""

    __slots__ = ("_cancelled", "_reason")

    def __init__(self) -> None:
        self._cancelled = False
        self._reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self, reason: str = "disposed") -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self._reason = reason
        logger.debug("cancel token tripped: reason=%s", reason)


__all__ = ["CancelToken", "DeferredSignal"]
