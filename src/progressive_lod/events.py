"""Level-loaded observables."""

from __future__ import annotations

import logging
from collections.abc import Callable

LevelCallback = Callable[[int], None]

logger = logging.getLogger(__name__)


class LevelObservable:
    """Subscriber list notified with a zero-based level index."""

    def __init__(self, name: str) -> None:
        self._name = name
        self._subscribers: list[LevelCallback] = []

    @property
    def name(self) -> str:
        return self._name

    def subscribe(self, callback: LevelCallback) -> None:
        assert callable(callback), f"{self._name} subscriber must be callable"
        assert callback not in self._subscribers, f"{self._name} subscriber already registered"
        self._subscribers.append(callback)

    def unsubscribe(self, callback: LevelCallback) -> None:
        try:
            self._subscribers.remove(callback)
        except ValueError:
            return

    def notify(self, level: int) -> None:
        for callback in tuple(self._subscribers):
            try:
                callback(int(level))
            except Exception:
                logger.exception("%s subscriber failed for level %d", self._name, int(level))

    def clear(self) -> None:
        self._subscribers.clear()

    def __len__(self) -> int:
        return len(self._subscribers)


__all__ = ["LevelCallback", "LevelObservable"]
