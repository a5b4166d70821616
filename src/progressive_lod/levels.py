"""Per-kind arena of level slots (signal + per-object load tasks)."""

from __future__ import annotations

import asyncio
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Optional

from .context import VariantKind
from .signal import DeferredSignal


@dataclass
class LevelSlot:
    """Everything tracked for one (kind, level) pair across all objects."""

    kind: VariantKind
    level: int
    signal: DeferredSignal = field(repr=False, default_factory=DeferredSignal)
    tasks: list[asyncio.Future] = field(default_factory=list, repr=False)
    aggregate: Optional[asyncio.Future] = field(default=None, repr=False)
    settled: bool = False

    @property
    def name(self) -> str:
        return f"{self.kind.title} LOD {self.level}"


class LevelArena:
    """Index-addressed slots, created once on first use and never replaced."""

    def __init__(self, kind: VariantKind) -> None:
        self._kind = kind
        self._slots: list[LevelSlot] = []

    @property
    def kind(self) -> VariantKind:
        return self._kind

    def slot(self, level: int) -> LevelSlot:
        level = int(level)
        if level < 0:
            raise IndexError(f"{self._kind.value} level must be non-negative (got {level})")
        while len(self._slots) <= level:
            idx = len(self._slots)
            self._slots.append(
                LevelSlot(
                    kind=self._kind,
                    level=idx,
                    signal=DeferredSignal(label=f"{self._kind.value} LOD {idx}"),
                )
            )
        return self._slots[level]

    def get(self, level: int) -> Optional[LevelSlot]:
        level = int(level)
        if 0 <= level < len(self._slots):
            return self._slots[level]
        return None

    def add_task(self, level: int, task: asyncio.Future) -> None:
        self.slot(level).tasks.append(task)

    def all_tasks(self) -> tuple[asyncio.Future, ...]:
        tasks: list[asyncio.Future] = []
        for slot in self._slots:
            tasks.extend(slot.tasks)
            if slot.aggregate is not None:
                tasks.append(slot.aggregate)
        return tuple(tasks)

    def __len__(self) -> int:
        return len(self._slots)

    def __iter__(self) -> Iterator[LevelSlot]:
        return iter(tuple(self._slots))

    def clear(self) -> None:
        self._slots.clear()


__all__ = ["LevelArena", "LevelSlot"]
