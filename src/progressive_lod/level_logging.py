"""Logging helpers for LOD level operations."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

_INDENT = "  "


@dataclass
class LevelLogger:
    """Indented open/close load log mirroring the nesting of object loads."""

    logger_ref: logging.Logger
    verbose: bool = False
    _depth: int = field(default=0, init=False)

    @property
    def depth(self) -> int:
        return self._depth

    def log(self, message: str, *args: object) -> None:
        level = logging.INFO if self.verbose else logging.DEBUG
        if not self.logger_ref.isEnabledFor(level):
            return
        self.logger_ref.log(level, "%s" + message, _INDENT * self._depth, *args)

    def open(self, context: str) -> None:
        self.log("%s", context)
        self._depth += 1

    def close(self) -> None:
        if self._depth > 0:
            self._depth -= 1


@dataclass
class LevelLoadedLogger:
    """Log per-level completion with failure counts."""

    logger_ref: logging.Logger

    def log(self, *, kind: str, level: int, objects: int, failures: int) -> None:
        if failures:
            self.logger_ref.warning(
                "Loaded %s LOD %d with failures: objects=%d failed=%d",
                kind,
                int(level),
                int(objects),
                int(failures),
            )
            return
        self.logger_ref.info("Loaded %s LOD %d (objects=%d)", kind, int(level), int(objects))


__all__ = ["LevelLoadedLogger", "LevelLogger"]
