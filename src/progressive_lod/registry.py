"""Extension registration point used by hosts to instantiate loader extensions."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

ExtensionFactory = Callable[[Any], Any]

_FACTORIES: dict[str, ExtensionFactory] = {}


def register_extension(name: str, factory: ExtensionFactory) -> None:
    """Register ``factory(host)`` under ``name``; re-registering replaces it."""

    assert callable(factory), "extension factory must be callable"
    if name in _FACTORIES:
        logger.debug("replacing extension factory: %s", name)
    _FACTORIES[str(name)] = factory


def unregister_extension(name: str) -> bool:
    return _FACTORIES.pop(str(name), None) is not None


def registered_extensions() -> tuple[str, ...]:
    return tuple(_FACTORIES)


def create_extensions(host: Any) -> dict[str, Any]:
    """Instantiate every registered extension and keep the enabled ones."""

    extensions: dict[str, Any] = {}
    for name, factory in _FACTORIES.items():
        extension = factory(host)
        if getattr(extension, "enabled", True):
            extensions[name] = extension
        else:
            logger.debug("extension %s not used by asset; skipped", name)
    return extensions


__all__ = [
    "ExtensionFactory",
    "create_extensions",
    "register_extension",
    "registered_extensions",
    "unregister_extension",
]
