"""Error taxonomy for progressive LOD loading."""

from __future__ import annotations


class LodError(RuntimeError):
    """Base class for errors raised by the LOD scheduler."""


class ConfigurationError(LodError, ValueError):
    """Raised when settings are invalid (e.g. a non-positive level cap)."""


class ArrayItemError(LodError, IndexError):
    """Raised when a declared index does not resolve in its array."""

    def __init__(self, context: str, index: object) -> None:
        super().__init__(f"{context}: Failed to find index ({index})")
        self.context = context
        self.index = index


class RangeReadError(LodError, OSError):
    """Raised when a byte-range read fails at the transport layer."""


class MissingBinaryPayloadError(RangeReadError):
    """Raised when range requests are enabled but no binary chunk exists."""


class BucketSealedError(LodError):
    """Raised when a range bucket would grow after its read was issued."""


class GlbFormatError(LodError, ValueError):
    """Raised when a GLB container cannot be parsed."""


__all__ = [
    "ArrayItemError",
    "BucketSealedError",
    "ConfigurationError",
    "GlbFormatError",
    "LodError",
    "MissingBinaryPayloadError",
    "RangeReadError",
]
