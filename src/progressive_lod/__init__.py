"""
progressive-lod: progressive level-of-detail loading for scene assets.

Loads the coarsest declared variant of a node or material first, shows it as
soon as it is ready, then swaps in finer variants as they finish while
coalescing per-level byte-range reads and deferring secondary I/O.
"""

from .assets import EXTENSION_NAME, AssetDocument, BufferDef, MaterialDef, NodeDef, get_array_item
from .config import LodSettings, load_lod_settings
from .context import LoadContext, VariantKind
from .coordinator import LodCoordinator
from .errors import (
    ArrayItemError,
    BucketSealedError,
    ConfigurationError,
    LodError,
    MissingBinaryPayloadError,
    RangeReadError,
)
from .ranges import RangeCoalescer
from .registry import create_extensions, register_extension
from .sequencer import resolve_lod_levels
from .signal import CancelToken, DeferredSignal

__version__ = "0.1.0"

__all__ = [
    "EXTENSION_NAME",
    "ArrayItemError",
    "AssetDocument",
    "BucketSealedError",
    "BufferDef",
    "CancelToken",
    "ConfigurationError",
    "DeferredSignal",
    "LoadContext",
    "LodCoordinator",
    "LodError",
    "LodSettings",
    "MaterialDef",
    "MissingBinaryPayloadError",
    "NodeDef",
    "RangeCoalescer",
    "RangeReadError",
    "VariantKind",
    "__version__",
    "create_extensions",
    "get_array_item",
    "load_lod_settings",
    "register_extension",
    "resolve_lod_levels",
]
