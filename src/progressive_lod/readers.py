"""Reference ``RangeReader`` implementations.

``FileRangeReader`` reads byte ranges of a local file in a worker thread, so a
GLB's binary chunk can be served without loading the whole file.
``locate_glb_bin_chunk`` finds that chunk by walking the GLB chunk headers.
"""

from __future__ import annotations

import asyncio
import logging
import struct
from pathlib import Path
from typing import Optional, Union

from .errors import GlbFormatError, RangeReadError

logger = logging.getLogger(__name__)

GLB_MAGIC = b"glTF"
GLB_VERSION_SUPPORTED = 2
GLB_HEADER_SIZE = 12
GLB_CHUNK_HEADER_SIZE = 8

CHUNK_TYPE_JSON = 0x4E4F534A  # b"JSON"
CHUNK_TYPE_BIN = 0x004E4942  # b"BIN\0"


def _check_bounds(start: int, length: int, size: int) -> None:
    if start < 0 or length <= 0 or start + length > size:
        raise RangeReadError(f"range [{start}, {start + length}) outside payload of {size} bytes")


class BytesRangeReader:
    """Serve ranges from an in-memory payload."""

    def __init__(self, data: Union[bytes, bytearray, memoryview]) -> None:
        self._data = memoryview(data)

    @property
    def size(self) -> int:
        return self._data.nbytes

    async def read_range(self, start: int, length: int) -> memoryview:
        _check_bounds(int(start), int(length), self.size)
        return self._data[int(start) : int(start) + int(length)]


class FileRangeReader:
    """Serve ranges of ``path`` starting at ``base_offset``."""

    def __init__(self, path: Union[str, Path], *, base_offset: int = 0, size: Optional[int] = None) -> None:
        self._path = Path(path)
        self._base = int(base_offset)
        self._size = None if size is None else int(size)

    @classmethod
    def from_glb(cls, path: Union[str, Path]) -> "FileRangeReader":
        offset, length = locate_glb_bin_chunk(path)
        return cls(path, base_offset=offset, size=length)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def base_offset(self) -> int:
        return self._base

    async def read_range(self, start: int, length: int) -> bytes:
        return await asyncio.to_thread(self._read_sync, int(start), int(length))

    def _read_sync(self, start: int, length: int) -> bytes:
        if self._size is not None:
            _check_bounds(start, length, self._size)
        try:
            with self._path.open("rb") as fh:
                fh.seek(self._base + start)
                data = fh.read(length)
        except OSError as exc:
            raise RangeReadError(f"{self._path}: read failed at {self._base + start}: {exc}") from exc
        if len(data) != length:
            raise RangeReadError(f"{self._path}: short read at {self._base + start}: {len(data)} of {length} bytes")
        return data


def locate_glb_bin_chunk(path: Union[str, Path]) -> tuple[int, int]:
    """Return ``(offset, length)`` of the GLB's first BIN chunk."""

    glb_path = Path(path)
    with glb_path.open("rb") as fh:
        header = fh.read(GLB_HEADER_SIZE)
        if len(header) < GLB_HEADER_SIZE:
            raise GlbFormatError("Invalid GLB: file too small")
        magic, version, total_length = struct.unpack_from("<4sII", header, 0)
        if magic != GLB_MAGIC:
            raise GlbFormatError("Invalid GLB: bad magic")
        if version != GLB_VERSION_SUPPORTED:
            raise GlbFormatError(f"Unsupported GLB version: {version} (expected {GLB_VERSION_SUPPORTED})")

        offset = GLB_HEADER_SIZE
        while offset < total_length:
            if offset + GLB_CHUNK_HEADER_SIZE > total_length:
                raise GlbFormatError("Invalid GLB: truncated chunk header")
            fh.seek(offset)
            chunk_header = fh.read(GLB_CHUNK_HEADER_SIZE)
            if len(chunk_header) < GLB_CHUNK_HEADER_SIZE:
                raise GlbFormatError("Invalid GLB: truncated chunk header")
            chunk_length, chunk_type = struct.unpack_from("<II", chunk_header, 0)
            offset += GLB_CHUNK_HEADER_SIZE
            if offset + chunk_length > total_length:
                raise GlbFormatError("Invalid GLB: truncated chunk data")
            if chunk_type == CHUNK_TYPE_BIN:
                logger.debug("glb bin chunk: path=%s offset=%d length=%d", glb_path, offset, chunk_length)
                return offset, chunk_length
            offset += chunk_length

    raise GlbFormatError("Invalid GLB: missing BIN chunk")


__all__ = [
    "BytesRangeReader",
    "FileRangeReader",
    "locate_glb_bin_chunk",
]
