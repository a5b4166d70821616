from __future__ import annotations

import asyncio
import json
import struct
from pathlib import Path

import pytest

from progressive_lod.errors import GlbFormatError, RangeReadError
from progressive_lod.readers import BytesRangeReader, FileRangeReader, locate_glb_bin_chunk


def _pad4(data: bytes, fill: bytes) -> bytes:
    return data + fill * ((4 - len(data) % 4) % 4)


def _write_glb(path: Path, binary: bytes, *, version: int = 2) -> Path:
    json_chunk = _pad4(json.dumps({"asset": {"version": "2.0"}}).encode(), b" ")
    bin_chunk = _pad4(binary, b"\x00")
    total = 12 + 8 + len(json_chunk) + 8 + len(bin_chunk)
    with path.open("wb") as fh:
        fh.write(struct.pack("<4sII", b"glTF", version, total))
        fh.write(struct.pack("<II", len(json_chunk), 0x4E4F534A))
        fh.write(json_chunk)
        fh.write(struct.pack("<II", len(bin_chunk), 0x004E4942))
        fh.write(bin_chunk)
    return path


def test_locate_glb_bin_chunk(tmp_path: Path) -> None:
    binary = bytes(range(40))
    path = _write_glb(tmp_path / "asset.glb", binary)

    offset, length = locate_glb_bin_chunk(path)

    assert length == 40
    assert path.read_bytes()[offset : offset + length] == binary


def test_file_reader_serves_ranges_inside_bin_chunk(tmp_path: Path) -> None:
    binary = bytes(range(40))
    reader = FileRangeReader.from_glb(_write_glb(tmp_path / "asset.glb", binary))

    data = asyncio.run(reader.read_range(8, 6))

    assert data == binary[8:14]
    with pytest.raises(RangeReadError):
        asyncio.run(reader.read_range(36, 8))


def test_file_reader_reports_short_reads(tmp_path: Path) -> None:
    path = tmp_path / "raw.bin"
    path.write_bytes(b"abcdef")
    reader = FileRangeReader(path)

    assert asyncio.run(reader.read_range(2, 3)) == b"cde"
    with pytest.raises(RangeReadError, match="short read"):
        asyncio.run(reader.read_range(4, 10))
    with pytest.raises(RangeReadError):
        asyncio.run(FileRangeReader(tmp_path / "missing.bin").read_range(0, 1))


def test_locate_glb_rejects_bad_containers(tmp_path: Path) -> None:
    not_glb = tmp_path / "model.bin"
    not_glb.write_bytes(b"GLTF" + bytes(20))
    with pytest.raises(GlbFormatError, match="bad magic"):
        locate_glb_bin_chunk(not_glb)

    with pytest.raises(GlbFormatError, match="version"):
        locate_glb_bin_chunk(_write_glb(tmp_path / "v1.glb", b"\x01", version=1))

    tiny = tmp_path / "tiny.glb"
    tiny.write_bytes(b"glTF")
    with pytest.raises(GlbFormatError):
        locate_glb_bin_chunk(tiny)


def test_bytes_reader_bounds() -> None:
    reader = BytesRangeReader(b"0123456789")

    assert bytes(asyncio.run(reader.read_range(3, 4))) == b"3456"
    with pytest.raises(RangeReadError):
        asyncio.run(reader.read_range(8, 4))
