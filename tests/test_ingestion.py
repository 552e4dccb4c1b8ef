"""
Unit tests for .vox decoding and encoding.
"""

import struct
import sys
from pathlib import Path
import numpy as np
import unittest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from vox_chisel.default_palette import default_palette
from vox_chisel.errors import (
    CoordinateOutOfBounds,
    InvalidSignature,
    MalformedContainer,
    MissingSizeChunk,
)
from vox_chisel.exporters.vox_exporter import encode_vox
from vox_chisel.grid import VoxelGrid
from vox_chisel.ingestion import OpaqueChunk, VoxLoader, decode_vox


def chunk(chunk_id: bytes, content: bytes = b"", children: bytes = b"") -> bytes:
    return chunk_id + struct.pack("<II", len(content), len(children)) + content + children


def size_chunk(x: int, y: int, z: int) -> bytes:
    return chunk(b"SIZE", struct.pack("<iii", x, y, z))


def xyzi_chunk(*voxels) -> bytes:
    body = struct.pack("<I", len(voxels)) + b"".join(struct.pack("<BBBB", *v) for v in voxels)
    return chunk(b"XYZI", body)


def container(*children: bytes, version: int = 150) -> bytes:
    return b"VOX " + struct.pack("<i", version) + chunk(b"MAIN", children=b"".join(children))


class TestVoxelGrid(unittest.TestCase):
    """Tests for VoxelGrid class."""

    def test_create_grid(self):
        """Test grid creation."""
        grid = VoxelGrid(16, 8, 4)
        assert grid.shape == (16, 8, 4)
        assert grid.count_voxels() == 0

    def test_set_get_voxel(self):
        """Test setting and getting voxels."""
        grid = VoxelGrid(8, 8, 8)
        grid.set_voxel(1, 2, 3, 42)
        assert grid.get_voxel(1, 2, 3) == 42
        assert grid.is_solid(1, 2, 3)
        assert not grid.is_solid(0, 0, 0)

    def test_out_of_bounds_write_fails(self):
        """Out-of-bounds writes raise instead of being dropped."""
        grid = VoxelGrid(8, 8, 8)
        with self.assertRaises(CoordinateOutOfBounds) as ctx:
            grid.set_voxel(8, 0, 0, 1)
        assert ctx.exception.coordinate == (8, 0, 0)
        assert ctx.exception.size == (8, 8, 8)
        assert grid.get_voxel(100, 0, 0) == 0

    def test_invalid_dimensions(self):
        """Dimensions must be within 1-256."""
        with self.assertRaises(ValueError):
            VoxelGrid(0, 1, 1)
        with self.assertRaises(ValueError):
            VoxelGrid(1, 257, 1)

    def test_sparse_conversion(self):
        """Test sparse representation."""
        grid = VoxelGrid(8, 8, 8)
        grid.set_voxel(0, 0, 0, 3)
        grid.set_voxel(7, 7, 7, 5)

        coords, indices = grid.to_sparse()
        assert coords.tolist() == [[0, 0, 0], [7, 7, 7]]
        assert indices.tolist() == [3, 5]
        assert grid.used_indices().tolist() == [3, 5]


class TestDecodeVox(unittest.TestCase):
    """Tests for decode_vox."""

    def test_roundtrip_with_palette(self):
        """decode(encode(grid, palette)) reproduces grid and palette."""
        grid = VoxelGrid(5, 3, 20)
        grid.set_voxel(0, 0, 0, 1)
        grid.set_voxel(4, 2, 19, 255)
        grid.set_voxel(2, 1, 7, 128)

        palette = np.zeros((256, 4), dtype=np.uint8)
        palette[1:] = np.random.default_rng(7).integers(0, 256, size=(255, 4))

        data = decode_vox(encode_vox([grid], palette))

        assert data.model_count == 1
        assert data.models[0].shape == (5, 3, 20)
        assert np.array_equal(data.models[0].data, grid.data)
        assert np.array_equal(data.palette, palette)
        assert data.has_custom_palette

    def test_default_palette_without_rgba(self):
        """A missing RGBA chunk selects the built-in palette."""
        grid = VoxelGrid(1, 1, 1)
        grid.set_voxel(0, 0, 0, 1)

        data = decode_vox(encode_vox([grid]))

        assert not data.has_custom_palette
        assert np.array_equal(data.palette, default_palette())
        assert list(data.palette[1]) == [255, 255, 255, 255]

    def test_rgba_entries_shift_by_one(self):
        """RGBA entry k is the color of voxel index k + 1."""
        entries = np.zeros((256, 4), dtype=np.uint8)
        entries[0] = [10, 20, 30, 255]
        raw = container(size_chunk(1, 1, 1), xyzi_chunk((0, 0, 0, 1)),
                        chunk(b"RGBA", entries.tobytes()))

        data = decode_vox(raw)
        assert list(data.palette[1]) == [10, 20, 30, 255]
        assert list(data.palette[0]) == [0, 0, 0, 0]

    def test_invalid_signature(self):
        """Bytes without the magic fail and return nothing."""
        with self.assertRaises(InvalidSignature):
            decode_vox(b"RIFF" + container(size_chunk(1, 1, 1))[4:])
        with self.assertRaises(InvalidSignature):
            decode_vox(b"VO")

    def test_unsupported_version(self):
        """Unknown container versions are rejected."""
        with self.assertRaises(InvalidSignature) as ctx:
            decode_vox(container(size_chunk(1, 1, 1), xyzi_chunk(), version=999))
        assert ctx.exception.version == 999

    def test_version_200_accepted(self):
        """Files saved by newer MagicaVoxel releases load."""
        data = decode_vox(container(size_chunk(2, 2, 2), xyzi_chunk((1, 1, 1, 9)), version=200))
        assert data.version == 200
        assert data.models[0].get_voxel(1, 1, 1) == 9

    def test_unknown_chunks_skipped(self):
        """Unknown chunks, including nested ones, are skipped by length."""
        scene = chunk(b"nTRN", b"\x01" * 28, chunk(b"nSHP", b"\x02" * 12))
        raw = container(
            chunk(b"ABCD", b"\xff" * 5),
            size_chunk(2, 2, 2),
            scene,
            xyzi_chunk((1, 0, 1, 4)),
            chunk(b"MATL", b"\x00" * 40),
        )

        loader = VoxLoader(raw)
        data = loader.load()

        assert data.models[0].get_voxel(1, 0, 1) == 4
        opaque = [c.chunk_id for c in loader.chunks if isinstance(c, OpaqueChunk)]
        assert opaque == ["ABCD", "nTRN", "nSHP", "MATL"]

    def test_deeply_nested_chunks(self):
        """Thousands of nested chunks are walked without exhausting the stack."""
        nested = b""
        for _ in range(5000):
            nested = chunk(b"nGRP", b"", nested)
        raw = container(nested, size_chunk(1, 1, 1), xyzi_chunk((0, 0, 0, 2)))

        loader = VoxLoader(raw)
        data = loader.load()

        assert data.models[0].get_voxel(0, 0, 0) == 2
        opaque = [c for c in loader.chunks if isinstance(c, OpaqueChunk)]
        assert len(opaque) == 5000
        assert [c.offset for c in opaque] == sorted(c.offset for c in opaque)

    def test_deeply_nested_truncation(self):
        """A truncated chunk deep in the tree is still a malformed container."""
        nested = chunk(b"nSHP", b"\x00" * 4)[:-2]
        for _ in range(3000):
            nested = chunk(b"nGRP", b"", nested)
        raw = container(nested, size_chunk(1, 1, 1), xyzi_chunk((0, 0, 0, 2)))

        with self.assertRaises(MalformedContainer) as ctx:
            decode_vox(raw)
        assert ctx.exception.chunk_id == "nSHP"

    def test_missing_size_chunk(self):
        """XYZI without a preceding SIZE fails."""
        with self.assertRaises(MissingSizeChunk):
            decode_vox(container(xyzi_chunk((0, 0, 0, 1)), size_chunk(1, 1, 1)))

    def test_coordinate_out_of_bounds(self):
        """Voxels outside the declared size fail with context."""
        with self.assertRaises(CoordinateOutOfBounds) as ctx:
            decode_vox(container(size_chunk(4, 4, 4), xyzi_chunk((1, 1, 1, 1), (4, 0, 0, 2))))
        assert ctx.exception.coordinate == (4, 0, 0)
        assert ctx.exception.size == (4, 4, 4)

    def test_truncated_chunk(self):
        """A chunk running past the end of the data is malformed."""
        raw = container(size_chunk(2, 2, 2), xyzi_chunk((0, 0, 0, 1), (1, 1, 1, 2)))
        with self.assertRaises(MalformedContainer):
            decode_vox(raw[:-3])

    def test_voxel_count_exceeds_content(self):
        """An XYZI count larger than its content is malformed."""
        bad = chunk(b"XYZI", struct.pack("<I", 10) + b"\x00\x00\x00\x01")
        with self.assertRaises(MalformedContainer) as ctx:
            decode_vox(container(size_chunk(1, 1, 1), bad))
        assert ctx.exception.chunk_id == "XYZI"

    def test_main_chunk_required(self):
        """The top level chunk must be MAIN."""
        raw = b"VOX " + struct.pack("<i", 150) + size_chunk(1, 1, 1)
        with self.assertRaises(MalformedContainer):
            decode_vox(raw)

    def test_no_model(self):
        """A container without voxel data is malformed."""
        with self.assertRaises(MalformedContainer):
            decode_vox(container(size_chunk(1, 1, 1)))

    def test_invalid_size(self):
        """SIZE values outside 1-256 are malformed."""
        with self.assertRaises(MalformedContainer):
            decode_vox(container(size_chunk(0, 4, 4), xyzi_chunk()))

    def test_index_zero_is_empty(self):
        """Palette index 0 does not create a voxel."""
        data = decode_vox(container(size_chunk(2, 1, 1), xyzi_chunk((0, 0, 0, 0), (1, 0, 0, 3))))
        grid = data.models[0]
        assert grid.count_voxels() == 1
        assert not grid.is_solid(0, 0, 0)

    def test_duplicate_coordinates_last_wins(self):
        """The last entry for a coordinate is kept."""
        data = decode_vox(container(size_chunk(1, 1, 1), xyzi_chunk((0, 0, 0, 3), (0, 0, 0, 7))))
        assert data.models[0].get_voxel(0, 0, 0) == 7

    def test_multiple_models(self):
        """Each SIZE/XYZI pair becomes one model."""
        first = VoxelGrid(2, 2, 2)
        first.set_voxel(0, 0, 0, 1)
        second = VoxelGrid(3, 1, 1)
        second.set_voxel(2, 0, 0, 2)

        data = decode_vox(encode_vox([first, second]))

        assert data.model_count == 2
        assert data.models[0].shape == (2, 2, 2)
        assert data.models[1].get_voxel(2, 0, 0) == 2

    def test_pack_count_mismatch_warns(self):
        """A wrong PACK count is logged, not fatal."""
        raw = container(chunk(b"PACK", struct.pack("<i", 3)), size_chunk(1, 1, 1),
                        xyzi_chunk((0, 0, 0, 1)))
        with self.assertLogs("vox_chisel.ingestion", level="WARNING"):
            data = decode_vox(raw)
        assert data.model_count == 1


if __name__ == "__main__":
    unittest.main(verbosity=2)
