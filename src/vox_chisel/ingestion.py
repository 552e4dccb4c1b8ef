"""
MagicaVoxel .vox Loading

The .vox format is a RIFF-style chunk-based binary format:

- Header: "VOX " (4 bytes) + version (4 bytes, int32)
- MAIN chunk (container)
  - PACK chunk (optional): number of models
  - SIZE chunk: dimensions (x, y, z)
  - XYZI chunk: voxel data (x, y, z, color_index per voxel)
  - ... further SIZE/XYZI pairs for multi-model files
  - RGBA chunk (optional): 256-color palette
  - scene graph / material chunks (nTRN, nGRP, MATL, ...)

Every chunk is: id (4 bytes), content size (uint32), children size (uint32),
content, children. Chunks this loader does not understand are skipped by
length, so files written by newer MagicaVoxel versions still load.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union
import logging
import struct
import numpy as np

from .default_palette import default_palette
from .errors import InvalidSignature, MalformedContainer, MissingSizeChunk
from .grid import VoxelGrid, MAX_SIDE

logger = logging.getLogger(__name__)


VOX_MAGIC = b'VOX '
SUPPORTED_VERSIONS = (150, 200)

_HEADER = struct.Struct('<4si')
_CHUNK_HEADER = struct.Struct('<4sII')


@dataclass(frozen=True)
class SizeChunk:
    """SIZE: dimensions of the next model."""
    offset: int
    size: Tuple[int, int, int]


@dataclass(frozen=True)
class VoxelListChunk:
    """XYZI: voxels as an (N, 4) array of x, y, z, palette index."""
    offset: int
    voxels: np.ndarray


@dataclass(frozen=True)
class PaletteChunk:
    """RGBA: up to 256 palette entries for indices 1-256."""
    offset: int
    colors: np.ndarray


@dataclass(frozen=True)
class PackChunk:
    """PACK: declared number of models."""
    offset: int
    model_count: int


@dataclass(frozen=True)
class OpaqueChunk:
    """Any other chunk; only its id and length are kept."""
    offset: int
    chunk_id: str
    length: int


Chunk = Union[SizeChunk, VoxelListChunk, PaletteChunk, PackChunk, OpaqueChunk]


@dataclass
class VoxData:
    """
    Decoded content of a .vox file.

    Attributes:
        models: Voxel grids in file order
        palette: (256, 4) RGBA array indexed by voxel palette index
        version: Container version from the header
        has_custom_palette: False if the default palette is in use
    """

    models: List[VoxelGrid]
    palette: np.ndarray
    version: int = SUPPORTED_VERSIONS[0]
    has_custom_palette: bool = False

    @property
    def model_count(self) -> int:
        return len(self.models)


@dataclass
class _ChunkHeader:
    chunk_id: str
    offset: int
    content_start: int
    content_end: int
    children_end: int


class VoxLoader:
    """
    Parser for .vox byte streams.

    Usage:
        data = VoxLoader(raw_bytes).load()
        grid = data.models[0]
    """

    def __init__(self, data: bytes):
        self._data = memoryview(bytes(data))
        self._chunks: List[Chunk] = []

    def load(self) -> VoxData:
        """
        Parse the whole byte stream.

        Raises:
            InvalidSignature: bad magic or unsupported version
            MalformedContainer: truncated or inconsistent chunk data
            MissingSizeChunk: XYZI chunk without a preceding SIZE chunk
            CoordinateOutOfBounds: voxel outside its model dimensions
        """
        version = self._read_header()

        main = self._read_chunk_header(_HEADER.size, len(self._data))
        if main.chunk_id != 'MAIN':
            raise MalformedContainer("Expected MAIN chunk", main.chunk_id, main.offset)
        self._chunks = []
        self._walk_children(main)

        return self._assemble(version)

    @property
    def chunks(self) -> List[Chunk]:
        """Chunks found below MAIN by the last load(), in file order."""
        return list(self._chunks)

    def _read_header(self) -> int:
        if len(self._data) < _HEADER.size:
            raise InvalidSignature("File too short for a .vox header", bytes(self._data[:4]))
        magic, version = _HEADER.unpack_from(self._data, 0)
        if magic != VOX_MAGIC:
            raise InvalidSignature(f"Not a .vox file: bad magic {magic!r}", magic, version)
        if version not in SUPPORTED_VERSIONS:
            raise InvalidSignature(f"Unsupported .vox version {version}", magic, version)
        return version

    def _read_chunk_header(self, offset: int, limit: int) -> _ChunkHeader:
        if offset + _CHUNK_HEADER.size > limit:
            raise MalformedContainer("Truncated chunk header", offset=offset)
        raw_id, content_size, children_size = _CHUNK_HEADER.unpack_from(self._data, offset)
        chunk_id = raw_id.decode('ascii', errors='replace')

        content_start = offset + _CHUNK_HEADER.size
        content_end = content_start + content_size
        children_end = content_end + children_size
        if children_end > limit:
            raise MalformedContainer(
                f"Chunk declares {content_size + children_size} bytes, "
                f"only {limit - content_start} available",
                chunk_id, offset
            )
        return _ChunkHeader(chunk_id, offset, content_start, content_end, children_end)

    def _walk_children(self, parent: _ChunkHeader):
        # Explicit stack of (next offset, end) ranges; nesting depth is
        # bounded only by the file size. Children are visited before the
        # next sibling, so chunks are recorded in file order.
        stack = [(parent.content_end, parent.children_end)]
        while stack:
            offset, end = stack.pop()
            if offset >= end:
                continue
            header = self._read_chunk_header(offset, end)
            self._chunks.append(self._parse_chunk(header))
            stack.append((header.children_end, end))
            if header.children_end > header.content_end:
                stack.append((header.content_end, header.children_end))

    def _parse_chunk(self, header: _ChunkHeader) -> Chunk:
        content = self._data[header.content_start:header.content_end]
        chunk_id = header.chunk_id

        if chunk_id == 'SIZE':
            sx, sy, sz = self._unpack(header, '<iii', content)
            size = (sx, sy, sz)
            if any(not 1 <= s <= MAX_SIDE for s in size):
                raise MalformedContainer(f"Invalid model size {size}", chunk_id, header.offset)
            return SizeChunk(header.offset, size)

        if chunk_id == 'XYZI':
            (count,) = self._unpack(header, '<I', content)
            if 4 + 4 * count > len(content):
                raise MalformedContainer(
                    f"XYZI declares {count} voxels but holds {(len(content) - 4) // 4}",
                    chunk_id, header.offset
                )
            if count == 0:
                return VoxelListChunk(header.offset, np.zeros((0, 4), dtype=np.uint8))
            voxels = np.frombuffer(content, dtype=np.uint8, count=4 * count, offset=4)
            return VoxelListChunk(header.offset, voxels.reshape(count, 4))

        if chunk_id == 'RGBA':
            entries = min(len(content) // 4, 256)
            colors = np.frombuffer(content, dtype=np.uint8, count=4 * entries)
            return PaletteChunk(header.offset, colors.reshape(entries, 4))

        if chunk_id == 'PACK':
            (model_count,) = self._unpack(header, '<i', content)
            return PackChunk(header.offset, model_count)

        logger.debug("Skipping %s chunk (%d bytes)", chunk_id, len(content))
        return OpaqueChunk(header.offset, chunk_id, len(content))

    @staticmethod
    def _unpack(header: _ChunkHeader, fmt: str, content) -> tuple:
        if struct.calcsize(fmt) > len(content):
            raise MalformedContainer(
                f"Content too short ({len(content)} bytes)", header.chunk_id, header.offset
            )
        return struct.unpack_from(fmt, content, 0)

    def _assemble(self, version: int) -> VoxData:
        models: List[VoxelGrid] = []
        palette: Optional[np.ndarray] = None
        declared_models: Optional[int] = None
        pending_size: Optional[Tuple[int, int, int]] = None

        for chunk in self._chunks:
            if isinstance(chunk, SizeChunk):
                pending_size = chunk.size
            elif isinstance(chunk, VoxelListChunk):
                if pending_size is None:
                    raise MissingSizeChunk(chunk.offset)
                models.append(_build_grid(pending_size, chunk.voxels))
                pending_size = None
            elif isinstance(chunk, PaletteChunk):
                palette = np.zeros((256, 4), dtype=np.uint8)
                # Palette entry k holds the color of voxel index k + 1
                n = min(len(chunk.colors), 255)
                palette[1:n + 1] = chunk.colors[:n]
            elif isinstance(chunk, PackChunk):
                declared_models = chunk.model_count

        if not models:
            raise MalformedContainer("Container holds no voxel model", 'MAIN', _HEADER.size)
        if declared_models is not None and declared_models != len(models):
            logger.warning(
                "PACK chunk declares %d models, found %d", declared_models, len(models)
            )

        has_custom_palette = palette is not None
        if palette is None:
            logger.debug("No RGBA chunk, using default palette")
            palette = default_palette()

        logger.debug(
            "Decoded .vox v%d: %d model(s), sizes %s",
            version, len(models), [m.shape for m in models]
        )
        return VoxData(models, palette, version, has_custom_palette)


def _build_grid(size: Tuple[int, int, int], voxels: np.ndarray) -> VoxelGrid:
    grid = VoxelGrid(*size)
    # In file order so duplicates resolve to the last entry; index 0 clears
    for x, y, z, index in voxels.tolist():
        grid.set_voxel(x, y, z, index)
    return grid


def decode_vox(data: bytes) -> VoxData:
    """
    Decode .vox bytes into models and palette.

    Args:
        data: Raw file content

    Returns:
        VoxData with one VoxelGrid per model
    """
    return VoxLoader(data).load()
