"""
MagicaVoxel .vox Format Exporter

Writes VoxelGrid models back into a version 150 .vox container. This is
the inverse of ingestion.decode_vox and is mainly used to build containers
in memory (tests, tooling).

File Structure:
- Header: "VOX " (4 bytes) + version (4 bytes, int32)
- MAIN chunk (container)
  - PACK chunk: model count (only written for multi-model files)
  - SIZE chunk + XYZI chunk per model
  - RGBA chunk: 256-color palette (only written for custom palettes)

Limitations:
- Maximum 255 colors
- Maximum 256x256x256 dimensions per model
"""

from pathlib import Path
from typing import Optional, Sequence, Union
import struct
import numpy as np

from ..grid import VoxelGrid


# VOX format constants
VOX_MAGIC = b'VOX '
VOX_VERSION = 150


class VoxChunk:
    """Base class for VOX chunks."""

    def __init__(self, chunk_id: bytes):
        self.chunk_id = chunk_id
        self.content = b''
        self.children = b''

    def pack(self) -> bytes:
        """Pack the chunk into bytes."""
        return (
            self.chunk_id +
            struct.pack('<II', len(self.content), len(self.children)) +
            self.content +
            self.children
        )


class PackChunk(VoxChunk):
    """PACK chunk declaring the number of models."""

    def __init__(self, model_count: int):
        super().__init__(b'PACK')
        self.content = struct.pack('<i', model_count)


class SizeChunk(VoxChunk):
    """SIZE chunk containing model dimensions."""

    def __init__(self, size_x: int, size_y: int, size_z: int):
        super().__init__(b'SIZE')
        # Note: VOX uses x, y, z where z is up
        self.content = struct.pack('<iii', size_x, size_y, size_z)


class XYZIChunk(VoxChunk):
    """XYZI chunk containing voxel positions and color indices."""

    def __init__(self, grid: VoxelGrid):
        super().__init__(b'XYZI')
        coords, indices = grid.to_sparse()
        voxels = np.column_stack([coords, indices]).astype(np.uint8)
        self.content = struct.pack('<I', len(voxels)) + voxels.tobytes()


class RGBAChunk(VoxChunk):
    """RGBA chunk containing the 256-color palette."""

    def __init__(self, palette: np.ndarray):
        super().__init__(b'RGBA')
        # Entry k of the chunk is the color of voxel index k + 1
        entries = np.zeros((256, 4), dtype=np.uint8)
        entries[:255] = palette[1:256]
        self.content = entries.tobytes()


class MainChunk(VoxChunk):
    """MAIN container chunk."""

    def __init__(self):
        super().__init__(b'MAIN')

    def add_child(self, chunk: VoxChunk):
        """Add a child chunk."""
        self.children += chunk.pack()


def encode_vox(models: Sequence[VoxelGrid], palette: Optional[np.ndarray] = None) -> bytes:
    """
    Serialize models into .vox bytes.

    Args:
        models: One or more voxel grids
        palette: Optional (256, 4) RGBA array indexed by voxel palette index;
            omitted means the reader falls back to the default palette

    Returns:
        Complete .vox file content
    """
    if not models:
        raise ValueError("At least one model required")

    main_chunk = MainChunk()
    if len(models) > 1:
        main_chunk.add_child(PackChunk(len(models)))
    for grid in models:
        main_chunk.add_child(SizeChunk(*grid.shape))
        main_chunk.add_child(XYZIChunk(grid))
    if palette is not None:
        main_chunk.add_child(RGBAChunk(np.asarray(palette, dtype=np.uint8)))

    return VOX_MAGIC + struct.pack('<i', VOX_VERSION) + main_chunk.pack()


class VoxExporter:
    """
    Export voxel grids to MagicaVoxel .vox files.

    Usage:
        exporter = VoxExporter(palette)
        exporter.export([grid], "output.vox")
    """

    def __init__(self, palette: Optional[np.ndarray] = None):
        self.palette = palette

    def to_bytes(self, models: Sequence[VoxelGrid]) -> bytes:
        return encode_vox(models, self.palette)

    def export(self, models: Sequence[VoxelGrid], output_path: Union[str, Path]):
        """Write models to a .vox file."""
        Path(output_path).write_bytes(self.to_bytes(models))
