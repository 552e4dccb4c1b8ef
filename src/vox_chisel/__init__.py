"""
vox-chisel
==========

Converts MagicaVoxel models into Chisels & Bits patterns.

A .vox model is cut into block-sized cells (16³ voxels by default); every
non-empty cell becomes one pattern whose voxel colors are mapped to the
nearest block of a configurable material palette.

Key Features:
- Tolerant .vox decoding (unknown chunks skipped, multi-model files)
- Perceptual (CIEDE2000) or Euclidean nearest-block matching
- Deterministic, byte-stable .cbsbp output
- Optional multi-threaded encoding

Example Usage:
    from vox_chisel import PatternConverter

    converter = PatternConverter()
    for pattern in converter.convert(vox_bytes, {"minecraft:stone": (125, 125, 125)}):
        print(pattern.name, len(pattern.data))
"""

__version__ = "0.1.0"

from .converter import PatternConverter, NamedPattern, ConversionState, convert
from .ingestion import VoxData, decode_vox
from .grid import VoxelGrid
from .lattice import SubGrid, partition
from .color import ColorMatcher
from .materials import load_material_palette
from .errors import (
    ConversionError,
    InvalidSignature,
    MalformedContainer,
    MissingSizeChunk,
    CoordinateOutOfBounds,
    EmptyPalette,
    EncodingOverflow,
    ModelSelectionError,
    PaletteConfigError,
)

__all__ = [
    "PatternConverter",
    "NamedPattern",
    "ConversionState",
    "convert",
    "VoxData",
    "decode_vox",
    "VoxelGrid",
    "SubGrid",
    "partition",
    "ColorMatcher",
    "load_material_palette",
    "ConversionError",
    "InvalidSignature",
    "MalformedContainer",
    "MissingSizeChunk",
    "CoordinateOutOfBounds",
    "EmptyPalette",
    "EncodingOverflow",
    "ModelSelectionError",
    "PaletteConfigError",
]
