"""
Export modules for the supported binary formats.

Supported formats:
- Chisels & Bits pattern (.cbsbp) - One block of chiseled voxels
- MagicaVoxel (.vox) - Round-trip target for decoded models
"""

from .pattern_exporter import PatternEncoder
from .vox_exporter import VoxExporter, encode_vox

__all__ = ["PatternEncoder", "VoxExporter", "encode_vox"]
