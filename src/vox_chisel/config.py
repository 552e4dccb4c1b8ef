"""
Configuration & Path Management
===============================
Central registry for format constants and bundled resource paths.

Exports:
    BLOCK_SIDE (int): Voxels per block side in a pattern.
    PATTERN_EXTENSION (str): File extension of pattern files.
    DEFAULT_OUTPUT (str): Default output file prefix.
    AIR_BLOCK (str): Material used for empty voxels.
    DATA_PATH (Path): Directory of bundled data files.
    DEFAULT_PALETTE_PATH (Path): Bundled material palette.
"""
from pathlib import Path


BLOCK_SIDE: int = 16
PATTERN_EXTENSION: str = ".cbsbp"
PATTERN_VERSION: str = "1.0"
DEFAULT_OUTPUT: str = "pattern"
AIR_BLOCK: str = "minecraft:air"

# Resolved relative to this file so it works from a source checkout too
DATA_PATH: Path = Path(__file__).parent / "data"
DEFAULT_PALETTE_PATH: Path = DATA_PATH / "blocks.json"
