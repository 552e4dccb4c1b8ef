"""
Conversion Errors

Every failure raised by the conversion pipeline derives from ConversionError,
so callers can catch one type. Each error carries enough context (chunk id,
byte offset, coordinate, lattice cell) to locate the problem in the input.
"""

from typing import Optional, Tuple


class ConversionError(Exception):
    """Base class for all conversion failures."""


class InvalidSignature(ConversionError):
    """The input does not start with a supported .vox header."""

    def __init__(self, message: str, signature: bytes = b"", version: Optional[int] = None):
        super().__init__(message)
        self.signature = signature
        self.version = version


class MalformedContainer(ConversionError):
    """Truncated data or inconsistent chunk lengths."""

    def __init__(self, message: str, chunk_id: str = "", offset: int = 0):
        super().__init__(f"{message} (chunk {chunk_id or '?'} at offset {offset})")
        self.chunk_id = chunk_id
        self.offset = offset


class MissingSizeChunk(ConversionError):
    """A voxel list appeared without a preceding SIZE chunk."""

    def __init__(self, offset: int = 0):
        super().__init__(f"XYZI chunk at offset {offset} is not preceded by a SIZE chunk")
        self.offset = offset


class CoordinateOutOfBounds(ConversionError):
    """A voxel lies outside the declared model dimensions."""

    def __init__(self, coordinate: Tuple[int, int, int], size: Tuple[int, int, int]):
        super().__init__(f"Voxel {coordinate} lies outside model of size {size}")
        self.coordinate = coordinate
        self.size = size


class EmptyPalette(ConversionError):
    """A material palette with no entries."""


class EncodingOverflow(ConversionError):
    """A sub-grid exceeds the limits of the pattern format."""

    def __init__(self, message: str, cell: Tuple[int, int, int] = (0, 0, 0)):
        super().__init__(f"{message} (cell {cell})")
        self.cell = cell


class ModelSelectionError(ConversionError):
    """The requested models do not exist, or a choice is required."""

    def __init__(self, message: str, model_count: int = 0):
        super().__init__(message)
        self.model_count = model_count


class PaletteConfigError(ConversionError):
    """A material palette document could not be read."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(f"{path}: {message}" if path else message)
        self.path = path
