"""
Voxel Grid

Dense 3D array of palette indices, as decoded from a .vox model.

Index 0 means "no voxel"; indices 1-255 refer to rows of the model palette.
Memory consideration: the largest .vox model (256³) needs 16 MB as uint8.

Coordinate system: X-right, Y-back, Z-up (MagicaVoxel)
"""

from dataclasses import dataclass, field
from typing import Iterator, Tuple
import numpy as np

from .errors import CoordinateOutOfBounds


# Largest model side the .vox format can address (coordinates are uint8)
MAX_SIDE = 256


@dataclass
class VoxelGrid:
    """
    Dense voxel grid storing one palette index per cell.

    Attributes:
        size_x, size_y, size_z: Model dimensions (1-256 each)
    """

    size_x: int
    size_y: int
    size_z: int
    _data: np.ndarray = field(init=False, repr=False)

    def __post_init__(self):
        for side in self.shape:
            if not 1 <= side <= MAX_SIDE:
                raise ValueError(
                    f"Grid dimensions must be within 1-{MAX_SIDE}, got {self.shape}"
                )
        self._data = np.zeros(self.shape, dtype=np.uint8)

    @property
    def shape(self) -> Tuple[int, int, int]:
        """Get grid dimensions (x, y, z)."""
        return (self.size_x, self.size_y, self.size_z)

    @property
    def data(self) -> np.ndarray:
        """Get the raw palette index array."""
        return self._data

    @property
    def occupancy(self) -> np.ndarray:
        """Get binary occupancy mask (True where voxel exists)."""
        return self._data > 0

    def set_voxel(self, x: int, y: int, z: int, index: int):
        """
        Set the palette index at the given coordinates.

        Index 0 clears the cell. Later writes to the same cell replace
        earlier ones.

        Raises:
            CoordinateOutOfBounds: if (x, y, z) is outside the grid
        """
        if not self._in_bounds(x, y, z):
            raise CoordinateOutOfBounds((x, y, z), self.shape)
        self._data[x, y, z] = index

    def get_voxel(self, x: int, y: int, z: int) -> int:
        """Get the palette index at coordinates (0 if empty or out of bounds)."""
        if not self._in_bounds(x, y, z):
            return 0
        return int(self._data[x, y, z])

    def is_solid(self, x: int, y: int, z: int) -> bool:
        """Check if a voxel exists at the given coordinates."""
        return self.get_voxel(x, y, z) != 0

    def _in_bounds(self, x: int, y: int, z: int) -> bool:
        return (
            0 <= x < self.size_x and
            0 <= y < self.size_y and
            0 <= z < self.size_z
        )

    def count_voxels(self) -> int:
        """Count the number of solid voxels."""
        return int(np.count_nonzero(self._data))

    def used_indices(self) -> np.ndarray:
        """Sorted array of the distinct non-zero palette indices in the grid."""
        indices = np.unique(self._data)
        return indices[indices != 0]

    def iterate_voxels(self) -> Iterator[Tuple[int, int, int, int]]:
        """
        Iterate over all solid voxels.

        Yields:
            Tuples of (x, y, z, palette_index)
        """
        for x, y, z in np.argwhere(self.occupancy):
            yield (int(x), int(y), int(z), int(self._data[x, y, z]))

    def to_sparse(self) -> Tuple[np.ndarray, np.ndarray]:
        """
        Convert to sparse representation.

        Returns:
            Tuple of (coordinates, indices) where:
            - coordinates: Array of shape (N, 3) with xyz positions
            - indices: Array of shape (N,) with palette indices
        """
        occupied = self.occupancy
        return np.argwhere(occupied), self._data[occupied]
