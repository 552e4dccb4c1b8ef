"""
Lattice Partitioning

Slices a VoxelGrid into block-sized cells. One cell becomes one pattern,
so the cell visiting order fixes the order (and names) of the output.
"""

from dataclasses import dataclass, field
from typing import Iterator, Tuple
import math
import numpy as np

from .config import BLOCK_SIDE
from .grid import VoxelGrid


@dataclass(frozen=True)
class SubGrid:
    """
    One lattice cell of a model.

    Attributes:
        cell: Cell index (cx, cy, cz)
        lattice_size: Cell side length in voxels
        data: (L, L, L) palette indices in local coordinates, 0 = empty
    """

    cell: Tuple[int, int, int]
    lattice_size: int
    data: np.ndarray = field(repr=False)

    @property
    def origin(self) -> Tuple[int, int, int]:
        """Position of local (0, 0, 0) in model coordinates."""
        return tuple(c * self.lattice_size for c in self.cell)

    def count_voxels(self) -> int:
        return int(np.count_nonzero(self.data))

    def local_voxels(self) -> Iterator[Tuple[int, int, int, int]]:
        """Yield (x, y, z, palette_index) for every populated local cell."""
        for x, y, z in np.argwhere(self.data):
            yield (int(x), int(y), int(z), int(self.data[x, y, z]))


def _check_lattice(lattice_size: int):
    if not isinstance(lattice_size, (int, np.integer)) or lattice_size < 1:
        raise ValueError(f"Lattice size must be a positive integer, got {lattice_size!r}")


def cells_per_axis(grid: VoxelGrid, lattice_size: int = BLOCK_SIDE) -> Tuple[int, int, int]:
    """Number of lattice cells along x, y and z."""
    _check_lattice(lattice_size)
    return tuple(math.ceil(side / lattice_size) for side in grid.shape)


def cell_count(grid: VoxelGrid, lattice_size: int = BLOCK_SIDE) -> int:
    """Total number of lattice cells, empty ones included."""
    nx, ny, nz = cells_per_axis(grid, lattice_size)
    return nx * ny * nz


def partition(grid: VoxelGrid, lattice_size: int = BLOCK_SIDE) -> Iterator[SubGrid]:
    """
    Split a grid into lattice cells.

    Cells are visited with x varying fastest, then y, then z. Cells at the
    far boundary are padded with empty voxels; cells without any voxel are
    skipped.

    This is a generator: call partition() again to restart.

    Args:
        grid: Source model
        lattice_size: Cell side length (positive)

    Yields:
        SubGrid per non-empty cell
    """
    nx, ny, nz = cells_per_axis(grid, lattice_size)
    size = lattice_size
    data = grid.data

    for cz in range(nz):
        for cy in range(ny):
            for cx in range(nx):
                block = data[
                    cx * size:(cx + 1) * size,
                    cy * size:(cy + 1) * size,
                    cz * size:(cz + 1) * size,
                ]
                if not block.any():
                    continue

                local = np.zeros((size, size, size), dtype=np.uint8)
                local[:block.shape[0], :block.shape[1], :block.shape[2]] = block
                yield SubGrid((cx, cy, cz), size, local)
