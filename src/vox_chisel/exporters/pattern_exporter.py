"""
Chisels & Bits Pattern (.cbsbp) Exporter

A pattern stores the chiseled content of exactly one block. The file is a
stack of encodings, innermost first:

1. Index array: one sub-palette index per voxel slot, bit-packed
   little-endian with ceil(log2(palette size)) bits per slot.
   Slot i covers local voxel (x, y, z) with i = y*L*L + z*L + x, which maps
   the model's z-up axis onto the game's y-up axis.
2. NBT compound (unnamed root, big-endian):
       chiseledData: {data: ByteArray, palette: [{state}]}
       statistics:   {primaryState: {state},
                      blockStates: [{block_information: {state}, count}]}
3. LZ4 frame of (2), independent blocks, no content size
4. NBT compound {version: 0, data: {data: ByteArray(3), compressed: 1b}}
5. JSON {"chiselData": base64(4), "version": "1.0"}
6. zlib(base64(5)) - this is the file content

The sub-palette lists the materials of the cell in first-encounter slot
order; air is always the last entry and marks empty slots.

Limitations:
- At most 255 materials per block (palette indices are bytes)
"""

from typing import Dict, List, Mapping, Optional, Tuple
import base64
import io
import json
import logging
import struct
import zlib

import lz4.frame
import numpy as np
from nbtlib import Byte, ByteArray, Compound, Int, List as NBTList, String

from ..color import ColorMatcher
from ..config import AIR_BLOCK, PATTERN_VERSION
from ..errors import EncodingOverflow
from ..lattice import SubGrid

logger = logging.getLogger(__name__)


MAX_MATERIALS = 255
CONTAINER_VERSION = 0
ZLIB_LEVEL = 6

# Tag id + empty name of an unnamed root compound
_ROOT_HEADER = struct.pack('>bH', Compound.tag_id, 0)


def block_state(material: str) -> str:
    """Serialized block state for a material id."""
    return json.dumps({"Name": material}, separators=(",", ":"))


def slot_order(data: np.ndarray) -> np.ndarray:
    """Flatten an (L, L, L) local array into pattern slot order."""
    return data.transpose(1, 2, 0).ravel()


def pack_indices(values: np.ndarray, width: int) -> np.ndarray:
    """
    Bit-pack values with a fixed width, least significant bit first.

    Args:
        values: Non-negative integers, each < 2**width
        width: Bits per value

    Returns:
        uint8 array of ceil(len(values) * width / 8) bytes
    """
    shifts = np.arange(width, dtype=np.int64)
    bits = ((values.astype(np.int64)[:, None] >> shifts) & 1).astype(np.uint8)
    return np.packbits(bits.ravel(), bitorder='little')


def resolve_indices(
    palette: np.ndarray,
    indices,
    matcher: ColorMatcher
) -> Dict[int, str]:
    """
    Resolve voxel palette indices to materials.

    Args:
        palette: (256, 4) RGBA array
        indices: Palette indices to resolve
        matcher: Color matcher for the run

    Returns:
        Mapping of palette index to material id
    """
    return {int(i): matcher.match(palette[int(i)]) for i in indices}


def nbt_bytes(compound: Compound) -> bytes:
    """Serialize a compound as an unnamed, uncompressed NBT root."""
    buff = io.BytesIO()
    buff.write(_ROOT_HEADER)
    compound.write(buff)
    return buff.getvalue()


class PatternEncoder:
    """
    Serialize SubGrids into pattern buffers.

    The encoder holds no per-call state, so one instance may encode many
    SubGrids concurrently.

    Usage:
        encoder = PatternEncoder()
        buffer = encoder.encode(sub_grid, vox_data.palette, matcher)
    """

    def __init__(
        self,
        air: str = AIR_BLOCK,
        compression_level: int = ZLIB_LEVEL,
        max_materials: int = MAX_MATERIALS
    ):
        """
        Initialize the encoder.

        Args:
            air: Material written for empty slots
            compression_level: zlib level of the outer layer
            max_materials: Largest sub-palette allowed, air excluded
        """
        self.air = air
        self.compression_level = compression_level
        self.max_materials = min(max_materials, MAX_MATERIALS)

    def build_palette(
        self,
        sub_grid: SubGrid,
        palette: np.ndarray,
        matcher: ColorMatcher,
        resolved: Optional[Mapping[int, str]] = None
    ) -> Tuple[List[str], np.ndarray]:
        """
        Build the sub-palette and per-slot palette positions of a cell.

        Returns:
            Tuple of (sub_palette, values) where:
            - sub_palette: materials in first-encounter order, air last
            - values: Array of shape (L³,) with sub-palette positions
        """
        size = sub_grid.lattice_size
        if sub_grid.data.shape != (size, size, size):
            raise EncodingOverflow(
                f"Cell array has shape {sub_grid.data.shape}, expected {(size,) * 3}",
                sub_grid.cell
            )

        slots = slot_order(sub_grid.data)
        populated = slots[slots != 0]
        if populated.size == 0:
            raise EncodingOverflow("Cell holds no voxels", sub_grid.cell)
        unique, first_seen = np.unique(populated, return_index=True)
        encounter_order = unique[np.argsort(first_seen)]

        sub_palette: List[str] = []
        positions: Dict[str, int] = {}
        lookup = np.zeros(256, dtype=np.int64)
        for index in encounter_order.tolist():
            if resolved is not None and index in resolved:
                material = resolved[index]
            else:
                material = matcher.match(palette[index])
            if material not in positions:
                positions[material] = len(sub_palette)
                sub_palette.append(material)
            lookup[index] = positions[material]

        if len(sub_palette) > self.max_materials:
            raise EncodingOverflow(
                f"{len(sub_palette)} materials exceed the limit of {self.max_materials}",
                sub_grid.cell
            )

        lookup[0] = len(sub_palette)
        sub_palette.append(self.air)
        return sub_palette, lookup[slots]

    def encode(
        self,
        sub_grid: SubGrid,
        palette: np.ndarray,
        matcher: ColorMatcher,
        resolved: Optional[Mapping[int, str]] = None
    ) -> bytes:
        """
        Encode one cell into pattern bytes.

        Args:
            sub_grid: Non-empty lattice cell
            palette: (256, 4) RGBA model palette
            matcher: Color matcher bound to the material palette
            resolved: Optional precomputed palette index -> material mapping

        Returns:
            Pattern file content

        Raises:
            EncodingOverflow: if the cell is empty or does not fit the format
        """
        sub_palette, values = self.build_palette(sub_grid, palette, matcher, resolved)
        width = (len(sub_palette) - 1).bit_length()
        packed = pack_indices(values, width)
        counts = np.bincount(values, minlength=len(sub_palette))

        states = [Compound({"state": String(block_state(m))}) for m in sub_palette]
        chisel_nbt = Compound({
            "chiseledData": Compound({
                "data": ByteArray(packed.view(np.int8)),
                "palette": NBTList[Compound](states),
            }),
            "statistics": Compound({
                "primaryState": states[0],
                "blockStates": NBTList[Compound]([
                    Compound({"block_information": state, "count": Int(int(count))})
                    for state, count in zip(states, counts)
                ]),
            }),
        })

        compressed = lz4.frame.compress(
            nbt_bytes(chisel_nbt), block_linked=False, store_size=False
        )
        container = Compound({
            "version": Int(CONTAINER_VERSION),
            "data": Compound({
                "data": ByteArray(np.frombuffer(compressed, dtype=np.int8)),
                "compressed": Byte(1),
            }),
        })

        pattern = json.dumps(
            {
                "chiselData": base64.b64encode(nbt_bytes(container)).decode("ascii"),
                "version": PATTERN_VERSION,
            },
            separators=(",", ":")
        )
        buffer = zlib.compress(base64.b64encode(pattern.encode("ascii")), self.compression_level)

        logger.debug(
            "Encoded cell %s: %d voxels, %d materials, %d bytes",
            sub_grid.cell, sub_grid.count_voxels(), len(sub_palette) - 1, len(buffer)
        )
        return buffer

