"""
Material Palette Documents

A material palette maps block ids to the color that represents them:

    {
        "minecraft:white_wool": "#e9ecec",
        "minecraft:stone": [125, 125, 125]
    }

Declaration order matters: when two blocks are equally close to a voxel
color, the one listed first wins. Documents written the other way round
({"#e9ecec": "minecraft:white_wool"}) are accepted and inverted.
"""

from pathlib import Path
from typing import Dict, Optional, Tuple, Union
import json
import logging
import re

from .config import DEFAULT_PALETTE_PATH
from .errors import EmptyPalette, PaletteConfigError

logger = logging.getLogger(__name__)


MaterialPalette = Dict[str, Tuple[int, int, int]]

_HEX_COLOR = re.compile(r"^#?([0-9a-fA-F]{6})$")


def parse_color(value) -> Tuple[int, int, int]:
    """
    Parse "#rrggbb" or [r, g, b] into an RGB tuple.

    Raises:
        ValueError: for anything else
    """
    if isinstance(value, str):
        match = _HEX_COLOR.match(value.strip())
        if not match:
            raise ValueError(f"Invalid color code {value!r}")
        code = match.group(1)
        return (int(code[0:2], 16), int(code[2:4], 16), int(code[4:6], 16))

    if isinstance(value, (list, tuple)) and len(value) == 3:
        if all(isinstance(c, int) and 0 <= c <= 255 for c in value):
            return tuple(value)
    raise ValueError(f"Invalid color {value!r}")


def _is_color_keyed(document: dict) -> bool:
    return all(isinstance(k, str) and _HEX_COLOR.match(k.strip()) for k in document)


def material_palette_from_dict(document: dict, path: Optional[str] = None) -> MaterialPalette:
    """
    Build a MaterialPalette from a decoded JSON object.

    Raises:
        EmptyPalette: if the document has no entries
        PaletteConfigError: if an entry is invalid
    """
    if not isinstance(document, dict):
        raise PaletteConfigError("Palette document must be a JSON object", path)
    if not document:
        raise EmptyPalette("Palette has no entries" + (f" ({path})" if path else ""))

    if _is_color_keyed(document):
        logger.debug("Palette is keyed by color, inverting")
        pairs = [(material, color) for color, material in document.items()]
    else:
        pairs = list(document.items())

    palette: MaterialPalette = {}
    for material, color in pairs:
        if not isinstance(material, str) or not material:
            raise PaletteConfigError(f"Invalid material id {material!r}", path)
        try:
            palette[material] = parse_color(color)
        except ValueError as e:
            raise PaletteConfigError(f"{material}: {e}", path) from e
    return palette


def load_material_palette(path: Optional[Union[str, Path]] = None) -> MaterialPalette:
    """
    Read a material palette document.

    Args:
        path: JSON file; the bundled palette is used when omitted

    Returns:
        Ordered mapping of material id to RGB
    """
    path = Path(path) if path is not None else DEFAULT_PALETTE_PATH
    try:
        document = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise PaletteConfigError(f"Cannot read palette: {e.strerror}", str(path)) from e
    except json.JSONDecodeError as e:
        raise PaletteConfigError(f"Invalid JSON in palette: {e}", str(path)) from e

    palette = material_palette_from_dict(document, str(path))
    logger.debug("Loaded %d materials from %s", len(palette), path)
    return palette
