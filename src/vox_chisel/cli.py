"""
Command-Line Interface for vox-chisel

Usage:
    vox2chisel model.vox
    vox2chisel model.vox -o castle -p blocks.json
    vox2chisel scene.vox --all-models -o scene

"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional
import time

from . import __version__
from .color import METRICS
from .config import BLOCK_SIDE, DEFAULT_OUTPUT, PATTERN_EXTENSION
from .converter import NamedPattern, PatternConverter
from .errors import ConversionError, ModelSelectionError
from .grid import VoxelGrid
from .lattice import cell_count
from .logging_config import setup_logging
from .materials import load_material_palette

logger = logging.getLogger(__name__)


def parse_model_list(value: str) -> List[int]:
    """Parse "1,3,4" into [1, 3, 4]."""
    try:
        indices = [int(part) for part in value.split(",") if part.strip()]
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid model list {value!r}")
    if not indices:
        raise argparse.ArgumentTypeError("empty model list")
    return indices


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="vox2chisel",
        description="Convert MagicaVoxel models into Chisels & Bits patterns",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  vox2chisel house.vox
      Write house patterns as pattern.cbsbp (or pattern_0.cbsbp, ...)

  vox2chisel house.vox -o house -p my_blocks.json
      Use a custom block palette

  vox2chisel scene.vox -m 1,3 -o scene
      Convert only models 1 and 3 of a multi-model file
      (scene_0.cbsbp, scene_1.cbsbp or scene_0_0.cbsbp, ...)

Output names:
  A model that fits in a single block is written as OUTPUT.cbsbp, larger
  models number their non-empty blocks as OUTPUT_0.cbsbp, OUTPUT_1.cbsbp.
  With several models, OUTPUT becomes OUTPUT_<m> (0-based, selection order).

Palette files map block ids to colors:
  {"minecraft:stone": "#7e7e7e", "minecraft:sand": [219, 207, 163]}
        """
    )

    parser.add_argument(
        "model",
        help="Path to MagicaVoxel file (typically .vox)"
    )

    parser.add_argument(
        "-o", "--output",
        default=DEFAULT_OUTPUT,
        help=f"File name prefix for the resulting pattern(s) (default: {DEFAULT_OUTPUT})"
    )

    parser.add_argument(
        "-p", "--palette",
        help="Block palette JSON file (default: bundled palette)"
    )

    group = parser.add_mutually_exclusive_group()
    group.add_argument(
        "-a", "--all-models",
        action="store_true",
        help="Create pattern(s) for each model in the file"
    )
    group.add_argument(
        "-m", "--models",
        type=parse_model_list,
        help="Create pattern(s) for specific models, e.g. 1,3 (1-based)"
    )

    parser.add_argument(
        "--metric",
        choices=METRICS,
        default="ciede2000",
        help="Color distance for block matching (default: ciede2000)"
    )

    parser.add_argument(
        "--lattice-size",
        type=int,
        default=BLOCK_SIDE,
        help=f"Voxels per block side (default: {BLOCK_SIDE})"
    )

    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Number of encoding threads (default: 1)"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    return parser


def output_paths(
    prefix: str,
    patterns: List[NamedPattern],
    models: List[VoxelGrid],
    lattice_size: int = BLOCK_SIDE
) -> List[Path]:
    """
    File paths for the generated patterns.

    Each converted model writes under its own prefix: PREFIX for a single
    model, PREFIX_<m> when several are converted. A model that spans exactly
    one lattice cell is written as <prefix>.cbsbp; larger models number
    their non-empty cells, <prefix>_0.cbsbp, <prefix>_1.cbsbp, ...

    Args:
        prefix: Output prefix given to the converter
        patterns: Converter output
        models: The converted models, in selection order
        lattice_size: Cell side used for the conversion
    """
    multi = len(models) > 1
    paths = []
    for pattern in patterns:
        model_prefix = f"{prefix}_{pattern.model}" if multi else prefix
        if cell_count(models[pattern.model], lattice_size) == 1:
            paths.append(Path(model_prefix + PATTERN_EXTENSION))
        else:
            paths.append(Path(pattern.name + PATTERN_EXTENSION))
    return paths


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logging(logging.DEBUG if args.verbose else logging.INFO)

    model_path = Path(args.model)
    if not model_path.is_file():
        print(f"Error: Input file not found: {model_path}", file=sys.stderr)
        return 1

    if args.all_models:
        selection = "all"
    else:
        selection = args.models

    start_time = time.time()

    try:
        material_palette = load_material_palette(args.palette)
        converter = PatternConverter(
            lattice_size=args.lattice_size,
            metric=args.metric,
            max_workers=args.workers
        )
        patterns = converter.convert(
            model_path.read_bytes(), material_palette, selection, prefix=args.output
        )

        selected = converter.select_models(converter.vox_data, selection)
        paths = output_paths(args.output, patterns, selected, args.lattice_size)
        for pattern, path in zip(patterns, paths):
            path.write_bytes(pattern.data)
            logger.debug("Wrote %s (cell %s)", path, pattern.cell)

    except ModelSelectionError as e:
        print(f"Error: {e}", file=sys.stderr)
        if e.model_count > 1:
            print(
                f"Multiple models inside file ({e.model_count}), pass -a to export "
                "all models or -m to export specific models",
                file=sys.stderr
            )
        return 1

    except (ConversionError, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1

    elapsed = time.time() - start_time
    logger.info("Wrote %d pattern(s) in %.2fs", len(patterns), elapsed)
    return 0


if __name__ == "__main__":
    sys.exit(main())
