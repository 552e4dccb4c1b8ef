"""
Main PatternConverter Class

This is the primary interface for the conversion pipeline.
It orchestrates:
1. Decoding the .vox container
2. Partitioning each selected model into block-sized cells
3. Matching voxel colors to materials
4. Encoding every non-empty cell as a pattern

The converter works on bytes in memory and returns named buffers; writing
them to disk is left to the caller.

Example Usage:
    converter = PatternConverter()
    patterns = converter.convert(Path("castle.vox").read_bytes())
    for pattern in patterns:
        Path(pattern.name + ".cbsbp").write_bytes(pattern.data)
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List, Mapping, Optional, Sequence, Tuple, Union
import logging

from .color import ColorMatcher
from .config import BLOCK_SIDE, DEFAULT_OUTPUT
from .errors import ModelSelectionError
from .exporters.pattern_exporter import PatternEncoder, resolve_indices
from .grid import VoxelGrid
from .ingestion import VoxData, decode_vox
from .lattice import SubGrid, partition
from .materials import load_material_palette

logger = logging.getLogger(__name__)


ModelSelection = Optional[Union[str, Sequence[int]]]


class ConversionState(Enum):
    """Stage of a PatternConverter run."""
    IDLE = "idle"
    DECODING = "decoding"
    PARTITIONING = "partitioning"
    ENCODING = "encoding"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class NamedPattern:
    """
    One encoded pattern.

    Attributes:
        name: Generated name, stable across runs on the same input
        data: Pattern file content
        model: Position of the source model within the selection
        cell: Lattice cell the pattern was cut from
    """

    name: str
    data: bytes
    model: int
    cell: Tuple[int, int, int]


@dataclass(frozen=True)
class _Job:
    name: str
    model: int
    sub_grid: SubGrid


class PatternConverter:
    """
    High-level interface for .vox to pattern conversion.

    A run either returns every pattern or raises; on failure the converter
    is left in the FAILED state with the error recorded.

    Attributes:
        lattice_size: Voxels per block side
        metric: Color distance used for material matching
        max_workers: Encode on a thread pool when greater than 1
    """

    def __init__(
        self,
        lattice_size: int = BLOCK_SIDE,
        metric: str = "ciede2000",
        max_workers: Optional[int] = None,
        encoder: Optional[PatternEncoder] = None
    ):
        """
        Initialize the PatternConverter.

        Args:
            lattice_size: Cell side length in voxels
            metric: "ciede2000" or "euclidean"
            max_workers: Number of encoding threads (None or 1 = sequential)
            encoder: Pattern encoder to use (default: PatternEncoder())
        """
        self.lattice_size = lattice_size
        self.metric = metric
        self.max_workers = max_workers
        self.encoder = encoder or PatternEncoder()

        self._state = ConversionState.IDLE
        self._error: Optional[Exception] = None
        self._vox_data: Optional[VoxData] = None

    @property
    def state(self) -> ConversionState:
        """Get the stage reached by the last run."""
        return self._state

    @property
    def error(self) -> Optional[Exception]:
        """Get the error that failed the last run, if any."""
        return self._error

    @property
    def vox_data(self) -> Optional[VoxData]:
        """Get the container decoded by the last run."""
        return self._vox_data

    def _set_state(self, state: ConversionState):
        logger.debug("Conversion state %s -> %s", self._state.value, state.value)
        self._state = state

    def convert(
        self,
        raw: bytes,
        material_palette: Optional[Mapping[str, Tuple[int, int, int]]] = None,
        models: ModelSelection = None,
        prefix: str = DEFAULT_OUTPUT
    ) -> List[NamedPattern]:
        """
        Convert .vox bytes into patterns.

        Args:
            raw: .vox file content
            material_palette: Material id -> RGB mapping (default: bundled palette)
            models: None for a single-model file, "all", or 1-based model indices
            prefix: Name prefix of the generated patterns

        Returns:
            Patterns in deterministic order (model, then cell z, y, x)

        Raises:
            ConversionError: the first failure of any stage
        """
        self._error = None
        self._vox_data = None
        try:
            self._set_state(ConversionState.DECODING)
            vox_data = decode_vox(raw)
            self._vox_data = vox_data
            if material_palette is None:
                material_palette = load_material_palette()
            matcher = ColorMatcher(material_palette, self.metric)

            self._set_state(ConversionState.PARTITIONING)
            selected = self.select_models(vox_data, models)
            resolved = resolve_indices(
                vox_data.palette, _used_indices(selected), matcher
            )
            jobs = self._jobs(selected, prefix)

            self._set_state(ConversionState.ENCODING)
            patterns = self._encode_all(jobs, vox_data, matcher, resolved)
        except Exception as e:
            self._error = e
            self._set_state(ConversionState.FAILED)
            raise

        self._set_state(ConversionState.DONE)
        logger.info(
            "Converted %d model(s) into %d pattern(s)", len(selected), len(patterns)
        )
        return patterns

    @staticmethod
    def select_models(vox_data: VoxData, models: ModelSelection = None) -> List[VoxelGrid]:
        """
        Pick the models to convert.

        Raises:
            ModelSelectionError: several models but no selection, or an
                index out of range
        """
        count = vox_data.model_count
        if models is None:
            if count != 1:
                raise ModelSelectionError(
                    f"File contains {count} models, select them explicitly or use 'all'",
                    count
                )
            return list(vox_data.models)

        if isinstance(models, str):
            if models != "all":
                raise ModelSelectionError(f"Unknown model selection {models!r}", count)
            return list(vox_data.models)

        selected = []
        for index in models:
            if not 1 <= index <= count:
                raise ModelSelectionError(
                    f"Model index {index} out of range 1-{count}", count
                )
            selected.append(vox_data.models[index - 1])
        if not selected:
            raise ModelSelectionError("Empty model selection", count)
        return selected

    def _jobs(self, selected: List[VoxelGrid], prefix: str) -> Iterator[_Job]:
        multi = len(selected) > 1
        for position, grid in enumerate(selected):
            for n, sub_grid in enumerate(partition(grid, self.lattice_size)):
                name = f"{prefix}_{position}_{n}" if multi else f"{prefix}_{n}"
                yield _Job(name, position, sub_grid)

    def _encode_all(self, jobs, vox_data, matcher, resolved) -> List[NamedPattern]:
        def encode(job: _Job) -> NamedPattern:
            data = self.encoder.encode(job.sub_grid, vox_data.palette, matcher, resolved)
            return NamedPattern(job.name, data, job.model, job.sub_grid.cell)

        if self.max_workers is None or self.max_workers <= 1:
            return [encode(job) for job in jobs]

        # map() yields in submission order and re-raises the first failure
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            return list(pool.map(encode, jobs))


def _used_indices(grids: Sequence[VoxelGrid]):
    used = set()
    for grid in grids:
        used.update(int(i) for i in grid.used_indices())
    return sorted(used)


def convert(
    raw: bytes,
    material_palette: Optional[Mapping[str, Tuple[int, int, int]]] = None,
    **kwargs
) -> List[Tuple[str, bytes]]:
    """
    Convert .vox bytes into (name, pattern bytes) pairs.

    Keyword arguments are split between PatternConverter (lattice_size,
    metric, max_workers) and PatternConverter.convert (models, prefix).
    """
    options = {k: kwargs.pop(k) for k in ("lattice_size", "metric", "max_workers") if k in kwargs}
    converter = PatternConverter(**options)
    return [(p.name, p.data) for p in converter.convert(raw, material_palette, **kwargs)]
