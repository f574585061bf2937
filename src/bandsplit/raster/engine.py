# src/bandsplit/raster/engine.py

"""
This module runs split-and-process operations over rasters.

It is the core dispatch mechanism of bandsplit: it decides between in-memory
and out-of-core processing, drives the chunked read/split/process/write loop
and aggregates the per-chunk results.
"""

import copy
import logging
import os
from pathlib import Path
from typing import Callable, Union, Optional, Any, Dict, Generator, Tuple, Iterable
from enum import Enum

import rasterio
import rasterio.errors

from bandsplit.exceptions import ChunkWriteError, InvalidDimensionError, ShapeMismatchError
from .layer import LabeledArray
from .io import load, save, to_band_layout
from .proxy import RasterProxy
from .resources import ProcessingMode, determine_strategy
from .partition import Chunk, iter_chunks, iter_block_chunks
from .split import SplitResult, split

log = logging.getLogger(__name__)

__all__ = [
    "AggregationType",
    "DispatchConfig",
    "ChunkWriter",
    "dispatch",
    "check_raster_output",
    "split_to_file"
]

Source = Union[str, Path, LabeledArray, RasterProxy]

def _validate_mode(mode: Union[ProcessingMode, str]) -> str:
    """Mode name as stored on DispatchConfig."""
    if isinstance(mode, ProcessingMode):
        return mode.value
    valid_modes = [m.value for m in ProcessingMode] + ["auto"]
    if mode not in valid_modes:
        raise ValueError(f"Invalid mode '{mode}'. Must be one of: {valid_modes}")
    return mode

class AggregationType(Enum):
    """Strategies for combining results from chunked processing.

    Options:
        STITCH: Write each chunk result into its region of output_path.
        COLLECT: Return a list of results, one per chunk.
        REDUCE: Accumulate results using a reducer function (e.g. sum, max).
        NONE: Discard individual results (useful for side-effect functions).
    """
    STITCH = "stitch"
    COLLECT = "collect"
    REDUCE = "reduce"
    NONE = "none"

class DispatchConfig:
    """Configuration object for the execution engine.

    Args:
        mode: ProcessingMode to enforce ('in_memory', 'tiled', 'blocked', 'auto').
        chunk_size: Extent of each chunk in pixels (TILED mode). Default=512.
        memory_budget: Byte budget for in-memory processing. None probes free RAM.
        output_path: Path to save the output raster (required for chunked STITCH).
        aggregation: AggregationType for combining results. Default=STITCH.
        reducer: Function for REDUCE aggregation.
        dimension: Dimension split into attributes before func runs. Default='band'.
        creation_options: Extra rasterio profile entries for the output file.
    """
    def __init__(
        self,
        mode: Union[ProcessingMode, str] = "auto",
        chunk_size: int = 512,
        memory_budget: Optional[int] = None,
        output_path: Optional[Union[str, Path]] = None,
        aggregation: AggregationType = AggregationType.STITCH,
        reducer: Optional[Callable[[Any, Any], Any]] = None,
        dimension: str = "band",
        creation_options: Optional[Dict[str, Any]] = None
    ):
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")

        self.mode = _validate_mode(mode)
        self.chunk_size = chunk_size
        self.memory_budget = memory_budget
        self.output_path = Path(output_path) if output_path else None
        self.aggregation = aggregation
        self.reducer = reducer
        self.dimension = dimension
        self.creation_options = creation_options or {}

    @classmethod
    def from_env(cls, **overrides) -> 'DispatchConfig':
        """
        Build a config from BANDSPLIT_MODE, BANDSPLIT_CHUNK_SIZE and
        BANDSPLIT_MEMORY_BUDGET. Keyword arguments take precedence.
        """
        env = {}
        if os.getenv("BANDSPLIT_MODE"):
            env["mode"] = os.getenv("BANDSPLIT_MODE")
        if os.getenv("BANDSPLIT_CHUNK_SIZE"):
            env["chunk_size"] = int(os.getenv("BANDSPLIT_CHUNK_SIZE"))
        if os.getenv("BANDSPLIT_MEMORY_BUDGET"):
            env["memory_budget"] = int(os.getenv("BANDSPLIT_MEMORY_BUDGET"))
        env.update(overrides)
        return cls(**env)

    def replace(self, **changes) -> 'DispatchConfig':
        """Copy of this config with some fields changed."""
        new = copy.copy(self)
        for key, value in changes.items():
            if not hasattr(new, key):
                raise AttributeError(f"DispatchConfig has no field '{key}'")
            if key == "mode":
                value = _validate_mode(value)
            setattr(new, key, Path(value) if key == "output_path" and value else value)
        return new

    def __repr__(self) -> str:
        return (f"DispatchConfig(mode={self.mode!r}, chunk_size={self.chunk_size}, "
                f"memory_budget={self.memory_budget}, aggregation={self.aggregation.value}, "
                f"dimension={self.dimension!r})")

class ChunkWriter:
    """
    Writes chunk results into disjoint regions of one output raster.

    The output is created when the first chunk arrives, since the band count,
    dtype and band descriptions are only known once func has run. Regions
    already written stay on disk if a later chunk fails.

    Args:
        output_path: Path of the raster to create.
        template: Profile of the source grid (crs, transform, width, height).
            The output is a GeoTIFF unless creation_options sets another driver.
        creation_options: Extra rasterio profile entries.
    """
    def __init__(
        self,
        output_path: Union[str, Path],
        template: Dict[str, Any],
        creation_options: Optional[Dict[str, Any]] = None
    ):
        self.output_path = Path(output_path)
        self.template = template
        self.creation_options = creation_options or {}
        self._dst = None
        self._labels = None
        self.chunks_written = 0

    def __enter__(self) -> 'ChunkWriter':
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def close(self):
        if self._dst is not None:
            self._dst.close()
            self._dst = None

    def _open(self, array: LabeledArray):
        profile = {
            'driver': 'GTiff',
            'width': self.template['width'],
            'height': self.template['height'],
            'crs': self.template.get('crs'),
            'transform': self.template['transform'],
            'count': array.sizes["band"],
            'dtype': array.dtype,
            'nodata': array.nodata,
            'compress': 'lzw'
        }
        profile.update(self.creation_options)

        log.debug(f"Creating output {self.output_path.name} ({profile['count']} bands, {profile['dtype']})")
        self._dst = rasterio.open(self.output_path, 'w', **profile)
        self._labels = [str(label) for label in array.coords["band"]]
        for idx, label in enumerate(self._labels, start=1):
            self._dst.set_band_description(idx, label)

    def write(self, chunk: Chunk, result: Union[LabeledArray, SplitResult]):
        """
        Write one chunk result to its region.

        Raises:
            ShapeMismatchError: If the result does not cover exactly the chunk.
            ChunkWriteError: If the region cannot be written.
        """
        array = to_band_layout(result)

        expected = (chunk.height, chunk.width)
        if array.shape[1:] != expected:
            raise ShapeMismatchError(expected, array.shape[1:], context=f"result of {chunk}")

        try:
            if self._dst is None:
                self._open(array)
            elif array.sizes["band"] != len(self._labels):
                raise ShapeMismatchError(
                    (len(self._labels),) + expected, array.shape, context=f"result of {chunk}"
                )
            self._dst.write(array.data.astype(self._dst.dtypes[0], copy=False), window=chunk.window)
        except (rasterio.errors.RasterioError, OSError) as e:
            raise ChunkWriteError(chunk, str(e)) from e

        self.chunks_written += 1

def _resolve_mode(source: Source, config: DispatchConfig) -> ProcessingMode:
    """Pick the processing mode for a source."""
    if isinstance(source, LabeledArray):
        if config.mode in ("auto", ProcessingMode.IN_MEMORY.value):
            log.info("Engine dispatching in IN_MEMORY mode (Object Input)")
            return ProcessingMode.IN_MEMORY
        log.info(f"Engine dispatching in-memory input in {ProcessingMode.TILED.value} mode")
        return ProcessingMode.TILED

    path = source.path if isinstance(source, RasterProxy) else Path(source)
    report = determine_strategy(path, user_mode=config.mode, memory_budget=config.memory_budget)
    log.info(f"Engine dispatching in {report.mode.value} mode")
    log.debug(f"Strategy Report: {report.reason}")
    return report.mode

def _iter_source_chunks(
    source: Union[LabeledArray, RasterProxy],
    mode: ProcessingMode,
    config: DispatchConfig
) -> Generator[Tuple[Chunk, LabeledArray], None, None]:
    """
    Yield (Chunk, LabeledArray) pairs for every region of the source grid.

    For a proxy each chunk is read from disk just before it is yielded and
    released by the caller once processed.
    """
    if isinstance(source, LabeledArray):
        for chunk in iter_chunks(source.height, source.width, config.chunk_size):
            rows, cols = chunk.slices
            yield chunk, source.isel(y=rows, x=cols)
        return

    if mode == ProcessingMode.BLOCKED:
        chunks = iter_block_chunks(source.path)
    else:
        chunks = iter_chunks(source.height, source.width, config.chunk_size)

    for chunk in chunks:
        yield chunk, source.read(chunk)

def _aggregate_stitch(
    results: Iterable[Tuple[Chunk, Any]],
    template: Dict[str, Any],
    config: DispatchConfig
) -> Path:
    """Handle STITCH aggregation using ChunkWriter."""
    with ChunkWriter(config.output_path, template, config.creation_options) as writer:
        for chunk, result in results:
            writer.write(chunk, result)

    log.info(f"Wrote {writer.chunks_written} chunks → {config.output_path}")
    return config.output_path

def _aggregate(results: Iterable[Any], config: DispatchConfig) -> Any:
    """Handle COLLECT, REDUCE and NONE aggregation."""
    if config.aggregation == AggregationType.COLLECT:
        return list(results)

    if config.aggregation == AggregationType.REDUCE:
        acc = None
        for res in results:
            acc = res if acc is None else config.reducer(acc, res)
        return acc

    for _ in results:
        pass
    return None

def dispatch(
    func: Callable[..., Any],
    source: Source,
    static_kwargs: Optional[Dict[str, Any]] = None,
    config: Optional[DispatchConfig] = None
) -> Any:
    """
    Split a raster source and run func on the result, in memory or chunk by chunk.

    func receives the SplitResult of config.dimension as first argument
    (one chunk at a time in out-of-core mode) plus static_kwargs.

    Args:
        func: The function to execute. Must accept a SplitResult.
        source: File path, RasterProxy or in-memory LabeledArray.
        static_kwargs: Keyword arguments passed through to func.
        config: Execution configuration (Mode, Chunking, Aggregation).

    Returns:
        The result of the processing: output Path for STITCH with an
        output_path, otherwise the result, list or reduced value.

    Raises:
        InvalidDimensionError: If config.dimension is not a dimension of the source.
        ChunkReadError / ChunkWriteError: On I/O failure, with the failing region.
        ShapeMismatchError: If func returns a result not matching its chunk.
    """
    static_kwargs = static_kwargs or {}
    config = config or DispatchConfig()

    if config.aggregation == AggregationType.REDUCE and not config.reducer:
        raise ValueError("REDUCE requires 'reducer' function.")

    if isinstance(source, (str, Path)):
        source = RasterProxy(source)

    if config.dimension not in source.dims:
        raise InvalidDimensionError(config.dimension, source.dims)

    name = getattr(func, "__name__", type(func).__name__)
    mode = _resolve_mode(source, config)

    if mode == ProcessingMode.IN_MEMORY:
        array = source if isinstance(source, LabeledArray) else load(source.path)
        result = func(split(array, config.dimension), **static_kwargs)

        if config.aggregation == AggregationType.STITCH:
            if config.output_path is None:
                return result
            return save(result, config.output_path, **config.creation_options)
        if config.aggregation == AggregationType.COLLECT:
            return [result]
        if config.aggregation == AggregationType.REDUCE:
            return result
        return None

    for grid_dim in ("y", "x"):
        if grid_dim not in source.dims:
            raise InvalidDimensionError(grid_dim, source.dims)

    if config.dimension in ("y", "x"):
        raise ValueError(
            f"Chunked processing partitions the 'y'/'x' grid and cannot split '{config.dimension}'. "
            "Split it in memory with split(), or use mode='in_memory' with COLLECT, REDUCE "
            "or a STITCH config without output_path."
        )

    if config.aggregation == AggregationType.STITCH and not config.output_path:
        raise ValueError("AggregationType.STITCH requires 'output_path' in config.")

    log.info(f"Running {name} chunk-wise over {source!r}")

    def execution_stream():
        for chunk, chunk_array in _iter_source_chunks(source, mode, config):
            log.debug(f"Processing {chunk}")
            yield chunk, func(split(chunk_array, config.dimension), **static_kwargs)

    if config.aggregation == AggregationType.STITCH:
        return _aggregate_stitch(execution_stream(), source.profile, config)

    return _aggregate((res for _, res in execution_stream()), config)

def _identity(result: SplitResult) -> SplitResult:
    return result

def check_raster_output(source: Source, dimension: str) -> Union[LabeledArray, RasterProxy]:
    """
    Check that splitting dimension leaves a ('y', 'x') grid that can be
    written as raster bands.

    Returns:
        The source, opened as a RasterProxy if a path was given.

    Raises:
        InvalidDimensionError: If dimension is not a dimension of the source.
        ValueError: If the remaining dimensions are not exactly 'y' and 'x'.
    """
    if isinstance(source, (str, Path)):
        source = RasterProxy(source)

    if dimension not in source.dims:
        raise InvalidDimensionError(dimension, source.dims)

    remaining = tuple(d for d in source.dims if d != dimension)
    if sorted(remaining) != ["x", "y"]:
        raise ValueError(
            f"Attributes are written as bands of a ('y', 'x') raster, but splitting "
            f"'{dimension}' leaves dimensions {remaining}. Use split() to keep them in memory."
        )
    return source

def split_to_file(
    source: Source,
    output_path: Union[str, Path],
    dimension: str = "band",
    config: Optional[DispatchConfig] = None
) -> Path:
    """
    Split a raster and write every attribute as one band of output_path.

    The file is processed chunk by chunk when it exceeds the memory budget,
    without ever being fully materialized. Band descriptions of the output
    are the attribute names.

    Args:
        source: File path, RasterProxy or in-memory LabeledArray.
        output_path: Raster file to create.
        dimension: Dimension to split into attributes.
        config: Mode, chunk size and memory budget. Aggregation is forced to STITCH.

    Returns:
        Path: output_path

    Raises:
        InvalidDimensionError: If dimension is not a dimension of the source.
        ValueError: If the attributes left by the split are not ('y', 'x') grids.
    """
    source = check_raster_output(source, dimension)
    config = (config or DispatchConfig()).replace(
        output_path=output_path,
        aggregation=AggregationType.STITCH,
        dimension=dimension
    )
    return dispatch(_identity, source, config=config)
