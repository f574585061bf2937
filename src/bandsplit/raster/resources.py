# src/bandsplit/raster/resources.py

"""
This module decides whether a raster can be split in memory or must be
streamed chunk by chunk.

It checks two aspects of the file before processing:
- Memory footprint against a configured budget or the free system RAM
- Internal block/strip layout, which selects the chunking scheme
"""

import logging
from pathlib import Path
from typing import Union, Optional, Tuple
from enum import Enum
from dataclasses import dataclass

import psutil
import numpy as np
import rasterio

from bandsplit.exceptions import RasterIOError
from .utils import resolve_envi_path

log = logging.getLogger(__name__)

__all__ = [
    "ProcessingMode",
    "BlockStructure",
    "MemoryEstimate",
    "StrategyReport",
    "determine_strategy"
]

DEFAULT_SAFETY_FACTOR = 3.0
MIN_FREE_GB = 2.0

class ProcessingMode(Enum):
    """
    How a raster is processed.

    Modes:
        IN_MEMORY: Materialize the entire raster, split it once.
        BLOCKED: Stream the file's native internal tiles. Best for tiled files.
        TILED: Stream square chunk_size windows. Safe fallback for striped files.
    """
    IN_MEMORY = "in_memory"
    BLOCKED = "blocked"
    TILED = "tiled"

@dataclass(frozen=True)
class BlockStructure:
    """
    Internal storage layout of a raster.

    Args:
        is_tiled: True if the raster has native tiles (not full-width strips)
        block_shape: Tuple of (block_height, block_width) in pixels
    """
    is_tiled: bool
    block_shape: Tuple[int, int]

    @property
    def is_striped(self) -> bool:
        return not self.is_tiled

@dataclass(frozen=True)
class MemoryEstimate:
    """
    Memory needed to split a raster in RAM.

    Args:
        total_required_bytes: Bytes required to hold the raster (with overhead)
        available_bytes: Configured budget, or free system memory minus reserve
        is_safe: True if the requirement fits into available_bytes
        reason: Human readable summary, e.g. "Req: 1.20GB, Avail: 8.00GB (system)"
    """
    total_required_bytes: int
    available_bytes: int
    is_safe: bool
    reason: str

@dataclass(frozen=True)
class StrategyReport:
    """
    The decision (mode) and the context it was made in.
    """
    mode: ProcessingMode
    reason: str
    memory_stats: MemoryEstimate
    structure_stats: BlockStructure

def _analyze_structure(src: rasterio.DatasetReader) -> BlockStructure:
    """Determine if the raster is physically tiled or striped."""
    if not src.block_shapes:
        return BlockStructure(False, (0, 0))

    block_h, block_w = src.block_shapes[0]

    # Full-width blocks or single-row blocks are strips
    is_striped = (block_w == src.width) or (block_h == 1)

    return BlockStructure(is_tiled=not is_striped, block_shape=(block_h, block_w))

def _estimate_memory(
    src: rasterio.DatasetReader,
    memory_budget: Optional[int] = None,
    safety_factor: float = DEFAULT_SAFETY_FACTOR,
    min_free_gb: float = MIN_FREE_GB
) -> MemoryEstimate:
    """
    Estimate whether all bands of the raster fit in memory.

    Splitting produces one attribute per band and writing merges them again,
    so safety_factor accounts for transient copies on top of the raw size.

    Args:
        src: Opened rasterio DatasetReader object.
        memory_budget: Optional hard limit in bytes. Replaces the psutil probe.
        safety_factor: Multiplier to account for overhead (default 3.0)
        min_free_gb: Free memory reserve when probing the system (default 2.0)
    """
    bytes_per_pixel = sum(np.dtype(dtype).itemsize for dtype in src.dtypes)
    raw_bytes = src.width * src.height * bytes_per_pixel
    total_required = int(raw_bytes * safety_factor)

    if memory_budget is not None:
        available = int(memory_budget)
        source = "budget"
    else:
        available = psutil.virtual_memory().available - int(min_free_gb * (1024**3))
        source = "system"

    is_safe = total_required <= available
    reason = f"Req: {total_required/1e9:.2f}GB, Avail: {max(available, 0)/1e9:.2f}GB ({source})"

    return MemoryEstimate(total_required, available, is_safe, reason)

def determine_strategy(
    raster_path: Union[str, Path],
    user_mode: str = "auto",
    memory_budget: Optional[int] = None
) -> StrategyReport:
    """
    Determines the processing strategy for a raster from its memory footprint
    and internal structure.

    Args:
        raster_path: Path to the raster file to analyze.
        user_mode: 'auto', 'in_memory', 'blocked' or 'tiled'.
            auto: in_memory if the raster fits, else blocked/tiled by layout
            blocked: downgraded to tiled when the file is striped
        memory_budget: Optional byte budget for in-memory processing.

    Returns:
        StrategyReport: The selected mode and the context for that decision.

    Raises:
        ValueError: If user_mode is not a known mode.
        RasterIOError: If the raster cannot be opened.
    """
    valid_modes = [m.value for m in ProcessingMode] + ["auto"]
    if user_mode not in valid_modes:
        raise ValueError(f"Invalid mode '{user_mode}'. Must be one of: {valid_modes}")

    path = resolve_envi_path(raster_path)

    try:
        with rasterio.open(path) as src:
            estimate = _estimate_memory(src, memory_budget=memory_budget)
            struct = _analyze_structure(src)
    except rasterio.RasterioIOError as e:
        log.error(f"Failed to analyze resources for {path}: {e}")
        raise RasterIOError(f"Failed to analyze {path}: {e}") from e

    if user_mode != "auto":
        mode = ProcessingMode(user_mode)
        reason = f"User forced mode: {user_mode}"

        if mode == ProcessingMode.BLOCKED and not struct.is_tiled:
            mode = ProcessingMode.TILED
            reason = "Override: Forced TILED because file is STRIPED (User requested BLOCKED)"

        return StrategyReport(mode, reason, estimate, struct)

    if estimate.is_safe:
        return StrategyReport(ProcessingMode.IN_MEMORY, f"Fits in memory. {estimate.reason}", estimate, struct)

    if struct.is_tiled:
        return StrategyReport(
            ProcessingMode.BLOCKED,
            f"Exceeds memory, native tiles {struct.block_shape}. {estimate.reason}",
            estimate,
            struct
        )

    return StrategyReport(
        ProcessingMode.TILED,
        f"Exceeds memory, striped layout. {estimate.reason}",
        estimate,
        struct
    )
