# src/bandsplit/raster/partition.py

"""
This module partitions a raster grid into chunks for out-of-core processing.

Every iterator yields Chunk regions in row-major (storage-contiguous) order.
The regions are disjoint and cover the full 'y'/'x' grid, so results written
per chunk never overlap and the order of processing does not change the output.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Generator, Iterable, Tuple, Union

import numpy as np
import rasterio
from rasterio.windows import Window

from .utils import resolve_envi_path

log = logging.getLogger(__name__)

__all__ = [
    "Chunk",
    "iter_chunks",
    "iter_strips",
    "iter_block_chunks",
    "check_partition"
]

@dataclass(frozen=True)
class Chunk:
    """
    A contiguous region of the 'y'/'x' grid.

    Args:
        row_off: First row of the region.
        col_off: First column of the region.
        height: Number of rows.
        width: Number of columns.
    """
    row_off: int
    col_off: int
    height: int
    width: int

    @property
    def window(self) -> Window:
        """The region as a rasterio Window."""
        return Window(self.col_off, self.row_off, self.width, self.height)

    @property
    def slices(self) -> Tuple[slice, slice]:
        """(row_slice, col_slice) for NumPy indexing."""
        return (
            slice(self.row_off, self.row_off + self.height),
            slice(self.col_off, self.col_off + self.width)
        )

    @property
    def size(self) -> int:
        return self.height * self.width

    @classmethod
    def from_window(cls, window: Window) -> 'Chunk':
        return cls(int(window.row_off), int(window.col_off), int(window.height), int(window.width))

    def __str__(self) -> str:
        return (f"rows {self.row_off}:{self.row_off + self.height}, "
                f"cols {self.col_off}:{self.col_off + self.width}")

def iter_chunks(
    height: int,
    width: int,
    chunk_size: int = 512
) -> Generator[Chunk, None, None]:
    """
    Square chunks of chunk_size pixels, clipped at the right and bottom edges.

    Args:
        height: Grid height in pixels.
        width: Grid width in pixels.
        chunk_size: Extent of each chunk along both axes.

    Yields:
        Chunk regions, row-major.
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")

    for row_off in range(0, height, chunk_size):
        for col_off in range(0, width, chunk_size):
            yield Chunk(
                row_off=row_off,
                col_off=col_off,
                height=min(chunk_size, height - row_off),
                width=min(chunk_size, width - col_off)
            )

def iter_strips(
    height: int,
    width: int,
    rows: int = 256
) -> Generator[Chunk, None, None]:
    """
    Full-width strips of a fixed row count. Best match for striped files
    where each strip is one contiguous read.
    """
    if rows <= 0:
        raise ValueError(f"rows must be positive, got {rows}")

    for row_off in range(0, height, rows):
        yield Chunk(row_off, 0, min(rows, height - row_off), width)

def iter_block_chunks(path: Union[str, Path]) -> Generator[Chunk, None, None]:
    """
    Chunks matching the native internal blocks of a raster file.

    Using internal block windows gives optimal I/O performance for tiled files.
    """
    path = resolve_envi_path(path)
    with rasterio.open(path) as src:
        log.debug(f"Iterating native blocks of {path.name} {src.block_shapes[0]}")
        windows = [window for _, window in src.block_windows(1)]

    # block_windows already walks blocks row by row, but keep the order explicit
    windows.sort(key=lambda w: (w.row_off, w.col_off))
    for window in windows:
        yield Chunk.from_window(window)

def check_partition(chunks: Iterable[Chunk], height: int, width: int) -> bool:
    """
    Verify that chunks are disjoint and cover the grid exactly.

    Returns:
        True if the chunks partition the grid, False otherwise.
    """
    coverage = np.zeros((height, width), dtype=np.uint16)
    for chunk in chunks:
        if (chunk.row_off < 0 or chunk.col_off < 0 or
                chunk.row_off + chunk.height > height or
                chunk.col_off + chunk.width > width):
            return False
        coverage[chunk.slices] += 1
    return bool(np.all(coverage == 1))
