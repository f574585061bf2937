# src/bandsplit/raster/proxy.py

"""
This module provides a lazy, on-disk backed labeled array.

A RasterProxy knows the dimensions, coordinates and georeferencing of a
raster file without reading any pixels. Pixels are only realized chunk by
chunk through read(), which is what the out-of-core loop consumes.
"""

import logging
from pathlib import Path
from typing import Union, Optional, Dict, Tuple

import numpy as np
import rasterio

from bandsplit.exceptions import ChunkReadError, RasterIOError
from .layer import LabeledArray
from .partition import Chunk
from .utils import resolve_envi_path, extract_band_labels, pixel_centers

log = logging.getLogger(__name__)

__all__ = ["RasterProxy"]

class RasterProxy:
    """
    Lazy reference to a (band, y, x) raster on disk.

    Attributes:
        path (Path): Resolved path of the raster file.
        dims (Tuple[str, str, str]): Always ('band', 'y', 'x').
        coords (Dict[str, np.ndarray]): Band labels and pixel-centre coordinates.
        profile (Dict[str, Any]): Rasterio profile of the source file.
    """
    dims = ("band", "y", "x")

    def __init__(self, path: Union[str, Path]):
        self.path = resolve_envi_path(path)

        if not self.path.exists():
            raise FileNotFoundError(f"Raster file not found: {self.path}")

        try:
            with rasterio.open(self.path) as src:
                self.profile = dict(src.profile)
                self.transform = src.transform
                self.crs = src.crs
                self.nodata = src.nodata
                self.dtype = np.dtype(src.dtypes[0])
                self._shape = (src.count, src.height, src.width)
                band_coords = extract_band_labels(src, list(src.indexes))
        except rasterio.RasterioIOError as e:
            raise RasterIOError(f"Failed to open raster {self.path}: {e}") from e

        y, x = pixel_centers(self.transform, self.height, self.width)
        self.coords = {"band": band_coords, "y": y, "x": x}

    @property
    def shape(self) -> Tuple[int, int, int]:
        return self._shape

    @property
    def sizes(self) -> Dict[str, int]:
        return dict(zip(self.dims, self._shape))

    @property
    def count(self) -> int:
        return self._shape[0]

    @property
    def height(self) -> int:
        return self._shape[1]

    @property
    def width(self) -> int:
        return self._shape[2]

    @property
    def nbytes(self) -> int:
        """Size of the fully materialized array. Nothing is allocated."""
        return int(np.prod(self._shape)) * self.dtype.itemsize

    def read(self, chunk: Optional[Chunk] = None) -> LabeledArray:
        """
        Realize one chunk for all bands.

        Args:
            chunk: Region to read. None reads the full grid.

        Returns:
            LabeledArray: (band, y, x) array of the chunk, with the transform
                          shifted to the chunk origin.

        Raises:
            ChunkReadError: If the region cannot be read.
        """
        chunk = chunk or Chunk(0, 0, self.height, self.width)
        log.debug(f"Reading {chunk} from {self.path.name}")

        try:
            with rasterio.open(self.path) as src:
                data = src.read(window=chunk.window)
                transform = src.window_transform(chunk.window)
        except (rasterio.RasterioIOError, OSError) as e:
            raise ChunkReadError(chunk, str(e)) from e

        if data.shape[1:] != (chunk.height, chunk.width):
            raise ChunkReadError(chunk, f"read returned shape {data.shape}")

        rows, cols = chunk.slices
        return LabeledArray(
            data=data,
            dims=self.dims,
            coords={
                "band": self.coords["band"],
                "y": self.coords["y"][rows],
                "x": self.coords["x"][cols]
            },
            transform=transform,
            crs=self.crs,
            nodata=self.nodata
        )

    def load(self) -> LabeledArray:
        """Materialize the whole raster."""
        return self.read(None)

    def __repr__(self) -> str:
        dims = ", ".join(f"{d}: {n}" for d, n in self.sizes.items())
        return f"<RasterProxy ({dims}) dtype={self.dtype} path={self.path.name}>"
