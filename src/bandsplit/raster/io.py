# src/bandsplit/raster/io.py

"""
This module handles all disk-based operations for raster data.
"""

import logging
from pathlib import Path
from typing import Union, Optional, List, Dict, Any

import rasterio
from rasterio.windows import Window

from bandsplit.exceptions import RasterIOError
from .utils import resolve_envi_path, extract_band_indices, extract_band_labels, pixel_centers
from .layer import LabeledArray
from .proxy import RasterProxy
from .split import SplitResult, merge

log = logging.getLogger(__name__)

__all__ = [
    "load",
    "open_proxy",
    "save",
    "write_window",
    "read_info",
    "to_band_layout"
]

def load(
    path: Union[str, Path],
    bands: Optional[Union[int, List[int]]] = None,
    window: Optional[Window] = None,
    driver: Optional[str] = None
) -> LabeledArray:
    """
    Load a raster from disk into memory.

    The result has dimensions ('band', 'y', 'x'). Band coordinates are the
    band descriptions when every band has one, else the 1-based indices.

    Args:
        path: Path to raster file. All supported GDAL formats are accepted.
        bands: Specific band(s) to load (None=all, int=single, list=subset).
        window: Optional rasterio Window object to load only a spatial subset.
        driver: Optional GDAL driver name.

    Returns:
        LabeledArray: In-memory array
    """
    path = resolve_envi_path(path)

    if not path.exists():
        raise FileNotFoundError(f"Raster file not found: {path}")

    log.debug(f"Loading raster: {path.name}")

    try:
        with rasterio.open(path, driver=driver) as src:
            indices = extract_band_indices(src, bands)
            data = src.read(indices, window=window)
            band_coords = extract_band_labels(src, indices)

            if window is not None:
                transform = src.window_transform(window)
            else:
                transform = src.transform

            y, x = pixel_centers(transform, data.shape[1], data.shape[2])

            return LabeledArray(
                data=data,
                dims=("band", "y", "x"),
                coords={"band": band_coords, "y": y, "x": x},
                transform=transform,
                crs=src.crs,
                nodata=src.nodata
            )

    except rasterio.RasterioIOError as e:
        raise RasterIOError(f"Failed to read raster from {path}: {e}") from e

def open_proxy(path: Union[str, Path]) -> RasterProxy:
    """Open a raster lazily. No pixels are read until a chunk is requested."""
    return RasterProxy(path)

def to_band_layout(
    source: Union[LabeledArray, SplitResult],
    dimension: str = "band"
) -> LabeledArray:
    """
    Arrange a LabeledArray or SplitResult as a (band, y, x) array for writing.

    A SplitResult is merged on a new leading 'band' dimension first. For a
    LabeledArray, dimension names the axis written as raster bands; it is
    renamed to 'band' if needed. 2-D (y, x) arrays get a single band.
    """
    if isinstance(source, SplitResult):
        return merge(source, "band", coords=source.names, axis=0).transpose("band", "y", "x")

    array = source
    if dimension != "band" and dimension in array.dims:
        if "band" in array.dims:
            raise RasterIOError(f"Cannot write '{dimension}' as bands, 'band' already exists")
        array = LabeledArray(
            data=array.data,
            dims=["band" if d == dimension else d for d in array.dims],
            coords={("band" if d == dimension else d): c for d, c in array.coords.items()},
            transform=array.transform,
            crs=array.crs,
            nodata=array.nodata
        )

    if array.ndim == 2:
        array = LabeledArray(
            data=array.data[None],
            dims=("band",) + array.dims,
            coords=array.coords,
            transform=array.transform,
            crs=array.crs,
            nodata=array.nodata
        )

    return array.transpose("band", "y", "x")

def save(
    source: Union[LabeledArray, SplitResult],
    path: Union[str, Path],
    dimension: str = "band",
    **profile_kwargs
) -> Path:
    """
    Write a LabeledArray or SplitResult to disk.

    Band descriptions are set from the band coordinates (attribute names
    for a SplitResult), so loading the file restores the labels.

    Args:
        source: LabeledArray or SplitResult to save.
        path: Output file path. All supported GDAL formats are accepted.
        dimension: Dimension of a LabeledArray to write as bands.
        **profile_kwargs: Override default rasterio profile settings.

    Returns:
        Path: The written file.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    array = to_band_layout(source, dimension)
    profile = array.profile.copy()
    profile.update(profile_kwargs)

    log.info(f"Saving raster {array.shape} → {path}")

    try:
        with rasterio.open(path, 'w', **profile) as dst:
            dst.write(array.data)

            for idx, label in enumerate(array.coords["band"], start=1):
                dst.set_band_description(idx, str(label))

    except rasterio.RasterioIOError as e:
        raise RasterIOError(f"Failed to save raster to {path}: {e}") from e

    return path

def write_window(
    array: LabeledArray,
    path: Union[str, Path],
    window: Window
):
    """
    Write (band, y, x) data to a specific window in an existing file.

    Target file must exist and have the same band count.

    Args:
        array: LabeledArray containing data to write
        path: Path to EXISTING raster file.
        window: Window defining where to write.
    """
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(
            f"Cannot write to window: target file does not exist: {path}\n"
            f"Tip: Create the file first using save(), then write chunks to it."
        )

    array = to_band_layout(array)
    log.debug(f"Writing window {window} → {path.name}")

    try:
        with rasterio.open(path, 'r+') as dst:
            dst.write(array.data, window=window)
    except rasterio.RasterioIOError as e:
        raise RasterIOError(f"Failed to write window to {path}: {e}") from e

def read_info(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Inspect a raster file without reading pixels.

    Returns:
        Dict with crs, transform, bounds, width, height, count, dtype,
        driver, nodata, block_shape and band_names (description per 1-based index).
    """
    path = resolve_envi_path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    try:
        with rasterio.open(path) as src:
            band_names = {
                i: (src.descriptions[i - 1] or f"Band_{i}") for i in src.indexes
            }
            return {
                'crs': src.crs,
                'transform': src.transform,
                'bounds': src.bounds,
                'width': src.width,
                'height': src.height,
                'count': src.count,
                'dtype': src.dtypes[0],
                'driver': src.driver,
                'nodata': src.nodata,
                'block_shape': src.block_shapes[0] if src.block_shapes else None,
                'band_names': band_names
            }
    except rasterio.RasterioIOError as e:
        raise RasterIOError(f"Failed to read metadata from {path}: {e}") from e
