# src/bandsplit/raster/utils.py

"""
This module provides shared utility functions for raster operations.

Functions include path resolution for ENVI files, band selection,
band labelling and pixel-centre coordinate generation.
"""
import logging
from pathlib import Path
from typing import Union, List, Optional

import numpy as np
import rasterio
from rasterio.transform import Affine

log = logging.getLogger(__name__)

__all__ = [
    "resolve_envi_path",
    "extract_band_indices",
    "extract_band_labels",
    "pixel_centers",
    "attribute_name"
]

def resolve_envi_path(path: Union[str, Path]) -> Path:
    """
    Resolve ENVI header/binary file confusion.
    If 'image.hdr' is passed, redirects to 'image' (binary).
    """
    path = Path(path)
    if path.suffix.lower() == '.hdr':
        binary_path = path.with_suffix('')
        if binary_path.exists():
            log.debug(f"Redirecting {path.name} to binary file {binary_path.name}")
            return binary_path
    return path

def extract_band_indices(
    src: rasterio.DatasetReader,
    bands: Optional[Union[int, List[int]]]
) -> List[int]:
    """
    Normalize band selection to a list of 1-based indices.
    """
    if bands is None:
        return list(src.indexes)
    elif isinstance(bands, int):
        return [bands]
    return list(bands)

def extract_band_labels(
    src: rasterio.DatasetReader,
    indices: List[int]
) -> np.ndarray:
    """
    Coordinate labels for the selected bands.

    Band descriptions are used when every selected band has a unique one,
    otherwise the 1-based band indices.
    """
    descriptions = [src.descriptions[idx - 1] for idx in indices]
    if all(descriptions) and len(set(descriptions)) == len(descriptions):
        return np.array(descriptions, dtype=object)
    return np.array(indices, dtype=np.int64)

def pixel_centers(transform: Affine, height: int, width: int):
    """
    Map coordinates of pixel centres along each axis of a north-up grid.

    Returns:
        Tuple[np.ndarray, np.ndarray]: (y, x) coordinate vectors.
    """
    cols = np.arange(width) + 0.5
    rows = np.arange(height) + 0.5
    x = transform.c + cols * transform.a
    y = transform.f + rows * transform.e
    return y, x

def attribute_name(value) -> str:
    """String label used for the attribute produced from a coordinate value."""
    if isinstance(value, (bytes, np.bytes_)):
        return value.decode()
    if isinstance(value, (float, np.floating)) and float(value).is_integer():
        return str(int(value))
    return str(value)
