# src/bandsplit/__init__.py
#
# Copyright (c) The bandsplit project contributors
# This software is distributed under the Apache-2.0 license.
# See the NOTICE file for more information

"""
bandsplit turns a dimension of a labeled multi-band raster into named
attributes, in memory or chunk by chunk for rasters larger than RAM, and
builds tables, summary statistics, principal components and plots on top.
"""

from bandsplit import raster, analysis
from bandsplit.exceptions import (
    BandsplitError,
    RasterIOError,
    RasterValidationError,
    InvalidDimensionError,
    ChunkError,
    ChunkReadError,
    ChunkWriteError,
    ShapeMismatchError
)
from bandsplit.raster import (
    LabeledArray,
    SplitResult,
    DimensionSplitter,
    split,
    merge,
    load,
    save,
    open_proxy,
    DispatchConfig,
    dispatch,
    split_to_file
)

__version__ = "0.1.0"

__all__ = [
    "raster",
    "analysis",

    # Errors
    "BandsplitError",
    "RasterIOError",
    "RasterValidationError",
    "InvalidDimensionError",
    "ChunkError",
    "ChunkReadError",
    "ChunkWriteError",
    "ShapeMismatchError",

    # Core
    "LabeledArray",
    "SplitResult",
    "DimensionSplitter",
    "split",
    "merge",
    "load",
    "save",
    "open_proxy",
    "DispatchConfig",
    "dispatch",
    "split_to_file"
]
