# src/bandsplit/raster/__init__.py
#
# Copyright (c) The bandsplit project contributors
# This software is distributed under the Apache-2.0 license.
# See the NOTICE file for more information

"""
The raster subpackage provides the labeled array data model, dimension
splitting, raster I/O, chunk partitioning, resource analysis and the
out-of-core dispatch engine.
"""
# Core data structures
from .layer import (
    LabeledArray
)
from .proxy import (
    RasterProxy
)

# Dimension splitting
from .split import (
    SplitResult,
    DimensionSplitter,
    split,
    merge
)

# I/O operations
from .io import (
    load,
    open_proxy,
    save,
    write_window,
    read_info,
    to_band_layout
)

# Resource management
from .resources import (
    ProcessingMode,
    BlockStructure,
    MemoryEstimate,
    StrategyReport,
    determine_strategy
)

# Partition operations
from .partition import (
    Chunk,
    iter_chunks,
    iter_strips,
    iter_block_chunks,
    check_partition
)

# Engine operations
from .engine import (
    AggregationType,
    DispatchConfig,
    ChunkWriter,
    dispatch,
    check_raster_output,
    split_to_file
)

# Shared utilities
from .utils import (
    resolve_envi_path,
    pixel_centers,
    attribute_name
)

__all__ = [
    # Data structures
    "LabeledArray",
    "RasterProxy",

    # Splitting
    "SplitResult",
    "DimensionSplitter",
    "split",
    "merge",

    # I/O
    "load",
    "open_proxy",
    "save",
    "write_window",
    "read_info",
    "to_band_layout",

    # Resources
    "ProcessingMode",
    "BlockStructure",
    "MemoryEstimate",
    "StrategyReport",
    "determine_strategy",

    # Partition
    "Chunk",
    "iter_chunks",
    "iter_strips",
    "iter_block_chunks",
    "check_partition",

    # Engine
    "AggregationType",
    "DispatchConfig",
    "ChunkWriter",
    "dispatch",
    "check_raster_output",
    "split_to_file",

    # Utils
    "resolve_envi_path",
    "pixel_centers",
    "attribute_name"
]
