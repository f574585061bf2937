# src/bandsplit/analysis/__init__.py
#
# Copyright (c) The bandsplit project contributors
# This software is distributed under the Apache-2.0 license.
# See the NOTICE file for more information

"""
The analysis subpackage turns split rasters into tables, summarizes them
and fits/applies principal component analyses, in memory or chunk by chunk.
"""

from .table import (
    COORDINATE_COLUMNS,
    valid_mask,
    to_table,
    coordinate_columns,
    value_columns,
    describe,
    correlation
)

from .pca import (
    PCAComponents,
    fit_pca,
    fit_pca_chunked,
    predict,
    predict_to_file
)

__all__ = [
    # Tables
    "COORDINATE_COLUMNS",
    "valid_mask",
    "to_table",
    "coordinate_columns",
    "value_columns",
    "describe",
    "correlation",

    # PCA
    "PCAComponents",
    "fit_pca",
    "fit_pca_chunked",
    "predict",
    "predict_to_file"
]
