# src/bandsplit/analysis/table.py

"""
This module reshapes split rasters into tables and summarizes them.

A table has one row per grid cell, one column per remaining dimension
coordinate (e.g. 'y', 'x') and one column per attribute (e.g. per band).
Rows are built straight from the attribute slices in C order, so no
pivot or coordinate join is involved.
"""

import logging
from typing import List, Optional, Sequence, Union

import numpy as np
import polars as pl

from bandsplit.exceptions import RasterValidationError
from bandsplit.raster.layer import LabeledArray
from bandsplit.raster.split import SplitResult, split

log = logging.getLogger(__name__)

__all__ = [
    "COORDINATE_COLUMNS",
    "valid_mask",
    "to_table",
    "coordinate_columns",
    "value_columns",
    "describe",
    "correlation"
]

COORDINATE_COLUMNS = ("x", "y")

# instance attribute set by to_table() on the frames it returns
_COORDINATES_ATTR = "_bandsplit_coordinates"

def valid_mask(result: SplitResult, names: Optional[Sequence[str]] = None) -> np.ndarray:
    """
    Cells where every selected attribute holds data.

    A cell is invalid if any attribute equals the nodata value or is NaN.
    """
    names = list(names) if names is not None else result.names
    mask = np.ones(result.shape, dtype=bool)
    for name in names:
        values = result[name]
        if result.nodata is not None and not np.isnan(result.nodata):
            mask &= values != result.nodata
        if values.dtype.kind == "f":
            mask &= ~np.isnan(values)
    return mask

def to_table(
    source: Union[SplitResult, LabeledArray],
    dimension: str = "band",
    drop_nodata: bool = True,
    include_coords: bool = True
) -> pl.DataFrame:
    """
    Flatten a split raster into a Polars DataFrame.

    Args:
        source: SplitResult, or a LabeledArray which is split on dimension first.
        dimension: Dimension to split when source is a LabeledArray.
        drop_nodata: Drop rows where any attribute is nodata or NaN.
        include_coords: Add one column per remaining dimension with its coordinate.

    Returns:
        pl.DataFrame: One row per cell. The coordinate column names are
                      recorded on the frame, see coordinate_columns().

    Raises:
        RasterValidationError: If an attribute name collides with a coordinate column.
    """
    result = split(source, dimension) if isinstance(source, LabeledArray) else source

    columns = {}
    if include_coords:
        clashes = set(result.dims) & set(result.names)
        if clashes:
            raise RasterValidationError(
                f"Attribute names {sorted(clashes)} collide with coordinate columns"
            )
        grids = np.meshgrid(*(result.coords[d] for d in result.dims), indexing="ij")
        for dim, grid in zip(result.dims, grids):
            columns[dim] = grid.ravel()

    for name, values in result.items():
        columns[name] = values.ravel()

    table = pl.DataFrame(columns)

    if drop_nodata:
        keep = valid_mask(result).ravel()
        dropped = int(keep.size - keep.sum())
        if dropped:
            log.debug(f"Dropping {dropped} nodata rows")
            table = table.filter(pl.Series(keep))

    setattr(table, _COORDINATES_ATTR, list(result.dims) if include_coords else [])

    log.debug(f"Built table with {table.height} rows and columns {table.columns}")
    return table

def coordinate_columns(table: pl.DataFrame) -> List[str]:
    """
    Coordinate columns of a table.

    Frames returned by to_table() know their coordinate columns, whatever
    the dimension names (e.g. 'lat', 'lon', 'time'). Any other frame,
    including one derived from a to_table() result, falls back to
    COORDINATE_COLUMNS.
    """
    recorded = vars(table).get(_COORDINATES_ATTR)
    if recorded is None:
        recorded = COORDINATE_COLUMNS
    return [c for c in recorded if c in table.columns]

def value_columns(
    table: pl.DataFrame,
    columns: Optional[Sequence[str]] = None,
    exclude: Optional[Sequence[str]] = None
) -> List[str]:
    """
    Requested columns, or every column that is not a coordinate.

    Args:
        table: Table to select from.
        columns: Explicit column names. Checked against the table.
        exclude: Coordinate columns to leave out when columns is None.
            Defaults to coordinate_columns(table).
    """
    if columns is not None:
        missing = [c for c in columns if c not in table.columns]
        if missing:
            raise KeyError(f"Columns {missing} not found in {table.columns}")
        return list(columns)

    excluded = set(coordinate_columns(table) if exclude is None else exclude)
    return [c for c in table.columns if c not in excluded]

def describe(table: pl.DataFrame, columns: Optional[Sequence[str]] = None) -> pl.DataFrame:
    """
    Summary statistics per attribute column.

    Returns:
        pl.DataFrame: 'statistic' column (count, null_count, mean, std, min,
                      25%, 50%, 75%, max) plus one column per attribute.
    """
    return table.select(value_columns(table, columns)).describe()

def correlation(table: pl.DataFrame, columns: Optional[Sequence[str]] = None) -> pl.DataFrame:
    """
    Pearson correlation matrix between attribute columns.

    Returns:
        pl.DataFrame: 'column' label column plus one column per attribute.
    """
    cols = value_columns(table, columns)
    if len(cols) < 2:
        raise ValueError(f"Correlation needs at least two columns, got {cols}")

    corr = table.select([pl.col(c).cast(pl.Float64) for c in cols]).corr()
    return pl.DataFrame({"column": cols}).hstack(corr)
