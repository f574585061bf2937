# src/bandsplit/raster/split.py

"""
This module turns one dimension of a LabeledArray into attributes.

Splitting 'band' of a (band, y, x) raster yields one 2-D (y, x) array per
band. The split dimension is a position on a regular grid rather than a join
key, so every attribute is a plain indexed slice: no (x, y) row table is
built and no key matching happens. This keeps the operation valid chunk by
chunk, without cross-chunk logic.
"""

import logging
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np
from rasterio.crs import CRS
from rasterio.transform import Affine

from bandsplit.exceptions import (
    InvalidDimensionError,
    RasterValidationError,
    ShapeMismatchError
)
from .layer import LabeledArray
from .utils import attribute_name

log = logging.getLogger(__name__)

__all__ = [
    "SplitResult",
    "DimensionSplitter",
    "split",
    "merge"
]

class SplitResult:
    """
    A LabeledArray with one dimension turned into named attributes.

    Each attribute holds the slice of the source with the split dimension
    fixed to one coordinate value, and shares the remaining dims/coords and
    the georeferencing of the source.

    Attributes:
        attributes (Dict[str, np.ndarray]): Attribute name to array, in coordinate order.
        dims (Tuple[str, ...]): Remaining dimension names.
        coords (Dict[str, np.ndarray]): Coordinates of the remaining dimensions.
        split_dimension (str | None): Name of the removed dimension.
        split_coords (np.ndarray | None): Coordinate values of the removed dimension.
        split_axis (int | None): Axis position the removed dimension had.
    """

    def __init__(
        self,
        attributes: Dict[str, np.ndarray],
        dims: Sequence[str],
        coords: Dict[str, np.ndarray],
        transform: Optional[Affine] = None,
        crs: Optional[CRS] = None,
        nodata=None,
        split_dimension: Optional[str] = None,
        split_coords: Optional[Sequence] = None,
        split_axis: Optional[int] = None
    ):
        self.attributes = dict(attributes)
        self.dims = tuple(dims)
        self.coords = dict(coords)
        self.transform = transform
        self.crs = crs
        self.nodata = nodata
        self.split_dimension = split_dimension
        self.split_coords = None if split_coords is None else np.asarray(split_coords)
        self.split_axis = split_axis

        expected = tuple(len(self.coords[d]) for d in self.dims)
        for name, values in self.attributes.items():
            if values.shape != expected:
                raise ShapeMismatchError(expected, values.shape, context=f"attribute '{name}'")

    @property
    def names(self) -> List[str]:
        return list(self.attributes)

    @property
    def shape(self) -> Tuple[int, ...]:
        """Shape shared by every attribute."""
        return tuple(len(self.coords[d]) for d in self.dims)

    @property
    def size(self) -> int:
        """Total cell count summed over all attributes."""
        return sum(values.size for values in self.attributes.values())

    def __getitem__(self, name: str) -> np.ndarray:
        if name not in self.attributes:
            raise KeyError(f"Attribute '{name}' not found in {self.names}")
        return self.attributes[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self.attributes)

    def __len__(self) -> int:
        return len(self.attributes)

    def __contains__(self, name: object) -> bool:
        return name in self.attributes

    def items(self):
        return self.attributes.items()

    def select(self, names: Sequence[str]) -> 'SplitResult':
        """Subset of attributes, in the requested order."""
        missing = [n for n in names if n not in self.attributes]
        if missing:
            raise InvalidDimensionError(missing[0], self.names)
        return SplitResult(
            {n: self.attributes[n] for n in names},
            self.dims,
            self.coords,
            transform=self.transform,
            crs=self.crs,
            nodata=self.nodata
        )

    def __repr__(self) -> str:
        dims = ", ".join(f"{d}: {len(self.coords[d])}" for d in self.dims)
        return f"<SplitResult ({dims}) attributes={self.names}>"

def split(array: LabeledArray, dimension: str) -> SplitResult:
    """
    Split a dimension of an array into one attribute per coordinate value.

    Args:
        array: In-memory LabeledArray to split.
        dimension: Name of the dimension to remove.

    Returns:
        SplitResult: One attribute per coordinate value along dimension,
                     named str(value), each shaped as array without dimension.

    Raises:
        InvalidDimensionError: If dimension is not a dimension of array.
        RasterValidationError: If two coordinate values map to the same name.
        ShapeMismatchError: If a produced slice has an unexpected shape.
    """
    if not isinstance(array, LabeledArray):
        raise TypeError(
            f"split expects an in-memory LabeledArray, got {type(array).__name__}. "
            "Use bandsplit.raster.split_to_file() or dispatch() for on-disk rasters."
        )

    if dimension not in array.dims:
        raise InvalidDimensionError(dimension, array.dims)

    axis = array.axis(dimension)
    values = array.coords[dimension]
    names = [attribute_name(v) for v in values]

    if len(set(names)) != len(names):
        raise RasterValidationError(
            f"Coordinate values of '{dimension}' are not unique attribute names: {names}"
        )

    remaining = tuple(d for d in array.dims if d != dimension)
    expected = tuple(array.sizes[d] for d in remaining)

    # basic indexing returns views, no cell is copied
    leading = (slice(None),) * axis
    attributes = {}
    for index, name in enumerate(names):
        values_slice = array.data[leading + (index,)]
        if values_slice.shape != expected:
            raise ShapeMismatchError(expected, values_slice.shape, context=f"attribute '{name}'")
        attributes[name] = values_slice

    log.debug(f"Split '{dimension}' into {len(attributes)} attributes of shape {expected}")

    return SplitResult(
        attributes,
        remaining,
        {d: array.coords[d] for d in remaining},
        transform=array.transform,
        crs=array.crs,
        nodata=array.nodata,
        split_dimension=dimension,
        split_coords=values,
        split_axis=axis
    )

def merge(
    result: SplitResult,
    dimension: Optional[str] = None,
    coords: Optional[Sequence] = None,
    axis: Optional[int] = None
) -> LabeledArray:
    """
    Stack the attributes of a SplitResult along a new dimension.

    Defaults restore the dimension removed by split(), so
    merge(split(a, d)) == a.

    Args:
        result: SplitResult to merge.
        dimension: Name of the new dimension. Defaults to the split dimension,
                   or 'band' if the result was not produced by split().
        coords: Coordinate values for the new dimension. Defaults to the split
                coordinates when the dimension name matches, else the
                attribute names.
        axis: Position of the new dimension. Defaults to the original axis
              when the dimension name matches, else 0.

    Returns:
        LabeledArray: Array with one more dimension than the attributes.

    Raises:
        RasterValidationError: If the result has no attributes.
        ValueError: If coords does not have one value per attribute.
    """
    if len(result) == 0:
        raise RasterValidationError("Cannot merge a SplitResult without attributes")

    restoring = dimension is None or dimension == result.split_dimension
    if dimension is None:
        dimension = result.split_dimension or "band"

    if dimension in result.dims:
        raise RasterValidationError(f"Dimension '{dimension}' already exists in {result.dims}")

    if coords is None:
        if restoring and result.split_coords is not None and len(result.split_coords) == len(result):
            coords = result.split_coords
        else:
            coords = np.array(result.names, dtype=object)
    elif len(coords) != len(result):
        raise ValueError(f"Got {len(coords)} coordinates for {len(result)} attributes")

    if axis is None:
        axis = result.split_axis if (restoring and result.split_axis is not None) else 0

    if not 0 <= axis <= len(result.dims):
        raise ValueError(f"Axis {axis} out of range for {len(result.dims) + 1} dimensions")

    data = np.stack(list(result.attributes.values()), axis=axis)

    dims = list(result.dims)
    dims.insert(axis, dimension)
    new_coords = dict(result.coords)
    new_coords[dimension] = np.asarray(coords)

    return LabeledArray(
        data=data,
        dims=dims,
        coords=new_coords,
        transform=result.transform,
        crs=result.crs,
        nodata=result.nodata
    )

class DimensionSplitter:
    """
    A reusable split policy for one dimension name.

    Args:
        dimension: The dimension to turn into attributes (default 'band').
    """
    def __init__(self, dimension: str = "band"):
        self.dimension = dimension

    def split(self, array: LabeledArray) -> SplitResult:
        return split(array, self.dimension)

    def merge(self, result: SplitResult, coords: Optional[Sequence] = None) -> LabeledArray:
        return merge(result, self.dimension, coords=coords)

    def __call__(self, array: LabeledArray) -> SplitResult:
        return self.split(array)

    def __repr__(self) -> str:
        return f"DimensionSplitter(dimension={self.dimension!r})"
