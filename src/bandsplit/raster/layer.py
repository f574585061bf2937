# src/bandsplit/raster/layer.py

import logging
import copy
from typing import Union, Optional, Dict, Any, Tuple, Sequence, Mapping

import numpy as np
import rasterio
from rasterio.transform import Affine
from rasterio.crs import CRS
from rasterio.windows import Window
from rasterio.windows import transform as compute_window_transform

from bandsplit.exceptions import InvalidDimensionError, RasterValidationError

log = logging.getLogger(__name__)

__all__ = ["LabeledArray"]

class LabeledArray:
    """
    The fundamental data unit of bandsplit.

    A LabeledArray is an in-memory "Envelope" that synchronizes:
    1. The 'Heavy' Data: A NumPy array of cell values.
    2. The 'Light' Context: Named, ordered dimensions with coordinate
       sequences, plus optional geospatial metadata (CRS, Transform).

    Rasters read from disk carry the dimensions ('band', 'y', 'x'), but any
    dimension names and order are allowed.

    Attributes:
        data (np.ndarray): The cell array, one axis per dimension.
        dims (Tuple[str, ...]): Dimension names in axis order.
        coords (Dict[str, np.ndarray]): Coordinate sequence for every dimension.
        transform (Affine | None): Affine transform of the 'y'/'x' grid.
        crs (CRS | None): The Coordinate Reference System.
        nodata (float | int | None): The value representing missing data.
    """

    def __init__(
        self,
        data: np.ndarray,
        dims: Sequence[str],
        coords: Optional[Mapping[str, Sequence]] = None,
        transform: Optional[Affine] = None,
        crs: Optional[CRS] = None,
        nodata: Optional[Union[float, int]] = None
    ):
        """
        Initialize a LabeledArray object.

        Args:
            data: Input array with one axis per entry in dims.
            dims: Dimension names, e.g. ('x', 'y', 'band').
            coords: Optional mapping of dimension name to coordinate values.
                    Dimensions without coordinates get 0..n-1.
            transform: Geospatial transform (maps pixels to coordinates).
            crs: Coordinate Reference System.
            nodata: Value indicating no data.

        Raises:
            RasterValidationError: If dimensions, coordinates and shape disagree.
        """
        data = np.asarray(data)
        dims = tuple(dims)
        coords = dict(coords or {})
        self.validate_inputs(data, dims, coords, transform)

        self._data = data
        self.dims = dims
        self.coords = {
            dim: np.asarray(coords[dim]) if dim in coords else np.arange(size)
            for dim, size in zip(dims, data.shape)
        }
        self.transform = transform
        self.crs = crs
        self.nodata = nodata

    @staticmethod
    def validate_inputs(
        data: np.ndarray,
        dims: Tuple[str, ...],
        coords: Dict[str, Any],
        transform: Optional[Affine]
    ):
        """Internal validation logic."""
        if data.ndim != len(dims):
            raise RasterValidationError(
                f"Array has {data.ndim} axes but {len(dims)} dimension names were given: {dims}"
            )

        if len(set(dims)) != len(dims):
            raise RasterValidationError(f"Dimension names must be unique, got {dims}")

        for name in coords:
            if name not in dims:
                raise RasterValidationError(f"Coordinates given for unknown dimension '{name}'")

        for dim, size in zip(dims, data.shape):
            if dim in coords and len(coords[dim]) != size:
                raise RasterValidationError(
                    f"Dimension '{dim}' has {size} cells but {len(coords[dim])} coordinates"
                )

        if transform is not None and not isinstance(transform, Affine):
            raise TypeError(f"Transform must be rasterio.Affine, got {type(transform)}")

    # Dynamic metadata properties

    @property
    def data(self) -> np.ndarray:
        """Access the raw cell data."""
        return self._data

    @property
    def shape(self) -> Tuple[int, ...]:
        return self._data.shape

    @property
    def sizes(self) -> Dict[str, int]:
        """Mapping of dimension name to length."""
        return dict(zip(self.dims, self._data.shape))

    @property
    def ndim(self) -> int:
        return self._data.ndim

    @property
    def size(self) -> int:
        return self._data.size

    @property
    def dtype(self) -> np.dtype:
        return self._data.dtype

    @property
    def nbytes(self) -> int:
        return self._data.nbytes

    @property
    def width(self) -> int:
        return self.sizes["x"]

    @property
    def height(self) -> int:
        return self.sizes["y"]

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        """Returns (left, bottom, right, top) in CRS units."""
        if self.transform is None:
            raise RasterValidationError("Array has no transform, bounds are undefined")
        return rasterio.transform.array_bounds(self.height, self.width, self.transform)

    @property
    def profile(self) -> Dict[str, Any]:
        """
        Generates a Rasterio-compliant profile for a ('band', 'y', 'x') layout.
        Properties like compression and tiling can be overridden when saving.
        """
        count = self.sizes.get("band", 1)
        return {
            'driver': 'GTiff',
            'dtype': self._data.dtype,
            'nodata': self.nodata,
            'width': self.width,
            'height': self.height,
            'count': count,
            'crs': self.crs,
            'transform': self.transform or Affine.identity(),
            'compress': 'lzw',
        }

    def axis(self, dim: str) -> int:
        """Axis position of a named dimension."""
        try:
            return self.dims.index(dim)
        except ValueError:
            raise InvalidDimensionError(dim, self.dims) from None

    def isel(self, **indexers: Union[int, slice]) -> 'LabeledArray':
        """
        Positional selection by dimension name.

        An integer indexer drops the dimension, a slice keeps it. Selecting
        a 'y'/'x' slice shifts the transform to the new origin.
        """
        key = [slice(None)] * self.ndim
        for dim, indexer in indexers.items():
            key[self.axis(dim)] = indexer

        new_dims = []
        new_coords = {}
        for dim, indexer in zip(self.dims, key):
            if isinstance(indexer, (int, np.integer)):
                continue
            new_dims.append(dim)
            new_coords[dim] = self.coords[dim][indexer]

        transform = self.transform
        if transform is not None and "y" in new_dims and "x" in new_dims:
            rows = key[self.axis("y")].indices(self.height)
            cols = key[self.axis("x")].indices(self.width)
            if rows[2] == 1 and cols[2] == 1:
                window = Window(cols[0], rows[0], cols[1] - cols[0], rows[1] - rows[0])
                transform = compute_window_transform(window, transform)

        return LabeledArray(
            data=self._data[tuple(key)],
            dims=new_dims,
            coords=new_coords,
            transform=transform,
            crs=self.crs,
            nodata=self.nodata
        )

    def transpose(self, *dims: str) -> 'LabeledArray':
        """Reorder dimensions by name. The data is a view where NumPy allows it."""
        if sorted(dims) != sorted(self.dims):
            missing = set(dims) ^ set(self.dims)
            raise InvalidDimensionError(sorted(missing)[0], self.dims)
        order = [self.axis(dim) for dim in dims]
        return LabeledArray(
            data=self._data.transpose(order),
            dims=dims,
            coords=self.coords,
            transform=self.transform,
            crs=self.crs,
            nodata=self.nodata
        )

    def copy(self) -> 'LabeledArray':
        """Returns a deep copy of the LabeledArray."""
        return LabeledArray(
            data=self._data.copy(),
            dims=self.dims,
            coords={dim: values.copy() for dim, values in self.coords.items()},
            transform=copy.deepcopy(self.transform),
            crs=copy.deepcopy(self.crs),
            nodata=self.nodata
        )

    def __repr__(self) -> str:
        """Returns a string representation of the LabeledArray based on its metadata."""
        dims = ", ".join(f"{dim}: {size}" for dim, size in self.sizes.items())
        return f"<LabeledArray ({dims}) dtype={self._data.dtype} crs={self.crs}>"

    def __eq__(self, other: object) -> bool:
        """Checks equality based on dimensions, coordinates and cell data."""
        if not isinstance(other, LabeledArray):
            return NotImplemented

        # Check metadata first (cheap)
        meta_eq = (
            self.dims == other.dims and
            self.shape == other.shape and
            self.transform == other.transform and
            self.crs == other.crs and
            self.nodata == other.nodata and
            all(np.array_equal(self.coords[d], other.coords[d]) for d in self.dims)
        )
        if not meta_eq:
            return False

        # Check data only if necessary (expensive)
        return np.array_equal(self._data, other.data, equal_nan=self._data.dtype.kind == "f")

    __hash__ = None

    def __array__(self, dtype=None, copy=None) -> np.ndarray:
        """Allows np.array(labeled_array) to work directly."""
        if dtype is not None:
            return self._data.astype(dtype)
        return self._data
