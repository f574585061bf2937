# tests/unit/test_layer.py

import pytest
import numpy as np
from rasterio.transform import Affine

from bandsplit.exceptions import InvalidDimensionError, RasterValidationError
from bandsplit.raster import LabeledArray

def test_default_coordinates():
    array = LabeledArray(np.zeros((2, 3, 4)), dims=("band", "y", "x"))

    assert array.sizes == {"band": 2, "y": 3, "x": 4}
    assert np.array_equal(array.coords["x"], [0, 1, 2, 3])

def test_dimension_count_must_match():
    with pytest.raises(RasterValidationError):
        LabeledArray(np.zeros((2, 3)), dims=("band", "y", "x"))

def test_coordinate_length_must_match():
    with pytest.raises(RasterValidationError):
        LabeledArray(np.zeros((2, 3)), dims=("y", "x"), coords={"x": [0, 1]})

def test_unique_dimension_names():
    with pytest.raises(RasterValidationError):
        LabeledArray(np.zeros((2, 2)), dims=("x", "x"))

def test_unknown_coordinate_dimension():
    with pytest.raises(RasterValidationError):
        LabeledArray(np.zeros((2, 2)), dims=("y", "x"), coords={"band": [1, 2]})

def test_transform_type_checked():
    with pytest.raises(TypeError):
        LabeledArray(np.zeros((2, 2)), dims=("y", "x"), transform=(1, 0, 0, 0, -1, 0))

def test_isel_drops_integer_dimension(cube):
    sub = cube.isel(band=1)

    assert sub.dims == ("x", "y")
    assert np.array_equal(sub.data, [[200, 201], [210, 211]])

def test_isel_shifts_transform():
    transform = Affine.translation(100, 200) * Affine.scale(10, -10)
    array = LabeledArray(np.zeros((1, 6, 8)), dims=("band", "y", "x"), transform=transform)

    sub = array.isel(y=slice(2, 4), x=slice(3, 8))

    assert sub.shape == (1, 2, 5)
    assert sub.transform.c == 130
    assert sub.transform.f == 180

def test_isel_unknown_dimension(cube):
    with pytest.raises(InvalidDimensionError):
        cube.isel(time=0)

def test_transpose(cube):
    t = cube.transpose("band", "y", "x")

    assert t.dims == ("band", "y", "x")
    assert t.data[1, 0, 1] == cube.data[1, 0, 1]
    assert t.data[0, 1, 0] == 101

def test_transpose_requires_all_dimensions(cube):
    with pytest.raises(InvalidDimensionError):
        cube.transpose("band", "y")

def test_equality_and_copy(cube):
    clone = cube.copy()
    assert clone == cube

    clone.data[0, 0, 0] = -1
    assert clone != cube

def test_bounds_and_profile():
    transform = Affine.translation(0, 10) * Affine.scale(1, -1)
    array = LabeledArray(np.zeros((3, 10, 5), dtype="float32"), dims=("band", "y", "x"), transform=transform)

    assert array.bounds == (0, 0, 5, 10)
    assert array.profile["count"] == 3
    assert array.profile["width"] == 5
