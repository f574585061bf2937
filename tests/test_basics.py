# tests/test_basics.py
import numpy as np
import pytest

import bandsplit
from bandsplit import raster, analysis, plot, cli

def test_imports():
    """Simple smoke test to ensure modules import correctly."""
    assert raster is not None
    assert analysis is not None
    assert plot is not None
    assert cli is not None
    assert bandsplit.__version__

def test_public_api():
    for name in bandsplit.__all__:
        assert hasattr(bandsplit, name), name

def test_split_without_files(cube):
    """
    Module: raster.split
    Function: split
    Test: every attribute equals the source with the split dimension fixed.
    """
    result = bandsplit.split(cube, "band")

    for index, name in enumerate(result.names):
        assert np.array_equal(result[name], cube.data[:, :, index])

def test_error_hierarchy():
    assert issubclass(bandsplit.ChunkReadError, bandsplit.RasterIOError)
    assert issubclass(bandsplit.ChunkWriteError, IOError)
    assert issubclass(bandsplit.InvalidDimensionError, KeyError)
    assert issubclass(bandsplit.RasterValidationError, ValueError)

    for error in (bandsplit.RasterIOError, bandsplit.InvalidDimensionError, bandsplit.ShapeMismatchError):
        assert issubclass(error, bandsplit.BandsplitError)

def test_error_messages():
    err = bandsplit.InvalidDimensionError("time", ("band", "y", "x"))
    assert str(err) == "Dimension 'time' not found. Available dimensions: ['band', 'y', 'x']"

    chunk_err = bandsplit.ChunkWriteError(raster.Chunk(0, 4, 4, 4), "disk full")
    assert str(chunk_err) == "Failed to write chunk rows 0:4, cols 4:8: disk full"

    shape_err = bandsplit.ShapeMismatchError((2, 2), (2, 3), context="attribute 'nir'")
    assert str(shape_err) == "Shape mismatch in attribute 'nir': expected (2, 2), got (2, 3)"

    with pytest.raises(bandsplit.BandsplitError):
        raise bandsplit.ChunkReadError(raster.Chunk(0, 0, 1, 1))
