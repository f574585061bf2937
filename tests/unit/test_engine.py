# tests/unit/test_engine.py

import operator

import pytest
import numpy as np
import rasterio

from bandsplit.exceptions import (
    ChunkReadError,
    ChunkWriteError,
    InvalidDimensionError,
    ShapeMismatchError
)
from bandsplit.raster import (
    AggregationType,
    Chunk,
    DispatchConfig,
    LabeledArray,
    ProcessingMode,
    SplitResult,
    dispatch,
    io,
    split,
    split_to_file
)
from bandsplit.raster import engine
from helpers import assert_same_raster

@pytest.mark.parametrize("chunk_size", [1, 3, 7, 16, 100])
def test_chunked_split_matches_in_memory(tmp_path, mock_raster_factory, chunk_size):
    path = mock_raster_factory("source.tif", count=4, width=23, height=17, descriptions=("B", "G", "R", "N"))

    whole = split_to_file(path, tmp_path / "whole.tif", config=DispatchConfig(mode="in_memory"))
    chunked = split_to_file(path, tmp_path / "chunked.tif", config=DispatchConfig(mode="tiled", chunk_size=chunk_size))

    assert_same_raster(whole, chunked)

def test_blocked_split_matches_in_memory(tmp_path, mock_raster_factory):
    path = mock_raster_factory("tiled.tif", count=3, width=48, height=40, tiled=True)

    whole = split_to_file(path, tmp_path / "whole.tif", config=DispatchConfig(mode="in_memory"))
    blocked = split_to_file(path, tmp_path / "blocked.tif", config=DispatchConfig(memory_budget=1))

    assert_same_raster(whole, blocked)

def test_split_to_file_writes_attributes_as_bands(tmp_path, mock_raster_factory):
    path = mock_raster_factory("named.tif", count=2, descriptions=("Red", "NIR"))
    out = split_to_file(path, tmp_path / "split.tif", config=DispatchConfig(mode="tiled", chunk_size=4))

    with rasterio.open(out) as dst:
        assert dst.descriptions == ("Red", "NIR")
        assert np.array_equal(dst.read(), io.load(path).data)

def test_in_memory_array_chunked_equivalence(tmp_path):
    data = np.random.default_rng(1).random((3, 9, 11)).astype("float32")
    array = LabeledArray(data, dims=("band", "y", "x"))

    whole = split_to_file(array, tmp_path / "whole.tif")
    chunked = split_to_file(array, tmp_path / "chunked.tif", config=DispatchConfig(mode="tiled", chunk_size=4))

    assert_same_raster(whole, chunked)

def test_invalid_dimension_produces_no_output(tmp_path, mock_raster_factory):
    path = mock_raster_factory("source.tif")
    out = tmp_path / "never.tif"

    with pytest.raises(InvalidDimensionError):
        split_to_file(path, out, dimension="nonexistent", config=DispatchConfig(mode="tiled"))

    assert not out.exists()

def test_chunked_mode_cannot_split_grid_dimension(mock_raster_factory):
    path = mock_raster_factory("source.tif")
    config = DispatchConfig(mode="tiled", dimension="y", aggregation=AggregationType.COLLECT)

    with pytest.raises(ValueError, match="partitions"):
        dispatch(len, path, config=config)

def test_in_memory_dispatch_splits_grid_dimension(mock_raster_factory):
    path = mock_raster_factory("source.tif", width=4, height=3)
    config = DispatchConfig(mode="in_memory", dimension="y", aggregation=AggregationType.COLLECT)

    (result,) = dispatch(lambda r: r, path, config=config)

    assert len(result) == 3
    assert result.dims == ("band", "x")

@pytest.mark.parametrize("mode", ["in_memory", "tiled", "auto"])
def test_split_to_file_rejects_non_grid_attributes(tmp_path, mode):
    array = LabeledArray(np.zeros((2, 3, 4), dtype="float32"), dims=("band", "y", "x"))
    out = tmp_path / "y.tif"

    with pytest.raises(ValueError, match="leaves dimensions"):
        split_to_file(array, out, dimension="y", config=DispatchConfig(mode=mode))

    assert not out.exists()

def test_split_to_file_accepts_any_grid_order(tmp_path, cube):
    # (x, y, band) split on band leaves a grid written as (y, x)
    array = LabeledArray(cube.data.astype("int32"), cube.dims, cube.coords)
    out = split_to_file(array, tmp_path / "cube.tif")

    with rasterio.open(out) as dst:
        assert dst.count == 2
        assert dst.read(1).tolist() == [[100, 110], [101, 111]]

def test_chunk_read_error_leaves_partial_output(tmp_path, mock_raster_factory):
    path = mock_raster_factory("source.tif", width=8, height=8)
    out = tmp_path / "partial.tif"
    seen = []

    def vanish_after_first(result):
        if not seen:
            path.unlink()
        seen.append(result)
        return result

    config = DispatchConfig(mode="tiled", chunk_size=4, output_path=out)
    proxy = io.open_proxy(path)

    with pytest.raises(ChunkReadError) as excinfo:
        dispatch(vanish_after_first, proxy, config=config)

    assert excinfo.value.chunk == Chunk(row_off=0, col_off=4, height=4, width=4)
    assert len(seen) == 1

    # the first region was written and kept
    with rasterio.open(out) as dst:
        assert dst.read(1, window=Chunk(0, 0, 4, 4).window)[0, 0] == 1000

def test_chunk_write_error_reports_region(tmp_path, monkeypatch):
    array = LabeledArray(np.ones((2, 4, 4), dtype="float32"), dims=("band", "y", "x"))

    class FailingDataset:
        dtypes = ("float32", "float32")
        writes = 0

        def set_band_description(self, idx, label):
            pass

        def write(self, data, window=None):
            FailingDataset.writes += 1
            if FailingDataset.writes == 2:
                raise OSError("disk full")

        def close(self):
            pass

    monkeypatch.setattr(engine.rasterio, "open", lambda *args, **kwargs: FailingDataset())

    with pytest.raises(ChunkWriteError) as excinfo:
        split_to_file(array, tmp_path / "out.tif", config=DispatchConfig(mode="tiled", chunk_size=2))

    assert excinfo.value.chunk == Chunk(row_off=0, col_off=2, height=2, width=2)
    assert "disk full" in str(excinfo.value)

def test_result_not_matching_chunk_is_fatal(tmp_path, mock_raster_factory):
    path = mock_raster_factory("source.tif")

    def crop(result):
        return SplitResult(
            {name: values[:1] for name, values in result.items()},
            result.dims,
            {"y": result.coords["y"][:1], "x": result.coords["x"]}
        )

    config = DispatchConfig(mode="tiled", chunk_size=4, output_path=tmp_path / "bad.tif")
    with pytest.raises(ShapeMismatchError):
        dispatch(crop, path, config=config)

def test_chunked_stitch_requires_output_path(mock_raster_factory):
    path = mock_raster_factory("source.tif")

    with pytest.raises(ValueError, match="output_path"):
        dispatch(lambda r: r, path, config=DispatchConfig(mode="tiled"))

def test_collect_aggregation(mock_raster_factory):
    path = mock_raster_factory("source.tif", width=10, height=10)
    config = DispatchConfig(mode="tiled", chunk_size=5, aggregation=AggregationType.COLLECT)

    sizes = dispatch(lambda r: r.size, path, config=config)

    assert sizes == [75, 75, 75, 75]

def test_reduce_aggregation_matches_in_memory(mock_raster_factory):
    path = mock_raster_factory("source.tif", width=10, height=10)

    def band_sums(result):
        return np.array([values.sum(dtype=np.float64) for _, values in result.items()])

    chunked = dispatch(
        band_sums,
        path,
        config=DispatchConfig(mode="tiled", chunk_size=3, aggregation=AggregationType.REDUCE, reducer=operator.add)
    )
    whole = band_sums(split(io.load(path), "band"))

    assert np.allclose(chunked, whole)

def test_reduce_requires_reducer(mock_raster_factory):
    path = mock_raster_factory("source.tif")

    with pytest.raises(ValueError, match="reducer"):
        dispatch(len, path, config=DispatchConfig(aggregation=AggregationType.REDUCE))

def test_static_kwargs_passed_through(cube):
    config = DispatchConfig(aggregation=AggregationType.COLLECT)
    result = dispatch(lambda r, offset: r["1"] + offset, cube, static_kwargs={"offset": 1}, config=config)

    assert np.array_equal(result[0], [[101, 102], [111, 112]])

def test_in_memory_without_output_returns_result(cube):
    result = dispatch(lambda r: r, cube)

    assert isinstance(result, SplitResult)
    assert result.names == ["1", "2"]

def test_config_from_env(monkeypatch):
    monkeypatch.setenv("BANDSPLIT_MODE", "tiled")
    monkeypatch.setenv("BANDSPLIT_CHUNK_SIZE", "64")
    monkeypatch.setenv("BANDSPLIT_MEMORY_BUDGET", "1024")

    config = DispatchConfig.from_env(chunk_size=32)

    assert config.mode == "tiled"
    assert config.chunk_size == 32
    assert config.memory_budget == 1024

def test_config_replace_is_a_copy():
    config = DispatchConfig(chunk_size=8)
    other = config.replace(output_path="out.tif", aggregation=AggregationType.NONE)

    assert config.output_path is None
    assert other.output_path.name == "out.tif"
    assert other.chunk_size == 8

    with pytest.raises(AttributeError):
        config.replace(tile_size=4)

def test_config_rejects_bad_chunk_size():
    with pytest.raises(ValueError):
        DispatchConfig(chunk_size=0)

def test_config_validates_mode():
    assert DispatchConfig(mode=ProcessingMode.TILED).mode == "tiled"

    with pytest.raises(ValueError, match="Invalid mode"):
        DispatchConfig(mode="bogus")

    with pytest.raises(ValueError, match="Invalid mode"):
        DispatchConfig().replace(mode="bogus")

def test_config_from_env_rejects_bad_mode(monkeypatch):
    monkeypatch.setenv("BANDSPLIT_MODE", "streaming")

    with pytest.raises(ValueError, match="Invalid mode"):
        DispatchConfig.from_env()

def test_chunked_mode_needs_grid_dimensions():
    array = LabeledArray(np.zeros((2, 3, 4)), dims=("band", "lat", "lon"))
    config = DispatchConfig(mode="tiled", aggregation=AggregationType.COLLECT)

    with pytest.raises(InvalidDimensionError):
        dispatch(len, array, config=config)
