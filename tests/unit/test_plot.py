# tests/unit/test_plot.py

import pytest
import numpy as np
import matplotlib.pyplot as plt

from bandsplit import plot
from bandsplit.analysis import to_table
from bandsplit.raster import LabeledArray, io, split

@pytest.fixture(autouse=True)
def close_figures():
    yield
    plt.close("all")

def test_stretch_clips_to_unit_range():
    values = np.arange(101, dtype=float)
    out = plot.stretch(values, 10, 90)

    assert out.min() == 0.0
    assert out.max() == 1.0
    assert out[50] == pytest.approx(0.5)

def test_stretch_keeps_nan_and_handles_constant():
    out = plot.stretch(np.array([1.0, np.nan, 3.0]))
    assert np.isnan(out[1])

    flat = plot.stretch(np.array([[2.0, 2.0], [2.0, np.nan]]))
    assert np.array_equal(flat[0], [0.0, 0.0])
    assert np.isnan(flat[1, 1])

def test_stretch_rejects_bad_percentiles():
    with pytest.raises(ValueError):
        plot.stretch(np.arange(5), 50, 10)

def test_compute_breaks():
    values = np.arange(11, dtype=float)

    assert np.allclose(plot.compute_breaks(values, n=2, method="equal"), [0, 5, 10])
    assert np.allclose(plot.compute_breaks(values, n=5), [0, 2, 4, 6, 8, 10])
    # duplicate quantiles collapse
    assert len(plot.compute_breaks(np.ones(10), n=4)) == 1

def test_compute_breaks_errors():
    with pytest.raises(ValueError):
        plot.compute_breaks(np.arange(5), method="jenks")
    with pytest.raises(ValueError):
        plot.compute_breaks(np.arange(5), n=0)
    with pytest.raises(ValueError):
        plot.compute_breaks(np.array([np.nan, np.nan]))

def test_plot_rgb(mock_raster_factory):
    array = io.load(mock_raster_factory("rgb.tif", count=3, descriptions=("R", "G", "B")))

    ax = plot.plot_rgb(array, "R", "G", "B")

    assert ax.get_title() == "R=R G=G B=B"
    image = ax.get_images()[0].get_array()
    assert image.shape == (10, 10, 4)
    assert tuple(ax.get_images()[0].get_extent()) == (0.0, 10.0, 0.0, 10.0)

def test_plot_rgb_unknown_attribute(mock_raster_factory):
    array = io.load(mock_raster_factory("rgb.tif"))

    with pytest.raises(KeyError):
        plot.plot_rgb(array, "1", "2", "9")

def test_plot_attributes_panels(mock_raster_factory):
    result = split(io.load(mock_raster_factory("panels.tif", count=3)), "band")

    fig = plot.plot_attributes(result, breaks="equal", n_breaks=5)

    visible = [ax for ax in fig.axes if ax.get_visible() and ax.get_images()]
    assert [ax.get_title() for ax in visible] == ["1", "2", "3"]
    # the fourth grid slot is hidden
    assert sum(not ax.get_visible() for ax in fig.axes) == 1

def test_plot_attributes_explicit_breaks(cube):
    fig = plot.plot_attributes(cube, names=["2"], breaks=[200, 205, 215])

    assert fig.axes[0].get_title() == "2"

def test_plot_attributes_needs_2d():
    array = LabeledArray(np.zeros((2, 2, 3, 3)), dims=("time", "band", "y", "x"))

    with pytest.raises(ValueError):
        plot.plot_attributes(array)

def test_plot_histogram(cube):
    ax = plot.plot_histogram(to_table(cube), bins=4)

    labels = [t.get_text() for t in ax.get_legend().get_texts()]
    assert labels == ["1", "2"]
