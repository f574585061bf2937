# src/bandsplit/plot.py

"""
This module renders split rasters and tables with matplotlib.

Every function is a stateless rendering call: it takes the data and its
display configuration (channel mapping, breaks, colormap) and draws on the
Axes it is given, or on a new Figure. No global plotting state is kept.
"""

import logging
from typing import Optional, Sequence, Tuple, Union

import numpy as np
import polars as pl
import matplotlib
import matplotlib.pyplot as plt
from matplotlib.axes import Axes
from matplotlib.colors import BoundaryNorm
from matplotlib.figure import Figure

from bandsplit.raster.layer import LabeledArray
from bandsplit.raster.split import SplitResult, split
from bandsplit.analysis.table import value_columns

log = logging.getLogger(__name__)

__all__ = [
    "stretch",
    "compute_breaks",
    "plot_rgb",
    "plot_attributes",
    "plot_histogram"
]

def stretch(
    values: np.ndarray,
    lower: float = 2.0,
    upper: float = 98.0
) -> np.ndarray:
    """
    Rescale values to [0, 1] between two percentiles, clipping the tails.

    NaN cells stay NaN. A constant band maps to 0.

    Args:
        values: Array to rescale.
        lower: Percentile mapped to 0.
        upper: Percentile mapped to 1.
    """
    if not 0 <= lower < upper <= 100:
        raise ValueError(f"Percentiles must satisfy 0 <= lower < upper <= 100, got {lower}, {upper}")

    values = np.asarray(values, dtype=np.float64)
    finite = values[np.isfinite(values)]
    if finite.size == 0:
        return np.full(values.shape, np.nan)

    lo, hi = np.percentile(finite, [lower, upper])
    if hi <= lo:
        return np.where(np.isnan(values), np.nan, 0.0)

    return np.clip((values - lo) / (hi - lo), 0.0, 1.0)

def compute_breaks(
    values: np.ndarray,
    n: int = 10,
    method: str = "quantile"
) -> np.ndarray:
    """
    Class breaks for a color scale.

    Args:
        values: Values the breaks must cover (NaN ignored).
        n: Number of classes; n + 1 unique-ified breaks are returned.
        method: 'quantile' (equal counts) or 'equal' (equal widths).
    """
    if n < 1:
        raise ValueError(f"n must be at least 1, got {n}")

    finite = np.asarray(values, dtype=np.float64)
    finite = finite[np.isfinite(finite)]
    if finite.size == 0:
        raise ValueError("Cannot compute breaks without finite values")

    if method == "quantile":
        breaks = np.quantile(finite, np.linspace(0, 1, n + 1))
    elif method == "equal":
        breaks = np.linspace(finite.min(), finite.max(), n + 1)
    else:
        raise ValueError(f"Unknown breaks method '{method}'. Use 'quantile' or 'equal'.")

    return np.unique(breaks)

def _extent(result: SplitResult) -> Optional[Tuple[float, float, float, float]]:
    """(left, right, bottom, top) for imshow, if the grid is georeferenced."""
    if result.transform is None or result.dims != ("y", "x"):
        return None
    height, width = result.shape
    t = result.transform
    return (t.c, t.c + width * t.a, t.f + height * t.e, t.f)

def _as_split(source: Union[SplitResult, LabeledArray], dimension: str) -> SplitResult:
    result = split(source, dimension) if isinstance(source, LabeledArray) else source
    if len(result.dims) != 2:
        raise ValueError(f"Plotting needs 2-D attributes, got dimensions {result.dims}")
    return result

def plot_rgb(
    source: Union[SplitResult, LabeledArray],
    red: str,
    green: str,
    blue: str,
    dimension: str = "band",
    ax: Optional[Axes] = None,
    stretch_percentiles: Tuple[float, float] = (2.0, 98.0),
    **kwargs
) -> Axes:
    """
    Draw a true or false color composite from three attributes.

    Each channel is stretched independently between the given percentiles.
    Cells with a missing value in any channel are transparent.

    Args:
        source: SplitResult, or a LabeledArray split on dimension.
        red, green, blue: Attribute names mapped to the color channels.
        dimension: Dimension to split when source is a LabeledArray.
        ax: Axes to draw on. A new figure is created if None.
        stretch_percentiles: (lower, upper) percentiles for the stretch.
        **kwargs: Passed to matplotlib.axes.Axes.imshow.

    Returns:
        Axes: The axes drawn on.
    """
    result = _as_split(source, dimension)
    lower, upper = stretch_percentiles

    channels = [stretch(result[name], lower, upper) for name in (red, green, blue)]
    rgb = np.stack(channels, axis=-1)
    alpha = np.all(np.isfinite(rgb), axis=-1).astype(np.float64)
    rgba = np.concatenate([np.nan_to_num(rgb), alpha[..., None]], axis=-1)

    if ax is None:
        _, ax = plt.subplots()

    ax.imshow(rgba, origin="upper", extent=_extent(result), **kwargs)
    ax.set_title(f"R={red} G={green} B={blue}")
    log.debug(f"Rendered RGB composite {red}/{green}/{blue}")
    return ax

def plot_attributes(
    source: Union[SplitResult, LabeledArray],
    names: Optional[Sequence[str]] = None,
    dimension: str = "band",
    breaks: Union[str, Sequence[float]] = "quantile",
    n_breaks: int = 10,
    cmap: str = "viridis",
    ncols: Optional[int] = None
) -> Figure:
    """
    Draw one panel per attribute, all sharing one set of color breaks.

    Args:
        source: SplitResult, or a LabeledArray split on dimension.
        names: Attributes to draw. Defaults to all.
        dimension: Dimension to split when source is a LabeledArray.
        breaks: 'quantile', 'equal', or explicit break values.
        n_breaks: Number of classes for computed breaks.
        cmap: Matplotlib colormap name.
        ncols: Panels per row. Defaults to a near-square layout.

    Returns:
        Figure: The figure with one axes per attribute and a shared colorbar.
    """
    result = _as_split(source, dimension)
    names = list(names) if names is not None else result.names
    if not names:
        raise ValueError("No attributes to plot")

    panels = [np.asarray(result[name], dtype=np.float64) for name in names]
    if isinstance(breaks, str):
        levels = compute_breaks(np.concatenate([p.ravel() for p in panels]), n_breaks, breaks)
    else:
        levels = np.asarray(breaks, dtype=np.float64)

    colormap = matplotlib.colormaps[cmap]
    if len(levels) < 2:
        norm = None
    else:
        norm = BoundaryNorm(levels, colormap.N)

    ncols = ncols or int(np.ceil(np.sqrt(len(names))))
    nrows = int(np.ceil(len(names) / ncols))
    fig, axes = plt.subplots(nrows, ncols, squeeze=False, figsize=(3 * ncols, 3 * nrows))

    image = None
    for ax, name, panel in zip(axes.flat, names, panels):
        image = ax.imshow(panel, cmap=colormap, norm=norm, origin="upper", extent=_extent(result))
        ax.set_title(name)
        ax.set_xticks([])
        ax.set_yticks([])

    for ax in list(axes.flat)[len(names):]:
        ax.set_visible(False)

    fig.colorbar(image, ax=axes.ravel().tolist(), shrink=0.8)
    return fig

def plot_histogram(
    table: pl.DataFrame,
    columns: Optional[Sequence[str]] = None,
    bins: int = 50,
    ax: Optional[Axes] = None
) -> Axes:
    """
    Overlaid value histograms of table columns.

    Args:
        table: Table produced by to_table().
        columns: Columns to draw. Defaults to every non-coordinate column.
        bins: Number of histogram bins.
        ax: Axes to draw on. A new figure is created if None.
    """
    cols = value_columns(table, columns)

    if ax is None:
        _, ax = plt.subplots()

    for col in cols:
        values = table.get_column(col).drop_nulls().cast(pl.Float64).to_numpy()
        ax.hist(values[np.isfinite(values)], bins=bins, alpha=0.5, label=col)

    ax.set_xlabel("value")
    ax.set_ylabel("count")
    ax.legend()
    return ax
