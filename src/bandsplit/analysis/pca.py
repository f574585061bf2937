# src/bandsplit/analysis/pca.py

"""
This module fits and applies a principal component analysis over raster attributes.

The fit is an eigen-decomposition of the covariance (or correlation) matrix
of the attribute columns. Covariances are assembled from additive moments,
which lets the same fit run in memory or reduced chunk by chunk over a raster
that does not fit in RAM.
"""

import logging
import operator
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Union

import numpy as np
import polars as pl

from bandsplit.exceptions import InvalidDimensionError
from bandsplit.raster.engine import AggregationType, DispatchConfig, check_raster_output, dispatch
from bandsplit.raster.layer import LabeledArray
from bandsplit.raster.proxy import RasterProxy
from bandsplit.raster.split import SplitResult, split
from .table import valid_mask, value_columns

log = logging.getLogger(__name__)

__all__ = [
    "PCAComponents",
    "fit_pca",
    "fit_pca_chunked",
    "predict",
    "predict_to_file"
]

@dataclass
class _Moments:
    """Additive sufficient statistics of a set of observations."""
    columns: tuple
    n: int
    total: np.ndarray
    cross: np.ndarray

    @classmethod
    def from_values(cls, columns: Sequence[str], values: np.ndarray) -> '_Moments':
        values = np.asarray(values, dtype=np.float64)
        return cls(tuple(columns), values.shape[0], values.sum(axis=0), values.T @ values)

    def __add__(self, other: '_Moments') -> '_Moments':
        if self.columns != other.columns:
            raise ValueError(f"Cannot combine moments of {self.columns} and {other.columns}")
        return _Moments(self.columns, self.n + other.n, self.total + other.total, self.cross + other.cross)

@dataclass
class PCAComponents:
    """
    A fitted principal component analysis.

    Args:
        columns: Input attribute names, in rotation row order.
        center: Value subtracted from each column (zeros if not centered).
        scale: Divisor applied to each column, or None if not scaled.
        rotation: (n_columns, n_components) matrix, one component per column.
        sdev: Standard deviation of each component, decreasing.
        n_obs: Number of observations used in the fit.
    """
    columns: List[str]
    center: np.ndarray
    scale: Optional[np.ndarray]
    rotation: np.ndarray
    sdev: np.ndarray
    n_obs: int

    @property
    def names(self) -> List[str]:
        return [f"PC{i + 1}" for i in range(self.rotation.shape[1])]

    @property
    def explained_variance(self) -> np.ndarray:
        return self.sdev ** 2

    @property
    def explained_variance_ratio(self) -> np.ndarray:
        variance = self.explained_variance
        total = variance.sum()
        return variance / total if total > 0 else np.zeros_like(variance)

    def to_frame(self) -> pl.DataFrame:
        """Loadings as a table: 'variable' column plus one column per component."""
        data = {"variable": self.columns}
        for i, name in enumerate(self.names):
            data[name] = self.rotation[:, i]
        return pl.DataFrame(data)

    def transform(self, values: np.ndarray, n_components: Optional[int] = None) -> np.ndarray:
        """
        Project observations onto the components.

        Args:
            values: (..., n_columns) array in the order of self.columns.
            n_components: Keep only the leading components.

        Returns:
            np.ndarray: (..., n_components) scores.
        """
        k = self._check_components(n_components)
        standardized = np.asarray(values, dtype=np.float64) - self.center
        if self.scale is not None:
            standardized = standardized / self.scale
        return standardized @ self.rotation[:, :k]

    def _check_components(self, n_components: Optional[int]) -> int:
        available = self.rotation.shape[1]
        if n_components is None:
            return available
        if not 1 <= n_components <= available:
            raise ValueError(f"n_components must be between 1 and {available}, got {n_components}")
        return n_components

def _components_from_moments(moments: _Moments, center: bool, scale: bool) -> PCAComponents:
    """Eigen-decomposition of the covariance matrix implied by the moments."""
    n = moments.n
    if n < 2:
        raise ValueError(f"PCA needs at least two valid observations, got {n}")

    mean = moments.total / n
    if center:
        cov = (moments.cross - n * np.outer(mean, mean)) / (n - 1)
        offset = mean
    else:
        cov = moments.cross / (n - 1)
        offset = np.zeros_like(mean)

    sd = None
    if scale:
        sd = np.sqrt(np.clip(np.diag(cov), 0, None))
        if np.any(sd == 0):
            constant = [c for c, s in zip(moments.columns, sd) if s == 0]
            raise ValueError(f"Cannot rescale constant columns {constant}")
        cov = cov / np.outer(sd, sd)

    eigenvalues, eigenvectors = np.linalg.eigh(cov)
    order = np.argsort(eigenvalues)[::-1]
    eigenvalues = np.clip(eigenvalues[order], 0, None)
    eigenvectors = eigenvectors[:, order]

    # eigenvector signs are arbitrary; make the largest loading of each positive
    pivots = np.argmax(np.abs(eigenvectors), axis=0)
    signs = np.sign(eigenvectors[pivots, np.arange(eigenvectors.shape[1])])
    signs[signs == 0] = 1
    eigenvectors = eigenvectors * signs

    return PCAComponents(
        columns=list(moments.columns),
        center=offset,
        scale=sd,
        rotation=eigenvectors,
        sdev=np.sqrt(eigenvalues),
        n_obs=n
    )

def fit_pca(
    table: pl.DataFrame,
    columns: Optional[Sequence[str]] = None,
    center: bool = True,
    scale: bool = False
) -> PCAComponents:
    """
    Fit a PCA on the attribute columns of a table.

    Rows with a missing value in any selected column are ignored.

    Args:
        table: Table produced by to_table().
        columns: Columns to use. Defaults to every non-coordinate column.
        center: Subtract column means before the decomposition.
        scale: Divide columns by their standard deviation (correlation PCA).

    Returns:
        PCAComponents: Components ordered by decreasing variance.
    """
    cols = value_columns(table, columns)
    values = table.select([pl.col(c).cast(pl.Float64) for c in cols]).to_numpy()
    values = values[~np.isnan(values).any(axis=1)]

    log.info(f"Fitting PCA on {values.shape[0]} observations of {cols}")
    return _components_from_moments(_Moments.from_values(cols, values), center, scale)

def _chunk_moments(result: SplitResult, columns: Optional[Sequence[str]] = None) -> _Moments:
    """Moments of the valid cells of one chunk."""
    names = list(columns) if columns is not None else result.names
    missing = [n for n in names if n not in result]
    if missing:
        raise InvalidDimensionError(missing[0], result.names)

    mask = valid_mask(result, names)
    values = np.stack([result[n][mask] for n in names], axis=-1)
    return _Moments.from_values(names, values)

def fit_pca_chunked(
    source: Union[str, Path, RasterProxy, LabeledArray],
    dimension: str = "band",
    columns: Optional[Sequence[str]] = None,
    center: bool = True,
    scale: bool = False,
    config: Optional[DispatchConfig] = None
) -> PCAComponents:
    """
    Fit a PCA on a raster without holding it in memory.

    Each chunk is split on dimension and reduced to moments; the moments are
    summed and decomposed once. Gives the same components as fit_pca on the
    full table.

    Args:
        source: File path, RasterProxy or LabeledArray.
        dimension: Dimension whose values become the PCA variables.
        columns: Attributes to use. Defaults to all.
        center: Subtract column means.
        scale: Divide columns by their standard deviation.
        config: Mode, chunk size and memory budget. Aggregation is forced to REDUCE.
    """
    config = (config or DispatchConfig()).replace(
        aggregation=AggregationType.REDUCE,
        reducer=operator.add,
        dimension=dimension,
        output_path=None
    )
    moments = dispatch(_chunk_moments, source, static_kwargs={"columns": columns}, config=config)

    log.info(f"Fitting PCA on {moments.n} observations of {list(moments.columns)}")
    return _components_from_moments(moments, center, scale)

def predict(
    source: Union[SplitResult, LabeledArray],
    components: PCAComponents,
    n_components: Optional[int] = None,
    prefix: str = "PC",
    dimension: str = "band"
) -> SplitResult:
    """
    Project every cell of a split raster onto the principal components.

    Args:
        source: SplitResult, or a LabeledArray which is split on dimension first.
        components: Fitted PCAComponents. Their columns must be attributes of source.
        n_components: Keep only the leading components.
        prefix: Attribute name prefix of the output ('PC' gives PC1, PC2, ...).
        dimension: Dimension to split when source is a LabeledArray.

    Returns:
        SplitResult: One float64 attribute per component on the source grid.
                     Cells with nodata or NaN in any input are NaN.

    Raises:
        InvalidDimensionError: If an input column is not an attribute of source.
    """
    result = split(source, dimension) if isinstance(source, LabeledArray) else source

    missing = [c for c in components.columns if c not in result]
    if missing:
        raise InvalidDimensionError(missing[0], result.names)

    k = components._check_components(n_components)
    values = np.stack([result[c] for c in components.columns], axis=-1)
    scores = components.transform(values, k)
    scores[~valid_mask(result, components.columns)] = np.nan

    attributes = {f"{prefix}{i + 1}": scores[..., i] for i in range(k)}
    return SplitResult(
        attributes,
        result.dims,
        result.coords,
        transform=result.transform,
        crs=result.crs,
        nodata=np.nan if result.nodata is not None else None
    )

def predict_to_file(
    source: Union[str, Path, RasterProxy, LabeledArray],
    output_path: Union[str, Path],
    components: PCAComponents,
    n_components: Optional[int] = None,
    dimension: str = "band",
    config: Optional[DispatchConfig] = None
) -> Path:
    """
    Predict principal components for a raster and write them as bands.

    Runs chunk by chunk when the raster exceeds the memory budget.

    Returns:
        Path: output_path
    """
    source = check_raster_output(source, dimension)
    config = (config or DispatchConfig()).replace(
        output_path=output_path,
        aggregation=AggregationType.STITCH,
        dimension=dimension
    )
    return dispatch(
        predict,
        source,
        static_kwargs={"components": components, "n_components": n_components},
        config=config
    )
