# tests/conftest.py

import matplotlib
matplotlib.use("Agg")

import pytest
import numpy as np
import rasterio
from rasterio.transform import Affine
from rasterio.crs import CRS

from bandsplit.raster.layer import LabeledArray

@pytest.fixture
def cube():
    """
    Fixture: 2x2x2 array with dims (x, y, band), x in {0, 1}, y in {0, 1},
    band in {1, 2} and A[x, y, band] = x*10 + y + band*100.
    """
    x = np.array([0, 1])
    y = np.array([0, 1])
    band = np.array([1, 2])
    data = x[:, None, None] * 10 + y[None, :, None] + band[None, None, :] * 100
    return LabeledArray(data, dims=("x", "y", "band"), coords={"x": x, "y": y, "band": band})

@pytest.fixture
def mock_raster_factory(tmp_path):
    """
    Fixture: factory writing synthetic multi-band GeoTIFFs into tmp_path.

    Band b (1-based) holds values row*width + col + b*1000 unless random=True,
    in which case bands are correlated noise (useful for PCA).
    """
    def _make(
        name: str = "mock.tif",
        count: int = 3,
        width: int = 10,
        height: int = 10,
        crs: str = "EPSG:32619",
        dtype: str = "float32",
        descriptions=None,
        nodata=None,
        tiled: bool = False,
        block_size: int = 16,
        random: bool = False,
        seed: int = 0
    ):
        path = tmp_path / name

        if random:
            rng = np.random.default_rng(seed)
            base = rng.normal(100, 20, size=(height, width))
            data = np.stack([
                base * (b + 1) + rng.normal(0, 5 * (b + 1), size=(height, width))
                for b in range(count)
            ])
        else:
            grid = np.arange(height * width).reshape(height, width)
            data = np.stack([grid + (b + 1) * 1000 for b in range(count)])

        profile = {
            'driver': 'GTiff',
            'height': height,
            'width': width,
            'count': count,
            'dtype': dtype,
            'crs': CRS.from_string(crs),
            'transform': Affine.translation(0, height) * Affine.scale(1, -1),
            'nodata': nodata
        }
        if tiled:
            profile.update(tiled=True, blockxsize=block_size, blockysize=block_size)

        with rasterio.open(path, 'w', **profile) as dst:
            dst.write(data.astype(dtype))
            if descriptions:
                for idx, desc in enumerate(descriptions, start=1):
                    dst.set_band_description(idx, desc)

        return path

    return _make

@pytest.fixture
def source_envi_path(tmp_path):
    """
    Fixture: Creates a synthetic ENVI file (.hdr + binary) in a temp dir.
    Returns the .hdr path to exercise resolve_envi_path.
    """
    p = tmp_path / "synthetic_raw"

    width, height = 20, 12
    data = np.zeros((3, height, width), dtype='float32')
    data[0] = np.linspace(0, 1, width * height).reshape(height, width)
    data[1] = np.arange(width * height).reshape(height, width)
    data[2].fill(0.5)

    profile = {
        'driver': 'ENVI',
        'height': height,
        'width': width,
        'count': 3,
        'dtype': 'float32',
        'crs': CRS.from_epsg(4326),
        'transform': Affine.translation(0, 1) * Affine.scale(0.01, -0.01)
    }

    with rasterio.open(p, 'w', **profile) as dst:
        dst.write(data)

    return p.with_suffix(".hdr")
