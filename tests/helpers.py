# tests/helpers.py

import numpy as np
import rasterio

def read_all(path):
    """Pixels, band descriptions and grid of a raster file."""
    with rasterio.open(path) as src:
        return src.read(), src.descriptions, src.transform, src.crs

def assert_same_raster(path_a, path_b):
    """Strictly verify two raster files hold identical pixels, labels and grid."""
    data_a, desc_a, transform_a, crs_a = read_all(path_a)
    data_b, desc_b, transform_b, crs_b = read_all(path_b)

    assert data_a.dtype == data_b.dtype, f"dtype mismatch: {data_a.dtype} != {data_b.dtype}"
    assert data_a.shape == data_b.shape, f"Shape mismatch: {data_a.shape} != {data_b.shape}"
    assert data_a.tobytes() == data_b.tobytes(), "Pixel bytes differ"
    assert desc_a == desc_b, f"Band descriptions differ: {desc_a} != {desc_b}"
    assert crs_a == crs_b, f"CRS mismatch: {crs_a} != {crs_b}"
    assert np.allclose(np.array(transform_a), np.array(transform_b), atol=1e-9), \
        "Transform mismatch (Pixel alignment error)"
