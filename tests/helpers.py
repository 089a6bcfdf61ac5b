# tests/helpers.py

import numpy as np
import rasterio
from rasterio.transform import Affine

# 36x18 global grid shaped like a coarse GFS GRIB2 file: 10 degree pixels
# centred on whole degrees, origin shifted half a pixel west.
GFS_TRANSFORM = Affine(10.0, 0.0, -185.0, 0.0, -10.0, 90.125)

# 36x18 grid edge-aligned on the antimeridian
EDGE_TRANSFORM = Affine(10.0, 0.0, -180.0, 0.0, -10.0, 90.0)

def pixel_values(count: int, height: int, width: int, dtype='float32') -> np.ndarray:
    """Every pixel encodes its own position: band*10000 + row*100 + col."""
    bands = np.arange(1, count + 1).reshape(count, 1, 1) * 10000
    rows = np.arange(height).reshape(1, height, 1) * 100
    cols = np.arange(width).reshape(1, 1, width)
    return (bands + rows + cols).astype(dtype)

def dataset_bbox(ds) -> list:
    """[left, top, right, bottom] computed from the geotransform and size."""
    t = ds.transform
    return [t.c, t.f, t.c + t.a * ds.width, t.f + t.e * ds.height]

def assert_output(path, bands: int, bbox: list, size: tuple):
    """Strictly verify band count, extent and size of an output file."""
    with rasterio.open(path) as ds:
        assert ds.count == bands, \
            f"Band count mismatch: {ds.count} != {bands}"

        assert np.allclose(dataset_bbox(ds), bbox, atol=1e-9), \
            f"Extent mismatch: {dataset_bbox(ds)} != {bbox}"

        assert (ds.width, ds.height) == size, \
            f"Size mismatch: {(ds.width, ds.height)} != {size}"

def read_all(path) -> np.ndarray:
    with rasterio.open(path) as ds:
        return ds.read()
