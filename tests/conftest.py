# tests/conftest.py

import pytest
import rasterio
from rasterio.crs import CRS

from helpers import GFS_TRANSFORM, EDGE_TRANSFORM, pixel_values

GRIB_IDS = "CENTER=7(US-NCEP) SUBCENTER=0 MASTER_TABLE=2 LOCAL_TABLE=1"

GRIB_BANDS = [
    ('0[-] MSL="Mean sea level"', {'GRIB_ELEMENT': 'PRMSL', 'GRIB_SHORT_NAME': '0-MSL'}),
    ('70000[Pa] ISBL="Isobaric surface"', {'GRIB_ELEMENT': 'TMP', 'GRIB_SHORT_NAME': '70000-ISBL'}),
    ('75000[Pa] ISBL="Isobaric surface"', {'GRIB_ELEMENT': 'TMP', 'GRIB_SHORT_NAME': '75000-ISBL'}),
    ('0-3000[Pa] SPDL="Level at specified pressure difference"', {'GRIB_ELEMENT': 'TMP', 'GRIB_SHORT_NAME': '0-3000-SPDL'}),
    ('0-3000[Pa] SPDL="Level at specified pressure difference"', {'GRIB_ELEMENT': 'RH', 'GRIB_SHORT_NAME': '0-3000-SPDL'}),
    ('0[-] SFC="Ground or water surface"', {'GRIB_ELEMENT': 'CPRAT', 'GRIB_SHORT_NAME': '0-SFC'}),
]

@pytest.fixture
def mock_raster_factory(tmp_path):
    """
    Fixture: Factory writing synthetic GeoTIFFs into the temp dir.
    Pixel values follow pixel_values() unless data is given.
    """
    def _create(
        name="source.tif",
        width=36,
        height=18,
        count=1,
        crs="EPSG:4326",
        transform=GFS_TRANSFORM,
        dtype='float32',
        descriptions=None,
        band_tags=None,
        tags=None,
        data=None
    ):
        path = tmp_path / name
        profile = {
            'driver': 'GTiff',
            'height': height,
            'width': width,
            'count': count,
            'dtype': dtype
        }
        if crs is not None:
            profile['crs'] = CRS.from_user_input(crs)
        if transform is not None:
            profile['transform'] = transform

        if data is None:
            data = pixel_values(count, height, width, dtype)

        with rasterio.open(path, 'w', **profile) as dst:
            dst.write(data)
            if tags:
                dst.update_tags(**tags)
            for idx in range(1, count + 1):
                if descriptions:
                    dst.set_band_description(idx, descriptions[idx - 1])
                if band_tags:
                    dst.update_tags(idx, **band_tags[idx - 1])
        return path

    return _create

@pytest.fixture
def grib_like_path(mock_raster_factory):
    """A 6 band global grid with GRIB-style descriptions and metadata."""
    return mock_raster_factory(
        "gfs.tif",
        count=len(GRIB_BANDS),
        descriptions=[desc for desc, _ in GRIB_BANDS],
        band_tags=[dict(md, GRIB_IDS=GRIB_IDS) for _, md in GRIB_BANDS],
        tags={'CENTER': 'US-NCEP'}
    )

@pytest.fixture
def edge_grid_path(mock_raster_factory):
    """A 2 band global grid whose left edge lies on the antimeridian."""
    return mock_raster_factory("edge.tif", count=2, transform=EDGE_TRANSFORM)

@pytest.fixture
def output_path(tmp_path):
    return tmp_path / "out" / "result.tif"
