# tests/unit/test_writer.py

import asyncio
import logging
import threading

import numpy as np
import pytest
import rasterio

from geosub.assemble import assemble
from geosub.exceptions import OutputWriteError
from geosub.selectors import Band
from geosub.window import PixelWindow
from geosub.writer import copy_bands, write_output
from helpers import GFS_TRANSFORM, pixel_values

class FakeSource:
    """In-memory stand-in for an open source dataset."""
    def __init__(self, data, fail_on=None):
        self.data = data
        self.fail_on = fail_on
        self.reads = []

    def read(self, bidx, window):
        if bidx == self.fail_on:
            raise IOError(f"cannot read band {bidx}")
        self.reads.append((bidx, window))
        r0, c0 = int(window.row_off), int(window.col_off)
        return self.data[bidx - 1, r0:r0 + int(window.height), c0:c0 + int(window.width)]

class FakeStaging:
    def __init__(self):
        self.bands = {}
        self.descriptions = {}
        self.tags = {}
        self.lock = threading.Lock()

    def set_band_description(self, idx, description):
        self.descriptions[idx] = description

    def update_tags(self, idx, **tags):
        self.tags[idx] = tags

    def write(self, data, idx):
        self.bands[idx] = data.copy()

class Progress:
    def __init__(self):
        self.calls = []

    def on_progress(self, fraction, message):
        self.calls.append((fraction, message))

def _plan(band_ids, window, width=36):
    bands = [Band(i, f"band {i}", "float32", {'ID': str(i)}) for i in band_ids]
    return assemble(bands, window, GFS_TRANSFORM, None, {}, width)

def test_copy_bands_copies_every_band_with_metadata():
    data = pixel_values(6, 18, 36)
    plan = _plan([2, 3, 5], PixelWindow(17, 3, 3, 3))
    staging, progress = FakeStaging(), Progress()

    asyncio.run(copy_bands(FakeSource(data), staging, plan, max_concurrency=2, progress=progress))

    assert sorted(staging.bands) == [1, 2, 3]
    for out_idx, src_id in enumerate([2, 3, 5], start=1):
        np.testing.assert_array_equal(staging.bands[out_idx], data[src_id - 1, 3:6, 17:20])
        assert staging.descriptions[out_idx] == f"band {src_id}"
        assert staging.tags[out_idx] == {'ID': str(src_id)}

    fractions = [f for f, _ in progress.calls]
    assert fractions == sorted(fractions)
    assert fractions[-1] == pytest.approx(1.0)
    assert len(progress.calls) == 3

def test_split_window_is_continuous_across_seam():
    width = 36
    data = pixel_values(1, 18, width)
    plan = _plan([1], PixelWindow(width - 2, 0, 5, 18), width)
    staging = FakeStaging()

    asyncio.run(copy_bands(FakeSource(data), staging, plan))

    out = staging.bands[1]
    assert out.shape == (18, 5)
    np.testing.assert_array_equal(out[:, 0:2], data[0, :, width - 2:width])
    np.testing.assert_array_equal(out[:, 2:5], data[0, :, 0:3])

def test_first_failure_is_raised():
    data = pixel_values(4, 18, 36)
    plan = _plan([1, 2, 3, 4], PixelWindow(0, 0, 36, 18))
    staging = FakeStaging()

    with pytest.raises(OutputWriteError, match="Failed to copy band 3: cannot read band 3") as excinfo:
        asyncio.run(copy_bands(FakeSource(data, fail_on=3), staging, plan, max_concurrency=1))
    assert isinstance(excinfo.value.__cause__, IOError)

    # Bands scheduled after the failure are skipped
    assert 4 not in staging.bands

def test_mixed_nodata_keeps_first_band_value(mock_raster_factory, tmp_path, caplog):
    path = mock_raster_factory("nodata.tif", count=2)
    bands = [Band(1, "", "float32", {}, -9999.0), Band(2, "", "float32", {}, 0.0)]
    plan = assemble(bands, PixelWindow(0, 0, 36, 18), GFS_TRANSFORM, None, {}, 36)
    output = tmp_path / "mixed.tif"

    with caplog.at_level(logging.WARNING, logger="geosub.writer"):
        with rasterio.open(path) as src:
            assert asyncio.run(write_output(src, plan, str(output))) == "GTiff"

    assert "different nodata values" in caplog.text
    with rasterio.open(output) as ds:
        assert ds.nodatavals == (-9999.0, -9999.0)
