# src/geosub/writer.py

"""
This module materializes an OutputPlan into the output dataset.

Band copies run concurrently (bounded) on worker threads while the event
loop only orchestrates. Pixels are staged into a GeoTIFF (in RAM or on
disk), then encoded into the output format next to the destination and
moved into place, so a failed run never leaves a half-written output.
"""

import asyncio
import functools
import logging
import os
import shutil
import tempfile
import threading
from concurrent.futures import ThreadPoolExecutor
from contextlib import ExitStack
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Protocol

import numpy as np
import rasterio
import rasterio.shutil
from rasterio.io import MemoryFile

from .assemble import BandPlan, OutputPlan, render_vrt
from .config import EngineConfig
from .exceptions import OutputWriteError
from .resources import StagingMode, determine_staging
from .utils import infer_driver, is_remote, is_virtual_path

log = logging.getLogger(__name__)

__all__ = [
    "ProgressSink",
    "run_in_env",
    "copy_bands",
    "write_output"
]

STAGING_PROFILE = {
    'interleave': 'band',
    'tiled': True,
    'BIGTIFF': 'IF_SAFER'
}

class ProgressSink(Protocol):
    """Receives incremental progress from the writer."""
    def on_progress(self, fraction: float, message: str) -> None:
        ...

def _with_env(options: Dict[str, str], func: Callable, *args: Any) -> Any:
    with rasterio.Env(**options):
        return func(*args)

async def run_in_env(options: Dict[str, str], func: Callable, *args: Any) -> Any:
    """Run a blocking raster call on a worker thread within rasterio.Env(**options)."""
    return await asyncio.to_thread(_with_env, options, func, *args)

def _read_band(
    source: rasterio.DatasetReader,
    band: BandPlan,
    shape: tuple,
    dtype: str,
    lock: threading.Lock
) -> np.ndarray:
    data = np.empty(shape, dtype=dtype)
    with lock:
        for region in band.regions:
            tw = region.target_window
            rows = slice(int(tw.row_off), int(tw.row_off + tw.height))
            cols = slice(int(tw.col_off), int(tw.col_off + tw.width))
            data[rows, cols] = source.read(band.source_id, window=region.source_window)
    return data

def _write_band(
    staging: Any,
    index: int,
    band: BandPlan,
    data: np.ndarray,
    lock: threading.Lock
):
    # Metadata and pixels of a band are committed together
    with lock:
        if band.description:
            staging.set_band_description(index, band.description)
        if band.tags:
            staging.update_tags(index, **band.tags)
        staging.write(data, index)

async def copy_bands(
    source: rasterio.DatasetReader,
    staging: Any,
    plan: OutputPlan,
    max_concurrency: int = 16,
    progress: Optional[ProgressSink] = None,
    gdal_options: Optional[Dict[str, str]] = None
):
    """
    Copy every band of a plan from the source into the staging dataset.

    Up to max_concurrency bands are in flight at once. Reads on the source
    and writes on the staging dataset are each serialized by a lock, so
    reads of one band overlap writes of another. After the first failure,
    bands that have not started are skipped, bands in flight are drained,
    and that first failure is raised as an OutputWriteError.

    Args:
        source: Open source dataset.
        staging: Open staging dataset (write mode).
        plan: OutputPlan describing the copies.
        max_concurrency: Maximum number of bands in flight.
        progress: Optional ProgressSink notified after each band.
        gdal_options: GDAL configuration options for the worker threads.
    """
    options = gdal_options or {}
    loop = asyncio.get_running_loop()
    semaphore = asyncio.Semaphore(max_concurrency)
    read_lock = threading.Lock()
    write_lock = threading.Lock()
    shape = (plan.height, plan.width)
    dtype = plan.dtype
    errors = []
    done = 0

    executor = ThreadPoolExecutor(max_workers=max_concurrency, thread_name_prefix="geosub-band")

    async def copy_one(index: int, band: BandPlan):
        nonlocal done
        async with semaphore:
            if errors:
                return
            try:
                data = await loop.run_in_executor(executor, functools.partial(
                    _with_env, options, _read_band, source, band, shape, dtype, read_lock
                ))
                await loop.run_in_executor(executor, functools.partial(
                    _with_env, options, _write_band, staging, index, band, data, write_lock
                ))
            except Exception as e:
                errors.append((band, e))
                raise

        done += 1
        log.debug(f"Copied band {band.source_id} -> {index} ({done}/{plan.count})")
        if progress is not None:
            progress.on_progress(done / plan.count, f"band {band.source_id}")

    tasks = [
        asyncio.ensure_future(copy_one(index, band))
        for index, band in enumerate(plan.bands, start=1)
    ]
    try:
        await asyncio.gather(*tasks, return_exceptions=True)
    finally:
        # No worker may touch the datasets once we return
        executor.shutdown(wait=True, cancel_futures=True)

    if errors:
        band, cause = errors[0]
        raise OutputWriteError(f"Failed to copy band {band.source_id}: {cause}") from cause

def _source_filename(source: rasterio.DatasetReader) -> str:
    name = source.name
    if is_remote(name) or is_virtual_path(name) or not Path(name).exists():
        return name
    return str(Path(name).resolve())

def _write_vrt(source: rasterio.DatasetReader, plan: OutputPlan, output: str):
    if is_virtual_path(output):
        raise OutputWriteError(f"VRT output must be a local file, got {output}")

    xml = render_vrt(plan, _source_filename(source))
    path = Path(output)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w") as f:
            f.write(xml)
        os.replace(tmp, path)
    except OSError as e:
        Path(tmp).unlink(missing_ok=True)
        raise OutputWriteError(f"Failed to write {output}: {e}") from e

def _commit(staged: Any, output: str, driver: str, creation_options: Dict[str, str]):
    """Encode the staged dataset into the output format and move it into place."""
    if is_virtual_path(output):
        try:
            rasterio.shutil.copy(staged, output, driver=driver, **creation_options)
        except Exception as e:
            raise OutputWriteError(f"Failed to write {output} as {driver}: {e}") from e
        return

    path = Path(output).absolute()
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_dir = tempfile.mkdtemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        rasterio.shutil.copy(staged, os.path.join(tmp_dir, path.name), driver=driver, **creation_options)
        # Sidecar files (.aux.xml, .hdr, ...) move along with the main file
        for name in os.listdir(tmp_dir):
            os.replace(os.path.join(tmp_dir, name), path.parent / name)
    except Exception as e:
        raise OutputWriteError(f"Failed to write {output} as {driver}: {e}") from e
    finally:
        shutil.rmtree(tmp_dir, ignore_errors=True)

async def write_output(
    source: rasterio.DatasetReader,
    plan: OutputPlan,
    output: str,
    config: Optional[EngineConfig] = None,
    progress: Optional[ProgressSink] = None
) -> str:
    """
    Write the output dataset described by a plan.

    VRT outputs are written as a virtual dataset referencing the source.
    Any other format is staged as a GeoTIFF, then encoded with the output
    driver and committed atomically.

    Args:
        source: Open source dataset.
        plan: OutputPlan to materialize.
        output: Output locator.
        config: EngineConfig (driver, staging, concurrency, GDAL options).
        progress: Optional ProgressSink.

    Returns:
        str: The GDAL driver used for the output.

    Raises:
        OutputWriteError: If the output cannot be encoded or committed.
    """
    config = config or EngineConfig()
    options = config.gdal_options
    driver = config.driver or infer_driver(output, fallback=source.driver)

    if driver == "VRT":
        await run_in_env(options, _write_vrt, source, plan, output)
        return driver

    # GeoTIFF staging holds a single nodata value for the whole dataset
    nodata_values = {repr(band.nodata) for band in plan.bands}
    if len(nodata_values) > 1:
        log.warning(
            f"Selected bands have different nodata values {[b.nodata for b in plan.bands]}, "
            f"{output} uses {plan.nodata} for every band"
        )

    report = determine_staging(plan, config.staging)
    log.info(f"Staging {plan.count} bands {plan.width}x{plan.height} {report.mode.value}")
    log.debug(f"Staging Report: {report.reason}")

    profile = plan.profile("GTiff", **STAGING_PROFILE)

    with ExitStack() as stack:
        if report.mode == StagingMode.IN_MEMORY:
            memfile = stack.enter_context(MemoryFile(ext=".tif"))
            open_staging = functools.partial(memfile.open, **profile)
            reopen_staging = memfile.open
        else:
            tmp_dir = stack.enter_context(tempfile.TemporaryDirectory(prefix="geosub-"))
            staging_path = os.path.join(tmp_dir, "staging.tif")
            open_staging = functools.partial(rasterio.open, staging_path, 'w', **profile)
            reopen_staging = functools.partial(rasterio.open, staging_path)

        staging = await run_in_env(options, open_staging)
        try:
            if plan.tags:
                staging.update_tags(**plan.tags)
            await copy_bands(
                source, staging, plan,
                max_concurrency=config.max_concurrency,
                progress=progress,
                gdal_options=options
            )
        finally:
            await run_in_env(options, staging.close)

        staged = stack.enter_context(await run_in_env(options, reopen_staging))
        log.info(f"Encoding {output} as {driver}")
        await run_in_env(options, _commit, staged, output, driver, config.creation_options)

    return driver
