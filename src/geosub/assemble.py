# src/geosub/assemble.py

"""
This module assembles the output dataset description from the selected
bands and the resolved pixel window.

The result is an OutputPlan: a complete, format-independent description of
the output raster (size, georeferencing, metadata and, for every band, the
source regions its pixels come from). The plan can be rendered as a GDAL
VRT document or materialized by the writer.
"""

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
from rasterio.crs import CRS
from rasterio.transform import Affine
from rasterio.windows import Window

from .exceptions import NoBandsSelectedError
from .selectors import Band
from .utils import gdal_typename
from .window import PixelWindow

log = logging.getLogger(__name__)

__all__ = [
    "SourceRegion",
    "BandPlan",
    "OutputPlan",
    "derive_transform",
    "split_regions",
    "assemble",
    "render_vrt"
]

@dataclass(frozen=True)
class SourceRegion:
    """
    A rectangular copy from the source band into the output band.

    Args:
        source_window: Region read from the source.
        target_window: Region written in the output (same size).
    """
    source_window: Window
    target_window: Window

@dataclass(frozen=True)
class BandPlan:
    """Everything needed to produce one output band."""
    source_id: int
    description: str
    data_type: str
    tags: Dict[str, str]
    nodata: Optional[float]
    regions: List[SourceRegion]

@dataclass
class OutputPlan:
    """
    Description of the output dataset.

    Args:
        width: Output width in pixels.
        height: Output height in pixels.
        transform: Derived affine transform of the output.
        crs: Spatial reference copied from the source (may be None).
        tags: Dataset-level metadata copied from the source.
        bands: One BandPlan per output band, in output order.
        window: The source pixel window the plan was built from.
    """
    width: int
    height: int
    transform: Affine
    crs: Optional[CRS]
    tags: Dict[str, str]
    bands: List[BandPlan]
    window: PixelWindow

    @property
    def count(self) -> int:
        return len(self.bands)

    @property
    def dtype(self) -> str:
        """Common data type able to hold every band."""
        return np.result_type(*[b.data_type for b in self.bands]).name

    @property
    def nodata(self) -> Optional[float]:
        return self.bands[0].nodata if self.bands else None

    def profile(self, driver: str = "GTiff", **overrides: Any) -> Dict[str, Any]:
        """
        Generates a rasterio-compliant creation profile for this plan.
        Mixed band types are promoted to a common dtype.
        """
        profile = {
            'driver': driver,
            'dtype': self.dtype,
            'nodata': self.nodata,
            'width': self.width,
            'height': self.height,
            'count': self.count,
            'crs': self.crs,
            'transform': self.transform
        }
        profile.update(overrides)
        return profile

def derive_transform(transform: Affine, window: PixelWindow) -> Affine:
    """Shift the origin of a transform to the window's upper-left pixel."""
    return Affine(
        transform.a,
        transform.b,
        transform.c + window.x * transform.a,
        transform.d,
        transform.e,
        transform.f + window.y * transform.e
    )

def split_regions(window: PixelWindow, raster_width: int) -> List[SourceRegion]:
    """
    Compute the source regions making up a window.

    A window that runs past the right edge of the raster is composed of
    two reads: the columns up to the right edge, followed by the columns
    wrapped around from the left edge.
    """
    first_width = min(raster_width - window.x, window.width)
    regions = [
        SourceRegion(
            source_window=Window(window.x, window.y, first_width, window.height),
            target_window=Window(0, 0, first_width, window.height)
        )
    ]

    if window.is_split(raster_width):
        rest = window.width - first_width
        regions.append(
            SourceRegion(
                source_window=Window(0, window.y, rest, window.height),
                target_window=Window(first_width, 0, rest, window.height)
            )
        )
    return regions

def assemble(
    bands: Sequence[Band],
    window: PixelWindow,
    transform: Optional[Affine],
    crs: Optional[CRS],
    tags: Optional[Dict[str, str]],
    raster_width: int
) -> OutputPlan:
    """
    Build the output plan for the selected bands and window.

    Args:
        bands: Selected source bands, in source order.
        window: Resolved source pixel window.
        transform: Source affine transform.
        crs: Source CRS.
        tags: Source dataset-level metadata.
        raster_width: Width of the source raster, used for split windows.

    Returns:
        OutputPlan: The output description.

    Raises:
        NoBandsSelectedError: If no band was selected.
    """
    if not bands:
        raise NoBandsSelectedError()

    regions = split_regions(window, raster_width)
    if len(regions) > 1:
        log.debug(f"Window {window} wraps past column {raster_width}, splitting into 2 reads")

    band_plans = [
        BandPlan(
            source_id=band.id,
            description=band.description,
            data_type=band.data_type,
            tags=dict(band.meta_data),
            nodata=band.nodata,
            regions=regions
        )
        for band in bands
    ]

    return OutputPlan(
        width=window.width,
        height=window.height,
        transform=derive_transform(transform or Affine.identity(), window),
        crs=crs,
        tags=dict(tags or {}),
        bands=band_plans,
        window=window
    )

def _metadata_element(parent: ET.Element, tags: Dict[str, str]):
    if not tags:
        return
    md = ET.SubElement(parent, "Metadata")
    for key, value in tags.items():
        item = ET.SubElement(md, "MDI", key=key)
        item.text = str(value)

def _rect(tag: str, window: Window) -> ET.Element:
    return ET.Element(tag, {
        "xOff": str(int(window.col_off)),
        "yOff": str(int(window.row_off)),
        "xSize": str(int(window.width)),
        "ySize": str(int(window.height))
    })

def render_vrt(plan: OutputPlan, source_locator: str) -> str:
    """
    Render an OutputPlan as a GDAL VRT document referencing the source.

    Every band keeps its own data type, and every source region becomes
    one SimpleSource.
    """
    root = ET.Element("VRTDataset", rasterXSize=str(plan.width), rasterYSize=str(plan.height))

    if plan.crs:
        ET.SubElement(root, "SRS").text = plan.crs.to_wkt()
    ET.SubElement(root, "GeoTransform").text = ", ".join(repr(v) for v in plan.transform.to_gdal())
    _metadata_element(root, plan.tags)

    for idx, band in enumerate(plan.bands, start=1):
        vrt_band = ET.SubElement(
            root, "VRTRasterBand",
            dataType=gdal_typename(band.data_type), band=str(idx)
        )
        _metadata_element(vrt_band, band.tags)
        if band.description:
            ET.SubElement(vrt_band, "Description").text = band.description
        if band.nodata is not None:
            ET.SubElement(vrt_band, "NoDataValue").text = repr(band.nodata)

        for region in band.regions:
            source = ET.SubElement(vrt_band, "SimpleSource")
            ET.SubElement(source, "SourceFilename", relativeToVRT="0").text = source_locator
            ET.SubElement(source, "SourceBand").text = str(band.source_id)
            source.append(_rect("SrcRect", region.source_window))
            source.append(_rect("DstRect", region.target_window))

    return ET.tostring(root, encoding="unicode")
