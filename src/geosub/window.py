# src/geosub/window.py

"""
This module translates WGS84 bounding boxes into source pixel windows.

Longitudes are normalized so that 0-360 and -180-180 conventions are
equivalent. Windows that cross the raster's horizontal edge (typically the
antimeridian on global grids) are wrapped, producing a window whose right
edge lies past the raster width. The assembler splits those into two reads.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import rasterio
from rasterio.crs import CRS
from rasterio.errors import CRSError
from rasterio.transform import Affine
from rasterio.warp import transform as warp_transform

from .exceptions import EmptyWindowError, GeoreferencingError, RequestValidationError

log = logging.getLogger(__name__)

__all__ = [
    "WGS84",
    "BoundingBox",
    "PixelWindow",
    "DatasetTransformer",
    "normalize_longitude",
    "resolve_window"
]

WGS84 = CRS.from_epsg(4326)

def normalize_longitude(lon: float) -> float:
    """Bring a longitude into [-180, 180)."""
    return ((lon + 180) % 360 + 360) % 360 - 180

@dataclass(frozen=True)
class BoundingBox:
    """Geographic rectangle in WGS84 degrees."""
    left: float
    top: float
    right: float
    bottom: float

    @classmethod
    def from_sequence(cls, values: Sequence[float]) -> "BoundingBox":
        """
        Build a bounding box from a [left, top, right, bottom] sequence.

        Raises:
            RequestValidationError: If there are not exactly four numbers.
        """
        try:
            coords = [float(v) for v in values]
        except (TypeError, ValueError) as e:
            raise RequestValidationError(f"Invalid bounding box {values!r}: {e}") from e

        if len(coords) != 4 or not all(math.isfinite(c) for c in coords):
            raise RequestValidationError(
                f"Bounding box must be 4 finite numbers (left, top, right, bottom), got {values!r}"
            )
        return cls(*coords)

    def normalized(self) -> "BoundingBox":
        return BoundingBox(
            normalize_longitude(self.left),
            self.top,
            normalize_longitude(self.right),
            self.bottom
        )

@dataclass(frozen=True)
class PixelWindow:
    """
    A window in source pixel space.

    x + width may exceed the raster width, in which case the window wraps
    around to the left edge of the raster.
    """
    x: int
    y: int
    width: int
    height: int

    @property
    def lower_right(self) -> Tuple[int, int]:
        return self.x + self.width, self.y + self.height

    def is_split(self, raster_width: int) -> bool:
        return self.x + self.width > raster_width

class DatasetTransformer:
    """
    Maps WGS84 coordinates to fractional pixel coordinates of a dataset.

    Args:
        crs: CRS of the dataset.
        transform: Affine transform of the dataset (pixel -> CRS).
    """
    def __init__(self, crs: CRS, transform: Affine):
        if crs is None or transform is None or transform == Affine.identity():
            raise GeoreferencingError()
        self.crs = crs
        self.transform = transform
        self._inverse = ~transform

    @classmethod
    def from_dataset(cls, src: rasterio.DatasetReader) -> "DatasetTransformer":
        return cls(src.crs, src.transform)

    def to_pixel(self, lon: float, lat: float) -> Tuple[float, float]:
        """Returns (col, row) as floats."""
        try:
            xs, ys = warp_transform(WGS84, self.crs, [lon], [lat])
        except (CRSError, ValueError) as e:
            raise GeoreferencingError() from e

        x, y = xs[0], ys[0]
        if not (math.isfinite(x) and math.isfinite(y)):
            raise GeoreferencingError(
                f"Coordinate ({lon}, {lat}) cannot be projected into the source CRS"
            )
        return self._inverse * (x, y)

def resolve_window(
    bbox: Optional[BoundingBox],
    raster_size: Tuple[int, int],
    transformer: Optional[DatasetTransformer] = None
) -> PixelWindow:
    """
    Compute the source pixel window for a bounding box.

    Args:
        bbox: WGS84 bounding box or None for the full raster.
        raster_size: (width, height) of the source raster.
        transformer: Maps WGS84 coordinates to source pixels. Required
            when a bounding box is given.

    Returns:
        PixelWindow: The snapped, clamped window. Its right edge may lie
            past the raster width when the box crosses the raster edge.

    Raises:
        GeoreferencingError: If the source cannot be georeferenced.
        EmptyWindowError: If the box does not overlap the raster rows.
    """
    size_x, size_y = raster_size

    if bbox is None:
        return PixelWindow(0, 0, size_x, size_y)

    if transformer is None:
        raise GeoreferencingError()

    box = bbox.normalized()
    ul_x, ul_y = transformer.to_pixel(box.left, box.top)
    lr_x, lr_y = transformer.to_pixel(box.right, box.bottom)
    log.debug(f"Transformed {box} to pixels ({ul_x}, {ul_y}) - ({lr_x}, {lr_y})")

    # Wrap around the horizontal edge
    if ul_x < 0:
        ul_x += size_x
    if lr_x < 0:
        lr_x += size_x

    ul_x = math.floor(ul_x)
    ul_y = max(math.floor(ul_y), 0)
    lr_x = math.ceil(lr_x)
    lr_y = min(math.ceil(lr_y), size_y)

    width = min(lr_x - ul_x, size_x)
    height = min(lr_y - ul_y, size_y)
    if width < 0:
        width += size_x
    # Normalization folds a full turn onto itself
    if abs(bbox.right - bbox.left) >= 360:
        width = size_x
    ul_x %= size_x

    if width <= 0 or height <= 0:
        raise EmptyWindowError(
            f"Bounding box {bbox.left},{bbox.top},{bbox.right},{bbox.bottom} "
            f"does not overlap the {size_x}x{size_y} raster"
        )

    return PixelWindow(ul_x, ul_y, width, height)
