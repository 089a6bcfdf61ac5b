# src/geosub/utils.py

"""
This module provides shared utility functions for raster access.

Functions include locator resolution for ENVI files and remote URLs,
band extraction and output driver inference.
"""
import logging
from pathlib import Path
from typing import List, Optional

import rasterio
from rasterio.drivers import driver_from_extension

from .selectors import Band

log = logging.getLogger(__name__)

__all__ = [
    "is_remote",
    "is_virtual_path",
    "resolve_locator",
    "extract_bands",
    "gdal_typename",
    "infer_driver"
]

REMOTE_SCHEMES = ("http://", "https://", "ftp://", "s3://", "gs://", "az://", "oss://")

# numpy dtype name -> GDAL data type name
GDAL_TYPENAMES = {
    "uint8": "Byte",
    "int8": "Int8",
    "uint16": "UInt16",
    "int16": "Int16",
    "uint32": "UInt32",
    "int32": "Int32",
    "uint64": "UInt64",
    "int64": "Int64",
    "float32": "Float32",
    "float64": "Float64",
    "complex64": "CFloat32",
    "complex128": "CFloat64"
}

def is_remote(locator: str) -> bool:
    return locator.lower().startswith(REMOTE_SCHEMES)

def is_virtual_path(locator: str) -> bool:
    """True for GDAL virtual filesystem paths (/vsimem/, /vsicurl/, ...)."""
    return locator.startswith("/vsi")

def resolve_locator(locator: str) -> str:
    """
    Resolve a source locator into something GDAL can open.

    Remote URLs and GDAL virtual paths pass through untouched. For local
    files, ENVI header/binary confusion is resolved: if 'image.hdr' is
    passed, redirects to 'image' (binary).
    """
    if is_remote(locator) or is_virtual_path(locator) or ":" in Path(locator).name:
        return locator

    path = Path(locator)
    if path.suffix.lower() == '.hdr':
        binary_path = path.with_suffix('')
        if binary_path.exists():
            log.debug(f"Redirecting {path.name} to binary file {binary_path.name}")
            return str(binary_path)
    return locator

def extract_bands(src: rasterio.DatasetReader) -> List[Band]:
    """
    Describe every band of an open dataset, in source order.
    """
    bands = []
    for idx in src.indexes:
        bands.append(Band(
            id=idx,
            description=src.descriptions[idx - 1] or "",
            data_type=src.dtypes[idx - 1],
            meta_data=dict(src.tags(idx)),
            nodata=src.nodatavals[idx - 1]
        ))
    return bands

def gdal_typename(dtype: str) -> str:
    """Map a numpy dtype name to the GDAL data type name used in VRT XML."""
    try:
        return GDAL_TYPENAMES[str(dtype)]
    except KeyError:
        raise ValueError(f"Unsupported raster data type: {dtype}")

def infer_driver(locator: str, fallback: Optional[str] = None) -> str:
    """
    Infer the GDAL driver for an output locator from its extension.

    Args:
        locator: Output path.
        fallback: Driver to use when the extension is unknown
            (typically the source driver).

    Returns:
        str: A GDAL driver short name.
    """
    try:
        return driver_from_extension(locator)
    except ValueError:
        if fallback is None:
            raise ValueError(f"Cannot infer an output format for {locator}")
        log.debug(f"Unknown extension for {locator}, using source driver {fallback}")
        return fallback
