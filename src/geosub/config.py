# src/geosub/config.py

"""
This module is the configuration boundary of geosub.

It holds the engine configuration and converts external input (command-line
strings and JSON configuration files) into typed selectors and bounding
boxes. Strings shaped like /regex/ become compiled patterns here and only
here; the matcher never guesses.
"""

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .exceptions import ConfigError, RequestValidationError, SelectorError
from .selectors import BandSelector, Literal, MatchValue, Pattern
from .window import BoundingBox

log = logging.getLogger(__name__)

__all__ = [
    "DEFAULT_GDAL_OPTIONS",
    "EngineConfig",
    "FileConfig",
    "to_match_value",
    "convert_patterns",
    "parse_band_list",
    "parse_window",
    "parse_selectors",
    "load_config_file"
]

DEFAULT_GDAL_OPTIONS = {
    # Keep GRIB values in their native units
    "GRIB_NORMALIZE_UNITS": "NO"
}

class EngineConfig:
    """Configuration object for the retrieval engine.

    Args:
        gdal_options: GDAL configuration options applied (via rasterio.Env)
            to every raster operation. Defaults to DEFAULT_GDAL_OPTIONS.
        max_concurrency: Maximum number of band copies in flight. Default=16.
        timeout: Optional timeout in seconds for the whole retrieval.
        driver: Optional output driver; inferred from the output extension
            (falling back to the source driver) when None.
        staging: Staging mode for the output ('auto', 'in_memory', 'on_disk').
        creation_options: Creation options passed to the output driver.
    """
    def __init__(
        self,
        gdal_options: Optional[Dict[str, str]] = None,
        max_concurrency: int = 16,
        timeout: Optional[float] = None,
        driver: Optional[str] = None,
        staging: str = "auto",
        creation_options: Optional[Dict[str, str]] = None
    ):
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be at least 1, got {max_concurrency}")

        self.gdal_options = dict(DEFAULT_GDAL_OPTIONS if gdal_options is None else gdal_options)
        self.max_concurrency = max_concurrency
        self.timeout = timeout
        self.driver = driver
        self.staging = staging
        self.creation_options = dict(creation_options or {})

@dataclass
class FileConfig:
    """Contents of a JSON configuration file."""
    bands: Optional[List[BandSelector]] = None
    bbox: Optional[BoundingBox] = None

def _slash_pattern(text: str) -> Optional[re.Pattern]:
    if len(text) >= 2 and text.startswith('/') and text.endswith('/'):
        return re.compile(text[1:-1])
    return None

def to_match_value(value: Any) -> MatchValue:
    """
    Convert a raw configuration value into a MatchValue.

    '/regex/' strings and compiled patterns become Pattern; other strings
    and numbers become Literal.

    Raises:
        TypeError: For values that cannot be matched against text.
        re.error: For invalid /regex/ strings.
    """
    if isinstance(value, (Literal, Pattern)):
        return value
    if isinstance(value, re.Pattern):
        return Pattern(value)
    if isinstance(value, str):
        regex = _slash_pattern(value)
        return Pattern(regex) if regex is not None else Literal(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return Literal(str(value))
    raise TypeError(f"cannot match against a {type(value).__name__} value: {value!r}")

def convert_patterns(obj: Any) -> Any:
    """Recursively replace every /regex/ string in JSON data with a Pattern."""
    if isinstance(obj, dict):
        return {key: convert_patterns(value) for key, value in obj.items()}
    if isinstance(obj, list):
        return [convert_patterns(value) for value in obj]
    if isinstance(obj, str):
        regex = _slash_pattern(obj)
        return Pattern(regex) if regex is not None else obj
    return obj

def parse_selectors(raw: Any) -> List[BandSelector]:
    """Build selectors from a JSON 'bands' list."""
    if not isinstance(raw, list):
        raise ConfigError(f"'bands' must be a list of selectors, got {type(raw).__name__}")
    return [BandSelector.from_mapping(item) for item in raw]

def parse_band_list(text: str) -> List[BandSelector]:
    """
    Parse a comma-separated band list.

    Each item is a band id (integer), a /regex/ matched against the
    description, or a plain string matched against the description.
    """
    selectors = []
    for item in text.split(','):
        item = item.strip()
        if not item:
            continue
        try:
            selectors.append(BandSelector(id=int(item)))
            continue
        except ValueError:
            pass
        try:
            selectors.append(BandSelector(description=to_match_value(item)))
        except re.error as e:
            raise RequestValidationError(f"Invalid band pattern {item}: {e}") from e
    return selectors

def parse_window(text: str) -> BoundingBox:
    """Parse a comma-separated 'left,top,right,bottom' window."""
    return BoundingBox.from_sequence(text.split(','))

def load_config_file(path: Union[str, Path]) -> FileConfig:
    """
    Read a JSON configuration file of the form {"bands": [...], "bbox": [...]}.

    Raises:
        ConfigError: If the file cannot be read or its contents are invalid.
    """
    path = Path(path)
    log.debug(f"Reading configuration from {path}")

    try:
        conf = json.loads(path.read_text())
        if not isinstance(conf, dict):
            raise ValueError("configuration must be a JSON object")

        bands = conf.get("bands")
        bbox = conf.get("bbox")
        return FileConfig(
            bands=parse_selectors(convert_patterns(bands)) if bands is not None else None,
            bbox=BoundingBox.from_sequence(bbox) if bbox is not None else None
        )
    except (OSError, ValueError, re.error, ConfigError, RequestValidationError, SelectorError) as e:
        raise ConfigError(f"Failed parsing {path}: {e}") from e
