# src/geosub/__init__.py
#
# Copyright (c) The geosub project contributors
# This software is distributed under the Apache-2.0 license.
# See the NOTICE file for more information

"""
geosub retrieves a subset of a raster dataset (selected bands and/or a
geographic window) into a new dataset, reading only the pixels it needs.
"""
# Entry point
from .retrieve import (
    Stage,
    RetrievalRequest,
    Retrieval,
    retrieve,
    retrieve_sync
)

# Configuration boundary
from .config import (
    EngineConfig,
    FileConfig,
    load_config_file,
    parse_band_list,
    parse_window
)

# Band selection
from .selectors import (
    Literal,
    Pattern,
    Band,
    BandSelector,
    matches,
    matches_any,
    select_bands
)

# Windowing
from .window import (
    BoundingBox,
    PixelWindow,
    DatasetTransformer,
    normalize_longitude,
    resolve_window
)

# Assembly
from .assemble import (
    OutputPlan,
    assemble,
    render_vrt
)

# Errors
from .exceptions import (
    RetrievalError,
    RequestValidationError,
    ConfigError,
    SourceOpenError,
    GeoreferencingError,
    SelectorError,
    NoBandsSelectedError,
    EmptyWindowError,
    OutputWriteError,
    RetrievalTimeoutError
)

__all__ = [
    # Entry point
    "Stage",
    "RetrievalRequest",
    "Retrieval",
    "retrieve",
    "retrieve_sync",

    # Configuration
    "EngineConfig",
    "FileConfig",
    "load_config_file",
    "parse_band_list",
    "parse_window",

    # Selection
    "Literal",
    "Pattern",
    "Band",
    "BandSelector",
    "matches",
    "matches_any",
    "select_bands",

    # Windowing
    "BoundingBox",
    "PixelWindow",
    "DatasetTransformer",
    "normalize_longitude",
    "resolve_window",

    # Assembly
    "OutputPlan",
    "assemble",
    "render_vrt",

    # Errors
    "RetrievalError",
    "RequestValidationError",
    "ConfigError",
    "SourceOpenError",
    "GeoreferencingError",
    "SelectorError",
    "NoBandsSelectedError",
    "EmptyWindowError",
    "OutputWriteError",
    "RetrievalTimeoutError"
]
