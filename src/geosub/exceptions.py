# src/geosub/exceptions.py

"""
This module defines the error taxonomy raised by geosub.

Every error derives from RetrievalError so that callers can catch a single
type at the top level. Messages are meant to be shown to the user as-is.
"""

from typing import Any, Optional

__all__ = [
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

class RetrievalError(Exception):
    """Base class for all geosub errors."""

class RequestValidationError(RetrievalError):
    """A required request field (source or output) is missing or malformed."""

class ConfigError(RetrievalError):
    """A configuration file could not be read or parsed."""

class SourceOpenError(RetrievalError):
    """The source dataset could not be opened or identified."""

class GeoreferencingError(RetrievalError):
    """The source has no usable spatial reference or geotransform."""

    def __init__(self, message: Optional[str] = None):
        super().__init__(
            message or
            "No valid georeferencing found, "
            "if you are retrieving a NetCDF file, "
            "you must specify the URL of a subdataset, not the master dataset"
        )

class SelectorError(RetrievalError):
    """
    A band selector could not be evaluated.

    Args:
        selector: The offending selector.
        cause: The underlying exception.
    """

    def __init__(self, selector: Any, cause: BaseException):
        self.selector = selector
        self.cause = cause
        super().__init__(f"Malformed selector: {selector!r} : {cause}")

class NoBandsSelectedError(RetrievalError):
    """The band selectors matched no band of the source."""

    def __init__(self, message: str = "No bands to download"):
        super().__init__(message)

class EmptyWindowError(RetrievalError):
    """The bounding box does not overlap the raster."""

class OutputWriteError(RetrievalError):
    """The output dataset could not be encoded or committed."""

class RetrievalTimeoutError(RetrievalError):
    """The retrieval did not complete within the configured timeout."""
