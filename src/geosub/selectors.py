# src/geosub/selectors.py

"""
This module decides which bands of a source dataset are retrieved.

A band selector is a declarative predicate over a band's id, description
and metadata. Within one selector every present field must match; across a
collection of selectors any single match is enough.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from .exceptions import SelectorError

log = logging.getLogger(__name__)

__all__ = [
    "Literal",
    "Pattern",
    "MatchValue",
    "Band",
    "BandSelector",
    "matches",
    "matches_any",
    "select_bands"
]

@dataclass(frozen=True)
class Literal:
    """
    A plain string match value.

    Plain strings are searched as regular expressions, so 'SPDL' matches any
    description containing SPDL and '^TMP' anchors at the start.
    """
    text: str

    def matches(self, value: str) -> bool:
        if not isinstance(value, str):
            raise TypeError(f"cannot match {self.text!r} against {type(value).__name__}")
        return re.search(self.text, value) is not None

    def __repr__(self) -> str:
        return repr(self.text)

@dataclass(frozen=True)
class Pattern:
    """A pre-compiled regular expression match value."""
    regex: re.Pattern

    def matches(self, value: str) -> bool:
        if not isinstance(value, str):
            raise TypeError(f"cannot match /{self.regex.pattern}/ against {type(value).__name__}")
        return self.regex.search(value) is not None

    def __repr__(self) -> str:
        return f"/{self.regex.pattern}/"

MatchValue = Union[Literal, Pattern]

@dataclass(frozen=True)
class Band:
    """
    Read-only description of one band of the source dataset.

    Args:
        id: 1-based band index in the source.
        description: GDAL band description ('' when unset).
        data_type: numpy dtype name of the band.
        meta_data: Band metadata in the default domain.
        nodata: Nodata value of the band, if any.
    """
    id: int
    description: str = ""
    data_type: str = "float64"
    meta_data: Dict[str, str] = field(default_factory=dict)
    nodata: Optional[float] = None

@dataclass(frozen=True)
class BandSelector:
    """
    A conjunctive band predicate.

    Args:
        id: Exact band id to match.
        description: Value matched against the band description.
        meta_data: Metadata keys that must exist and whose values must match.
    """
    id: Optional[int] = None
    description: Optional[MatchValue] = None
    meta_data: Optional[Mapping[str, MatchValue]] = None

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "BandSelector":
        """
        Build a selector from its configuration shape.

        Accepts the keys 'id', 'description' and 'metaData'. Values must
        already have gone through slash-pattern conversion if patterns are
        wanted; raw strings become Literal values.
        """
        from .config import to_match_value

        if not isinstance(mapping, Mapping):
            raise SelectorError(mapping, TypeError("selector must be an object"))

        unknown = set(mapping) - {"id", "description", "metaData"}
        if unknown:
            raise SelectorError(mapping, KeyError(f"unknown selector keys: {sorted(unknown)}"))

        band_id = mapping.get("id")
        if band_id is not None and (isinstance(band_id, bool) or not isinstance(band_id, int)):
            raise SelectorError(mapping, TypeError(f"id must be an integer, got {band_id!r}"))

        description = mapping.get("description")
        meta_data = mapping.get("metaData")

        try:
            if description is not None:
                description = to_match_value(description)
            if meta_data is not None:
                if not isinstance(meta_data, Mapping):
                    raise TypeError("metaData must be an object")
                meta_data = {str(k): to_match_value(v) for k, v in meta_data.items()}
        except (TypeError, re.error) as e:
            raise SelectorError(mapping, e) from e

        return cls(id=band_id, description=description, meta_data=meta_data)

def matches(selector: BandSelector, band: Band) -> bool:
    """
    Test a single selector against a band.

    Raises:
        SelectorError: If the selector cannot be evaluated against the band.
    """
    try:
        if selector.id is not None and selector.id != band.id:
            return False

        if selector.description is not None and not selector.description.matches(band.description):
            return False

        if selector.meta_data is None:
            return True

        for key, expected in selector.meta_data.items():
            if key not in band.meta_data:
                return False
            if not expected.matches(band.meta_data[key]):
                return False

        return True
    except (TypeError, AttributeError, re.error) as e:
        raise SelectorError(selector, e) from e

def matches_any(selectors: Optional[Sequence[BandSelector]], band: Band) -> bool:
    """True if no selectors are given or if at least one selector matches."""
    if selectors is None:
        return True
    return any(matches(selector, band) for selector in selectors)

def select_bands(
    selectors: Optional[Sequence[BandSelector]],
    bands: Iterable[Band]
) -> List[Band]:
    """
    Filter bands through the selectors, keeping source order.

    An empty result is returned as-is; the assembler rejects it.
    """
    selected = [band for band in bands if matches_any(selectors, band)]
    log.debug(f"Selected {len(selected)} bands: {[b.id for b in selected]}")
    return selected
