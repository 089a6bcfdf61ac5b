# src/geosub/retrieve.py

"""
This module sequences a retrieval.

It opens the source, resolves the pixel window, selects the bands,
assembles the output plan and writes it, reporting progress through a
caller-supplied callback. Every dataset handle is released on every exit
path, including failures and timeouts.
"""

import asyncio
import logging
from contextlib import ExitStack
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Sequence, Union

import rasterio
from rasterio.errors import RasterioIOError

from .assemble import OutputPlan, assemble
from .config import EngineConfig
from .exceptions import RequestValidationError, RetrievalTimeoutError, SourceOpenError
from .selectors import BandSelector, select_bands
from .utils import extract_bands, resolve_locator
from .window import BoundingBox, DatasetTransformer, PixelWindow, resolve_window
from .writer import run_in_env, write_output

log = logging.getLogger(__name__)

__all__ = [
    "Stage",
    "RetrievalRequest",
    "Retrieval",
    "retrieve",
    "retrieve_sync"
]

class Stage(Enum):
    """Lifecycle of a retrieval."""
    IDLE = "idle"
    OPENING = "opening"
    RESOLVING_WINDOW = "resolving_window"
    SELECTING_BANDS = "selecting_bands"
    ASSEMBLING = "assembling"
    WRITING = "writing"
    CLOSED = "closed"
    FAILED = "failed"

@dataclass
class RetrievalRequest:
    """
    Everything a retrieval needs.

    Args:
        source: Source locator (path, URL or GDAL name).
        output: Output locator. Its extension selects the format.
        band_selectors: Band selectors, None retrieves every band.
        bbox: WGS84 bounding box, None retrieves the full extent.
            A [left, top, right, bottom] sequence is accepted too.
        verbose: Callback receiving progress messages.
        config: Engine configuration.
    """
    source: Optional[str]
    output: Optional[str]
    band_selectors: Optional[Sequence[BandSelector]] = None
    bbox: Optional[Union[BoundingBox, Sequence[float]]] = None
    verbose: Optional[Callable[[str], None]] = None
    config: EngineConfig = field(default_factory=EngineConfig)

    def validate(self):
        """
        Raises:
            RequestValidationError: If the source or output is missing.
        """
        if not self.source:
            raise RequestValidationError("No source specified")
        if not self.output:
            raise RequestValidationError("No output specified")
        if self.bbox is not None and not isinstance(self.bbox, BoundingBox):
            self.bbox = BoundingBox.from_sequence(self.bbox)

class _VerboseProgress:
    """Adapts writer progress to the verbose callback."""
    def __init__(self, report: Callable[[str], None]):
        self.report = report

    def on_progress(self, fraction: float, message: str) -> None:
        self.report(f"{round(fraction * 100)}% {message or ''}")

class Retrieval:
    """
    A single retrieval, driven through its stages by run().

    Args:
        request: The RetrievalRequest to execute.
    """
    def __init__(self, request: RetrievalRequest):
        self.request = request
        self.stage = Stage.IDLE
        self.window: Optional[PixelWindow] = None
        self.plan: Optional[OutputPlan] = None

    def _report(self, message: str):
        log.debug(message)
        if self.request.verbose is not None:
            self.request.verbose(message)

    def _advance(self, stage: Stage):
        log.debug(f"Retrieval stage: {self.stage.value} -> {stage.value}")
        self.stage = stage

    async def _open(self, locator: str) -> rasterio.DatasetReader:
        try:
            return await run_in_env(self.request.config.gdal_options, rasterio.open, locator)
        except RasterioIOError as e:
            raise SourceOpenError(f"Failed to open {self.request.source}: {e}") from e

    async def run(self):
        """
        Execute the retrieval.

        Raises:
            RetrievalError: Any error of the geosub taxonomy, after all
                handles have been released.
        """
        request = self.request
        try:
            request.validate()
            with ExitStack() as stack:
                self._report(f"retrieving {request.source}")

                self._advance(Stage.OPENING)
                source = stack.enter_context(await self._open(resolve_locator(request.source)))
                self._report(
                    f"identified {source.driver} {source.width}:{source.height} "
                    f"dataset with {source.count} bands"
                )

                self._advance(Stage.RESOLVING_WINDOW)
                transformer = None
                if request.bbox is not None:
                    transformer = DatasetTransformer.from_dataset(source)
                self.window = resolve_window(request.bbox, (source.width, source.height), transformer)

                self._advance(Stage.SELECTING_BANDS)
                bands = select_bands(request.band_selectors, extract_bands(source))

                self._advance(Stage.ASSEMBLING)
                self.plan = assemble(
                    bands,
                    self.window,
                    source.transform,
                    source.crs,
                    source.tags(),
                    source.width
                )

                ul_x, ul_y = self.window.x, self.window.y
                lr_x, lr_y = self.window.lower_right
                self._report(
                    f"retrieving {ul_x}:{ul_y} to {lr_x}:{lr_y} "
                    f"({self.window.width}x{self.window.height}), "
                    f"bands {','.join(str(b.id) for b in bands)}"
                )

                self._advance(Stage.WRITING)
                await write_output(
                    source,
                    self.plan,
                    request.output,
                    request.config,
                    _VerboseProgress(self._report)
                )
                self._report(f"wrote {request.output}")

            self._advance(Stage.CLOSED)
        except BaseException:
            self._advance(Stage.FAILED)
            raise

async def retrieve(request: RetrievalRequest) -> None:
    """
    Extract the requested bands and window of the source into the output.

    The whole retrieval is bounded by request.config.timeout when set.

    Raises:
        RetrievalTimeoutError: If the timeout expires. All handles are
            released before it is raised.
    """
    retrieval = Retrieval(request)
    timeout = request.config.timeout if request.config else None
    if timeout is not None:
        try:
            await asyncio.wait_for(retrieval.run(), timeout)
        except asyncio.TimeoutError as e:
            raise RetrievalTimeoutError(
                f"Retrieval of {request.source} timed out after {timeout}s"
            ) from e
    else:
        await retrieval.run()

def retrieve_sync(request: RetrievalRequest) -> None:
    """Blocking wrapper around retrieve()."""
    asyncio.run(retrieve(request))
