# src/geosub/resources.py

"""
This module decides where an output is staged before it is encoded.

Small outputs are staged in RAM (rasterio MemoryFile); outputs that would
not fit safely are staged in a temporary GeoTIFF on disk.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Union

import numpy as np
import psutil

from .assemble import OutputPlan

log = logging.getLogger(__name__)

__all__ = [
    "StagingMode",
    "MemoryEstimate",
    "StagingReport",
    "estimate_memory",
    "determine_staging"
]

DEFAULT_SAFETY_FACTOR = 2.0
MIN_FREE_GB = 1.0

class StagingMode(Enum):
    """
    Where the output pixels are staged.

    Modes:
        IN_MEMORY: Stage in a rasterio MemoryFile. Fastest.
        ON_DISK: Stage in a temporary GeoTIFF. Safe for large outputs.
    """
    IN_MEMORY = "in_memory"
    ON_DISK = "on_disk"

@dataclass(frozen=True)
class MemoryEstimate:
    """Estimation of memory requirements for staging an output.

    Args:
        total_required_bytes: Bytes needed to stage the output (with overhead)
        available_system_bytes: Currently available system memory in bytes
        is_safe: Boolean indicating if in-memory staging is considered safe
        reason: Explanation for the safety assessment
    """
    total_required_bytes: int
    available_system_bytes: int
    is_safe: bool
    reason: str

@dataclass(frozen=True)
class StagingReport:
    """
    Contains the decision (mode) and the context for it.

    Args:
        mode: Recommended staging mode
        reason: Explanation for the recommendation
        memory_stats: MemoryEstimate backing the decision
    """
    mode: StagingMode
    reason: str
    memory_stats: MemoryEstimate

def estimate_memory(
    plan: OutputPlan,
    safety_factor: float = DEFAULT_SAFETY_FACTOR,
    min_free_gb: float = MIN_FREE_GB
) -> MemoryEstimate:
    """
    Checks whether the output of a plan fits in RAM.

    args:
        plan: OutputPlan to stage.
        safety_factor: Multiplier to account for the staging copy and the encoder.
        min_free_gb: Minimum free GB to leave available after staging.

    Returns:
        MemoryEstimate: Contains required bytes, available bytes, safety boolean, and reason.
    """
    bytes_per_pixel = np.dtype(plan.dtype).itemsize * plan.count
    raw_bytes = plan.width * plan.height * bytes_per_pixel
    total_required = int(raw_bytes * safety_factor)

    mem = psutil.virtual_memory()
    min_free_bytes = int(min_free_gb * (1024**3))
    is_safe = (total_required + min_free_bytes) <= mem.available

    reason = f"Req: {total_required/1e9:.2f}GB, Avail: {mem.available/1e9:.2f}GB"

    return MemoryEstimate(total_required, mem.available, is_safe, reason)

def determine_staging(
    plan: OutputPlan,
    user_mode: Union[str, StagingMode] = "auto"
) -> StagingReport:
    """
    Determines where to stage the output of a plan.

    Args:
        plan: OutputPlan to stage.
        user_mode: 'auto', 'in_memory' or 'on_disk'.
            auto: Stage in memory when it is safe, on disk otherwise
            in_memory: Force in-memory staging
            on_disk: Force on-disk staging

    Returns:
        StagingReport: Contains the staging mode and the context for that decision.
    """
    estimate = estimate_memory(plan)

    if isinstance(user_mode, StagingMode):
        user_mode = user_mode.value

    if user_mode != "auto":
        try:
            mode = StagingMode(user_mode)
        except ValueError:
            valid_modes = [m.value for m in StagingMode] + ["auto"]
            raise ValueError(f"Invalid staging mode '{user_mode}'. Must be one of: {valid_modes}")

        if mode == StagingMode.IN_MEMORY and not estimate.is_safe:
            log.warning(f"In-memory staging forced although it may not fit. {estimate.reason}")
        return StagingReport(mode, f"User forced mode: {user_mode}", estimate)

    if estimate.is_safe:
        return StagingReport(StagingMode.IN_MEMORY, f"Safe for RAM. {estimate.reason}", estimate)

    return StagingReport(StagingMode.ON_DISK, f"RAM full, staging on disk. {estimate.reason}", estimate)
