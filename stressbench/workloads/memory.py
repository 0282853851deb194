"""
Memory-side helpers: available memory query and chunk allocation.

The memory query never returns a non-positive value; when psutil cannot answer,
the 8 GiB fallback is used so the allocator always has a target.
"""

from __future__ import annotations

import os
from typing import Callable, Optional

import numpy as np
import psutil

Logger = Callable[[str], None]

FALLBACK_MEMORY_BYTES = 8 * 1024 * 1024 * 1024

# Repeating 0..255 pattern, so chunks are never all-zero pages.
_FILL_PATTERN = np.arange(256, dtype=np.uint8)


def get_available_memory(verbose: bool = False, logger: Optional[Logger] = None) -> int:
    """Bytes currently available for allocation, or the 8 GiB fallback."""
    log = logger or print
    try:
        available = int(psutil.virtual_memory().available)
    except Exception as exc:  # pylint: disable=broad-except
        log(f"Error querying available memory: {exc}")
        available = 0

    if available <= 0:
        log("Failed to find available memory, using 8GB memory")
        return FALLBACK_MEMORY_BYTES

    if verbose:
        log(f"Found available memory: {available}")
    return available


def allocate_chunk(size_bytes: int) -> np.ndarray:
    """Allocate one chunk filled with deterministic non-zero content."""
    repeats = -(-size_bytes // _FILL_PATTERN.size)
    return np.tile(_FILL_PATTERN, repeats)[:size_bytes]


def logical_cpu_count() -> int:
    count = psutil.cpu_count(logical=True) or os.cpu_count()
    return count or 1


def current_rss_bytes() -> Optional[int]:
    """Return current RSS bytes, or None if the process cannot be inspected."""
    try:
        return psutil.Process(os.getpid()).memory_info().rss
    except Exception:  # pragma: no cover - psutil can raise on exit
        return None
