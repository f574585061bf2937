# src/bandsplit/exceptions.py

"""
This module defines the error hierarchy shared by every bandsplit subpackage.

All errors derive from BandsplitError so callers can catch library failures
in one place, while still matching the builtin type they specialize
(IOError, ValueError, KeyError).
"""

from typing import Any, Optional, Sequence, Tuple

__all__ = [
    "BandsplitError",
    "RasterIOError",
    "RasterValidationError",
    "InvalidDimensionError",
    "ChunkError",
    "ChunkReadError",
    "ChunkWriteError",
    "ShapeMismatchError"
]

class BandsplitError(Exception):
    """Base class for all bandsplit errors."""

class RasterIOError(BandsplitError, IOError):
    """A raster file could not be read or written."""

class RasterValidationError(BandsplitError, ValueError):
    """An array or its metadata violates the labeled array invariants."""

class InvalidDimensionError(BandsplitError, KeyError):
    """
    The requested dimension does not exist on the array.

    Args:
        dimension: The name that was requested.
        available: The dimension names the array actually carries.
    """
    def __init__(self, dimension: str, available: Sequence[str] = ()):
        self.dimension = dimension
        self.available = tuple(available)
        super().__init__(dimension)

    def __str__(self) -> str:
        return f"Dimension '{self.dimension}' not found. Available dimensions: {list(self.available)}"

class ChunkError(RasterIOError):
    """
    I/O failure while processing one chunk of the out-of-core loop.

    The chunk attribute carries the failing region so callers can resume
    or clean up; output written by earlier chunks is left as-is.
    """
    action = "process"

    def __init__(self, chunk: Any, reason: Optional[str] = None):
        self.chunk = chunk
        self.reason = reason
        super().__init__(chunk, reason)

    def __str__(self) -> str:
        msg = f"Failed to {self.action} chunk {self.chunk}"
        if self.reason:
            msg += f": {self.reason}"
        return msg

class ChunkReadError(ChunkError):
    action = "read"

class ChunkWriteError(ChunkError):
    action = "write"

class ShapeMismatchError(BandsplitError, AssertionError):
    """
    Internal invariant violation: a produced array does not have the shape
    implied by its dimensions. Never expected in correct operation.
    """
    def __init__(self, expected: Tuple[int, ...], actual: Tuple[int, ...], context: str = ""):
        self.expected = tuple(expected)
        self.actual = tuple(actual)
        self.context = context
        super().__init__(expected, actual)

    def __str__(self) -> str:
        where = f" in {self.context}" if self.context else ""
        return f"Shape mismatch{where}: expected {self.expected}, got {self.actual}"
