"""Persistent trail and color fields."""

import logging
from typing import Optional, Tuple

import numpy as np

from ..config import validate_resolution
from ..errors import AllocationFailure

logger = logging.getLogger(__name__)


class FieldBuffers:
    """
    The two persistent 2D surfaces of the simulation.

    trail_map: (H, W, 4) float32, saturated to [0, 1] by every stage.
               rgb carries per-species trail (weighted by species_mask),
               alpha carries total deposited intensity.
    color_map: (H, W, 4) float32, the presentable output of the colorize
               stage.

    Coordinate convention: (x, y) for API, [y, x] for array indexing.
    """

    CHANNELS = 4
    DTYPE = np.float32

    def __init__(self, width: int, height: int,
                 trail_map: np.ndarray, color_map: np.ndarray):
        self.width = width
        self.height = height
        self.trail_map = trail_map
        self.color_map = color_map

    @staticmethod
    def required_bytes(resolution: Tuple[int, int]) -> int:
        width, height = resolution
        return 2 * width * height * FieldBuffers.CHANNELS * np.dtype(FieldBuffers.DTYPE).itemsize

    @classmethod
    def allocate(cls, resolution: Tuple[int, int],
                 max_bytes: Optional[int] = None) -> "FieldBuffers":
        """
        Allocate zeroed fields for `resolution`.

        Raises AllocationFailure when the request exceeds `max_bytes` or
        NumPy cannot provide the memory. Nothing is returned half-built.
        """
        width, height = validate_resolution(resolution)
        needed = cls.required_bytes((width, height))
        if max_bytes is not None and needed > max_bytes:
            raise AllocationFailure(
                f"Fields for {width}x{height} need {needed} bytes, budget is {max_bytes}")
        shape = (height, width, cls.CHANNELS)
        try:
            trail_map = np.zeros(shape, dtype=cls.DTYPE)
            color_map = np.zeros(shape, dtype=cls.DTYPE)
        except MemoryError as e:
            raise AllocationFailure(f"Could not allocate {width}x{height} fields: {e}") from e
        logger.info("Allocated %dx%d field buffers (%d bytes)", width, height, needed)
        return cls(width, height, trail_map, color_map)

    @property
    def resolution(self) -> Tuple[int, int]:
        return (self.width, self.height)

    def matches(self, resolution: Tuple[int, int]) -> bool:
        """True if both maps are exactly sized to `resolution`."""
        expected = (resolution[1], resolution[0], self.CHANNELS)
        return self.trail_map.shape == expected and self.color_map.shape == expected

    def total_trail(self) -> float:
        """Sum of trail intensity over all cells and channels."""
        return float(self.trail_map.sum(dtype=np.float64))

    def color_view(self) -> np.ndarray:
        """Read-only view of the color map for presentation."""
        view = self.color_map.view()
        view.flags.writeable = False
        return view

    def reset(self) -> None:
        """Reset both fields to zero."""
        self.trail_map.fill(0.0)
        self.color_map.fill(0.0)
