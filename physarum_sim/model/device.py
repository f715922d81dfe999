"""Host/device transfer boundary: fixed-stride buffers and dispatch plans."""

from dataclasses import dataclass
from typing import Iterator, Tuple

import numpy as np

from ..errors import AllocationFailure, ResourceMismatchError


def _ceil_div(a: int, b: int) -> int:
    return -(-a // b)


class DeviceBuffer:
    """
    Fixed-size structured buffer on the compute side of the boundary.

    Mirrors a compute buffer: created for an exact record count and stride,
    filled with set_data, read back with get_data, released with dispose.
    Any size or layout divergence raises ResourceMismatchError instead of
    silently truncating.
    """

    def __init__(self, name: str, count: int, dtype: np.dtype):
        self.name = name
        self.count = count
        self.dtype = np.dtype(dtype)
        try:
            self._data = np.zeros(count, dtype=self.dtype)
        except MemoryError as e:
            raise AllocationFailure(f"Could not allocate buffer {name!r} ({count} records)") from e
        self.disposed = False

    @property
    def stride(self) -> int:
        return self.dtype.itemsize

    @property
    def data(self) -> np.ndarray:
        """Device-side records, for the compute stages only."""
        self._check_alive()
        return self._data

    def _check_alive(self) -> None:
        if self.disposed:
            raise ResourceMismatchError(f"Buffer {self.name!r} used after dispose")

    def _check_host(self, host: np.ndarray) -> None:
        self._check_alive()
        if host.dtype != self.dtype:
            raise ResourceMismatchError(
                f"Buffer {self.name!r} has stride {self.stride}, host data has {host.dtype.itemsize}")
        if len(host) != self.count:
            raise ResourceMismatchError(
                f"Buffer {self.name!r} holds {self.count} records, host has {len(host)}")

    def set_data(self, host: np.ndarray) -> None:
        """Copy host records into the buffer."""
        self._check_host(host)
        np.copyto(self._data, host)

    def get_data(self, host: np.ndarray) -> None:
        """Copy buffer records back into the host array, in place."""
        self._check_host(host)
        np.copyto(host, self._data)

    def dispose(self) -> None:
        self._data = None
        self.disposed = True

    def __repr__(self) -> str:
        return (f"DeviceBuffer(name={self.name!r}, count={self.count}, "
                f"stride={self.stride}, disposed={self.disposed})")


@dataclass(frozen=True)
class DispatchPlan:
    """
    Thread-group layout for one step.

    Group counts use ceiling division; the last tile row/column and the last
    agent group may be partial, so every cell and agent is covered even when
    the extents are not multiples of the group sizes.
    """
    resolution: Tuple[int, int]
    field_tile: Tuple[int, int]
    agent_count: int
    agent_group: int

    @property
    def field_groups(self) -> Tuple[int, int]:
        width, height = self.resolution
        tile_x, tile_y = self.field_tile
        return (_ceil_div(width, tile_x), _ceil_div(height, tile_y))

    @property
    def agent_groups(self) -> int:
        return _ceil_div(self.agent_count, self.agent_group)

    def field_tiles(self) -> Iterator[Tuple[slice, slice]]:
        """Yield (rows, cols) slices of every tile, remainders included."""
        width, height = self.resolution
        tile_x, tile_y = self.field_tile
        for y0 in range(0, height, tile_y):
            for x0 in range(0, width, tile_x):
                yield (slice(y0, min(y0 + tile_y, height)),
                       slice(x0, min(x0 + tile_x, width)))

    def agent_slices(self) -> Iterator[slice]:
        """Yield the agent index range of every group, remainder included."""
        for start in range(0, self.agent_count, self.agent_group):
            yield slice(start, min(start + self.agent_group, self.agent_count))

    def field_coverage(self) -> int:
        """Number of cells the field tiles cover."""
        return sum((rows.stop - rows.start) * (cols.stop - cols.start)
                   for rows, cols in self.field_tiles())
