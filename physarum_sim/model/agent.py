"""Fixed-layout agent and species records shared by host and compute stages."""

from typing import Sequence

import numpy as np

from ..config import SpeciesConfig


# One agent: float2 position, float angle, int species index (16 bytes).
AGENT_DTYPE = np.dtype([
    ('position', np.float32, (2,)),
    ('angle', np.float32),
    ('species_index', np.int32),
])

# One species: 5 floats, int3 mask, float4 color (48 bytes).
SPECIES_DTYPE = np.dtype([
    ('speed', np.float32),
    ('sensor_distance', np.float32),
    ('sensor_angle', np.float32),
    ('sensor_radius', np.float32),
    ('turning_speed', np.float32),
    ('species_mask', np.int32, (3,)),
    ('color', np.float32, (4,)),
])


def empty_agent_pool(count: int) -> np.ndarray:
    """Allocate a zeroed AgentPool of `count` records."""
    return np.zeros(count, dtype=AGENT_DTYPE)


def make_agent_pool(positions: np.ndarray, angles: np.ndarray,
                    species_indices: np.ndarray) -> np.ndarray:
    """Pack parallel arrays into an AgentPool."""
    pool = empty_agent_pool(len(angles))
    pool['position'] = positions
    pool['angle'] = angles
    pool['species_index'] = species_indices
    return pool


def make_species_table(species: Sequence[SpeciesConfig]) -> np.ndarray:
    """
    Build the SpeciesTable uploaded to the compute stages.

    The table is a copy; editing a profile afterwards does not touch it.
    """
    table = np.zeros(len(species), dtype=SPECIES_DTYPE)
    for i, s in enumerate(species):
        table[i] = (s.speed, s.sensor_distance, s.sensor_angle,
                    s.sensor_radius, s.turning_speed,
                    s.species_mask, s.color)
    return table


def off_field_count(agents: np.ndarray, width: int, height: int) -> int:
    """Count agents whose position lies outside [0, W) x [0, H)."""
    if len(agents) == 0:
        return 0
    x = agents['position'][:, 0]
    y = agents['position'][:, 1]
    outside = (x < 0) | (x >= width) | (y < 0) | (y >= height)
    return int(np.count_nonzero(outside))
