"""Initial agent distributions."""

import logging
from typing import Optional, Tuple

import numpy as np

from ..config import SpawnMode, validate_resolution
from ..errors import ConfigurationError
from .agent import make_agent_pool, empty_agent_pool

logger = logging.getLogger(__name__)

TWO_PI = 2.0 * np.pi


def _inside_unit_circle(rng: np.random.Generator, count: int) -> np.ndarray:
    """Uniform samples from the unit disk, shape (count, 2)."""
    radius = np.sqrt(rng.random(count))
    theta = rng.uniform(0.0, TWO_PI, size=count)
    return np.stack([radius * np.cos(theta), radius * np.sin(theta)], axis=1)


def spawn_agents(resolution: Tuple[int, int],
                 agent_count: int,
                 species_count: int,
                 mode: SpawnMode,
                 rng: Optional[np.random.Generator] = None) -> np.ndarray:
    """
    Create an AgentPool of `agent_count` agents for the given spawn mode.

    Positions are in field space, (0, 0) at the first cell. The random
    source is injectable so a seeded stream reproduces the pool exactly.
    Draw order: positions, headings, species indices.
    """
    width, height = validate_resolution(resolution)
    mode = SpawnMode.parse(mode)
    if not isinstance(agent_count, (int, np.integer)) or agent_count < 0:
        raise ConfigurationError(f"agent_count must be a non-negative integer, got {agent_count!r}")
    if agent_count > 0 and species_count < 1:
        raise ConfigurationError("Cannot assign species indices without any species")

    n = int(agent_count)
    if n == 0:
        return empty_agent_pool(0)
    if rng is None:
        rng = np.random.default_rng()

    center = np.array([width / 2.0, height / 2.0])

    if mode == SpawnMode.RANDOM:
        xs = rng.integers(0, width, size=n)
        ys = rng.integers(0, height, size=n)
        positions = np.stack([xs, ys], axis=1).astype(np.float64)
        # Direction drawn from the unit square, not the circle: skewed to
        # the first quadrant.
        direction = rng.random((n, 2))
        angles = np.arctan2(direction[:, 1], direction[:, 0])
    elif mode == SpawnMode.INWARD_CIRCLE:
        positions = center + _inside_unit_circle(rng, n) * height * 0.5
        to_center = center - positions
        angles = np.arctan2(to_center[:, 1], to_center[:, 0])
    elif mode == SpawnMode.OUTWARD_CIRCLE:
        positions = np.tile(center, (n, 1))
        angles = rng.uniform(0.0, TWO_PI, size=n)
    elif mode == SpawnMode.RANDOM_IN_CIRCLE:
        positions = center + _inside_unit_circle(rng, n) * (height * 0.4)
        angles = rng.uniform(0.0, TWO_PI, size=n)
    else:
        raise ConfigurationError(f"Unsupported spawn mode: {mode}")

    species_indices = rng.integers(0, species_count, size=n)

    logger.debug("Spawned %d agents (%s) on %dx%d field",
                 n, mode.name, width, height)
    return make_agent_pool(positions, angles, species_indices)
