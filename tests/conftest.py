import math
from dataclasses import replace

import numpy as np
import pytest

from physarum_sim.config import (BoundaryPolicy, SimulationConfig, SimulationProfile,
                                 SpawnMode, SpeciesConfig)


class ConstantRng:
    """Stand-in for numpy.random.Generator that always returns the low end."""

    def __init__(self, fraction: float = 0.0):
        self.fraction = fraction

    def random(self, size=None):
        return np.full(size, self.fraction, dtype=np.float64)

    def uniform(self, low=0.0, high=1.0, size=None):
        return np.full(size, low + (high - low) * self.fraction, dtype=np.float64)

    def integers(self, low, high=None, size=None):
        return np.full(size, low, dtype=np.int64)


class ScriptedRng:
    """Replays fixed draws, one list per call, in the order they are made."""

    def __init__(self, *draws):
        self.draws = [np.asarray(d, dtype=np.float64) for d in draws]
        self.calls = []

    def _next(self, name, size):
        self.calls.append(name)
        values = self.draws.pop(0)
        assert values.shape[0] == (size if np.isscalar(size) else size[0])
        return values

    def random(self, size=None):
        return self._next('random', size)

    def uniform(self, low=0.0, high=1.0, size=None):
        return low + (high - low) * self._next('uniform', size)

    def integers(self, low, high=None, size=None):
        return self._next('integers', size).astype(np.int64)


@pytest.fixture
def species():
    return SpeciesConfig(
        speed=1.0,
        sensor_distance=5.0,
        sensor_angle=math.pi / 4,
        sensor_radius=1.0,
        turning_speed=0.0,
        species_mask=(1, 0, 0),
        color=(1.0, 0.5, 0.25, 1.0),
    )


@pytest.fixture
def profile(species):
    return SimulationProfile(
        steps_per_frame=1,
        agent_count=100,
        evaporation_speed=0.5,
        diffusion_speed=1.0,
        spawn_mode=SpawnMode.RANDOM,
        color=(1.0, 1.0, 1.0, 1.0),
        species=(species,),
        trail_weight=1.0,
        boundary=BoundaryPolicy.CLAMP,
    )


@pytest.fixture
def make_config(profile, tmp_path):
    def _make(resolution=(320, 240), seed=42, **profile_changes):
        return SimulationConfig(
            resolution=resolution,
            profile=replace(profile, **profile_changes),
            frames=3,
            delta_time=0.1,
            seed=seed,
            out_dir=tmp_path,
        )
    return _make
