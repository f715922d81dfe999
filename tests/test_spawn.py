import math

import numpy as np
import pytest

from physarum_sim.config import SpawnMode
from physarum_sim.errors import ConfigurationError
from physarum_sim.model.agent import AGENT_DTYPE
from physarum_sim.model.spawn import spawn_agents

from conftest import ConstantRng, ScriptedRng

RESOLUTION = (320, 240)
CENTER = np.array([160.0, 120.0])


@pytest.mark.parametrize("mode", list(SpawnMode))
def test_spawn_count_and_species_range(mode):
    agents = spawn_agents(RESOLUTION, 500, 3, mode, np.random.default_rng(1))
    assert len(agents) == 500
    assert agents.dtype == AGENT_DTYPE
    assert agents['species_index'].min() >= 0
    assert agents['species_index'].max() < 3


def test_outward_circle_spawns_at_center():
    agents = spawn_agents(RESOLUTION, 200, 2, SpawnMode.OUTWARD_CIRCLE,
                          np.random.default_rng(3))
    assert np.all(agents['position'][:, 0] == 160.0)
    assert np.all(agents['position'][:, 1] == 120.0)
    assert np.all((agents['angle'] >= 0) & (agents['angle'] <= 2 * math.pi))


def test_inward_circle_heads_toward_center():
    agents = spawn_agents(RESOLUTION, 1000, 1, SpawnMode.INWARD_CIRCLE,
                          np.random.default_rng(5))
    pos = agents['position'].astype(np.float64)
    heading = np.stack([np.cos(agents['angle']), np.sin(agents['angle'])], axis=1)
    to_center = CENTER - pos
    dots = np.sum(heading * to_center, axis=1)
    assert np.all(dots >= -1e-4)
    assert np.all(np.linalg.norm(to_center, axis=1) <= 240 * 0.5 + 1e-3)


def test_random_in_circle_radius():
    agents = spawn_agents(RESOLUTION, 1000, 1, SpawnMode.RANDOM_IN_CIRCLE,
                          np.random.default_rng(9))
    dist = np.linalg.norm(agents['position'] - CENTER, axis=1)
    assert np.all(dist <= 240 * 0.4 + 1e-3)


def test_random_spawn_is_biased_to_first_quadrant():
    agents = spawn_agents(RESOLUTION, 1000, 1, SpawnMode.RANDOM,
                          np.random.default_rng(11))
    x = agents['position'][:, 0]
    y = agents['position'][:, 1]
    assert np.all((x >= 0) & (x < 320) & (y >= 0) & (y < 240))
    assert np.array_equal(x, np.floor(x))
    assert np.all((agents['angle'] >= 0) & (agents['angle'] <= math.pi / 2 + 1e-6))


def test_seeded_spawn_is_reproducible():
    a = spawn_agents(RESOLUTION, 300, 4, SpawnMode.INWARD_CIRCLE, np.random.default_rng(21))
    b = spawn_agents(RESOLUTION, 300, 4, SpawnMode.INWARD_CIRCLE, np.random.default_rng(21))
    assert a.tobytes() == b.tobytes()


def test_random_in_circle_exact_sequence():
    rng = ScriptedRng(
        [0.25, 1.0, 0.0],   # radius^2
        [0.0, 0.25, 0.5],   # position angle, fraction of a turn
        [0.5, 0.0, 0.75],   # heading, fraction of a turn
        [1, 0, 1],          # species
    )
    agents = spawn_agents((100, 50), 3, 2, SpawnMode.RANDOM_IN_CIRCLE, rng)

    assert rng.calls == ['random', 'uniform', 'uniform', 'integers']
    np.testing.assert_allclose(agents['position'],
                               [[60.0, 25.0], [50.0, 45.0], [50.0, 25.0]], atol=1e-5)
    np.testing.assert_allclose(agents['angle'],
                               [math.pi, 0.0, 1.5 * math.pi], atol=1e-6)
    assert agents['species_index'].tolist() == [1, 0, 1]


def test_mocked_rng_fixes_heading():
    agents = spawn_agents(RESOLUTION, 4, 1, SpawnMode.OUTWARD_CIRCLE, ConstantRng(0.0))
    assert np.all(agents['angle'] == 0.0)
    assert np.all(agents['species_index'] == 0)


def test_zero_agents_without_species():
    agents = spawn_agents(RESOLUTION, 0, 0, SpawnMode.RANDOM, np.random.default_rng(0))
    assert len(agents) == 0


@pytest.mark.parametrize("count,species", [(-1, 1), (10, 0)])
def test_invalid_spawn_requests(count, species):
    with pytest.raises(ConfigurationError):
        spawn_agents(RESOLUTION, count, species, SpawnMode.RANDOM, np.random.default_rng(0))


def test_invalid_resolution():
    with pytest.raises(ConfigurationError):
        spawn_agents((0, 240), 10, 1, SpawnMode.RANDOM, np.random.default_rng(0))


@pytest.mark.parametrize("raw,expected", [
    ("InwardCircle", SpawnMode.INWARD_CIRCLE),
    ("inward_circle", SpawnMode.INWARD_CIRCLE),
    ("RANDOM_IN_CIRCLE", SpawnMode.RANDOM_IN_CIRCLE),
    ("random-in-circle", SpawnMode.RANDOM_IN_CIRCLE),
    ("random", SpawnMode.RANDOM),
    (2, SpawnMode.OUTWARD_CIRCLE),
])
def test_spawn_mode_parse(raw, expected):
    assert SpawnMode.parse(raw) is expected


@pytest.mark.parametrize("raw", ["spiral", 7, None, True])
def test_spawn_mode_parse_rejects_unknown(raw):
    with pytest.raises(ConfigurationError):
        SpawnMode.parse(raw)
