import math
from dataclasses import replace

import numpy as np
import pytest

from physarum_sim.config import SpawnMode
from physarum_sim.errors import AllocationFailure, ConfigurationError, SimulationBusyError
from physarum_sim.model.fields import FieldBuffers
from physarum_sim.model.kernels import NumpyBackend
from physarum_sim.model.loop import SimulationLoop
from physarum_sim.model.stepper import SimulationStepper


class RecordingBackend(NumpyBackend):
    """Records the timing arguments each agent stage receives."""

    def __init__(self):
        super().__init__()
        self.calls = []

    def update_agents(self, agents, species, trail_map, dt, elapsed_time,
                      trail_weight, boundary, plan):
        self.calls.append((dt, elapsed_time))
        super().update_agents(agents, species, trail_map, dt, elapsed_time,
                              trail_weight, boundary, plan)


def test_not_started_is_noop(make_config):
    loop = SimulationLoop(make_config())
    assert loop.run_frame(0.1) is None
    assert loop.state.fields is None
    assert loop.stepper.steps_executed == 0


def test_frame_returns_read_only_color_map(make_config):
    loop = SimulationLoop(make_config(resolution=(40, 30)))
    loop.start()
    color = loop.run_frame(0.1)
    assert color.shape == (30, 40, 4)
    with pytest.raises(ValueError):
        color[0, 0, 0] = 1.0


def test_fields_allocated_once(make_config):
    loop = SimulationLoop(make_config(resolution=(40, 30)))
    loop.start()
    loop.run_frame(0.1)
    fields = loop.state.fields
    for _ in range(3):
        loop.run_frame(0.1)
    assert loop.state.fields is fields


def test_steps_per_frame_share_frame_delta(make_config):
    backend = RecordingBackend()
    loop = SimulationLoop(make_config(resolution=(40, 30), steps_per_frame=3),
                          stepper=SimulationStepper(backend=backend))
    loop.start()
    loop.run_frame(0.5, elapsed_time=10.0)

    assert loop.stepper.steps_executed == 3
    assert [dt for dt, _ in backend.calls] == [0.5, 0.5, 0.5]
    assert [t for _, t in backend.calls] == pytest.approx([10.0, 10.5, 11.0])
    assert loop.state.elapsed_time == pytest.approx(11.5)
    assert loop.state.steps == 3
    assert loop.state.frame == 1


def test_loop_clock_accumulates_without_external_time(make_config):
    loop = SimulationLoop(make_config(resolution=(40, 30), steps_per_frame=2))
    loop.start()
    loop.run_frame(0.25)
    loop.run_frame(0.25)
    assert loop.state.elapsed_time == pytest.approx(1.0)


def test_pause_keeps_previous_color_map(make_config):
    loop = SimulationLoop(make_config(resolution=(40, 30)))
    loop.start()
    loop.run_frame(0.1)
    loop.run_frame(0.1)
    before = loop.color_map.copy()
    steps = loop.stepper.steps_executed

    loop.pause()
    color = loop.run_frame(0.1)
    assert np.array_equal(color, before)
    assert loop.stepper.steps_executed == steps

    loop.resume()
    loop.run_frame(0.1)
    assert loop.stepper.steps_executed == steps + 1


def test_start_twice_is_bit_identical(make_config):
    loop = SimulationLoop(make_config(seed=123, spawn_mode=SpawnMode.INWARD_CIRCLE))
    loop.start()
    first = loop.state.agents.copy()
    loop.run_frame(0.1)
    assert loop.state.agents.tobytes() != first.tobytes()

    loop.start()
    assert loop.state.agents.tobytes() == first.tobytes()
    assert loop.state.fields is None
    assert loop.state.frame == 0


def test_invalid_profile_is_rejected_without_side_effects(make_config, profile):
    loop = SimulationLoop(make_config())
    loop.start()
    agents = loop.state.agents.copy()

    bad_species = replace(profile.species[0], sensor_angle=4.0)
    with pytest.raises(ConfigurationError):
        loop.propose_profile(replace(profile, species=(bad_species,)))
    with pytest.raises(ConfigurationError):
        loop.propose_profile(replace(profile, species=()))
    with pytest.raises(ConfigurationError):
        loop.propose_profile(replace(profile, evaporation_speed=math.nan))

    assert loop.state.pending_profile is None
    assert loop.state.agents.tobytes() == agents.tobytes()


def test_profile_change_applies_on_restart(make_config, profile):
    loop = SimulationLoop(make_config(resolution=(40, 30)))
    loop.start()
    loop.run_frame(0.1)
    old_buffer = loop.stepper.agent_buffer

    bigger = loop.propose_profile(replace(profile, agent_count=250))
    loop.run_frame(0.1)
    assert len(loop.state.agents) == 100
    assert loop.state.profile is not bigger

    loop.restart()
    assert loop.state.profile is bigger
    assert len(loop.state.agents) == 250
    assert loop.stepper.agent_buffer is not old_buffer
    assert old_buffer.disposed
    loop.run_frame(0.1)


def test_resize_reallocates_on_next_frame(make_config):
    loop = SimulationLoop(make_config(resolution=(40, 30)))
    loop.start()
    loop.run_frame(0.1)
    old_fields = loop.state.fields

    loop.resize((20, 10))
    assert loop.state.fields is old_fields
    color = loop.run_frame(0.1)
    assert color.shape == (10, 20, 4)
    assert loop.state.resolution == (20, 10)
    assert loop.state.fields is not old_fields


def test_allocation_failure_keeps_previous_state(make_config):
    config = make_config(resolution=(32, 24))
    config.max_field_bytes = FieldBuffers.required_bytes((32, 24))
    loop = SimulationLoop(config)
    loop.start()
    loop.run_frame(0.1)
    fields = loop.state.fields

    loop.resize((320, 240))
    with pytest.raises(AllocationFailure):
        loop.run_frame(0.1)
    assert loop.state.resolution == (32, 24)
    assert loop.state.fields is fields

    loop.run_frame(0.1)
    assert loop.state.fields is fields


def test_mutation_during_step_is_rejected(make_config):
    class MeddlingBackend(NumpyBackend):
        loop = None

        def diffuse(self, trail_map, dt, evaporation_speed, diffusion_speed, plan):
            self.loop.resize((10, 10))

    backend = MeddlingBackend()
    loop = SimulationLoop(make_config(resolution=(40, 30)),
                          stepper=SimulationStepper(backend=backend))
    backend.loop = loop
    loop.start()

    with pytest.raises(SimulationBusyError):
        loop.run_frame(0.1)
    assert not loop.stepper.in_step
    assert loop.state.pending_resolution is None


def test_off_field_diagnostic(make_config):
    loop = SimulationLoop(make_config(resolution=(40, 30)))
    loop.start()
    loop.state.agents['position'][:3] = [[-1.0, 5.0], [40.0, 5.0], [5.0, 30.5]]
    assert loop.off_field_count() == 3
    snapshot = loop.snapshot()
    assert snapshot.off_field == 3
    assert snapshot.agent_count == 100


def test_snapshot_tracks_trail(make_config):
    loop = SimulationLoop(make_config(resolution=(40, 30), spawn_mode=SpawnMode.OUTWARD_CIRCLE))
    loop.start()
    assert loop.snapshot().total_trail == 0.0
    loop.run_frame(0.1)
    snapshot = loop.snapshot()
    assert snapshot.frame == 1
    assert snapshot.total_trail > 0.0
    assert snapshot.to_csv_row()['steps'] == 1


def test_zero_agents_run(make_config):
    loop = SimulationLoop(make_config(resolution=(40, 30), agent_count=0))
    loop.start()
    color = loop.run_frame(0.1)
    assert len(loop.state.agents) == 0
    assert not color.any()


def test_close_releases_buffers(make_config):
    loop = SimulationLoop(make_config(resolution=(40, 30)))
    loop.start()
    loop.run_frame(0.1)
    loop.close()
    assert loop.stepper.agent_buffer is None
    assert loop.state.fields is None
    assert loop.run_frame(0.1) is None
