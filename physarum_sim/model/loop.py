"""Frame driver and lifecycle of a simulation run."""

import logging
from typing import Optional, Tuple, TYPE_CHECKING

import numpy as np

from ..config import SimulationProfile, validate_profile, validate_resolution
from ..errors import AllocationFailure, SimulationBusyError
from .agent import make_species_table, off_field_count
from .fields import FieldBuffers
from .spawn import spawn_agents
from .state import FrameSnapshot, SimulationState
from .stepper import SimulationStepper

if TYPE_CHECKING:
    from ..config import SimulationConfig

logger = logging.getLogger(__name__)


class SimulationLoop:
    """
    Drives `steps_per_frame` steps per presented frame.

    Lifecycle: create -> start() -> run_frame()* -> resize()/restart() ->
    close(). Profile edits go through propose_profile() and only take
    effect on the next start()/restart(). Resizes take effect on the next
    frame. None of the lifecycle calls are allowed while a step is running.
    """

    def __init__(self, config: "SimulationConfig",
                 stepper: Optional[SimulationStepper] = None):
        self.config = config
        self.stepper = stepper if stepper is not None else SimulationStepper(
            field_tile=config.field_tile, agent_group=config.agent_group)
        self.state = SimulationState(
            profile=validate_profile(config.profile),
            resolution=validate_resolution(config.resolution),
            seed=config.seed
        )

    def _require_frame_boundary(self, action: str) -> None:
        if self.stepper.in_step:
            raise SimulationBusyError(f"Cannot {action} while a step is in flight")

    @property
    def running(self) -> bool:
        return self.state.running

    @property
    def color_map(self) -> Optional[np.ndarray]:
        """Read-only view of the last presented color map, if any."""
        if self.state.fields is None:
            return None
        return self.state.fields.color_view()

    def propose_profile(self, profile: SimulationProfile) -> SimulationProfile:
        """
        Validate a new profile and queue it for the next start()/restart().

        Raises ConfigurationError without touching the running simulation.
        """
        validate_profile(profile)
        self.state.pending_profile = profile
        logger.info("Queued profile change (%d agents, %d species)",
                    profile.agent_count, profile.species_count)
        return profile

    def start(self) -> None:
        """Spawn a fresh AgentPool and mark the loop as running."""
        self._require_frame_boundary("start")
        state = self.state
        profile = state.pending_profile or state.profile
        validate_profile(profile)

        rng = np.random.default_rng(state.seed)
        agents = spawn_agents(state.resolution, profile.agent_count,
                              profile.species_count, profile.spawn_mode, rng)
        species = make_species_table(profile.species)
        self.stepper.bind(len(agents), len(species))

        state.profile = profile
        state.pending_profile = None
        state.agents = agents
        state.species = species
        state.fields = None
        state.frame = 0
        state.steps = 0
        state.elapsed_time = 0.0
        state.running = True
        logger.info("Started simulation: %d agents, %d species, %dx%d, spawn=%s",
                    len(agents), len(species), state.resolution[0],
                    state.resolution[1], profile.spawn_mode.name)

    def restart(self) -> None:
        """Discard agents and fields and start again."""
        logger.info("Restarting simulation")
        self.start()

    def pause(self) -> None:
        self.state.running = False

    def resume(self) -> None:
        """Continue a paused run without respawning."""
        self.state.running = True

    def resize(self, resolution: Tuple[int, int]) -> None:
        """Queue a new resolution; fields are reallocated on the next frame."""
        self._require_frame_boundary("resize")
        resolution = validate_resolution(resolution)
        if resolution == self.state.resolution and self.state.pending_resolution is None:
            return
        self.state.pending_resolution = resolution
        logger.info("Queued resize to %dx%d", *resolution)

    def _ensure_fields(self) -> FieldBuffers:
        """
        Allocate fields once after (re)start or resize.

        On AllocationFailure the state keeps its previous resolution and
        fields.
        """
        state = self.state
        target = state.pending_resolution or state.resolution
        if state.fields is not None and state.fields.matches(target):
            state.pending_resolution = None
            return state.fields
        try:
            fields = FieldBuffers.allocate(target, self.config.max_field_bytes)
        except AllocationFailure:
            state.pending_resolution = None
            raise
        state.fields = fields
        state.resolution = target
        state.pending_resolution = None
        return fields

    def run_frame(self, delta_time: float,
                  elapsed_time: Optional[float] = None) -> Optional[np.ndarray]:
        """
        Run one presented frame and return the read-only color map.

        Every sub-step uses the frame's `delta_time`; sub-step i sees
        elapsed time `elapsed_time + i * delta_time`. When `elapsed_time`
        is None the loop's own simulated clock is used. While paused or not
        started this is a no-op returning the previous color map.
        """
        state = self.state
        if not state.running:
            return self.color_map
        self._require_frame_boundary("run a frame")

        fields = self._ensure_fields()
        profile = state.profile
        base_time = state.elapsed_time if elapsed_time is None else float(elapsed_time)

        for i in range(profile.steps_per_frame):
            self.stepper.step(
                state.agents, state.species, fields, state.resolution,
                dt=delta_time,
                elapsed_time=base_time + i * delta_time,
                evaporation_speed=profile.evaporation_speed,
                diffusion_speed=profile.diffusion_speed,
                base_color=profile.color,
                trail_weight=profile.trail_weight,
                boundary=profile.boundary
            )
            state.steps += 1

        state.elapsed_time = base_time + profile.steps_per_frame * delta_time
        state.frame += 1
        logger.debug("Frame %d: agents off field: %d", state.frame, self.off_field_count())
        return fields.color_view()

    def off_field_count(self) -> int:
        """Agents outside [0, W) x [0, H) of the current resolution."""
        width, height = self.state.resolution
        return off_field_count(self.state.agents, width, height)

    def snapshot(self) -> FrameSnapshot:
        state = self.state
        return FrameSnapshot(
            frame=state.frame,
            steps=state.steps,
            elapsed_time=state.elapsed_time,
            agent_count=len(state.agents),
            off_field=self.off_field_count(),
            total_trail=state.fields.total_trail() if state.fields is not None else 0.0
        )

    def close(self) -> None:
        """Stop and release all buffers."""
        self._require_frame_boundary("close")
        self.stepper.release()
        self.state.fields = None
        self.state.running = False
