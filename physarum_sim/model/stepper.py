"""Per-step orchestration of the three compute stages."""

import logging
from typing import Optional, Sequence, Tuple

import numpy as np

from ..config import BoundaryPolicy
from ..errors import ResourceMismatchError
from .agent import AGENT_DTYPE, SPECIES_DTYPE
from .device import DeviceBuffer, DispatchPlan
from .fields import FieldBuffers
from .kernels import ComputeBackend, NumpyBackend

logger = logging.getLogger(__name__)


class SimulationStepper:
    """
    Runs one simulation step over host-visible state.

    Every call executes, in order:
    1. Diffuse & evaporate the trail map (field-parallel)
    2. Colorize the pre-deposit trail into the color map (field-parallel)
    3. Upload agents and species, sense/move/deposit (agent-parallel),
       read agents back

    Device buffers are sized exactly to the bound agent and species counts.
    bind() reallocates them when a count changes; a step whose host data no
    longer matches the bound buffers fails before anything is dispatched.
    """

    def __init__(self, backend: Optional[ComputeBackend] = None,
                 field_tile: Tuple[int, int] = (10, 10),
                 agent_group: int = 100):
        self.backend = backend if backend is not None else NumpyBackend()
        self.field_tile = tuple(field_tile)
        self.agent_group = agent_group

        self.agent_buffer: Optional[DeviceBuffer] = None
        self.species_buffer: Optional[DeviceBuffer] = None
        self.in_step = False

        # Diagnostics
        self.steps_executed = 0
        self.buffer_allocations = 0

    def bind(self, agent_count: int, species_count: int) -> None:
        """
        Size device buffers to the given counts, reallocating on change.

        New buffers are created before the old ones are disposed, so an
        AllocationFailure leaves the previous binding intact.
        """
        new_agents = new_species = None
        if self.agent_buffer is None or self.agent_buffer.count != agent_count:
            new_agents = DeviceBuffer('agents', agent_count, AGENT_DTYPE)
        if self.species_buffer is None or self.species_buffer.count != species_count:
            new_species = DeviceBuffer('species', species_count, SPECIES_DTYPE)

        if new_agents is not None:
            if self.agent_buffer is not None:
                self.agent_buffer.dispose()
            self.agent_buffer = new_agents
            self.buffer_allocations += 1
        if new_species is not None:
            if self.species_buffer is not None:
                self.species_buffer.dispose()
            self.species_buffer = new_species
            self.buffer_allocations += 1
        logger.debug("Bound device buffers: %d agents, %d species",
                     agent_count, species_count)

    def release(self) -> None:
        """Dispose of all device buffers."""
        for buffer in (self.agent_buffer, self.species_buffer):
            if buffer is not None:
                buffer.dispose()
        self.agent_buffer = None
        self.species_buffer = None

    def plan(self, resolution: Tuple[int, int], agent_count: int) -> DispatchPlan:
        return DispatchPlan(tuple(resolution), self.field_tile, agent_count, self.agent_group)

    def _validate(self, agents: np.ndarray, species: np.ndarray,
                  fields: FieldBuffers, resolution: Tuple[int, int]) -> None:
        """Fail fast on any host/device divergence."""
        if not fields.matches(resolution):
            raise ResourceMismatchError(
                f"Field buffers {fields.trail_map.shape[1]}x{fields.trail_map.shape[0]} "
                f"do not match resolution {resolution[0]}x{resolution[1]}")
        if agents.dtype != AGENT_DTYPE or species.dtype != SPECIES_DTYPE:
            raise ResourceMismatchError("Agent or species records have the wrong layout")
        if len(agents) != self.agent_buffer.count:
            raise ResourceMismatchError(
                f"AgentPool has {len(agents)} agents, bound buffer holds {self.agent_buffer.count}")
        if len(species) != self.species_buffer.count:
            raise ResourceMismatchError(
                f"SpeciesTable has {len(species)} entries, bound buffer holds {self.species_buffer.count}")
        if len(agents):
            indices = agents['species_index']
            if indices.min() < 0 or indices.max() >= len(species):
                raise ResourceMismatchError(
                    f"Species index outside [0, {len(species)}) in AgentPool")

    def step(self, agents: np.ndarray,
             species: np.ndarray,
             fields: FieldBuffers,
             resolution: Tuple[int, int],
             dt: float,
             elapsed_time: float,
             evaporation_speed: float,
             diffusion_speed: float,
             base_color: Sequence[float],
             trail_weight: float = 1.0,
             boundary: BoundaryPolicy = BoundaryPolicy.CLAMP
             ) -> Tuple[np.ndarray, FieldBuffers]:
        """
        Execute one step, mutating `agents` and `fields` in place.

        `species` is read only. Buffers are bound on the first call if
        bind() was never called.
        """
        resolution = (int(resolution[0]), int(resolution[1]))
        if self.agent_buffer is None or self.species_buffer is None:
            self.bind(len(agents), len(species))
        self._validate(agents, species, fields, resolution)

        plan = self.plan(resolution, len(agents))
        base_color = np.asarray(base_color, dtype=np.float32)

        self.in_step = True
        try:
            self.backend.diffuse(fields.trail_map, dt, evaporation_speed,
                                 diffusion_speed, plan)
            self.backend.colorize(fields.trail_map, fields.color_map, species,
                                  base_color, plan)

            self.agent_buffer.set_data(agents)
            self.species_buffer.set_data(species)
            self.backend.update_agents(self.agent_buffer.data, self.species_buffer.data,
                                       fields.trail_map, dt, elapsed_time,
                                       trail_weight, boundary, plan)
            self.agent_buffer.get_data(agents)
        finally:
            self.in_step = False

        self.steps_executed += 1
        return agents, fields
