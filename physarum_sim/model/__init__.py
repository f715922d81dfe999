"""Model package for the physarum simulation."""

from .agent import (AGENT_DTYPE, SPECIES_DTYPE, make_agent_pool,
                    make_species_table, off_field_count)
from .spawn import spawn_agents
from .fields import FieldBuffers
from .device import DeviceBuffer, DispatchPlan
from .kernels import ComputeBackend, NumpyBackend
from .stepper import SimulationStepper
from .state import FrameSnapshot, SimulationState
from .loop import SimulationLoop

__all__ = [
    'AGENT_DTYPE',
    'SPECIES_DTYPE',
    'make_agent_pool',
    'make_species_table',
    'off_field_count',
    'spawn_agents',
    'FieldBuffers',
    'DeviceBuffer',
    'DispatchPlan',
    'ComputeBackend',
    'NumpyBackend',
    'SimulationStepper',
    'FrameSnapshot',
    'SimulationState',
    'SimulationLoop',
]
