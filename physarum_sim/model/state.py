"""State value and snapshot dataclasses for the physarum simulation."""

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

import numpy as np

from ..config import SimulationProfile
from .agent import SPECIES_DTYPE, empty_agent_pool
from .fields import FieldBuffers


@dataclass(frozen=True)
class FrameSnapshot:
    """Immutable summary of the simulation after a presented frame."""
    frame: int
    steps: int
    elapsed_time: float
    agent_count: int
    off_field: int
    total_trail: float

    def to_csv_row(self) -> Dict:
        """Convert to CSV-compatible format."""
        return {
            "frame": self.frame,
            "steps": self.steps,
            "elapsed_time": round(self.elapsed_time, 6),
            "agent_count": self.agent_count,
            "off_field": self.off_field,
            "total_trail": round(self.total_trail, 6),
        }


@dataclass
class SimulationState:
    """
    Everything one simulation run owns.

    Held by SimulationLoop and passed explicitly; there is no module-level
    simulation state. `fields` stays None until the first frame after a
    (re)start or resize allocates it.
    """
    profile: SimulationProfile
    resolution: Tuple[int, int]
    seed: Optional[int] = None
    agents: np.ndarray = field(default_factory=lambda: empty_agent_pool(0))
    species: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=SPECIES_DTYPE))
    fields: Optional[FieldBuffers] = None
    pending_profile: Optional[SimulationProfile] = None
    pending_resolution: Optional[Tuple[int, int]] = None
    running: bool = False
    frame: int = 0
    steps: int = 0
    elapsed_time: float = 0.0
