"""Configuration dataclasses and YAML loader for the physarum simulation."""

import math
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import yaml

from .errors import ConfigurationError


Color = Tuple[float, float, float, float]


def _enum_key(value: str) -> str:
    """Normalise 'InwardCircle', 'inward-circle' or 'INWARD_CIRCLE'."""
    value = value.strip().replace('-', '_').replace(' ', '_')
    if '_' not in value and not value.isupper() and not value.islower():
        value = re.sub(r'(?<!^)(?=[A-Z])', '_', value)
    return value.upper()


class SpawnMode(Enum):
    """Initial position/heading distribution of the agents."""
    RANDOM = 0
    INWARD_CIRCLE = 1
    OUTWARD_CIRCLE = 2
    RANDOM_IN_CIRCLE = 3

    @classmethod
    def parse(cls, value: Any) -> "SpawnMode":
        if isinstance(value, cls):
            return value
        try:
            if isinstance(value, int) and not isinstance(value, bool):
                return cls(value)
            if isinstance(value, str):
                return cls[_enum_key(value)]
        except (KeyError, ValueError):
            pass
        raise ConfigurationError(f"Unknown spawn mode: {value!r}")


class BoundaryPolicy(Enum):
    """What the move stage does with agents that leave the field."""
    CLAMP = "clamp"  # clamp into the field and pick a new heading
    WRAP = "wrap"    # toroidal field
    NONE = "none"    # unconstrained, off-field agents deposit nothing

    @classmethod
    def parse(cls, value: Any) -> "BoundaryPolicy":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls[_enum_key(value)]
            except KeyError:
                pass
        raise ConfigurationError(f"Unknown boundary policy: {value!r}")


@dataclass(frozen=True)
class SpeciesConfig:
    speed: float
    sensor_distance: float
    sensor_angle: float      # radians, [0, pi]
    sensor_radius: float     # pooled neighbourhood half-size, in cells
    turning_speed: float     # radians per second
    species_mask: Tuple[int, int, int] = (1, 0, 0)
    color: Color = (1.0, 1.0, 1.0, 1.0)


@dataclass(frozen=True)
class SimulationProfile:
    """Immutable snapshot of the tunables of one simulation run."""
    steps_per_frame: int
    agent_count: int
    evaporation_speed: float
    diffusion_speed: float
    spawn_mode: SpawnMode
    color: Color
    species: Tuple[SpeciesConfig, ...]
    trail_weight: float = 1.0
    boundary: BoundaryPolicy = BoundaryPolicy.CLAMP

    @property
    def species_count(self) -> int:
        return len(self.species)


@dataclass
class SimulationConfig:
    resolution: Tuple[int, int]
    profile: SimulationProfile
    frames: int = 300
    delta_time: float = 1.0 / 60.0

    # Dispatch granularity
    field_tile: Tuple[int, int] = (10, 10)
    agent_group: int = 100
    max_field_bytes: Optional[int] = None

    # Export flags (can be overridden by CLI)
    csv_enabled: bool = True
    snapshot_enabled: bool = True
    gif_enabled: bool = False
    quiet: bool = False
    seed: Optional[int] = None
    out_dir: Path = field(default_factory=lambda: Path("./output"))


def _is_finite(*values: float) -> bool:
    try:
        return all(math.isfinite(float(v)) for v in values)
    except (TypeError, ValueError):
        return False


def validate_resolution(resolution: Sequence[int]) -> Tuple[int, int]:
    """Return resolution as an (int, int) pair or raise ConfigurationError."""
    try:
        width, height = (int(v) for v in resolution)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Resolution must be a (width, height) pair, got {resolution!r}")
    if width <= 0 or height <= 0:
        raise ConfigurationError(f"Resolution must be positive, got {width}x{height}")
    return width, height


def _validate_species(index: int, species: SpeciesConfig) -> None:
    numeric = (species.speed, species.sensor_distance, species.sensor_angle,
               species.sensor_radius, species.turning_speed)
    if not _is_finite(*numeric):
        raise ConfigurationError(f"Species {index} has non-finite parameters")
    if not 0.0 <= species.sensor_angle <= math.pi:
        raise ConfigurationError(
            f"Species {index} sensor_angle must lie in [0, pi], got {species.sensor_angle}")
    if species.sensor_radius < 0:
        raise ConfigurationError(f"Species {index} sensor_radius must be >= 0")
    if len(species.species_mask) != 3 or not all(
            isinstance(m, int) and not isinstance(m, bool) for m in species.species_mask):
        raise ConfigurationError(f"Species {index} species_mask must be 3 integers")
    if len(species.color) != 4 or not _is_finite(*species.color):
        raise ConfigurationError(f"Species {index} color must be 4 finite floats")


def validate_profile(profile: SimulationProfile) -> SimulationProfile:
    """
    Check a profile before it is allowed to drive a spawn.

    Returns the profile unchanged so it can be used inline; raises
    ConfigurationError on the first violation found.
    """
    if not isinstance(profile.steps_per_frame, int) or profile.steps_per_frame < 1:
        raise ConfigurationError(
            f"steps_per_frame must be a positive integer, got {profile.steps_per_frame!r}")
    if not isinstance(profile.agent_count, int) or profile.agent_count < 0:
        raise ConfigurationError(
            f"agent_count must be a non-negative integer, got {profile.agent_count!r}")
    if not _is_finite(profile.evaporation_speed, profile.diffusion_speed, profile.trail_weight):
        raise ConfigurationError("evaporation_speed, diffusion_speed and trail_weight must be finite")
    if profile.evaporation_speed < 0 or profile.diffusion_speed < 0:
        raise ConfigurationError("evaporation_speed and diffusion_speed must be >= 0")
    if profile.trail_weight < 0:
        raise ConfigurationError("trail_weight must be >= 0")
    if len(profile.color) != 4 or not _is_finite(*profile.color):
        raise ConfigurationError("Profile color must be 4 finite floats")
    if not isinstance(profile.spawn_mode, SpawnMode):
        raise ConfigurationError(f"Unknown spawn mode: {profile.spawn_mode!r}")
    if not isinstance(profile.boundary, BoundaryPolicy):
        raise ConfigurationError(f"Unknown boundary policy: {profile.boundary!r}")
    if profile.agent_count > 0 and not profile.species:
        raise ConfigurationError("At least one species is required when agent_count > 0")
    for i, species in enumerate(profile.species):
        _validate_species(i, species)
    return profile


def _parse_color(raw: Any, default: Color = (1.0, 1.0, 1.0, 1.0)) -> Color:
    if raw is None:
        return default
    values = [float(c) for c in raw]
    if len(values) == 3:
        values.append(1.0)
    return tuple(values)


def _parse_species(species_raw: List[Dict]) -> Tuple[SpeciesConfig, ...]:
    """Parse species entries; a missing mask defaults to a one-hot channel."""
    species = []
    for i, s in enumerate(species_raw):
        default_mask = tuple(1 if c == i % 3 else 0 for c in range(3))
        species.append(SpeciesConfig(
            speed=float(s['speed']),
            sensor_distance=float(s['sensor_distance']),
            sensor_angle=float(s['sensor_angle']),
            sensor_radius=float(s.get('sensor_radius', 1.0)),
            turning_speed=float(s['turning_speed']),
            species_mask=tuple(int(m) for m in s.get('species_mask', default_mask)),
            color=_parse_color(s.get('color'))
        ))
    return tuple(species)


def _parse_profile(profile_raw: Dict) -> SimulationProfile:
    """Parse and validate the profile section."""
    profile = SimulationProfile(
        steps_per_frame=int(profile_raw.get('steps_per_frame', 1)),
        agent_count=int(profile_raw['agent_count']),
        evaporation_speed=float(profile_raw['evaporation_speed']),
        diffusion_speed=float(profile_raw['diffusion_speed']),
        spawn_mode=SpawnMode.parse(profile_raw.get('spawn_mode', 'random')),
        color=_parse_color(profile_raw.get('color')),
        species=_parse_species(profile_raw.get('species', [])),
        trail_weight=float(profile_raw.get('trail_weight', 1.0)),
        boundary=BoundaryPolicy.parse(profile_raw.get('boundary', 'clamp'))
    )
    return validate_profile(profile)


def load_config(config_path: Path) -> SimulationConfig:
    """Load and validate YAML configuration file."""
    with open(config_path) as f:
        raw = yaml.safe_load(f)

    try:
        sim_raw = raw['simulation']
        profile = _parse_profile(raw['profile'])

        # Parse dispatch config (optional)
        dispatch_raw = raw.get('dispatch', {})
        field_tile = tuple(int(t) for t in dispatch_raw.get('field_tile', (10, 10)))
        agent_group = int(dispatch_raw.get('agent_group', 100))
        max_field_bytes = dispatch_raw.get('max_field_bytes')

        # Parse export config (optional)
        export_raw = raw.get('export', {})

        config = SimulationConfig(
            resolution=validate_resolution(sim_raw['resolution']),
            profile=profile,
            frames=int(sim_raw.get('frames', 300)),
            delta_time=float(sim_raw.get('delta_time', 1.0 / 60.0)),
            field_tile=field_tile,
            agent_group=agent_group,
            max_field_bytes=int(max_field_bytes) if max_field_bytes is not None else None,
            csv_enabled=export_raw.get('csv', True),
            snapshot_enabled=export_raw.get('snapshot', True),
            gif_enabled=export_raw.get('gif', False),
            seed=sim_raw.get('seed')
        )
    except ConfigurationError:
        raise
    except KeyError as e:
        raise ConfigurationError(f"Missing configuration key: {e}") from e
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid configuration value: {e}") from e

    if len(config.field_tile) != 2 or min(config.field_tile) < 1 or config.agent_group < 1:
        raise ConfigurationError("Dispatch tile and group sizes must be positive")
    if config.frames < 0 or not _is_finite(config.delta_time) or config.delta_time < 0:
        raise ConfigurationError("frames and delta_time must be non-negative")
    return config
