"""Error taxonomy for the physarum simulation core."""


class SimulationError(Exception):
    """Base class for all recoverable simulation errors."""


class ConfigurationError(SimulationError, ValueError):
    """Profile, species or config values are non-finite or out of range."""


class ResourceMismatchError(SimulationError):
    """Host data no longer matches the buffers bound for a step."""


class AllocationFailure(SimulationError, MemoryError):
    """Field or device buffer creation failed."""


class SimulationBusyError(SimulationError, RuntimeError):
    """A lifecycle mutation was requested while a step was in flight."""
