"""Exception hierarchy.

Exceptions are raised only while configuration is being loaded or when the
graph store is misused. Per-tick evaluation reports failures as data on the
result records instead.
"""


class WorldEvolverError(Exception):
    """Base class for every error raised by world_evolver."""


class ConfigurationError(WorldEvolverError):
    """Configuration could not be loaded."""


class DomainConfigError(ConfigurationError):
    """The domain configuration is malformed or internally inconsistent."""


class SystemConfigError(ConfigurationError):
    """A system definition is malformed or names an unknown system type."""

    def __init__(self, message: str, system_id: str | None = None):
        self.system_id = system_id
        if system_id:
            message = f"{system_id}: {message}"
        super().__init__(message)


class ActionConfigError(ConfigurationError):
    """An action definition is malformed."""


class GraphStoreError(WorldEvolverError):
    """The graph store was asked to do something that would break its invariants."""
