"""Exception hierarchy for linear-manager.

Two branches matter to callers:

- ``FatalError`` aborts the whole run (bad credentials, an endpoint that never
  answered, unreadable snapshot, no target team).
- ``TrackerError`` describes a single failed remote call. The engine records
  it against the entity it concerns and carries on with the rest of the run.
"""

__all__ = [
    "LinearManagerError",
    "FatalError",
    "ConfigurationError",
    "SnapshotError",
    "TeamResolutionError",
    "TrackerUnavailableError",
    "TrackerError",
    "TrackerRequestError",
    "TrackerResponseError",
    "TrackerTransportError",
]


class LinearManagerError(Exception):
    """Base class for all linear-manager errors."""

    pass


class FatalError(LinearManagerError):
    """Run-level failure. Nothing further should be attempted."""

    pass


class ConfigurationError(FatalError):
    """Raised when required configuration (e.g. the API key) is missing or invalid."""

    pass


class SnapshotError(FatalError):
    """Raised when a snapshot cannot be read, parsed, or collected."""

    pass


class TeamResolutionError(FatalError):
    """Raised when the target team can neither be found nor created."""

    pass


class TrackerUnavailableError(FatalError):
    """Raised when the remote tracker cannot be reached at all."""

    pass


class TrackerError(LinearManagerError):
    """A single remote operation failed."""

    pass


class TrackerRequestError(TrackerError):
    """The tracker rejected the request (validation error, name collision, ...)."""

    pass


class TrackerResponseError(TrackerError):
    """The tracker answered with a payload that does not have the expected shape."""

    pass


class TrackerTransportError(TrackerError):
    """A request was lost in transit after the tracker had already answered once."""

    pass
