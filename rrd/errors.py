"""
Error taxonomy for the round-robin archive engine and the metrics history
services built on top of it.
"""

from typing import Iterable, Optional


class RrdError(Exception):
    """Base class for all metrics history errors."""


class NotFound(RrdError):
    """The named series does not exist."""

    def __init__(self, name: str):
        super().__init__(f"'{name}' doesn't exist")
        self.name = name


class AlreadyExists(RrdError):
    """A series with this name has already been created."""

    def __init__(self, name: str):
        super().__init__(f"'{name}' already exists")
        self.name = name


class StaleSample(RrdError):
    """Sample timestamp is not later than the series' last update time."""

    def __init__(self, name: str, timestamp: int, last_update: int):
        super().__init__(
            f"Bad sample time for '{name}': {timestamp}, "
            f"last update time was {last_update}"
        )
        self.name = name
        self.timestamp = timestamp
        self.last_update = last_update


class InvalidDefinition(RrdError, ValueError):
    """Series definition failed validation."""


class CorruptState(RrdError, ValueError):
    """Persisted series state could not be decoded."""


class BackendUnavailable(RrdError):
    """The persistence backend failed; the operation may be retried."""

    def __init__(self, operation: str, name: Optional[str] = None, cause: Optional[BaseException] = None):
        target = f" '{name}'" if name else ""
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Backend {operation}{target} failed{detail}")
        self.operation = operation
        self.name = name
        self.cause = cause


class NotReady(RrdError):
    """The backing store is absent or has no active replica."""


class BadRequest(RrdError):
    """Unknown action, format or missing parameter at the admin boundary."""

    def __init__(self, message: str, supported: Optional[Iterable[str]] = None):
        self.supported = list(supported) if supported is not None else []
        if self.supported:
            message = f"{message}, supported: {', '.join(self.supported)}"
        super().__init__(message)
