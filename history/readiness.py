"""
Readiness probes gating metrics collection on the backing store.
"""

from typing import Callable, Protocol

from .backend import RrdBackend


class ReadinessProbe(Protocol):
    """Answers whether the backing store can take writes."""

    def is_ready(self) -> bool:
        ...


class AlwaysReady:
    """Probe for stores that are ready as soon as they exist."""

    def is_ready(self) -> bool:
        return True


class CallableReadiness:
    """Wraps a zero-argument callable returning a bool."""

    def __init__(self, check: Callable[[], bool]):
        self.check = check

    def is_ready(self) -> bool:
        return bool(self.check())


class BackendReadiness:
    """Ready when the backend answers a lookup without failing."""

    def __init__(self, backend: RrdBackend, probe_name: str = "__readiness__"):
        self.backend = backend
        self.probe_name = probe_name

    def is_ready(self) -> bool:
        self.backend.exists(self.probe_name)
        return True
