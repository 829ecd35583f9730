"""
Metric sources: produce a snapshot of named numeric values per registry.
"""

from typing import Callable, Dict, Iterable, Mapping, Optional, Protocol

import psutil

from utils.logger import get_collector_logger

log = get_collector_logger()

Snapshot = Dict[str, Dict[str, float]]


class MetricSource(Protocol):
    """Anything able to answer a per-group metrics snapshot."""

    def snapshot(self, group: str, counters: Iterable[str], gauges: Iterable[str]) -> Snapshot:
        """Return registry name -> metric name -> value, restricted to the given names."""
        ...


class StaticMetricSource:
    """Serves a fixed, replaceable snapshot per group."""

    def __init__(self, snapshots: Optional[Mapping[str, Mapping[str, Mapping[str, float]]]] = None):
        self.snapshots: Dict[str, Dict[str, Dict[str, float]]] = {}
        for group, registries in (snapshots or {}).items():
            self.set_group(group, registries)

    def set_group(self, group: str, registries: Mapping[str, Mapping[str, float]]):
        self.snapshots[group] = {reg: dict(values) for reg, values in registries.items()}

    def snapshot(self, group: str, counters: Iterable[str], gauges: Iterable[str]) -> Snapshot:
        wanted = set(counters) | set(gauges)
        return {
            registry: {k: v for k, v in values.items() if k in wanted}
            for registry, values in self.snapshots.get(group, {}).items()
        }


class CallbackMetricSource:
    """Reads each metric from a registered zero-argument callable."""

    def __init__(self):
        self._providers: Dict[str, Dict[str, Dict[str, Callable[[], Optional[float]]]]] = {}

    def register(self, group: str, registry: str, metric: str, provider: Callable[[], Optional[float]]):
        """
        Register a metric provider.

        Args:
            group: Collection group (e.g. 'jvm', 'core', 'node')
            registry: Registry name, used as the series name
            metric: Metric name, used as the datasource name
            provider: Returns the current value, or None when unavailable
        """
        self._providers.setdefault(group, {}).setdefault(registry, {})[metric] = provider

    def snapshot(self, group: str, counters: Iterable[str], gauges: Iterable[str]) -> Snapshot:
        wanted = set(counters) | set(gauges)
        result: Snapshot = {}
        for registry, metrics in self._providers.get(group, {}).items():
            values: Dict[str, float] = {}
            for metric, provider in metrics.items():
                if metric not in wanted:
                    continue
                try:
                    value = provider()
                except Exception as e:
                    log.warning("Failed to read {} from {}: {}", metric, registry, e)
                    continue
                if value is not None:
                    values[metric] = float(value)
            result[registry] = values
        return result


class PsutilMetricSource(CallbackMetricSource):
    """
    Host and process metrics via psutil.

    Covers the default jvm and node gauges with their closest process/host
    equivalents.
    """

    def __init__(self, disk_path: str = "/", pid: Optional[int] = None):
        super().__init__()
        self.process = psutil.Process(pid)
        self.disk_path = disk_path
        # First call primes the CPU counters
        self.process.cpu_percent(interval=None)

        self.register('jvm', 'jvm', 'memory.heap.used', lambda: self.process.memory_info().rss)
        self.register('jvm', 'jvm', 'os.processCpuLoad',
                      lambda: self.process.cpu_percent(interval=None) / 100.0)
        self.register('jvm', 'jvm', 'os.systemLoadAverage', lambda: psutil.getloadavg()[0])
        self.register('node', 'node', 'CONTAINER.fs.coreRoot.usableSpace',
                      lambda: psutil.disk_usage(self.disk_path).free)
