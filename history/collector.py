"""
Collection Scheduler

Periodically pulls metric snapshots once the backing store is ready and
records them into per-registry series, creating each series on first use.
"""

import threading
import time
from enum import Enum
from typing import Callable, Dict, List, Optional

from rrd.definition import ConsolFun, DefinitionBuilder, DsType, SeriesDefinition
from rrd.errors import StaleSample
from utils.config import CollectorConfig, GroupConfig
from utils.logger import get_collector_logger

from .readiness import AlwaysReady, ReadinessProbe
from .sources import MetricSource
from .store import SeriesStore

log = get_collector_logger()

# (steps per row, rows): 4 hours, 48 hours, 2 weeks, 2 months, 1 year at 60s
ARCHIVE_SCHEDULE = ((1, 240), (10, 288), (60, 336), (240, 180), (1440, 365))
DEFAULT_XFF = 0.5


def create_definition(counters: List[str], gauges: List[str], period: int, now: int) -> SeriesDefinition:
    """
    Build the default definition for a registry series.

    The base step is the collect period; the start time is one step before
    now so the first sample is always accepted. Datasources tolerate one
    missed sample before recording a gap.
    """
    builder = DefinitionBuilder(period, now - period)
    for name in counters:
        builder.add_datasource(name, DsType.COUNTER, period * 2)
    for name in gauges:
        builder.add_datasource(name, DsType.GAUGE, period * 2)
    for steps, rows in ARCHIVE_SCHEDULE:
        builder.add_archive(ConsolFun.AVERAGE, DEFAULT_XFF, steps, rows)
    return builder.build()


class CancellationToken:
    """Cooperative cancellation signal shared with the collection loop."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to timeout seconds; True if cancelled meanwhile."""
        return self._event.wait(timeout)


class CollectorState(Enum):
    """Collection cycle states."""
    WAITING_FOR_BACKEND = "waiting_for_backend"
    COLLECTING = "collecting"
    IDLE = "idle"


class MetricsHistoryCollector:
    """
    Single-threaded periodic metrics collection.

    Each cycle checks backing store readiness, then collects the configured
    groups in order. Failures are isolated to the group (or cycle) in which
    they happen.
    """

    def __init__(self, store: SeriesStore, source: MetricSource,
                 readiness: Optional[ReadinessProbe] = None,
                 config: Optional[CollectorConfig] = None,
                 clock: Callable[[], float] = time.time):
        """
        Initialize collector.

        Args:
            store: Series store receiving samples
            source: Metric snapshot producer
            readiness: Backing store readiness probe
            config: Collect period and per-group metric names
            clock: Returns current epoch seconds
        """
        self.store = store
        self.source = source
        self.readiness = readiness or AlwaysReady()
        self.config = config or CollectorConfig()
        self.clock = clock

        self.state = CollectorState.WAITING_FOR_BACKEND
        self._log_not_ready = True
        self._token: Optional[CancellationToken] = None
        self._thread: Optional[threading.Thread] = None

        self.stats: Dict[str, Optional[float]] = {
            'cycles': 0,
            'skipped_cycles': 0,
            'samples': 0,
            'errors': 0,
            'last_cycle': None
        }

    @property
    def collect_period(self) -> int:
        return self.config.collect_period

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        """Start the collection thread."""
        if self.running:
            return

        self._token = CancellationToken()
        self._thread = threading.Thread(
            target=self._collect_loop, args=(self._token,),
            name="MetricsHistoryCollector", daemon=True)
        self._thread.start()
        log.info("Metrics collection started (period={}s)", self.collect_period)

    def stop(self, timeout: float = 5.0):
        """Cancel the collection thread and wait for it to finish."""
        if self._token:
            self._token.cancel()
        if self._thread:
            self._thread.join(timeout=timeout)
            self._thread = None
        log.info("Metrics collection stopped")

    def _collect_loop(self, token: CancellationToken):
        """Fixed-delay loop; the first cycle runs one period after start."""
        while not token.wait(self.collect_period):
            try:
                self.collect_once(token)
            except Exception:
                self.stats['errors'] += 1
                log.exception("Error in metrics collection cycle")

    def _backend_ready(self) -> bool:
        """Query readiness, logging once per transition into not-ready."""
        reason = "no active replica"
        try:
            ready = self.readiness.is_ready()
        except Exception as e:
            ready = False
            reason = f"readiness check failed: {e}"
            log.debug("Readiness check failed: {}", e)

        if not ready:
            if self._log_not_ready:
                log.warning("Backing store not ready ({}), skipping metrics collection", reason)
                self._log_not_ready = False
            return False

        if not self._log_not_ready:
            log.info("Backing store ready, resuming metrics collection")
        self._log_not_ready = True
        return True

    def collect_once(self, cancel: Optional[CancellationToken] = None) -> int:
        """
        Run one collection cycle.

        Args:
            cancel: Checked before collection and between groups

        Returns:
            Number of samples recorded
        """
        cancel = cancel or CancellationToken()
        self.state = CollectorState.WAITING_FOR_BACKEND
        if cancel.cancelled:
            return 0

        if not self._backend_ready():
            self.stats['skipped_cycles'] += 1
            return 0

        if cancel.cancelled:
            return 0

        self.state = CollectorState.COLLECTING
        recorded = 0
        try:
            for group in self.config.groups:
                if cancel.cancelled:
                    log.debug("Collection cancelled before group {}", group.name)
                    break
                try:
                    recorded += self._collect_group(group)
                except Exception:
                    self.stats['errors'] += 1
                    log.exception("Failed to collect group {}", group.name)
        finally:
            self.state = CollectorState.IDLE

        self.stats['cycles'] += 1
        self.stats['samples'] += recorded
        self.stats['last_cycle'] = self.clock()
        return recorded

    def _collect_group(self, group: GroupConfig) -> int:
        if not group.counters and not group.gauges:
            return 0

        log.debug("Collecting {}...", group.name)
        snapshot = self.source.snapshot(group.name, group.counters, group.gauges)
        if not snapshot:
            return 0

        now = int(self.clock())
        names = group.counters + group.gauges
        recorded = 0
        for registry, values in snapshot.items():
            self.store.create_if_absent(
                registry,
                lambda: create_definition(group.counters, group.gauges, self.collect_period, now))

            sample = {name: values[name] for name in names if values.get(name) is not None}
            if not sample:
                continue

            try:
                self.store.sample(registry, now, sample)
                recorded += 1
            except StaleSample as e:
                log.debug("Dropped stale sample: {}", e)
        return recorded
