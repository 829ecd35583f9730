"""
Tests for the collection scheduler.

Covers:
- Default series definitions
- Readiness gating and its log-once behaviour
- Cancellation and per-group failure isolation
- Partial and empty snapshots
"""

import math

import pytest

from history.collector import (
    ARCHIVE_SCHEDULE, CancellationToken, CollectorState, MetricsHistoryCollector,
    create_definition
)
from history.readiness import BackendReadiness, CallableReadiness
from history.sources import CallbackMetricSource, StaticMetricSource
from rrd.definition import ConsolFun, DsType
from utils.config import CollectorConfig, GroupConfig

GROUPS = [
    GroupConfig('jvm', [], ['heap', 'load']),
    GroupConfig('core', ['requests'], ['size']),
    GroupConfig('node', [], ['free']),
]


class Clock:
    """Settable clock."""

    def __init__(self, now: float = 6000):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def source():
    return StaticMetricSource({
        'jvm': {'jvm': {'heap': 100.0, 'load': 0.5}},
        'core': {'core_a': {'requests': 10, 'size': 1000},
                 'core_b': {'requests': 20, 'size': 2000}},
        'node': {'node': {'free': 5e9}},
    })


@pytest.fixture
def clock():
    return Clock()


def make_collector(store, source, clock, readiness=None):
    config = CollectorConfig(collect_period=60, groups=GROUPS)
    return MetricsHistoryCollector(store, source, readiness=readiness, config=config, clock=clock)


def warnings(records):
    return [r for r in records if r['level'].name == 'WARNING' and 'not ready' in r['message']]


class TestDefaultDefinition:
    """Test definitions created for new registries."""

    def test_create_definition(self):
        """Test base step, heartbeat, start time and archive schedule."""
        definition = create_definition(['requests'], ['size'], 60, 6000)
        assert definition.step == 60
        assert definition.start_time == 5940
        assert definition.ds_names == ['requests', 'size']
        assert definition.datasources[0].ds_type is DsType.COUNTER
        assert definition.datasources[1].ds_type is DsType.GAUGE
        assert all(ds.heartbeat == 120 for ds in definition.datasources)
        assert [(a.steps, a.rows) for a in definition.archives] == list(ARCHIVE_SCHEDULE)
        assert all(a.consol_fun is ConsolFun.AVERAGE and a.xff == 0.5
                   for a in definition.archives)

    def test_archive_schedule(self):
        """Test the schedule spans four hours to a year at a 60s base step."""
        assert ARCHIVE_SCHEDULE == ((1, 240), (10, 288), (60, 336), (240, 180), (1440, 365))


class TestCollection:
    """Test collection cycles."""

    def test_collect_once(self, store, source, clock):
        """Test one cycle samples every registry of every group."""
        collector = make_collector(store, source, clock)
        assert collector.collect_once() == 4
        assert store.list() == ['core_a', 'core_b', 'jvm', 'node']
        assert store.last_update_time('jvm') == 6000
        assert store.open('core_b').last_value('size') == 2000
        assert collector.state is CollectorState.IDLE
        assert collector.stats['cycles'] == 1
        assert collector.stats['samples'] == 4

    def test_repeated_timestamp_dropped(self, store, source, clock):
        """Test a second cycle at the same time records nothing."""
        collector = make_collector(store, source, clock)
        collector.collect_once()
        assert collector.collect_once() == 0
        clock.now += 60
        assert collector.collect_once() == 4

    def test_partial_snapshot(self, store, source, clock):
        """Test missing metrics are recorded as undefined."""
        source.set_group('jvm', {'jvm': {'heap': 100.0}})
        collector = make_collector(store, source, clock)
        collector.collect_once()

        series = store.open('jvm')
        assert series.last_value('heap') == 100.0
        assert math.isnan(series.last_value('load'))

    def test_empty_registry_creates_series_only(self, store, source, clock):
        """Test a registry with no values gets a series but no sample."""
        source.set_group('node', {'node': {}})
        collector = make_collector(store, source, clock)
        assert collector.collect_once() == 3
        assert store.exists('node')
        assert store.last_update_time('node') == 6000 - 60

    def test_metric_filtering(self, store, clock):
        """Test only configured metric names are sampled."""
        source = StaticMetricSource({'jvm': {'jvm': {'heap': 1.0, 'other': 2.0}}})
        collector = make_collector(store, source, clock)
        collector.collect_once()
        assert store.open('jvm').ds_names == ['heap', 'load']

    def test_callback_source(self, store, clock):
        """Test providers that fail or return None are skipped."""
        source = CallbackMetricSource()
        source.register('jvm', 'jvm', 'heap', lambda: 42)
        source.register('jvm', 'jvm', 'load', lambda: 1 / 0)
        source.register('node', 'node', 'free', lambda: None)

        collector = make_collector(store, source, clock)
        assert collector.collect_once() == 1
        assert store.open('jvm').last_value('heap') == 42
        assert store.exists('node')

    def test_group_failure_isolated(self, store, source, clock, log_records):
        """Test a failing group does not stop later groups."""
        original = source.snapshot

        def snapshot(group, counters, gauges):
            if group == 'core':
                raise RuntimeError("registry unavailable")
            return original(group, counters, gauges)

        source.snapshot = snapshot
        collector = make_collector(store, source, clock)
        assert collector.collect_once() == 2
        assert store.list() == ['jvm', 'node']
        assert collector.stats['errors'] == 1
        assert any(r['level'].name == 'ERROR' for r in log_records)


class TestReadiness:
    """Test gating collection on backing store readiness."""

    def test_not_ready_logged_once(self, store, source, clock, log_records):
        """Test N not-ready cycles log one warning and collection then resumes."""
        state = {'ready': False}
        collector = make_collector(store, source, clock, CallableReadiness(lambda: state['ready']))

        for _ in range(5):
            assert collector.collect_once() == 0
            clock.now += 60
        assert len(warnings(log_records)) == 1
        assert collector.stats['skipped_cycles'] == 5
        assert store.list() == []

        state['ready'] = True
        assert collector.collect_once() == 4
        assert any('resuming' in r['message'] for r in log_records)

        # Nothing is replayed for the skipped cycles
        series = store.open('jvm')
        assert series.last_update == clock.now
        assert series.definition.start_time == clock.now - 60

    def test_warning_rearms(self, store, source, clock, log_records):
        """Test a second outage logs a second warning."""
        state = {'ready': False}
        collector = make_collector(store, source, clock, CallableReadiness(lambda: state['ready']))

        collector.collect_once()
        state['ready'] = True
        clock.now += 60
        collector.collect_once()
        state['ready'] = False
        clock.now += 60
        collector.collect_once()
        collector.collect_once()
        assert len(warnings(log_records)) == 2

    def test_readiness_error_is_not_ready(self, store, source, clock, log_records):
        """Test a failing readiness check skips the cycle."""
        def check():
            raise ConnectionError("no replica")

        collector = make_collector(store, source, clock, CallableReadiness(check))
        assert collector.collect_once() == 0
        assert collector.collect_once() == 0
        assert len(warnings(log_records)) == 1
        assert collector.stats['errors'] == 0

    def test_backend_readiness(self, backend):
        """Test the backend probe answers through the backend."""
        assert BackendReadiness(backend).is_ready()


class TestCancellation:
    """Test cooperative cancellation."""

    def test_cancelled_before_cycle(self, store, source, clock):
        """Test a cancelled token skips the whole cycle."""
        token = CancellationToken()
        token.cancel()
        collector = make_collector(store, source, clock)
        assert collector.collect_once(token) == 0
        assert store.list() == []

    def test_cancelled_between_groups(self, store, source, clock):
        """Test cancellation stops before the next group."""
        token = CancellationToken()
        original = source.snapshot

        def snapshot(group, counters, gauges):
            token.cancel()
            return original(group, counters, gauges)

        source.snapshot = snapshot
        collector = make_collector(store, source, clock)
        assert collector.collect_once(token) == 1
        assert store.list() == ['jvm']

    def test_start_stop(self, store, source, clock):
        """Test the background thread stops promptly."""
        collector = make_collector(store, source, clock)
        collector.start()
        assert collector.running
        collector.stop(timeout=5)
        assert not collector.running

    def test_token_wait(self):
        """Test waiting on a cancelled token returns immediately."""
        token = CancellationToken()
        assert not token.wait(0)
        token.cancel()
        assert token.cancelled
        assert token.wait(10)
