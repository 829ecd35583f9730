"""
Metrics History

Periodic collection of metric snapshots into round-robin series, with
status, fetch and delete operations for administration.
"""

from .backend import RrdBackend, InMemoryBackend, SqliteBackend
from .store import SeriesStore
from .collector import (
    MetricsHistoryCollector,
    CancellationToken,
    CollectorState,
    create_definition,
    ARCHIVE_SCHEDULE
)
from .query import FetchEngine, FetchData, Format, SeriesStatus, format_data
from .readiness import AlwaysReady, BackendReadiness, CallableReadiness
from .render import GraphRenderer
from .sources import CallbackMetricSource, PsutilMetricSource, StaticMetricSource
from .handler import Cmd, MetricsHistoryHandler

__all__ = [
    'RrdBackend',
    'InMemoryBackend',
    'SqliteBackend',
    'SeriesStore',
    'MetricsHistoryCollector',
    'CancellationToken',
    'CollectorState',
    'create_definition',
    'ARCHIVE_SCHEDULE',
    'FetchEngine',
    'FetchData',
    'Format',
    'SeriesStatus',
    'format_data',
    'AlwaysReady',
    'BackendReadiness',
    'CallableReadiness',
    'GraphRenderer',
    'CallbackMetricSource',
    'PsutilMetricSource',
    'StaticMetricSource',
    'Cmd',
    'MetricsHistoryHandler'
]

__version__ = "1.0.0"
