"""
Metrics History Handler

Admin-facing facade: owns the series store, the collection scheduler and
the fetch engine, and answers list / status / get / delete requests.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from rrd.errors import BadRequest, NotFound
from utils.config import ConfigManager, StorageConfig
from utils.logger import get_query_logger

from .backend import InMemoryBackend, RrdBackend, SqliteBackend
from .collector import MetricsHistoryCollector
from .query import FetchEngine, Format, format_data
from .readiness import BackendReadiness, ReadinessProbe
from .render import GraphRenderer
from .sources import MetricSource, PsutilMetricSource
from .store import SeriesStore

log = get_query_logger()


class Cmd(Enum):
    """Supported admin actions."""
    LIST = "list"
    STATUS = "status"
    GET = "get"
    DELETE = "delete"

    @classmethod
    def get(cls, value: Optional[str]) -> Optional['Cmd']:
        if value is None:
            return None
        try:
            return cls(value.lower())
        except ValueError:
            return None

    @classmethod
    def names(cls) -> List[str]:
        return [c.value for c in cls]


def create_backend(storage: StorageConfig) -> RrdBackend:
    """Instantiate the configured backend."""
    if storage.backend == 'sqlite':
        return SqliteBackend(storage.path)
    if storage.backend == 'memory':
        return InMemoryBackend()
    raise BadRequest(f"Unknown storage backend '{storage.backend}'", supported=['memory', 'sqlite'])


class MetricsHistoryHandler:
    """
    Metrics history service.

    Responsibilities:
    - Build (or accept) the series store and its backend
    - Drive periodic collection
    - Serve list / status / data / delete requests
    """

    def __init__(self, config: Optional[ConfigManager] = None,
                 store: Optional[SeriesStore] = None,
                 source: Optional[MetricSource] = None,
                 readiness: Optional[ReadinessProbe] = None,
                 renderer: Optional[GraphRenderer] = None):
        """
        Initialize handler.

        Args:
            config: Configuration manager; defaults apply when omitted
            store: Series store; built from the storage config when omitted
            source: Metric source; psutil host metrics when omitted
            readiness: Backing store probe; backend lookup when omitted
            renderer: Graph renderer for the graph format
        """
        self.config = config
        self.storage_config = config.get_storage_config() if config else StorageConfig()
        collector_config = config.get_collector_config() if config else None

        if store is None:
            store = SeriesStore(create_backend(self.storage_config),
                                sync_period=self.storage_config.sync_period)
        self.store = store
        self.fetch_engine = FetchEngine(store)
        self.renderer = renderer or GraphRenderer()
        self.collector = MetricsHistoryCollector(
            store,
            source if source is not None else PsutilMetricSource(),
            readiness=readiness or BackendReadiness(store.backend),
            config=collector_config
        )

    def start(self):
        """Start periodic collection if enabled."""
        if self.collector.config.enabled:
            self.collector.start()
        else:
            log.info("Metrics collection disabled")

    def close(self):
        """Stop collection and flush the store."""
        self.collector.stop()
        self.store.close()

    def list_series(self, limit: Optional[int] = None) -> List[str]:
        return self.store.list(limit if limit is not None else self.storage_config.max_series)

    def get_status(self, name: str) -> Dict[str, Any]:
        """Status of a series, or an error payload if it does not exist."""
        try:
            status = self.fetch_engine.status(name)
        except NotFound as e:
            return {'error': str(e)}
        return {name: {'status': status.to_dict()}}

    def get_data(self, name: str, ds_names: Optional[Sequence[str]] = None,
                 wanted_range: Optional[Tuple[int, int]] = None,
                 fmt: str = Format.LIST.value) -> Dict[str, Any]:
        """
        Archive data of a series in the requested format.

        Raises:
            BadRequest: unknown format or datasource
        """
        output_format = Format.get(fmt)
        if output_format is None:
            raise BadRequest(f"unknown 'format' param '{fmt}'", supported=Format.names())
        try:
            fetched = self.fetch_engine.fetch(name, ds_names, wanted_range)
        except NotFound as e:
            return {'error': str(e)}
        return {name: {'data': format_data(fetched, output_format, self.renderer)}}

    def delete_series(self, name: str) -> Dict[str, Any]:
        """Delete one series; 'all' or '*' deletes every series."""
        if name.lower() == 'all' or name == '*':
            return self.delete_all()
        self.store.delete(name)
        return {'success': 'ok'}

    def delete_all(self) -> Dict[str, Any]:
        self.store.delete_all()
        return {'success': 'ok'}

    def handle_request(self, action: Optional[str], **params) -> Dict[str, Any]:
        """
        Dispatch an admin request.

        Args:
            action: One of list, status, get, delete
            params: name, rows, ds, range, format

        Raises:
            BadRequest: missing or unknown action, missing name, unknown format
        """
        if action is None:
            raise BadRequest("'action' is a required param")
        cmd = Cmd.get(action)
        if cmd is None:
            raise BadRequest(f"unknown 'action' param '{action}'", supported=Cmd.names())

        if cmd is Cmd.LIST:
            rows = params.get('rows')
            if rows is not None:
                try:
                    rows = int(rows)
                except (TypeError, ValueError):
                    raise BadRequest(f"'rows' must be an integer, got '{rows}'") from None
            return {'metrics': self.list_series(rows)}

        name = params.get('name')
        if name is None:
            raise BadRequest("'name' is a required param")

        if cmd is Cmd.STATUS:
            return self._wrap(self.get_status(name))
        if cmd is Cmd.GET:
            ds = params.get('ds')
            if isinstance(ds, str):
                ds = [ds]
            return self._wrap(self.get_data(
                name, ds, params.get('range'), params.get('format') or Format.LIST.value))
        return self.delete_series(name)

    @staticmethod
    def _wrap(result: Dict[str, Any]) -> Dict[str, Any]:
        if 'error' in result:
            return result
        return {'metrics': result}
