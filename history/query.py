"""
Query/Fetch Engine

Read-only introspection and range fetches over committed series state,
plus the output shapes offered to callers.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from rrd.definition import ArcDef, ConsolFun, SeriesDefinition
from rrd.errors import BadRequest
from rrd.series import Series
from utils.logger import get_query_logger

from .render import GraphRenderer
from .store import SeriesStore

log = get_query_logger()


@dataclass
class DatasourceStatus:
    name: str
    definition: str
    last_value: float


@dataclass
class ArchiveStatus:
    arc_def: ArcDef
    start_time: int
    end_time: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'archive': self.arc_def.dump(),
            'consolFun': self.arc_def.consol_fun.value,
            'xff': self.arc_def.xff,
            'steps': self.arc_def.steps,
            'rows': self.arc_def.rows,
            'startTime': self.start_time,
            'endTime': self.end_time,
        }


@dataclass
class SeriesStatus:
    """Snapshot of a series' definition and progress."""
    name: str
    last_update: int
    definition: SeriesDefinition
    datasources: List[DatasourceStatus] = field(default_factory=list)
    archives: List[ArchiveStatus] = field(default_factory=list)

    @property
    def step(self) -> int:
        return self.definition.step

    @property
    def ds_names(self) -> List[str]:
        return self.definition.ds_names

    def to_dict(self) -> Dict[str, Any]:
        return {
            'lastModified': self.last_update,
            'step': self.step,
            'datasourceCount': len(self.datasources),
            'archiveCount': len(self.archives),
            'datasourceNames': self.ds_names,
            'datasources': [
                {'datasource': ds.definition, 'lastValue': ds.last_value}
                for ds in self.datasources
            ],
            'archives': [archive.to_dict() for archive in self.archives],
        }


@dataclass
class FetchData:
    """Rows of one archive: one timestamp per row, one value array per datasource."""
    arc_def: ArcDef
    arc_step: int
    timestamps: np.ndarray
    values: Dict[str, np.ndarray]

    @property
    def key(self) -> str:
        return self.arc_def.dump()

    def to_frame(self) -> pd.DataFrame:
        """Values as a DataFrame indexed by UTC timestamp."""
        index = pd.to_datetime(self.timestamps, unit='s', utc=True)
        return pd.DataFrame(self.values, index=index)


class Format(Enum):
    """Output shapes for fetched data."""
    LIST = "list"
    STRING = "string"
    GRAPH = "graph"

    @classmethod
    def get(cls, value: Optional[str]) -> Optional['Format']:
        if value is None:
            return None
        try:
            return cls(value.lower())
        except ValueError:
            return None

    @classmethod
    def names(cls) -> List[str]:
        return [f.value for f in cls]


class FetchEngine:
    """Status and fetch operations over a SeriesStore."""

    def __init__(self, store: SeriesStore):
        self.store = store

    def status(self, name: str) -> SeriesStatus:
        """
        Describe a series.

        Raises:
            NotFound: no such series
        """
        series = self.store.snapshot(name)
        return SeriesStatus(
            name=name,
            last_update=series.last_update,
            definition=series.definition,
            datasources=[
                DatasourceStatus(ds.name, ds.dump(), float(series.last_values[i]))
                for i, ds in enumerate(series.definition.datasources)
            ],
            archives=[
                ArchiveStatus(archive.arc_def,
                              archive.start_time(series.last_update),
                              archive.end_time(series.last_update))
                for archive in series.archives
            ],
        )

    def _check_ds_names(self, series: Series, ds_names: Optional[Sequence[str]]) -> List[str]:
        if not ds_names:
            return series.ds_names
        unknown = [name for name in ds_names if name not in series.ds_names]
        if unknown:
            raise BadRequest(f"Unknown datasource(s) {unknown} in '{series.name}'",
                             supported=series.ds_names)
        return list(ds_names)

    def fetch(self, name: str, ds_names: Optional[Sequence[str]] = None,
              wanted_range: Optional[Tuple[int, int]] = None) -> Dict[str, FetchData]:
        """
        Fetch every archive of a series.

        Args:
            name: Series name
            ds_names: Datasources to return; all when empty
            wanted_range: (start, end) epoch seconds; defaults to each
                archive's window widened by one row on both sides

        Returns:
            Archive key -> FetchData, in definition order

        Raises:
            NotFound: no such series
            BadRequest: unknown datasource name
        """
        series = self.store.snapshot(name)
        names = self._check_ds_names(series, ds_names)

        result: Dict[str, FetchData] = {}
        for archive in series.archives:
            start, end = wanted_range if wanted_range else series.default_window(archive)
            rows = series.fetch(archive, start, end, names)
            data = FetchData(archive.arc_def, rows.arc_step, rows.timestamps, rows.values)
            result[data.key] = data
        log.debug("Fetched {} archives of {}", len(result), name)
        return result

    def fetch_best(self, name: str, start: int, end: int, resolution: int = 1,
                   consol_fun: ConsolFun = ConsolFun.AVERAGE,
                   ds_names: Optional[Sequence[str]] = None) -> FetchData:
        """Fetch a range from the single archive best matching it."""
        series = self.store.snapshot(name)
        names = self._check_ds_names(series, ds_names)
        try:
            archive = series.find_matching_archive(consol_fun, start, end, resolution)
        except KeyError as e:
            raise BadRequest(str(e), supported=sorted({a.consol_fun.value for a in series.archives}))
        rows = series.fetch(archive, start, end, names)
        return FetchData(archive.arc_def, rows.arc_step, rows.timestamps, rows.values)


def _join(items) -> str:
    return "\n".join(str(item) for item in items)


def format_data(fetched: Dict[str, FetchData], fmt: Format,
                renderer: Optional[GraphRenderer] = None) -> Dict[str, Dict[str, Any]]:
    """
    Shape fetched archives for output.

    LIST gives parallel arrays, STRING newline-joined blocks (timestamps in
    their own block), GRAPH one base64 PNG per datasource.
    """
    result: Dict[str, Dict[str, Any]] = {}
    for key, data in fetched.items():
        entry: Dict[str, Any] = {}
        values: Dict[str, Any] = {}

        if fmt is Format.LIST:
            entry['timestamps'] = [int(t) for t in data.timestamps]
            for ds_name, vals in data.values.items():
                values[ds_name] = [float(v) for v in vals]
        elif fmt is Format.STRING:
            entry['timestamps'] = _join(int(t) for t in data.timestamps)
            for ds_name, vals in data.values.items():
                values[ds_name] = _join(float(v) for v in vals)
        elif fmt is Format.GRAPH:
            renderer = renderer or GraphRenderer()
            for ds_name, vals in data.values.items():
                values[ds_name] = renderer.render(ds_name, data.timestamps, vals)
        else:
            raise BadRequest(f"Unknown format '{fmt}'", supported=Format.names())

        entry['values'] = values
        result[key] = entry
    return result


def is_undefined(value: float) -> bool:
    """True for the undefined-row sentinel."""
    return math.isnan(value)
