"""
Series definitions: datasources, archives and the base sampling step.

A definition is immutable once a series has been created from it.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .errors import InvalidDefinition


def normalize(timestamp: int, step: int) -> int:
    """Snap a timestamp down to the nearest multiple of step."""
    return timestamp - timestamp % step


class DsType(Enum):
    """Datasource kinds."""
    GAUGE = "GAUGE"
    COUNTER = "COUNTER"
    DERIVE = "DERIVE"
    ABSOLUTE = "ABSOLUTE"


class ConsolFun(Enum):
    """Consolidation functions applied when building archive rows."""
    AVERAGE = "AVERAGE"
    MIN = "MIN"
    MAX = "MAX"
    LAST = "LAST"
    FIRST = "FIRST"
    TOTAL = "TOTAL"


def _bound_str(value: float) -> str:
    return "U" if math.isnan(value) else repr(value)


@dataclass(frozen=True)
class DsDef:
    """Datasource definition."""
    name: str
    ds_type: DsType
    heartbeat: int
    min_value: float = math.nan
    max_value: float = math.nan

    def dump(self) -> str:
        return (f"DS:{self.name}:{self.ds_type.value}:{self.heartbeat}:"
                f"{_bound_str(self.min_value)}:{_bound_str(self.max_value)}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'type': self.ds_type.value,
            'heartbeat': self.heartbeat,
            'min': None if math.isnan(self.min_value) else self.min_value,
            'max': None if math.isnan(self.max_value) else self.max_value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DsDef':
        return cls(
            name=data['name'],
            ds_type=DsType(data['type']),
            heartbeat=int(data['heartbeat']),
            min_value=math.nan if data.get('min') is None else float(data['min']),
            max_value=math.nan if data.get('max') is None else float(data['max']),
        )


@dataclass(frozen=True)
class ArcDef:
    """Archive definition: consolidation, xff, steps per row and row count."""
    consol_fun: ConsolFun
    xff: float
    steps: int
    rows: int

    def dump(self) -> str:
        return f"RRA:{self.consol_fun.value}:{self.xff!r}:{self.steps}:{self.rows}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'consolFun': self.consol_fun.value,
            'xff': self.xff,
            'steps': self.steps,
            'rows': self.rows,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ArcDef':
        return cls(
            consol_fun=ConsolFun(data['consolFun']),
            xff=float(data['xff']),
            steps=int(data['steps']),
            rows=int(data['rows']),
        )


@dataclass(frozen=True)
class SeriesDefinition:
    """
    Complete definition of a series.

    Attributes:
        step: Base sampling interval in seconds
        start_time: Epoch seconds strictly before the first permitted sample
        datasources: Ordered datasource definitions
        archives: Ordered archive definitions
    """
    step: int
    start_time: int
    datasources: Tuple[DsDef, ...] = field(default_factory=tuple)
    archives: Tuple[ArcDef, ...] = field(default_factory=tuple)

    def __post_init__(self):
        # Accept lists from callers but store tuples
        object.__setattr__(self, 'datasources', tuple(self.datasources))
        object.__setattr__(self, 'archives', tuple(self.archives))
        self.validate()

    def validate(self):
        """Raise InvalidDefinition if the definition is not usable."""
        if self.step <= 0:
            raise InvalidDefinition(f"Invalid step: {self.step}")
        if not self.datasources:
            raise InvalidDefinition("No datasources defined")
        if not self.archives:
            raise InvalidDefinition("No archives defined")

        seen = set()
        for ds in self.datasources:
            if not ds.name:
                raise InvalidDefinition("Datasource name must not be empty")
            if ds.name in seen:
                raise InvalidDefinition(f"Duplicate datasource name: {ds.name}")
            seen.add(ds.name)
            if ds.heartbeat <= 0:
                raise InvalidDefinition(f"Invalid heartbeat for {ds.name}: {ds.heartbeat}")
            if (not math.isnan(ds.min_value) and not math.isnan(ds.max_value)
                    and ds.min_value >= ds.max_value):
                raise InvalidDefinition(
                    f"Invalid min/max for {ds.name}: {ds.min_value}/{ds.max_value}")

        arc_keys = set()
        for arc in self.archives:
            if not 0 <= arc.xff < 1:
                raise InvalidDefinition(f"Invalid xff, must be >= 0 and < 1: {arc.xff}")
            if arc.steps < 1:
                raise InvalidDefinition(f"Invalid steps per row: {arc.steps}")
            if arc.rows < 1:
                raise InvalidDefinition(f"Invalid row count: {arc.rows}")
            key = (arc.consol_fun, arc.steps)
            if key in arc_keys:
                raise InvalidDefinition(f"Duplicate archive: {arc.dump()}")
            arc_keys.add(key)

    @property
    def ds_names(self) -> List[str]:
        return [ds.name for ds in self.datasources]

    def ds_index(self, name: str) -> int:
        for i, ds in enumerate(self.datasources):
            if ds.name == name:
                return i
        raise KeyError(f"Unknown datasource: {name}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'step': self.step,
            'startTime': self.start_time,
            'datasources': [ds.to_dict() for ds in self.datasources],
            'archives': [arc.to_dict() for arc in self.archives],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SeriesDefinition':
        return cls(
            step=int(data['step']),
            start_time=int(data['startTime']),
            datasources=tuple(DsDef.from_dict(d) for d in data['datasources']),
            archives=tuple(ArcDef.from_dict(a) for a in data['archives']),
        )


class DefinitionBuilder:
    """Incrementally assembles a SeriesDefinition."""

    def __init__(self, step: int, start_time: Optional[int] = None):
        self.step = step
        self.start_time = start_time
        self._datasources: List[DsDef] = []
        self._archives: List[ArcDef] = []

    def add_datasource(self, name: str, ds_type: DsType, heartbeat: int,
                       min_value: float = math.nan, max_value: float = math.nan) -> 'DefinitionBuilder':
        self._datasources.append(DsDef(name, ds_type, heartbeat, min_value, max_value))
        return self

    def add_archive(self, consol_fun: ConsolFun, xff: float, steps: int, rows: int) -> 'DefinitionBuilder':
        self._archives.append(ArcDef(consol_fun, xff, steps, rows))
        return self

    def add_archives(self, archives: Iterable[ArcDef]) -> 'DefinitionBuilder':
        self._archives.extend(archives)
        return self

    def build(self) -> SeriesDefinition:
        if self.start_time is None:
            raise InvalidDefinition("Start time is not set")
        return SeriesDefinition(
            step=self.step,
            start_time=self.start_time,
            datasources=tuple(self._datasources),
            archives=tuple(self._archives),
        )
