"""
In-memory state of one named series and the sample ingestion math.
"""

import math
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from .archive import Archive
from .definition import ConsolFun, DsDef, DsType, SeriesDefinition, normalize
from .errors import StaleSample

MAX_32_BIT = 2.0 ** 32
MAX_64_BIT = 2.0 ** 64


@dataclass
class ArchiveFetch:
    """Rows fetched from one archive."""
    arc_step: int
    timestamps: np.ndarray
    values: Dict[str, np.ndarray]


def _rate_or_level(ds: DsDef, old_time: int, old_value: float,
                   new_time: int, new_value: float,
                   boundaries: np.ndarray) -> np.ndarray:
    """Primary data points of one datasource for each base boundary."""
    points = np.full(len(boundaries), np.nan)
    elapsed = new_time - old_time
    if elapsed > ds.heartbeat or math.isnan(new_value):
        return points

    if ds.ds_type is DsType.GAUGE:
        if math.isnan(old_value):
            points[:] = new_value
        else:
            fraction = (boundaries - old_time) / elapsed
            points[:] = old_value + (new_value - old_value) * fraction
    elif ds.ds_type is DsType.ABSOLUTE:
        points[:] = new_value / elapsed
    elif not math.isnan(old_value):
        diff = new_value - old_value
        if ds.ds_type is DsType.COUNTER:
            if diff < 0:
                diff += MAX_32_BIT
            if diff < 0:
                diff += MAX_64_BIT - MAX_32_BIT
            if diff >= 0:
                points[:] = diff / elapsed
        else:
            points[:] = diff / elapsed

    if not math.isnan(ds.min_value):
        points[points < ds.min_value] = np.nan
    if not math.isnan(ds.max_value):
        points[points > ds.max_value] = np.nan
    return points


class Series:
    """
    One named series: definition, last raw values and archives.

    The last update time starts at the definition's start time; each accepted
    sample must be strictly later than it.
    """

    def __init__(self, name: str, definition: SeriesDefinition):
        self.name = name
        self.definition = definition
        self.last_update = definition.start_time
        self.last_values = np.full(len(definition.datasources), np.nan)
        self.archives: List[Archive] = [
            Archive(arc_def, len(definition.datasources), definition.step)
            for arc_def in definition.archives
        ]

    @property
    def step(self) -> int:
        return self.definition.step

    @property
    def ds_names(self) -> List[str]:
        return self.definition.ds_names

    def copy(self) -> 'Series':
        clone = Series.__new__(Series)
        clone.name = self.name
        clone.definition = self.definition
        clone.last_update = self.last_update
        clone.last_values = self.last_values.copy()
        clone.archives = [archive.copy() for archive in self.archives]
        return clone

    def last_value(self, ds_name: str) -> float:
        return float(self.last_values[self.definition.ds_index(ds_name)])

    def sample(self, timestamp: int, values: Mapping[str, Optional[float]]):
        """
        Record one sample.

        Datasources missing from values are recorded as undefined for the
        elapsed interval; names not in the definition are ignored.

        Raises:
            StaleSample: timestamp is not later than the last update
        """
        timestamp = int(timestamp)
        if timestamp <= self.last_update:
            raise StaleSample(self.name, timestamp, self.last_update)

        new_values = np.array([
            math.nan if values.get(ds.name) is None else float(values[ds.name])
            for ds in self.definition.datasources
        ])

        step = self.step
        old_time = self.last_update
        first_boundary = normalize(old_time, step) + step
        last_boundary = normalize(timestamp, step)

        if last_boundary >= first_boundary:
            boundaries = np.arange(first_boundary, last_boundary + step, step, dtype=np.int64)
            pdps = np.vstack([
                _rate_or_level(ds, old_time, float(self.last_values[i]),
                               timestamp, float(new_values[i]), boundaries)
                for i, ds in enumerate(self.definition.datasources)
            ])
            for archive in self.archives:
                archive.update(first_boundary, pdps)

        self.last_values = new_values
        self.last_update = timestamp

    def find_archive(self, consol_fun: ConsolFun, steps: int) -> Archive:
        for archive in self.archives:
            if archive.consol_fun is consol_fun and archive.steps == steps:
                return archive
        raise KeyError(f"No archive {consol_fun.value} with {steps} steps")

    def find_matching_archive(self, consol_fun: ConsolFun, fetch_start: int,
                              fetch_end: int, resolution: int = 1) -> Archive:
        """
        Pick the archive best suited for a range and resolution.

        Archives fully covering the range win, closest step first; otherwise
        the archive with the largest partial coverage is returned.
        """
        best_full: Optional[Archive] = None
        best_partial: Optional[Archive] = None
        best_step_diff = 0
        best_match = 0

        for archive in self.archives:
            if archive.consol_fun is not consol_fun:
                continue
            arc_step = archive.arc_step
            arc_start = archive.start_time(self.last_update) - arc_step
            arc_end = archive.end_time(self.last_update)
            if arc_end >= fetch_end and arc_start <= fetch_start:
                step_diff = abs(arc_step - resolution)
                if best_full is None or step_diff < best_step_diff:
                    best_full = archive
                    best_step_diff = step_diff
            else:
                match = fetch_end - fetch_start
                if arc_start > fetch_start:
                    match -= arc_start - fetch_start
                if arc_end < fetch_end:
                    match -= fetch_end - arc_end
                if best_partial is None or best_match < match:
                    best_partial = archive
                    best_match = match

        if best_full is not None:
            return best_full
        if best_partial is not None:
            return best_partial
        raise KeyError(f"Series '{self.name}' has no {consol_fun.value} archive")

    def fetch(self, archive: Archive, fetch_start: int, fetch_end: int,
              ds_names: Optional[Sequence[str]] = None) -> ArchiveFetch:
        """Fetch rows from one archive for the requested datasources."""
        names = list(ds_names) if ds_names else self.ds_names
        indices = [self.definition.ds_index(name) for name in names]
        timestamps, values = archive.fetch(indices, fetch_start, fetch_end, self.last_update)
        return ArchiveFetch(
            arc_step=archive.arc_step,
            timestamps=timestamps,
            values={name: values[i] for i, name in enumerate(names)},
        )

    def default_window(self, archive: Archive) -> Tuple[int, int]:
        """Archive window widened by one row on each side."""
        return (archive.start_time(self.last_update) - archive.arc_step,
                archive.end_time(self.last_update) + archive.arc_step)
