"""
Round-robin archives.

Each archive keeps a fixed ring of consolidated rows per datasource plus a
buffer holding the primary data points of the row currently being built.
Undefined values are stored as NaN.
"""

from typing import Sequence

import numpy as np

from .definition import ArcDef, ConsolFun, normalize


def consolidate(chunk: np.ndarray, consol_fun: ConsolFun, xff: float) -> np.ndarray:
    """
    Consolidate primary data points into rows.

    Args:
        chunk: Array of shape (datasources, rows, steps)
        consol_fun: Consolidation function
        xff: Maximum tolerated fraction of undefined points per row

    Returns:
        Array of shape (datasources, rows); NaN where the row is undefined
    """
    steps = chunk.shape[-1]
    defined = ~np.isnan(chunk)
    valid = defined.sum(axis=-1)
    nan_steps = steps - valid

    if consol_fun is ConsolFun.AVERAGE:
        total = np.where(defined, chunk, 0.0).sum(axis=-1)
        result = total / np.maximum(valid, 1)
    elif consol_fun is ConsolFun.TOTAL:
        result = np.where(defined, chunk, 0.0).sum(axis=-1)
    elif consol_fun is ConsolFun.MIN:
        result = np.fmin.reduce(chunk, axis=-1)
    elif consol_fun is ConsolFun.MAX:
        result = np.fmax.reduce(chunk, axis=-1)
    elif consol_fun is ConsolFun.FIRST:
        first = np.argmax(defined, axis=-1)
        result = np.take_along_axis(chunk, first[..., np.newaxis], axis=-1)[..., 0]
    elif consol_fun is ConsolFun.LAST:
        last = steps - 1 - np.argmax(defined[..., ::-1], axis=-1)
        result = np.take_along_axis(chunk, last[..., np.newaxis], axis=-1)[..., 0]
    else:
        raise ValueError(f"Unsupported consolidation function: {consol_fun}")

    ok = (nan_steps <= xff * steps) & (valid > 0)
    return np.where(ok, result, np.nan)


class Archive:
    """
    One fixed-capacity ring buffer of consolidated rows.

    Rows are stored oldest-first starting at ``pointer``; writing a row
    overwrites the oldest one once the ring is full.
    """

    def __init__(self, arc_def: ArcDef, ds_count: int, step: int):
        self.arc_def = arc_def
        self.step = step
        self.ds_count = ds_count
        self.robin = np.full((ds_count, arc_def.rows), np.nan)
        self.pending = np.full((ds_count, arc_def.steps), np.nan)
        self.pointer = 0

    @property
    def consol_fun(self) -> ConsolFun:
        return self.arc_def.consol_fun

    @property
    def xff(self) -> float:
        return self.arc_def.xff

    @property
    def steps(self) -> int:
        return self.arc_def.steps

    @property
    def rows(self) -> int:
        return self.arc_def.rows

    @property
    def arc_step(self) -> int:
        return self.step * self.arc_def.steps

    def end_time(self, last_update: int) -> int:
        """Timestamp of the newest row."""
        return normalize(last_update, self.arc_step)

    def start_time(self, last_update: int) -> int:
        """Timestamp of the oldest row."""
        return self.end_time(last_update) - (self.rows - 1) * self.arc_step

    def copy(self) -> 'Archive':
        clone = Archive.__new__(Archive)
        clone.arc_def = self.arc_def
        clone.step = self.step
        clone.ds_count = self.ds_count
        clone.robin = self.robin.copy()
        clone.pending = self.pending.copy()
        clone.pointer = self.pointer
        return clone

    def _slot(self, boundary: int) -> int:
        # Row R covers base boundaries R - arc_step + step .. R
        return ((boundary - self.step) % self.arc_step) // self.step

    def _store_rows(self, rows: np.ndarray):
        """Append rows (datasources x n) to the ring, keeping the newest."""
        count = rows.shape[1]
        if count == 0:
            return
        if count > self.rows:
            rows = rows[:, -self.rows:]
            count = self.rows
        index = (self.pointer + np.arange(count)) % self.rows
        self.robin[:, index] = rows
        self.pointer = (self.pointer + count) % self.rows

    def _finalize_row(self):
        row = consolidate(self.pending[:, np.newaxis, :], self.consol_fun, self.xff)
        self._store_rows(row)
        self.pending.fill(np.nan)

    def update(self, first_boundary: int, pdps: np.ndarray):
        """
        Push consecutive primary data points into the archive.

        Args:
            first_boundary: Timestamp of the first base boundary in pdps
            pdps: Array of shape (datasources, n), one column per base step
        """
        n = pdps.shape[1]
        i = 0
        boundary = first_boundary

        # Finish the row in progress
        while i < n:
            self.pending[:, self._slot(boundary)] = pdps[:, i]
            i += 1
            if boundary % self.arc_step == 0:
                self._finalize_row()
                boundary += self.step
                break
            boundary += self.step

        # Whole rows in bulk
        full_rows = (n - i) // self.steps
        if full_rows:
            keep = min(full_rows, self.rows)
            skip = full_rows - keep
            start = i + skip * self.steps
            chunk = pdps[:, start:start + keep * self.steps]
            chunk = chunk.reshape(self.ds_count, keep, self.steps)
            self._store_rows(consolidate(chunk, self.consol_fun, self.xff))
            i += full_rows * self.steps
            boundary += full_rows * self.arc_step

        # Start the next row
        while i < n:
            self.pending[:, self._slot(boundary)] = pdps[:, i]
            i += 1
            boundary += self.step

    def get_values(self, index: int, count: int) -> np.ndarray:
        """Read count rows starting at chronological index (oldest = 0)."""
        positions = (self.pointer + index + np.arange(count)) % self.rows
        return self.robin[:, positions]

    def all_values(self) -> np.ndarray:
        return self.get_values(0, self.rows)

    def fetch(self, ds_indices: Sequence[int], fetch_start: int, fetch_end: int,
              last_update: int):
        """
        Fetch rows for the given range.

        The range is snapped outwards to archive row boundaries; points
        outside the archive window are NaN.

        Returns:
            (timestamps, values) with values of shape (len(ds_indices), points)
        """
        arc_step = self.arc_step
        start = normalize(fetch_start, arc_step)
        end = normalize(fetch_end, arc_step)
        if end < fetch_end:
            end += arc_step

        timestamps = np.arange(start, end + arc_step, arc_step, dtype=np.int64)
        values = np.full((len(ds_indices), len(timestamps)), np.nan)

        arc_start = self.start_time(last_update)
        arc_end = self.end_time(last_update)
        match_start = max(start, arc_start)
        match_end = min(end, arc_end)
        if match_start <= match_end:
            count = (match_end - match_start) // arc_step + 1
            robin_index = (match_start - arc_start) // arc_step
            point_index = (match_start - start) // arc_step
            rows = self.get_values(robin_index, count)
            values[:, point_index:point_index + count] = rows[list(ds_indices), :]

        return timestamps, values
