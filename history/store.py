"""
Series Store

Owns the committed state of every series, serializes writers per series
name and persists state through an RrdBackend.

Writers copy the committed series, apply the change to the copy and swap it
in once complete, so readers always see a fully materialized state.
"""

import threading
from contextlib import contextmanager
from typing import Callable, Dict, List, Mapping, Optional, Set

from rrd import codec
from rrd.definition import SeriesDefinition
from rrd.errors import AlreadyExists, BackendUnavailable, NotFound, RrdError
from rrd.series import Series
from utils.logger import get_storage_logger

from .backend import DEFAULT_MAX_SERIES, RrdBackend

log = get_storage_logger()


class SeriesStore:
    """
    Explicitly owned registry of named series.

    Features:
    - create / open / create-if-absent with benign create races
    - Atomic per-series sampling (copy, update, swap in)
    - Write-through or bounded write-back persistence
    - Delete by name and delete-all
    """

    def __init__(self, backend: RrdBackend, sync_period: int = 0):
        """
        Initialize series store.

        Args:
            backend: Persistence backend
            sync_period: Seconds between write-back flushes; 0 writes through
        """
        self.backend = backend
        self.sync_period = sync_period
        self._series: Dict[str, Series] = {}
        self._dirty: Set[str] = set()
        self._name_locks: Dict[str, List] = {}
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._deleting_all = False
        self._generation = 0

        self._stop_event = threading.Event()
        self._flush_thread: Optional[threading.Thread] = None
        if sync_period > 0:
            self._flush_thread = threading.Thread(
                target=self._flush_loop, name="SeriesStoreFlusher", daemon=True)
            self._flush_thread.start()

    @contextmanager
    def _name_lock(self, name: str):
        """
        Hold the write lock of one series name.

        Entries are reference counted and dropped once no caller holds or
        waits for them. New holders wait while delete_all is running.
        """
        with self._lock:
            while self._deleting_all:
                self._idle.wait()
            entry = self._name_locks.get(name)
            if entry is None:
                entry = self._name_locks[name] = [threading.Lock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._lock:
                entry[1] -= 1
                if not entry[1]:
                    del self._name_locks[name]
                    if not self._name_locks:
                        self._idle.notify_all()

    def _call_backend(self, operation: str, name: Optional[str], fn: Callable, *args):
        try:
            return fn(*args)
        except RrdError:
            raise
        except Exception as e:
            log.error("Backend {} failed for {}: {}", operation, name or '*', e)
            raise BackendUnavailable(operation, name, e) from e

    def _committed(self, name: str) -> Series:
        """Committed state of name, loading it from the backend if needed."""
        with self._lock:
            series = self._series.get(name)
            generation = self._generation
        if series is not None:
            return series

        data = self._call_backend('load', name, self.backend.load, name)
        series = codec.decode(data, name)
        with self._lock:
            # A delete while loading wins over the stale bytes
            if generation != self._generation:
                raise NotFound(name)
            return self._series.setdefault(name, series)

    def _commit(self, name: str, series: Series):
        if self.sync_period > 0:
            with self._lock:
                self._series[name] = series
                self._dirty.add(name)
            return

        self._call_backend('save', name, self.backend.save, name, codec.encode(series))
        with self._lock:
            self._series[name] = series

    def create(self, name: str, definition: SeriesDefinition) -> Series:
        """
        Create a new series.

        Raises:
            AlreadyExists: a series with this name exists
        """
        with self._name_lock(name):
            if self.exists(name):
                raise AlreadyExists(name)
            series = Series(name, definition)
            self._commit(name, series)
        log.info("Created series {} (step={}, datasources={})",
                 name, definition.step, definition.ds_names)
        return series.copy()

    def open(self, name: str) -> Series:
        """
        Return a detached copy of the named series.

        Raises:
            NotFound: no such series
        """
        return self._committed(name).copy()

    def snapshot(self, name: str) -> Series:
        """Committed state of the named series; callers must not modify it."""
        return self._committed(name)

    def create_if_absent(self, name: str, definition_factory: Callable[[], SeriesDefinition]) -> bool:
        """
        Create the named series unless it already exists.

        Losing a concurrent create race is not an error.

        Returns:
            True if this call created the series
        """
        if self.exists(name):
            return False
        try:
            self.create(name, definition_factory())
            return True
        except AlreadyExists:
            log.debug("Series {} created concurrently", name)
            return False

    def get_or_create(self, name: str, definition_factory: Callable[[], SeriesDefinition]) -> Series:
        """Open the named series, creating it from definition_factory if absent."""
        self.create_if_absent(name, definition_factory)
        return self.open(name)

    def sample(self, name: str, timestamp: int, values: Mapping[str, Optional[float]],
               definition_factory: Optional[Callable[[], SeriesDefinition]] = None) -> None:
        """
        Record one sample for the named series.

        Args:
            name: Series name
            timestamp: Epoch seconds
            values: Datasource name -> value; unknown names are ignored
            definition_factory: Creates the series if it does not exist yet

        Raises:
            NotFound: series absent and no definition_factory given
            StaleSample: timestamp not later than the last update
        """
        if definition_factory is not None:
            self.create_if_absent(name, definition_factory)

        with self._name_lock(name):
            updated = self._committed(name).copy()
            updated.sample(timestamp, values)
            self._commit(name, updated)

    def last_update_time(self, name: str) -> int:
        return self._committed(name).last_update

    def exists(self, name: str) -> bool:
        with self._lock:
            if name in self._series:
                return True
        return self._call_backend('exists', name, self.backend.exists, name)

    def list(self, limit: int = DEFAULT_MAX_SERIES) -> List[str]:
        """Names of stored series in ascending order, at most limit."""
        names = set(self._call_backend('list', None, self.backend.list, limit))
        with self._lock:
            names.update(self._dirty)
        return sorted(names)[:limit]

    def delete(self, name: str):
        """Delete the named series; deleting an absent series is a no-op."""
        with self._name_lock(name):
            with self._lock:
                self._series.pop(name, None)
                self._dirty.discard(name)
                self._generation += 1
            self._call_backend('delete', name, self.backend.delete, name)
        log.info("Deleted series {}", name)

    def delete_all(self):
        """
        Delete every series.

        Waits for in-flight writes and flushes to finish and holds off new
        ones until the backend has been cleared.
        """
        with self._lock:
            while self._deleting_all:
                self._idle.wait()
            self._deleting_all = True
            while self._name_locks:
                self._idle.wait()
            self._series.clear()
            self._dirty.clear()
            self._generation += 1
        try:
            self._call_backend('delete_all', None, self.backend.delete_all)
        finally:
            with self._lock:
                self._deleting_all = False
                self._idle.notify_all()
        log.info("Deleted all series")

    def flush(self) -> int:
        """
        Persist series changed since the last flush.

        Returns:
            Number of series written
        """
        with self._lock:
            pending = sorted(self._dirty)

        written = 0
        for name in pending:
            with self._name_lock(name):
                with self._lock:
                    if name not in self._dirty:
                        continue
                    self._dirty.discard(name)
                    series = self._series.get(name)
                if series is None:
                    continue
                try:
                    self._call_backend('save', name, self.backend.save, name, codec.encode(series))
                    written += 1
                except BackendUnavailable:
                    with self._lock:
                        if name in self._series:
                            self._dirty.add(name)
        if written:
            log.debug("Flushed {} series", written)
        return written

    def _flush_loop(self):
        while not self._stop_event.wait(self.sync_period):
            try:
                self.flush()
            except Exception as e:
                log.error("Error in flush loop: {}", e)

    def close(self):
        """Stop background flushing, write pending changes and close the backend."""
        self._stop_event.set()
        if self._flush_thread:
            self._flush_thread.join(timeout=5)
            self._flush_thread = None
        self.flush()
        self.backend.close()
