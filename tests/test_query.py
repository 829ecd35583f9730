"""
Tests for status, fetch and output formats.
"""

import base64
import math

import numpy as np
import pytest

from history.query import FetchEngine, Format, format_data, is_undefined
from history.render import GraphRenderer
from rrd.definition import ConsolFun
from rrd.errors import BadRequest, NotFound
from tests.helpers import make_definition

FINE = "RRA:AVERAGE:0.5:1:5"
COARSE = "RRA:AVERAGE:0.5:4:3"


@pytest.fixture
def engine(store):
    store.create('s', make_definition(start_time=-60, gauges=('g', 'h')))
    for t, v in [(0, 10), (60, 20), (120, 30)]:
        store.sample('s', t, {'g': v, 'h': v * 2})
    return FetchEngine(store)


class TestStatus:
    """Test series introspection."""

    def test_status_matches_definition(self, engine, store):
        """Test status reports the definition and progress."""
        status = engine.status('s')
        assert status.definition.to_dict() == store.open('s').definition.to_dict()
        assert status.step == 60
        assert status.last_update == 120
        assert status.ds_names == ['g', 'h']
        assert [ds.last_value for ds in status.datasources] == [30, 60]

    def test_status_dict(self, engine):
        """Test the status payload shape."""
        status = engine.status('s').to_dict()
        assert status['lastModified'] == 120
        assert status['step'] == 60
        assert status['datasourceCount'] == 2
        assert status['archiveCount'] == 2
        assert status['datasources'][0]['datasource'] == "DS:g:GAUGE:120:U:U"
        fine = status['archives'][0]
        assert fine['archive'] == FINE
        assert fine['endTime'] == 120
        assert fine['startTime'] == 120 - 4 * 60

    def test_status_missing(self, engine):
        """Test status of an unknown series."""
        with pytest.raises(NotFound):
            engine.status('nope')


class TestFetch:
    """Test range fetches."""

    def test_fetch_range(self, engine):
        """Test values recorded at step boundaries come back unchanged."""
        fetched = engine.fetch('s', wanted_range=(0, 120))
        assert list(fetched) == [FINE, COARSE]
        data = fetched[FINE]
        assert list(data.timestamps) == [0, 60, 120]
        np.testing.assert_array_equal(data.values['g'], [10, 20, 30])
        np.testing.assert_array_equal(data.values['h'], [20, 40, 60])

    def test_fetch_default_window(self, engine):
        """Test the default window covers each archive plus one row either side."""
        data = engine.fetch('s')[FINE]
        assert len(data.timestamps) == 5 + 2
        assert data.timestamps[0] == -180
        assert data.timestamps[-1] == 180

    def test_fetch_selected_datasource(self, engine):
        """Test restricting the datasources returned."""
        fetched = engine.fetch('s', ['h'], (0, 120))
        assert list(fetched[FINE].values) == ['h']

    def test_fetch_unknown_datasource(self, engine):
        """Test unknown datasource names are a bad request."""
        with pytest.raises(BadRequest) as exc_info:
            engine.fetch('s', ['nope'])
        assert exc_info.value.supported == ['g', 'h']

    def test_fetch_missing_series(self, engine):
        """Test fetching an unknown series."""
        with pytest.raises(NotFound):
            engine.fetch('nope')

    def test_fetch_best(self, engine):
        """Test best-archive fetch picks the finest covering archive."""
        data = engine.fetch_best('s', 0, 120)
        assert data.arc_step == 60
        np.testing.assert_array_equal(data.values['g'], [10, 20, 30])

    def test_fetch_best_unknown_function(self, engine):
        """Test asking for an absent consolidation function."""
        with pytest.raises(BadRequest) as exc_info:
            engine.fetch_best('s', 0, 120, consol_fun=ConsolFun.MAX)
        assert exc_info.value.supported == ['AVERAGE']

    def test_to_frame(self, engine):
        """Test fetched rows as a DataFrame."""
        frame = engine.fetch('s', wanted_range=(0, 120))[FINE].to_frame()
        assert list(frame.columns) == ['g', 'h']
        assert len(frame) == 3
        assert frame['g'].iloc[-1] == 30


class TestFormats:
    """Test output shapes."""

    def test_format_lookup(self):
        """Test format names are case-insensitive and unknown names map to None."""
        assert Format.get('LIST') is Format.LIST
        assert Format.get('bogus') is None
        assert Format.names() == ['list', 'string', 'graph']

    def test_list(self, engine):
        """Test parallel timestamp and value lists."""
        result = format_data(engine.fetch('s', ['g'], (0, 120)), Format.LIST)
        assert result[FINE]['timestamps'] == [0, 60, 120]
        assert result[FINE]['values']['g'] == [10.0, 20.0, 30.0]

    def test_list_keeps_undefined(self, engine):
        """Test undefined rows stay in place as NaN."""
        result = format_data(engine.fetch('s', ['g']), Format.LIST)
        values = result[FINE]['values']['g']
        assert is_undefined(values[0])
        assert not is_undefined(values[-2])

    def test_string(self, engine):
        """Test newline-joined blocks."""
        result = format_data(engine.fetch('s', ['g'], (0, 120)), Format.STRING)
        assert result[FINE]['timestamps'] == "0\n60\n120"
        assert result[FINE]['values']['g'] == "10.0\n20.0\n30.0"

    def test_graph(self, engine):
        """Test graphs are base64 PNG images."""
        renderer = GraphRenderer(width=200, height=100)
        result = format_data(engine.fetch('s', ['g']), Format.GRAPH, renderer)
        entry = result[FINE]
        assert 'timestamps' not in entry
        image = base64.b64decode(entry['values']['g'])
        assert image.startswith(b"\x89PNG")

    def test_graph_all_undefined(self, store):
        """Test a series with no data still renders."""
        store.create('empty', make_definition())
        result = format_data(FetchEngine(store).fetch('empty'), Format.GRAPH)
        image = base64.b64decode(result[FINE]['values']['g'])
        assert image.startswith(b"\x89PNG")

    def test_is_undefined(self):
        assert is_undefined(math.nan)
        assert not is_undefined(0.0)
