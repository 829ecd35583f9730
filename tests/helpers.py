"""
Helpers shared by the test modules.
"""

from rrd.definition import DefinitionBuilder, ConsolFun, DsType


def make_definition(start_time: int = 0, step: int = 60, heartbeat: int = 120,
                    gauges=('g',), counters=(), archives=((1, 5), (4, 3)), xff: float = 0.5):
    """Small definition used throughout the tests."""
    builder = DefinitionBuilder(step, start_time)
    for name in counters:
        builder.add_datasource(name, DsType.COUNTER, heartbeat)
    for name in gauges:
        builder.add_datasource(name, DsType.GAUGE, heartbeat)
    for steps, rows in archives:
        builder.add_archive(ConsolFun.AVERAGE, xff, steps, rows)
    return builder.build()
