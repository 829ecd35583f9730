"""
Round-robin archive engine.

Fixed-footprint, multi-resolution storage for periodic numeric samples:
- Series definitions with COUNTER / GAUGE / DERIVE / ABSOLUTE datasources
- Heartbeat-aware sampling with linear interpolation at base-step boundaries
- Undefined-aware consolidation into fixed ring-buffer archives
- Range fetch and best-archive selection
- Versioned binary encoding of the full series state
"""

from .archive import Archive, consolidate
from .codec import FORMAT_VERSION, decode, encode
from .definition import (
    ArcDef,
    ConsolFun,
    DefinitionBuilder,
    DsDef,
    DsType,
    SeriesDefinition,
    normalize
)
from .errors import (
    AlreadyExists,
    BackendUnavailable,
    BadRequest,
    CorruptState,
    InvalidDefinition,
    NotFound,
    NotReady,
    RrdError,
    StaleSample
)
from .series import ArchiveFetch, Series

__all__ = [
    'Archive',
    'ArchiveFetch',
    'ArcDef',
    'ConsolFun',
    'DefinitionBuilder',
    'DsDef',
    'DsType',
    'Series',
    'SeriesDefinition',
    'consolidate',
    'normalize',
    'encode',
    'decode',
    'FORMAT_VERSION',

    # Errors
    'RrdError',
    'NotFound',
    'AlreadyExists',
    'StaleSample',
    'InvalidDefinition',
    'CorruptState',
    'BackendUnavailable',
    'NotReady',
    'BadRequest'
]

__version__ = "1.0.0"
