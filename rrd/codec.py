"""
Versioned binary encoding of a series' full state.

Layout:
    4 bytes   magic b"RRDH"
    uint16    format version
    uint32    header length
    bytes     UTF-8 JSON header (definition, last update, last values, ring pointers)
    float64   per archive: pending row buffer, then ring rows (little-endian)
"""

import json
import math
import struct

import numpy as np

from .definition import SeriesDefinition
from .errors import CorruptState, InvalidDefinition
from .series import Series

MAGIC = b"RRDH"
FORMAT_VERSION = 1
_PREAMBLE = struct.Struct("<4sHI")
_FLOAT = np.dtype("<f8")


def encode(series: Series) -> bytes:
    """Serialize a series to bytes."""
    header = {
        'name': series.name,
        'definition': series.definition.to_dict(),
        'lastUpdate': series.last_update,
        'lastValues': [None if math.isnan(v) else float(v) for v in series.last_values],
        'pointers': [archive.pointer for archive in series.archives],
    }
    header_bytes = json.dumps(header, separators=(',', ':')).encode('utf-8')

    parts = [_PREAMBLE.pack(MAGIC, FORMAT_VERSION, len(header_bytes)), header_bytes]
    for archive in series.archives:
        parts.append(archive.pending.astype(_FLOAT).tobytes())
        parts.append(archive.robin.astype(_FLOAT).tobytes())
    return b"".join(parts)


def _read_block(data: bytes, offset: int, shape) -> np.ndarray:
    count = shape[0] * shape[1]
    size = count * _FLOAT.itemsize
    if offset + size > len(data):
        raise CorruptState(f"Unexpected end of data at offset {offset}")
    block = np.frombuffer(data, dtype=_FLOAT, count=count, offset=offset)
    return block.reshape(shape).astype(np.float64)


def decode(data: bytes, name: str = None) -> Series:
    """
    Rebuild a series from bytes produced by encode().

    Raises:
        CorruptState: bad magic, unsupported version or truncated payload
    """
    if len(data) < _PREAMBLE.size:
        raise CorruptState("Data too small")
    magic, version, header_len = _PREAMBLE.unpack_from(data, 0)
    if magic != MAGIC:
        raise CorruptState("Invalid magic")
    if version != FORMAT_VERSION:
        raise CorruptState(f"Unsupported format version {version}")

    offset = _PREAMBLE.size
    if offset + header_len > len(data):
        raise CorruptState("Truncated header")
    try:
        header = json.loads(data[offset:offset + header_len].decode('utf-8'))
        definition = SeriesDefinition.from_dict(header['definition'])
    except (ValueError, KeyError, TypeError) as e:
        if isinstance(e, InvalidDefinition):
            raise CorruptState(f"Invalid stored definition: {e}") from e
        raise CorruptState(f"Invalid header: {e}") from e
    offset += header_len

    series = Series(name or header['name'], definition)
    series.last_update = int(header['lastUpdate'])
    series.last_values = np.array(
        [math.nan if v is None else float(v) for v in header['lastValues']])

    ds_count = len(definition.datasources)
    pointers = header['pointers']
    if len(pointers) != len(series.archives) or len(series.last_values) != ds_count:
        raise CorruptState("Header does not match definition")

    for archive, pointer in zip(series.archives, pointers):
        archive.pending = _read_block(data, offset, (ds_count, archive.steps))
        offset += archive.pending.nbytes
        archive.robin = _read_block(data, offset, (ds_count, archive.rows))
        offset += archive.robin.nbytes
        archive.pointer = int(pointer) % archive.rows

    if offset != len(data):
        raise CorruptState(f"Trailing data after offset {offset}")
    return series
