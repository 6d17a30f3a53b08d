"""Column types, storage constants and the raw encoding and ordering of index keys."""

from __future__ import annotations

import enum
import struct

INVALID_FRAME_ID = -1
INVALID_PAGE_ID = -1
INVALID_TXN_ID = -1
INVALID_TIMESTAMP = -1
INVALID_LSN = -1
HEADER_PAGE_ID = 0
PAGE_SIZE = 4096
BUFFER_POOL_SIZE = 65536
LOG_BUFFER_SIZE = (BUFFER_POOL_SIZE + 1) * PAGE_SIZE
BUCKET_SIZE = 50

LOG_FILE_NAME = "db.log"
REPLACER_TYPE = "LRU"

_INT = struct.Struct("<i")
_FLOAT = struct.Struct("<f")


class ColType(enum.IntEnum):
    """Storage type of a column."""

    INT = 0
    FLOAT = 1
    STRING = 2


def _col_type(col_type) -> ColType:
    try:
        return ColType(col_type)
    except ValueError:
        raise ValueError(f"unexpected data type {col_type!r}") from None


def _sign(x, y) -> int:
    return (x > y) - (x < y)


def compare_keys(a: bytes, b: bytes, col_type, col_len: int) -> int:
    """Compare two raw keys; return -1, 0 or 1."""
    kind = _col_type(col_type)
    if kind is ColType.INT:
        return _sign(_INT.unpack_from(a)[0], _INT.unpack_from(b)[0])
    if kind is ColType.FLOAT:
        return _sign(_FLOAT.unpack_from(a)[0], _FLOAT.unpack_from(b)[0])
    return _sign(bytes(a[:col_len]), bytes(b[:col_len]))


def encode_key(value, col_type, col_len: int) -> bytes:
    """Encode a Python value as the raw bytes of a column of length ``col_len``."""
    kind = _col_type(col_type)
    if kind is ColType.INT:
        if col_len != _INT.size:
            raise ValueError(f"an int column must be {_INT.size} bytes, not {col_len}")
        try:
            return _INT.pack(value)
        except struct.error as exc:
            raise ValueError(f"cannot store {value!r} as an int: {exc}") from None
    if kind is ColType.FLOAT:
        if col_len != _FLOAT.size:
            raise ValueError(f"a float column must be {_FLOAT.size} bytes, not {col_len}")
        try:
            return _FLOAT.pack(value)
        except (struct.error, OverflowError) as exc:
            raise ValueError(f"cannot store {value!r} as a float: {exc}") from None
    data = value.encode("utf-8") if isinstance(value, str) else bytes(value)
    if len(data) > col_len:
        raise ValueError(f"string of {len(data)} bytes does not fit in a column of {col_len}")
    return data.ljust(col_len, b"\0")


def decode_key(data: bytes, col_type):
    """Decode raw column bytes back into a Python value."""
    kind = _col_type(col_type)
    if kind is ColType.INT:
        return _INT.unpack_from(data)[0]
    if kind is ColType.FLOAT:
        return _FLOAT.unpack_from(data)[0]
    return bytes(data).split(b"\0", 1)[0].decode("utf-8")