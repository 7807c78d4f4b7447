"""Field framing: the 2-byte big-endian length prefix.

Every length on the wire goes through these two functions, including the
backpatched prefix of a sequence frame.
"""

from __future__ import annotations

import struct

from ._constants import LENGTH_PREFIX_SIZE, MAX_FIELD_LENGTH
from ._errors import ERR_BAD_DATA, ERR_EOF, AmpError

_U16BE = struct.Struct(">H")


def length_to_bytes(n: int) -> bytes:
    """Pack a field length as an unsigned 16-bit big-endian integer."""
    if n < 0 or n > MAX_FIELD_LENGTH:
        raise AmpError(
            ERR_BAD_DATA,
            "field length {} outside 0..{}".format(n, MAX_FIELD_LENGTH),
        )
    return _U16BE.pack(n)


def bytes_to_length(b: bytes) -> int:
    """Unpack a 2-byte length prefix.  Every 2-byte pattern is valid."""
    if len(b) < LENGTH_PREFIX_SIZE:
        raise AmpError(ERR_EOF, "truncated length prefix")
    return _U16BE.unpack_from(b)[0]


def frame_field(text: str) -> bytes:
    """Encode `text` as UTF-8 and prepend its length."""
    try:
        raw = text.encode("utf-8")
    except UnicodeEncodeError as exc:
        # Lone surrogates survive in Python str but have no UTF-8 form.
        raise AmpError(ERR_BAD_DATA, "text is not encodable as UTF-8") from exc
    return length_to_bytes(len(raw)) + raw
