"""ampcodec: AMP field codec for Python.

Encode structured values into a compact, self-describing stream of
length-prefixed UTF-8 fields, and decode them back.

Quick start:
    >>> from ampcodec import encode, decode, I8
    >>> encode(True)
    b'\\x00\\x04True\\x00\\x00'
    >>> encode(-15, I8)
    b'\\x00\\x03-15\\x00\\x00'
    >>> decode(b'\\x00\\x08\\x00\\x0210\\x00\\x0211\\x00\\x00', list[int])
    [10, 11]

Scalars travel as text ("True", "-15", "12.9"), structs as flat
key/value fields, sequences as one frame whose prefix is the byte span
of its elements.  Every document ends with the terminator 00 00.
"""

from __future__ import annotations

from ._constants import MAX_FIELD_LENGTH, TERMINATOR
from ._decoder import Decoder, decode
from ._encoder import Encoder, encode, format_float
from ._errors import (
    ERR_BAD_DATA,
    ERR_EOF,
    ERR_MESSAGE,
    ERR_TRAILING_CHARACTERS,
    AmpError,
)
from ._framing import bytes_to_length, frame_field, length_to_bytes
from ._model import (
    F32,
    F64,
    I8,
    I16,
    I32,
    I64,
    U8,
    U16,
    U32,
    U64,
    Char,
    Deserializer,
    ScalarKind,
    Serializer,
    build_value,
    resolve_schema,
    walk_value,
)

__version__ = "0.1.0"

__all__ = [
    # Public API functions
    "encode",
    "decode",
    # Traversal layer
    "Serializer",
    "Deserializer",
    "Encoder",
    "Decoder",
    "walk_value",
    "build_value",
    "resolve_schema",
    # Scalar kinds
    "ScalarKind",
    "I8",
    "I16",
    "I32",
    "I64",
    "U8",
    "U16",
    "U32",
    "U64",
    "F32",
    "F64",
    "Char",
    # Framing
    "length_to_bytes",
    "bytes_to_length",
    "frame_field",
    "format_float",
    "TERMINATOR",
    "MAX_FIELD_LENGTH",
    # Exception
    "AmpError",
    # Error codes
    "ERR_MESSAGE",
    "ERR_EOF",
    "ERR_TRAILING_CHARACTERS",
    "ERR_BAD_DATA",
]
