"""AMP encoder: value -> framed fields -> terminated document.

Scalars are framed as soon as they are written.  Structs are flat
key/value runs with no wrapper of their own.  A sequence's prefix holds
the byte span of its elements, which is not known until the last
element is written, so the encoder remembers where the sequence started
and splices the prefix in at `end_seq`:

    begin_seq   markers.push(len(out))
    ...         elements appended
    end_seq     at = markers.pop()
                out[at:at] = length_to_bytes(len(out) - at)

The marker stack makes sequences of sequences work at any depth.
"""

from __future__ import annotations

import logging
import math
import struct
from typing import Any, List

from ._constants import F32_MAX_DIGITS, FALSE_TEXT, TERMINATOR, TRUE_TEXT
from ._errors import ERR_BAD_DATA, AmpError
from ._framing import frame_field, length_to_bytes
from ._model import walk_value

logger = logging.getLogger(__name__)

_F32 = struct.Struct(">f")


def _round_f32(value: float) -> float:
    try:
        return _F32.unpack(_F32.pack(value))[0]
    except OverflowError as exc:
        raise AmpError(ERR_BAD_DATA,
                       "{!r} does not fit in f32".format(value)) from exc


def format_float(value: float, single: bool = False) -> str:
    """Default float text: the shortest repr that parses back exactly.

    For single precision the value is rounded to f32 first and the
    shortest text that round-trips at f32 precision wins, so 12.9 is
    written as "12.9" rather than "12.899999618530273".
    """
    if not single:
        return repr(value)
    rounded = _round_f32(value)
    if not math.isfinite(rounded):
        return repr(rounded)
    for digits in range(1, F32_MAX_DIGITS + 1):
        candidate = float("{:.{}g}".format(rounded, digits))
        try:
            if _round_f32(candidate) == rounded:
                return repr(candidate)
        except AmpError:
            # rounded past the f32 maximum
            continue
    return repr(rounded)


class Encoder:
    """Serializer that writes AMP fields into a growing bytearray.

    One instance per document.  Call `finish()` once to close it.
    """

    def __init__(self) -> None:
        self.output = bytearray()
        self.markers: List[int] = []

    # ── scalars ───────────────────────────────────────────────

    def write_str(self, value: str) -> None:
        if value == "":
            # A zero-length field is byte-identical to the terminator.
            raise AmpError(ERR_BAD_DATA,
                           "empty strings collide with the terminator")
        self.output += frame_field(value)

    def write_bool(self, value: bool) -> None:
        self.write_str(TRUE_TEXT if value else FALSE_TEXT)

    def write_int(self, value: int) -> None:
        try:
            text = str(value)
        except ValueError as exc:
            # str() refuses ints past sys.get_int_max_str_digits()
            raise AmpError(ERR_BAD_DATA,
                           "integer too large to write as text") from exc
        self.write_str(text)

    def write_float(self, value: float, single: bool = False) -> None:
        self.write_str(format_float(value, single))

    def write_char(self, value: str) -> None:
        self.write_str(value)

    # ── structs ───────────────────────────────────────────────

    def begin_struct(self, name: str) -> None:
        pass

    def write_key(self, key: str) -> None:
        self.write_str(key)

    def end_struct(self) -> None:
        pass

    # ── sequences ─────────────────────────────────────────────

    def begin_seq(self) -> None:
        self.markers.append(len(self.output))

    def end_seq(self) -> None:
        at = self.markers.pop()
        span = len(self.output) - at
        self.output[at:at] = length_to_bytes(span)
        logger.debug("sequence frame at offset %d spans %d bytes", at, span)

    # ── document ──────────────────────────────────────────────

    def finish(self) -> bytes:
        if self.markers:
            raise AmpError.custom(
                "{} sequence(s) left open".format(len(self.markers)))
        self.output += TERMINATOR
        return bytes(self.output)


def encode(value: Any, schema: Any = None) -> bytes:
    """Encode `value` as a terminated AMP document.

    `schema` is optional.  When given, the value is walked through it and
    every scalar is checked against its declared kind.
    """
    enc = Encoder()
    walk_value(enc, value, schema)
    data = enc.finish()
    logger.debug("encoded %s into %d bytes", type(value).__name__, len(data))
    return data
