"""AMP decoder: a forward-only cursor over an immutable buffer.

The decoder never builds a token list.  It reads one field at a time and
looks ahead by at most one length prefix (or one key field) to decide
whether a struct has ended.

Where a struct ends is the subtle part, because structs carry no count
and no terminator of their own.  A struct stops at the first of:

    - the document terminator (a zero length prefix),
    - the end of the enclosing sequence frame,
    - every declared field having been read,
    - a key that is not one of its fields, or one it has already read.

The last two only apply to nested structs, where the key belongs to the
container.  In the outermost struct they are bad data.
"""

from __future__ import annotations

import logging
import re
import struct
from typing import Any, List, Optional, Sequence, Tuple

from ._constants import FALSE_TEXT, LENGTH_PREFIX_SIZE, TRUE_TEXT
from ._errors import (
    ERR_BAD_DATA,
    ERR_EOF,
    ERR_TRAILING_CHARACTERS,
    AmpError,
)
from ._framing import bytes_to_length
from ._model import build_value

logger = logging.getLogger(__name__)

_F32 = struct.Struct(">f")

# int() and float() accept whitespace, "_" separators and full-width
# digits; the wire format accepts none of those.
_INT_TEXT = re.compile(r"-?[0-9]+")
_FLOAT_TEXT = re.compile(
    r"-?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?|-?inf|nan")


class _StructFrame:
    __slots__ = ("fields", "seen", "nested")

    def __init__(self, fields: Optional[Sequence[str]], nested: bool) -> None:
        self.fields = None if fields is None else frozenset(fields)
        self.seen: set = set()
        self.nested = nested

    def complete(self) -> bool:
        return self.fields is not None and self.seen >= self.fields


class Decoder:
    """Deserializer reading AMP fields from `data`.

    `index` is the cursor.  `limits` holds the end offset of every open
    sequence frame, innermost last.
    """

    def __init__(self, data: bytes) -> None:
        self.data = bytes(data)
        self.index = 0
        self.limits: List[int] = []
        self.structs: List[_StructFrame] = []

    # ── cursor primitives ─────────────────────────────────────

    def peek_length(self) -> int:
        end = self.index + LENGTH_PREFIX_SIZE
        if end > len(self.data):
            raise AmpError(ERR_EOF, "truncated length prefix at offset {}".format(
                self.index))
        return bytes_to_length(self.data[self.index:end])

    def read_length(self) -> int:
        length = self.peek_length()
        self.index += LENGTH_PREFIX_SIZE
        return length

    def _field_at(self, start: int) -> Tuple[str, int]:
        """Return (text, end offset) of the field starting at `start`."""
        length = bytes_to_length(self.data[start:start + LENGTH_PREFIX_SIZE])
        begin = start + LENGTH_PREFIX_SIZE
        end = begin + length
        if end > len(self.data):
            raise AmpError(ERR_EOF, "field at offset {} needs {} bytes, {} left".format(
                start, length, len(self.data) - begin))
        try:
            text = self.data[begin:end].decode("utf-8")
        except UnicodeDecodeError as exc:
            raise AmpError(ERR_BAD_DATA, "invalid utf-8 at offset {}".format(
                begin)) from exc
        return text, end

    def read_field(self) -> str:
        self.peek_length()
        text, self.index = self._field_at(self.index)
        return text

    def peek_field(self) -> str:
        self.peek_length()
        text, _end = self._field_at(self.index)
        return text

    def is_at_terminator(self) -> bool:
        return self.peek_length() == 0

    def at_scope_end(self) -> bool:
        if self.limits and self.index >= self.limits[-1]:
            return True
        return self.is_at_terminator()

    # ── scalars ───────────────────────────────────────────────

    def read_scalar_text(self) -> str:
        text = self.read_field()
        if text == "":
            raise AmpError(ERR_BAD_DATA,
                           "empty field where a value was expected")
        return text

    def read_str(self) -> str:
        return self.read_scalar_text()

    def read_bool(self) -> bool:
        text = self.read_scalar_text()
        if text == TRUE_TEXT:
            return True
        if text == FALSE_TEXT:
            return False
        raise AmpError(ERR_BAD_DATA, "invalid boolean {!r}".format(text))

    def read_int(self) -> int:
        text = self.read_scalar_text()
        if not _INT_TEXT.fullmatch(text):
            raise AmpError(ERR_BAD_DATA, "invalid integer {!r}".format(text))
        try:
            return int(text)
        except ValueError as exc:
            # int() refuses text past sys.get_int_max_str_digits()
            raise AmpError(ERR_BAD_DATA, "integer text of {} digits is too long".format(
                len(text))) from exc

    def read_float(self, single: bool = False) -> float:
        text = self.read_scalar_text()
        if not _FLOAT_TEXT.fullmatch(text):
            raise AmpError(ERR_BAD_DATA, "invalid float {!r}".format(text))
        value = float(text)
        if not single:
            return value
        try:
            return _F32.unpack(_F32.pack(value))[0]
        except OverflowError as exc:
            raise AmpError(ERR_BAD_DATA,
                           "{!r} does not fit in f32".format(text)) from exc

    def read_char(self) -> str:
        text = self.read_scalar_text()
        if len(text) != 1:
            raise AmpError(ERR_BAD_DATA, "invalid char {!r}".format(text))
        return text

    # ── structs ───────────────────────────────────────────────

    def begin_struct(self, fields: Optional[Sequence[str]]) -> None:
        nested = bool(self.structs or self.limits)
        self.structs.append(_StructFrame(fields, nested))

    def next_key(self) -> Optional[str]:
        frame = self.structs[-1]
        if frame.complete() or self.at_scope_end():
            return None
        key = self.peek_field()
        if key in frame.seen or (frame.fields is not None and key not in frame.fields):
            if frame.nested:
                return None
            problem = "duplicate" if key in frame.seen else "unknown"
            raise AmpError(ERR_BAD_DATA, "{} field {!r}".format(problem, key))
        self.read_field()
        frame.seen.add(key)
        return key

    def end_struct(self) -> None:
        self.structs.pop()

    # ── sequences ─────────────────────────────────────────────

    def begin_seq(self) -> None:
        span = self.read_length()
        end = self.index + span
        if self.limits and end > self.limits[-1]:
            raise AmpError(ERR_BAD_DATA, "sequence frame overruns its container")
        if end > len(self.data):
            raise AmpError(ERR_EOF, "sequence frame needs {} bytes, {} left".format(
                span, len(self.data) - self.index))
        self.limits.append(end)

    def has_element(self) -> bool:
        return self.index < self.limits[-1]

    def end_seq(self) -> None:
        end = self.limits.pop()
        if self.index != end:
            raise AmpError(ERR_BAD_DATA,
                           "sequence elements run to offset {}, frame ends at {}".format(
                               self.index, end))

    # ── document ──────────────────────────────────────────────

    def finish(self) -> None:
        """Require the cursor to sit on the final terminator."""
        if not self.is_at_terminator():
            raise AmpError(ERR_TRAILING_CHARACTERS,
                           "value ends at offset {} but no terminator follows".format(
                               self.index))
        if self.index + LENGTH_PREFIX_SIZE != len(self.data):
            raise AmpError(ERR_TRAILING_CHARACTERS,
                           "{} bytes after the terminator".format(
                               len(self.data) - self.index - LENGTH_PREFIX_SIZE))


def decode(data: bytes, schema: Any) -> Any:
    """Decode a terminated AMP document into a value shaped like `schema`."""
    dec = Decoder(data)
    value = build_value(dec, schema)
    dec.finish()
    logger.debug("decoded %d bytes as %r", len(dec.data), schema)
    return value
