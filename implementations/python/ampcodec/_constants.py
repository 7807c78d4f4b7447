"""AMP field codec constants: framing sizes, the terminator, kind ranges.

Every field on the wire is a 2-byte big-endian length followed by that
many bytes of UTF-8 text.  A zero length doubles as the document
terminator.
"""

from __future__ import annotations

__format_version__ = "1"

# ── Framing ───────────────────────────────────────────────────
LENGTH_PREFIX_SIZE: int = 2
MAX_FIELD_LENGTH: int = 0xFFFF

# Zero-length field.  Ends a document and stops a struct key scan.
TERMINATOR: bytes = b"\x00\x00"

# ── Boolean text ──────────────────────────────────────────────
# Case matters: "true" is bad data.
TRUE_TEXT: str = "True"
FALSE_TEXT: str = "False"

# ── Integer kind ranges ───────────────────────────────────────
# Python ints are arbitrary-precision, so fixed widths are checked by hand.
I8_MIN: int = -(2**7)
I8_MAX: int = 2**7 - 1
I16_MIN: int = -(2**15)
I16_MAX: int = 2**15 - 1
I32_MIN: int = -(2**31)
I32_MAX: int = 2**31 - 1
I64_MIN: int = -(2**63)
I64_MAX: int = 2**63 - 1

U8_MAX: int = 2**8 - 1
U16_MAX: int = 2**16 - 1
U32_MAX: int = 2**32 - 1
U64_MAX: int = 2**64 - 1

# Largest number of significant digits an IEEE single ever needs
# to round-trip through text.
F32_MAX_DIGITS: int = 9
