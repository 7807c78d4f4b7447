"""AMP codec error codes and exception class.

The set of codes is closed.  Every failure aborts the whole encode or
decode call; there is no partial result and no retry.

    ERR_MESSAGE              custom failure from the traversal layer
                             (unsupported type, schema the codec can't map)
    ERR_EOF                  buffer ran out in the middle of a field
    ERR_TRAILING_CHARACTERS  bytes left over after the decoded value
    ERR_BAD_DATA             invalid UTF-8, bad scalar text, out-of-range
                             numbers, frame length mismatches
"""

from __future__ import annotations

ERR_MESSAGE: str = "ERR_MESSAGE"
ERR_EOF: str = "ERR_EOF"
ERR_TRAILING_CHARACTERS: str = "ERR_TRAILING_CHARACTERS"
ERR_BAD_DATA: str = "ERR_BAD_DATA"

ALL_CODES = (ERR_MESSAGE, ERR_EOF, ERR_TRAILING_CHARACTERS, ERR_BAD_DATA)

_DEFAULT_MESSAGES = {
    ERR_MESSAGE: "codec error",
    ERR_EOF: "unexpected end of input",
    ERR_TRAILING_CHARACTERS: "unexpected trailing characters",
    ERR_BAD_DATA: "bad or malformed data",
}


class AmpError(Exception):
    """Exception for every AMP encode/decode failure.

    The `.code` attribute is one of the ERR_* strings above.  Callers
    match on it rather than on the message text.
    """

    def __init__(self, code: str, msg: str = "") -> None:
        super().__init__(msg or _DEFAULT_MESSAGES.get(code, code))
        self.code = code

    @classmethod
    def custom(cls, msg: str) -> "AmpError":
        """Build an ERR_MESSAGE error from free-form text."""
        return cls(ERR_MESSAGE, str(msg))
