from typing import Optional


class DeskEntryError(Exception):
    """Base class for every error raised by deskentry."""


class ParseError(DeskEntryError, ValueError):
    """
    Raised when a desktop entry cannot be decoded.

    Attributes:
        line_number: 1-based number of the offending line, if known.
        line: The raw text of the offending line, if known.
    """

    reason = "parse error"

    def __init__(
        self,
        message: Optional[str] = None,
        line_number: Optional[int] = None,
        line: Optional[str] = None,
    ):
        self.line_number = line_number
        self.line = line
        self.message = message or self.reason
        super().__init__(self._format())

    def _format(self) -> str:
        if self.line_number is None:
            return self.message
        return f"line {self.line_number}: {self.message}: {self.line!r}"


class MalformedGroupHeader(ParseError):
    reason = "malformed group header"


class KeyOutsideGroup(ParseError):
    reason = "key assignment outside of any group"


class MalformedLine(ParseError):
    reason = "malformed line"


class InvalidEscape(ParseError):
    reason = "invalid escape sequence"


class DuplicateKey(ParseError):
    reason = "duplicate key"


class KeyNotFound(DeskEntryError, LookupError):
    """Raised when a group or key (in any acceptable locale) is absent."""

    def __init__(self, group: str, key: Optional[str] = None):
        self.group = group
        self.key = key
        if key is None:
            super().__init__(f"group [{group}] not found")
        else:
            super().__init__(f"key {key!r} not found in group [{group}]")


class InvalidValue(DeskEntryError, ValueError):
    """Raised when a value does not match the type requested by an accessor."""

    def __init__(self, key: str, value: str, expected: str):
        self.key = key
        self.value = value
        self.expected = expected
        super().__init__(f"value {value!r} of key {key!r} is not a valid {expected}")
