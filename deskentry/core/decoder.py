"""
Decoder for the Desktop Entry text format.

The decoder stores every key and value exactly as written (values keep their
escape sequences, which are only checked here), including each locale
variant; it never negotiates locales. Parsing stops at the first error.
"""

import enum
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

import structlog

from deskentry.core.entry import Entry, Group, LocalizedValue, unescape_value
from deskentry.core.errors import (
    DuplicateKey,
    InvalidEscape,
    KeyOutsideGroup,
    MalformedGroupHeader,
    MalformedLine,
)
from deskentry.core.locales import LocaleTag


class DuplicatePolicy(str, enum.Enum):
    """What to do when a (key, locale) pair is assigned twice in one group."""

    LAST = "last"
    FIRST = "first"
    ERROR = "error"


def _split_key(key: str) -> Tuple[str, Optional[str]]:
    if key.endswith("]") and "[" in key:
        start = key.index("[")
        return key[:start].rstrip(), key[start + 1 : -1]
    return key, None


class _Decoder:
    def __init__(self, policy: DuplicatePolicy, logger):
        self.policy = policy
        self.logger = logger
        self.groups: Dict[str, Group] = {}
        self.current: Optional[Group] = None
        # (group, key, locale) triples already assigned
        self.seen = set()

    def feed(self, line_number: int, line: str) -> None:
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            return
        if stripped.startswith("["):
            self._open_group(line_number, line, stripped)
            return
        if "=" not in stripped:
            if self.current is None:
                raise MalformedLine(line_number=line_number, line=line)
            self.logger.debug(
                f"Skipping line {line_number} without assignment: {line!r}"
            )
            return
        self._assign(line_number, line, line.lstrip())

    def _open_group(self, line_number: int, line: str, stripped: str) -> None:
        name = stripped[1:-1]
        if not stripped.endswith("]") or not name or "[" in name or "]" in name:
            raise MalformedGroupHeader(line_number=line_number, line=line)
        group = self.groups.get(name)
        if group is None:
            group = Group(name)
            self.groups[name] = group
        else:
            self.logger.debug(f"Group [{name}] repeated on line {line_number}, merging")
        self.current = group

    def _assign(self, line_number: int, line: str, text: str) -> None:
        raw_key, raw_value = text.split("=", 1)
        key, tag_text = _split_key(raw_key.strip())
        if not key:
            raise MalformedLine("empty key", line_number=line_number, line=line)
        if self.current is None:
            raise KeyOutsideGroup(line_number=line_number, line=line)
        tag = None
        if tag_text is not None:
            if not tag_text.strip():
                raise MalformedLine("empty locale", line_number=line_number, line=line)
            tag = LocaleTag.from_key_suffix(tag_text)
        value = raw_value.lstrip()
        try:
            unescape_value(value)
        except ValueError as e:
            raise InvalidEscape(str(e), line_number=line_number, line=line) from None

        marker = (self.current.name, key, tag)
        if marker in self.seen:
            if self.policy is DuplicatePolicy.ERROR:
                raise DuplicateKey(line_number=line_number, line=line)
            if self.policy is DuplicatePolicy.FIRST:
                return
        self.seen.add(marker)

        localized = self.current.entries.setdefault(key, LocalizedValue())
        if tag is None:
            localized.default = value
        else:
            localized.variants[tag] = value


def parse(
    text: str,
    path: Optional[Union[str, Path]] = None,
    duplicate_policy: Union[DuplicatePolicy, str] = DuplicatePolicy.LAST,
    logger=None,
) -> Entry:
    """
    Parses desktop entry text into an :class:`Entry`.

    Args:
        text: The complete file contents.
        path: Where the text came from; used to derive the app ID.
        duplicate_policy: How repeated (key, locale) assignments are handled.
        logger: Optional structlog logger.
    Raises:
        ParseError: A subclass identifying the first offending line.
    """
    decoder = _Decoder(
        DuplicatePolicy(duplicate_policy), logger or structlog.get_logger()
    )
    text = text.removeprefix("\ufeff")
    for line_number, line in enumerate(text.split("\n"), start=1):
        decoder.feed(line_number, line.removesuffix("\r"))
    return Entry(decoder.groups, path=path)


def parse_file(
    path: Union[str, Path],
    duplicate_policy: Union[DuplicatePolicy, str] = DuplicatePolicy.LAST,
    logger=None,
) -> Entry:
    with open(path, "r", encoding="utf-8") as f:
        text = f.read()
    return parse(text, path=path, duplicate_policy=duplicate_policy, logger=logger)
