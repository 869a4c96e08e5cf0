import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Union

from deskentry.core.errors import InvalidValue, KeyNotFound
from deskentry.core.locales import LocaleTag

DESKTOP_ENTRY_GROUP = "Desktop Entry"
DESKTOP_ACTION_PREFIX = "Desktop Action "

_NUMBER_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)$")

Candidate = Union[LocaleTag, str, None]

_ESCAPES = {"s": " ", "n": "\n", "t": "\t", "r": "\r", "\\": "\\", ";": ";"}


def unescape_value(raw: str) -> str:
    """
    Decodes ``\\s``, ``\\n``, ``\\t``, ``\\r``, ``\\\\`` and ``\\;``.

    Raises:
        ValueError: On an unknown escape or a trailing lone backslash.
    """
    if "\\" not in raw:
        return raw
    out = []
    i = 0
    while i < len(raw):
        char = raw[i]
        if char != "\\":
            out.append(char)
            i += 1
            continue
        if i + 1 >= len(raw):
            raise ValueError("trailing backslash")
        code = raw[i + 1]
        if code not in _ESCAPES:
            raise ValueError(f"unknown escape \\{code}")
        out.append(_ESCAPES[code])
        i += 2
    return "".join(out)


def escape_value(value: str) -> str:
    """Escapes plain text for writing; inverse of :func:`unescape_value`."""
    escaped = (
        value.replace("\\", "\\\\")
        .replace("\n", "\\n")
        .replace("\t", "\\t")
        .replace("\r", "\\r")
    )
    stripped = escaped.lstrip(" ")
    return "\\s" * (len(escaped) - len(stripped)) + stripped


def split_list(raw: str) -> List[str]:
    """
    Splits a list value, still in its escaped file form, into decoded items.

    Separators are the ``;`` characters that are not part of an escape
    sequence, so ``a\\;b`` is the single item ``a;b`` while ``a\\\\;b`` is
    the two items ``a\\`` and ``b``. A single trailing empty item (left by a
    trailing separator) is dropped.
    """
    if not raw:
        return []
    items: List[str] = []
    start = 0
    i = 0
    while i < len(raw):
        if raw[i] == "\\":
            i += 2
            continue
        if raw[i] == ";":
            items.append(unescape_value(raw[start:i]))
            start = i + 1
        i += 1
    items.append(unescape_value(raw[start:]))
    if items[-1] == "":
        items.pop()
    return items


def join_list(items: Iterable[str]) -> str:
    """Inverse of :func:`split_list`; every item is followed by ``;``."""
    return "".join(escape_value(item).replace(";", "\\;") + ";" for item in items)


def _coerce_candidate(candidate: Candidate) -> Optional[LocaleTag]:
    if isinstance(candidate, str):
        return LocaleTag.from_key_suffix(candidate)
    return candidate


def appid_from_path(path: Union[str, Path]) -> str:
    """
    Derives the desktop file ID from a path.

    Files below an ``applications`` directory use their relative path with
    ``/`` turned into ``-`` (``applications/kde/foo.desktop`` -> ``kde-foo``);
    any other file uses its stem.
    """
    text = str(path)
    if "/applications/" in text:
        relative = text.rsplit("/applications/", 1)[1]
        return relative.removesuffix(".desktop").replace("/", "-")
    return Path(text).name.removesuffix(".desktop")


@dataclass
class LocalizedValue:
    """
    The unlocalized default of a key plus its locale-tagged variants.

    Values are kept in their escaped file form; :class:`Entry` decodes them
    on read, which keeps ``\\;`` inside a list item apart from ``\\\\``
    followed by a separator.
    """

    default: Optional[str] = None
    variants: Dict[LocaleTag, str] = field(default_factory=dict)

    def lookup(self, candidates: Optional[Iterable[Candidate]] = None) -> Optional[str]:
        """
        Returns the value for the first matching candidate, else the default.

        A ``None`` candidate stands for the default value. Encodings are
        ignored when comparing tags. A string that is not a locale only
        matches a variant stored under that exact suffix.
        """
        by_tag: Dict[LocaleTag, str] = {}
        for tag, value in self.variants.items():
            by_tag.setdefault(tag.without_encoding(), value)
        for candidate in candidates or ():
            tag = _coerce_candidate(candidate)
            if tag is None:
                if self.default is not None:
                    return self.default
                continue
            value = by_tag.get(tag.without_encoding())
            if value is not None:
                return value
        return self.default


@dataclass
class Group:
    name: str
    entries: Dict[str, LocalizedValue] = field(default_factory=dict)

    def __contains__(self, key: str) -> bool:
        return key in self.entries

    def keys(self) -> List[str]:
        return list(self.entries)


class Entry:
    """
    A parsed desktop entry.

    Groups and keys keep the order in which they were read. Every locale
    variant is stored as-is; locale negotiation happens on read through the
    candidate list given to the localized accessors, so the same entry can
    serve any number of locale contexts.
    """

    def __init__(
        self,
        groups: Optional[Dict[str, Group]] = None,
        path: Optional[Union[str, Path]] = None,
    ):
        self.groups: Dict[str, Group] = groups if groups is not None else {}
        self.path: Optional[Path] = Path(path) if path is not None else None
        self.appid: Optional[str] = (
            appid_from_path(self.path) if self.path is not None else None
        )

    @classmethod
    def from_str(cls, text: str, path: Optional[Union[str, Path]] = None, **kwargs):
        from deskentry.core.decoder import parse

        return parse(text, path=path, **kwargs)

    @classmethod
    def from_path(cls, path: Union[str, Path], **kwargs):
        from deskentry.core.decoder import parse_file

        return parse_file(path, **kwargs)

    def __repr__(self) -> str:
        return f"Entry(appid={self.appid!r}, groups={list(self.groups)!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Entry):
            return NotImplemented
        return self.groups == other.groups

    def group(self, name: str) -> Group:
        try:
            return self.groups[name]
        except KeyError:
            raise KeyNotFound(name) from None

    def has_group(self, name: str) -> bool:
        return name in self.groups

    def _value(self, group: str, key: str) -> LocalizedValue:
        entries = self.group(group).entries
        if key not in entries:
            raise KeyNotFound(group, key)
        return entries[key]

    def _raw(self, group: str, key: str) -> str:
        value = self._value(group, key).default
        if value is None:
            raise KeyNotFound(group, key)
        return value

    def _raw_localized(
        self, group: str, key: str, candidates: Optional[Sequence[Candidate]]
    ) -> str:
        value = self._value(group, key).lookup(candidates)
        if value is None:
            raise KeyNotFound(group, key)
        return value

    def get(self, group: str, key: str) -> str:
        """Returns the unlocalized value of ``key`` in ``group``."""
        return unescape_value(self._raw(group, key))

    def get_localized(
        self,
        group: str,
        key: str,
        candidates: Optional[Sequence[Candidate]] = None,
    ) -> str:
        """
        Resolves ``key`` against an ordered list of locale candidates.

        Candidates are tried in order, the first stored variant matching one
        wins; otherwise the default value is returned. A key that only exists
        in some locales is found only when a candidate matches.

        Args:
            group: Group name, e.g. "Desktop Entry".
            key: Key name, e.g. "Name".
            candidates: Output of ``locale_candidates`` (tags, strings or None).
        Raises:
            KeyNotFound: The group or key is missing, or no candidate matched
                a key without default.
        """
        return unescape_value(self._raw_localized(group, key, candidates))

    def get_bool(self, group: str, key: str) -> bool:
        value = self.get(group, key)
        if value == "true":
            return True
        if value == "false":
            return False
        raise InvalidValue(key, value, "boolean")

    def get_number(self, group: str, key: str) -> float:
        value = self.get(group, key)
        if not _NUMBER_RE.match(value):
            raise InvalidValue(key, value, "number")
        return float(value)

    def get_list(self, group: str, key: str) -> List[str]:
        return split_list(self._raw(group, key))

    def get_localized_list(
        self,
        group: str,
        key: str,
        candidates: Optional[Sequence[Candidate]] = None,
    ) -> List[str]:
        return split_list(self._raw_localized(group, key, candidates))

    def set(
        self,
        group: str,
        key: str,
        value: str,
        locale: Optional[Union[LocaleTag, str]] = None,
    ) -> None:
        """Stores a plain string, creating the group if needed."""
        self._store(group, key, escape_value(value), locale)

    def set_list(
        self,
        group: str,
        key: str,
        items: Iterable[str],
        locale: Optional[Union[LocaleTag, str]] = None,
    ) -> None:
        self._store(group, key, join_list(items), locale)

    def _store(
        self, group: str, key: str, raw: str, locale: Optional[Union[LocaleTag, str]]
    ) -> None:
        target = self.groups.setdefault(group, Group(group))
        value = target.entries.setdefault(key, LocalizedValue())
        if locale is None:
            value.default = raw
        else:
            value.variants[_coerce_candidate(locale)] = raw

    # [Desktop Entry] shortcuts. These return None/False for absent keys.

    def desktop_entry(self, key: str) -> Optional[str]:
        try:
            return self.get(DESKTOP_ENTRY_GROUP, key)
        except KeyNotFound:
            return None

    def desktop_entry_localized(
        self, key: str, candidates: Optional[Sequence[Candidate]] = None
    ) -> Optional[str]:
        try:
            return self.get_localized(DESKTOP_ENTRY_GROUP, key, candidates)
        except KeyNotFound:
            return None

    def _desktop_list(self, key: str) -> Optional[List[str]]:
        try:
            return self.get_list(DESKTOP_ENTRY_GROUP, key)
        except KeyNotFound:
            return None

    def _desktop_bool(self, key: str) -> bool:
        return self.desktop_entry(key) == "true"

    @property
    def type(self) -> Optional[str]:
        return self.desktop_entry("Type")

    @property
    def version(self) -> Optional[str]:
        return self.desktop_entry("Version")

    def name(self, candidates: Optional[Sequence[Candidate]] = None) -> Optional[str]:
        return self.desktop_entry_localized("Name", candidates)

    def full_name(
        self, candidates: Optional[Sequence[Candidate]] = None
    ) -> Optional[str]:
        """``X-GNOME-FullName`` when set and non-empty, else ``Name``."""
        return self.desktop_entry_localized("X-GNOME-FullName", candidates) or self.name(
            candidates
        )

    def generic_name(
        self, candidates: Optional[Sequence[Candidate]] = None
    ) -> Optional[str]:
        return self.desktop_entry_localized("GenericName", candidates)

    def comment(
        self, candidates: Optional[Sequence[Candidate]] = None
    ) -> Optional[str]:
        return self.desktop_entry_localized("Comment", candidates)

    def keywords(
        self, candidates: Optional[Sequence[Candidate]] = None
    ) -> Optional[List[str]]:
        try:
            return self.get_localized_list(DESKTOP_ENTRY_GROUP, "Keywords", candidates)
        except KeyNotFound:
            return None

    @property
    def icon(self) -> Optional[str]:
        return self.desktop_entry("Icon")

    @property
    def exec(self) -> Optional[str]:
        return self.desktop_entry("Exec")

    @property
    def try_exec(self) -> Optional[str]:
        return self.desktop_entry("TryExec")

    @property
    def working_dir(self) -> Optional[Path]:
        value = self.desktop_entry("Path")
        return Path(value) if value else None

    @property
    def url(self) -> Optional[str]:
        return self.desktop_entry("URL")

    @property
    def startup_wm_class(self) -> Optional[str]:
        return self.desktop_entry("StartupWMClass")

    @property
    def flatpak(self) -> Optional[str]:
        return self.desktop_entry("X-Flatpak")

    @property
    def categories(self) -> Optional[List[str]]:
        return self._desktop_list("Categories")

    @property
    def mime_types(self) -> Optional[List[str]]:
        return self._desktop_list("MimeType")

    @property
    def implements(self) -> Optional[List[str]]:
        return self._desktop_list("Implements")

    @property
    def only_show_in(self) -> Optional[List[str]]:
        return self._desktop_list("OnlyShowIn")

    @property
    def not_show_in(self) -> Optional[List[str]]:
        return self._desktop_list("NotShowIn")

    @property
    def actions(self) -> Optional[List[str]]:
        return self._desktop_list("Actions")

    @property
    def no_display(self) -> bool:
        return self._desktop_bool("NoDisplay")

    @property
    def hidden(self) -> bool:
        return self._desktop_bool("Hidden")

    @property
    def terminal(self) -> bool:
        return self._desktop_bool("Terminal")

    @property
    def startup_notify(self) -> bool:
        return self._desktop_bool("StartupNotify")

    @property
    def prefers_non_default_gpu(self) -> bool:
        return self._desktop_bool("PrefersNonDefaultGPU")

    @property
    def dbus_activatable(self) -> bool:
        return self._desktop_bool("DBusActivatable")

    @property
    def single_main_window(self) -> bool:
        return self._desktop_bool("SingleMainWindow")

    # [Desktop Action <name>] groups

    def action_entry(
        self,
        action: str,
        key: str,
        candidates: Optional[Sequence[Candidate]] = None,
    ) -> Optional[str]:
        try:
            return self.get_localized(DESKTOP_ACTION_PREFIX + action, key, candidates)
        except KeyNotFound:
            return None

    def action_name(
        self, action: str, candidates: Optional[Sequence[Candidate]] = None
    ) -> Optional[str]:
        return self.action_entry(action, "Name", candidates)

    def action_icon(self, action: str) -> Optional[str]:
        return self.action_entry(action, "Icon")

    def action_exec(self, action: str) -> Optional[str]:
        return self.action_entry(action, "Exec")

    # identity

    def matches_id(self, desktop_id: str) -> bool:
        """Case-insensitive match on the app ID, the file stem or its last dotted part."""
        wanted = desktop_id.lower().removesuffix(".desktop")
        if self.appid and self.appid.lower() == wanted:
            return True
        if self.path is None:
            return False
        stem = self.path.name.removesuffix(".desktop").lower()
        return stem == wanted or stem == wanted.rsplit(".", 1)[-1]

    def matches_wm_class(self, wm_class: str) -> bool:
        value = self.startup_wm_class
        return value is not None and value.lower() == wm_class.lower()

    def matches_name(self, name: str) -> bool:
        value = self.name()
        return value is not None and value.lower() == name.lower()

    # serialization

    def serialize(self) -> str:
        """
        Renders the entry back to desktop entry text.

        Groups and keys come out in insertion order, each key's locale
        variants right after its default line. Values are written in the
        escaped form they were read or set in.
        """
        lines: List[str] = []
        for group in self.groups.values():
            lines.append(f"[{group.name}]")
            for key, value in group.entries.items():
                if value.default is not None:
                    lines.append(f"{key}={value.default}")
                for tag, localized in value.variants.items():
                    lines.append(f"{key}[{tag}]={localized}")
            lines.append("")
        return "\n".join(lines)

    def __str__(self) -> str:
        return self.serialize()


def get_localized(
    entry: Entry,
    group: str,
    key: str,
    candidates: Optional[Sequence[Candidate]] = None,
) -> str:
    return entry.get_localized(group, key, candidates)


def find_entry_from_appid(entries: Iterable[Entry], appid: str) -> Optional[Entry]:
    """Returns the first entry whose app ID or StartupWMClass matches ``appid``."""
    wanted = appid.lower()
    for entry in entries:
        if entry.appid and entry.appid.lower() == wanted:
            return entry
        if entry.matches_wm_class(appid):
            return entry
    return None
