import os
import re
from dataclasses import dataclass, replace
from typing import Iterable, List, Mapping, Optional

_LOCALE_RE = re.compile(
    r"^(?P<lang>[A-Za-z]+)"
    r"(?:_(?P<country>[A-Za-z0-9]+))?"
    r"(?:\.(?P<encoding>[A-Za-z0-9_-]+))?"
    r"(?:@(?P<modifier>[A-Za-z0-9_-]+))?$"
)

_NEUTRAL_LOCALES = ("C", "POSIX")


@dataclass(frozen=True)
class LocaleTag:
    """A locale of the form lang[_COUNTRY][.ENCODING][@MODIFIER]."""

    lang: str
    country: Optional[str] = None
    encoding: Optional[str] = None
    modifier: Optional[str] = None

    @classmethod
    def parse(cls, text: str) -> "LocaleTag":
        """
        Parses a locale string such as ``sr_RS.UTF-8@latin``.

        Raises:
            ValueError: If the text is not a locale.
        """
        match = _LOCALE_RE.match(text.strip())
        if not match:
            raise ValueError(f"invalid locale: {text!r}")
        return cls(**match.groupdict())

    @classmethod
    def from_key_suffix(cls, text: str) -> "LocaleTag":
        """
        Reads the ``[...]`` suffix of a key such as ``Name[fr_FR]``.

        Suffixes that are not POSIX locales (``x-test``, ``es-419``) are
        kept as an opaque tag holding the raw text in ``lang``; such a tag
        only ever matches the same text.
        """
        try:
            return cls.parse(text)
        except ValueError:
            return cls(text)

    def without_encoding(self) -> "LocaleTag":
        if self.encoding is None:
            return self
        return replace(self, encoding=None)

    def __str__(self) -> str:
        text = self.lang
        if self.country:
            text += f"_{self.country}"
        if self.encoding:
            text += f".{self.encoding}"
        if self.modifier:
            text += f"@{self.modifier}"
        return text


def locale_candidates(preferences: Iterable[str]) -> List[Optional[LocaleTag]]:
    """
    Expands language preferences into the ordered list of locale tags to try.

    For every preference the most specific form comes first:
    lang_COUNTRY@MODIFIER, lang_COUNTRY, lang@MODIFIER, lang. The list always
    ends with ``None``, which stands for the unlocalized default value.

    Args:
        preferences: Locale strings in order of preference, e.g. ["fr_FR.UTF-8"].
    Returns:
        Distinct candidates, most specific first, ``None`` last.
    """
    candidates: List[Optional[LocaleTag]] = []
    for preference in preferences:
        if not preference or preference in _NEUTRAL_LOCALES:
            continue
        try:
            tag = LocaleTag.parse(preference)
        except ValueError:
            continue
        forms = []
        if tag.country and tag.modifier:
            forms.append(LocaleTag(tag.lang, tag.country, modifier=tag.modifier))
        if tag.country:
            forms.append(LocaleTag(tag.lang, tag.country))
        if tag.modifier:
            forms.append(LocaleTag(tag.lang, modifier=tag.modifier))
        forms.append(LocaleTag(tag.lang))
        for form in forms:
            if form not in candidates:
                candidates.append(form)
    candidates.append(None)
    return candidates


def languages_from_env(environ: Optional[Mapping[str, str]] = None) -> List[str]:
    """
    Reads the user's language preferences the way gettext does.

    ``LANGUAGE`` is a colon separated priority list and is only honoured when
    a real locale is configured; the locale itself comes from the first
    non-empty of ``LC_ALL``, ``LC_MESSAGES`` and ``LANG``.
    """
    if environ is None:
        environ = os.environ
    locale = ""
    for var in ("LC_ALL", "LC_MESSAGES", "LANG"):
        locale = environ.get(var, "")
        if locale:
            break
    if not locale or locale in _NEUTRAL_LOCALES:
        return []
    languages = [lang for lang in environ.get("LANGUAGE", "").split(":") if lang]
    if locale not in languages:
        languages.append(locale)
    return languages
