"""
Language Strategies

Coarse, text-only heuristics used by retrieval:

- which normalization branch a query language takes (aggressive stemming
  vs. conservative lowercasing), and
- whether a stored phrase is consistent with a declared language.

The consistency check exists because one corpus column may interleave
several source languages (English and French lines both sit in the
source column of the Fula corpus). It is deliberately cheap: diacritics
plus a short stop-word list. It is not language identification.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Callable, Dict


class UnknownLanguageError(ValueError):
    """Raised when a language code or name is not supported."""


class Language(str, Enum):
    ENGLISH = "en"
    FRENCH = "fr"
    FULA = "ff"

    @classmethod
    def parse(cls, value: "str | Language") -> "Language":
        """
        Accept ISO codes ("en") or names ("English", "french").
        """
        if isinstance(value, Language):
            return value
        if not isinstance(value, str) or not value.strip():
            raise UnknownLanguageError("language is required")

        key = value.strip().lower()
        for lang in cls:
            if key == lang.value or key == lang.name.lower():
                return lang

        raise UnknownLanguageError(f"Unsupported language: {value!r}")

    @property
    def stems_aggressively(self) -> bool:
        return self in _AGGRESSIVE_LANGUAGES


# Snowball rules are only safe for English. For French they mangle short
# function words and pronouns ("notre" -> "notr"); Fula has no stemmer.
_AGGRESSIVE_LANGUAGES = frozenset({Language.ENGLISH})


# ---------------------------------------------------------------------
# Consistency heuristics
# ---------------------------------------------------------------------

FRENCH_DIACRITICS = frozenset("éèêàçùôîû")

FRENCH_STOP_WORDS = re.compile(
    r"\b(le|la|de|du|des|les|un|une|et|ou|est|sont|dans|pour|avec|sur|par"
    r"|que|qui|quoi|comment|où|quand|pourquoi)\b"
)


def has_french_diacritics(text: str) -> bool:
    return any(ch in FRENCH_DIACRITICS for ch in text.lower())


def looks_english(text: str) -> bool:
    """English lines carry none of the French diacritics."""
    return not has_french_diacritics(text)


def looks_french(text: str) -> bool:
    """French lines carry a diacritic or at least one common function word."""
    lowered = text.lower()
    return has_french_diacritics(lowered) or bool(FRENCH_STOP_WORDS.search(lowered))


def _accept_all(text: str) -> bool:
    return True


_CONSISTENCY_CHECKS: Dict[Language, Callable[[str], bool]] = {
    Language.ENGLISH: looks_english,
    Language.FRENCH: looks_french,
}


def is_consistent_with(text: str, language: Language) -> bool:
    """
    Return True when `text` plausibly belongs to `language`.

    Languages without a heuristic accept every line.
    """
    check = _CONSISTENCY_CHECKS.get(language, _accept_all)
    return check(text)
