"""
Query Normalization

Reduces a query to the form the full-text index is searched with.

English words are stemmed with NLTK's Snowball English stemmer. French
and Fula are only lowercased: English suffix rules damage French function
words and pronouns ("notre" -> "notr"), and there is no Fula stemmer.

Each whitespace token is split into a punctuation shell and a word core;
only the core is rewritten, so "Hello," becomes "hello,".
"""

from __future__ import annotations

import re
from typing import List

from nltk.stem.snowball import SnowballStemmer

from ..languages import Language

MIN_STEM_LENGTH = 3

# A Snowball stem is not always a fixed point of the stemmer. Re-stemming
# until stable keeps normalize() idempotent.
_MAX_STEM_PASSES = 5

_TOKEN_SHELL = re.compile(r"^(\W*)(.*?)(\W*)$", re.DOTALL)
_WORD = re.compile(r"\w+")

_english_stemmer = SnowballStemmer("english")


def _split_shell(token: str):
    match = _TOKEN_SHELL.match(token)
    return match.group(1), match.group(2), match.group(3)


def stable_stem(word: str) -> str:
    """
    Stem `word` repeatedly until it no longer changes.
    """
    current = word.lower()
    for _ in range(_MAX_STEM_PASSES):
        if len(current) < MIN_STEM_LENGTH:
            break
        stemmed = _english_stemmer.stem(current)
        if stemmed == current:
            break
        current = stemmed
    return current


def normalize_word(core: str, language: Language) -> str:
    lowered = core.lower()
    if len(lowered) < MIN_STEM_LENGTH or not language.stems_aggressively:
        return lowered
    return stable_stem(lowered)


def normalize(query: str, language: "str | Language") -> str:
    """
    Normalize a query for lexical search.

    Parameters
    ----------
    query : str
        Raw query text.

    language : str | Language
        Declared language of the query. The branch is chosen per call.

    Returns
    -------
    str
        Tokens rejoined with single spaces. Punctuation-only tokens are
        returned unchanged.
    """
    language = Language.parse(language)

    tokens = []
    for token in query.split():
        prefix, core, suffix = _split_shell(token)
        if not core:
            tokens.append(token)
            continue
        tokens.append(prefix + normalize_word(core, language) + suffix)

    return " ".join(tokens)


def fold_text(text: str) -> str:
    """Trimmed, case-folded form used for exact-match comparison."""
    return text.strip().casefold()


def match_terms(normalized_query: str) -> List[str]:
    """
    Word runs of a normalized query, in order, used as full-text terms.
    """
    return _WORD.findall(normalized_query)


class QueryNormalizer:
    """
    Normalizer bound to one declared language.
    """

    def __init__(self, language: "str | Language") -> None:
        self.language = Language.parse(language)

    def normalize(self, query: str) -> str:
        return normalize(query, self.language)

    def tokens_for_match(self, query: str) -> List[str]:
        return match_terms(self.normalize(query))
