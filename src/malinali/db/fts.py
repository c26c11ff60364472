"""
FTS5 documents and query construction.

Stored text and queries go through the same normalizer, so an English
line is indexed under exactly the stems its query produces. The FTS
tables therefore use the plain `unicode61` tokenizer, with no stemming
of their own.

Terms are always quoted as FTS5 strings so that user text can never be
parsed as query syntax.
"""

from __future__ import annotations

from typing import Iterable, Optional

from ..languages import Language
from ..retrieval.normalizer import normalize

FTS_COLUMNS = ("source_text", "target_text")


def fts_document(text: str, language: Language) -> str:
    """Indexed form of one stored phrase."""
    return normalize(text, language)


def quote_term(term: str) -> str:
    return '"' + term.replace('"', '""') + '"'


def build_match_expression(terms: Iterable[str], column: str) -> Optional[str]:
    """
    Build `column : "t1" OR column : "t2" ...`.

    Returns None when there is nothing to match.
    """
    if column not in FTS_COLUMNS:
        raise ValueError(f"Unknown FTS column: {column!r}")

    seen = []
    for term in terms:
        term = term.strip()
        if term and term not in seen:
            seen.append(term)

    if not seen:
        return None

    return " OR ".join(f"{column} : {quote_term(term)}" for term in seen)
