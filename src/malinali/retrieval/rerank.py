"""
Hybrid Merge & Re-ranking

Pure functions that turn the raw lexical and semantic candidate lists of
one query into the two short-lists shown to the caller.

Responsibilities
----------------
- Apply the language-consistency filter to both signals
- Promote an exact match to the head of the lexical short-list
- Score semantic candidates: distance, length penalty, lexical agreement
- Put user-contributed pairs ahead of corpus matches

Nothing here touches the store, the model or the index.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable, List, NamedTuple, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from .normalizer import fold_text
from ..config import settings
from ..embeddings.models import SearchCandidate, TranslationPair


# ---------------------------------------------------------------------
# Parameters & Results
# ---------------------------------------------------------------------

class RetrievalParams(BaseModel):
    """
    Tunables of one hybrid search.
    """

    lexical_limit: int = Field(20, gt=0)
    semantic_k: int = Field(50, gt=0)
    search_radius: int = Field(10, gt=0)
    length_penalty_alpha: float = Field(0.3, ge=0.0)
    lexical_boost: float = Field(0.7, gt=0.0, le=1.0)
    shortlist_size: int = Field(3, gt=0)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @classmethod
    def from_settings(cls) -> "RetrievalParams":
        return cls(
            lexical_limit=settings.lexical_limit,
            semantic_k=settings.semantic_k,
            search_radius=settings.search_radius,
            length_penalty_alpha=settings.length_penalty_alpha,
            lexical_boost=settings.lexical_boost,
            shortlist_size=settings.shortlist_size,
        )


class Direction(str, Enum):
    """
    FORWARD queries a corpus source language; REVERSE queries its target.
    """
    FORWARD = "forward"
    REVERSE = "reverse"


class ShortLists(NamedTuple):
    lexical: List[SearchCandidate]
    semantic: List[SearchCandidate]


class TranslationResult(BaseModel):
    """
    Outcome of one translation lookup. Empty lists mean "no match".
    """

    direction: Direction
    lexical: List[SearchCandidate] = Field(default_factory=list)
    semantic: List[SearchCandidate] = Field(default_factory=list)
    semantic_searched: bool = False

    @property
    def exact_match(self) -> Optional[SearchCandidate]:
        for candidate in self.lexical:
            if candidate.is_exact_match:
                return candidate
        return None

    @property
    def is_empty(self) -> bool:
        return not self.lexical and not self.semantic


# ---------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------

def token_count(text: str) -> int:
    return len(text.split())


def is_exact_match(query: str, text: str) -> bool:
    return fold_text(query) == fold_text(text)


def score_candidate(
    distance: float,
    query_tokens: int,
    answer_tokens: int,
    in_lexical: bool,
    params: RetrievalParams,
) -> float:
    """
    Composite score of a semantic candidate. Lower is better.

    score = distance * (1 + alpha * |out - in| / (in + 1)), multiplied by
    the lexical boost when the lexical search found the same pair.
    """
    length_diff_ratio = abs(answer_tokens - query_tokens) / (query_tokens + 1)
    score = distance * (1.0 + params.length_penalty_alpha * length_diff_ratio)
    if in_lexical:
        score *= params.lexical_boost
    return score


# ---------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------

def _keep_all(pair: TranslationPair) -> bool:
    return True


def _text_key(pair: TranslationPair):
    return (fold_text(pair.source_text), fold_text(pair.target_text))


def rerank(
    query: str,
    lexical: Sequence[SearchCandidate],
    semantic: Sequence[SearchCandidate],
    user_matches: Sequence[TranslationPair] = (),
    *,
    params: Optional[RetrievalParams] = None,
    keep: Optional[Callable[[TranslationPair], bool]] = None,
) -> ShortLists:
    """
    Merge raw candidates into the lexical and semantic short-lists.

    All candidates must already be oriented so that `pair.source_text` is
    in the query language and `pair.target_text` is the answer.

    Parameters
    ----------
    query : str
        The raw query text.

    lexical : Sequence[SearchCandidate]
        Full-text hits, best first.

    semantic : Sequence[SearchCandidate]
        Nearest-neighbour hits with `semantic_distance` set.

    user_matches : Sequence[TranslationPair]
        User-contributed pairs matching the query, best first.

    params : RetrievalParams
        Scoring constants and short-list size.

    keep : Callable[[TranslationPair], bool]
        Language-consistency filter applied to both corpus signals.

    Returns
    -------
    ShortLists
        The lexical and semantic short-lists. Either may be empty.
    """
    params = params or RetrievalParams()
    keep = keep or _keep_all
    k = params.shortlist_size

    # -------------------------------------------------------------
    # Lexical short-list
    # -------------------------------------------------------------
    filtered_lexical = [c for c in lexical if keep(c.pair)]
    lexical_ids = {c.pair.identity for c in filtered_lexical}

    exact = next(
        (c for c in filtered_lexical if is_exact_match(query, c.pair.source_text)),
        None,
    )

    ordered: List[SearchCandidate] = []
    if exact is not None:
        ordered.append(exact.model_copy(update={"is_exact_match": True, "in_lexical": True}))
    for candidate in filtered_lexical:
        if candidate is exact:
            continue
        ordered.append(candidate.model_copy(update={"in_lexical": True}))

    # -------------------------------------------------------------
    # User-contributed pairs
    # -------------------------------------------------------------
    user_candidates: List[SearchCandidate] = []
    for pair in user_matches:
        if len(user_candidates) >= k:
            break
        if any(c.pair.identity == pair.identity for c in user_candidates):
            continue
        user_candidates.append(
            SearchCandidate(
                pair=pair,
                composite_score=0.0,
                is_exact_match=is_exact_match(query, pair.source_text),
                in_lexical=True,
            )
        )

    user_texts = {_text_key(c.pair) for c in user_candidates}
    corpus_lexical = _dedupe(c for c in ordered if _text_key(c.pair) not in user_texts)
    lexical_shortlist = user_candidates + corpus_lexical[:k]

    # -------------------------------------------------------------
    # Semantic short-list
    # -------------------------------------------------------------
    query_tokens = token_count(query)
    scored: List[SearchCandidate] = []
    for candidate in _dedupe(c for c in semantic if keep(c.pair)):
        if candidate.semantic_distance is None:
            continue
        in_lexical = candidate.pair.identity in lexical_ids
        scored.append(
            candidate.model_copy(
                update={
                    "in_lexical": in_lexical,
                    "composite_score": score_candidate(
                        candidate.semantic_distance,
                        query_tokens,
                        token_count(candidate.pair.target_text),
                        in_lexical,
                        params,
                    ),
                }
            )
        )

    scored.sort(key=lambda c: c.composite_score)

    return ShortLists(lexical=lexical_shortlist, semantic=scored[:k])


def _dedupe(candidates) -> List[SearchCandidate]:
    seen = set()
    unique: List[SearchCandidate] = []
    for candidate in candidates:
        key = candidate.pair.identity
        if key in seen:
            continue
        seen.add(key)
        unique.append(candidate)
    return unique
