"""
API Models

Pydantic request/response models for the translation, user pair and
corpus endpoints.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..embeddings.models import SearchCandidate
from ..retrieval.rerank import TranslationResult


# ---------------------------------------------------------------------
# Translation
# ---------------------------------------------------------------------

class TranslateRequest(BaseModel):
    """
    Translation lookup request. Languages accept codes or names.
    """
    query: str = Field(..., min_length=1)
    source_language: str = Field(..., min_length=1)
    target_language: str = Field(..., min_length=1)
    corpus_id: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class TranslationMatch(BaseModel):
    """
    One entry of a short-list.
    """
    source_text: str
    target_text: str
    is_exact_match: bool = False
    is_user_contributed: bool = False
    point_index: Optional[int] = None
    lexical_rank: Optional[float] = None
    semantic_distance: Optional[float] = None
    composite_score: Optional[float] = None

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def from_candidate(cls, candidate: SearchCandidate) -> "TranslationMatch":
        return cls(
            source_text=candidate.pair.source_text,
            target_text=candidate.pair.target_text,
            is_exact_match=candidate.is_exact_match,
            is_user_contributed=candidate.pair.is_user_contributed,
            point_index=candidate.pair.point_index,
            lexical_rank=candidate.lexical_rank,
            semantic_distance=candidate.semantic_distance,
            composite_score=candidate.composite_score,
        )


class TranslateResponse(BaseModel):
    """
    Split view of a lookup: keyword matches and semantic matches.
    """
    direction: Literal["forward", "reverse"]
    exact_match: bool
    semantic_searched: bool
    lexical: List[TranslationMatch] = Field(default_factory=list)
    semantic: List[TranslationMatch] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def from_result(cls, result: TranslationResult) -> "TranslateResponse":
        return cls(
            direction=result.direction.value,
            exact_match=result.exact_match is not None,
            semantic_searched=result.semantic_searched,
            lexical=[TranslationMatch.from_candidate(c) for c in result.lexical],
            semantic=[TranslationMatch.from_candidate(c) for c in result.semantic],
        )


# ---------------------------------------------------------------------
# User Pairs
# ---------------------------------------------------------------------

class UserPairCreateRequest(BaseModel):
    source_text: str = Field(..., min_length=1)
    target_text: str = Field(..., min_length=1)
    source_language: str = Field(..., min_length=1)
    target_language: str = Field(..., min_length=1)

    model_config = ConfigDict(extra="forbid")


class UserPairResponse(BaseModel):
    id: int
    source_text: str
    target_text: str
    source_language: str
    target_language: str
    created_at: Optional[datetime] = None


class UserPairListResponse(BaseModel):
    count: int = Field(..., ge=0)
    pairs: List[UserPairResponse] = Field(default_factory=list)


class UserPairExportResponse(BaseModel):
    """
    Two line-aligned blocks in the corpus file format.
    """
    source_block: str
    target_block: str
    count: int = Field(..., ge=0)


class OperationResult(BaseModel):
    """
    Standardized mutation operation result.
    """
    status: Literal["created", "deleted"]
    id: int

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------
# Corpora
# ---------------------------------------------------------------------

class CorpusStatsResponse(BaseModel):
    corpus_id: str
    source_languages: List[str]
    target_language: str
    embedded_side: Literal["source", "target"]
    model_id: str
    dimension: int
    pair_count: int = Field(..., ge=0)
    vector_count: int = Field(..., ge=0)
    created_at: Optional[str] = None
