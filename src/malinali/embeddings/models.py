"""
Retrieval Data Models

This module defines the canonical data model shared by ingestion, the
storage layer and the re-ranker:

- TranslationPair: one aligned (source, target) phrase pair
- SearchCandidate: a pair plus the retrieval signals seen for one query
- IndexGeneration: the embedding space a set of vectors belongs to
"""

from __future__ import annotations

from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class IndexGeneration(BaseModel):
    """
    Identifies the embedding space that produced a set of vectors.

    Vectors from two generations are not comparable and must never be
    mixed in one index.
    """

    model_id: str = Field(..., min_length=1)
    dimension: int = Field(..., gt=0)

    model_config = ConfigDict(frozen=True, extra="forbid")

    def __str__(self) -> str:
        return f"{self.model_id}/{self.dimension}d"


class TranslationPair(BaseModel):
    """
    A single aligned phrase pair.

    Corpus pairs are identified by `point_index` (shared by the full-text
    rows and the vector index). User-contributed pairs carry the id of
    their own partition and `is_user_contributed=True`.
    """

    source_text: str = Field(
        ...,
        min_length=1,
        description="Phrase in the source language of this pair.",
    )

    target_text: str = Field(
        ...,
        min_length=1,
        description="The retrievable translation.",
    )

    embedding: Optional[List[float]] = Field(
        default=None,
        description="Vector for the embedded side; only populated during ingestion.",
    )

    is_user_contributed: bool = False

    point_index: Optional[int] = Field(default=None, ge=0)

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
    )

    @property
    def identity(self) -> Tuple[bool, Optional[int]]:
        return (self.is_user_contributed, self.point_index)

    def swapped(self) -> "TranslationPair":
        """Return the same pair with source and target exchanged."""
        return self.model_copy(
            update={"source_text": self.target_text, "target_text": self.source_text}
        )


class SearchCandidate(BaseModel):
    """
    A pair surfaced by one retrieval signal for a single query.

    Lower is better for every numeric signal.
    """

    pair: TranslationPair
    lexical_rank: Optional[float] = None
    semantic_distance: Optional[float] = None
    composite_score: Optional[float] = None
    is_exact_match: bool = False
    in_lexical: bool = False

    model_config = ConfigDict(extra="forbid")

    @property
    def point_index(self) -> Optional[int]:
        return self.pair.point_index
