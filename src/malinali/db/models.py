"""
SQLAlchemy Models

Defines the database schema for:
- Corpora (one row per ingested corpus / language pair)
- Corpus translation pairs, addressed by point_index
- User-contributed pairs, kept in their own partition
- FTS5 virtual tables over both pair tables
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


# ---------------------------------------------------------------------
# Corpus
# ---------------------------------------------------------------------

class Corpus(Base):
    """
    An ingested parallel corpus and the embedding generation of its vectors.
    """
    __tablename__ = "corpus"

    corpus_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    # Comma-separated language codes, one per source file
    source_languages: Mapped[str] = mapped_column(String(64), nullable=False)
    target_language: Mapped[str] = mapped_column(String(8), nullable=False)
    embedded_side: Mapped[str] = mapped_column(String(8), nullable=False, default="source")
    model_id: Mapped[str] = mapped_column(Text, nullable=False)
    dimension: Mapped[int] = mapped_column(Integer, nullable=False)
    pair_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
    )


# ---------------------------------------------------------------------
# Corpus Pairs
# ---------------------------------------------------------------------

class PairRow(Base):
    """
    One aligned pair of a corpus. `point_index` is also its FAISS id.
    """
    __tablename__ = "translation_pair"

    point_index: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    corpus_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("corpus.corpus_id", ondelete="CASCADE"),
        nullable=False,
    )
    source_text: Mapped[str] = mapped_column(Text, nullable=False)
    target_text: Mapped[str] = mapped_column(Text, nullable=False)
    # Trimmed, case-folded text for exact lookups
    source_key: Mapped[str] = mapped_column(Text, nullable=False)
    target_key: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        Index("idx_translation_pair_corpus", "corpus_id"),
        Index("idx_translation_pair_source_key", "corpus_id", "source_key"),
        Index("idx_translation_pair_target_key", "corpus_id", "target_key"),
        {"sqlite_autoincrement": True},
    )


# ---------------------------------------------------------------------
# User Pairs
# ---------------------------------------------------------------------

class UserPairRow(Base):
    """
    A pair added by a user at runtime. Always preferred in ranking.
    """
    __tablename__ = "user_pair"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_text: Mapped[str] = mapped_column(Text, nullable=False)
    target_text: Mapped[str] = mapped_column(Text, nullable=False)
    source_language: Mapped[str] = mapped_column(String(8), nullable=False)
    target_language: Mapped[str] = mapped_column(String(8), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        Index("idx_user_pair_languages", "source_language", "target_language"),
        {"sqlite_autoincrement": True},
    )


# ---------------------------------------------------------------------
# Full-Text Tables
# ---------------------------------------------------------------------

# rowid of each FTS row equals the id of the row it indexes. Documents are
# written pre-normalized (see db/fts.py), so the tokenizer does not stem.
FTS_DDL = (
    "CREATE VIRTUAL TABLE IF NOT EXISTS translation_pair_fts "
    "USING fts5(source_text, target_text, tokenize='unicode61')",
    "CREATE VIRTUAL TABLE IF NOT EXISTS user_pair_fts "
    "USING fts5(source_text, target_text, tokenize='unicode61')",
)
