"""
Translation Store

SQLite-backed storage for corpora, their aligned pairs and the FTS5 index
over them. Vectors live in the per-corpus FAISS index; the two structures
share `point_index` as the pair identity.

The store owns its engine. Searches are read-only; writes (ingestion
commits and user pair inserts) serialize on `write_lock`.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import delete, func, select, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from .fts import FTS_COLUMNS, fts_document
from .models import Base, Corpus, PairRow, FTS_DDL
from .session import build_engine, build_sessionmaker
from ..corpora import validate_corpus_id
from ..embeddings.models import IndexGeneration, TranslationPair
from ..languages import Language
from ..retrieval.normalizer import fold_text

logger = logging.getLogger("malinali.store")

EMBEDDED_SIDES = ("source", "target")


class CorpusNotFoundError(LookupError):
    """Raised when no corpus with the requested id has been ingested."""

    def __init__(self, corpus_id: str) -> None:
        self.corpus_id = corpus_id
        super().__init__(f"Corpus '{corpus_id}' has not been ingested.")


@dataclass(frozen=True)
class CorpusInfo:
    """
    Description of one ingested corpus.
    """
    corpus_id: str
    source_languages: Tuple[Language, ...]
    target_language: Language
    embedded_side: str
    generation: IndexGeneration
    pair_count: int = 0
    created_at: Optional[datetime] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if self.embedded_side not in EMBEDDED_SIDES:
            raise ValueError(f"embedded_side must be one of {EMBEDDED_SIDES}, got {self.embedded_side!r}")

    @classmethod
    def from_row(cls, row: Corpus) -> "CorpusInfo":
        return cls(
            corpus_id=row.corpus_id,
            source_languages=tuple(
                Language.parse(code) for code in row.source_languages.split(",") if code
            ),
            target_language=Language.parse(row.target_language),
            embedded_side=row.embedded_side,
            generation=IndexGeneration(model_id=row.model_id, dimension=row.dimension),
            pair_count=row.pair_count,
            created_at=row.created_at,
        )


class TranslationStore:
    """
    Persistent store of corpora, corpus pairs and user pairs.

    Use `await TranslationStore.open(url)` or `async with` to get a store
    with its schema in place; call `close()` to dispose the engine.
    """

    def __init__(
        self,
        database_url: Optional[str] = None,
        *,
        engine: Optional[AsyncEngine] = None,
    ) -> None:
        self._engine = engine or build_engine(database_url)
        self._sessionmaker = build_sessionmaker(self._engine)
        self._write_lock = asyncio.Lock()

    @classmethod
    async def open(cls, database_url: Optional[str] = None) -> "TranslationStore":
        store = cls(database_url)
        await store.init_schema()
        return store

    async def __aenter__(self) -> "TranslationStore":
        await self.init_schema()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def init_schema(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
            for ddl in FTS_DDL:
                await conn.execute(text(ddl))

    async def close(self) -> None:
        await self._engine.dispose()

    @property
    def write_lock(self) -> asyncio.Lock:
        return self._write_lock

    def session(self) -> AsyncSession:
        return self._sessionmaker()

    # ------------------------------------------------------------------
    # Corpora
    # ------------------------------------------------------------------

    async def get_corpus(self, corpus_id: str) -> CorpusInfo:
        """
        Raises
        ------
        CorpusNotFoundError
            If the corpus has not been ingested.
        """
        corpus_id = validate_corpus_id(corpus_id)
        async with self.session() as session:
            row = await session.get(Corpus, corpus_id)
            if row is None:
                raise CorpusNotFoundError(corpus_id)
            return CorpusInfo.from_row(row)

    async def list_corpora(self) -> List[CorpusInfo]:
        async with self.session() as session:
            result = await session.execute(select(Corpus).order_by(Corpus.corpus_id))
            return [CorpusInfo.from_row(row) for row in result.scalars().all()]

    async def replace_corpus(
        self,
        session: AsyncSession,
        info: CorpusInfo,
        pairs: Sequence[TranslationPair],
        row_languages: Sequence[Language],
    ) -> List[int]:
        """
        Replace a corpus and all of its pairs inside the caller's transaction.

        The caller owns commit/rollback and must hold `write_lock`.
        `row_languages` gives the source language of each pair; the
        full-text documents are normalized per language.

        Returns
        -------
        List[int]
            The point_index assigned to each pair, in input order.
        """
        corpus_id = validate_corpus_id(info.corpus_id)
        if len(row_languages) != len(pairs):
            raise ValueError(
                f"Got {len(row_languages)} row languages for {len(pairs)} pairs."
            )

        await session.execute(
            text(
                "DELETE FROM translation_pair_fts WHERE rowid IN "
                "(SELECT point_index FROM translation_pair WHERE corpus_id = :corpus_id)"
            ),
            {"corpus_id": corpus_id},
        )
        await session.execute(delete(PairRow).where(PairRow.corpus_id == corpus_id))
        await session.execute(delete(Corpus).where(Corpus.corpus_id == corpus_id))

        session.add(
            Corpus(
                corpus_id=corpus_id,
                source_languages=",".join(lang.value for lang in info.source_languages),
                target_language=info.target_language.value,
                embedded_side=info.embedded_side,
                model_id=info.generation.model_id,
                dimension=info.generation.dimension,
                pair_count=len(pairs),
            )
        )
        await session.flush()

        rows = [
            PairRow(
                corpus_id=corpus_id,
                source_text=pair.source_text,
                target_text=pair.target_text,
                source_key=fold_text(pair.source_text),
                target_key=fold_text(pair.target_text),
            )
            for pair in pairs
        ]
        session.add_all(rows)
        await session.flush()

        if rows:
            await session.execute(
                text(
                    "INSERT INTO translation_pair_fts(rowid, source_text, target_text) "
                    "VALUES (:rowid, :source_text, :target_text)"
                ),
                [
                    {
                        "rowid": row.point_index,
                        "source_text": fts_document(row.source_text, language),
                        "target_text": fts_document(row.target_text, info.target_language),
                    }
                    for row, language in zip(rows, row_languages)
                ],
            )

        return [row.point_index for row in rows]

    # ------------------------------------------------------------------
    # Pair Queries
    # ------------------------------------------------------------------

    async def search_fts(
        self,
        corpus_id: str,
        match_expression: str,
        limit: int,
    ) -> List[Tuple[TranslationPair, float]]:
        """
        Run an FTS5 MATCH over one corpus.

        Returns (pair, bm25 rank) tuples, best (lowest rank) first.
        """
        stmt = text(
            "SELECT p.point_index, p.source_text, p.target_text, "
            "bm25(translation_pair_fts) AS lexical_rank "
            "FROM translation_pair_fts "
            "JOIN translation_pair p ON p.point_index = translation_pair_fts.rowid "
            "WHERE translation_pair_fts MATCH :expr AND p.corpus_id = :corpus_id "
            "ORDER BY lexical_rank LIMIT :limit"
        )

        async with self.session() as session:
            result = await session.execute(
                stmt,
                {"expr": match_expression, "corpus_id": corpus_id, "limit": limit},
            )
            rows = result.all()

        return [
            (
                TranslationPair(
                    source_text=row.source_text,
                    target_text=row.target_text,
                    point_index=row.point_index,
                ),
                float(row.lexical_rank),
            )
            for row in rows
        ]

    async def find_exact(
        self,
        corpus_id: str,
        column: str,
        query: str,
        limit: int,
    ) -> List[TranslationPair]:
        """
        Pairs whose `column` text equals `query` once both are trimmed and
        case-folded, independent of any full-text ranking.
        """
        if column not in FTS_COLUMNS:
            raise ValueError(f"Unknown pair column: {column!r}")

        key = fold_text(query)
        if not key:
            return []

        key_column = PairRow.source_key if column == "source_text" else PairRow.target_key
        stmt = (
            select(PairRow)
            .where(PairRow.corpus_id == corpus_id, key_column == key)
            .order_by(PairRow.point_index)
            .limit(limit)
        )

        async with self.session() as session:
            result = await session.execute(stmt)
            rows = result.scalars().all()

        return [
            TranslationPair(
                source_text=row.source_text,
                target_text=row.target_text,
                point_index=row.point_index,
            )
            for row in rows
        ]

    async def fetch_pairs(
        self,
        corpus_id: str,
        point_indexes: Sequence[int],
    ) -> Dict[int, TranslationPair]:
        """
        Load pairs by point_index, restricted to one corpus.
        """
        if not point_indexes:
            return {}

        stmt = select(PairRow).where(
            PairRow.corpus_id == corpus_id,
            PairRow.point_index.in_(list(point_indexes)),
        )

        async with self.session() as session:
            result = await session.execute(stmt)
            rows = result.scalars().all()

        return {
            row.point_index: TranslationPair(
                source_text=row.source_text,
                target_text=row.target_text,
                point_index=row.point_index,
            )
            for row in rows
        }

    async def get_stats(self, corpus_id: str) -> dict:
        """
        Return statistics about one corpus.
        """
        info = await self.get_corpus(corpus_id)

        async with self.session() as session:
            total = await session.execute(
                select(func.count()).select_from(PairRow).where(PairRow.corpus_id == info.corpus_id)
            )
            stored_pairs = total.scalar() or 0

        return {
            "corpus_id": info.corpus_id,
            "source_languages": [lang.value for lang in info.source_languages],
            "target_language": info.target_language.value,
            "embedded_side": info.embedded_side,
            "model_id": info.generation.model_id,
            "dimension": info.generation.dimension,
            "pair_count": stored_pairs,
            "created_at": info.created_at.isoformat() if info.created_at else None,
        }
