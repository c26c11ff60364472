"""
User-Contributed Pairs

Pairs a user adds at runtime live in their own table and FTS5 index so
they can be listed, deleted and exported independently of the bulk
corpus. In ranking they are authoritative: any matching user pair is shown
ahead of corpus matches.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict
from sqlalchemy import delete, func, select, text

from .fts import build_match_expression, fts_document
from .models import UserPairRow
from .pair_store import TranslationStore
from ..embeddings.models import TranslationPair
from ..languages import Language

logger = logging.getLogger("malinali.store")


class InvalidUserPairError(ValueError):
    """Raised when a user pair has a blank side."""


class UserPairEntry(BaseModel):
    """
    A stored user pair as listed/exported.
    """
    id: int
    source_text: str
    target_text: str
    source_language: str
    target_language: str
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class UserPairStore:
    """
    Insert, search, list, delete and export user pairs.
    """

    def __init__(self, store: TranslationStore) -> None:
        self._store = store

    async def add(
        self,
        source_text: str,
        target_text: str,
        source_language: "str | Language",
        target_language: "str | Language",
    ) -> int:
        """
        Add a user pair and index it for full-text search.

        Returns
        -------
        int
            The id of the new pair.
        """
        source_text = (source_text or "").strip()
        target_text = (target_text or "").strip()
        if not source_text or not target_text:
            raise InvalidUserPairError("Both source_text and target_text are required.")

        source_lang = Language.parse(source_language)
        target_lang = Language.parse(target_language)

        async with self._store.write_lock:
            async with self._store.session() as session:
                async with session.begin():
                    row = UserPairRow(
                        source_text=source_text,
                        target_text=target_text,
                        source_language=source_lang.value,
                        target_language=target_lang.value,
                    )
                    session.add(row)
                    await session.flush()

                    await session.execute(
                        text(
                            "INSERT INTO user_pair_fts(rowid, source_text, target_text) "
                            "VALUES (:rowid, :source_text, :target_text)"
                        ),
                        {
                            "rowid": row.id,
                            "source_text": fts_document(source_text, source_lang),
                            "target_text": fts_document(target_text, target_lang),
                        },
                    )
                    pair_id = row.id

        logger.info("User pair %d added (%s -> %s)", pair_id, source_lang.value, target_lang.value)
        return pair_id

    async def search(
        self,
        terms: Sequence[str],
        raw_query: str,
        query_language: Language,
        answer_language: Language,
        limit: int = 20,
    ) -> List[Tuple[TranslationPair, float]]:
        """
        Find user pairs matching a query in either stored orientation.

        A pair stored as (query_language -> answer_language) is matched on
        its source text; one stored the other way round is matched on its
        target text. Results are oriented query-side first.

        When no searchable terms remain (punctuation-only queries), a
        substring match on the raw query is used instead.
        """
        results: List[Tuple[TranslationPair, float]] = []

        for column, stored_source, stored_target, swap in (
            ("source_text", query_language, answer_language, False),
            ("target_text", answer_language, query_language, True),
        ):
            expression = build_match_expression(terms, column)
            if expression is not None:
                rows = await self._search_fts(expression, stored_source, stored_target, limit)
            else:
                rows = await self._search_like(raw_query, column, stored_source, stored_target, limit)

            for pair_id, source_text, target_text, rank in rows:
                pair = TranslationPair(
                    source_text=source_text,
                    target_text=target_text,
                    is_user_contributed=True,
                    point_index=pair_id,
                )
                results.append((pair.swapped() if swap else pair, rank))

        results.sort(key=lambda item: item[1])
        return results[:limit]

    async def _search_fts(
        self,
        expression: str,
        source_language: Language,
        target_language: Language,
        limit: int,
    ) -> List[Tuple[int, str, str, float]]:
        stmt = text(
            "SELECT u.id, u.source_text, u.target_text, bm25(user_pair_fts) AS lexical_rank "
            "FROM user_pair_fts "
            "JOIN user_pair u ON u.id = user_pair_fts.rowid "
            "WHERE user_pair_fts MATCH :expr "
            "AND u.source_language = :source_language AND u.target_language = :target_language "
            "ORDER BY lexical_rank LIMIT :limit"
        )
        async with self._store.session() as session:
            result = await session.execute(
                stmt,
                {
                    "expr": expression,
                    "source_language": source_language.value,
                    "target_language": target_language.value,
                    "limit": limit,
                },
            )
            return [(row.id, row.source_text, row.target_text, float(row.lexical_rank)) for row in result.all()]

    async def _search_like(
        self,
        raw_query: str,
        column: str,
        source_language: Language,
        target_language: Language,
        limit: int,
    ) -> List[Tuple[int, str, str, float]]:
        needle = raw_query.strip()
        if not needle:
            return []

        target_column = getattr(UserPairRow, column)
        stmt = (
            select(UserPairRow)
            .where(
                UserPairRow.source_language == source_language.value,
                UserPairRow.target_language == target_language.value,
                target_column.contains(needle, autoescape=True),
            )
            .order_by(UserPairRow.id.desc())
            .limit(limit)
        )
        async with self._store.session() as session:
            result = await session.execute(stmt)
            return [(row.id, row.source_text, row.target_text, 0.0) for row in result.scalars().all()]

    async def list_all(self) -> List[UserPairEntry]:
        async with self._store.session() as session:
            result = await session.execute(select(UserPairRow).order_by(UserPairRow.id))
            return [UserPairEntry.model_validate(row) for row in result.scalars().all()]

    async def count(self) -> int:
        async with self._store.session() as session:
            result = await session.execute(select(func.count()).select_from(UserPairRow))
            return result.scalar() or 0

    async def delete(self, pair_id: int) -> bool:
        """
        Delete a user pair. Returns False when no such pair exists.
        """
        async with self._store.write_lock:
            async with self._store.session() as session:
                async with session.begin():
                    result = await session.execute(
                        delete(UserPairRow).where(UserPairRow.id == pair_id)
                    )
                    await session.execute(
                        text("DELETE FROM user_pair_fts WHERE rowid = :rowid"),
                        {"rowid": pair_id},
                    )
                    return result.rowcount > 0

    async def export(
        self,
        source_language: Optional[Language] = None,
        target_language: Optional[Language] = None,
    ) -> Tuple[str, str]:
        """
        Export user pairs as two line-aligned text blocks.

        The blocks use the corpus file format (one phrase per line), so
        they can be fed straight back into ingestion.
        """
        stmt = select(UserPairRow).order_by(UserPairRow.id)
        if source_language is not None:
            stmt = stmt.where(UserPairRow.source_language == source_language.value)
        if target_language is not None:
            stmt = stmt.where(UserPairRow.target_language == target_language.value)

        async with self._store.session() as session:
            result = await session.execute(stmt)
            rows = result.scalars().all()

        sources = [_single_line(row.source_text) for row in rows]
        targets = [_single_line(row.target_text) for row in rows]
        return "\n".join(sources), "\n".join(targets)


def _single_line(value: str) -> str:
    return " ".join(value.split())
