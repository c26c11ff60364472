"""
Lexical Index Client

Keyword search over one corpus (and the user partition) through the
SQLite FTS5 tables. Results come back in the index's native bm25 order;
language filtering is left to the re-ranker.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from .normalizer import match_terms
from ..db.fts import build_match_expression
from ..db.pair_store import TranslationStore
from ..db.user_store import UserPairStore
from ..embeddings.models import SearchCandidate, TranslationPair
from ..languages import Language

logger = logging.getLogger("malinali.lexical")


class LexicalIndexClient:
    """
    Full-text search bound to one corpus.
    """

    def __init__(
        self,
        store: TranslationStore,
        corpus_id: str,
        user_pairs: Optional[UserPairStore] = None,
    ) -> None:
        self._store = store
        self.corpus_id = corpus_id
        self._user_pairs = user_pairs

    async def search_lexical(
        self,
        normalized_query: str,
        limit: int,
        *,
        side: str = "source_text",
    ) -> List[SearchCandidate]:
        """
        Search one column of the corpus.

        Parameters
        ----------
        normalized_query : str
            Output of `normalize()`.

        limit : int
            Maximum number of hits.

        side : str
            "source_text" or "target_text": the column holding the query
            language.

        Returns
        -------
        List[SearchCandidate]
            Best first. Empty when the query has no searchable terms.
        """
        expression = build_match_expression(match_terms(normalized_query), side)
        if expression is None or limit <= 0:
            return []

        hits = await self._store.search_fts(self.corpus_id, expression, limit)
        logger.debug("FTS %s on %s: %d hits", side, self.corpus_id, len(hits))

        return [
            SearchCandidate(pair=pair, lexical_rank=rank, in_lexical=True)
            for pair, rank in hits
        ]

    async def find_exact(
        self,
        raw_query: str,
        limit: int,
        *,
        side: str = "source_text",
    ) -> List[SearchCandidate]:
        """
        Rows whose `side` text equals the query after trimming and case
        folding. Found directly, so an exact row outside the top full-text
        hits is still returned.
        """
        pairs = await self._store.find_exact(self.corpus_id, side, raw_query, limit)
        return [SearchCandidate(pair=pair, in_lexical=True) for pair in pairs]

    async def search_user_pairs(
        self,
        normalized_query: str,
        raw_query: str,
        query_language: Language,
        answer_language: Language,
        limit: int,
    ) -> List[TranslationPair]:
        """
        Search the user partition. Pairs are returned query-side first.
        """
        if self._user_pairs is None:
            return []

        hits = await self._user_pairs.search(
            match_terms(normalized_query),
            raw_query,
            query_language,
            answer_language,
            limit,
        )
        return [pair for pair, _ in hits]
