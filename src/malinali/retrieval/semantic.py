"""
Vector Index Client

Nearest-neighbour search over one corpus's FAISS index, hydrated into
pairs from the store.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Sequence

from ..db.pair_store import TranslationStore
from ..embeddings.embedder import DimensionMismatchError
from ..embeddings.index import FaissIndex
from ..embeddings.models import SearchCandidate

logger = logging.getLogger("malinali.semantic")


class VectorIndexClient:
    """
    Semantic search bound to one corpus and its index.
    """

    def __init__(self, store: TranslationStore, corpus_id: str, index: FaissIndex) -> None:
        self._store = store
        self.corpus_id = corpus_id
        self._index = index

    async def search_semantic(
        self,
        query_vector: Sequence[float],
        k: int,
        search_radius: int,
    ) -> List[SearchCandidate]:
        """
        Return up to k candidates by ascending cosine distance.

        Raises
        ------
        DimensionMismatchError
            If the vector does not match the index dimension.
        """
        expected = self._index.generation.dimension
        if len(query_vector) != expected:
            raise DimensionMismatchError(expected, len(query_vector))

        hits = await asyncio.to_thread(self._index.search, query_vector, k, search_radius)
        if not hits:
            return []

        pairs = await self._store.fetch_pairs(self.corpus_id, [idx for idx, _ in hits])

        candidates: List[SearchCandidate] = []
        for idx, distance in hits:
            pair = pairs.get(idx)
            if pair is None:
                # Vector without a row: index and store disagree
                logger.warning("Vector %d of %s has no stored pair", idx, self.corpus_id)
                continue
            candidates.append(SearchCandidate(pair=pair, semantic_distance=distance))

        return candidates
