"""
Hybrid Searcher

Orchestrates one translation lookup: resolves the direction against the
corpus languages, runs the lexical branch concurrently with the
embed + semantic branch, then hands both to the re-ranker.

Direction
---------
A corpus maps one or more source languages to one target language.
Querying a source language is FORWARD; querying the target language is
REVERSE. Candidates of a REVERSE lookup are swapped so that every pair
the re-ranker sees is oriented query-side first.

Semantic search runs only when the query-language side of the corpus was
embedded at ingestion time. Otherwise the lexical short-list alone answers
and the result reports `semantic_searched=False`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional, Tuple

from .lexical import LexicalIndexClient
from .normalizer import normalize
from .rerank import Direction, RetrievalParams, TranslationResult, rerank
from .semantic import VectorIndexClient
from ..config import settings
from ..db.pair_store import CorpusInfo, TranslationStore
from ..db.user_store import UserPairStore
from ..embeddings.embedder import EmbeddingProvider, EmptyQueryError
from ..embeddings.index import IndexGenerationMismatchError
from ..embeddings.models import SearchCandidate, TranslationPair
from ..embeddings.registry import VectorIndexRegistry
from ..languages import Language, is_consistent_with

logger = logging.getLogger("malinali.hybrid")


class UnsupportedLanguagePairError(ValueError):
    """Raised when a language pair is not served by the corpus."""

    def __init__(self, corpus_id: str, source: Language, target: Language) -> None:
        self.corpus_id = corpus_id
        self.source = source
        self.target = target
        super().__init__(
            f"Corpus '{corpus_id}' does not translate {source.value} -> {target.value}."
        )


# ---------------------------------------------------------------------
# Direction Helpers
# ---------------------------------------------------------------------

def resolve_direction(
    corpus: CorpusInfo,
    source_language: Language,
    target_language: Language,
) -> Direction:
    if source_language in corpus.source_languages and target_language == corpus.target_language:
        return Direction.FORWARD
    if source_language == corpus.target_language and target_language in corpus.source_languages:
        return Direction.REVERSE
    raise UnsupportedLanguagePairError(corpus.corpus_id, source_language, target_language)


def query_column(direction: Direction) -> str:
    return "source_text" if direction is Direction.FORWARD else "target_text"


def is_embedded(corpus: CorpusInfo, direction: Direction) -> bool:
    embedded = "source" if direction is Direction.FORWARD else "target"
    return corpus.embedded_side == embedded


def consistency_filter(
    corpus: CorpusInfo,
    direction: Direction,
    source_language: Language,
    target_language: Language,
) -> Optional[Callable[[TranslationPair], bool]]:
    """
    Build the filter for oriented pairs.

    Only the corpus source column interleaves languages, so that is the
    text checked: the query side when FORWARD, the answer side when REVERSE.
    A corpus with a single source language needs no filter.
    """
    if len(corpus.source_languages) < 2:
        return None
    if direction is Direction.FORWARD:
        return lambda pair: is_consistent_with(pair.source_text, source_language)
    return lambda pair: is_consistent_with(pair.target_text, target_language)


def _orient(candidates: List[SearchCandidate], direction: Direction) -> List[SearchCandidate]:
    if direction is Direction.FORWARD:
        return candidates
    return [c.model_copy(update={"pair": c.pair.swapped()}) for c in candidates]


# ---------------------------------------------------------------------
# Searcher
# ---------------------------------------------------------------------

class HybridSearcher:
    """
    Translation lookup over the corpora of one store.
    """

    def __init__(
        self,
        store: TranslationStore,
        embedder: EmbeddingProvider,
        registry: VectorIndexRegistry,
        *,
        user_pairs: Optional[UserPairStore] = None,
        params: Optional[RetrievalParams] = None,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self._registry = registry
        self._user_pairs = user_pairs if user_pairs is not None else UserPairStore(store)
        self.params = params or RetrievalParams.from_settings()

    async def translate(
        self,
        query: str,
        source_language: "str | Language",
        target_language: "str | Language",
        corpus_id: Optional[str] = None,
    ) -> TranslationResult:
        """
        Look up translations of `query`.

        Parameters
        ----------
        query : str
            Raw query text in `source_language`.

        source_language, target_language : str | Language
            Declared languages of the query and of the wanted answer.

        corpus_id : Optional[str]
            Corpus to search. Defaults to settings.default_corpus_id.

        Returns
        -------
        TranslationResult
            Lexical and semantic short-lists; either may be empty.

        Raises
        ------
        EmptyQueryError
            If the query is blank.
        UnsupportedLanguagePairError
            If the corpus does not serve the language pair.
        CorpusNotFoundError
            If the corpus has not been ingested.
        """
        if not query or not query.strip():
            raise EmptyQueryError("Query text is empty.")

        source_language = Language.parse(source_language)
        target_language = Language.parse(target_language)

        corpus = await self._store.get_corpus(corpus_id or settings.default_corpus_id)
        direction = resolve_direction(corpus, source_language, target_language)
        semantic_enabled = is_embedded(corpus, direction)

        if semantic_enabled and corpus.generation != self._embedder.generation:
            raise IndexGenerationMismatchError(self._embedder.generation, corpus.generation)

        normalized = normalize(query, source_language)
        lexical_client = LexicalIndexClient(self._store, corpus.corpus_id, self._user_pairs)

        async def lexical_branch() -> Tuple[List[SearchCandidate], List[TranslationPair]]:
            column = query_column(direction)
            hits = await lexical_client.search_lexical(
                normalized,
                self.params.lexical_limit,
                side=column,
            )
            exact = await lexical_client.find_exact(
                query,
                self.params.lexical_limit,
                side=column,
            )
            found = {c.pair.identity for c in hits}
            hits.extend(c for c in exact if c.pair.identity not in found)

            user_hits = await lexical_client.search_user_pairs(
                normalized,
                query,
                source_language,
                target_language,
                self.params.shortlist_size,
            )
            return _orient(hits, direction), user_hits

        async def semantic_branch() -> List[SearchCandidate]:
            if not semantic_enabled:
                return []
            vector = await self._embedder.embed(query)
            # Loading an index from disk is blocking FAISS I/O
            index = await asyncio.to_thread(self._registry.get, corpus.corpus_id)
            vector_client = VectorIndexClient(self._store, corpus.corpus_id, index)
            hits = await vector_client.search_semantic(
                vector,
                self.params.semantic_k,
                self.params.search_radius,
            )
            return _orient(hits, direction)

        (lexical, user_matches), semantic = await asyncio.gather(
            lexical_branch(), semantic_branch()
        )

        shortlists = rerank(
            query,
            lexical,
            semantic,
            user_matches,
            params=self.params,
            keep=consistency_filter(corpus, direction, source_language, target_language),
        )

        logger.debug(
            "translate %s->%s on %s (%s): lexical %d/%d, semantic %d/%d, user %d",
            source_language.value,
            target_language.value,
            corpus.corpus_id,
            direction.value,
            len(shortlists.lexical),
            len(lexical),
            len(shortlists.semantic),
            len(semantic),
            len(user_matches),
        )

        return TranslationResult(
            direction=direction,
            lexical=shortlists.lexical,
            semantic=shortlists.semantic,
            semantic_searched=semantic_enabled,
        )
