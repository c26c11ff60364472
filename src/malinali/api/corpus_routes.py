"""
Corpus Routes

Read-only statistics about ingested corpora.
"""

import asyncio
from typing import Annotated, List

from fastapi import APIRouter, Depends

from .dependencies import get_registry, get_store
from .models import CorpusStatsResponse
from ..db.pair_store import TranslationStore
from ..embeddings.registry import VectorIndexRegistry

router = APIRouter(prefix="/corpora", tags=["corpora"])


@router.get("", response_model=List[str])
async def list_corpora(
    store: Annotated[TranslationStore, Depends(get_store)],
) -> List[str]:
    return [info.corpus_id for info in await store.list_corpora()]


@router.get("/{corpus_id}", response_model=CorpusStatsResponse)
async def get_corpus_stats(
    corpus_id: str,
    store: Annotated[TranslationStore, Depends(get_store)],
    registry: Annotated[VectorIndexRegistry, Depends(get_registry)],
) -> CorpusStatsResponse:
    """
    Row and vector counts of one corpus.

    The vector count comes from the loaded index and equals the pair count
    for a consistent corpus.
    """
    stats = await store.get_stats(corpus_id)
    index = await asyncio.to_thread(registry.get, stats["corpus_id"])
    return CorpusStatsResponse(**stats, vector_count=index.count)
