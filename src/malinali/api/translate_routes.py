"""
Translate Routes

Hybrid translation lookup: keyword matches and semantic matches for one
query against one corpus.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, status

from .dependencies import get_searcher
from .models import TranslateRequest, TranslateResponse
from ..retrieval.hybrid import HybridSearcher

router = APIRouter(tags=["translate"])


@router.post(
    "/translate",
    response_model=TranslateResponse,
    summary="Look up translations of a phrase",
    status_code=status.HTTP_200_OK,
)
async def translate(
    req: TranslateRequest,
    searcher: Annotated[HybridSearcher, Depends(get_searcher)],
) -> TranslateResponse:
    """
    Run a hybrid lookup.

    Empty short-lists are a normal answer ("no match"). Unsupported
    language pairs and blank queries are rejected with 422; an unknown
    corpus with 404.
    """
    result = await searcher.translate(
        req.query,
        req.source_language,
        req.target_language,
        corpus_id=req.corpus_id,
    )
    return TranslateResponse.from_result(result)
