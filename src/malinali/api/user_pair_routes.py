"""
User Pair Routes

Add, list, delete and export user-contributed pairs. Exports use the
corpus file format so they can be ingested as-is.
"""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from .dependencies import get_user_pairs
from .models import (
    OperationResult,
    UserPairCreateRequest,
    UserPairExportResponse,
    UserPairListResponse,
    UserPairResponse,
)
from ..db.user_store import UserPairStore
from ..languages import Language

router = APIRouter(prefix="/user-pairs", tags=["user-pairs"])


@router.post(
    "",
    response_model=OperationResult,
    status_code=status.HTTP_201_CREATED,
)
async def add_user_pair(
    req: UserPairCreateRequest,
    user_pairs: Annotated[UserPairStore, Depends(get_user_pairs)],
) -> OperationResult:
    pair_id = await user_pairs.add(
        req.source_text,
        req.target_text,
        req.source_language,
        req.target_language,
    )
    return OperationResult(status="created", id=pair_id)


@router.get("", response_model=UserPairListResponse)
async def list_user_pairs(
    user_pairs: Annotated[UserPairStore, Depends(get_user_pairs)],
) -> UserPairListResponse:
    entries = await user_pairs.list_all()
    return UserPairListResponse(
        count=len(entries),
        pairs=[UserPairResponse(**entry.model_dump()) for entry in entries],
    )


@router.get("/export", response_model=UserPairExportResponse)
async def export_user_pairs(
    user_pairs: Annotated[UserPairStore, Depends(get_user_pairs)],
    source_language: Annotated[Optional[str], Query()] = None,
    target_language: Annotated[Optional[str], Query()] = None,
) -> UserPairExportResponse:
    """
    Export as two newline-joined, line-aligned blocks.
    """
    source_block, target_block = await user_pairs.export(
        Language.parse(source_language) if source_language else None,
        Language.parse(target_language) if target_language else None,
    )
    count = len(source_block.splitlines()) if source_block else 0
    return UserPairExportResponse(
        source_block=source_block,
        target_block=target_block,
        count=count,
    )


@router.delete("/{pair_id}", response_model=OperationResult)
async def delete_user_pair(
    pair_id: int,
    user_pairs: Annotated[UserPairStore, Depends(get_user_pairs)],
) -> OperationResult:
    deleted = await user_pairs.delete(pair_id)
    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User pair {pair_id} not found.",
        )
    return OperationResult(status="deleted", id=pair_id)
