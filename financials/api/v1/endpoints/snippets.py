"""Serving of stored audit snippets."""

from pathlib import PurePosixPath
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Response, status

from financials.dependencies import get_store
from financials.repositories.base import FinancialsStore

router = APIRouter()

MEDIA_TYPES = {
    ".png": "image/png",
    ".pdf": "application/pdf",
}


@router.get("/{company}/{name}", summary="Get an audit snippet", operation_id="get_snippet")
async def get_snippet(
    company: str,
    name: str,
    store: Annotated[FinancialsStore, Depends(get_store)],
) -> Response:
    content = await store.load_snippet(company, name)
    if content is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Snippet not found")

    media_type = MEDIA_TYPES.get(PurePosixPath(name).suffix.lower(), "application/octet-stream")
    return Response(content=content, media_type=media_type)
