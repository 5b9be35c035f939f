"""Ingestion API endpoints."""

import json
from typing import Annotated, Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import ValidationError as PydanticValidationError

from financials.core.exceptions import ValidationError
from financials.dependencies import get_ingestion_service, get_store
from financials.repositories.base import FinancialsStore
from financials.schemas.ingestion import IngestionRequest
from financials.services.ingestion_service import IngestionService
from financials.utils.logging import get_logger
from financials.utils.responses import create_api_response

LOGGER = get_logger(__name__)

router = APIRouter()


@router.post(
    "/",
    summary="Ingest financial documents",
    operation_id="ingest_documents",
    openapi_extra={
        "requestBody": {
            "required": True,
            "content": {"application/json": {"schema": IngestionRequest.model_json_schema()}},
        }
    },
)
async def ingest_documents(
    request: Request,
    service: Annotated[IngestionService, Depends(get_ingestion_service)],
) -> Dict[str, Any]:
    """
    Ingest a batch of PDF and Excel documents for one company.

    Files are extracted concurrently, then reconciled into the company's facts
    one at a time. A failing file is reported in its own result and never
    aborts the batch.
    """
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Malformed JSON body")

    if not isinstance(body, dict) or not body.get("file_paths", body.get("filePaths")):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No files provided")

    try:
        ingestion_request = IngestionRequest.model_validate(body)
    except PydanticValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.errors(include_url=False))

    try:
        result = await service.ingest(ingestion_request)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return create_api_response(
        data=result,
        message=f"Ingested {result.summary.success} of {result.summary.total} files",
        status=result.status != "error",
        request=request,
    )


@router.get(
    "/summary",
    summary="Summarize stored data",
    operation_id="get_ingestion_summary",
)
async def ingestion_summary(
    request: Request,
    store: Annotated[FinancialsStore, Depends(get_store)],
) -> Dict[str, Any]:
    """Counts of stored extractions, fact periods, metric periods and cache entries."""
    summary = await store.summary()
    return create_api_response(data=summary, message="Storage summary", request=request)
