"""Read endpoints for stored company financials."""

from typing import Annotated, Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request, status

from financials.dependencies import get_guide_loader, get_store
from financials.models.facts import normalize_period
from financials.repositories.base import FinancialsStore
from financials.services.guide_loader import GuideLoader
from financials.utils.responses import create_api_response

router = APIRouter()


def _period_or_400(period: str) -> str:
    try:
        return normalize_period(period)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid period '{period}', expected YYYY-MM or YYYY-MM-DD",
        )


@router.get("/", summary="List configured companies", operation_id="list_companies")
async def list_companies(
    request: Request,
    guide_loader: Annotated[GuideLoader, Depends(get_guide_loader)],
) -> Dict[str, Any]:
    return create_api_response(
        data={"companies": guide_loader.list_companies()},
        request=request,
    )


@router.get("/{slug}/periods", summary="List fact periods", operation_id="list_fact_periods")
async def list_periods(
    slug: str,
    request: Request,
    store: Annotated[FinancialsStore, Depends(get_store)],
) -> Dict[str, Any]:
    periods = await store.list_fact_periods(slug)
    return create_api_response(data={"company": slug, "periods": periods}, request=request)


@router.get("/{slug}/facts/{period}", summary="Get facts for a period", operation_id="get_period_facts")
async def get_facts(
    slug: str,
    period: str,
    request: Request,
    store: Annotated[FinancialsStore, Depends(get_store)],
) -> Dict[str, Any]:
    """Reconciled facts, with changelogs, for one company period."""
    period = _period_or_400(period)
    facts = await store.load_facts(slug, period)
    return create_api_response(
        data={
            "company": slug,
            "period": period,
            "facts": [fact.model_dump(mode="json") for fact in facts],
        },
        request=request,
    )


@router.get("/{slug}/metrics/{period}", summary="Get metrics for a period", operation_id="get_period_metrics")
async def get_metrics(
    slug: str,
    period: str,
    request: Request,
    store: Annotated[FinancialsStore, Depends(get_store)],
) -> Dict[str, Any]:
    period = _period_or_400(period)
    metrics = await store.load_metrics(slug, period)
    return create_api_response(
        data={
            "company": slug,
            "period": period,
            "metrics": [metric.model_dump(mode="json") for metric in metrics],
        },
        request=request,
    )


@router.get("/{slug}/extractions", summary="List extraction snapshots", operation_id="list_extractions")
async def list_extractions(
    slug: str,
    request: Request,
    store: Annotated[FinancialsStore, Depends(get_store)],
) -> Dict[str, Any]:
    extractions = await store.list_extractions(slug)
    return create_api_response(data=extractions, request=request)
