from fastapi import APIRouter

from financials.api.v1.endpoints import companies, ingestion, snippets

# Create API router
api_router = APIRouter()

# Include routers
api_router.include_router(ingestion.router, prefix="/ingestion", tags=["Ingestion"])
api_router.include_router(companies.router, prefix="/companies", tags=["Companies"])
api_router.include_router(snippets.router, prefix="/snippets", tags=["Snippets"])

__all__ = ["api_router"]
