"""Health check endpoint.

Reports which catalog and tie-breaker backends the running service uses.
When the service cannot be built from settings (HTTP catalog without an
API key), the check answers 503 ``configuration_error`` instead.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from cart_resolver.api.routes.resolution import get_service
from cart_resolver.config import settings
from cart_resolver.resolution.service import ProductResolutionService

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(service: ProductResolutionService = Depends(get_service)) -> dict:
    tie_breaker = service.tie_breaker.name if service.tie_breaker is not None else "none"
    return {
        "status": "ok",
        "version": "0.1.0",
        "environment": settings.environment,
        "catalog": service.catalog.name,
        "tie_breaker": tie_breaker,
        "cache_size": service.get_cache_stats().size,
    }
