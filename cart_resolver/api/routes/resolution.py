"""Resolution API endpoints: a thin layer over ProductResolutionService.

One service instance per process, built lazily from settings so the
resolution cache is shared across requests. Tests swap it through
``app.dependency_overrides[get_service]``.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends

from cart_resolver.config import settings
from cart_resolver.models.contracts import (
    BatchResult,
    CacheStats,
    ClearCacheResponse,
    ResolveBatchRequest,
    ResolvedMatch,
    ResolveItemRequest,
    ResolveItemResponse,
)
from cart_resolver.resolution.service import ProductResolutionService, build_service

logger = structlog.get_logger("cart_resolver.api")

router = APIRouter(tags=["resolution"])

_service: ProductResolutionService | None = None


def get_service() -> ProductResolutionService:
    global _service
    if _service is None:
        _service = build_service(settings)
        logger.info(
            "resolution_service_ready",
            catalog=_service.catalog.name,
            tie_breaker=getattr(_service.tie_breaker, "name", "none"),
        )
    return _service


async def close_service() -> None:
    global _service
    if _service is not None:
        await _service.aclose()
        _service = None


@router.post("/resolve", response_model=BatchResult)
async def resolve_batch(
    body: ResolveBatchRequest,
    service: ProductResolutionService = Depends(get_service),
) -> BatchResult:
    """Resolve a shopping list. Per-item failures land in ``unresolved``."""
    return await service.resolve_cart_smash_items(body.items, body.retailer_id)


@router.post("/resolve/item", response_model=ResolveItemResponse)
async def resolve_single_item(
    body: ResolveItemRequest,
    service: ProductResolutionService = Depends(get_service),
) -> ResolveItemResponse:
    outcome = await service.resolve_item(body.item, body.retailer_id)
    if isinstance(outcome, ResolvedMatch):
        return ResolveItemResponse(resolved=True, match=outcome)
    return ResolveItemResponse(resolved=False, unresolved=outcome)


@router.get("/cache/stats", response_model=CacheStats)
async def cache_stats(service: ProductResolutionService = Depends(get_service)) -> CacheStats:
    return service.get_cache_stats()


@router.post("/cache/clear-expired", response_model=ClearCacheResponse)
async def clear_expired(
    service: ProductResolutionService = Depends(get_service),
) -> ClearCacheResponse:
    evicted = service.clear_expired_cache()
    return ClearCacheResponse(evicted=evicted, size=service.get_cache_stats().size)
