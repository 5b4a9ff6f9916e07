"""Catalog search clients.

The resolution service depends only on ``CatalogSearchClient.search``.
``HttpCatalogSearchClient`` talks to the marketplace catalog API;
``StaticCatalogClient`` serves a fixed product list for development and tests.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from cart_resolver.exceptions import CatalogSearchError
from cart_resolver.models.contracts import CandidateProduct, CatalogSearchResult

log = structlog.get_logger("cart_resolver.catalog")

SEARCH_PATH = "/catalog/search"
MAX_RETRIES = 1
RETRY_DELAY = 1.0
RETRYABLE_STATUSES = (429, 500, 502, 503)


class CatalogSearchClient(ABC):
    """Capability interface for catalog product search."""

    name: str = "base"

    @abstractmethod
    async def search(self, query: str, retailer_id: str | None = None) -> CatalogSearchResult:
        """Search the catalog.

        Raises:
            CatalogSearchError: on transport failure or an error response.
        """

    async def aclose(self) -> None:
        return None


def parse_products(rows: list[Any]) -> list[CandidateProduct]:
    """Validate raw catalog rows, dropping the ones that are not products."""
    products: list[CandidateProduct] = []
    for row in rows:
        if not isinstance(row, dict):
            continue
        try:
            products.append(CandidateProduct.model_validate(row))
        except ValidationError as exc:
            log.warning("catalog_product_dropped", error_count=exc.error_count())
    return products


def parse_search_response(data: Any) -> CatalogSearchResult:
    """Normalise a catalog search payload.

    Products may come back under ``products``, ``items`` or ``data``; the
    total under ``total`` or ``count``.
    """
    if not isinstance(data, dict):
        return CatalogSearchResult()
    rows = data.get("products") or data.get("items") or data.get("data") or []
    products = parse_products(rows if isinstance(rows, list) else [])
    total = data.get("total") or data.get("count") or len(products)
    try:
        total_results = int(total)
    except (TypeError, ValueError):
        total_results = len(products)
    return CatalogSearchResult(products=products, total_results=total_results)


class HttpCatalogSearchClient(CatalogSearchClient):
    """Catalog search over HTTP with a single retry on transient failures."""

    name = "http"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._headers = {
            "Authorization": f"Bearer {api_key}",
            "Accept": "application/json",
        }
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def search(self, query: str, retailer_id: str | None = None) -> CatalogSearchResult:
        params = {"q": query}
        if retailer_id:
            params["retailer_id"] = retailer_id

        for attempt in range(1 + MAX_RETRIES):
            try:
                resp = await self._http.get(
                    f"{self.base_url}{SEARCH_PATH}",
                    params=params,
                    headers=self._headers,
                    timeout=self.timeout,
                )
            except httpx.TimeoutException as exc:
                if attempt < MAX_RETRIES:
                    log.warning("catalog_search_timeout", query=query[:80], attempt=attempt + 1)
                    await asyncio.sleep(RETRY_DELAY)
                    continue
                raise CatalogSearchError(f"Catalog search timed out for {query!r}") from exc
            except httpx.RequestError as exc:
                raise CatalogSearchError(
                    f"Network error searching catalog: {type(exc).__name__}"
                ) from exc

            if resp.status_code == 200:
                try:
                    payload = resp.json()
                except ValueError as exc:
                    raise CatalogSearchError("Catalog returned invalid JSON") from exc
                return parse_search_response(payload)

            if resp.status_code in RETRYABLE_STATUSES and attempt < MAX_RETRIES:
                log.warning(
                    "catalog_search_retrying",
                    status=resp.status_code,
                    query=query[:80],
                    attempt=attempt + 1,
                )
                await asyncio.sleep(RETRY_DELAY)
                continue

            raise CatalogSearchError(
                f"Catalog search error: {resp.status_code}", status_code=resp.status_code
            )

        raise CatalogSearchError(f"Catalog search failed for {query!r}")


class StaticCatalogClient(CatalogSearchClient):
    """In-memory catalog: a product matches when its name shares a query word."""

    name = "static"

    def __init__(self, products: list[CandidateProduct] | list[dict[str, Any]] | None = None):
        self.products = [
            p if isinstance(p, CandidateProduct) else CandidateProduct.model_validate(p)
            for p in (products if products is not None else DEMO_PRODUCTS)
        ]
        self.queries: list[tuple[str, str | None]] = []

    async def search(self, query: str, retailer_id: str | None = None) -> CatalogSearchResult:
        self.queries.append((query, retailer_id))
        words = [w for w in query.lower().split() if not w.replace(".", "").isdigit()]
        matches = [
            p for p in self.products if any(w in (p.name or "").lower() for w in words)
        ]
        return CatalogSearchResult(products=matches, total_results=len(matches))


DEMO_PRODUCTS: list[dict[str, Any]] = [
    {"id": "demo-1001", "name": "Bananas", "size": "1 each", "price": 0.59,
     "availability": "in_stock"},
    {"id": "demo-1002", "name": "Organic Bananas, per lb", "size": "1 lb", "price": 0.99,
     "availability": "in_stock"},
    {"id": "demo-2001", "name": "Boneless Skinless Chicken Breast", "brand": "Perdue",
     "size": "2 lb", "price": 9.49, "availability": "in_stock"},
    {"id": "demo-2002", "name": "Chicken Breast Tenderloins", "brand": "Tyson",
     "size": "1.5 lb", "price": 8.99, "availability": "limited_stock"},
    {"id": "demo-3001", "name": "All Purpose Flour", "brand": "Gold Medal", "size": "5 lb",
     "price": 3.79, "availability": "in_stock"},
    {"id": "demo-4001", "name": "Whole Milk", "brand": "Horizon", "size": "1 gal",
     "price": 5.29, "availability": "in_stock"},
    {"id": "demo-4002", "name": "2% Reduced Fat Milk", "brand": "Lucerne", "size": "1 gal",
     "price": 3.99, "availability": "in_stock"},
    {"id": "demo-5001", "name": "Large Brown Eggs", "brand": "Vital Farms", "size": "12 ct",
     "price": 6.49, "availability": "in_stock"},
]
