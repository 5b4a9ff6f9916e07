"""Resolution contract models.

Every model here is produced once per request and never mutated afterwards.
The HTTP layer serialises them as-is, so field names are part of the API.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

Availability = Literal["in_stock", "limited_stock", "unknown"]
Confidence = Literal["high", "medium", "low", "very_low"]

# === Input ===


class RawItem(BaseModel):
    """A user-entered shopping list line."""

    model_config = ConfigDict(frozen=True)

    name: str = ""
    quantity: float | str | None = None
    unit: str | None = None
    category: str | None = None
    brand: str | None = None


class ParsedItemDetails(BaseModel):
    model_config = ConfigDict(frozen=True)

    original_name: str
    clean_name: str
    quantity: float = 1  # number of units to buy
    measurement: float = 1  # size/weight of one unit
    unit: str = "each"
    search_query: str
    category: str = ""
    brand: str = ""


# === Catalog ===


class CandidateProduct(BaseModel):
    """A product as returned by the catalog. Unknown catalog fields are kept."""

    model_config = ConfigDict(frozen=True, extra="allow")

    id: str | None = None
    sku: str | None = None
    retailer_sku: str | None = None
    name: str = ""
    brand: str | None = None
    size: str | None = None
    price: float | None = None
    availability: Availability | None = None
    image_url: str | None = None

    @field_validator("id", "sku", "retailer_sku", mode="before")
    @classmethod
    def _coerce_identifier(cls, value: object) -> object:
        # Catalogs return numeric ids as often as string ones
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("availability", mode="before")
    @classmethod
    def _coerce_availability(cls, value: object) -> object:
        if value is None or value in ("in_stock", "limited_stock", "unknown"):
            return value
        return "unknown"


class ScoredCandidate(CandidateProduct):
    basic_score: int = 0
    # Set only when the tie-breaker picked this candidate
    ai_score: float | None = None
    ai_confidence: str | None = None
    ai_reason: str | None = None


class CatalogSearchResult(BaseModel):
    products: list[CandidateProduct] = []
    total_results: int = 0


class TieBreakerDecision(BaseModel):
    """The tie-breaker's pick among the candidates it was shown."""

    id: str
    ai_score: float = 0
    confidence: str = "low"
    reason: str = ""


# === Output ===


class ResolvedDetails(BaseModel):
    product_id: str
    name: str
    brand: str | None = None
    size: str | None = None
    price: float | None = None
    quantity: float
    measurement: float
    unit: str
    display_name: str
    total_price: str | None = None  # price * quantity, two decimals


class VendorSpecific(BaseModel):
    retailer_id: str | None = None
    search_query: str
    total_search_results: int = Field(ge=0)
    alternative_matches: list[ScoredCandidate] = Field(default=[], max_length=3)
    needs_approval: bool
    match_reason: str


class ResolvedMatch(BaseModel):
    original_item: RawItem
    instacart_product: ScoredCandidate
    resolved_details: ResolvedDetails
    vendor_specific: VendorSpecific
    confidence: Confidence


class UnresolvedItem(BaseModel):
    original_item: RawItem
    reason: str
    search_query: str | None = None


class BatchStats(BaseModel):
    total: int = Field(ge=0)
    resolved: int = Field(ge=0)
    unresolved: int = Field(ge=0)
    resolution_rate: str  # e.g. "66.7%"


class BatchResult(BaseModel):
    resolved: list[ResolvedMatch] = []
    unresolved: list[UnresolvedItem] = []
    stats: BatchStats


class CacheStats(BaseModel):
    size: int = Field(ge=0)
    keys: list[str] = []


# === Observability ===

ResolutionEventKind = Literal[
    "cache_hit",
    "cache_miss",
    "search_failed",
    "no_candidates",
    "tie_breaker_invoked",
    "tie_breaker_failed",
    "tie_breaker_rejected",
    "resolved",
    "unresolved",
    "item_failed",
    "item_cancelled",
]


class ResolutionEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: ResolutionEventKind
    item_name: str
    cache_key: str | None = None
    retailer_id: str | None = None
    detail: dict = {}


# === HTTP API ===


class ResolveBatchRequest(BaseModel):
    items: list[RawItem]
    retailer_id: str | None = None


class ResolveItemRequest(BaseModel):
    item: RawItem
    retailer_id: str | None = None


class ResolveItemResponse(BaseModel):
    resolved: bool
    match: ResolvedMatch | None = None
    unresolved: UnresolvedItem | None = None


class ClearCacheResponse(BaseModel):
    evicted: int = Field(ge=0)
    size: int = Field(ge=0)


class ErrorResponse(BaseModel):
    error: str
    message: str
    retryable: bool = False
