"""Resolution service: turns shopping list lines into catalog products.

Per item: cache → parse → catalog search → select best (tie-breaker when
scoring is inconclusive) → approval policy → cache. Items in a batch are
independent and resolved concurrently up to ``max_concurrency``; a failure
while resolving one item becomes an ``UnresolvedItem`` and never aborts
the batch.
"""

from __future__ import annotations

import asyncio
import random
import string
import time

import anthropic
import structlog

from cart_resolver.clients.catalog import (
    CatalogSearchClient,
    HttpCatalogSearchClient,
    StaticCatalogClient,
)
from cart_resolver.clients.tie_breaker import (
    AnthropicTieBreaker,
    HeuristicTieBreaker,
    NullTieBreaker,
    TieBreaker,
)
from cart_resolver.config import Settings, settings
from cart_resolver.exceptions import CatalogSearchError, ResolverConfigurationError
from cart_resolver.logging import resolution_context
from cart_resolver.models.contracts import (
    BatchResult,
    BatchStats,
    CacheStats,
    CatalogSearchResult,
    ParsedItemDetails,
    RawItem,
    ResolvedDetails,
    ResolvedMatch,
    ScoredCandidate,
    UnresolvedItem,
    VendorSpecific,
)
from cart_resolver.resolution.events import EventEmitter, EventHook
from cart_resolver.resolution.parser import format_amount, parse_item
from cart_resolver.resolution.policy import alternative_matches, match_reason, needs_approval
from cart_resolver.resolution.scoring import confidence_for_score
from cart_resolver.resolution.selection import Selection, select_best
from cart_resolver.utils.resolution_cache import (
    DEFAULT_FAILURE_TTL,
    DEFAULT_SUCCESS_TTL,
    InMemoryResolutionCache,
    ResolutionCache,
    cache_key,
)

log = structlog.get_logger("cart_resolver.service")

NO_MATCH_REASON = "No matching products found in catalog"
CANCELLED_REASON = "Batch cancelled before item was resolved"
MAX_CONCURRENT_RESOLUTIONS = 5

_ID_ALPHABET = string.digits + string.ascii_lowercase


def generate_product_id() -> str:
    """Placeholder id for catalog products that come back without one."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"instacart_{int(time.time() * 1000)}_{suffix}"


def display_name(parsed: ParsedItemDetails, product_name: str) -> str:
    if parsed.measurement > 1:
        return f"{format_amount(parsed.measurement)} {parsed.unit} {product_name}"
    if parsed.quantity > 1:
        return f"{format_amount(parsed.quantity)} x {product_name}"
    return product_name


def resolution_rate(resolved: int, total: int) -> str:
    if total == 0:
        return "0.0%"
    return f"{resolved / total * 100:.1f}%"


class ProductResolutionService:
    """Resolves raw shopping list items against a catalog.

    Args:
        catalog: catalog search capability; required.
        tie_breaker: consulted for inconclusive matches. ``None`` means
            deterministic scoring only.
        cache: resolution cache; a fresh in-memory cache by default.
        on_event: callback receiving a ``ResolutionEvent`` per step.
    """

    def __init__(
        self,
        catalog: CatalogSearchClient | None,
        tie_breaker: TieBreaker | None = None,
        cache: ResolutionCache | None = None,
        *,
        on_event: EventHook | None = None,
        catalog_timeout: float = 10.0,
        tie_breaker_timeout: float = 8.0,
        success_ttl: float = DEFAULT_SUCCESS_TTL,
        failure_ttl: float = DEFAULT_FAILURE_TTL,
        max_concurrency: int = MAX_CONCURRENT_RESOLUTIONS,
    ) -> None:
        if catalog is None:
            raise ResolverConfigurationError("A catalog search client is required")
        if max_concurrency < 1:
            raise ResolverConfigurationError("max_concurrency must be at least 1")
        self.catalog = catalog
        self.tie_breaker = tie_breaker
        self.cache = cache if cache is not None else InMemoryResolutionCache()
        self.catalog_timeout = catalog_timeout
        self.tie_breaker_timeout = tie_breaker_timeout
        self.success_ttl = success_ttl
        self.failure_ttl = failure_ttl
        self.max_concurrency = max_concurrency
        self._events = EventEmitter(on_event)

    async def aclose(self) -> None:
        await self.catalog.aclose()

    # === Batch ===

    async def resolve_cart_smash_items(
        self,
        items: list[RawItem],
        retailer_id: str | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> BatchResult:
        """Resolve a whole shopping list.

        Results keep the input order. Once ``cancel_event`` is set, items that
        have not started are reported unresolved; items already in flight
        finish normally.
        """
        with resolution_context(retailer_id=retailer_id, batch_size=len(items)):
            return await self._resolve_batch(items, retailer_id, cancel_event)

    async def _resolve_batch(
        self,
        items: list[RawItem],
        retailer_id: str | None,
        cancel_event: asyncio.Event | None,
    ) -> BatchResult:
        log.info("resolution_batch_start", concurrency=self.max_concurrency)
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _resolve_limited(item: RawItem) -> ResolvedMatch | UnresolvedItem:
            async with semaphore:
                if cancel_event is not None and cancel_event.is_set():
                    self._events.emit("item_cancelled", item.name, retailer_id=retailer_id)
                    return UnresolvedItem(original_item=item, reason=CANCELLED_REASON)
                return await self.resolve_item(item, retailer_id)

        outcomes = await asyncio.gather(*(_resolve_limited(item) for item in items))

        resolved = [o for o in outcomes if isinstance(o, ResolvedMatch)]
        unresolved = [o for o in outcomes if isinstance(o, UnresolvedItem)]
        stats = BatchStats(
            total=len(items),
            resolved=len(resolved),
            unresolved=len(unresolved),
            resolution_rate=resolution_rate(len(resolved), len(items)),
        )
        log.info(
            "resolution_batch_complete",
            total=stats.total,
            resolved=stats.resolved,
            unresolved=stats.unresolved,
            resolution_rate=stats.resolution_rate,
        )
        return BatchResult(resolved=resolved, unresolved=unresolved, stats=stats)

    # === Single item ===

    async def resolve_item(
        self,
        item: RawItem,
        retailer_id: str | None = None,
    ) -> ResolvedMatch | UnresolvedItem:
        """Resolve one item; never raises for per-item failures."""
        with resolution_context(item=item.name, retailer_id=retailer_id):
            return await self._resolve_item(item, retailer_id)

    async def _resolve_item(
        self,
        item: RawItem,
        retailer_id: str | None,
    ) -> ResolvedMatch | UnresolvedItem:
        key = cache_key(item, retailer_id)
        try:
            entry = self.cache.get(key)
            if entry is not None:
                log.debug("resolution_cache_hit", key=key)
                self._events.emit("cache_hit", item.name, cache_key=key, retailer_id=retailer_id)
                return entry.data  # type: ignore[no-any-return]
            self._events.emit("cache_miss", item.name, cache_key=key, retailer_id=retailer_id)
            return await self._resolve_uncached(item, retailer_id, key)
        except Exception as exc:
            log.error(
                "item_resolution_failed",
                item=item.name,
                error=str(exc)[:200],
                error_type=type(exc).__name__,
            )
            self._events.emit(
                "item_failed",
                item.name,
                cache_key=key,
                retailer_id=retailer_id,
                error=str(exc),
            )
            return UnresolvedItem(original_item=item, reason=str(exc) or type(exc).__name__)

    async def _resolve_uncached(
        self,
        item: RawItem,
        retailer_id: str | None,
        key: str,
    ) -> ResolvedMatch | UnresolvedItem:
        parsed = parse_item(item)
        try:
            result = await self._search(parsed, retailer_id)
        except CatalogSearchError as exc:
            # Transient; left uncached so the next request searches again
            log.warning(
                "catalog_search_failed",
                item=item.name,
                query=parsed.search_query,
                error=str(exc),
                status=exc.status_code,
            )
            self._events.emit(
                "search_failed",
                item.name,
                cache_key=key,
                retailer_id=retailer_id,
                query=parsed.search_query,
                error=str(exc),
            )
            return UnresolvedItem(
                original_item=item,
                reason=str(exc),
                search_query=parsed.search_query,
            )

        if not result.products:
            self._events.emit(
                "no_candidates",
                item.name,
                cache_key=key,
                retailer_id=retailer_id,
                query=parsed.search_query,
            )
            failed = UnresolvedItem(
                original_item=item,
                reason=NO_MATCH_REASON,
                search_query=parsed.search_query,
            )
            self.cache.put(key, failed, self.failure_ttl)
            log.info("item_unresolved", item=item.name, query=parsed.search_query)
            self._events.emit(
                "unresolved",
                item.name,
                cache_key=key,
                retailer_id=retailer_id,
                reason=NO_MATCH_REASON,
            )
            return failed

        selection = await select_best(
            parsed,
            result.products,
            self.tie_breaker,
            timeout=self.tie_breaker_timeout,
        )
        self._report_tie_breaker(selection, item, retailer_id, key)

        resolved = self._build_match(item, parsed, selection, result, retailer_id)
        self.cache.put(key, resolved, self.success_ttl)
        log.info(
            "item_resolved",
            item=item.name,
            product=resolved.resolved_details.name,
            confidence=resolved.confidence,
            needs_approval=resolved.vendor_specific.needs_approval,
        )
        self._events.emit(
            "resolved",
            item.name,
            cache_key=key,
            retailer_id=retailer_id,
            product_id=resolved.resolved_details.product_id,
            confidence=resolved.confidence,
        )
        return resolved

    async def _search(
        self,
        parsed: ParsedItemDetails,
        retailer_id: str | None,
    ) -> CatalogSearchResult:
        """Run the catalog search under the service-level timeout.

        Raises:
            CatalogSearchError: for any failure, whatever the client raised.
        """
        try:
            async with asyncio.timeout(self.catalog_timeout):
                return await self.catalog.search(parsed.search_query, retailer_id)
        except CatalogSearchError:
            raise
        except TimeoutError as exc:
            raise CatalogSearchError(
                f"Catalog search timed out after {self.catalog_timeout:g}s"
            ) from exc
        except Exception as exc:
            raise CatalogSearchError(str(exc) or type(exc).__name__) from exc

    def _report_tie_breaker(
        self,
        selection: Selection,
        item: RawItem,
        retailer_id: str | None,
        key: str,
    ) -> None:
        if selection.outcome in ("not_needed", "unavailable"):
            return
        self._events.emit(
            "tie_breaker_invoked",
            item.name,
            cache_key=key,
            retailer_id=retailer_id,
            candidates=min(len(selection.ranked), 3),
        )
        if selection.outcome in ("failed", "timeout"):
            self._events.emit(
                "tie_breaker_failed",
                item.name,
                cache_key=key,
                retailer_id=retailer_id,
                outcome=selection.outcome,
                error=selection.error,
            )
        elif selection.outcome == "rejected":
            self._events.emit(
                "tie_breaker_rejected",
                item.name,
                cache_key=key,
                retailer_id=retailer_id,
                error=selection.error,
            )

    def _build_match(
        self,
        item: RawItem,
        parsed: ParsedItemDetails,
        selection: Selection,
        result: CatalogSearchResult,
        retailer_id: str | None,
    ) -> ResolvedMatch:
        best = selection.best
        product_id = best.id or generate_product_id()
        sku = best.sku or product_id
        product: ScoredCandidate = best.model_copy(
            update={"id": product_id, "sku": sku, "retailer_sku": best.retailer_sku or sku}
        )

        total_price = None
        if best.price is not None:
            total_price = f"{best.price * parsed.quantity:.2f}"

        return ResolvedMatch(
            original_item=item,
            instacart_product=product,
            resolved_details=ResolvedDetails(
                product_id=product_id,
                name=best.name,
                brand=best.brand,
                size=best.size,
                price=best.price,
                quantity=parsed.quantity,
                measurement=parsed.measurement,
                unit=parsed.unit,
                display_name=display_name(parsed, best.name),
                total_price=total_price,
            ),
            vendor_specific=VendorSpecific(
                retailer_id=retailer_id,
                search_query=parsed.search_query,
                total_search_results=max(result.total_results, len(result.products)),
                alternative_matches=alternative_matches(selection.ranked, best),
                needs_approval=needs_approval(parsed, best),
                match_reason=match_reason(parsed, best),
            ),
            confidence=confidence_for_score(best.basic_score),
        )

    # === Cache introspection ===

    def get_cache_stats(self) -> CacheStats:
        return self.cache.stats()

    def clear_expired_cache(self) -> int:
        return self.cache.clear_expired()


def build_tie_breaker(config: Settings) -> TieBreaker:
    """Claude when an API key is configured, the rule-based picker otherwise."""
    if not config.tie_breaker_enabled:
        return NullTieBreaker()
    if config.anthropic_api_key:
        client = anthropic.AsyncAnthropic(api_key=config.anthropic_api_key)
        return AnthropicTieBreaker(client, model=config.tie_breaker_model)
    return HeuristicTieBreaker()


def build_catalog(config: Settings) -> CatalogSearchClient:
    if config.use_static_catalog:
        return StaticCatalogClient()
    if not config.catalog_api_key:
        raise ResolverConfigurationError(
            "CATALOG_API_KEY is required when USE_STATIC_CATALOG is off"
        )
    return HttpCatalogSearchClient(
        config.catalog_base_url,
        config.catalog_api_key,
        timeout=config.catalog_timeout_seconds,
    )


def build_service(
    config: Settings = settings,
    *,
    on_event: EventHook | None = None,
) -> ProductResolutionService:
    return ProductResolutionService(
        build_catalog(config),
        build_tie_breaker(config),
        on_event=on_event,
        # Outer bound sits above the client's own per-request timeout and retry
        catalog_timeout=config.catalog_timeout_seconds * 2 + 1,
        tie_breaker_timeout=config.tie_breaker_timeout_seconds,
        success_ttl=config.success_cache_ttl_seconds,
        failure_ttl=config.failure_cache_ttl_seconds,
        max_concurrency=config.max_concurrent_resolutions,
    )
