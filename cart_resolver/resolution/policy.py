"""Approval policy: decides which matches a shopper must confirm by hand."""

from __future__ import annotations

from cart_resolver.models.contracts import ParsedItemDetails, ScoredCandidate
from cart_resolver.resolution.scoring import (
    HIGH_CONFIDENCE_SCORE,
    MEDIUM_CONFIDENCE_SCORE,
    confidence_for_score,
)

# Plain substring categories; synonyms ("beef" for meat) are not recognised.
GROCERY_CATEGORIES = ("meat", "dairy", "produce", "frozen", "canned", "bakery", "snack")

MIN_REASONABLE_PRICE = 0.99
MAX_REASONABLE_PRICE = 25.00
MAX_ALTERNATIVES = 3

REASON_EXACT = "Exact name match"
REASON_HIGH = "High confidence match on keywords and brand"
REASON_SIMILAR = "Good match based on name similarity"
REASON_LOW = "Low confidence match - review recommended"


def named_category(text: str) -> str | None:
    """First known grocery category mentioned in ``text``, if any."""
    lowered = text.lower()
    for category in GROCERY_CATEGORIES:
        if category in lowered:
            return category
    return None


def is_category_mismatch(parsed: ParsedItemDetails, best: ScoredCandidate) -> bool:
    item_category = named_category(parsed.clean_name)
    product_category = named_category(best.name or "")
    return (
        item_category is not None
        and product_category is not None
        and item_category != product_category
    )


def line_total(parsed: ParsedItemDetails, best: ScoredCandidate) -> float | None:
    if best.price is None:
        return None
    return best.price * parsed.quantity


def is_price_outlier(parsed: ParsedItemDetails, best: ScoredCandidate) -> bool:
    """The line total (unit price times count) falls outside $0.99-$25.00."""
    total = line_total(parsed, best)
    if total is None:
        return False
    return total < MIN_REASONABLE_PRICE or total > MAX_REASONABLE_PRICE


def needs_approval(parsed: ParsedItemDetails, best: ScoredCandidate) -> bool:
    if confidence_for_score(best.basic_score) in ("low", "very_low"):
        return True
    if is_category_mismatch(parsed, best):
        return True
    return is_price_outlier(parsed, best)


def match_reason(parsed: ParsedItemDetails, best: ScoredCandidate) -> str:
    name = (best.name or "").lower()
    if parsed.clean_name and parsed.clean_name.lower() in name:
        reason = REASON_EXACT
    elif best.basic_score >= HIGH_CONFIDENCE_SCORE:
        reason = REASON_HIGH
    elif best.basic_score >= MEDIUM_CONFIDENCE_SCORE:
        reason = REASON_SIMILAR
    else:
        reason = REASON_LOW

    if best.ai_reason:
        reason = f"{reason} (AI: {best.ai_reason})"
    return reason


def alternative_matches(
    ranked: list[ScoredCandidate],
    best: ScoredCandidate,
) -> list[ScoredCandidate]:
    """Next best deterministic candidates after the winner, at most three."""
    others = [c for c in ranked if not _same_product(c, best)]
    return others[:MAX_ALTERNATIVES]


def _same_product(a: ScoredCandidate, b: ScoredCandidate) -> bool:
    if a.id is not None and b.id is not None:
        return a.id == b.id
    return a.name == b.name
