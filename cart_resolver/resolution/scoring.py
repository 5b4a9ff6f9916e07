"""Deterministic point-based scoring of catalog candidates.

Every rule that applies adds its points; there is no first-match cut-off.

    +50  candidate name contains the clean item name
    +10  per search query token found in the candidate name
    +25  item brand and candidate brand contain one another
    +15  in stock (+5 limited stock)
    +5   price strictly between 0.50 and 50
"""

from __future__ import annotations

from cart_resolver.models.contracts import (
    CandidateProduct,
    Confidence,
    ParsedItemDetails,
    ScoredCandidate,
)

NAME_MATCH_POINTS = 50
QUERY_TOKEN_POINTS = 10
BRAND_MATCH_POINTS = 25
IN_STOCK_POINTS = 15
LIMITED_STOCK_POINTS = 5
PRICE_RANGE_POINTS = 5
PRICE_RANGE = (0.50, 50.0)  # exclusive bounds

HIGH_CONFIDENCE_SCORE = 75
MEDIUM_CONFIDENCE_SCORE = 50
LOW_CONFIDENCE_SCORE = 25


def score_candidate(parsed: ParsedItemDetails, candidate: CandidateProduct) -> int:
    score = 0
    product_name = (candidate.name or "").lower()
    item_name = parsed.clean_name.lower()

    if item_name and item_name in product_name:
        score += NAME_MATCH_POINTS

    for token in parsed.search_query.lower().split():
        if token in product_name:
            score += QUERY_TOKEN_POINTS

    if parsed.brand and candidate.brand:
        item_brand = parsed.brand.lower()
        product_brand = candidate.brand.lower()
        if item_brand in product_brand or product_brand in item_brand:
            score += BRAND_MATCH_POINTS

    if candidate.availability == "in_stock":
        score += IN_STOCK_POINTS
    elif candidate.availability == "limited_stock":
        score += LIMITED_STOCK_POINTS

    low, high = PRICE_RANGE
    if candidate.price is not None and low < candidate.price < high:
        score += PRICE_RANGE_POINTS

    return score


def confidence_for_score(score: float) -> Confidence:
    if score >= HIGH_CONFIDENCE_SCORE:
        return "high"
    if score >= MEDIUM_CONFIDENCE_SCORE:
        return "medium"
    if score >= LOW_CONFIDENCE_SCORE:
        return "low"
    return "very_low"


def rank_candidates(
    parsed: ParsedItemDetails,
    candidates: list[CandidateProduct],
) -> list[ScoredCandidate]:
    """Score every candidate and sort best first (ties keep catalog order)."""
    scored = [
        ScoredCandidate.model_validate(
            {**c.model_dump(), "basic_score": score_candidate(parsed, c)}
        )
        for c in candidates
    ]
    scored.sort(key=lambda s: s.basic_score, reverse=True)
    return scored
