"""Shopping list line parsing: quantity, unit, clean name and search query."""

from __future__ import annotations

import re

from cart_resolver.models.contracts import ParsedItemDetails, RawItem
from cart_resolver.resolution.units import is_known_unit, is_measurement_unit, normalize_unit

# "2 lbs chicken breast", "1.5 cup flour", "6 bananas"
_LEADING_AMOUNT_RE = re.compile(r"^(\d+(?:\.\d+)?)\s*([a-zA-Z]+)?\s+(.+)$")
_NUMBER_RE = re.compile(r"^\s*(\d+(?:\.\d+)?|\.\d+)")

STOP_WORDS = frozenset({"fresh", "organic", "natural", "free", "range", "local"})
MIN_TOKEN_LENGTH = 3


def build_search_query(clean_name: str) -> str:
    """Derive a catalog search string from a clean item name.

    Marketing words and tokens shorter than three characters are dropped.
    Falls back to the name itself when nothing survives.
    """
    tokens = clean_name.lower().split()
    kept = [t for t in tokens if len(t) >= MIN_TOKEN_LENGTH and t not in STOP_WORDS]
    return " ".join(kept).strip() or clean_name


def _parse_amount(raw: float | str | None) -> float:
    """Best-effort numeric amount; anything unusable (or zero) counts as 1."""
    if raw is None or isinstance(raw, bool):
        return 1.0
    if isinstance(raw, (int, float)):
        return float(raw) or 1.0
    m = _NUMBER_RE.match(raw)
    if not m:
        return 1.0
    return float(m.group(1)) or 1.0


def format_amount(value: float) -> str:
    """Render 2.0 as "2" and 1.5 as "1.5"."""
    return f"{value:g}"


def parse_item(item: RawItem) -> ParsedItemDetails:
    """Split a raw shopping list line into structured details.

    An explicit ``unit`` on the item always wins: the name is then taken
    verbatim, even when it starts with a number. Never raises.
    """
    raw_name = item.name or ""
    clean_name = raw_name
    amount = _parse_amount(item.quantity)
    unit = (item.unit or "").strip().lower()

    if not unit:
        m = _LEADING_AMOUNT_RE.match(raw_name.strip())
        if m:
            extracted_amount, extracted_unit, extracted_name = m.groups()
            amount = float(extracted_amount) or amount
            if extracted_unit and is_known_unit(extracted_unit):
                unit = extracted_unit.lower()
                clean_name = extracted_name
            elif extracted_unit:
                # "6 bananas": the word after the number is part of the name
                clean_name = f"{extracted_unit} {extracted_name}"
            else:
                clean_name = extracted_name

    unit = normalize_unit(unit)
    clean_name = clean_name.strip()

    if is_measurement_unit(unit):
        quantity, measurement = 1.0, amount
    else:
        quantity, measurement = amount, 1.0

    search_query = build_search_query(clean_name)
    if is_measurement_unit(unit) and measurement > 1:
        search_query = f"{format_amount(measurement)} {unit} {search_query}"

    return ParsedItemDetails(
        original_name=raw_name,
        clean_name=clean_name,
        quantity=quantity,
        measurement=measurement,
        unit=unit,
        search_query=search_query,
        category=item.category or "",
        brand=item.brand or "",
    )
