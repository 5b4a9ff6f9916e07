"""Unit normalisation for shopping list quantities."""

from __future__ import annotations

DEFAULT_UNIT = "each"

_UNIT_ALIASES: dict[str, str] = {
    "lb": "pound",
    "lbs": "pound",
    "pound": "pound",
    "pounds": "pound",
    "oz": "ounce",
    "ounce": "ounce",
    "ounces": "ounce",
    "kg": "kilogram",
    "gram": "gram",
    "grams": "gram",
    "cup": "cup",
    "cups": "cup",
    "tsp": "teaspoon",
    "teaspoon": "teaspoon",
    "tbsp": "tablespoon",
    "tablespoon": "tablespoon",
    "piece": "each",
    "pieces": "each",
    "item": "each",
    "items": "each",
    "each": "each",
    "bunch": "bunch",
    "bunches": "bunch",
    "bag": "bag",
    "bags": "bag",
    "box": "box",
    "boxes": "box",
    "bottle": "bottle",
    "bottles": "bottle",
    "can": "can",
    "cans": "can",
    "jar": "jar",
    "jars": "jar",
    "package": "package",
    "packages": "package",
    "pack": "package",
    "packs": "package",
}

# Weight/volume of a single item; everything else counts discrete items.
MEASUREMENT_UNITS = frozenset(
    {"pound", "ounce", "kilogram", "gram", "cup", "teaspoon", "tablespoon"}
)


def normalize_unit(raw_unit: str | None) -> str:
    """Map a raw unit token to its canonical name.

    Unknown units pass through lower-cased; a missing unit becomes "each".
    """
    unit = (raw_unit or "").strip().lower()
    if not unit:
        return DEFAULT_UNIT
    return _UNIT_ALIASES.get(unit, unit)


def is_measurement_unit(unit: str) -> bool:
    return unit in MEASUREMENT_UNITS


def is_known_unit(token: str) -> bool:
    return token.strip().lower() in _UNIT_ALIASES
