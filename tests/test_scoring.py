"""Tests for deterministic candidate scoring and ranking."""

import pytest

from cart_resolver.models.contracts import CandidateProduct, ParsedItemDetails, RawItem
from cart_resolver.resolution.parser import parse_item
from cart_resolver.resolution.scoring import (
    BRAND_MATCH_POINTS,
    confidence_for_score,
    rank_candidates,
    score_candidate,
)


def _parsed(name="bananas", brand=None, **kwargs):
    return parse_item(RawItem(name=name, brand=brand, **kwargs))


def _product(**kwargs):
    return CandidateProduct(**kwargs)


class TestScoreCandidate:
    def test_full_match_adds_every_rule(self):
        """Name contained (+50), one query token (+10), in stock (+15), price in range (+5)."""
        product = _product(id="1", name="Bananas", price=0.59, availability="in_stock")
        assert score_candidate(_parsed(), product) == 80

    def test_bare_product_scores_zero(self):
        assert score_candidate(_parsed(), _product(name="Apples")) == 0

    def test_each_query_token_counts(self):
        parsed = _parsed("greek yogurt")
        product = _product(name="Yogurt, Greek Style")
        assert score_candidate(parsed, product) == 20

    @pytest.mark.parametrize("name", ["", "   "])
    def test_blank_item_name_earns_no_name_points(self, name):
        assert score_candidate(_parsed(name), _product(name="Anything")) == 0

    def test_limited_stock_bonus(self):
        product = _product(name="Apples", availability="limited_stock")
        assert score_candidate(_parsed(), product) == 5

    def test_unknown_availability_gets_nothing(self):
        product = _product(name="Apples", availability="backordered")
        assert product.availability == "unknown"
        assert score_candidate(_parsed(), product) == 0

    @pytest.mark.parametrize("price,points", [(0.50, 0), (0.51, 5), (49.99, 5), (50.0, 0)])
    def test_price_bounds_are_exclusive(self, price, points):
        assert score_candidate(_parsed(), _product(name="Apples", price=price)) == points

    def test_brand_match_either_direction(self):
        parsed = _parsed("yogurt", brand="Fage")
        assert score_candidate(parsed, _product(name="Plain", brand="FAGE Total")) == 25
        parsed = _parsed("yogurt", brand="Fage Total 0%")
        assert score_candidate(parsed, _product(name="Plain", brand="fage")) == 25

    def test_brand_ignored_when_either_side_missing(self):
        assert score_candidate(_parsed("yogurt"), _product(name="Plain", brand="Fage")) == 0
        assert score_candidate(_parsed("yogurt", brand="Fage"), _product(name="Plain")) == 0

    def test_brand_match_never_lowers_the_score(self):
        base = _product(name="Greek Yogurt", price=4.99, availability="in_stock")
        branded = _product(
            name="Greek Yogurt", price=4.99, availability="in_stock", brand="Chobani"
        )
        parsed = _parsed("greek yogurt", brand="Chobani")
        expected = score_candidate(parsed, base) + BRAND_MATCH_POINTS
        assert score_candidate(parsed, branded) == expected


class TestConfidenceForScore:
    @pytest.mark.parametrize(
        "score,expected",
        [
            (100, "high"),
            (75, "high"),
            (74, "medium"),
            (50, "medium"),
            (49, "low"),
            (25, "low"),
            (24, "very_low"),
            (0, "very_low"),
        ],
    )
    def test_bands(self, score, expected):
        assert confidence_for_score(score) == expected


class TestRankCandidates:
    def test_sorted_best_first(self):
        candidates = [
            _product(id="a", name="Apples"),
            _product(id="b", name="Bananas", availability="in_stock"),
            _product(id="c", name="Banana Chips"),
        ]
        ranked = rank_candidates(_parsed(), candidates)
        assert [c.id for c in ranked] == ["b", "a", "c"]
        assert ranked[0].basic_score >= ranked[1].basic_score >= ranked[2].basic_score

    def test_ties_keep_catalog_order(self):
        candidates = [
            _product(id="first", name="Bananas"),
            _product(id="second", name="Bananas"),
        ]
        ranked = rank_candidates(_parsed(), candidates)
        assert [c.id for c in ranked] == ["first", "second"]

    def test_extra_catalog_fields_survive(self):
        candidate = CandidateProduct.model_validate(
            {"id": "x", "name": "Bananas", "aisle": "produce"}
        )
        ranked = rank_candidates(_parsed(), [candidate])
        assert ranked[0].model_extra == {"aisle": "produce"}

    def test_empty_list(self):
        assert rank_candidates(_parsed(), []) == []

    def test_numeric_ids_become_strings(self):
        candidate = CandidateProduct.model_validate({"id": 42, "name": "Bananas"})
        assert rank_candidates(_parsed(), [candidate])[0].id == "42"


class TestParsedDetailsInput:
    def test_scoring_uses_clean_name_not_original(self):
        parsed = ParsedItemDetails(
            original_name="6 bananas",
            clean_name="bananas",
            search_query="bananas",
        )
        assert score_candidate(parsed, _product(name="Bananas")) == 60
