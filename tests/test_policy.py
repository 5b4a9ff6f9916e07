"""Tests for the approval policy, match reasons and alternatives."""

import pytest

from cart_resolver.models.contracts import RawItem, ScoredCandidate
from cart_resolver.resolution.parser import parse_item
from cart_resolver.resolution.policy import (
    REASON_EXACT,
    REASON_HIGH,
    REASON_LOW,
    REASON_SIMILAR,
    alternative_matches,
    is_category_mismatch,
    is_price_outlier,
    match_reason,
    named_category,
    needs_approval,
)


def _best(score=90, **kwargs):
    kwargs.setdefault("name", "Bananas")
    kwargs.setdefault("price", 2.50)
    return ScoredCandidate(basic_score=score, **kwargs)


class TestNamedCategory:
    def test_finds_category_substring(self):
        assert named_category("Frozen Peas") == "frozen"
        assert named_category("dairy-free milk") == "dairy"

    def test_no_category(self):
        assert named_category("bananas") is None

    def test_synonyms_not_recognised(self):
        assert named_category("ground beef") is None


class TestCategoryMismatch:
    def test_mismatch_when_both_named_and_different(self):
        parsed = parse_item(RawItem(name="frozen peas"))
        assert is_category_mismatch(parsed, _best(name="Canned Peas"))

    def test_no_mismatch_when_same_category(self):
        parsed = parse_item(RawItem(name="frozen peas"))
        assert not is_category_mismatch(parsed, _best(name="Frozen Sweet Peas"))

    def test_no_mismatch_when_one_side_unnamed(self):
        parsed = parse_item(RawItem(name="peas"))
        assert not is_category_mismatch(parsed, _best(name="Canned Peas"))


class TestPriceOutlier:
    @pytest.mark.parametrize(
        "price,quantity,outlier",
        [
            (0.59, 6, False),  # 3.54 total
            (0.59, 1, True),  # below 0.99
            (0.99, 1, False),
            (25.00, 1, False),
            (25.01, 1, True),
            (9.49, 3, True),  # 28.47 total
        ],
    )
    def test_line_total_band(self, price, quantity, outlier):
        parsed = parse_item(RawItem(name="bananas", quantity=quantity))
        assert is_price_outlier(parsed, _best(price=price)) is outlier

    def test_unknown_price_is_not_an_outlier(self):
        parsed = parse_item(RawItem(name="bananas"))
        assert not is_price_outlier(parsed, _best(price=None))


class TestNeedsApproval:
    def test_confident_reasonable_match_auto_approves(self):
        parsed = parse_item(RawItem(name="bananas"))
        assert needs_approval(parsed, _best(score=80)) is False

    def test_medium_confidence_auto_approves(self):
        parsed = parse_item(RawItem(name="bananas"))
        assert needs_approval(parsed, _best(score=50)) is False

    @pytest.mark.parametrize("score", [49, 25, 10, 0])
    def test_low_confidence_always_needs_approval(self, score):
        parsed = parse_item(RawItem(name="bananas"))
        assert needs_approval(parsed, _best(score=score)) is True

    def test_category_mismatch_needs_approval(self):
        parsed = parse_item(RawItem(name="frozen peas"))
        assert needs_approval(parsed, _best(score=95, name="Canned Peas")) is True

    def test_expensive_line_needs_approval(self):
        parsed = parse_item(RawItem(name="steak"))
        assert needs_approval(parsed, _best(score=95, name="Steak", price=89.99)) is True


class TestMatchReason:
    def test_exact_name(self):
        parsed = parse_item(RawItem(name="bananas"))
        assert match_reason(parsed, _best(score=10)) == REASON_EXACT

    def test_high_score_without_name_match(self):
        parsed = parse_item(RawItem(name="greek yogurt"))
        assert match_reason(parsed, _best(score=80, name="Yogurt Greek")) == REASON_HIGH

    def test_medium_score(self):
        parsed = parse_item(RawItem(name="greek yogurt"))
        assert match_reason(parsed, _best(score=60, name="Yogurt Greek")) == REASON_SIMILAR

    def test_low_score(self):
        parsed = parse_item(RawItem(name="greek yogurt"))
        assert match_reason(parsed, _best(score=20, name="Yogurt Greek")) == REASON_LOW

    def test_ai_reason_appended(self):
        parsed = parse_item(RawItem(name="greek yogurt"))
        best = _best(score=40, name="Yogurt Greek", ai_reason="plain greek style")
        assert match_reason(parsed, best) == f"{REASON_LOW} (AI: plain greek style)"


class TestAlternativeMatches:
    def test_excludes_winner_and_caps_at_three(self):
        ranked = [_best(id=str(i), score=100 - i) for i in range(6)]
        alternatives = alternative_matches(ranked, ranked[0])
        assert [a.id for a in alternatives] == ["1", "2", "3"]

    def test_winner_not_first_is_still_excluded(self):
        ranked = [_best(id=str(i), score=100 - i) for i in range(4)]
        alternatives = alternative_matches(ranked, ranked[2])
        assert [a.id for a in alternatives] == ["0", "1", "3"]

    def test_products_without_ids_compare_by_name(self):
        ranked = [_best(name="A"), _best(name="B")]
        assert [a.name for a in alternative_matches(ranked, ranked[0])] == ["B"]

    def test_single_candidate_has_no_alternatives(self):
        ranked = [_best(id="only")]
        assert alternative_matches(ranked, ranked[0]) == []
