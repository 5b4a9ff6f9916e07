"""Tie-breakers: pick one product when keyword scoring is inconclusive.

The resolution service only ever shows a tie-breaker the top three
deterministic candidates. Any exception raised here is contained by the
caller, which then falls back to the best deterministic candidate.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from pathlib import Path

import anthropic
import structlog

from cart_resolver.exceptions import TieBreakerError, TieBreakerUnavailable
from cart_resolver.models.contracts import ParsedItemDetails, ScoredCandidate, TieBreakerDecision
from cart_resolver.resolution.parser import format_amount
from cart_resolver.utils.json_extract import extract_json_object

log = structlog.get_logger("cart_resolver.tie_breaker")

PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"

DEFAULT_MODEL = "claude-3-5-haiku-latest"
MAX_TOKENS = 500


def candidate_ref(candidate: ScoredCandidate) -> str:
    """Identifier a tie-breaker uses to name a candidate (id, else name)."""
    return candidate.id or candidate.name


class TieBreaker(ABC):
    """Capability interface for the external decision step."""

    name: str = "base"

    @abstractmethod
    async def choose(
        self,
        parsed: ParsedItemDetails,
        candidates: list[ScoredCandidate],
    ) -> TieBreakerDecision:
        """Return the chosen candidate among ``candidates``.

        Raises:
            TieBreakerError: when no decision can be made.
        """


class NullTieBreaker(TieBreaker):
    """Used when no language-model backend is configured."""

    name = "none"

    async def choose(
        self,
        parsed: ParsedItemDetails,
        candidates: list[ScoredCandidate],
    ) -> TieBreakerDecision:
        raise TieBreakerUnavailable("No tie-breaker backend configured")


class HeuristicTieBreaker(TieBreaker):
    """Rule-based stand-in for the language model.

    Re-scores the candidates with extra signals the keyword scorer ignores:
    word overlap, pack size against the requested amount, and a tighter
    price band.
    """

    name = "heuristic"

    LARGE_SIZE_WORDS = ("large", "family", "bulk")
    SMALL_SIZE_WORDS = ("small", "regular")
    PRICE_BAND = (0.99, 25.00)

    def enhanced_score(self, parsed: ParsedItemDetails, candidate: ScoredCandidate) -> int:
        score = float(candidate.basic_score)
        item_name = parsed.clean_name.lower()
        product_name = (candidate.name or "").lower()

        if item_name in product_name:
            score += 30

        item_words = item_name.split()
        product_words = product_name.split()
        if item_words:
            overlap = sum(
                1
                for word in item_words
                if any(word in p or p in word for p in product_words)
            )
            score += overlap / len(item_words) * 20

        if candidate.size:
            size_text = candidate.size.lower()
            needs_large = parsed.quantity > 2 or parsed.measurement > 2
            if needs_large and any(w in size_text for w in self.LARGE_SIZE_WORDS):
                score += 10
            elif not needs_large and any(w in size_text for w in self.SMALL_SIZE_WORDS):
                score += 5

        if candidate.availability == "in_stock":
            score += 15
        elif candidate.availability == "limited_stock":
            score += 5

        low, high = self.PRICE_BAND
        if candidate.price is not None and low < candidate.price < high:
            score += 8

        return math.floor(score + 0.5)

    async def choose(
        self,
        parsed: ParsedItemDetails,
        candidates: list[ScoredCandidate],
    ) -> TieBreakerDecision:
        if not candidates:
            raise TieBreakerError("No candidates to choose from")

        scored = [(self.enhanced_score(parsed, c), c) for c in candidates]
        scored.sort(key=lambda pair: pair[0], reverse=True)
        score, best = scored[0]

        if score >= 80:
            confidence = "high"
        elif score >= 60:
            confidence = "medium"
        else:
            confidence = "low"

        reasons = []
        if parsed.clean_name.lower() in (best.name or "").lower():
            reasons.append("name similarity")
        if best.availability == "in_stock":
            reasons.append("available in stock")
        if best.basic_score >= 50:
            reasons.append("high basic score")
        reason = (
            f"Selected based on: {', '.join(reasons)}"
            if reasons
            else "Best available match from options"
        )

        return TieBreakerDecision(
            id=candidate_ref(best),
            ai_score=score,
            confidence=confidence,
            reason=reason,
        )


_prompt_template_cache: str | None = None


def _load_prompt_template() -> str:
    global _prompt_template_cache  # noqa: PLW0603
    if _prompt_template_cache is None:
        _prompt_template_cache = (PROMPTS_DIR / "tie_breaker.txt").read_text()
    return _prompt_template_cache


def _format_candidate(index: int, candidate: ScoredCandidate) -> str:
    price = f"${candidate.price:.2f}" if candidate.price is not None else "unknown"
    return (
        f"{index}. id={candidate_ref(candidate)} | name={candidate.name} | "
        f"brand={candidate.brand or 'unknown'} | size={candidate.size or 'unknown'} | "
        f"price={price} | availability={candidate.availability or 'unknown'} | "
        f"keyword score={candidate.basic_score}"
    )


def build_prompt(parsed: ParsedItemDetails, candidates: list[ScoredCandidate]) -> str:
    lines = [_format_candidate(i, c) for i, c in enumerate(candidates, 1)]
    return _load_prompt_template().format(
        original_name=parsed.original_name,
        clean_name=parsed.clean_name,
        quantity=format_amount(parsed.quantity),
        measurement=format_amount(parsed.measurement),
        unit=parsed.unit,
        search_query=parsed.search_query,
        candidates="\n".join(lines),
    )


def _as_float(value: object) -> float:
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0


def parse_decision(text: str) -> TieBreakerDecision:
    """Read ``{"bestMatch": {...}}`` out of a model response."""
    data = extract_json_object(text)
    best = data.get("bestMatch") or data.get("best_match")
    if not isinstance(best, dict) or best.get("id") in (None, ""):
        raise TieBreakerError("Tie-breaker response did not name a bestMatch id")
    return TieBreakerDecision(
        id=str(best["id"]),
        ai_score=_as_float(best.get("aiScore", best.get("ai_score"))),
        confidence=str(best.get("confidence") or "low"),
        reason=str(best.get("reason") or ""),
    )


class AnthropicTieBreaker(TieBreaker):
    """Asks Claude to pick among the top candidates."""

    name = "anthropic"

    def __init__(
        self,
        client: anthropic.AsyncAnthropic,
        *,
        model: str = DEFAULT_MODEL,
        max_tokens: int = MAX_TOKENS,
    ) -> None:
        self._client = client
        self.model = model
        self.max_tokens = max_tokens

    async def choose(
        self,
        parsed: ParsedItemDetails,
        candidates: list[ScoredCandidate],
    ) -> TieBreakerDecision:
        prompt = build_prompt(parsed, candidates)

        try:
            response = await self._client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=0.1,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.RateLimitError as e:
            log.warning("tie_breaker_rate_limited", model=self.model)
            raise TieBreakerError(f"Claude rate limited: {e}") from e
        except anthropic.APIStatusError as e:
            log.warning("tie_breaker_api_error", status=e.status_code, model=self.model)
            raise TieBreakerError(f"Claude API error ({e.status_code}): {e}") from e
        except anthropic.APIError as e:
            raise TieBreakerError(f"Claude request failed: {e}") from e

        log.info(
            "tie_breaker_tokens",
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            model=self.model,
        )

        text = ""
        for block in response.content:
            if hasattr(block, "text"):
                text += block.text
        return parse_decision(text)
