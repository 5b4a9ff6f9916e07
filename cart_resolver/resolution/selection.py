"""Best-candidate selection with an optional tie-breaker.

Deterministic scoring decides whenever it is conclusive: a single candidate,
or a top score in the high-confidence band. Otherwise the top three
candidates go to the tie-breaker. A tie-breaker that fails, times out, or
names a product it was not shown leaves the deterministic winner in place.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Literal

import structlog

from cart_resolver.clients.tie_breaker import TieBreaker, candidate_ref
from cart_resolver.exceptions import TieBreakerUnavailable
from cart_resolver.models.contracts import (
    CandidateProduct,
    ParsedItemDetails,
    ScoredCandidate,
    TieBreakerDecision,
)
from cart_resolver.resolution.scoring import HIGH_CONFIDENCE_SCORE, rank_candidates

log = structlog.get_logger("cart_resolver.selection")

TIE_BREAKER_CANDIDATES = 3
DEFAULT_TIE_BREAKER_TIMEOUT = 8.0

TieBreakerOutcome = Literal[
    "not_needed",
    "chosen",
    "unavailable",
    "failed",
    "timeout",
    "rejected",
]


@dataclass(frozen=True)
class Selection:
    best: ScoredCandidate
    ranked: list[ScoredCandidate]
    outcome: TieBreakerOutcome = "not_needed"
    error: str | None = None

    @property
    def used_tie_breaker(self) -> bool:
        return self.outcome == "chosen"


def match_decision(
    decision: TieBreakerDecision,
    shortlist: list[ScoredCandidate],
) -> ScoredCandidate | None:
    """Find the shortlisted candidate the decision refers to, by id then name."""
    for candidate in shortlist:
        if candidate.id is not None and candidate.id == decision.id:
            return candidate
    wanted = decision.id.strip().lower()
    for candidate in shortlist:
        if candidate_ref(candidate).strip().lower() == wanted:
            return candidate
    return None


async def select_best(
    parsed: ParsedItemDetails,
    candidates: list[CandidateProduct],
    tie_breaker: TieBreaker | None = None,
    *,
    timeout: float = DEFAULT_TIE_BREAKER_TIMEOUT,
) -> Selection:
    if not candidates:
        raise ValueError("select_best needs at least one candidate")

    ranked = rank_candidates(parsed, candidates)
    top = ranked[0]
    if len(ranked) == 1 or top.basic_score >= HIGH_CONFIDENCE_SCORE or tie_breaker is None:
        return Selection(best=top, ranked=ranked)

    shortlist = ranked[:TIE_BREAKER_CANDIDATES]
    try:
        async with asyncio.timeout(timeout):
            decision = await tie_breaker.choose(parsed, shortlist)
    except TieBreakerUnavailable as exc:
        return Selection(best=top, ranked=ranked, outcome="unavailable", error=str(exc))
    except TimeoutError:
        log.warning("tie_breaker_timeout", item=parsed.clean_name, timeout=timeout)
        return Selection(
            best=top, ranked=ranked, outcome="timeout", error=f"timed out after {timeout}s"
        )
    except Exception as exc:
        # Any tie-breaker failure degrades to deterministic scoring
        log.warning(
            "tie_breaker_failed",
            item=parsed.clean_name,
            tie_breaker=tie_breaker.name,
            error=str(exc)[:200],
            error_type=type(exc).__name__,
        )
        return Selection(best=top, ranked=ranked, outcome="failed", error=str(exc))

    chosen = match_decision(decision, shortlist)
    if chosen is None:
        log.warning(
            "tie_breaker_unknown_candidate",
            item=parsed.clean_name,
            decision_id=decision.id,
        )
        return Selection(
            best=top,
            ranked=ranked,
            outcome="rejected",
            error=f"unknown candidate {decision.id!r}",
        )

    annotated = chosen.model_copy(
        update={
            "ai_score": decision.ai_score,
            "ai_confidence": decision.confidence,
            "ai_reason": decision.reason,
        }
    )
    log.info(
        "tie_breaker_selected",
        item=parsed.clean_name,
        product=annotated.name,
        basic_score=annotated.basic_score,
        ai_score=decision.ai_score,
    )
    return Selection(best=annotated, ranked=ranked, outcome="chosen")
