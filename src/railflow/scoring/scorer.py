"""Scoring Function - pure, deterministic 0-100 score per rail."""

from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from railflow.rails.models import FundingSource, HistoryStats, PaymentRequest
from railflow.scoring.factors import FACTORS, FACTOR_WEIGHTS, round_half_up


class SubScores(BaseModel):
    """The five factor sub-scores (0-100 each)."""
    
    compatibility: int = Field(ge=0, le=100)
    balance: int = Field(ge=0, le=100)
    priority: int = Field(ge=0, le=100)
    history: int = Field(ge=0, le=100)
    health: int = Field(ge=0, le=100)


class ScoredRail(BaseModel):
    """A funding source scored for one payment request. Never persisted."""
    
    source: FundingSource
    scores: SubScores
    total_score: int = Field(ge=0, le=100)
    is_recommended: bool = False
    needs_top_up: bool = False
    top_up_amount: Decimal = Field(default=Decimal("0"), ge=0)
    
    @property
    def is_compatible(self) -> bool:
        return self.scores.compatibility > 0
    
    @property
    def label(self) -> str:
        return score_label(self.total_score)
    
    def breakdown(self) -> List[str]:
        """Short reasons for display."""
        reasons: List[str] = []
        if self.is_compatible:
            reasons.append("Compatible")
        if self.scores.balance == 100:
            reasons.append("Sufficient balance")
        elif self.needs_top_up:
            reasons.append(f"Needs top-up of {self.top_up_amount}")
        else:
            reasons.append("Insufficient funds")
        if self.source.priority <= 2:
            reasons.append("Preferred method")
        if self.scores.history >= 50:
            reasons.append("Frequently successful")
        reasons.append("Available" if self.scores.health == 100 else "Unavailable")
        return reasons


def total_from(scores: SubScores) -> int:
    """Weighted total: round(sum(subscore * weight) / 100)."""
    weighted = sum(
        getattr(scores, name) * weight
        for name, weight in FACTOR_WEIGHTS.items()
    )
    return round_half_up(Decimal(weighted) / 100)


def score(
    request: PaymentRequest,
    rail: FundingSource,
    history_stats: Optional[HistoryStats] = None,
    allow_zero_balance_top_up: bool = False,
) -> ScoredRail:
    """
    Score a rail for a payment request.
    
    Args:
        request: Payment being resolved
        rail: Candidate funding source
        history_stats: Observed stats for the user/payee pair, if any
        allow_zero_balance_top_up: Flag empty rails for top-up too
        
    Returns:
        ScoredRail; compatibility 0 means the rail must not be offered
    """
    scores = SubScores(**{
        factor.name: factor.evaluate(request, rail, history_stats)
        for factor in FACTORS
    })
    
    has_funds = rail.balance > 0 or allow_zero_balance_top_up
    needs_top_up = scores.balance < 100 and has_funds
    
    return ScoredRail(
        source=rail,
        scores=scores,
        total_score=total_from(scores),
        needs_top_up=needs_top_up,
        top_up_amount=request.amount - rail.balance if needs_top_up else Decimal("0"),
    )


def score_label(total: int) -> str:
    """Grade a total score."""
    if total >= 90:
        return "Excellent"
    if total >= 75:
        return "Good"
    if total >= 50:
        return "Fair"
    if total >= 25:
        return "Low"
    return "Poor"
