"""Scoring factors.

Each factor maps (request, rail, history) to a 0-100 sub-score. Weights
live in a single table so they can change without touching control flow.
"""

from abc import ABC, abstractmethod
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Optional

from railflow.rails.models import FundingSource, HistoryStats, PaymentRequest, RailType


# Factor weights (sum to 100)
FACTOR_WEIGHTS: Dict[str, int] = {
    "compatibility": 35,
    "balance": 30,
    "priority": 15,
    "history": 10,
    "health": 10,
}

# History sub-score when no observed success rate exists
HISTORY_PRIORS: Dict[RailType, int] = {
    RailType.WALLET: 70,
    RailType.BANK: 40,
    RailType.DEBIT_CARD: 30,
    RailType.CREDIT_CARD: 30,
    RailType.BNPL: 30,
}

PRIORITY_STEP = 20  # Points lost per priority rank below 1
CARD_HINT = "card"  # Generic hint accepted by both card types


def round_half_up(value: Decimal) -> int:
    """Round to the nearest integer, halves away from zero."""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class Factor(ABC):
    """Abstract base class for scoring factors."""
    
    def __init__(self, name: str, description: str):
        """
        Initialize a scoring factor.
        
        Args:
            name: Key into FACTOR_WEIGHTS
            description: Human-readable description
        """
        self.name = name
        self.description = description
    
    @property
    def weight(self) -> int:
        return FACTOR_WEIGHTS[self.name]
    
    @abstractmethod
    def evaluate(
        self,
        request: PaymentRequest,
        rail: FundingSource,
        history: Optional[HistoryStats] = None,
    ) -> int:
        """
        Compute the sub-score.
        
        Returns:
            Integer in 0..100
        """
        pass


class CompatibilityFactor(Factor):
    """Payee accepts the rail; banks are universal via generic transfer."""
    
    def __init__(self):
        super().__init__(
            name="compatibility",
            description="Rail matches an accepted-rail hint, or is a bank",
        )
    
    def evaluate(self, request, rail, history=None) -> int:
        if rail.type == RailType.BANK:
            return 100
        
        hints = request.accepted_rail_hints
        if not hints:
            # No hints: payee accepts any rail
            return 100
        
        if matches_hint(rail, hints):
            return 100
        return 0


class BalanceFactor(Factor):
    """Share of the amount covered by the rail's balance."""
    
    def __init__(self):
        super().__init__(
            name="balance",
            description="Full score when balance covers the amount, else proportional",
        )
    
    def evaluate(self, request, rail, history=None) -> int:
        if rail.balance >= request.amount:
            return 100
        return max(0, round_half_up(Decimal(100) * rail.balance / request.amount))


class PriorityFactor(Factor):
    """User-assigned priority, 1 scores 100, 6+ scores 0."""
    
    def __init__(self):
        super().__init__(
            name="priority",
            description="100 minus 20 per rank below priority 1",
        )
    
    def evaluate(self, request, rail, history=None) -> int:
        return max(0, 100 - (rail.priority - 1) * PRIORITY_STEP)


class HistoryFactor(Factor):
    """Observed success rate for the rail type, else a type prior."""
    
    def __init__(self):
        super().__init__(
            name="history",
            description="Observed success rate override, else rail-type prior",
        )
    
    def evaluate(self, request, rail, history=None) -> int:
        if history is not None:
            rate = history.success_rate(rail.type)
            if rate is not None:
                return round_half_up(Decimal(str(rate)) * 100)
        return HISTORY_PRIORS[rail.type]


class HealthFactor(Factor):
    """Rail reachability."""
    
    def __init__(self):
        super().__init__(
            name="health",
            description="100 when available, else 0",
        )
    
    def evaluate(self, request, rail, history=None) -> int:
        return 100 if rail.is_available else 0


def matches_hint(rail: FundingSource, hints) -> bool:
    """Case-insensitive match of rail type or name against hints."""
    if rail.type.value in hints or rail.name.strip().lower() in hints:
        return True
    return rail.type.is_card and CARD_HINT in hints


# Evaluation order matches FACTOR_WEIGHTS
FACTORS = [
    CompatibilityFactor(),
    BalanceFactor(),
    PriorityFactor(),
    HistoryFactor(),
    HealthFactor(),
]
