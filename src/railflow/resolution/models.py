"""Resolution plan models."""

import uuid
from datetime import datetime, UTC
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from railflow.errors import ErrorDetail
from railflow.rails.models import RailType
from railflow.risk import RiskLevel
from railflow.scoring.scorer import ScoredRail


class StepAction(str, Enum):
    """Plan step actions."""
    
    TOP_UP = "top_up"    # Move funds from a fallback rail into the chosen rail
    PAY = "pay"          # Pay the payee from the chosen rail


class ResolutionStep(BaseModel):
    """One ordered step of a plan."""
    
    action: StepAction
    source_id: str
    source_type: RailType
    amount: Decimal = Field(gt=0)


class ResolutionPlan(BaseModel):
    """
    The engine's decision for one payment intent.
    
    Steps are ordered: an optional top-up, then the payment. Plans are
    persisted to the audit ledger.
    """
    
    plan_id: str = Field(default_factory=lambda: f"plan_{uuid.uuid4().hex[:12]}")
    intent_id: str
    user_id: str
    amount: Decimal = Field(gt=0)
    currency: str
    
    chosen_rail_id: str
    chosen_rail_name: str
    fallback_rail_id: Optional[str] = None
    alternative_rail_ids: List[str] = Field(
        default_factory=list,
        description="Other compatible rails, best first",
    )
    
    steps: List[ResolutionStep]
    top_up_needed: bool = False
    top_up_amount: Decimal = Field(default=Decimal("0"), ge=0)
    auto_top_up_allowed: bool = False
    
    requires_confirmation: bool
    risk_level: RiskLevel
    total_score: int = Field(ge=0, le=100)
    explainability: str
    
    candidates: List[ScoredRail] = Field(default_factory=list, exclude=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    
    @model_validator(mode="after")
    def check_steps(self) -> "ResolutionPlan":
        if not self.steps or self.steps[-1].action != StepAction.PAY:
            raise ValueError("Plan must end with a pay step")
        
        pay = self.steps[-1]
        if pay.source_id != self.chosen_rail_id or pay.amount != self.amount:
            raise ValueError("Pay step must charge the full amount to the chosen rail")
        
        top_ups = [s for s in self.steps if s.action == StepAction.TOP_UP]
        if self.top_up_needed:
            if len(self.steps) != 2 or len(top_ups) != 1:
                raise ValueError("Top-up plans have exactly one top-up before the pay step")
            if top_ups[0].source_id == pay.source_id:
                raise ValueError("Top-up source must differ from the pay source")
            if top_ups[0].amount != self.top_up_amount:
                raise ValueError("Top-up step amount must equal top_up_amount")
        elif top_ups:
            raise ValueError("Top-up step present but top_up_needed is false")

        expected = self.top_up_needed or self.risk_level != RiskLevel.LOW
        if self.requires_confirmation != expected:
            raise ValueError("Confirmation is required exactly for top-ups or non-low risk")
        return self
    
    @property
    def pay_step(self) -> ResolutionStep:
        return self.steps[-1]


class ResolutionOutcome(BaseModel):
    """Typed result of `Resolver.resolve`: a plan or an error."""
    
    plan: Optional[ResolutionPlan] = None
    error: Optional[ErrorDetail] = None
    
    @property
    def success(self) -> bool:
        return self.plan is not None
