"""Card payment event models."""

import uuid
from datetime import datetime, UTC
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from railflow.errors import ErrorDetail, InvalidTransitionError
from railflow.rails.models import RailType
from railflow.resolution.models import ResolutionPlan, StepAction
from railflow.risk import RiskLevel


class CardEventStatus(str, Enum):
    """State machine states for a card payment event."""
    
    RECEIVED = "received"        # Tap seen, not yet resolved
    EVALUATING = "evaluating"    # Plan attached, awaiting the user
    APPROVED = "approved"        # Terminal
    DECLINED = "declined"        # Terminal


class CardEventType(str, Enum):
    """Where the card event came from."""
    
    TERMINAL_TAP = "terminal_tap"
    ONLINE_CHECKOUT = "online_checkout"
    SIMULATE_AUTHORISATION = "simulate_authorisation"
    SIMULATE_SETTLEMENT = "simulate_settlement"


ALLOWED_TRANSITIONS = {
    CardEventStatus.RECEIVED: {CardEventStatus.EVALUATING},
    CardEventStatus.EVALUATING: {CardEventStatus.APPROVED, CardEventStatus.DECLINED},
    CardEventStatus.APPROVED: set(),
    CardEventStatus.DECLINED: set(),
}


class CardStatus(str, Enum):
    """Virtual card lifecycle."""
    
    ACTIVE = "active"
    SUSPENDED = "suspended"


class CardProfile(BaseModel):
    """A user's virtual card."""
    
    user_id: str
    status: CardStatus = CardStatus.ACTIVE
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class DecisionSnapshot(BaseModel):
    """Key plan fields frozen at evaluation time."""
    
    plan_id: str
    selected_source_id: str
    selected_source_type: RailType
    fallback_chain: List[str] = Field(default_factory=list)
    top_up_source_id: Optional[str] = None
    top_up_amount: Decimal = Decimal("0")
    auto_top_up_allowed: bool = False
    requires_confirmation: bool
    risk_level: RiskLevel
    total_score: int
    
    @classmethod
    def from_plan(cls, plan: ResolutionPlan) -> "DecisionSnapshot":
        top_up = next((s for s in plan.steps if s.action == StepAction.TOP_UP), None)
        return cls(
            plan_id=plan.plan_id,
            selected_source_id=plan.pay_step.source_id,
            selected_source_type=plan.pay_step.source_type,
            fallback_chain=plan.alternative_rail_ids,
            top_up_source_id=top_up.source_id if top_up else None,
            top_up_amount=plan.top_up_amount,
            auto_top_up_allowed=plan.auto_top_up_allowed,
            requires_confirmation=plan.requires_confirmation,
            risk_level=plan.risk_level,
            total_score=plan.total_score,
        )


class CardPaymentEvent(BaseModel):
    """A tap/terminal transaction instance."""
    
    id: str = Field(default_factory=lambda: f"evt_{uuid.uuid4().hex[:12]}")
    user_id: str
    event_type: CardEventType = CardEventType.TERMINAL_TAP
    status: CardEventStatus = CardEventStatus.RECEIVED
    
    amount: Decimal = Field(gt=0)
    currency: str
    merchant_name: str
    merchant_category: Optional[str] = None
    
    intent_id: Optional[str] = None
    decision: Optional[DecisionSnapshot] = None
    explainability: Optional[str] = None
    result: Dict[str, Any] = Field(default_factory=dict)
    
    # Optimistic concurrency: bumped on every transition
    version: int = 0
    state_history: list[tuple[str, str]] = Field(
        default_factory=list,
        description="History of (state, timestamp) transitions"
    )
    
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    
    @property
    def is_terminal(self) -> bool:
        return not ALLOWED_TRANSITIONS[self.status]
    
    def transition_to(self, new_status: CardEventStatus, at: Optional[datetime] = None) -> None:
        """
        Move to a new state and record history.
        
        Raises:
            InvalidTransitionError: If the move is not allowed from the current state
        """
        if new_status not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Event {self.id} cannot move from {self.status.value} to {new_status.value}"
            )
        at = at or datetime.now(UTC)
        self.state_history.append((self.status.value, at.isoformat()))
        self.status = new_status
        self.updated_at = at
        self.version += 1


class SubmitOutcome(BaseModel):
    """Result of submitting a card event."""
    
    event_id: Optional[str] = None
    event: Optional[CardPaymentEvent] = None
    error: Optional[ErrorDetail] = None
    
    @property
    def success(self) -> bool:
        return self.error is None


class TransitionOutcome(BaseModel):
    """Result of approving, declining or expiring an event."""
    
    event: Optional[CardPaymentEvent] = None
    error: Optional[ErrorDetail] = None
    
    @property
    def success(self) -> bool:
        return self.error is None
