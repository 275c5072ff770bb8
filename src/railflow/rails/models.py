"""
Rail Data Models

Funding sources ("rails"), the payment request being resolved, and the
history statistics the scoring function consumes.
"""

from datetime import datetime, UTC
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional, Set
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator


class RailType(str, Enum):
    """Kinds of funding source."""
    
    WALLET = "wallet"
    BANK = "bank"
    DEBIT_CARD = "debit_card"
    CREDIT_CARD = "credit_card"
    BNPL = "bnpl"
    
    @property
    def is_card(self) -> bool:
        return self in (RailType.DEBIT_CARD, RailType.CREDIT_CARD)


class FundingSource(BaseModel):
    """
    A connected payment rail.
    
    Sources are never hard-deleted; unlinking flips `is_linked`.
    """
    
    id: str = Field(description="Opaque, stable identifier")
    name: str = Field(description="Display name (e.g. 'GrabPay')")
    type: RailType = Field(description="Rail type")
    
    balance: Decimal = Field(default=Decimal("0"), ge=0, description="Available balance")
    currency: str = Field(default="MYR", min_length=3, max_length=3, description="Currency of the balance")
    
    priority: int = Field(ge=1, description="User-assigned priority, lower = preferred")
    is_linked: bool = Field(default=True, description="User has authorised the source")
    is_available: bool = Field(default=True, description="Health/connectivity flag")
    
    max_auto_top_up_amount: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Largest top-up applied without asking (0 = disabled)",
    )
    
    @field_validator("currency")
    @classmethod
    def normalise_currency(cls, v: str) -> str:
        return v.upper()
    
    @property
    def is_eligible(self) -> bool:
        """Linked and currently reachable."""
        return self.is_linked and self.is_available


class PaymentRequest(BaseModel):
    """The intent to resolve."""
    
    intent_id: str = Field(
        default_factory=lambda: f"intent_{uuid4().hex[:12]}",
        description="Idempotency key, unique per resolution attempt",
    )
    user_id: str = Field(description="Payer")
    amount: Decimal = Field(gt=0, description="Amount to pay")
    currency: str = Field(default="MYR", min_length=3, max_length=3, description="ISO currency code")
    
    merchant_id: Optional[str] = Field(default=None, description="Merchant identifier")
    recipient_id: Optional[str] = Field(default=None, description="P2P recipient identifier")
    
    accepted_rail_hints: Optional[Set[str]] = Field(
        default=None,
        description="Rail types or names the payee accepts (None = any)",
    )
    
    @field_validator("currency")
    @classmethod
    def normalise_currency(cls, v: str) -> str:
        return v.upper()
    
    @field_validator("accepted_rail_hints")
    @classmethod
    def normalise_hints(cls, v: Optional[Set[str]]) -> Optional[Set[str]]:
        if v is None:
            return v
        return {hint.strip().lower() for hint in v if hint.strip()}
    
    @model_validator(mode="after")
    def require_payee(self) -> "PaymentRequest":
        if not self.merchant_id and not self.recipient_id:
            raise ValueError("Either merchant_id or recipient_id is required")
        return self
    
    @property
    def payee_id(self) -> str:
        """Merchant or recipient, whichever is set."""
        return self.merchant_id or self.recipient_id


class HistoryStats(BaseModel):
    """Observed success rates per rail type for a user/payee pair."""
    
    user_id: str
    merchant_id: Optional[str] = None
    success_rate_per_rail_type: Dict[RailType, float] = Field(default_factory=dict)
    attempts_per_rail_type: Dict[RailType, int] = Field(default_factory=dict)
    last_success_at: Optional[datetime] = None
    
    @field_validator("success_rate_per_rail_type")
    @classmethod
    def validate_rates(cls, v: Dict[RailType, float]) -> Dict[RailType, float]:
        for rail_type, rate in v.items():
            if not 0.0 <= rate <= 1.0:
                raise ValueError(f"Success rate for {rail_type.value} must be within 0..1")
        return v
    
    def success_rate(self, rail_type: RailType) -> Optional[float]:
        """Observed rate for a rail type, or None if never used."""
        return self.success_rate_per_rail_type.get(rail_type)


class RailOutcome(BaseModel):
    """Result of a past payment on a given rail type."""
    
    user_id: str
    merchant_id: str
    rail_type: RailType
    success: bool
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
