"""Error taxonomy for resolution and card event failures.

Decision failures are modelled as exceptions internally and converted to
`ErrorDetail` at the public boundary, so callers always receive a typed
result they can branch on.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ErrorKind(str, Enum):
    """Distinguishable failure kinds."""
    
    NO_ELIGIBLE_RAIL = "NO_ELIGIBLE_RAIL"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    COLLABORATOR_UNAVAILABLE = "COLLABORATOR_UNAVAILABLE"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    EVENT_NOT_FOUND = "EVENT_NOT_FOUND"
    CARD_INACTIVE = "CARD_INACTIVE"


class ErrorDetail(BaseModel):
    """Serialisable description of a failure."""
    
    kind: ErrorKind = Field(description="Failure kind")
    message: str = Field(description="Diagnostic message")
    user_message: str = Field(description="Actionable text for the user")
    retryable: bool = Field(default=False, description="Safe to retry the same intent")


class ResolverError(Exception):
    """Base class for all engine failures."""
    
    kind: ErrorKind
    user_message: str = "Something went wrong."
    retryable: bool = False
    
    def __init__(self, message: str, user_message: Optional[str] = None):
        self.message = message
        if user_message is not None:
            self.user_message = user_message
        super().__init__(self.message)
    
    def to_detail(self) -> ErrorDetail:
        """Convert to a serialisable detail."""
        return ErrorDetail(
            kind=self.kind,
            message=self.message,
            user_message=self.user_message,
            retryable=self.retryable,
        )


class NoEligibleRailError(ResolverError):
    """No linked, available and compatible rail exists."""
    
    kind = ErrorKind.NO_ELIGIBLE_RAIL
    user_message = "No payment method can be used here. Link another source and try again."


class InsufficientFundsError(ResolverError):
    """Chosen rail and every fallback lack sufficient balance."""
    
    kind = ErrorKind.INSUFFICIENT_FUNDS
    user_message = "Not enough funds across your sources. Top up manually and try again."


class CollaboratorUnavailableError(ResolverError):
    """Rail catalog or history provider timed out or failed."""
    
    kind = ErrorKind.COLLABORATOR_UNAVAILABLE
    user_message = "We couldn't reach your payment sources. Please try again."
    retryable = True


class InvalidTransitionError(ResolverError):
    """State machine misuse."""
    
    kind = ErrorKind.INVALID_TRANSITION
    user_message = "This payment has already been handled."


class EventNotFoundError(ResolverError):
    """Unknown card event id."""
    
    kind = ErrorKind.EVENT_NOT_FOUND
    user_message = "This payment could not be found."


class CardInactiveError(ResolverError):
    """Card is missing or suspended."""
    
    kind = ErrorKind.CARD_INACTIVE
    user_message = "Your card is not active. Reactivate it to pay."
