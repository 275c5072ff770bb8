"""Ledger models for the audit trail of plans and card events."""

import hashlib
import json
import uuid
from datetime import datetime, UTC
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Types of events in the audit ledger."""
    
    RESOLUTION_PLANNED = "RESOLUTION_PLANNED"        # Resolver produced a plan
    RESOLUTION_FAILED = "RESOLUTION_FAILED"          # Resolver returned an error
    CARD_EVENT_EVALUATING = "CARD_EVENT_EVALUATING"  # Card event awaiting the user
    CARD_EVENT_APPROVED = "CARD_EVENT_APPROVED"
    CARD_EVENT_DECLINED = "CARD_EVENT_DECLINED"
    CARD_EVENT_EXPIRED = "CARD_EVENT_EXPIRED"        # Declined by timeout


class LedgerEntry(BaseModel):
    """
    Immutable ledger entry with hash-chaining.
    
    Tampering with any entry breaks the chain.
    """
    
    entry_id: str = Field(
        default_factory=lambda: f"entry_{uuid.uuid4().hex[:12]}",
        description="Unique entry identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When event occurred"
    )
    event_type: EventType = Field(description="Type of event")
    
    # JSON-safe event data
    payload: dict = Field(description="Event-specific data")
    
    previous_hash: str = Field(
        default="genesis",
        description="Hash of previous entry"
    )
    
    user_id: Optional[str] = Field(default=None)
    reference_id: Optional[str] = Field(
        default=None,
        description="Intent id or card event id the entry belongs to",
    )
    
    _cached_hash: Optional[str] = None
    
    def compute_hash(self) -> str:
        """SHA-256 over previous_hash, timestamp, event_type, payload and id."""
        hash_input = json.dumps({
            "previous_hash": self.previous_hash,
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "payload": self.payload,
            "entry_id": self.entry_id,
        }, sort_keys=True)
        
        return hashlib.sha256(hash_input.encode()).hexdigest()[:32]
    
    @property
    def hash(self) -> str:
        if self._cached_hash is None:
            self._cached_hash = self.compute_hash()
        return self._cached_hash


class ChainValidationResult(BaseModel):
    """Result of ledger chain validation."""
    
    is_valid: bool = Field(description="Whether chain is valid")
    total_entries: int = Field(description="Total entries checked")
    broken_at: Optional[int] = Field(default=None, description="Index where chain broke")
    error_message: Optional[str] = Field(default=None)
