"""Card event state machine."""

from railflow.cards.models import (
    CardEventStatus,
    CardEventType,
    CardPaymentEvent,
    CardProfile,
    CardStatus,
    DecisionSnapshot,
    SubmitOutcome,
    TransitionOutcome,
)
from railflow.cards.store import InMemoryCardEventStore
from railflow.cards.machine import CardEventMachine

__all__ = [
    "CardEventStatus",
    "CardEventType",
    "CardPaymentEvent",
    "CardProfile",
    "CardStatus",
    "DecisionSnapshot",
    "SubmitOutcome",
    "TransitionOutcome",
    "InMemoryCardEventStore",
    "CardEventMachine",
]
