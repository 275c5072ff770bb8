"""Card Event State Machine.

    received → [resolve] → evaluating → approve → approved
                                      ↘ decline → declined
                                      ↘ timeout → declined (expired)

Terminal states absorb nothing: any further transition is rejected.
"""

import logging
import threading
from datetime import datetime, timedelta, UTC
from decimal import Decimal
from typing import Dict, List, Optional, Set

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
from railflow.config import EngineConfig, config as default_config
from railflow.errors import (
    CardInactiveError,
    EventNotFoundError,
    InvalidTransitionError,
)
from railflow.ledger import AuditLedger, EventType
from railflow.rails.models import PaymentRequest
from railflow.resolution.resolver import Resolver


logger = logging.getLogger(__name__)


class CardEventMachine:
    """
    Drives card payment events from a tap to a terminal decision.
    
    Transitions on one event are serialised by a per-event lock; the store
    also rejects stale versions, so approve and decline cannot both win.
    Only events still able to transition hold a lock.
    """
    
    def __init__(
        self,
        resolver: Resolver,
        store: Optional[InMemoryCardEventStore] = None,
        ledger: Optional[AuditLedger] = None,
        config: Optional[EngineConfig] = None,
    ):
        """
        Initialize the state machine.
        
        Args:
            resolver: Resolution engine used at submit time
            store: Event store (default: in-memory)
            ledger: Optional AuditLedger for transition logging
            config: Engine configuration (default: environment)
        """
        self.resolver = resolver
        self.store = store or InMemoryCardEventStore()
        self.ledger = ledger
        self.config = config or default_config
        
        self.profiles: Dict[str, CardProfile] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        
        logger.info("Card Event Machine initialized")
    
    # Card lifecycle
    
    def issue_card(self, user_id: str) -> CardProfile:
        """Issue (or return the existing) virtual card for a user."""
        profile = self.profiles.get(user_id)
        if profile is None:
            profile = CardProfile(user_id=user_id)
            self.profiles[user_id] = profile
            logger.info(f"Card issued for {user_id}")
        return profile
    
    def suspend_card(self, user_id: str) -> CardProfile:
        return self._set_card_status(user_id, CardStatus.SUSPENDED)
    
    def reactivate_card(self, user_id: str) -> CardProfile:
        return self._set_card_status(user_id, CardStatus.ACTIVE)
    
    def _set_card_status(self, user_id: str, status: CardStatus) -> CardProfile:
        profile = self.profiles.get(user_id)
        if profile is None:
            raise CardInactiveError(f"No card issued for {user_id}")
        profile.status = status
        profile.updated_at = datetime.now(UTC)
        logger.info(f"Card for {user_id} is now {status.value}")
        return profile
    
    # Events
    
    def submit(
        self,
        user_id: str,
        amount: Decimal,
        merchant_name: str,
        merchant_category: Optional[str] = None,
        event_type: CardEventType = CardEventType.TERMINAL_TAP,
        currency: Optional[str] = None,
        accepted_rail_hints: Optional[Set[str]] = None,
    ) -> SubmitOutcome:
        """
        Receive a card event, resolve it, and park it in evaluating.
        
        If resolution fails nothing is stored; the error is returned as-is.
        """
        profile = self.profiles.get(user_id)
        if profile is None or profile.status != CardStatus.ACTIVE:
            error = CardInactiveError(f"Card for {user_id} is not active")
            logger.warning(error.message)
            return SubmitOutcome(error=error.to_detail())
        
        event = CardPaymentEvent(
            user_id=user_id,
            event_type=event_type,
            amount=amount,
            currency=currency or self.config.default_currency,
            merchant_name=merchant_name,
            merchant_category=merchant_category,
        )
        event.intent_id = f"card_event_{event.id}"
        
        request = PaymentRequest(
            intent_id=event.intent_id,
            user_id=user_id,
            amount=event.amount,
            currency=event.currency,
            merchant_id=merchant_name,
            accepted_rail_hints=accepted_rail_hints,
        )
        outcome = self.resolver.resolve(request)
        if not outcome.success:
            logger.warning(f"Card event for {user_id} not created: {outcome.error.kind.value}")
            return SubmitOutcome(error=outcome.error)
        
        plan = outcome.plan
        event.decision = DecisionSnapshot.from_plan(plan)
        event.explainability = plan.explainability
        event.transition_to(CardEventStatus.EVALUATING)
        self.store.add(event)
        
        self._log(EventType.CARD_EVENT_EVALUATING, event)
        logger.info(f"Card event {event.id} evaluating: {event.explainability}")
        
        return SubmitOutcome(event_id=event.id, event=event)
    
    def approve(self, event_id: str) -> TransitionOutcome:
        """User approved the payment."""
        return self._transition(event_id, CardEventStatus.APPROVED, EventType.CARD_EVENT_APPROVED)
    
    def decline(self, event_id: str) -> TransitionOutcome:
        """User declined the payment."""
        return self._transition(event_id, CardEventStatus.DECLINED, EventType.CARD_EVENT_DECLINED)
    
    def expire_stale(self, now: Optional[datetime] = None) -> List[CardPaymentEvent]:
        """
        Decline events stuck in evaluating past the configured timeout.
        
        Returns:
            Events that were expired by this call
        """
        timeout = self.config.event_timeout_seconds
        if timeout is None:
            return []
        
        now = now or datetime.now(UTC)
        cutoff = now - timedelta(seconds=timeout)
        expired: List[CardPaymentEvent] = []
        
        for candidate in self.store.list_by_status(CardEventStatus.EVALUATING):
            if candidate.updated_at > cutoff:
                continue
            outcome = self._transition(
                candidate.id,
                CardEventStatus.DECLINED,
                EventType.CARD_EVENT_EXPIRED,
                at=now,
                expired=True,
            )
            # Losing to a concurrent approve/decline is fine
            if outcome.success:
                expired.append(outcome.event)
        
        if expired:
            logger.info(f"Expired {len(expired)} card events")
        return expired
    
    def get_event(self, event_id: str) -> Optional[CardPaymentEvent]:
        return self.store.get(event_id)
    
    def list_events(self, user_id: str, limit: int = 20) -> List[CardPaymentEvent]:
        """Recent events for a user, newest first."""
        return self.store.list_for_user(user_id, limit)
    
    def _transition(
        self,
        event_id: str,
        target: CardEventStatus,
        ledger_event: EventType,
        at: Optional[datetime] = None,
        expired: bool = False,
    ) -> TransitionOutcome:
        # Unknown ids never get a lock
        if self.store.get(event_id) is None:
            return self._not_found(event_id)
        
        with self._lock_for(event_id):
            event = self.store.get(event_id)
            if event is None:
                return self._not_found(event_id)
            
            at = at or datetime.now(UTC)
            expected_version = event.version
            try:
                event.transition_to(target, at=at)
                event.result[f"{target.value}_at"] = at.isoformat()
                if expired:
                    event.result["expired"] = True
                self.store.replace(event, expected_version=expected_version)
            except InvalidTransitionError as e:
                logger.warning(f"Rejected transition: {e.message}")
                current = self.store.get(event_id)
                if current.is_terminal:
                    self._drop_lock(event_id)
                return TransitionOutcome(event=current, error=e.to_detail())
            
            if event.is_terminal:
                self._drop_lock(event_id)
        
        self._log(ledger_event, event)
        logger.info(f"Card event {event_id} → {target.value}")
        return TransitionOutcome(event=event)
    
    def _not_found(self, event_id: str) -> TransitionOutcome:
        error = EventNotFoundError(f"Unknown card event {event_id}")
        logger.warning(error.message)
        return TransitionOutcome(error=error.to_detail())
    
    def _lock_for(self, event_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(event_id, threading.Lock())
    
    def _drop_lock(self, event_id: str) -> None:
        """Forget the lock of an event that can no longer transition."""
        with self._locks_guard:
            self._locks.pop(event_id, None)
    
    def _log(self, event_type: EventType, event: CardPaymentEvent) -> None:
        if not self.ledger:
            return
        self.ledger.log_event(
            event_type=event_type,
            payload={
                "event_id": event.id,
                "status": event.status.value,
                "amount": str(event.amount),
                "currency": event.currency,
                "merchant": event.merchant_name,
                "decision": event.decision.model_dump(mode="json") if event.decision else None,
                "explainability": event.explainability,
                "result": event.result,
            },
            user_id=event.user_id,
            reference_id=event.id,
        )
