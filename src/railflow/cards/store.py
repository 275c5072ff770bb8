"""Card event persistence."""

import logging
import threading
from typing import Dict, List, Optional

from railflow.cards.models import CardEventStatus, CardPaymentEvent
from railflow.errors import InvalidTransitionError


logger = logging.getLogger(__name__)


class InMemoryCardEventStore:
    """
    Process-local event store.
    
    Events are copied in and out. `replace` performs a compare-and-swap on
    the event version so a stale writer cannot overwrite a newer state.
    """
    
    def __init__(self):
        self._lock = threading.Lock()
        self._events: Dict[str, CardPaymentEvent] = {}
    
    def add(self, event: CardPaymentEvent) -> None:
        with self._lock:
            if event.id in self._events:
                raise ValueError(f"Event {event.id} already stored")
            self._events[event.id] = event.model_copy(deep=True)
    
    def get(self, event_id: str) -> Optional[CardPaymentEvent]:
        with self._lock:
            event = self._events.get(event_id)
            return event.model_copy(deep=True) if event else None
    
    def replace(self, event: CardPaymentEvent, expected_version: int) -> None:
        """
        Store a new version of an existing event.
        
        Raises:
            InvalidTransitionError: If the stored version is not expected_version
        """
        with self._lock:
            current = self._events.get(event.id)
            if current is None:
                raise KeyError(event.id)
            if current.version != expected_version:
                logger.warning(
                    f"Stale write rejected for {event.id}: "
                    f"stored v{current.version}, expected v{expected_version}"
                )
                raise InvalidTransitionError(
                    f"Event {event.id} changed concurrently (v{current.version})"
                )
            self._events[event.id] = event.model_copy(deep=True)
    
    def list_for_user(self, user_id: str, limit: int = 20) -> List[CardPaymentEvent]:
        """Newest first."""
        with self._lock:
            # Insertion order breaks created_at ties
            events = [
                (e.created_at, index, e)
                for index, e in enumerate(self._events.values())
                if e.user_id == user_id
            ]
        events.sort(key=lambda item: (item[0], item[1]), reverse=True)
        return [e.model_copy(deep=True) for _, _, e in events[:limit]]
    
    def list_by_status(self, status: CardEventStatus) -> List[CardPaymentEvent]:
        with self._lock:
            return [e.model_copy(deep=True) for e in self._events.values() if e.status == status]
