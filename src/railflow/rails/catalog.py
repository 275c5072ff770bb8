"""Rail Catalog - read-only snapshots of a user's funding sources."""

import logging
import threading
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from railflow.rails.models import FundingSource


logger = logging.getLogger(__name__)


class RailCatalog(ABC):
    """Source of funding-source snapshots for the resolver."""
    
    @abstractmethod
    def list_eligible(self, user_id: str) -> List[FundingSource]:
        """
        Return the user's linked and available sources.
        
        The list is a consistent snapshot: callers may keep it without
        seeing later mutations, and no source id appears twice.
        """


class InMemoryRailCatalog(RailCatalog):
    """
    Process-local funding-source store.
    
    Sources are held per user and copied on read, so a snapshot handed to
    the resolver never changes underneath it. Mutations model the link,
    health and top-up lifecycle of a source.
    """
    
    def __init__(self, sources: Optional[Dict[str, Iterable[FundingSource]]] = None):
        self._lock = threading.Lock()
        self._sources: Dict[str, Dict[str, FundingSource]] = {}
        for user_id, user_sources in (sources or {}).items():
            for source in user_sources:
                self.add_source(user_id, source)
    
    def list_eligible(self, user_id: str) -> List[FundingSource]:
        with self._lock:
            user_sources = self._sources.get(user_id, {})
            return [
                source.model_copy(deep=True)
                for source in user_sources.values()
                if source.is_eligible
            ]
    
    def list_sources(self, user_id: str) -> List[FundingSource]:
        """All sources including unlinked/unavailable ones."""
        with self._lock:
            return [s.model_copy(deep=True) for s in self._sources.get(user_id, {}).values()]
    
    def add_source(self, user_id: str, source: FundingSource) -> None:
        """Link a new source (or replace one with the same id)."""
        with self._lock:
            self._sources.setdefault(user_id, {})[source.id] = source.model_copy(deep=True)
        logger.info(f"Source linked: {source.id} ({source.type.value}) for {user_id}")
    
    def unlink(self, user_id: str, source_id: str) -> None:
        """Unlink a source. Sources are never deleted."""
        self._update(user_id, source_id, is_linked=False)
    
    def relink(self, user_id: str, source_id: str) -> None:
        self._update(user_id, source_id, is_linked=True)
    
    def set_available(self, user_id: str, source_id: str, available: bool) -> None:
        """Record a health-check result."""
        self._update(user_id, source_id, is_available=available)
    
    def set_balance(self, user_id: str, source_id: str, balance: Decimal) -> None:
        if balance < 0:
            raise ValueError("Balance cannot be negative")
        self._update(user_id, source_id, balance=balance)
    
    def _update(self, user_id: str, source_id: str, **changes) -> None:
        with self._lock:
            user_sources = self._sources.get(user_id, {})
            if source_id not in user_sources:
                raise KeyError(f"Unknown source {source_id} for user {user_id}")
            user_sources[source_id] = user_sources[source_id].model_copy(update=changes)
        logger.info(f"Source updated: {source_id} {changes}")
