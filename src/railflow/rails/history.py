"""History Provider - observed success statistics per rail type."""

import logging
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import datetime, timedelta, UTC
from typing import Dict, List, Optional

from railflow.rails.models import HistoryStats, RailOutcome, RailType


logger = logging.getLogger(__name__)


class HistoryProvider(ABC):
    """Read-only source of past payment statistics."""
    
    @abstractmethod
    def stats_for(self, user_id: str, merchant_id: Optional[str]) -> HistoryStats:
        """Return stats for a user/payee pair (may be empty)."""


class InMemoryHistoryProvider(HistoryProvider):
    """
    Keeps recent payment outcomes and derives success rates from them.
    
    Only outcomes inside the lookback window count. A rail type with no
    outcomes has no rate, so the scorer falls back to its prior.
    """
    
    def __init__(self, lookback_days: int = 30):
        self.lookback = timedelta(days=lookback_days)
        self._lock = threading.Lock()
        self._outcomes: List[RailOutcome] = []
    
    def record(self, outcome: RailOutcome) -> None:
        """Record a payment outcome."""
        with self._lock:
            self._outcomes.append(outcome)
            # Drop anything older than the window
            cutoff = datetime.now(UTC) - self.lookback
            self._outcomes = [o for o in self._outcomes if o.timestamp > cutoff]
        logger.debug(
            f"Outcome recorded: {outcome.user_id} → {outcome.merchant_id} "
            f"via {outcome.rail_type.value} success={outcome.success}"
        )
    
    def stats_for(self, user_id: str, merchant_id: Optional[str]) -> HistoryStats:
        cutoff = datetime.now(UTC) - self.lookback
        with self._lock:
            relevant = [
                o for o in self._outcomes
                if o.user_id == user_id
                and (merchant_id is None or o.merchant_id == merchant_id)
                and o.timestamp > cutoff
            ]
        
        attempts: Dict[RailType, int] = defaultdict(int)
        successes: Dict[RailType, int] = defaultdict(int)
        last_success_at: Optional[datetime] = None
        for outcome in relevant:
            attempts[outcome.rail_type] += 1
            if outcome.success:
                successes[outcome.rail_type] += 1
                if last_success_at is None or outcome.timestamp > last_success_at:
                    last_success_at = outcome.timestamp
        
        return HistoryStats(
            user_id=user_id,
            merchant_id=merchant_id,
            success_rate_per_rail_type={
                rail_type: successes[rail_type] / count
                for rail_type, count in attempts.items()
            },
            attempts_per_rail_type=dict(attempts),
            last_success_at=last_success_at,
        )
