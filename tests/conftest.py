"""Shared fixtures and builders."""

import threading
from decimal import Decimal
from typing import List, Optional

import pytest

from railflow.config import EngineConfig
from railflow.rails import FundingSource, HistoryProvider, HistoryStats, RailCatalog, RailType


def make_source(
    source_id: str,
    rail_type: RailType = RailType.WALLET,
    balance: str = "100",
    priority: int = 1,
    name: Optional[str] = None,
    **overrides,
) -> FundingSource:
    """Build a FundingSource with sensible defaults."""
    return FundingSource(
        id=source_id,
        name=name or source_id,
        type=rail_type,
        balance=Decimal(balance),
        priority=priority,
        **overrides,
    )


class StaticHistory(HistoryProvider):
    """History provider returning fixed success rates."""
    
    def __init__(self, rates: Optional[dict] = None):
        self.rates = rates or {}
    
    def stats_for(self, user_id, merchant_id):
        return HistoryStats(
            user_id=user_id,
            merchant_id=merchant_id,
            success_rate_per_rail_type=self.rates,
        )


class FailingCatalog(RailCatalog):
    """Catalog whose backend is down."""
    
    def list_eligible(self, user_id: str) -> List[FundingSource]:
        raise RuntimeError("connection refused")


class BlockingCatalog(RailCatalog):
    """Catalog that hangs until released."""
    
    def __init__(self):
        self.release = threading.Event()
    
    def list_eligible(self, user_id: str) -> List[FundingSource]:
        self.release.wait(timeout=5)
        return []


class DuplicatingCatalog(RailCatalog):
    """Catalog violating the snapshot contract."""
    
    def list_eligible(self, user_id: str) -> List[FundingSource]:
        source = make_source("dup")
        return [source, source]


@pytest.fixture
def engine_config():
    return EngineConfig(
        collaborator_timeout_seconds=1.0,
        event_timeout_seconds=60,
        ledger_path=None,
    )
