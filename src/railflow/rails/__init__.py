"""Rail catalog and history collaborators."""

from railflow.rails.models import (
    RailType,
    FundingSource,
    PaymentRequest,
    HistoryStats,
    RailOutcome,
)
from railflow.rails.catalog import RailCatalog, InMemoryRailCatalog
from railflow.rails.history import HistoryProvider, InMemoryHistoryProvider

__all__ = [
    "RailType",
    "FundingSource",
    "PaymentRequest",
    "HistoryStats",
    "RailOutcome",
    "RailCatalog",
    "InMemoryRailCatalog",
    "HistoryProvider",
    "InMemoryHistoryProvider",
]
