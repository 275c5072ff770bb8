"""
FastAPI Rail Service

Stands in for the external funding-source store and payment history store.
Serves read-only snapshots to `RailServiceClient`.
"""

from typing import List, Optional

from fastapi import FastAPI

from railflow.rails.catalog import InMemoryRailCatalog
from railflow.rails.history import InMemoryHistoryProvider
from railflow.rails.mock_data import MOCK_SOURCES, mock_outcomes
from railflow.rails.models import FundingSource, HistoryStats


app = FastAPI(
    title="RailFlow Rail Service",
    description="Funding-source and history directory for the resolution engine",
    version="0.3.0",
)


catalog = InMemoryRailCatalog(MOCK_SOURCES)
history = InMemoryHistoryProvider()
for outcome in mock_outcomes():
    history.record(outcome)


@app.get("/")
async def root():
    """Health check."""
    return {"service": "RailFlow Rail Service", "status": "running"}


@app.get("/rails/{user_id}", response_model=List[FundingSource])
async def get_rails(user_id: str, eligible_only: bool = True):
    """
    List a user's funding sources.
    
    With eligible_only (default) only linked, available sources are returned.
    """
    if eligible_only:
        return catalog.list_eligible(user_id)
    return catalog.list_sources(user_id)


@app.get("/history/{user_id}", response_model=HistoryStats)
async def get_history(user_id: str, merchant_id: Optional[str] = None):
    """Observed success rates per rail type (may be empty)."""
    return history.stats_for(user_id, merchant_id)


def main():
    """Start the rail service."""
    import uvicorn
    from railflow.config import config
    
    uvicorn.run(
        "railflow.rails.service:app",
        host=config.rail_service_host,
        port=config.rail_service_port,
        log_level="info",
    )


if __name__ == "__main__":
    main()
