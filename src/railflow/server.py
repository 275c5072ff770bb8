"""
RailFlow API Server

Exposes rail resolution and the card event state machine over REST.
Every failure carries its error kind so callers can tell them apart.
"""

import logging
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import AsyncGenerator, List, Optional, Set

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

load_dotenv()

from railflow.cards import CardEventMachine, CardEventType, CardPaymentEvent, CardProfile
from railflow.config import config
from railflow.errors import ErrorDetail, ErrorKind
from railflow.ledger import AuditLedger
from railflow.rails import InMemoryHistoryProvider, InMemoryRailCatalog, PaymentRequest
from railflow.rails.mock_data import MOCK_SOURCES, mock_outcomes
from railflow.resolution import ResolutionPlan, Resolver

# Configure Logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Release the resolver pool and ledger connection on shutdown."""
    yield
    railflow.shutdown()


app = FastAPI(title="RailFlow API", version="0.3.0", lifespan=lifespan)


STATUS_BY_KIND = {
    ErrorKind.NO_ELIGIBLE_RAIL: 422,
    ErrorKind.INSUFFICIENT_FUNDS: 402,
    ErrorKind.COLLABORATOR_UNAVAILABLE: 503,
    ErrorKind.INVALID_TRANSITION: 409,
    ErrorKind.EVENT_NOT_FOUND: 404,
    ErrorKind.CARD_INACTIVE: 403,
}


# Data Models
class CardEventRequest(BaseModel):
    amount: Decimal = Field(gt=0)
    merchant_name: str
    merchant_category: Optional[str] = None
    event_type: CardEventType = CardEventType.TERMINAL_TAP
    accepted_rail_hints: Optional[Set[str]] = None


class CardEventCreated(BaseModel):
    event_id: str
    event: CardPaymentEvent


# Initialize RailFlow Components (Singletons)
class RailFlowContainer:
    def __init__(self):
        self.ledger = AuditLedger(config.ledger_path)
        self.catalog = InMemoryRailCatalog(MOCK_SOURCES)
        self.history = InMemoryHistoryProvider(lookback_days=config.history_lookback_days)
        for outcome in mock_outcomes():
            self.history.record(outcome)
        
        self.resolver = Resolver(self.catalog, self.history, ledger=self.ledger, config=config)
        self.machine = CardEventMachine(self.resolver, ledger=self.ledger, config=config)
        for user_id in MOCK_SOURCES:
            self.machine.issue_card(user_id)
        
        logger.info("RailFlow Components Initialized")
    
    def shutdown(self) -> None:
        self.resolver.close()
        self.ledger.close()
        logger.info("RailFlow Components Shut Down")


railflow = RailFlowContainer()


def error_response(error: ErrorDetail) -> JSONResponse:
    return JSONResponse(
        status_code=STATUS_BY_KIND[error.kind],
        content={"error": error.model_dump(mode="json")},
    )


# Routes
@app.get("/")
async def root():
    return {"status": "online", "system": "RailFlow"}


@app.post("/resolve", response_model=ResolutionPlan)
def resolve(request: PaymentRequest):
    """Resolve a payment intent to a plan."""
    outcome = railflow.resolver.resolve(request)
    if not outcome.success:
        return error_response(outcome.error)
    return outcome.plan


@app.post("/users/{user_id}/card-events", response_model=CardEventCreated, status_code=201)
def submit_card_event(user_id: str, req: CardEventRequest):
    """Simulate a card tap: resolve it and park it for confirmation."""
    outcome = railflow.machine.submit(
        user_id=user_id,
        amount=req.amount,
        merchant_name=req.merchant_name,
        merchant_category=req.merchant_category,
        event_type=req.event_type,
        accepted_rail_hints=req.accepted_rail_hints,
    )
    if not outcome.success:
        return error_response(outcome.error)
    return CardEventCreated(event_id=outcome.event_id, event=outcome.event)


@app.get("/users/{user_id}/card-events", response_model=List[CardPaymentEvent])
def list_card_events(user_id: str, limit: int = 20):
    return railflow.machine.list_events(user_id, limit)


@app.get("/card-events/{event_id}", response_model=CardPaymentEvent)
def get_card_event(event_id: str):
    event = railflow.machine.get_event(event_id)
    if event is None:
        raise HTTPException(status_code=404, detail=f"Unknown card event: {event_id}")
    return event


@app.post("/card-events/{event_id}/approve", response_model=CardPaymentEvent)
def approve_card_event(event_id: str):
    outcome = railflow.machine.approve(event_id)
    if not outcome.success:
        return error_response(outcome.error)
    return outcome.event


@app.post("/card-events/{event_id}/decline", response_model=CardPaymentEvent)
def decline_card_event(event_id: str):
    outcome = railflow.machine.decline(event_id)
    if not outcome.success:
        return error_response(outcome.error)
    return outcome.event


@app.post("/card-events/expire", response_model=List[CardPaymentEvent])
def expire_card_events():
    """Decline events stuck in evaluating past the timeout."""
    return railflow.machine.expire_stale()


@app.post("/users/{user_id}/card/suspend", response_model=CardProfile)
def suspend_card(user_id: str):
    if user_id not in railflow.machine.profiles:
        raise HTTPException(status_code=404, detail=f"No card for {user_id}")
    return railflow.machine.suspend_card(user_id)


@app.post("/users/{user_id}/card/reactivate", response_model=CardProfile)
def reactivate_card(user_id: str):
    if user_id not in railflow.machine.profiles:
        raise HTTPException(status_code=404, detail=f"No card for {user_id}")
    return railflow.machine.reactivate_card(user_id)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=config.host, port=config.port)
