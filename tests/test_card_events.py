"""Tests for the card event state machine and store."""

import threading
from datetime import timedelta
from decimal import Decimal

import pytest

from railflow.cards import (
    CardEventMachine,
    CardEventStatus,
    CardPaymentEvent,
    InMemoryCardEventStore,
)
from railflow.config import EngineConfig
from railflow.errors import ErrorKind, InvalidTransitionError
from railflow.ledger import AuditLedger, EventType
from railflow.rails import InMemoryRailCatalog, RailType
from railflow.resolution import Resolver
from railflow.risk import FixedRiskPolicy

from conftest import StaticHistory, make_source


def build_machine(config: EngineConfig, ledger=None) -> CardEventMachine:
    catalog = InMemoryRailCatalog({
        "u1": [
            make_source("wallet", RailType.WALLET, balance="30", priority=1, name="Wallet"),
            make_source("bank", RailType.BANK, balance="500", priority=2, name="Bank"),
        ],
    })
    resolver = Resolver(
        catalog,
        StaticHistory(),
        risk_policy=FixedRiskPolicy(),
        ledger=ledger,
        config=config,
    )
    machine = CardEventMachine(resolver, ledger=ledger, config=config)
    machine.issue_card("u1")
    return machine


class TestSubmit:
    
    @pytest.fixture(autouse=True)
    def setup(self, engine_config):
        self.ledger = AuditLedger()
        self.machine = build_machine(engine_config, ledger=self.ledger)
    
    def test_submit_parks_event_in_evaluating(self):
        outcome = self.machine.submit("u1", Decimal("20"), "Kopitiam", merchant_category="food")
        
        assert outcome.success
        event = outcome.event
        assert outcome.event_id == event.id
        assert event.status == CardEventStatus.EVALUATING
        assert event.intent_id == f"card_event_{event.id}"
        assert event.decision.selected_source_id == "wallet"
        assert event.decision.fallback_chain == ["bank"]
        assert event.explainability == "Paid with Wallet."
        assert event.state_history[0][0] == "received"
        assert event.version == 1
        
        stored = self.machine.get_event(event.id)
        assert stored.status == CardEventStatus.EVALUATING
    
    def test_submit_logs_plan_and_event(self):
        event = self.machine.submit("u1", Decimal("20"), "Kopitiam").event
        
        plan_entries = self.ledger.get_entries_by_reference(event.intent_id)
        event_entries = self.ledger.get_entries_by_reference(event.id)
        assert [e.event_type for e in plan_entries] == [EventType.RESOLUTION_PLANNED]
        assert [e.event_type for e in event_entries] == [EventType.CARD_EVENT_EVALUATING]
        assert event_entries[0].payload["decision"]["selected_source_id"] == "wallet"
    
    def test_failed_resolution_stores_nothing(self):
        outcome = self.machine.submit("u1", Decimal("10000"), "Kopitiam")
        
        assert outcome.success is False
        assert outcome.event is None
        assert outcome.error.kind == ErrorKind.INSUFFICIENT_FUNDS
        assert self.machine.list_events("u1") == []
    
    def test_suspended_card_is_rejected(self):
        self.machine.suspend_card("u1")
        
        outcome = self.machine.submit("u1", Decimal("5"), "Kopitiam")
        
        assert outcome.error.kind == ErrorKind.CARD_INACTIVE
        
        self.machine.reactivate_card("u1")
        assert self.machine.submit("u1", Decimal("5"), "Kopitiam").success
    
    def test_user_without_card_is_rejected(self):
        outcome = self.machine.submit("nobody", Decimal("5"), "Kopitiam")
        
        assert outcome.error.kind == ErrorKind.CARD_INACTIVE
    
    def test_list_events_newest_first(self):
        first = self.machine.submit("u1", Decimal("5"), "A").event
        second = self.machine.submit("u1", Decimal("6"), "B").event
        
        listed = self.machine.list_events("u1")
        
        assert [e.id for e in listed] == [second.id, first.id]
        assert len(self.machine.list_events("u1", limit=1)) == 1


class TestTransitions:
    
    @pytest.fixture(autouse=True)
    def setup(self, engine_config):
        self.ledger = AuditLedger()
        self.machine = build_machine(engine_config, ledger=self.ledger)
        self.event = self.machine.submit("u1", Decimal("20"), "Kopitiam").event
    
    def test_approve(self):
        outcome = self.machine.approve(self.event.id)
        
        assert outcome.success
        assert outcome.event.status == CardEventStatus.APPROVED
        assert outcome.event.is_terminal
        assert "approved_at" in outcome.event.result
        assert self.machine.get_event(self.event.id).status == CardEventStatus.APPROVED
    
    def test_decline(self):
        outcome = self.machine.decline(self.event.id)
        
        assert outcome.event.status == CardEventStatus.DECLINED
        assert "declined_at" in outcome.event.result
    
    def test_terminal_state_is_absorbing(self):
        self.machine.decline(self.event.id)
        
        outcome = self.machine.approve(self.event.id)
        
        assert outcome.success is False
        assert outcome.error.kind == ErrorKind.INVALID_TRANSITION
        assert outcome.event.status == CardEventStatus.DECLINED
        assert self.machine.get_event(self.event.id).status == CardEventStatus.DECLINED
    
    def test_unknown_event(self):
        outcome = self.machine.approve("evt_missing")
        
        assert outcome.event is None
        assert outcome.error.kind == ErrorKind.EVENT_NOT_FOUND
    
    def test_transitions_are_logged(self):
        self.machine.approve(self.event.id)
        
        entries = self.ledger.get_entries_by_reference(self.event.id)
        
        assert [e.event_type for e in entries] == [
            EventType.CARD_EVENT_EVALUATING,
            EventType.CARD_EVENT_APPROVED,
        ]
        assert entries[1].payload["status"] == "approved"
    
    def test_concurrent_approve_and_decline(self):
        barrier = threading.Barrier(2)
        results = []
        
        def act(action):
            barrier.wait()
            results.append(action(self.event.id))
        
        threads = [
            threading.Thread(target=act, args=(self.machine.approve,)),
            threading.Thread(target=act, args=(self.machine.decline,)),
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        
        winners = [r for r in results if r.success]
        losers = [r for r in results if not r.success]
        assert len(winners) == 1
        assert len(losers) == 1
        assert losers[0].error.kind == ErrorKind.INVALID_TRANSITION
        assert self.machine.get_event(self.event.id).status == winners[0].event.status
        assert self.machine._locks == {}
    
    def test_unknown_ids_leave_no_locks(self):
        for i in range(1000):
            assert self.machine.approve(f"evt_unknown_{i}").error.kind == ErrorKind.EVENT_NOT_FOUND
        
        assert self.machine._locks == {}
    
    def test_terminal_events_release_their_lock(self):
        self.machine.approve(self.event.id)
        assert self.event.id not in self.machine._locks
        
        self.machine.decline(self.event.id)
        assert self.machine._locks == {}


class TestExpiry:
    
    @pytest.fixture(autouse=True)
    def setup(self, engine_config):
        self.ledger = AuditLedger()
        self.machine = build_machine(engine_config, ledger=self.ledger)
        self.event = self.machine.submit("u1", Decimal("20"), "Kopitiam").event
    
    def test_stale_event_is_declined(self):
        later = self.event.updated_at + timedelta(seconds=61)
        
        expired = self.machine.expire_stale(now=later)
        
        assert [e.id for e in expired] == [self.event.id]
        stored = self.machine.get_event(self.event.id)
        assert stored.status == CardEventStatus.DECLINED
        assert stored.result["expired"] is True
        assert self.ledger.get_entries_by_reference(self.event.id)[-1].event_type == (
            EventType.CARD_EVENT_EXPIRED
        )
    
    def test_fresh_event_is_kept(self):
        soon = self.event.updated_at + timedelta(seconds=30)
        
        assert self.machine.expire_stale(now=soon) == []
        assert self.machine.get_event(self.event.id).status == CardEventStatus.EVALUATING
    
    def test_expiry_skips_terminal_events(self):
        self.machine.approve(self.event.id)
        later = self.event.updated_at + timedelta(seconds=600)
        
        assert self.machine.expire_stale(now=later) == []
        assert self.machine.get_event(self.event.id).status == CardEventStatus.APPROVED
    
    def test_expiry_disabled(self, engine_config):
        machine = build_machine(engine_config.model_copy(update={"event_timeout_seconds": None}))
        event = machine.submit("u1", Decimal("20"), "Kopitiam").event
        
        assert machine.expire_stale(now=event.updated_at + timedelta(days=1)) == []


class TestStore:
    
    def setup_method(self):
        self.store = InMemoryCardEventStore()
        self.event = CardPaymentEvent(
            user_id="u1",
            amount=Decimal("10"),
            currency="MYR",
            merchant_name="Kopitiam",
        )
        self.store.add(self.event)
    
    def test_duplicate_add_rejected(self):
        with pytest.raises(ValueError):
            self.store.add(self.event)
    
    def test_get_returns_copy(self):
        copy = self.store.get(self.event.id)
        copy.transition_to(CardEventStatus.EVALUATING)
        
        assert self.store.get(self.event.id).status == CardEventStatus.RECEIVED
    
    def test_stale_version_rejected(self):
        first = self.store.get(self.event.id)
        second = self.store.get(self.event.id)
        
        first.transition_to(CardEventStatus.EVALUATING)
        self.store.replace(first, expected_version=0)
        
        second.transition_to(CardEventStatus.EVALUATING)
        with pytest.raises(InvalidTransitionError):
            self.store.replace(second, expected_version=0)
    
    def test_replace_unknown_event(self):
        other = CardPaymentEvent(user_id="u1", amount=Decimal("1"), currency="MYR", merchant_name="X")
        
        with pytest.raises(KeyError):
            self.store.replace(other, expected_version=0)
    
    def test_list_by_status(self):
        assert [e.id for e in self.store.list_by_status(CardEventStatus.RECEIVED)] == [self.event.id]
        assert self.store.list_by_status(CardEventStatus.APPROVED) == []
