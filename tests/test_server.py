"""End-to-end tests for the RailFlow API."""

from decimal import Decimal

from fastapi.testclient import TestClient

from railflow import main as cli
from railflow import server
from railflow.errors import ErrorKind
from railflow.rails import PaymentRequest
from railflow.server import RailFlowContainer, app, railflow


class TestResolveEndpoint:
    
    def setup_method(self):
        self.client = TestClient(app)
    
    def test_root(self):
        assert self.client.get("/").json()["status"] == "online"
    
    def test_resolve_demo_user(self):
        response = self.client.post("/resolve", json={
            "user_id": "user_demo",
            "amount": "20",
            "merchant_id": "kopitiam",
        })
        
        assert response.status_code == 200
        plan = response.json()
        assert plan["chosen_rail_id"] == "src_tng"
        assert plan["total_score"] == 100
        assert plan["risk_level"] == "low"
        assert plan["requires_confirmation"] is False
        assert [s["action"] for s in plan["steps"]] == ["pay"]
        assert "candidates" not in plan
    
    def test_no_eligible_rail(self):
        response = self.client.post("/resolve", json={
            "user_id": "user_unlinked",
            "amount": "10",
            "merchant_id": "kopitiam",
        })
        
        assert response.status_code == 422
        assert response.json()["error"]["kind"] == "NO_ELIGIBLE_RAIL"
    
    def test_insufficient_funds(self):
        response = self.client.post("/resolve", json={
            "user_id": "user_demo",
            "amount": "5000",
            "merchant_id": "kopitiam",
        })
        
        assert response.status_code == 402
        error = response.json()["error"]
        assert error["kind"] == "INSUFFICIENT_FUNDS"
        assert error["retryable"] is False
    
    def test_request_without_payee_rejected(self):
        response = self.client.post("/resolve", json={"user_id": "user_demo", "amount": "5"})
        
        assert response.status_code == 422
        assert "error" not in response.json()


class TestCardEventEndpoints:
    
    def setup_method(self):
        self.client = TestClient(app)
    
    def submit(self, amount="20", user_id="user_demo"):
        return self.client.post(f"/users/{user_id}/card-events", json={
            "amount": amount,
            "merchant_name": "kopitiam",
            "merchant_category": "food",
        })
    
    def test_submit_and_approve(self):
        created = self.submit()
        
        assert created.status_code == 201
        event_id = created.json()["event_id"]
        assert created.json()["event"]["status"] == "evaluating"
        assert created.json()["event"]["decision"]["selected_source_id"] == "src_tng"
        
        approved = self.client.post(f"/card-events/{event_id}/approve")
        assert approved.status_code == 200
        assert approved.json()["status"] == "approved"
        
        again = self.client.post(f"/card-events/{event_id}/decline")
        assert again.status_code == 409
        assert again.json()["error"]["kind"] == "INVALID_TRANSITION"
        
        fetched = self.client.get(f"/card-events/{event_id}")
        assert fetched.json()["status"] == "approved"
    
    def test_listing(self):
        event_id = self.submit(amount="7").json()["event_id"]
        
        listed = self.client.get("/users/user_demo/card-events", params={"limit": 1}).json()
        
        assert [e["id"] for e in listed] == [event_id]
    
    def test_unknown_event(self):
        assert self.client.get("/card-events/evt_missing").status_code == 404
        
        response = self.client.post("/card-events/evt_missing/approve")
        assert response.status_code == 404
        assert response.json()["error"]["kind"] == "EVENT_NOT_FOUND"
    
    def test_failed_resolution_creates_no_event(self):
        before = len(railflow.machine.list_events("user_demo", limit=1000))
        
        response = self.submit(amount="5000")
        
        assert response.status_code == 402
        assert len(railflow.machine.list_events("user_demo", limit=1000)) == before
    
    def test_suspended_card(self):
        assert self.client.post("/users/user_demo/card/suspend").json()["status"] == "suspended"
        try:
            response = self.submit()
            assert response.status_code == 403
            assert response.json()["error"]["kind"] == "CARD_INACTIVE"
        finally:
            self.client.post("/users/user_demo/card/reactivate")
        
        assert self.submit().status_code == 201
    
    def test_card_for_unknown_user(self):
        assert self.client.post("/users/nobody/card/suspend").status_code == 404
    
    def test_expire_keeps_fresh_events(self):
        event_id = self.submit().json()["event_id"]
        
        expired = self.client.post("/card-events/expire").json()
        
        assert event_id not in [e["id"] for e in expired]


class TestShutdown:
    
    def test_app_shutdown_releases_resources(self, monkeypatch):
        container = RailFlowContainer()
        monkeypatch.setattr(server, "railflow", container)
        
        with TestClient(app) as client:
            assert client.get("/").status_code == 200
        
        assert container.ledger._conn is None
        container.resolver.ledger = None
        outcome = container.resolver.resolve(PaymentRequest(
            user_id="user_demo",
            amount=Decimal("5"),
            merchant_id="kopitiam",
        ))
        assert outcome.error.kind == ErrorKind.COLLABORATOR_UNAVAILABLE
    
    def test_cli_exit_releases_resources(self, monkeypatch):
        machines = []
        original_build_machine = cli.build_machine
        
        def build():
            machine = original_build_machine()
            machines.append(machine)
            return machine
        
        def hang_up(prompt=""):
            raise EOFError
        
        monkeypatch.setattr(cli, "build_machine", build)
        monkeypatch.setattr("builtins.input", hang_up)
        
        assert cli.main() == 0
        
        machine = machines[0]
        assert machine.ledger._conn is None
        machine.resolver.ledger = None
        outcome = machine.resolver.resolve(PaymentRequest(
            user_id="user_demo",
            amount=Decimal("5"),
            merchant_id="kopitiam",
        ))
        assert outcome.error.kind == ErrorKind.COLLABORATOR_UNAVAILABLE
