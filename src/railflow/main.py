"""
RailFlow Main Entry Point

Interactive demo of a card tap against the mock funding sources:
1. Enter an amount and merchant
2. The resolver scores the demo user's rails and builds a plan
3. The card event waits in 'evaluating' until you approve or decline
"""

import logging
import sys
from decimal import Decimal, InvalidOperation

from dotenv import load_dotenv

from railflow.cards import CardEventMachine
from railflow.config import config
from railflow.ledger import AuditLedger
from railflow.rails import InMemoryHistoryProvider, InMemoryRailCatalog
from railflow.rails.mock_data import MOCK_SOURCES, mock_outcomes
from railflow.resolution import Resolver


# Set up logging
logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

DEMO_USER = "user_demo"


def print_banner():
    print("\n" + "=" * 60)
    print("  RailFlow: Payment Rail Resolution")
    print("  Card tap demo - type '<amount> <merchant>' or 'quit'")
    print("=" * 60 + "\n")


def build_machine() -> CardEventMachine:
    ledger = AuditLedger(config.ledger_path)
    history = InMemoryHistoryProvider(lookback_days=config.history_lookback_days)
    for outcome in mock_outcomes():
        history.record(outcome)
    resolver = Resolver(InMemoryRailCatalog(MOCK_SOURCES), history, ledger=ledger, config=config)
    machine = CardEventMachine(resolver, ledger=ledger, config=config)
    machine.issue_card(DEMO_USER)
    return machine


def main():
    """Main CLI application."""
    load_dotenv()
    print_banner()
    machine = build_machine()
    try:
        run_loop(machine)
    finally:
        machine.resolver.close()
        if machine.ledger:
            machine.ledger.close()
    
    return 0


def run_loop(machine: CardEventMachine) -> None:
    """Read taps until the user quits."""
    while True:
        try:
            line = input("💳 Tap> ").strip()
        except (EOFError, KeyboardInterrupt):
            print("\n👋 Goodbye!")
            break
        
        if not line:
            continue
        if line.lower() in ("quit", "exit", "q"):
            print("👋 Goodbye!")
            break
        
        amount_text, _, merchant = line.partition(" ")
        try:
            amount = Decimal(amount_text)
        except InvalidOperation:
            print("❌ Amount must be a number, e.g. '25.50 kopitiam'")
            continue
        if amount <= 0 or not merchant.strip():
            print("❌ Usage: <amount> <merchant>")
            continue
        
        outcome = machine.submit(DEMO_USER, amount, merchant.strip())
        if not outcome.success:
            print(f"❌ {outcome.error.user_message}")
            continue
        
        event = outcome.event
        decision = event.decision
        print(f"\n📋 {event.explainability}")
        print(f"   Score: {decision.total_score}  Risk: {decision.risk_level.value}")
        if decision.top_up_source_id:
            print(f"   Top-up: {decision.top_up_amount} from {decision.top_up_source_id}")
        if decision.fallback_chain:
            print(f"   Alternatives: {', '.join(decision.fallback_chain)}")
        
        answer = input("   Approve? [y/N] ").strip().lower()
        result = machine.approve(event.id) if answer == "y" else machine.decline(event.id)
        if result.success:
            print(f"✅ Event {event.id} {result.event.status.value}\n")
        else:
            print(f"⚠️  {result.error.user_message}\n")


if __name__ == "__main__":
    sys.exit(main())
