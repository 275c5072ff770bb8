"""
Mock Data

Demo funding sources and payment history for the rail service and CLI.
"""

from datetime import datetime, timedelta, UTC
from decimal import Decimal

from railflow.rails.models import FundingSource, RailOutcome, RailType


MOCK_SOURCES = {
    "user_demo": [
        FundingSource(
            id="src_tng",
            name="Touch 'n Go",
            type=RailType.WALLET,
            balance=Decimal("30.00"),
            priority=1,
            max_auto_top_up_amount=Decimal("100.00"),
        ),
        FundingSource(
            id="src_maybank",
            name="Maybank",
            type=RailType.BANK,
            balance=Decimal("500.00"),
            priority=2,
        ),
        FundingSource(
            id="src_grabpay",
            name="GrabPay",
            type=RailType.WALLET,
            balance=Decimal("12.50"),
            priority=3,
            max_auto_top_up_amount=Decimal("50.00"),
        ),
        FundingSource(
            id="src_visa",
            name="Visa Debit",
            type=RailType.DEBIT_CARD,
            balance=Decimal("800.00"),
            priority=4,
        ),
    ],
    "user_unlinked": [
        FundingSource(
            id="src_old_wallet",
            name="Boost",
            type=RailType.WALLET,
            balance=Decimal("200.00"),
            priority=1,
            is_linked=False,
        ),
    ],
}


def mock_outcomes() -> list[RailOutcome]:
    """Recent outcomes for the demo user."""
    now = datetime.now(UTC)
    return [
        RailOutcome(
            user_id="user_demo",
            merchant_id="kopitiam",
            rail_type=RailType.WALLET,
            success=True,
            timestamp=now - timedelta(days=1),
        ),
        RailOutcome(
            user_id="user_demo",
            merchant_id="kopitiam",
            rail_type=RailType.WALLET,
            success=True,
            timestamp=now - timedelta(days=3),
        ),
        RailOutcome(
            user_id="user_demo",
            merchant_id="kopitiam",
            rail_type=RailType.DEBIT_CARD,
            success=False,
            timestamp=now - timedelta(days=2),
        ),
    ]
