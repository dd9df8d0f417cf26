"""Shared fixtures for the membership-sync test suite."""

from __future__ import annotations

from typing import Any

import pytest

from membership_sync.application.service import MembershipService
from membership_sync.core.models import Customer, Subscription
from membership_sync.infrastructure.event_bus import InMemoryEventBus
from membership_sync.infrastructure.event_store import InMemoryEventLog

CARD_KEY = "access_card_number"


# ---------------------------------------------------------------------------
# Record builders
# ---------------------------------------------------------------------------

def customer_payload(
    customer_id: int | str = 42,
    cards: str | None = None,
) -> dict[str, Any]:
    """Storefront-shaped customer payload; ``cards=None`` omits the card field."""
    meta_data: list[dict[str, Any]] = [{"id": 1001, "key": "_newsletter", "value": "yes"}]
    if cards is not None:
        meta_data.append({"id": 1002, "key": CARD_KEY, "value": cards})
    return {
        "id": customer_id,
        "email": f"member{customer_id}@example.org",
        "first_name": "Ada",
        "last_name": "Lovelace",
        "meta_data": meta_data,
    }


def make_customer(customer_id: int | str = 42, cards: str | None = None) -> Customer:
    return Customer.model_validate(customer_payload(customer_id, cards))


def make_subscription(
    status: str,
    customer_id: int | str = 42,
    subscription_id: int = 7,
) -> Subscription:
    return Subscription(id=subscription_id, status=status, customer_id=customer_id)


def event_names(events) -> list[str]:
    return [type(e).__name__ for e in events]


# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------

@pytest.fixture
def event_log() -> InMemoryEventLog:
    return InMemoryEventLog()


@pytest.fixture
def event_bus() -> InMemoryEventBus:
    return InMemoryEventBus()


@pytest.fixture
def service(event_log: InMemoryEventLog, event_bus: InMemoryEventBus) -> MembershipService:
    return MembershipService(event_log, event_bus)
