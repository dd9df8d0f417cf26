"""Tests for the domain event catalog (``domain/events.py``).

Covers:
- Every catalog event instantiates with defaults and is immutable.
- ``event_id`` is unique across instances; timestamps are UTC-aware.
- ``EVENT_REGISTRY`` maps class names back to every catalog type.
- Serialization round-trip via ``dataclasses.asdict`` preserves values.
"""

from __future__ import annotations

import dataclasses
from datetime import datetime, timezone

import pytest

from membership_sync.domain.events import (
    ALL_DOMAIN_EVENTS,
    EVENT_REGISTRY,
    CardAdded,
    CardStatusUpdated,
    CustomerUpdated,
    DomainEvent,
    SubscriptionStatusChanged,
)


class TestDomainEventBase:
    def test_default_fields_populated(self):
        e = DomainEvent()
        assert isinstance(e.event_id, str)
        assert len(e.event_id) == 36  # UUID4 format
        assert isinstance(e.timestamp, datetime)
        assert e.timestamp.tzinfo is timezone.utc
        assert e.correlation_id == ""
        assert e.causation_id == ""

    def test_event_id_unique(self):
        ids = {DomainEvent().event_id for _ in range(100)}
        assert len(ids) == 100

    def test_frozen(self):
        e = DomainEvent()
        with pytest.raises(dataclasses.FrozenInstanceError):
            e.correlation_id = "oops"  # type: ignore[misc]


class TestCatalog:
    @pytest.mark.parametrize("cls", ALL_DOMAIN_EVENTS)
    def test_instantiates_with_defaults(self, cls: type[DomainEvent]):
        event = cls()
        assert isinstance(event, DomainEvent)
        assert len(event.event_id) == 36

    @pytest.mark.parametrize("cls", ALL_DOMAIN_EVENTS)
    def test_frozen(self, cls: type[DomainEvent]):
        event = cls()
        with pytest.raises(dataclasses.FrozenInstanceError):
            event.causation_id = "mutated"  # type: ignore[misc]

    def test_event_count(self):
        assert len(ALL_DOMAIN_EVENTS) == 13

    def test_registry_covers_catalog(self):
        assert set(EVENT_REGISTRY.values()) == set(ALL_DOMAIN_EVENTS)
        assert EVENT_REGISTRY["CardAdded"] is CardAdded

    def test_base_event_not_registered(self):
        assert "DomainEvent" not in EVENT_REGISTRY


class TestEventFields:
    def test_status_change_first_observation(self):
        e = SubscriptionStatusChanged(subscription_id="7", new_status="active")
        assert e.old_status is None
        assert e.new_status == "active"

    def test_customer_fact_carries_full_record(self):
        record = {"id": 42, "email": "a@example.org", "meta_data": []}
        e = CustomerUpdated(customer=record)
        assert e.customer["email"] == "a@example.org"

    def test_card_status_fields(self):
        e = CardStatusUpdated(
            request_type="activation",
            customer_id="42",
            card_number="1234",
            outcome="success",
        )
        assert e.outcome == "success"


class TestSerialization:
    def test_roundtrip_card_added(self):
        original = CardAdded(
            customer_id="42",
            card_number="0001234",
            correlation_id="corr-1",
            causation_id="cause-1",
        )
        restored = CardAdded(**dataclasses.asdict(original))
        assert restored == original
