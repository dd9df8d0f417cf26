"""Canonical domain events for membership state.

Design invariants
-----------------
1.  Every event is **immutable** (``frozen=True``).
2.  ``event_id`` is a UUID4 generated at creation time; it identifies the
    fact independently of its position in the log.
3.  ``correlation_id`` links all events recorded by the *same command*
    (e.g. one storefront webhook).
4.  ``causation_id`` points to the ``event_id`` that *directly caused*
    this event, e.g. ``CardAdded`` -> ``CustomerUpdated``.
5.  ``ALL_DOMAIN_EVENTS`` is closed: the event log skips, and the
    aggregate's ``apply`` rejects, any type outside it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from membership_sync.core.ids import new_id as _uuid
from membership_sync.core.ids import utc_now as _now

# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DomainEvent:
    """Immutable base for every canonical domain event.

    Shared fields
    ~~~~~~~~~~~~~
    event_id        Unique identity (UUID4).
    timestamp       UTC creation time.
    correlation_id  Groups events recorded by the same command.
    causation_id    The ``event_id`` that directly caused this event.
    """

    event_id: str = field(default_factory=_uuid)
    timestamp: datetime = field(default_factory=_now)
    correlation_id: str = ""
    causation_id: str = ""


# =========================================================================
# Storefront facts  (full records, no projection effect)
# =========================================================================

@dataclass(frozen=True)
class CustomerCreated(DomainEvent):
    """A customer record was created in the storefront."""

    customer: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CustomerUpdated(DomainEvent):
    """A customer record changed in the storefront."""

    customer: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SubscriptionCreated(DomainEvent):
    """A subscription was created in the storefront."""

    subscription: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SubscriptionUpdated(DomainEvent):
    """A subscription changed in the storefront."""

    subscription: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SubscriptionStatusChanged(DomainEvent):
    """Status observed on a subscription record; ``old_status`` is None on first sight."""

    subscription_id: str = ""
    old_status: str | None = None
    new_status: str = ""


@dataclass(frozen=True)
class MembershipActivated(DomainEvent):
    """The customer became a paying, active member."""

    customer_id: str = ""


# =========================================================================
# Card lifecycle
# =========================================================================

@dataclass(frozen=True)
class CardAdded(DomainEvent):
    """A card number appeared on the customer record."""

    customer_id: str = ""
    card_number: str = ""


@dataclass(frozen=True)
class CardRemoved(DomainEvent):
    """A card number disappeared from the customer record."""

    customer_id: str = ""
    card_number: str = ""


@dataclass(frozen=True)
class CardSentForActivation(DomainEvent):
    """An activation request was issued to the card readers."""

    customer_id: str = ""
    card_number: str = ""


@dataclass(frozen=True)
class CardSentForDeactivation(DomainEvent):
    """A deactivation request was issued to the card readers."""

    customer_id: str = ""
    card_number: str = ""


@dataclass(frozen=True)
class CardActivated(DomainEvent):
    """Card readers confirmed an activation."""

    customer_id: str = ""
    card_number: str = ""


@dataclass(frozen=True)
class CardDeactivated(DomainEvent):
    """Card readers confirmed a deactivation."""

    customer_id: str = ""
    card_number: str = ""


@dataclass(frozen=True)
class CardStatusUpdated(DomainEvent):
    """Card readers reported back on a request, successful or not."""

    request_type: str = ""
    customer_id: str = ""
    card_number: str = ""
    outcome: str = ""            # success | failure


# =========================================================================
# Registry
# =========================================================================

#: All canonical event types in a deterministic order.
ALL_DOMAIN_EVENTS: tuple[type[DomainEvent], ...] = (
    # Storefront facts
    CustomerCreated,
    CustomerUpdated,
    SubscriptionCreated,
    SubscriptionUpdated,
    SubscriptionStatusChanged,
    MembershipActivated,
    # Card lifecycle
    CardAdded,
    CardRemoved,
    CardSentForActivation,
    CardSentForDeactivation,
    CardActivated,
    CardDeactivated,
    CardStatusUpdated,
)

#: Class name -> class, used to rebuild events read back from a log.
EVENT_REGISTRY: dict[str, type[DomainEvent]] = {
    cls.__qualname__: cls for cls in ALL_DOMAIN_EVENTS
}
