"""Membership aggregate: one member's cards, subscription and activation.

State is never stored directly.  It is rebuilt by replaying the member's
event stream, and every command records the events describing its
outcome before anything else can observe the change.

Card lifecycle
--------------
A card declared on the customer record is *added*.  If the customer is
already an active member it is sent for activation straight away;
otherwise it waits in the activation backlog until the subscription moves
``on-hold -> active``.  A card that disappears from the record is
*removed* and always sent for deactivation.  The card readers report back
through :meth:`MembershipAggregate.update_card_status`.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

from membership_sync.core.enums import (
    SUBSCRIPTION_ACTIVE,
    SUBSCRIPTION_ON_HOLD,
    CardUpdateOutcome,
    CardUpdateType,
)
from membership_sync.core.errors import (
    CardUpdateFailed,
    UnknownEventError,
    UnrecognizedRequestType,
)
from membership_sync.core.ids import derive_identity, new_id
from membership_sync.core.models import CardUpdateRequest, Customer, Subscription

from .aggregate import AggregateRoot
from .events import (
    CardActivated,
    CardAdded,
    CardDeactivated,
    CardRemoved,
    CardSentForActivation,
    CardSentForDeactivation,
    CardStatusUpdated,
    CustomerCreated,
    CustomerUpdated,
    DomainEvent,
    MembershipActivated,
    SubscriptionCreated,
    SubscriptionStatusChanged,
    SubscriptionUpdated,
)

logger = logging.getLogger(__name__)

DEFAULT_CARD_META_KEY = "access_card_number"

#: (old status, new status) pairs that make the customer an active member.
#: Every other observed transition is recorded without further effect.
ACTIVATING_TRANSITIONS: frozenset[tuple[str, str]] = frozenset({
    (SUBSCRIPTION_ON_HOLD, SUBSCRIPTION_ACTIVE),
})


def parse_card_list(value: Any) -> list[str]:
    """Split a comma-separated card field into card numbers.

    Blank entries are dropped, so an empty field declares no cards.
    """
    if value is None:
        return []
    return [card.strip() for card in str(value).split(",") if card.strip()]


def _add(cards: list[str], card: str) -> None:
    if card not in cards:
        cards.append(card)


def _discard(cards: list[str], card: str) -> None:
    if card in cards:
        cards.remove(card)


@dataclass(frozen=True)
class MembershipSnapshot:
    """Read-only view of a projected membership."""

    aggregate_id: str
    customer_id: str
    version: int
    cards_on_account: tuple[str, ...]
    cards_needing_activation: tuple[str, ...]
    cards_sent_for_activation: tuple[str, ...]
    cards_sent_for_deactivation: tuple[str, ...]
    subscription_status: str | None
    currently_a_member: bool | None


class MembershipAggregate(AggregateRoot):
    """Single source of truth for one customer's membership.

    Card collections are insertion-ordered lists kept free of duplicates,
    so the order of emitted events is the same on every replay.

    Args:
        customer_id: Stable storefront customer id.
        card_number_meta_key: Customer metadata key holding the card list.
    """

    def __init__(
        self,
        customer_id: str | int,
        *,
        card_number_meta_key: str = DEFAULT_CARD_META_KEY,
    ) -> None:
        super().__init__(derive_identity(customer_id))
        self.customer_id = str(customer_id)
        self._card_meta_key = card_number_meta_key

        self.cards_on_account: list[str] = []
        # Only activated once this person is a confirmed member
        self.cards_needing_activation: list[str] = []
        self.cards_sent_for_activation: list[str] = []
        self.cards_sent_for_deactivation: list[str] = []

        self.subscription_status: str | None = None
        self.currently_a_member: bool | None = None

        self._cause: DomainEvent | None = None

    @classmethod
    def for_customer(
        cls,
        customer_id: str | int,
        history: Iterable[DomainEvent] = (),
        **kwargs: Any,
    ) -> MembershipAggregate:
        """Build the projection for *customer_id* from its event history."""
        aggregate = cls(customer_id, **kwargs)
        aggregate.reconstitute(history)
        return aggregate

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create_customer(self, customer: Customer, correlation_id: str = "") -> MembershipAggregate:
        fact = self.record_that(CustomerCreated(
            customer=customer.model_dump(mode="json"),
            correlation_id=correlation_id or new_id(),
        ))
        with self._caused_by(fact):
            self._reconcile_cards(customer)
        return self

    def update_customer(self, customer: Customer, correlation_id: str = "") -> MembershipAggregate:
        fact = self.record_that(CustomerUpdated(
            customer=customer.model_dump(mode="json"),
            correlation_id=correlation_id or new_id(),
        ))
        with self._caused_by(fact):
            self._reconcile_cards(customer)
        return self

    def create_subscription(
        self, subscription: Subscription, correlation_id: str = ""
    ) -> MembershipAggregate:
        fact = self.record_that(SubscriptionCreated(
            subscription=subscription.model_dump(mode="json"),
            correlation_id=correlation_id or new_id(),
        ))
        with self._caused_by(fact):
            self._transition_subscription(str(subscription.id), subscription.status)
        return self

    def update_subscription(
        self, subscription: Subscription, correlation_id: str = ""
    ) -> MembershipAggregate:
        fact = self.record_that(SubscriptionUpdated(
            subscription=subscription.model_dump(mode="json"),
            correlation_id=correlation_id or new_id(),
        ))
        with self._caused_by(fact):
            self._transition_subscription(str(subscription.id), subscription.status)
        return self

    def update_card_status(
        self,
        request: CardUpdateRequest,
        outcome: CardUpdateOutcome | str,
        correlation_id: str = "",
    ) -> MembershipAggregate:
        """Record what the card readers reported for *request*.

        Raises:
            CardUpdateFailed: The readers reported a failure.  The card stays
                in its "sent for" collection.
            UnrecognizedRequestType: The request type is neither activation
                nor deactivation.

        In both error cases ``CardStatusUpdated`` has already been recorded.
        """
        succeeded = outcome == CardUpdateOutcome.SUCCESS
        fact = self.record_that(CardStatusUpdated(
            request_type=request.type,
            customer_id=str(request.customer_id),
            card_number=request.card,
            outcome=(CardUpdateOutcome.SUCCESS if succeeded else CardUpdateOutcome.FAILURE).value,
            correlation_id=correlation_id or new_id(),
        ))

        if not succeeded:
            logger.warning(
                "Card update failed: customer=%s card=%s type=%s",
                request.customer_id, request.card, request.type,
            )
            raise CardUpdateFailed(
                customer_id=str(request.customer_id),
                card_number=request.card,
                request_type=request.type,
            )

        with self._caused_by(fact):
            if request.type == CardUpdateType.ACTIVATION:
                self._record(CardActivated, card_number=request.card)
            elif request.type == CardUpdateType.DEACTIVATION:
                self._record(CardDeactivated, card_number=request.card)
            else:
                logger.warning(
                    "Unrecognized card update type %r for customer=%s card=%s",
                    request.type, request.customer_id, request.card,
                )
                raise UnrecognizedRequestType(
                    customer_id=str(request.customer_id),
                    card_number=request.card,
                    request_type=request.type,
                )
        return self

    # ------------------------------------------------------------------
    # Business rules
    # ------------------------------------------------------------------

    def _reconcile_cards(self, customer: Customer) -> None:
        """Converge ``cards_on_account`` on the cards the record declares."""
        entry = customer.meta(self._card_meta_key)
        if entry is None:
            return

        declared = parse_card_list(entry.value)

        for card in declared:
            if card not in self.cards_on_account:
                self._record(CardAdded, card_number=card)
                if self.is_active_member():
                    self._record(CardSentForActivation, card_number=card)

        for card in list(self.cards_on_account):
            if card not in declared:
                self._record(CardRemoved, card_number=card)
                self._record(CardSentForDeactivation, card_number=card)

    def _transition_subscription(self, subscription_id: str, new_status: str) -> None:
        old_status = self.subscription_status
        self._record(
            SubscriptionStatusChanged,
            subscription_id=subscription_id,
            old_status=old_status,
            new_status=new_status,
            with_customer=False,
        )

        # The first status ever seen is not a transition
        if old_status is None:
            old_status = new_status

        if (old_status, new_status) in ACTIVATING_TRANSITIONS:
            self._record(MembershipActivated)
            for card in list(self.cards_needing_activation):
                self._record(CardSentForActivation, card_number=card)

    def is_active_member(self) -> bool:
        return bool(self.currently_a_member)

    # ------------------------------------------------------------------
    # Event application
    # ------------------------------------------------------------------

    def apply(self, event: DomainEvent) -> None:
        match event:
            case CardAdded(card_number=card):
                _add(self.cards_on_account, card)
                _add(self.cards_needing_activation, card)
            case CardSentForActivation(card_number=card):
                _discard(self.cards_needing_activation, card)
                _add(self.cards_sent_for_activation, card)
            case CardActivated(card_number=card):
                _discard(self.cards_sent_for_activation, card)
            case CardRemoved(card_number=card):
                _discard(self.cards_on_account, card)
                _discard(self.cards_needing_activation, card)
            case CardSentForDeactivation(card_number=card):
                _add(self.cards_sent_for_deactivation, card)
            case CardDeactivated(card_number=card):
                _discard(self.cards_sent_for_deactivation, card)
            case SubscriptionStatusChanged(new_status=status):
                self.subscription_status = status
            case MembershipActivated():
                self.currently_a_member = True
            case (
                CustomerCreated()
                | CustomerUpdated()
                | SubscriptionCreated()
                | SubscriptionUpdated()
                | CardStatusUpdated()
            ):
                pass
            case _:
                raise UnknownEventError(
                    f"{type(event).__name__} is not a membership event"
                )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _caused_by(self, fact: DomainEvent) -> Iterator[None]:
        self._cause = fact
        try:
            yield
        finally:
            self._cause = None

    def _record(
        self,
        event_cls: type[DomainEvent],
        *,
        with_customer: bool = True,
        **fields: Any,
    ) -> DomainEvent:
        """Record a follow-on event linked to the fact that caused it."""
        if with_customer:
            fields["customer_id"] = self.customer_id
        if self._cause is not None:
            fields.setdefault("correlation_id", self._cause.correlation_id)
            fields.setdefault("causation_id", self._cause.event_id)
        return self.record_that(event_cls(**fields))

    def state(self) -> MembershipSnapshot:
        return MembershipSnapshot(
            aggregate_id=self.aggregate_id,
            customer_id=self.customer_id,
            version=self.version,
            cards_on_account=tuple(self.cards_on_account),
            cards_needing_activation=tuple(self.cards_needing_activation),
            cards_sent_for_activation=tuple(self.cards_sent_for_activation),
            cards_sent_for_deactivation=tuple(self.cards_sent_for_deactivation),
            subscription_status=self.subscription_status,
            currently_a_member=self.currently_a_member,
        )
