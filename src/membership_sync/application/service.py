"""Command caller for the membership aggregate.

Loads a member's aggregate from the event log, runs one command against
it, appends the recorded events and hands them to downstream handlers.

Usage::

    service = MembershipService(InMemoryEventLog(), InMemoryEventBus())
    await service.update_customer(customer)
    await service.handle_webhook("subscription.updated", payload)

Commands for the same customer are serialized by a per-identity
``asyncio.Lock``: each one diffs against the state the previous one
persisted.  Different customers never share a lock.  Cross-process
writers are caught by the log's optimistic concurrency check
(``ConcurrencyError``), which propagates to the caller unchanged.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from collections.abc import Callable, Mapping
from typing import Any

from membership_sync.core.config import Settings
from membership_sync.core.enums import CardUpdateOutcome, WebhookTopic
from membership_sync.core.errors import (
    CardUpdateError,
    MissingCustomerError,
    UnknownTopicError,
)
from membership_sync.core.ids import derive_identity
from membership_sync.core.models import CardUpdateRequest, Customer, Subscription
from membership_sync.domain.membership import DEFAULT_CARD_META_KEY, MembershipAggregate
from membership_sync.infrastructure.event_bus import IEventBus
from membership_sync.infrastructure.event_store import IEventLog, JsonFileEventLog, StoredEvent

logger = logging.getLogger(__name__)

Command = Callable[[MembershipAggregate], Any]


class MembershipService:
    """Retrieve -> command -> persist -> publish, one customer at a time.

    Parameters
    ----------
    event_log:
        Where each member's events are stored.
    event_bus:
        Optional bus that receives every event after it is persisted.
    card_number_meta_key:
        Customer metadata key holding the comma-separated card list.
    """

    def __init__(
        self,
        event_log: IEventLog,
        event_bus: IEventBus | None = None,
        *,
        card_number_meta_key: str = DEFAULT_CARD_META_KEY,
    ) -> None:
        self._log = event_log
        self._bus = event_bus
        self._card_meta_key = card_number_meta_key
        # Entries vanish once no running command holds a reference.
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    @classmethod
    def from_settings(
        cls, settings: Settings, event_bus: IEventBus | None = None
    ) -> MembershipService:
        return cls(
            JsonFileEventLog(settings.event_log_path),
            event_bus,
            card_number_meta_key=settings.card_number_meta_key,
        )

    @property
    def event_log(self) -> IEventLog:
        return self._log

    # ------------------------------------------------------------------
    # Aggregate lifecycle
    # ------------------------------------------------------------------

    async def retrieve(self, customer_id: str | int) -> MembershipAggregate:
        """Rebuild the customer's aggregate from its full history."""
        aggregate = MembershipAggregate(
            customer_id, card_number_meta_key=self._card_meta_key
        )
        history = await self._log.load_history(aggregate.aggregate_id)
        # The log may skip events it cannot decode; the stored count is the
        # version the next append is checked against.
        aggregate.reconstitute(
            (stored.event for stored in history),
            version=await self._log.aggregate_version(aggregate.aggregate_id),
        )
        return aggregate

    def _lock_for(self, aggregate_id: str) -> asyncio.Lock:
        lock = self._locks.get(aggregate_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[aggregate_id] = lock
        return lock

    async def persist(self, aggregate: MembershipAggregate) -> list[StoredEvent]:
        """Append the aggregate's recorded events, then publish them."""
        pending = aggregate.uncommitted_events
        if not pending:
            return []

        stored = await self._log.append(
            aggregate.aggregate_id,
            pending,
            expected_version=aggregate.persisted_version,
        )
        aggregate.clear_uncommitted()
        logger.info(
            "Persisted %d event(s) for customer=%s (v%d)",
            len(stored), aggregate.customer_id, aggregate.version,
        )

        if self._bus is not None:
            for event in stored:
                await self._bus.publish(event)
        return stored

    async def execute(self, customer_id: str | int, command: Command) -> list[StoredEvent]:
        """Run *command* against the customer's aggregate and persist the result.

        A ``CardUpdateError`` still persists the facts recorded before it
        was raised, then re-raises.  Any other exception persists nothing.
        """
        lock = self._lock_for(derive_identity(customer_id))
        async with lock:
            aggregate = await self.retrieve(customer_id)
            try:
                command(aggregate)
            except CardUpdateError:
                await self.persist(aggregate)
                raise
            return await self.persist(aggregate)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def create_customer(self, customer: Customer | Mapping[str, Any]) -> list[StoredEvent]:
        customer = Customer.model_validate(customer)
        return await self.execute(customer.id, lambda agg: agg.create_customer(customer))

    async def update_customer(self, customer: Customer | Mapping[str, Any]) -> list[StoredEvent]:
        customer = Customer.model_validate(customer)
        return await self.execute(customer.id, lambda agg: agg.update_customer(customer))

    async def create_subscription(
        self, subscription: Subscription | Mapping[str, Any]
    ) -> list[StoredEvent]:
        subscription = _routable(Subscription.model_validate(subscription))
        return await self.execute(
            subscription.customer_id, lambda agg: agg.create_subscription(subscription)
        )

    async def update_subscription(
        self, subscription: Subscription | Mapping[str, Any]
    ) -> list[StoredEvent]:
        subscription = _routable(Subscription.model_validate(subscription))
        return await self.execute(
            subscription.customer_id, lambda agg: agg.update_subscription(subscription)
        )

    async def update_card_status(
        self,
        request: CardUpdateRequest | Mapping[str, Any],
        outcome: CardUpdateOutcome | str,
    ) -> list[StoredEvent]:
        request = CardUpdateRequest.model_validate(request)
        return await self.execute(
            request.customer_id, lambda agg: agg.update_card_status(request, outcome)
        )

    # ------------------------------------------------------------------
    # Webhook routing
    # ------------------------------------------------------------------

    async def handle_webhook(self, topic: str, payload: Mapping[str, Any]) -> list[StoredEvent]:
        """Route a storefront webhook to the matching command.

        Raises:
            UnknownTopicError: No command handles *topic*.
        """
        try:
            webhook_topic = WebhookTopic(topic)
        except ValueError:
            raise UnknownTopicError(f"No command for webhook topic {topic!r}") from None

        match webhook_topic:
            case WebhookTopic.CUSTOMER_CREATED:
                return await self.create_customer(payload)
            case WebhookTopic.CUSTOMER_UPDATED:
                return await self.update_customer(payload)
            case WebhookTopic.SUBSCRIPTION_CREATED:
                return await self.create_subscription(payload)
            case WebhookTopic.SUBSCRIPTION_UPDATED:
                return await self.update_subscription(payload)


def _routable(subscription: Subscription) -> Subscription:
    if subscription.customer_id is None:
        raise MissingCustomerError(
            f"Subscription {subscription.id} names no customer_id"
        )
    return subscription
