"""Type-routed delivery of persisted events to downstream handlers.

Design goals
------------
1.  **Type-routed dispatching**: subscribers register for a concrete
    ``DomainEvent`` subclass (e.g. ``CardSentForActivation`` for the card
    reader queue).  Events are delivered to handlers registered for
    exactly ``type(event)``.
2.  **Post-commit only**: the bus only ever sees ``StoredEvent``
    envelopes that are already in the event log, so a handler can never
    observe a fact that was later rolled back.
3.  **Handler isolation**: a failing handler is logged and dead-lettered;
    it never breaks the command that persisted the event, and other
    handlers still run.

This module provides:

*  ``IEventBus``: the protocol (interface).
*  ``InMemoryEventBus``: deterministic in-process implementation.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from typing import Protocol, runtime_checkable

from membership_sync.domain.events import DomainEvent

from .event_store import StoredEvent

logger = logging.getLogger(__name__)

# Type alias for async event handlers.
EventHandler = Callable[[StoredEvent], Awaitable[None]]


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------

@runtime_checkable
class IEventBus(Protocol):
    """Publish/subscribe bus for persisted membership events."""

    async def publish(self, stored: StoredEvent) -> None:
        """Deliver *stored* to every handler for its event type."""
        ...

    def subscribe(
        self,
        event_type: type[DomainEvent],
        handler: EventHandler,
    ) -> None:
        """Register *handler* for events of exactly *event_type*."""
        ...


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------

class InMemoryEventBus:
    """Deterministic, in-process event bus.

    Handlers run sequentially in subscription order.
    """

    def __init__(self) -> None:
        self._handlers: dict[
            type[DomainEvent], list[EventHandler]
        ] = defaultdict(list)
        self._history: list[StoredEvent] = []
        self._error_counts: dict[str, int] = defaultdict(int)
        self._dead_letters: list[tuple[StoredEvent, str]] = []
        self._messages_processed: int = 0

    # -- Core API ----------------------------------------------------------

    async def publish(self, stored: StoredEvent) -> None:
        event_cls = type(stored.event)
        self._history.append(stored)

        for handler in self._handlers.get(event_cls, []):
            try:
                await handler(stored)
                self._messages_processed += 1
            except Exception as exc:
                key = event_cls.__name__
                self._error_counts[key] += 1
                self._dead_letters.append((stored, str(exc)))
                logger.exception(
                    "Handler error on %s: %s", key, exc,
                )

    def subscribe(
        self,
        event_type: type[DomainEvent],
        handler: EventHandler,
    ) -> None:
        self._handlers[event_type].append(handler)

    # -- Observability -----------------------------------------------------

    def get_history(
        self,
        event_type: type[DomainEvent] | None = None,
    ) -> list[StoredEvent]:
        """Return published events, optionally filtered by type."""
        if event_type is None:
            return list(self._history)
        return [s for s in self._history if type(s.event) is event_type]

    def get_error_counts(self) -> dict[str, int]:
        """Return ``{event_type_name: error_count}``."""
        return dict(self._error_counts)

    @property
    def dead_letters(self) -> list[tuple[StoredEvent, str]]:
        """Events whose handlers failed, with the error message."""
        return list(self._dead_letters)

    @property
    def messages_processed(self) -> int:
        return self._messages_processed
