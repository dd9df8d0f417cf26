"""Aggregate root that derives its state from an ordered event stream.

Subclasses implement :meth:`AggregateRoot.apply` as a pure state
transition for every event type they know.  New facts go through
:meth:`AggregateRoot.record_that`, which applies the event locally and
queues it as uncommitted, so in-memory state never changes except by an
event that will be persisted.

Typical lifecycle::

    aggregate = SomeAggregate(aggregate_id)
    aggregate.reconstitute(event.event for event in await log.load_history(aggregate_id))
    aggregate.some_command(...)
    await log.append(aggregate_id, aggregate.uncommitted_events,
                     expected_version=aggregate.persisted_version)
    aggregate.clear_uncommitted()
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import TypeVar

from .events import DomainEvent

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=DomainEvent)


class AggregateRoot(ABC):
    """Event-sourced consistency boundary.

    Args:
        aggregate_id: Identity of the event stream this aggregate owns.
    """

    def __init__(self, aggregate_id: str) -> None:
        self._aggregate_id = aggregate_id
        self._version = 0
        self._uncommitted_events: list[DomainEvent] = []

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def aggregate_id(self) -> str:
        return self._aggregate_id

    @property
    def version(self) -> int:
        """Number of events applied, persisted or not."""
        return self._version

    @property
    def persisted_version(self) -> int:
        """Version of the stream as it was loaded from the log."""
        return self._version - len(self._uncommitted_events)

    @property
    def uncommitted_events(self) -> list[DomainEvent]:
        """Events recorded since the last load / persist."""
        return list(self._uncommitted_events)

    # ------------------------------------------------------------------
    # Event handling
    # ------------------------------------------------------------------

    @abstractmethod
    def apply(self, event: DomainEvent) -> None:
        """Mutate in-memory state for *event*.

        Must be a pure state transition: no I/O, no branching on anything
        but the event's own fields and current state.
        """

    def record_that(self, event: E) -> E:
        """Apply *event* and queue it for persistence."""
        self.apply(event)
        self._version += 1
        self._uncommitted_events.append(event)
        logger.debug(
            "Aggregate %s: recorded %s v%d",
            self._aggregate_id,
            type(event).__name__,
            self._version,
        )
        return event

    # ------------------------------------------------------------------
    # History replay
    # ------------------------------------------------------------------

    def reconstitute(
        self, history: Iterable[DomainEvent], version: int | None = None
    ) -> None:
        """Rebuild state by replaying persisted events in order.

        Replayed events are *not* queued as uncommitted.  Pass *version* when
        the stream holds events this process skipped (unknown types), so the
        aggregate still tracks the stored stream version.
        """
        for event in history:
            self.apply(event)
            self._version += 1
        if version is not None:
            self._version = version

        logger.debug(
            "Aggregate %s: loaded from history, now at v%d",
            self._aggregate_id,
            self._version,
        )

    def clear_uncommitted(self) -> None:
        """Clear the uncommitted queue after successful persistence."""
        self._uncommitted_events.clear()
