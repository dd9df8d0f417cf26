"""Append-only, per-aggregate event log.

Design invariants
-----------------
1.  ``append()`` is **atomic per call**: either every event in the batch
    is stored or none is.
2.  ``load_history()`` returns one aggregate's events in **append order**
    (``aggregate_version`` 1, 2, 3, ...).  Events appended by one command
    are visible to the next load of the same aggregate.
3.  ``append(..., expected_version=n)`` fails with ``ConcurrencyError``
    unless the stream is exactly at version *n* (optimistic concurrency).
4.  The log is **append-only**: events can never be deleted or
    modified.  ``clear()`` exists only for testing.

This module provides:

*  ``IEventLog``: the protocol.
*  ``StoredEvent``: the persisted envelope.
*  ``InMemoryEventLog``: dict-backed implementation for tests and
   local development.
*  ``JsonFileEventLog``: append-to-JSONL-file implementation for
   durable local persistence.
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

from membership_sync.core.errors import ConcurrencyError, EventLogError
from membership_sync.core.ids import utc_now
from membership_sync.domain.events import EVENT_REGISTRY, DomainEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredEvent:
    """A domain event as persisted in one aggregate's stream."""

    aggregate_id: str
    aggregate_version: int
    event: DomainEvent
    created_at: datetime = field(default_factory=utc_now)


# ---------------------------------------------------------------------------
# JSON helpers
# ---------------------------------------------------------------------------

def _event_to_dict(event: DomainEvent) -> dict[str, Any]:
    """Serialize a frozen dataclass to a JSON-safe dict."""
    d = dataclasses.asdict(event)
    d["timestamp"] = event.timestamp.isoformat()
    return d


def _event_from_dict(event_type: str, payload: dict[str, Any]) -> DomainEvent | None:
    """Rebuild a DomainEvent from its serialized fields.

    Returns ``None`` if the event type is unrecognized (forward compat).
    """
    cls = EVENT_REGISTRY.get(event_type)
    if cls is None:
        return None
    restored = dict(payload)
    if isinstance(restored.get("timestamp"), str):
        restored["timestamp"] = datetime.fromisoformat(restored["timestamp"])
    known = {f.name for f in dataclasses.fields(cls)}
    return cls(**{k: v for k, v in restored.items() if k in known})


def _stored_to_line(stored: StoredEvent) -> str:
    return json.dumps({
        "aggregate_id": stored.aggregate_id,
        "aggregate_version": stored.aggregate_version,
        "event_type": type(stored.event).__qualname__,
        "created_at": stored.created_at.isoformat(),
        "payload": _event_to_dict(stored.event),
    })


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------

class IEventLog(Protocol):
    """Ordered, append-only event log keyed by aggregate identity."""

    async def load_history(self, aggregate_id: str) -> list[StoredEvent]:
        """Return every event for *aggregate_id* in append order."""
        ...

    async def append(
        self,
        aggregate_id: str,
        events: Sequence[DomainEvent],
        expected_version: int | None = None,
    ) -> list[StoredEvent]:
        """Append *events* to *aggregate_id*'s stream and return their envelopes."""
        ...

    async def aggregate_version(self, aggregate_id: str) -> int:
        """Number of events stored for *aggregate_id* (0 if none)."""
        ...


def _check_version(aggregate_id: str, expected: int | None, actual: int) -> None:
    if expected is not None and expected != actual:
        raise ConcurrencyError(aggregate_id, expected, actual)


def _envelopes(
    aggregate_id: str, events: Sequence[DomainEvent], current: int
) -> list[StoredEvent]:
    return [
        StoredEvent(
            aggregate_id=aggregate_id,
            aggregate_version=current + offset,
            event=event,
        )
        for offset, event in enumerate(events, start=1)
    ]


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------

class InMemoryEventLog:
    """Dict-backed event log.  No persistence across restarts.

    Good for: unit tests, local development.
    """

    def __init__(self) -> None:
        self._streams: dict[str, list[StoredEvent]] = defaultdict(list)

    async def load_history(self, aggregate_id: str) -> list[StoredEvent]:
        return list(self._streams.get(aggregate_id, []))

    async def append(
        self,
        aggregate_id: str,
        events: Sequence[DomainEvent],
        expected_version: int | None = None,
    ) -> list[StoredEvent]:
        stream = self._streams[aggregate_id]
        _check_version(aggregate_id, expected_version, len(stream))
        stored = _envelopes(aggregate_id, events, len(stream))
        stream.extend(stored)
        return stored

    async def aggregate_version(self, aggregate_id: str) -> int:
        return len(self._streams.get(aggregate_id, []))

    # -- Testing helpers ---------------------------------------------------

    def clear(self) -> None:
        """Remove all events.  Testing only."""
        self._streams.clear()

    def __len__(self) -> int:
        return sum(len(stream) for stream in self._streams.values())


# ---------------------------------------------------------------------------
# JSON-Lines file implementation
# ---------------------------------------------------------------------------

class JsonFileEventLog:
    """Append-only JSONL file log.  Durable across restarts.

    Each line is one stored event::

        {"aggregate_id": ..., "aggregate_version": 3, "event_type": "CardAdded",
         "created_at": "...", "payload": {...}}

    Lines naming an unknown event type are skipped (forward compat).
    A line that is not valid JSON means the file is corrupt and raises
    ``EventLogError``.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = asyncio.Lock()

    def _read_lines(self, aggregate_id: str | None = None) -> list[dict[str, Any]]:
        if not self._path.exists():
            return []
        rows: list[dict[str, Any]] = []
        with self._path.open(encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    row = json.loads(line)
                except json.JSONDecodeError as exc:
                    raise EventLogError(
                        f"{self._path}:{lineno}: undecodable event line"
                    ) from exc
                if aggregate_id is not None and row.get("aggregate_id") != aggregate_id:
                    continue
                rows.append(row)
        return rows

    async def load_history(self, aggregate_id: str) -> list[StoredEvent]:
        out: list[StoredEvent] = []
        for row in self._read_lines(aggregate_id):
            event = _event_from_dict(row["event_type"], row["payload"])
            if event is None:
                logger.warning(
                    "Skipping unknown event type %s in %s",
                    row["event_type"], self._path,
                )
                continue
            out.append(StoredEvent(
                aggregate_id=row["aggregate_id"],
                aggregate_version=row["aggregate_version"],
                event=event,
                created_at=datetime.fromisoformat(row["created_at"]),
            ))
        return out

    async def append(
        self,
        aggregate_id: str,
        events: Sequence[DomainEvent],
        expected_version: int | None = None,
    ) -> list[StoredEvent]:
        async with self._lock:
            current = len(self._read_lines(aggregate_id))
            _check_version(aggregate_id, expected_version, current)
            stored = _envelopes(aggregate_id, events, current)
            if not stored:
                return stored
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write("".join(_stored_to_line(s) + "\n" for s in stored))
        return stored

    async def aggregate_version(self, aggregate_id: str) -> int:
        return len(self._read_lines(aggregate_id))
