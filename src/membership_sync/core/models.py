"""Inbound records handed to the membership aggregate.

These mirror the storefront's webhook payloads closely enough to validate
the fields the aggregate reads, while keeping every other field (``extra``)
so the fact events carry the full record.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class MetaData(BaseModel):
    """A single key/value metadata pair on a customer record."""

    model_config = ConfigDict(extra="allow")

    key: str
    value: Any = None


class Customer(BaseModel):
    """Storefront customer record."""

    model_config = ConfigDict(extra="allow")

    id: int | str
    meta_data: list[MetaData] = Field(default_factory=list)

    def meta(self, key: str) -> MetaData | None:
        """Return the first metadata entry for *key*, if any."""
        for entry in self.meta_data:
            if entry.key == key:
                return entry
        return None


class Subscription(BaseModel):
    """Storefront subscription record."""

    model_config = ConfigDict(extra="allow")

    id: int | str
    status: str
    customer_id: int | str | None = None


class CardUpdateRequest(BaseModel):
    """A request sent to the card readers, echoed back with its outcome.

    ``type`` is deliberately a plain string: readers can report types the
    aggregate does not recognise, and that case must reach the aggregate.
    """

    type: str
    customer_id: int | str
    card: str
