"""Canonical ID and timestamp factories.

ID Categories
-------------
1. Internal IDs: UUID v4 strings (event_id).
2. External IDs: storefront-assigned, opaque strings (customer_id, card numbers).
3. Aggregate IDs: UUID v5 strings derived from the external customer id, so
   the same customer always maps to the same event stream without a lookup
   table.

Timestamp Rule
--------------
All timestamps are ``datetime`` with ``tzinfo=timezone.utc``: never naive.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone


def new_id() -> str:
    """Generate a new UUID v4 string.  Use for all internal entity IDs."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)


def derive_identity(customer_id: str | int) -> str:
    """Map an external customer id onto its aggregate identity.

    Name-based (UUID v5, OID namespace), so the result is stable across
    processes and machines.
    """
    return str(uuid.uuid5(uuid.NAMESPACE_OID, str(customer_id)))
