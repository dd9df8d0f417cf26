"""Custom exception hierarchy for the membership core."""


class MembershipError(Exception):
    """Base exception for all membership errors."""


# --- Configuration ---
class ConfigError(MembershipError):
    """Invalid or missing configuration."""


# --- Card updates ---
class CardUpdateError(MembershipError):
    """A card reader reported something the aggregate cannot act on."""

    def __init__(self, message: str, *, customer_id: str, card_number: str, request_type: str):
        self.customer_id = customer_id
        self.card_number = card_number
        self.request_type = request_type
        super().__init__(message)


class UnrecognizedRequestType(CardUpdateError):
    """Card update request type is neither activation nor deactivation."""

    def __init__(self, *, customer_id: str, card_number: str, request_type: str):
        super().__init__(
            f"Card update request type wasn't one of the expected values: {request_type}",
            customer_id=customer_id,
            card_number=card_number,
            request_type=request_type,
        )


class CardUpdateFailed(CardUpdateError):
    """Card reader reported a failed activation or deactivation."""

    def __init__(self, *, customer_id: str, card_number: str, request_type: str):
        super().__init__(
            f"Card update (Customer: {customer_id}, Card: {card_number}, "
            f"Type: {request_type}) not successful",
            customer_id=customer_id,
            card_number=card_number,
            request_type=request_type,
        )


# --- Event log ---
class EventLogError(MembershipError):
    """Event log read or write failure."""


class ConcurrencyError(EventLogError):
    """Another writer appended to the aggregate since it was loaded."""

    def __init__(self, aggregate_id: str, expected: int, actual: int):
        self.aggregate_id = aggregate_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Concurrency conflict for aggregate {aggregate_id!r}: "
            f"expected version {expected}, found {actual}"
        )


# --- Domain ---
class UnknownEventError(MembershipError):
    """Event type is not part of the domain event catalog."""


# --- Command routing ---
class UnknownTopicError(MembershipError):
    """Webhook topic has no matching aggregate command."""


class MissingCustomerError(MembershipError):
    """Command payload names no customer to route it to."""
