"""Enumerations and status constants used across the membership core."""

from enum import Enum


class CardUpdateType(str, Enum):
    ACTIVATION = "activation"
    DEACTIVATION = "deactivation"


class CardUpdateOutcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


# Subscription status is an open set of vendor-reported strings; only the
# values below carry behaviour today.
SUBSCRIPTION_ON_HOLD = "on-hold"
SUBSCRIPTION_ACTIVE = "active"


class WebhookTopic(str, Enum):
    CUSTOMER_CREATED = "customer.created"
    CUSTOMER_UPDATED = "customer.updated"
    SUBSCRIPTION_CREATED = "subscription.created"
    SUBSCRIPTION_UPDATED = "subscription.updated"
