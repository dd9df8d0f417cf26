"""Event-sourced membership state for card access and subscriptions."""

__version__ = "0.1.0"
