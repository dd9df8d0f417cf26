"""Domain layer: canonical events and the membership aggregate.

This package defines the primitives every other layer depends on but never
modifies.  Events are immutable; aggregate state only changes by applying
them.
"""
