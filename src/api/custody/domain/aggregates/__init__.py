"""Aggregates for the custody bounded context."""

from custody.domain.aggregates.assignment import Assignment
from custody.domain.aggregates.delegation import Delegation
from custody.domain.aggregates.key import Key, recompute_key_status
from custody.domain.aggregates.transaction import DEFAULT_DETAILS, KeyTransaction

__all__ = [
    "Assignment",
    "DEFAULT_DETAILS",
    "Delegation",
    "Key",
    "KeyTransaction",
    "recompute_key_status",
]
