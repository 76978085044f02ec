"""Key domain events for the custody context.

Domain events related to administrative changes of a key.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class KeyStatusChanged:
    """Event raised when an administrator overrides a key's status.

    Attributes:
        key_id: The ULID of the key
        actor_id: The administrator who changed the status
        previous_status: Status before the change
        new_status: Status after the change
        reason: Optional free-text justification
        occurred_at: When the event occurred (UTC)
    """

    key_id: str
    actor_id: str
    previous_status: str
    new_status: str
    reason: str | None
    occurred_at: datetime


@dataclass(frozen=True)
class KeyRetired:
    """Event raised when a key is soft-retired.

    Retired keys keep their assignment history but accept no new requests.

    Attributes:
        key_id: The ULID of the key
        actor_id: The administrator who retired the key
        reason: Optional free-text justification
        occurred_at: When the event occurred (UTC)
    """

    key_id: str
    actor_id: str
    reason: str | None
    occurred_at: datetime
