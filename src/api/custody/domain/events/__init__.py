"""Domain events for the custody bounded context.

Domain events capture facts about things that have happened to keys,
assignments and delegations. Repositories translate every collected event
into exactly one transaction log record within the same database
transaction as the aggregate change.
"""

from custody.domain.events.assignment import (
    AssignmentApproved,
    AssignmentCancelled,
    AssignmentOverdue,
    AssignmentRejected,
    AssignmentRequested,
    DeadlineExtended,
    KeyCollected,
    KeyForceReturned,
    KeyReturned,
)
from custody.domain.events.delegation import (
    DelegationCancelled,
    DelegationCreated,
    DelegationExpired,
    DelegationExtended,
    DelegationRevoked,
)
from custody.domain.events.key import KeyRetired, KeyStatusChanged

# Type alias for all domain events in the custody context
DomainEvent = (
    KeyStatusChanged
    | KeyRetired
    | AssignmentRequested
    | AssignmentApproved
    | AssignmentRejected
    | KeyCollected
    | KeyReturned
    | KeyForceReturned
    | DeadlineExtended
    | AssignmentCancelled
    | AssignmentOverdue
    | DelegationCreated
    | DelegationRevoked
    | DelegationCancelled
    | DelegationExpired
    | DelegationExtended
)

__all__ = [
    # Key events
    "KeyStatusChanged",
    "KeyRetired",
    # Assignment events
    "AssignmentRequested",
    "AssignmentApproved",
    "AssignmentRejected",
    "KeyCollected",
    "KeyReturned",
    "KeyForceReturned",
    "DeadlineExtended",
    "AssignmentCancelled",
    "AssignmentOverdue",
    # Delegation events
    "DelegationCreated",
    "DelegationRevoked",
    "DelegationCancelled",
    "DelegationExpired",
    "DelegationExtended",
    # Type alias
    "DomainEvent",
]
