"""Ports (interfaces) for the custody bounded context.

Ports define the contracts for repositories, the transaction log and
reminder notification without specifying implementation details.
"""

from custody.ports.exceptions import (
    ConflictError,
    CustodyError,
    ExpiredProofError,
    InvalidStateError,
    MalformedProofError,
    NotFoundError,
    NotificationDeliveryError,
    PermissionDeniedError,
    ProofError,
    ProofMismatchError,
    StorageError,
    ValidationError,
)

__all__ = [
    "ConflictError",
    "CustodyError",
    "ExpiredProofError",
    "InvalidStateError",
    "MalformedProofError",
    "NotFoundError",
    "NotificationDeliveryError",
    "PermissionDeniedError",
    "ProofError",
    "ProofMismatchError",
    "StorageError",
    "ValidationError",
]
