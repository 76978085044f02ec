"""SQLAlchemy ORM models for the custody bounded context.

These models map to database tables and are used by repository implementations.
"""

from custody.infrastructure.models.assignment import KeyAssignmentModel
from custody.infrastructure.models.delegation import KeyDelegationModel
from custody.infrastructure.models.key import KeyModel
from custody.infrastructure.models.transaction import KeyTransactionModel

__all__ = [
    "KeyAssignmentModel",
    "KeyDelegationModel",
    "KeyModel",
    "KeyTransactionModel",
]
