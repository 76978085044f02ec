"""Application services for the custody bounded context.

Application services orchestrate domain aggregates, repositories, and
other infrastructure to fulfill use cases. They are the "front door" to
the custody context.
"""

from custody.application.services.assignment_service import AssignmentService
from custody.application.services.delegation_service import DelegationService
from custody.application.services.key_registry_service import KeyRegistryService
from custody.application.services.overdue_service import OverdueService
from custody.application.services.transaction_history_service import (
    TransactionHistoryService,
)

__all__ = [
    "AssignmentService",
    "DelegationService",
    "KeyRegistryService",
    "OverdueService",
    "TransactionHistoryService",
]
