"""Domain-Oriented Observability for the custody infrastructure layer."""

from custody.infrastructure.observability.repository_probe import (
    AssignmentRepositoryProbe,
    DefaultAssignmentRepositoryProbe,
    DefaultDelegationRepositoryProbe,
    DefaultKeyRepositoryProbe,
    DefaultTransactionLogProbe,
    DelegationRepositoryProbe,
    KeyRepositoryProbe,
    TransactionLogProbe,
)
from custody.infrastructure.observability.sweep_worker_probe import (
    DefaultSweepWorkerProbe,
    SweepWorkerProbe,
)

__all__ = [
    "AssignmentRepositoryProbe",
    "DefaultAssignmentRepositoryProbe",
    "DelegationRepositoryProbe",
    "DefaultDelegationRepositoryProbe",
    "KeyRepositoryProbe",
    "DefaultKeyRepositoryProbe",
    "TransactionLogProbe",
    "DefaultTransactionLogProbe",
    "SweepWorkerProbe",
    "DefaultSweepWorkerProbe",
]
