"""Domain-Oriented Observability for the custody application layer.

Probes for application service operations following Domain-Oriented Observability patterns.
"""

from custody.application.observability.assignment_service_probe import (
    AssignmentServiceProbe,
    DefaultAssignmentServiceProbe,
)
from custody.application.observability.delegation_service_probe import (
    DefaultDelegationServiceProbe,
    DelegationServiceProbe,
)
from custody.application.observability.key_registry_service_probe import (
    DefaultKeyRegistryServiceProbe,
    KeyRegistryServiceProbe,
)
from custody.application.observability.overdue_service_probe import (
    DefaultOverdueServiceProbe,
    OverdueServiceProbe,
)

__all__ = [
    "AssignmentServiceProbe",
    "DefaultAssignmentServiceProbe",
    "DelegationServiceProbe",
    "DefaultDelegationServiceProbe",
    "KeyRegistryServiceProbe",
    "DefaultKeyRegistryServiceProbe",
    "OverdueServiceProbe",
    "DefaultOverdueServiceProbe",
]
