"""FastAPI dependency providers for the custody bounded context.

Repositories and services built here share the request's session through
FastAPI's per-request dependency cache, so a service's unit of work covers
every repository write it makes.
"""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from custody.application.commands import CustodyCommandBus
from custody.application.handover import HandoverVerifier
from custody.application.observability import (
    AssignmentServiceProbe,
    DefaultAssignmentServiceProbe,
    DefaultDelegationServiceProbe,
    DefaultKeyRegistryServiceProbe,
    DefaultOverdueServiceProbe,
    DelegationServiceProbe,
    KeyRegistryServiceProbe,
    OverdueServiceProbe,
)
from custody.application.services import (
    AssignmentService,
    DelegationService,
    KeyRegistryService,
    OverdueService,
    TransactionHistoryService,
)
from custody.domain.value_objects import PrincipalId
from custody.infrastructure.assignment_repository import AssignmentRepository
from custody.infrastructure.delegation_repository import DelegationRepository
from custody.infrastructure.key_repository import KeyRepository
from custody.infrastructure.notifications import LoggingReminderNotifier
from custody.infrastructure.transaction_log_repository import TransactionLogRepository
from custody.ports.notifications import IReminderNotifier
from infrastructure.database.dependencies import get_session
from infrastructure.settings import CustodySettings, get_custody_settings


def get_actor_id(
    x_actor_id: Annotated[str | None, Header(alias="X-Actor-Id")] = None,
) -> PrincipalId:
    """Resolve the acting principal from the X-Actor-Id header.

    Identity is established upstream (gateway or SSO proxy); the custody
    API only needs to know who is acting.

    Raises:
        HTTPException 401: If the header is missing or blank
    """
    try:
        return PrincipalId.from_string(x_actor_id or "")
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-Actor-Id header is required",
        )


def get_transaction_log(
    session: Annotated[AsyncSession, Depends(get_session)],
) -> TransactionLogRepository:
    """Get TransactionLogRepository instance.

    Args:
        session: Async database session (shared with the calling repositories)

    Returns:
        TransactionLogRepository instance
    """
    return TransactionLogRepository(session=session)


def get_key_repository(
    session: Annotated[AsyncSession, Depends(get_session)],
    log: Annotated[TransactionLogRepository, Depends(get_transaction_log)],
) -> KeyRepository:
    """Get KeyRepository instance."""
    return KeyRepository(session=session, transaction_log=log)


def get_assignment_repository(
    session: Annotated[AsyncSession, Depends(get_session)],
    log: Annotated[TransactionLogRepository, Depends(get_transaction_log)],
) -> AssignmentRepository:
    """Get AssignmentRepository instance."""
    return AssignmentRepository(session=session, transaction_log=log)


def get_delegation_repository(
    session: Annotated[AsyncSession, Depends(get_session)],
    log: Annotated[TransactionLogRepository, Depends(get_transaction_log)],
) -> DelegationRepository:
    """Get DelegationRepository instance."""
    return DelegationRepository(session=session, transaction_log=log)


def get_reminder_notifier() -> IReminderNotifier:
    """Get the reminder notifier.

    Returns:
        LoggingReminderNotifier; deployments override this dependency to
        plug in a delivery transport
    """
    return LoggingReminderNotifier()


def get_handover_verifier(
    assignments: Annotated[AssignmentRepository, Depends(get_assignment_repository)],
    delegations: Annotated[DelegationRepository, Depends(get_delegation_repository)],
    settings: Annotated[CustodySettings, Depends(get_custody_settings)],
) -> HandoverVerifier:
    """Get HandoverVerifier configured with the proof window from settings."""
    return HandoverVerifier(
        assignment_repository=assignments,
        delegation_repository=delegations,
        proof_window=settings.proof_window,
    )


def get_key_registry_service_probe() -> KeyRegistryServiceProbe:
    """Get KeyRegistryServiceProbe instance."""
    return DefaultKeyRegistryServiceProbe()


def get_assignment_service_probe() -> AssignmentServiceProbe:
    """Get AssignmentServiceProbe instance."""
    return DefaultAssignmentServiceProbe()


def get_delegation_service_probe() -> DelegationServiceProbe:
    """Get DelegationServiceProbe instance."""
    return DefaultDelegationServiceProbe()


def get_overdue_service_probe() -> OverdueServiceProbe:
    """Get OverdueServiceProbe instance."""
    return DefaultOverdueServiceProbe()


def get_key_registry_service(
    session: Annotated[AsyncSession, Depends(get_session)],
    keys: Annotated[KeyRepository, Depends(get_key_repository)],
    assignments: Annotated[AssignmentRepository, Depends(get_assignment_repository)],
    probe: Annotated[KeyRegistryServiceProbe, Depends(get_key_registry_service_probe)],
) -> KeyRegistryService:
    """Get KeyRegistryService instance."""
    return KeyRegistryService(
        session=session,
        key_repository=keys,
        assignment_repository=assignments,
        probe=probe,
    )


def get_assignment_service(
    session: Annotated[AsyncSession, Depends(get_session)],
    keys: Annotated[KeyRepository, Depends(get_key_repository)],
    assignments: Annotated[AssignmentRepository, Depends(get_assignment_repository)],
    delegations: Annotated[DelegationRepository, Depends(get_delegation_repository)],
    verifier: Annotated[HandoverVerifier, Depends(get_handover_verifier)],
    probe: Annotated[AssignmentServiceProbe, Depends(get_assignment_service_probe)],
) -> AssignmentService:
    """Get AssignmentService instance.

    Args:
        session: Database session for transaction management
        keys: Key repository (shares session via FastAPI dependency caching)
        assignments: Assignment repository
        delegations: Delegation repository, for cascades on close
        verifier: Handover proof verifier
        probe: Assignment service probe for observability

    Returns:
        AssignmentService instance
    """
    return AssignmentService(
        session=session,
        key_repository=keys,
        assignment_repository=assignments,
        delegation_repository=delegations,
        verifier=verifier,
        probe=probe,
    )


def get_delegation_service(
    session: Annotated[AsyncSession, Depends(get_session)],
    keys: Annotated[KeyRepository, Depends(get_key_repository)],
    assignments: Annotated[AssignmentRepository, Depends(get_assignment_repository)],
    delegations: Annotated[DelegationRepository, Depends(get_delegation_repository)],
    probe: Annotated[DelegationServiceProbe, Depends(get_delegation_service_probe)],
) -> DelegationService:
    """Get DelegationService instance."""
    return DelegationService(
        session=session,
        key_repository=keys,
        assignment_repository=assignments,
        delegation_repository=delegations,
        probe=probe,
    )


def get_overdue_service(
    session: Annotated[AsyncSession, Depends(get_session)],
    keys: Annotated[KeyRepository, Depends(get_key_repository)],
    assignments: Annotated[AssignmentRepository, Depends(get_assignment_repository)],
    delegations: Annotated[DelegationRepository, Depends(get_delegation_repository)],
    log: Annotated[TransactionLogRepository, Depends(get_transaction_log)],
    notifier: Annotated[IReminderNotifier, Depends(get_reminder_notifier)],
    probe: Annotated[OverdueServiceProbe, Depends(get_overdue_service_probe)],
    settings: Annotated[CustodySettings, Depends(get_custody_settings)],
) -> OverdueService:
    """Get OverdueService instance with retry and batch limits from settings."""
    return OverdueService(
        session=session,
        key_repository=keys,
        assignment_repository=assignments,
        delegation_repository=delegations,
        transaction_log=log,
        notifier=notifier,
        probe=probe,
        max_reminder_retries=settings.max_reminder_retries,
        batch_size=settings.sweep_batch_size,
    )


def get_transaction_history_service(
    session: Annotated[AsyncSession, Depends(get_session)],
    log: Annotated[TransactionLogRepository, Depends(get_transaction_log)],
) -> TransactionHistoryService:
    """Get TransactionHistoryService instance."""
    return TransactionHistoryService(session=session, transaction_log=log)


def get_command_bus(
    key_registry: Annotated[KeyRegistryService, Depends(get_key_registry_service)],
    assignments: Annotated[AssignmentService, Depends(get_assignment_service)],
    delegations: Annotated[DelegationService, Depends(get_delegation_service)],
    overdue: Annotated[OverdueService, Depends(get_overdue_service)],
) -> CustodyCommandBus:
    """Get the custody command bus wired to this request's services."""
    return CustodyCommandBus(
        key_registry=key_registry,
        assignments=assignments,
        delegations=delegations,
        overdue=overdue,
    )


def build_overdue_service(session: AsyncSession) -> OverdueService:
    """Build an OverdueService outside a request, for the sweep worker.

    Args:
        session: A session the caller opened from the sessionmaker

    Returns:
        OverdueService wired to fresh repositories on that session
    """
    settings = get_custody_settings()
    log = TransactionLogRepository(session=session)
    return OverdueService(
        session=session,
        key_repository=KeyRepository(session=session, transaction_log=log),
        assignment_repository=AssignmentRepository(session=session, transaction_log=log),
        delegation_repository=DelegationRepository(session=session, transaction_log=log),
        transaction_log=log,
        notifier=LoggingReminderNotifier(),
        max_reminder_retries=settings.max_reminder_retries,
        batch_size=settings.sweep_batch_size,
    )
