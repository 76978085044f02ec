"""HTTP routes for key sharing between peers."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from custody.application.commands import (
    CancelDelegation,
    CustodyCommandBus,
    Delegate,
    ExtendDelegation,
    RevokeDelegation,
)
from custody.application.services import DelegationService
from custody.dependencies import get_actor_id, get_command_bus, get_delegation_service
from custody.domain.value_objects import DelegationId, KeyId, PrincipalId
from custody.ports.exceptions import CustodyError
from custody.ports.repositories import DelegationDirection
from custody.presentation.delegations.models import (
    CloseDelegationRequest,
    DelegateRequest,
    DelegationResponse,
    ExtendDelegationRequest,
)
from custody.presentation.errors import parse_id, to_http_exception

router = APIRouter(
    prefix="/delegations",
    tags=["delegations"],
)


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=DelegationResponse,
    summary="Share key",
    description="Share a key the caller actively holds (or may re-share) "
    "with a peer for a limited time.",
    responses={
        201: {"description": "Grant created"},
        403: {"description": "Caller's own grant forbids re-sharing"},
        409: {"description": "No active hold, or already shared with this delegate"},
        422: {"description": "Invalid duration or self-delegation"},
    },
)
async def delegate(
    request: DelegateRequest,
    actor_id: Annotated[PrincipalId, Depends(get_actor_id)],
    bus: Annotated[CustodyCommandBus, Depends(get_command_bus)],
) -> DelegationResponse:
    """Share a key with a peer."""
    key_id = parse_id(KeyId.from_string, request.key_id, "key")
    delegate_id = parse_id(PrincipalId.from_string, request.delegate_id, "delegate")
    try:
        delegation = await bus.dispatch(
            Delegate(
                key_id=key_id,
                delegator_id=actor_id,
                delegate_id=delegate_id,
                duration_hours=request.duration_hours,
                message=request.message,
                permissions=request.to_domain_permissions(),
            )
        )
        return DelegationResponse.from_domain(delegation)

    except CustodyError as e:
        raise to_http_exception(e) from e
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to share key",
        )


@router.get("", response_model=list[DelegationResponse], summary="List delegations")
async def list_delegations(
    actor_id: Annotated[PrincipalId, Depends(get_actor_id)],
    service: Annotated[DelegationService, Depends(get_delegation_service)],
    direction: Annotated[DelegationDirection, Query()] = DelegationDirection.RECEIVED,
    active_only: Annotated[bool, Query()] = False,
) -> list[DelegationResponse]:
    """List grants the caller gave or received, newest first."""
    try:
        delegations = await service.list_delegations(
            actor_id, direction, active_only=active_only
        )
        return [DelegationResponse.from_domain(d) for d in delegations]

    except CustodyError as e:
        raise to_http_exception(e) from e
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list delegations",
        )


@router.get("/{delegation_id}", response_model=DelegationResponse, summary="Get delegation")
async def get_delegation(
    delegation_id: str,
    service: Annotated[DelegationService, Depends(get_delegation_service)],
) -> DelegationResponse:
    """Get a grant, reclassified against the current time."""
    delegation_id_obj = parse_id(DelegationId.from_string, delegation_id, "delegation")
    try:
        return DelegationResponse.from_domain(
            await service.get_delegation(delegation_id_obj)
        )

    except CustodyError as e:
        raise to_http_exception(e) from e
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve delegation",
        )


@router.post(
    "/{delegation_id}/revoke",
    response_model=DelegationResponse,
    summary="Revoke delegation",
)
async def revoke_delegation(
    delegation_id: str,
    request: CloseDelegationRequest,
    actor_id: Annotated[PrincipalId, Depends(get_actor_id)],
    bus: Annotated[CustodyCommandBus, Depends(get_command_bus)],
) -> DelegationResponse:
    """Withdraw a grant (delegator only)."""
    delegation_id_obj = parse_id(DelegationId.from_string, delegation_id, "delegation")
    try:
        delegation = await bus.dispatch(
            RevokeDelegation(
                delegation_id=delegation_id_obj,
                actor_id=actor_id,
                reason=request.reason,
            )
        )
        return DelegationResponse.from_domain(delegation)

    except CustodyError as e:
        raise to_http_exception(e) from e
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to revoke delegation",
        )


@router.post(
    "/{delegation_id}/cancel",
    response_model=DelegationResponse,
    summary="Cancel delegation",
)
async def cancel_delegation(
    delegation_id: str,
    request: CloseDelegationRequest,
    actor_id: Annotated[PrincipalId, Depends(get_actor_id)],
    bus: Annotated[CustodyCommandBus, Depends(get_command_bus)],
) -> DelegationResponse:
    """Cancel a grant (either party)."""
    delegation_id_obj = parse_id(DelegationId.from_string, delegation_id, "delegation")
    try:
        delegation = await bus.dispatch(
            CancelDelegation(
                delegation_id=delegation_id_obj,
                actor_id=actor_id,
                reason=request.reason,
            )
        )
        return DelegationResponse.from_domain(delegation)

    except CustodyError as e:
        raise to_http_exception(e) from e
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to cancel delegation",
        )


@router.post(
    "/{delegation_id}/extend",
    response_model=DelegationResponse,
    summary="Extend delegation",
)
async def extend_delegation(
    delegation_id: str,
    request: ExtendDelegationRequest,
    actor_id: Annotated[PrincipalId, Depends(get_actor_id)],
    bus: Annotated[CustodyCommandBus, Depends(get_command_bus)],
) -> DelegationResponse:
    """Push a grant's expiry back (delegator only)."""
    delegation_id_obj = parse_id(DelegationId.from_string, delegation_id, "delegation")
    try:
        delegation = await bus.dispatch(
            ExtendDelegation(
                delegation_id=delegation_id_obj,
                extra_hours=request.extra_hours,
                actor_id=actor_id,
            )
        )
        return DelegationResponse.from_domain(delegation)

    except CustodyError as e:
        raise to_http_exception(e) from e
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to extend delegation",
        )
