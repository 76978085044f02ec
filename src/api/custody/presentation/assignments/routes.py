"""HTTP routes for the assignment ledger and security desk handovers."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from custody.application.commands import (
    ApproveAssignment,
    CancelAssignment,
    Collect,
    CustodyCommandBus,
    DepositReturn,
    ExtendDeadline,
    ForceReturn,
    MintProof,
    RejectAssignment,
    RequestAssignment,
)
from custody.application.services import AssignmentService
from custody.dependencies import get_actor_id, get_assignment_service, get_command_bus
from custody.domain.value_objects import (
    AssignmentId,
    AssignmentStatus,
    KeyId,
    PrincipalId,
)
from custody.ports.exceptions import CustodyError
from custody.presentation.assignments.models import (
    AssignmentResponse,
    CloseAssignmentRequest,
    ExtendRequest,
    HandoverRequest,
    MintProofRequest,
    ProofResponse,
    RejectAssignmentRequest,
    RequestAssignmentRequest,
)
from custody.presentation.errors import parse_id, to_http_exception
from infrastructure.settings import CustodySettings, get_custody_settings

router = APIRouter(
    prefix="/assignments",
    tags=["assignments"],
)


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=AssignmentResponse,
    summary="Request key",
    description="Create a pending assignment for the caller. At most one "
    "pending, active or overdue assignment may exist per key.",
    responses={
        201: {"description": "Request recorded"},
        400: {"description": "Invalid key ID"},
        404: {"description": "Key not found"},
        409: {"description": "Key already has an outstanding assignment or is unavailable"},
        422: {"description": "Invalid duration"},
    },
)
async def request_assignment(
    request: RequestAssignmentRequest,
    actor_id: Annotated[PrincipalId, Depends(get_actor_id)],
    bus: Annotated[CustodyCommandBus, Depends(get_command_bus)],
    settings: Annotated[CustodySettings, Depends(get_custody_settings)],
) -> AssignmentResponse:
    """Request a key on behalf of the caller."""
    key_id = parse_id(KeyId.from_string, request.key_id, "key")
    try:
        assignment = await bus.dispatch(
            RequestAssignment(
                key_id=key_id,
                holder_id=actor_id,
                duration_hours=request.duration_hours or settings.default_duration_hours,
                reason=request.reason,
                access_type=request.to_domain_access_type(),
            )
        )
        return AssignmentResponse.from_domain(assignment)

    except CustodyError as e:
        raise to_http_exception(e) from e
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to request key",
        )


@router.get("", response_model=list[AssignmentResponse], summary="List assignments")
async def list_assignments(
    actor_id: Annotated[PrincipalId, Depends(get_actor_id)],
    service: Annotated[AssignmentService, Depends(get_assignment_service)],
    holder_id: Annotated[str | None, Query()] = None,
    status_filter: Annotated[list[AssignmentStatus] | None, Query(alias="status")] = None,
) -> list[AssignmentResponse]:
    """List a holder's assignments; defaults to the caller's own."""
    holder = (
        parse_id(PrincipalId.from_string, holder_id, "holder") if holder_id else actor_id
    )
    try:
        assignments = await service.list_for_holder(
            holder, statuses=set(status_filter) if status_filter else None
        )
        return [AssignmentResponse.from_domain(a) for a in assignments]

    except CustodyError as e:
        raise to_http_exception(e) from e
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list assignments",
        )


@router.get("/{assignment_id}", response_model=AssignmentResponse, summary="Get assignment")
async def get_assignment(
    assignment_id: str,
    service: Annotated[AssignmentService, Depends(get_assignment_service)],
) -> AssignmentResponse:
    """Get an assignment, reclassified against the current time."""
    assignment_id_obj = parse_id(AssignmentId.from_string, assignment_id, "assignment")
    try:
        return AssignmentResponse.from_domain(
            await service.get_assignment(assignment_id_obj)
        )

    except CustodyError as e:
        raise to_http_exception(e) from e
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve assignment",
        )


@router.post(
    "/{assignment_id}/approve",
    response_model=AssignmentResponse,
    summary="Approve request",
)
async def approve_assignment(
    assignment_id: str,
    actor_id: Annotated[PrincipalId, Depends(get_actor_id)],
    bus: Annotated[CustodyCommandBus, Depends(get_command_bus)],
) -> AssignmentResponse:
    """Approve a pending request for an approval-gated key."""
    assignment_id_obj = parse_id(AssignmentId.from_string, assignment_id, "assignment")
    try:
        assignment = await bus.dispatch(
            ApproveAssignment(assignment_id=assignment_id_obj, approver_id=actor_id)
        )
        return AssignmentResponse.from_domain(assignment)

    except CustodyError as e:
        raise to_http_exception(e) from e
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to approve request",
        )


@router.post(
    "/{assignment_id}/reject",
    response_model=AssignmentResponse,
    summary="Reject request",
)
async def reject_assignment(
    assignment_id: str,
    request: RejectAssignmentRequest,
    actor_id: Annotated[PrincipalId, Depends(get_actor_id)],
    bus: Annotated[CustodyCommandBus, Depends(get_command_bus)],
) -> AssignmentResponse:
    """Reject a pending request."""
    assignment_id_obj = parse_id(AssignmentId.from_string, assignment_id, "assignment")
    try:
        assignment = await bus.dispatch(
            RejectAssignment(
                assignment_id=assignment_id_obj,
                approver_id=actor_id,
                reason=request.reason,
            )
        )
        return AssignmentResponse.from_domain(assignment)

    except CustodyError as e:
        raise to_http_exception(e) from e
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to reject request",
        )


@router.post(
    "/{assignment_id}/proofs",
    status_code=status.HTTP_201_CREATED,
    response_model=ProofResponse,
    summary="Mint handover proof",
    description="Issue a short-lived proof for the QR code shown at the "
    "security desk. The presenter defaults to the caller.",
    responses={
        201: {"description": "Proof issued"},
        403: {"description": "Presenter may not perform this handover"},
        404: {"description": "Assignment not found"},
        409: {"description": "Assignment is not ready for this handover"},
    },
)
async def mint_proof(
    assignment_id: str,
    request: MintProofRequest,
    actor_id: Annotated[PrincipalId, Depends(get_actor_id)],
    bus: Annotated[CustodyCommandBus, Depends(get_command_bus)],
) -> ProofResponse:
    """Mint a handover proof for the holder or an active delegate."""
    assignment_id_obj = parse_id(AssignmentId.from_string, assignment_id, "assignment")
    presenter = (
        parse_id(PrincipalId.from_string, request.presenter_id, "presenter")
        if request.presenter_id
        else actor_id
    )
    try:
        token = await bus.dispatch(
            MintProof(
                assignment_id=assignment_id_obj,
                action=request.to_domain_action(),
                presenter_id=presenter,
            )
        )
        return ProofResponse.from_domain(token)

    except CustodyError as e:
        raise to_http_exception(e) from e
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to mint proof",
        )


@router.post(
    "/{assignment_id}/collect",
    response_model=AssignmentResponse,
    summary="Collect key",
    description="Hand the key out against a scanned collection proof. "
    "The caller is recorded as the verifier.",
    responses={
        200: {"description": "Key handed out"},
        400: {"description": "Proof could not be parsed"},
        403: {"description": "Delegate lacks the collect permission"},
        404: {"description": "Assignment not found"},
        409: {"description": "Assignment is not ready for collection"},
        410: {"description": "Proof has expired"},
        422: {"description": "Proof was minted for another key, holder or action"},
    },
)
async def collect(
    assignment_id: str,
    request: HandoverRequest,
    actor_id: Annotated[PrincipalId, Depends(get_actor_id)],
    bus: Annotated[CustodyCommandBus, Depends(get_command_bus)],
) -> AssignmentResponse:
    """Verify a collection proof and hand the key out."""
    assignment_id_obj = parse_id(AssignmentId.from_string, assignment_id, "assignment")
    try:
        assignment = await bus.dispatch(
            Collect(
                assignment_id=assignment_id_obj,
                proof=request.proof,
                verifier_id=actor_id,
            )
        )
        return AssignmentResponse.from_domain(assignment)

    except CustodyError as e:
        raise to_http_exception(e) from e
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to collect key",
        )


@router.post(
    "/{assignment_id}/return",
    response_model=AssignmentResponse,
    summary="Return key",
    description="Take the key back against a scanned deposit proof.",
)
async def deposit_return(
    assignment_id: str,
    request: HandoverRequest,
    actor_id: Annotated[PrincipalId, Depends(get_actor_id)],
    bus: Annotated[CustodyCommandBus, Depends(get_command_bus)],
) -> AssignmentResponse:
    """Verify a deposit proof and close the hold."""
    assignment_id_obj = parse_id(AssignmentId.from_string, assignment_id, "assignment")
    try:
        assignment = await bus.dispatch(
            DepositReturn(
                assignment_id=assignment_id_obj,
                proof=request.proof,
                verifier_id=actor_id,
                reason=request.reason,
            )
        )
        return AssignmentResponse.from_domain(assignment)

    except CustodyError as e:
        raise to_http_exception(e) from e
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to return key",
        )


@router.post(
    "/{assignment_id}/extend",
    response_model=AssignmentResponse,
    summary="Extend deadline",
)
async def extend_deadline(
    assignment_id: str,
    request: ExtendRequest,
    actor_id: Annotated[PrincipalId, Depends(get_actor_id)],
    bus: Annotated[CustodyCommandBus, Depends(get_command_bus)],
) -> AssignmentResponse:
    """Push a hold's due date back; an overdue hold may become active again."""
    assignment_id_obj = parse_id(AssignmentId.from_string, assignment_id, "assignment")
    try:
        assignment = await bus.dispatch(
            ExtendDeadline(
                assignment_id=assignment_id_obj, extra_hours=request.extra_hours
            )
        )
        return AssignmentResponse.from_domain(assignment)

    except CustodyError as e:
        raise to_http_exception(e) from e
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to extend deadline",
        )


@router.post(
    "/{assignment_id}/force-return",
    response_model=AssignmentResponse,
    summary="Force return",
)
async def force_return(
    assignment_id: str,
    request: CloseAssignmentRequest,
    actor_id: Annotated[PrincipalId, Depends(get_actor_id)],
    bus: Annotated[CustodyCommandBus, Depends(get_command_bus)],
) -> AssignmentResponse:
    """Close a hold administratively without a proof."""
    assignment_id_obj = parse_id(AssignmentId.from_string, assignment_id, "assignment")
    try:
        assignment = await bus.dispatch(
            ForceReturn(
                assignment_id=assignment_id_obj,
                actor_id=actor_id,
                reason=request.reason,
            )
        )
        return AssignmentResponse.from_domain(assignment)

    except CustodyError as e:
        raise to_http_exception(e) from e
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to force return",
        )


@router.post(
    "/{assignment_id}/cancel",
    response_model=AssignmentResponse,
    summary="Cancel assignment",
)
async def cancel_assignment(
    assignment_id: str,
    request: CloseAssignmentRequest,
    actor_id: Annotated[PrincipalId, Depends(get_actor_id)],
    bus: Annotated[CustodyCommandBus, Depends(get_command_bus)],
) -> AssignmentResponse:
    """Cancel a pending request or revoke a hold."""
    assignment_id_obj = parse_id(AssignmentId.from_string, assignment_id, "assignment")
    try:
        assignment = await bus.dispatch(
            CancelAssignment(
                assignment_id=assignment_id_obj,
                actor_id=actor_id,
                reason=request.reason,
            )
        )
        return AssignmentResponse.from_domain(assignment)

    except CustodyError as e:
        raise to_http_exception(e) from e
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to cancel assignment",
        )
