"""HTTP routes for the key registry."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from custody.application.commands import (
    CustodyCommandBus,
    RegisterKey,
    RetireKey,
    SetKeyStatus,
)
from custody.application.services import (
    AssignmentService,
    KeyRegistryService,
    TransactionHistoryService,
)
from custody.dependencies import (
    get_actor_id,
    get_assignment_service,
    get_command_bus,
    get_key_registry_service,
    get_transaction_history_service,
)
from custody.domain.value_objects import KeyId, PrincipalId
from custody.ports.exceptions import CustodyError
from custody.presentation.assignments.models import AssignmentResponse
from custody.presentation.errors import parse_id, to_http_exception
from custody.presentation.history.models import TransactionResponse
from custody.presentation.keys.models import (
    AvailabilityResponse,
    KeyResponse,
    RegisterKeyRequest,
    RetireKeyRequest,
    SetKeyStatusRequest,
)

router = APIRouter(
    prefix="/keys",
    tags=["keys"],
)


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=KeyResponse,
    summary="Register key",
    responses={
        201: {"description": "Key registered"},
        401: {"description": "X-Actor-Id header missing"},
        422: {"description": "Invalid key definition"},
        500: {"description": "Internal server error"},
    },
)
async def register_key(
    request: RegisterKeyRequest,
    actor_id: Annotated[PrincipalId, Depends(get_actor_id)],
    bus: Annotated[CustodyCommandBus, Depends(get_command_bus)],
) -> KeyResponse:
    """Register a new key in the available state."""
    try:
        key = await bus.dispatch(
            RegisterKey(
                name=request.name,
                lab_name=request.lab_name,
                lab_number=request.lab_number,
                department=request.department,
                location=request.location,
                description=request.description,
                requires_approval=request.requires_approval,
                max_assignment_duration_hours=request.max_assignment_duration_hours,
            )
        )
        return KeyResponse.from_domain(key)

    except CustodyError as e:
        raise to_http_exception(e) from e
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to register key",
        )


@router.get("", response_model=list[KeyResponse], summary="List keys")
async def list_keys(
    service: Annotated[KeyRegistryService, Depends(get_key_registry_service)],
    department: Annotated[str | None, Query()] = None,
    include_retired: Annotated[bool, Query()] = False,
) -> list[KeyResponse]:
    """List keys, optionally filtered by department."""
    try:
        keys = await service.list_keys(
            department=department, include_retired=include_retired
        )
        return [KeyResponse.from_domain(key) for key in keys]

    except CustodyError as e:
        raise to_http_exception(e) from e
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list keys",
        )


@router.get("/{key_id}", response_model=KeyResponse, summary="Get key")
async def get_key(
    key_id: str,
    service: Annotated[KeyRegistryService, Depends(get_key_registry_service)],
) -> KeyResponse:
    """Get a key by ID.

    Raises:
        HTTPException: 400 if the key ID is invalid
        HTTPException: 404 if the key does not exist
    """
    key_id_obj = parse_id(KeyId.from_string, key_id, "key")
    try:
        return KeyResponse.from_domain(await service.get_key(key_id_obj))

    except CustodyError as e:
        raise to_http_exception(e) from e
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve key",
        )


@router.get(
    "/{key_id}/availability",
    response_model=AvailabilityResponse,
    summary="Get key availability",
)
async def get_availability(
    key_id: str,
    service: Annotated[KeyRegistryService, Depends(get_key_registry_service)],
) -> AvailabilityResponse:
    """Report whether a key is available, held, in maintenance or lost."""
    key_id_obj = parse_id(KeyId.from_string, key_id, "key")
    try:
        availability = await service.availability(key_id_obj)
        return AvailabilityResponse(key_id=key_id, availability=availability.value)

    except CustodyError as e:
        raise to_http_exception(e) from e
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve key availability",
        )


@router.put(
    "/{key_id}/status",
    response_model=KeyResponse,
    summary="Set key status",
    description="Set or clear the maintenance/lost override on a key.",
    responses={
        200: {"description": "Status changed"},
        404: {"description": "Key not found"},
        409: {"description": "Key has an outstanding assignment"},
        422: {"description": "Status cannot be set directly"},
    },
)
async def set_key_status(
    key_id: str,
    request: SetKeyStatusRequest,
    actor_id: Annotated[PrincipalId, Depends(get_actor_id)],
    bus: Annotated[CustodyCommandBus, Depends(get_command_bus)],
) -> KeyResponse:
    """Apply an administrative status to a key."""
    key_id_obj = parse_id(KeyId.from_string, key_id, "key")
    try:
        key = await bus.dispatch(
            SetKeyStatus(
                key_id=key_id_obj,
                status=request.to_domain_status(),
                actor_id=actor_id,
                reason=request.reason,
            )
        )
        return KeyResponse.from_domain(key)

    except CustodyError as e:
        raise to_http_exception(e) from e
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to set key status",
        )


@router.post("/{key_id}/retire", response_model=KeyResponse, summary="Retire key")
async def retire_key(
    key_id: str,
    request: RetireKeyRequest,
    actor_id: Annotated[PrincipalId, Depends(get_actor_id)],
    bus: Annotated[CustodyCommandBus, Depends(get_command_bus)],
) -> KeyResponse:
    """Retire a key so it accepts no new requests."""
    key_id_obj = parse_id(KeyId.from_string, key_id, "key")
    try:
        key = await bus.dispatch(
            RetireKey(key_id=key_id_obj, actor_id=actor_id, reason=request.reason)
        )
        return KeyResponse.from_domain(key)

    except CustodyError as e:
        raise to_http_exception(e) from e
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retire key",
        )


@router.get(
    "/{key_id}/assignments",
    response_model=list[AssignmentResponse],
    summary="List key assignments",
)
async def list_key_assignments(
    key_id: str,
    service: Annotated[AssignmentService, Depends(get_assignment_service)],
) -> list[AssignmentResponse]:
    """List every assignment of a key, newest first."""
    key_id_obj = parse_id(KeyId.from_string, key_id, "key")
    try:
        assignments = await service.list_for_key(key_id_obj)
        return [AssignmentResponse.from_domain(a) for a in assignments]

    except CustodyError as e:
        raise to_http_exception(e) from e
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list key assignments",
        )


@router.get(
    "/{key_id}/history",
    response_model=list[TransactionResponse],
    summary="Key transaction history",
)
async def key_history(
    key_id: str,
    service: Annotated[
        TransactionHistoryService, Depends(get_transaction_history_service)
    ],
    limit: Annotated[int, Query(ge=1, le=1000)] = 100,
) -> list[TransactionResponse]:
    """List every recorded transition for a key, newest first."""
    key_id_obj = parse_id(KeyId.from_string, key_id, "key")
    try:
        records = await service.history_for_key(key_id_obj, limit=limit)
        return [TransactionResponse.from_domain(record) for record in records]

    except CustodyError as e:
        raise to_http_exception(e) from e
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve key history",
        )
