"""HTTP routes for reading the transaction log."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from custody.application.services import TransactionHistoryService
from custody.dependencies import get_transaction_history_service
from custody.domain.value_objects import PrincipalId
from custody.ports.exceptions import CustodyError
from custody.presentation.errors import parse_id, to_http_exception
from custody.presentation.history.models import TransactionResponse

router = APIRouter(
    prefix="/history",
    tags=["history"],
)


@router.get("", response_model=list[TransactionResponse], summary="Recent activity")
async def recent_activity(
    service: Annotated[
        TransactionHistoryService, Depends(get_transaction_history_service)
    ],
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
) -> list[TransactionResponse]:
    """List the latest transitions across all keys."""
    try:
        records = await service.recent_activity(limit=limit)
        return [TransactionResponse.from_domain(record) for record in records]

    except CustodyError as e:
        raise to_http_exception(e) from e
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve recent activity",
        )


@router.get(
    "/principals/{principal_id}",
    response_model=list[TransactionResponse],
    summary="Principal history",
)
async def principal_history(
    principal_id: str,
    service: Annotated[
        TransactionHistoryService, Depends(get_transaction_history_service)
    ],
    limit: Annotated[int, Query(ge=1, le=1000)] = 100,
) -> list[TransactionResponse]:
    """List every transition a principal performed, newest first."""
    principal = parse_id(PrincipalId.from_string, principal_id, "principal")
    try:
        records = await service.history_for_holder(principal, limit=limit)
        return [TransactionResponse.from_domain(record) for record in records]

    except CustodyError as e:
        raise to_http_exception(e) from e
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve principal history",
        )
