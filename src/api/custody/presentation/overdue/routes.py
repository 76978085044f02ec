"""HTTP routes for the overdue monitor."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from custody.application.commands import (
    CustodyCommandBus,
    ListOverdue,
    SendReminders,
    Sweep,
)
from custody.application.value_objects import ReminderScope, system_clock
from custody.dependencies import get_actor_id, get_command_bus
from custody.domain.value_objects import AssignmentId, PrincipalId
from custody.ports.exceptions import CustodyError
from custody.presentation.errors import parse_id, to_http_exception
from custody.presentation.overdue.models import (
    OverdueAssignmentResponse,
    ReminderResultResponse,
    SendRemindersRequest,
    SweepReportResponse,
)

router = APIRouter(
    prefix="/overdue",
    tags=["overdue"],
)


@router.get("", response_model=list[OverdueAssignmentResponse], summary="List overdue")
async def list_overdue(
    bus: Annotated[CustodyCommandBus, Depends(get_command_bus)],
) -> list[OverdueAssignmentResponse]:
    """List every overdue hold, oldest due date first."""
    try:
        assignments = await bus.dispatch(ListOverdue())
        now = system_clock()
        return [OverdueAssignmentResponse.from_domain(a, now) for a in assignments]

    except CustodyError as e:
        raise to_http_exception(e) from e
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list overdue assignments",
        )


@router.post(
    "/reminders",
    response_model=list[ReminderResultResponse],
    summary="Send reminders",
    description="Remind holders of overdue keys. Delivery failures are "
    "reported per reminder and retried by the sweep.",
    responses={
        200: {"description": "Reminder run finished"},
        404: {"description": "Scoped assignment not found"},
        409: {"description": "Scoped assignment is not overdue"},
    },
)
async def send_reminders(
    request: SendRemindersRequest,
    actor_id: Annotated[PrincipalId, Depends(get_actor_id)],
    bus: Annotated[CustodyCommandBus, Depends(get_command_bus)],
) -> list[ReminderResultResponse]:
    """Run a reminder pass over the requested scope."""
    scope = ReminderScope(
        assignment_id=(
            parse_id(AssignmentId.from_string, request.assignment_id, "assignment")
            if request.assignment_id
            else None
        ),
        holder_id=(
            parse_id(PrincipalId.from_string, request.holder_id, "holder")
            if request.holder_id
            else None
        ),
    )
    try:
        results = await bus.dispatch(SendReminders(scope=scope))
        return [ReminderResultResponse.from_result(r) for r in results]

    except CustodyError as e:
        raise to_http_exception(e) from e
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to send reminders",
        )


@router.post("/sweep", response_model=SweepReportResponse, summary="Run sweep")
async def run_sweep(
    actor_id: Annotated[PrincipalId, Depends(get_actor_id)],
    bus: Annotated[CustodyCommandBus, Depends(get_command_bus)],
) -> SweepReportResponse:
    """Persist overdue and expiry transitions now instead of waiting for the worker."""
    try:
        report = await bus.dispatch(Sweep())
        return SweepReportResponse.from_report(report)

    except CustodyError as e:
        raise to_http_exception(e) from e
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to run sweep",
        )
