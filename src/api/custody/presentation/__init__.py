"""Custody presentation layer - aggregate-based organization.

Each aggregate package (keys, assignments, delegations) contains its own
routes and models; overdue and history cover the monitor and the
transaction log.
"""

from __future__ import annotations

from fastapi import APIRouter

from custody.presentation.assignments.routes import router as assignments_router
from custody.presentation.delegations.routes import router as delegations_router
from custody.presentation.history.routes import router as history_router
from custody.presentation.keys.routes import router as keys_router
from custody.presentation.overdue.routes import router as overdue_router

# Identity is asserted per-endpoint through the X-Actor-Id dependency on the
# operations that record an actor; reads need none.
router = APIRouter(
    prefix="/custody",
    tags=["custody"],
)

router.include_router(keys_router)
router.include_router(assignments_router)
router.include_router(delegations_router)
router.include_router(overdue_router)
router.include_router(history_router)

__all__ = ["router"]
