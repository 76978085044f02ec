"""Pydantic models for the overdue monitor."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from custody.application.value_objects import ReminderResult, SweepReport
from custody.domain.aggregates import Assignment
from custody.domain.escalation import escalation_tier


class OverdueAssignmentResponse(BaseModel):
    """Response model for an overdue hold."""

    assignment_id: str = Field(..., description="Overdue assignment")
    key_id: str = Field(..., description="Key that is late")
    holder_id: str = Field(..., description="Principal holding the key")
    due_date: datetime = Field(..., description="When the key was due back")
    days_overdue: int = Field(..., description="Whole days late, rounded up")
    tier: str = Field(..., description="Reminder urgency")
    reminders_sent: int = Field(..., description="Reminders delivered so far")

    @classmethod
    def from_domain(cls, assignment: Assignment, now: datetime) -> OverdueAssignmentResponse:
        """Convert an overdue assignment to API response as of ``now``."""
        days = assignment.days_overdue(now)
        return cls(
            assignment_id=assignment.id.value,
            key_id=assignment.key_id.value,
            holder_id=assignment.holder_id.value,
            due_date=assignment.due_date,
            days_overdue=days,
            tier=escalation_tier(days).value,
            reminders_sent=assignment.reminders_sent,
        )


class SendRemindersRequest(BaseModel):
    """Request model for a reminder run.

    With neither field set every overdue holder is reminded.
    """

    assignment_id: str | None = Field(None, description="Remind for one assignment")
    holder_id: str | None = Field(None, description="Remind one holder")


class ReminderResultResponse(BaseModel):
    """Response model for one reminder attempt."""

    assignment_id: str = Field(..., description="Assignment reminded about")
    key_id: str = Field(..., description="Key that is late")
    holder_id: str = Field(..., description="Principal reminded")
    days_overdue: int = Field(..., description="Whole days late")
    tier: str = Field(..., description="Reminder urgency")
    delivered: bool = Field(..., description="Whether delivery succeeded")
    transaction_id: str = Field(..., description="Log record of the reminder")
    error: str | None = Field(None, description="Delivery failure, if any")

    @classmethod
    def from_result(cls, result: ReminderResult) -> ReminderResultResponse:
        """Convert a reminder result to API response."""
        return cls(
            assignment_id=result.assignment_id,
            key_id=result.key_id,
            holder_id=result.holder_id,
            days_overdue=result.days_overdue,
            tier=result.tier.value,
            delivered=result.delivered,
            transaction_id=result.transaction_id,
            error=result.error,
        )


class SweepReportResponse(BaseModel):
    """Response model for a sweep run."""

    assignments_overdue: int = Field(..., description="Holds marked overdue")
    delegations_expired: int = Field(..., description="Grants marked expired")
    reminders_retried: int = Field(..., description="Failed reminders re-attempted")
    skipped: list[str] = Field(default_factory=list, description="Records changed concurrently")

    @classmethod
    def from_report(cls, report: SweepReport) -> SweepReportResponse:
        """Convert a sweep report to API response."""
        return cls(
            assignments_overdue=report.assignments_overdue,
            delegations_expired=report.delegations_expired,
            reminders_retried=report.reminders_retried,
            skipped=list(report.skipped),
        )
