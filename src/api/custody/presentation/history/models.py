"""Pydantic models for transaction log responses."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from custody.domain.aggregates import KeyTransaction


class TransactionResponse(BaseModel):
    """Response model for one transaction log record."""

    id: str = Field(..., description="Transaction ID (ULID format)")
    type: str = Field(..., description="Kind of transition recorded")
    key_id: str = Field(..., description="Key the record belongs to")
    actor_id: str = Field(..., description="Principal who performed the transition")
    verifier_id: str | None = Field(None, description="Security desk verifier, if any")
    assignment_id: str | None = Field(None, description="Related assignment")
    delegation_id: str | None = Field(None, description="Related delegation")
    delegate_id: str | None = Field(None, description="Delegate involved, if any")
    details: str = Field(..., description="Human-readable description")
    status: str = Field(..., description="pending, completed, failed or cancelled")
    error_message: str | None = Field(None, description="Failure reason, if failed")
    retry_count: int = Field(..., description="Delivery retries so far")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Extra context")
    occurred_at: datetime = Field(..., description="When the transition happened")

    @classmethod
    def from_domain(cls, transaction: KeyTransaction) -> TransactionResponse:
        """Convert a log record to API response."""
        return cls(
            id=transaction.id.value,
            type=transaction.type.value,
            key_id=transaction.key_id.value,
            actor_id=transaction.actor_id.value,
            verifier_id=_value(transaction.verifier_id),
            assignment_id=_value(transaction.assignment_id),
            delegation_id=_value(transaction.delegation_id),
            delegate_id=_value(transaction.delegate_id),
            details=transaction.details,
            status=transaction.status.value,
            error_message=transaction.error_message,
            retry_count=transaction.retry_count,
            metadata=dict(transaction.metadata),
            occurred_at=transaction.occurred_at,
        )


def _value(identifier) -> str | None:
    return identifier.value if identifier is not None else None
