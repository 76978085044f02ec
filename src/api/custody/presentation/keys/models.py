"""Pydantic models for key registry requests and responses."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from custody.domain.aggregates import Key
from custody.domain.value_objects import KeyStatus


class KeyStatusEnum(StrEnum):
    """API-level enum for the statuses an administrator may set.

    ASSIGNED is derived from the assignment ledger and cannot be set.
    """

    AVAILABLE = "available"
    MAINTENANCE = "maintenance"
    LOST = "lost"


class RegisterKeyRequest(BaseModel):
    """Request model for registering a key."""

    name: str = Field(..., description="Key name", min_length=1, max_length=255)
    lab_name: str = Field(..., description="Lab the key opens", min_length=1, max_length=255)
    lab_number: str = Field(..., description="Lab room number", min_length=1, max_length=64)
    department: str = Field(..., description="Owning department", min_length=1, max_length=255)
    location: str = Field(..., description="Where the key is kept", min_length=1, max_length=255)
    description: str | None = Field(None, description="Free-form description")
    requires_approval: bool = Field(
        False, description="Whether requests need approval before collection"
    )
    max_assignment_duration_hours: int = Field(
        24, description="Longest hold a request may ask for", ge=1
    )


class SetKeyStatusRequest(BaseModel):
    """Request model for setting or clearing an administrative override."""

    status: KeyStatusEnum = Field(..., description="New key status")
    reason: str | None = Field(None, description="Why the status changes")

    def to_domain_status(self) -> KeyStatus:
        """Convert API status to domain KeyStatus."""
        return KeyStatus(self.status.value)


class RetireKeyRequest(BaseModel):
    """Request model for retiring a key."""

    reason: str | None = Field(None, description="Why the key is retired")


class KeyResponse(BaseModel):
    """Response model for a key."""

    id: str = Field(..., description="Key ID (ULID format)")
    name: str = Field(..., description="Key name")
    lab_name: str = Field(..., description="Lab the key opens")
    lab_number: str = Field(..., description="Lab room number")
    department: str = Field(..., description="Owning department")
    location: str = Field(..., description="Where the key is kept")
    description: str | None = Field(None, description="Free-form description")
    requires_approval: bool = Field(..., description="Whether requests need approval")
    max_assignment_duration_hours: int = Field(..., description="Longest allowed hold")
    current_status: str = Field(..., description="Stored key status")
    availability: str = Field(..., description="available, held, maintenance or lost")
    is_active: bool = Field(..., description="False once the key is retired")
    total_assignments: int = Field(..., description="Number of completed collections")
    created_at: datetime = Field(..., description="When the key was registered")

    @classmethod
    def from_domain(cls, key: Key) -> KeyResponse:
        """Convert domain Key aggregate to API response."""
        return cls(
            id=key.id.value,
            name=key.name,
            lab_name=key.lab_name,
            lab_number=key.lab_number,
            department=key.department,
            location=key.location,
            description=key.description,
            requires_approval=key.requires_approval,
            max_assignment_duration_hours=key.max_assignment_duration_hours,
            current_status=key.current_status.value,
            availability=key.availability().value,
            is_active=key.is_active,
            total_assignments=key.total_assignments,
            created_at=key.created_at,
        )


class AvailabilityResponse(BaseModel):
    """Response model for a key's availability."""

    key_id: str = Field(..., description="Key ID")
    availability: str = Field(..., description="available, held, maintenance or lost")
