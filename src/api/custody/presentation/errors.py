"""Translation of custody errors into HTTP responses."""

from __future__ import annotations

from collections.abc import Callable
from typing import TypeVar

from fastapi import HTTPException, status

from custody.ports.exceptions import (
    ConflictError,
    CustodyError,
    ExpiredProofError,
    InvalidStateError,
    MalformedProofError,
    NotFoundError,
    PermissionDeniedError,
    ProofMismatchError,
    ValidationError,
)

T = TypeVar("T")

# Checked in order; subclasses must precede their bases.
_STATUS_BY_ERROR: tuple[tuple[type[CustodyError], int], ...] = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (InvalidStateError, status.HTTP_409_CONFLICT),
    (ExpiredProofError, status.HTTP_410_GONE),
    (MalformedProofError, status.HTTP_400_BAD_REQUEST),
    (ProofMismatchError, status.HTTP_422_UNPROCESSABLE_CONTENT),
    (ValidationError, status.HTTP_422_UNPROCESSABLE_CONTENT),
    (PermissionDeniedError, status.HTTP_403_FORBIDDEN),
)


def to_http_exception(error: CustodyError) -> HTTPException:
    """Map a custody error to an HTTPException.

    Caller-facing errors keep their message. Anything else (storage or
    delivery failures) becomes a 500 without details.
    """
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=str(error))
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Custody operation failed",
    )


def parse_id(factory: Callable[[str], T], value: str, label: str) -> T:
    """Parse a path or body identifier, answering 400 when malformed.

    Args:
        factory: Identifier constructor such as ``KeyId.from_string``
        value: Raw identifier from the request
        label: Name used in the error message

    Raises:
        HTTPException 400: If the identifier is not valid
    """
    try:
        return factory(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {label} ID format",
        )
