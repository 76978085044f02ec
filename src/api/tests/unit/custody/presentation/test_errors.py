"""Unit tests for custody error translation."""

import pytest
from fastapi import HTTPException, status

from custody.domain.value_objects import KeyId
from custody.ports.exceptions import (
    ConflictError,
    ExpiredProofError,
    InvalidStateError,
    MalformedProofError,
    NotFoundError,
    NotificationDeliveryError,
    PermissionDeniedError,
    ProofMismatchError,
    StorageError,
    ValidationError,
)
from custody.presentation.errors import parse_id, to_http_exception


class TestToHttpException:
    """Tests for mapping custody errors to status codes."""

    @pytest.mark.parametrize(
        ("error", "expected"),
        [
            (NotFoundError("missing"), status.HTTP_404_NOT_FOUND),
            (ConflictError("taken"), status.HTTP_409_CONFLICT),
            (InvalidStateError("closed"), status.HTTP_409_CONFLICT),
            (ExpiredProofError("expired"), status.HTTP_410_GONE),
            (MalformedProofError("garbled"), status.HTTP_400_BAD_REQUEST),
            (ProofMismatchError("wrong key"), status.HTTP_422_UNPROCESSABLE_CONTENT),
            (ValidationError("bad input"), status.HTTP_422_UNPROCESSABLE_CONTENT),
            (PermissionDeniedError("nope"), status.HTTP_403_FORBIDDEN),
        ],
    )
    def test_caller_errors_keep_message(self, error, expected):
        exc = to_http_exception(error)

        assert exc.status_code == expected
        assert exc.detail == str(error)

    def test_unprocessable_is_plain_422(self):
        assert status.HTTP_422_UNPROCESSABLE_CONTENT == 422
        assert to_http_exception(ValidationError("bad input")).status_code == 422

    @pytest.mark.parametrize(
        "error",
        [StorageError("disk full"), NotificationDeliveryError("smtp down")],
    )
    def test_internal_errors_hide_details(self, error):
        exc = to_http_exception(error)

        assert exc.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert exc.detail == "Custody operation failed"


class TestParseId:
    """Tests for identifier parsing."""

    def test_valid_id(self):
        key_id = KeyId.generate()

        assert parse_id(KeyId.from_string, key_id.value, "key") == key_id

    def test_invalid_id_is_bad_request(self):
        with pytest.raises(HTTPException) as exc_info:
            parse_id(KeyId.from_string, "not-a-ulid", "key")

        assert exc_info.value.status_code == status.HTTP_400_BAD_REQUEST
        assert exc_info.value.detail == "Invalid key ID format"
