"""Unit tests for handover proof parsing, minting and verification."""

import json
from datetime import timedelta
from unittest.mock import create_autospec

import pytest

from custody.application.handover import HandoverVerifier, encode_proof, parse_proof
from custody.domain.aggregates import Delegation
from custody.domain.value_objects import (
    AssignmentId,
    AssignmentStatus,
    DelegationPermissions,
    HandoverAction,
    KeyId,
    PrincipalId,
    ProofToken,
    to_epoch_ms,
)
from custody.ports.exceptions import (
    ExpiredProofError,
    InvalidStateError,
    MalformedProofError,
    NotFoundError,
    PermissionDeniedError,
    ProofMismatchError,
)
from custody.ports.repositories import IAssignmentRepository, IDelegationRepository


@pytest.fixture
def mock_assignment_repo():
    return create_autospec(IAssignmentRepository, instance=True)


@pytest.fixture
def mock_delegation_repo():
    repo = create_autospec(IDelegationRepository, instance=True)
    repo.list_for_principal.return_value = []
    return repo


@pytest.fixture
def verifier(mock_assignment_repo, mock_delegation_repo, clock):
    return HandoverVerifier(
        assignment_repository=mock_assignment_repo,
        delegation_repository=mock_delegation_repo,
        proof_window=timedelta(minutes=10),
        clock=clock,
    )


def _token(assignment, action, now, presenter=None, window=timedelta(minutes=10)):
    return ProofToken.issue(
        assignment_id=assignment.id,
        key_id=assignment.key_id,
        holder_id=presenter or assignment.holder_id,
        action=action,
        window=window,
        now=now,
    )


class TestParseProof:
    """Tests for the QR payload wire format."""

    def test_round_trips_through_json(self, make_assignment, now):
        token = _token(make_assignment(), HandoverAction.COLLECTION, now)

        parsed = parse_proof(encode_proof(token))

        assert parsed == token

    def test_uses_camel_case_epoch_millis(self, make_assignment, now):
        token = _token(make_assignment(), HandoverAction.DEPOSIT, now)

        payload = json.loads(encode_proof(token))

        assert set(payload) == {
            "assignmentId",
            "keyId",
            "holderId",
            "action",
            "issuedAt",
            "expiresAt",
        }
        assert payload["action"] == "deposit"
        assert payload["issuedAt"] == to_epoch_ms(now)

    def test_accepts_mapping(self, make_assignment, now):
        token = _token(make_assignment(), HandoverAction.COLLECTION, now)
        assert parse_proof(token.to_payload()) == token

    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            "{}",
            json.dumps({"assignmentId": "nope", "keyId": "x", "holderId": "a",
                        "action": "collection", "issuedAt": 1, "expiresAt": 2}),
            b"[1, 2, 3]",
        ],
    )
    def test_rejects_malformed_payloads(self, raw):
        with pytest.raises(MalformedProofError):
            parse_proof(raw)

    def test_rejects_unknown_action(self, make_assignment, now):
        payload = _token(make_assignment(), HandoverAction.COLLECTION, now).to_payload()
        payload["action"] = "teleport"
        with pytest.raises(MalformedProofError):
            parse_proof(payload)

    def test_rejects_expiry_before_issue(self, make_assignment, now):
        payload = _token(make_assignment(), HandoverAction.COLLECTION, now).to_payload()
        payload["expiresAt"] = payload["issuedAt"] - 1
        with pytest.raises(MalformedProofError):
            parse_proof(payload)


class TestMint:
    """Tests for HandoverVerifier.mint."""

    @pytest.mark.asyncio
    async def test_mints_for_holder(self, verifier, mock_assignment_repo, make_assignment, now):
        assignment = make_assignment(AssignmentStatus.PENDING)
        mock_assignment_repo.get_by_id.return_value = assignment

        token = await verifier.mint(assignment.id, HandoverAction.COLLECTION)

        assert token.holder_id == assignment.holder_id.value
        assert token.issued_at == now
        assert token.expires_at == now + timedelta(minutes=10)

    @pytest.mark.asyncio
    async def test_not_found(self, verifier, mock_assignment_repo):
        mock_assignment_repo.get_by_id.return_value = None
        with pytest.raises(NotFoundError):
            await verifier.mint(AssignmentId.generate(), HandoverAction.COLLECTION)

    @pytest.mark.asyncio
    async def test_requires_state_for_action(self, verifier, mock_assignment_repo, make_assignment):
        mock_assignment_repo.get_by_id.return_value = make_assignment(AssignmentStatus.PENDING)
        with pytest.raises(InvalidStateError):
            await verifier.mint(AssignmentId.generate(), HandoverAction.DEPOSIT)

    @pytest.mark.asyncio
    async def test_stranger_cannot_mint(
        self, verifier, mock_assignment_repo, make_assignment, peer_id
    ):
        assignment = make_assignment(AssignmentStatus.ACTIVE)
        mock_assignment_repo.get_by_id.return_value = assignment

        with pytest.raises(PermissionDeniedError):
            await verifier.mint(assignment.id, HandoverAction.DEPOSIT, presenter_id=peer_id)

    @pytest.mark.asyncio
    async def test_delegate_mints_with_grant(
        self,
        verifier,
        mock_assignment_repo,
        mock_delegation_repo,
        make_assignment,
        holder_id,
        peer_id,
        now,
    ):
        assignment = make_assignment(AssignmentStatus.ACTIVE)
        mock_assignment_repo.get_by_id.return_value = assignment
        mock_delegation_repo.list_for_principal.return_value = [
            Delegation.create(
                assignment,
                delegator_id=holder_id,
                delegate_id=peer_id,
                duration_hours=4,
                now=now,
            )
        ]

        token = await verifier.mint(assignment.id, HandoverAction.DEPOSIT, presenter_id=peer_id)

        assert token.holder_id == peer_id.value


class TestVerify:
    """Tests for the ordered verification sequence."""

    @pytest.mark.asyncio
    async def test_accepts_holder_proof(self, verifier, mock_assignment_repo, make_assignment, now):
        assignment = make_assignment(AssignmentStatus.PENDING)
        mock_assignment_repo.get_by_id.return_value = assignment
        raw = encode_proof(_token(assignment, HandoverAction.COLLECTION, now))

        handover = await verifier.verify(
            raw, HandoverAction.COLLECTION, expected_assignment_id=assignment.id
        )

        assert handover.assignment is assignment
        assert handover.delegation is None
        assert handover.delegate_id is None

    @pytest.mark.asyncio
    async def test_malformed_checked_first(self, verifier, mock_assignment_repo):
        with pytest.raises(MalformedProofError):
            await verifier.verify("{", HandoverAction.COLLECTION)
        mock_assignment_repo.get_by_id.assert_not_called()

    @pytest.mark.asyncio
    async def test_expired_checked_before_lookup(
        self, verifier, mock_assignment_repo, make_assignment, now
    ):
        assignment = make_assignment(AssignmentStatus.PENDING)
        token = _token(assignment, HandoverAction.COLLECTION, now - timedelta(minutes=11))

        with pytest.raises(ExpiredProofError):
            await verifier.verify(encode_proof(token), HandoverAction.COLLECTION)
        mock_assignment_repo.get_by_id.assert_not_called()

    @pytest.mark.asyncio
    async def test_valid_up_to_expiry_instant(
        self, verifier, mock_assignment_repo, make_assignment, now
    ):
        assignment = make_assignment(AssignmentStatus.PENDING)
        mock_assignment_repo.get_by_id.return_value = assignment
        token = _token(assignment, HandoverAction.COLLECTION, now - timedelta(minutes=10))

        await verifier.verify(encode_proof(token), HandoverAction.COLLECTION)

    @pytest.mark.asyncio
    async def test_unknown_assignment(self, verifier, mock_assignment_repo, make_assignment, now):
        mock_assignment_repo.get_by_id.return_value = None
        token = _token(make_assignment(), HandoverAction.COLLECTION, now)

        with pytest.raises(NotFoundError):
            await verifier.verify(encode_proof(token), HandoverAction.COLLECTION)

    @pytest.mark.asyncio
    async def test_other_assignment_mismatch(
        self, verifier, mock_assignment_repo, make_assignment, now
    ):
        assignment = make_assignment()
        mock_assignment_repo.get_by_id.return_value = assignment
        token = _token(assignment, HandoverAction.COLLECTION, now)

        with pytest.raises(ProofMismatchError):
            await verifier.verify(
                encode_proof(token),
                HandoverAction.COLLECTION,
                expected_assignment_id=AssignmentId.generate(),
            )

    @pytest.mark.asyncio
    async def test_other_key_mismatch(self, verifier, mock_assignment_repo, make_assignment, now):
        assignment = make_assignment()
        mock_assignment_repo.get_by_id.return_value = assignment
        payload = _token(assignment, HandoverAction.COLLECTION, now).to_payload()
        payload["keyId"] = KeyId.generate().value

        with pytest.raises(ProofMismatchError):
            await verifier.verify(payload, HandoverAction.COLLECTION)

    @pytest.mark.asyncio
    async def test_action_mismatch(self, verifier, mock_assignment_repo, make_assignment, now):
        assignment = make_assignment(AssignmentStatus.ACTIVE)
        mock_assignment_repo.get_by_id.return_value = assignment
        token = _token(assignment, HandoverAction.COLLECTION, now)

        with pytest.raises(ProofMismatchError):
            await verifier.verify(encode_proof(token), HandoverAction.DEPOSIT)

    @pytest.mark.asyncio
    async def test_holder_mismatch(
        self, verifier, mock_assignment_repo, make_assignment, peer_id, now
    ):
        assignment = make_assignment(AssignmentStatus.ACTIVE)
        mock_assignment_repo.get_by_id.return_value = assignment
        token = _token(assignment, HandoverAction.DEPOSIT, now, presenter=peer_id)

        with pytest.raises(ProofMismatchError):
            await verifier.verify(encode_proof(token), HandoverAction.DEPOSIT)

    @pytest.mark.asyncio
    async def test_delegate_without_bit_denied(
        self,
        verifier,
        mock_assignment_repo,
        mock_delegation_repo,
        make_assignment,
        holder_id,
        peer_id,
        now,
    ):
        assignment = make_assignment(AssignmentStatus.ACTIVE)
        mock_assignment_repo.get_by_id.return_value = assignment
        mock_delegation_repo.list_for_principal.return_value = [
            Delegation.create(
                assignment,
                delegator_id=holder_id,
                delegate_id=peer_id,
                duration_hours=4,
                permissions=DelegationPermissions(can_return=False),
                now=now,
            )
        ]
        token = _token(assignment, HandoverAction.DEPOSIT, now, presenter=peer_id)

        with pytest.raises(PermissionDeniedError):
            await verifier.verify(encode_proof(token), HandoverAction.DEPOSIT)

    @pytest.mark.asyncio
    async def test_delegate_with_bit_accepted(
        self,
        verifier,
        mock_assignment_repo,
        mock_delegation_repo,
        make_assignment,
        holder_id,
        peer_id,
        now,
    ):
        assignment = make_assignment(AssignmentStatus.ACTIVE)
        grant = Delegation.create(
            assignment,
            delegator_id=holder_id,
            delegate_id=peer_id,
            duration_hours=4,
            now=now,
        )
        mock_assignment_repo.get_by_id.return_value = assignment
        mock_delegation_repo.list_for_principal.return_value = [grant]
        token = _token(assignment, HandoverAction.DEPOSIT, now, presenter=peer_id)

        handover = await verifier.verify(encode_proof(token), HandoverAction.DEPOSIT)

        assert handover.delegation is grant
        assert handover.delegate_id == peer_id

    @pytest.mark.asyncio
    async def test_delegate_with_lapsed_grant_denied(
        self,
        verifier,
        mock_assignment_repo,
        mock_delegation_repo,
        make_assignment,
        holder_id,
        peer_id,
        now,
    ):
        assignment = make_assignment(
            AssignmentStatus.ACTIVE, duration_hours=24, collected_hours_ago=6
        )
        grant = Delegation.create(
            assignment,
            delegator_id=holder_id,
            delegate_id=peer_id,
            duration_hours=4,
            now=now - timedelta(hours=5),
        )
        assert grant.expires_at < now
        mock_assignment_repo.get_by_id.return_value = assignment
        mock_delegation_repo.list_for_principal.return_value = [grant]
        token = _token(assignment, HandoverAction.DEPOSIT, now, presenter=peer_id)

        with pytest.raises(PermissionDeniedError):
            await verifier.verify(encode_proof(token), HandoverAction.DEPOSIT)

        assert assignment.status == AssignmentStatus.ACTIVE
        assert assignment.returned_at is None
        mock_assignment_repo.save.assert_not_called()
        mock_delegation_repo.save.assert_not_called()

    @pytest.mark.asyncio
    async def test_state_checked_last(self, verifier, mock_assignment_repo, make_assignment, now):
        """A proof for a finished handover is refused on state."""
        assignment = make_assignment(AssignmentStatus.ACTIVE)
        token = _token(assignment, HandoverAction.COLLECTION, now)
        mock_assignment_repo.get_by_id.return_value = assignment

        with pytest.raises(InvalidStateError):
            await verifier.verify(encode_proof(token), HandoverAction.COLLECTION)

    @pytest.mark.asyncio
    async def test_never_writes(
        self, verifier, mock_assignment_repo, mock_delegation_repo, make_assignment, now
    ):
        assignment = make_assignment(AssignmentStatus.PENDING)
        mock_assignment_repo.get_by_id.return_value = assignment

        await verifier.verify(
            encode_proof(_token(assignment, HandoverAction.COLLECTION, now)),
            HandoverAction.COLLECTION,
        )

        mock_assignment_repo.save.assert_not_called()
        mock_delegation_repo.save.assert_not_called()

    @pytest.mark.asyncio
    async def test_principal_ids_compare_by_value(self, verifier, mock_assignment_repo, make_assignment, now):
        assignment = make_assignment(AssignmentStatus.PENDING, holder=PrincipalId(value="dana"))
        mock_assignment_repo.get_by_id.return_value = assignment
        payload = _token(assignment, HandoverAction.COLLECTION, now).to_payload()

        handover = await verifier.verify(payload, HandoverAction.COLLECTION)

        assert handover.assignment.holder_id.value == "dana"
