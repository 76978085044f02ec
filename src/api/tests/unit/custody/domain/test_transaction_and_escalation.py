"""Unit tests for transaction log records and escalation tiers."""

import pytest

from custody.domain.aggregates import DEFAULT_DETAILS, KeyTransaction
from custody.domain.escalation import escalation_tier
from custody.domain.value_objects import (
    EscalationTier,
    KeyId,
    PrincipalId,
    TransactionStatus,
    TransactionType,
)


def _reminder() -> KeyTransaction:
    return KeyTransaction.record(
        TransactionType.OVERDUE_REMINDER,
        key_id=KeyId.generate(),
        actor_id=PrincipalId(value="alice"),
    )


class TestKeyTransaction:
    """Tests for KeyTransaction records."""

    def test_every_type_has_default_details(self):
        assert set(DEFAULT_DETAILS) == set(TransactionType)

    def test_record_fills_default_details(self):
        record = _reminder()

        assert record.details == "Overdue reminder sent"
        assert record.status == TransactionStatus.COMPLETED
        assert record.retry_count == 0
        assert record.metadata == {}

    def test_mark_failed_counts_attempts(self):
        record = _reminder()

        record.mark_failed("SMTP timeout")
        record.mark_failed("SMTP timeout")

        assert record.status == TransactionStatus.FAILED
        assert record.error_message == "SMTP timeout"
        assert record.retry_count == 2

    def test_mark_completed_clears_error(self):
        record = _reminder()
        record.mark_failed("SMTP timeout")

        record.mark_completed("Sent after retry")

        assert record.status == TransactionStatus.COMPLETED
        assert record.error_message is None
        assert record.details == "Sent after retry"
        assert record.retry_count == 1

    def test_mark_cancelled(self):
        record = _reminder()
        record.mark_failed("down")

        record.mark_cancelled()

        assert record.status == TransactionStatus.CANCELLED
        assert record.details == "Overdue reminder sent"


class TestEscalationTier:
    """Tests for the days-overdue to tier mapping."""

    @pytest.mark.parametrize(
        ("days", "tier"),
        [
            (0, EscalationTier.NONE),
            (1, EscalationTier.LOW),
            (3, EscalationTier.LOW),
            (4, EscalationTier.MEDIUM),
            (7, EscalationTier.MEDIUM),
            (8, EscalationTier.HIGH),
            (14, EscalationTier.HIGH),
            (15, EscalationTier.CRITICAL),
            (90, EscalationTier.CRITICAL),
        ],
    )
    def test_tier_boundaries(self, days, tier):
        assert escalation_tier(days) == tier
