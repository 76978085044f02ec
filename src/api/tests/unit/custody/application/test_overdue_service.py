"""Unit tests for OverdueService: listing, reminders and the sweep."""

from datetime import timedelta
from unittest.mock import create_autospec

import pytest

from custody.application.observability import OverdueServiceProbe
from custody.application.services import OverdueService
from custody.application.value_objects import ReminderScope
from custody.domain.aggregates import Delegation, KeyTransaction
from custody.domain.value_objects import (
    AssignmentId,
    AssignmentStatus,
    DelegationStatus,
    EscalationTier,
    TransactionStatus,
    TransactionType,
)
from custody.ports.exceptions import (
    InvalidStateError,
    NotFoundError,
    NotificationDeliveryError,
)
from custody.ports.notifications import IReminderNotifier
from custody.ports.repositories import (
    IAssignmentRepository,
    IDelegationRepository,
    IKeyRepository,
    ITransactionLog,
)


@pytest.fixture
def mock_key_repo(key):
    repo = create_autospec(IKeyRepository, instance=True)
    repo.get_by_id.return_value = key
    return repo


@pytest.fixture
def mock_assignment_repo():
    repo = create_autospec(IAssignmentRepository, instance=True)
    repo.list_by_status.return_value = []
    repo.list_active_past_due.return_value = []
    repo.list_for_holder.return_value = []
    return repo


@pytest.fixture
def mock_delegation_repo():
    repo = create_autospec(IDelegationRepository, instance=True)
    repo.list_active_past_expiry.return_value = []
    return repo


@pytest.fixture
def mock_log():
    log = create_autospec(ITransactionLog, instance=True)
    log.list_failed_reminders.return_value = []
    return log


@pytest.fixture
def mock_notifier():
    return create_autospec(IReminderNotifier, instance=True)


@pytest.fixture
def mock_probe():
    return create_autospec(OverdueServiceProbe, instance=True)


@pytest.fixture
def overdue_service(
    mock_session,
    mock_key_repo,
    mock_assignment_repo,
    mock_delegation_repo,
    mock_log,
    mock_notifier,
    mock_probe,
    clock,
):
    return OverdueService(
        session=mock_session,
        key_repository=mock_key_repo,
        assignment_repository=mock_assignment_repo,
        delegation_repository=mock_delegation_repo,
        transaction_log=mock_log,
        notifier=mock_notifier,
        probe=mock_probe,
        clock=clock,
        max_reminder_retries=3,
        batch_size=50,
    )


@pytest.fixture
def overdue(make_assignment):
    """A hold five days past due (stored as overdue)."""
    return make_assignment(
        AssignmentStatus.OVERDUE, duration_hours=1, collected_hours_ago=5 * 24 + 1
    )


class TestListOverdue:
    """Tests for OverdueService.list_overdue."""

    @pytest.mark.asyncio
    async def test_merges_stored_and_lapsed_oldest_first(
        self, overdue_service, mock_assignment_repo, make_assignment, overdue
    ):
        lapsed = make_assignment(
            AssignmentStatus.ACTIVE, duration_hours=1, collected_hours_ago=3
        )
        mock_assignment_repo.list_by_status.return_value = [overdue]
        mock_assignment_repo.list_active_past_due.return_value = [lapsed]

        result = await overdue_service.list_overdue()

        assert result == [overdue, lapsed]
        assert lapsed.status == AssignmentStatus.OVERDUE
        mock_assignment_repo.save.assert_not_called()


class TestSendReminders:
    """Tests for OverdueService.send_reminders."""

    @pytest.mark.asyncio
    async def test_delivers_one_reminder_per_assignment(
        self,
        overdue_service,
        mock_assignment_repo,
        mock_log,
        mock_notifier,
        mock_probe,
        overdue,
        key,
    ):
        mock_assignment_repo.list_by_status.return_value = [overdue]
        mock_assignment_repo.get_by_id.return_value = overdue

        results = await overdue_service.send_reminders()

        assert len(results) == 1
        result = results[0]
        assert result.delivered is True
        assert result.days_overdue == 5
        assert result.tier == EscalationTier.MEDIUM
        assert overdue.reminders_sent == 1

        notice = mock_notifier.notify.call_args.args[0]
        assert notice.key_name == key.name
        assert notice.reminder_number == 1

        record = mock_log.append.call_args.args[0]
        assert record.type == TransactionType.OVERDUE_REMINDER
        assert record.status == TransactionStatus.COMPLETED
        assert record.metadata["tier"] == "medium"
        mock_probe.reminder_sent.assert_called_once()

    @pytest.mark.asyncio
    async def test_delivery_failure_recorded_not_raised(
        self,
        overdue_service,
        mock_assignment_repo,
        mock_log,
        mock_notifier,
        mock_probe,
        overdue,
    ):
        mock_assignment_repo.list_by_status.return_value = [overdue]
        mock_assignment_repo.get_by_id.return_value = overdue
        mock_notifier.notify.side_effect = NotificationDeliveryError("mail relay down")

        results = await overdue_service.send_reminders()

        assert results[0].delivered is False
        assert results[0].error == "mail relay down"
        assert overdue.reminders_sent == 0
        record = mock_log.append.call_args.args[0]
        assert record.status == TransactionStatus.FAILED
        assert record.retry_count == 1
        mock_log.update_status.assert_called_once_with(record)
        mock_probe.reminder_failed.assert_called_once()

    @pytest.mark.asyncio
    async def test_record_appended_pending_before_delivery(
        self, overdue_service, mock_assignment_repo, mock_log, mock_notifier, overdue
    ):
        mock_assignment_repo.list_by_status.return_value = [overdue]
        mock_assignment_repo.get_by_id.return_value = overdue
        seen = []

        async def notify(notice):
            record = mock_log.append.call_args.args[0]
            seen.append(record.status)

        mock_notifier.notify.side_effect = notify

        await overdue_service.send_reminders()

        assert seen == [TransactionStatus.PENDING]
        record = mock_log.append.call_args.args[0]
        assert record.status == TransactionStatus.COMPLETED
        mock_log.update_status.assert_called_once_with(record)

    @pytest.mark.asyncio
    async def test_stale_counter_write_keeps_reminder_record(
        self,
        overdue_service,
        mock_assignment_repo,
        mock_log,
        mock_notifier,
        mock_probe,
        overdue,
    ):
        mock_assignment_repo.list_by_status.return_value = [overdue]
        mock_assignment_repo.get_by_id.return_value = overdue
        mock_assignment_repo.save.side_effect = InvalidStateError("stale")

        results = await overdue_service.send_reminders()

        mock_notifier.notify.assert_called_once()
        assert len(results) == 1
        assert results[0].delivered is True
        mock_log.append.assert_called_once()
        record = mock_log.append.call_args.args[0]
        assert record.type == TransactionType.OVERDUE_REMINDER
        assert record.status == TransactionStatus.COMPLETED
        assert results[0].transaction_id == record.id.value
        mock_log.update_status.assert_called_once_with(record)
        mock_probe.sweep_item_skipped.assert_called_once()

    @pytest.mark.asyncio
    async def test_scoped_to_assignment(
        self, overdue_service, mock_assignment_repo, overdue
    ):
        mock_assignment_repo.get_by_id.return_value = overdue

        results = await overdue_service.send_reminders(
            ReminderScope(assignment_id=overdue.id)
        )

        assert [r.assignment_id for r in results] == [overdue.id.value]
        mock_assignment_repo.list_by_status.assert_not_called()

    @pytest.mark.asyncio
    async def test_scoped_assignment_not_overdue(
        self, overdue_service, mock_assignment_repo, make_assignment
    ):
        mock_assignment_repo.get_by_id.return_value = make_assignment(AssignmentStatus.ACTIVE)

        with pytest.raises(InvalidStateError):
            await overdue_service.send_reminders(
                ReminderScope(assignment_id=AssignmentId.generate())
            )

    @pytest.mark.asyncio
    async def test_scoped_assignment_missing(self, overdue_service, mock_assignment_repo):
        mock_assignment_repo.get_by_id.return_value = None

        with pytest.raises(NotFoundError):
            await overdue_service.send_reminders(
                ReminderScope(assignment_id=AssignmentId.generate())
            )

    @pytest.mark.asyncio
    async def test_scoped_to_holder(
        self, overdue_service, mock_assignment_repo, make_assignment, overdue, holder_id
    ):
        current = make_assignment(AssignmentStatus.ACTIVE)
        mock_assignment_repo.list_for_holder.return_value = [current, overdue]
        mock_assignment_repo.get_by_id.return_value = overdue

        results = await overdue_service.send_reminders(ReminderScope(holder_id=holder_id))

        assert [r.assignment_id for r in results] == [overdue.id.value]

    @pytest.mark.asyncio
    async def test_returned_meanwhile_is_skipped(
        self,
        overdue_service,
        mock_assignment_repo,
        mock_notifier,
        mock_probe,
        make_assignment,
        overdue,
    ):
        mock_assignment_repo.list_by_status.return_value = [overdue]
        mock_assignment_repo.get_by_id.return_value = make_assignment(AssignmentStatus.RETURNED)

        results = await overdue_service.send_reminders()

        assert results == []
        mock_notifier.notify.assert_not_called()
        mock_probe.sweep_item_skipped.assert_called_once()


class TestRetryFailedReminders:
    """Tests for OverdueService.retry_failed_reminders."""

    def _failed(self, assignment, retries=1) -> KeyTransaction:
        record = KeyTransaction.record(
            TransactionType.OVERDUE_REMINDER,
            key_id=assignment.key_id,
            actor_id=assignment.holder_id,
            assignment_id=assignment.id,
        )
        for _ in range(retries):
            record.mark_failed("relay down")
        return record

    @pytest.mark.asyncio
    async def test_successful_retry_completes_record(
        self, overdue_service, mock_assignment_repo, mock_log, overdue
    ):
        record = self._failed(overdue)
        mock_log.list_failed_reminders.return_value = [record]
        mock_assignment_repo.get_by_id.return_value = overdue

        retried = await overdue_service.retry_failed_reminders()

        assert retried == 1
        assert record.status == TransactionStatus.COMPLETED
        assert overdue.reminders_sent == 1
        mock_log.update_status.assert_called_once_with(record)
        mock_log.list_failed_reminders.assert_called_once_with(3, limit=50)

    @pytest.mark.asyncio
    async def test_no_longer_overdue_cancels_record(
        self, overdue_service, mock_assignment_repo, mock_log, mock_notifier, mock_probe, make_assignment
    ):
        returned = make_assignment(AssignmentStatus.RETURNED)
        record = self._failed(returned)
        mock_log.list_failed_reminders.return_value = [record]
        mock_assignment_repo.get_by_id.return_value = returned

        retried = await overdue_service.retry_failed_reminders()

        assert retried == 0
        assert record.status == TransactionStatus.CANCELLED
        mock_notifier.notify.assert_not_called()
        mock_probe.reminder_abandoned.assert_called_once_with(
            record.id.value, "no longer overdue"
        )

    @pytest.mark.asyncio
    async def test_exhausted_retries_abandoned(
        self,
        overdue_service,
        mock_assignment_repo,
        mock_log,
        mock_notifier,
        mock_probe,
        overdue,
    ):
        record = self._failed(overdue, retries=2)
        mock_log.list_failed_reminders.return_value = [record]
        mock_assignment_repo.get_by_id.return_value = overdue
        mock_notifier.notify.side_effect = NotificationDeliveryError("still down")

        await overdue_service.retry_failed_reminders()

        assert record.status == TransactionStatus.FAILED
        assert record.retry_count == 3
        mock_probe.reminder_abandoned.assert_called_once_with(
            record.id.value, "retries exhausted"
        )


class TestSweep:
    """Tests for OverdueService.sweep."""

    @pytest.mark.asyncio
    async def test_persists_overdue_and_expiry(
        self,
        overdue_service,
        mock_assignment_repo,
        mock_delegation_repo,
        mock_probe,
        make_assignment,
        holder_id,
        peer_id,
        now,
    ):
        lapsed = make_assignment(AssignmentStatus.ACTIVE, duration_hours=1, collected_hours_ago=2)
        holding = make_assignment(AssignmentStatus.ACTIVE)
        grant = Delegation.create(
            holding,
            delegator_id=holder_id,
            delegate_id=peer_id,
            duration_hours=1,
            now=now - timedelta(hours=2),
        )
        mock_assignment_repo.list_active_past_due.return_value = [lapsed]
        mock_assignment_repo.get_by_id.return_value = lapsed
        mock_delegation_repo.list_active_past_expiry.return_value = [grant]
        mock_delegation_repo.get_by_id.return_value = grant

        report = await overdue_service.sweep()

        assert report.assignments_overdue == 1
        assert report.delegations_expired == 1
        assert report.changed == 2
        assert lapsed.status == AssignmentStatus.OVERDUE
        assert grant.status == DelegationStatus.EXPIRED
        mock_assignment_repo.save.assert_called_once_with(lapsed)
        mock_delegation_repo.save.assert_called_once_with(grant)
        mock_probe.sweep_completed.assert_called_once_with(1, 1, 0)

    @pytest.mark.asyncio
    async def test_already_transitioned_record_not_counted(
        self, overdue_service, mock_assignment_repo, make_assignment
    ):
        returned = make_assignment(AssignmentStatus.RETURNED)
        mock_assignment_repo.list_active_past_due.return_value = [returned]
        mock_assignment_repo.get_by_id.return_value = returned

        report = await overdue_service.sweep()

        assert report.assignments_overdue == 0
        mock_assignment_repo.save.assert_not_called()

    @pytest.mark.asyncio
    async def test_stale_record_skipped(
        self, overdue_service, mock_assignment_repo, mock_probe, make_assignment
    ):
        lapsed = make_assignment(AssignmentStatus.ACTIVE, duration_hours=1, collected_hours_ago=2)
        mock_assignment_repo.list_active_past_due.return_value = [lapsed]
        mock_assignment_repo.get_by_id.return_value = lapsed
        mock_assignment_repo.save.side_effect = InvalidStateError("stale")

        report = await overdue_service.sweep()

        assert report.skipped == [lapsed.id.value]
        assert report.assignments_overdue == 0
        mock_probe.sweep_item_skipped.assert_called_once()

    @pytest.mark.asyncio
    async def test_sweep_is_idempotent_when_nothing_lapsed(self, overdue_service):
        report = await overdue_service.sweep()
        assert report.changed == 0
        assert report.skipped == []
