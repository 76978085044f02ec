"""Overdue monitor application service for the custody bounded context.

Reads reclassify overdue holds in memory; the sweep persists those
reclassifications (and delegation expiries) and retries reminders whose
delivery failed.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from custody.application.observability import (
    DefaultOverdueServiceProbe,
    OverdueServiceProbe,
)
from custody.application.unit_of_work import unit_of_work
from custody.application.value_objects import (
    Clock,
    ReminderResult,
    ReminderScope,
    SweepReport,
    system_clock,
)
from custody.domain.aggregates import Assignment, Key, KeyTransaction
from custody.domain.escalation import escalation_tier
from custody.domain.value_objects import (
    AssignmentId,
    AssignmentStatus,
    DelegationId,
    TransactionStatus,
    TransactionType,
)
from custody.ports.exceptions import (
    InvalidStateError,
    NotFoundError,
    NotificationDeliveryError,
)
from custody.ports.notifications import IReminderNotifier, ReminderNotice
from custody.ports.repositories import (
    IAssignmentRepository,
    IDelegationRepository,
    IKeyRepository,
    ITransactionLog,
)


class OverdueService:
    """Application service for overdue holds, reminders and the sweep."""

    def __init__(
        self,
        session: AsyncSession,
        key_repository: IKeyRepository,
        assignment_repository: IAssignmentRepository,
        delegation_repository: IDelegationRepository,
        transaction_log: ITransactionLog,
        notifier: IReminderNotifier,
        probe: OverdueServiceProbe | None = None,
        clock: Clock = system_clock,
        max_reminder_retries: int = 3,
        batch_size: int | None = None,
    ):
        """Initialize OverdueService with dependencies.

        Args:
            session: Database session for transaction management
            key_repository: Repository used to name keys in reminders
            assignment_repository: Repository for assignment persistence
            delegation_repository: Repository for delegation persistence
            transaction_log: Log receiving reminder records
            notifier: Delivers reminders to holders
            probe: Optional domain probe for observability
            clock: Source of the current time
            max_reminder_retries: Attempts after which a failed reminder is dropped
            batch_size: Maximum records a single sweep step handles
        """
        self._session = session
        self._keys = key_repository
        self._assignments = assignment_repository
        self._delegations = delegation_repository
        self._log = transaction_log
        self._notifier = notifier
        self._probe = probe or DefaultOverdueServiceProbe()
        self._clock = clock
        self._max_reminder_retries = max_reminder_retries
        self._batch_size = batch_size

    async def list_overdue(self) -> list[Assignment]:
        """Return every overdue assignment, oldest due date first.

        Active holds past their due date are reclassified in memory; the
        sweep persists the change.
        """
        now = self._clock()
        async with unit_of_work(self._session):
            overdue = await self._assignments.list_by_status(
                [AssignmentStatus.OVERDUE]
            )
            lapsed = await self._assignments.list_active_past_due(now)

        for assignment in lapsed:
            assignment.refresh(now)
        result = sorted(overdue + lapsed, key=lambda a: a.due_date)
        self._probe.overdue_listed(len(result))
        return result

    async def send_reminders(
        self, scope: ReminderScope | None = None
    ) -> list[ReminderResult]:
        """Remind holders of overdue keys.

        Each assignment in scope gets exactly one reminder per call. Delivery
        failures are recorded and reported, never raised.

        Raises:
            NotFoundError: If the scoped assignment does not exist
            InvalidStateError: If the scoped assignment is not overdue
        """
        scope = scope or ReminderScope.everyone()
        targets = await self._reminder_targets(scope)

        results = []
        for assignment_id in targets:
            try:
                results.append(await self._remind(assignment_id))
            except InvalidStateError as e:
                # Changed underneath us; the next run picks it up again.
                self._probe.sweep_item_skipped(assignment_id.value, str(e))
        return results

    async def retry_failed_reminders(self) -> int:
        """Re-attempt failed reminders that have retries left.

        Reminders for assignments that are no longer overdue are cancelled.

        Returns:
            Number of reminders re-attempted
        """
        async with unit_of_work(self._session):
            failed = await self._log.list_failed_reminders(
                self._max_reminder_retries, limit=self._batch_size
            )

        retried = 0
        for record in failed:
            try:
                if await self._retry_reminder(record):
                    retried += 1
            except InvalidStateError as e:
                self._probe.sweep_item_skipped(record.id.value, str(e))
        return retried

    async def sweep(self) -> SweepReport:
        """Persist overdue and expiry reclassifications, then retry reminders.

        Each record is written in its own unit of work; one that changed
        since it was listed is skipped and left for the next sweep.
        """
        now = self._clock()
        skipped: list[str] = []

        async with unit_of_work(self._session):
            lapsed_assignments = await self._assignments.list_active_past_due(
                now, limit=self._batch_size
            )
            lapsed_delegations = await self._delegations.list_active_past_expiry(
                now, limit=self._batch_size
            )

        assignments_overdue = 0
        for assignment in lapsed_assignments:
            try:
                if await self._mark_overdue(assignment.id):
                    assignments_overdue += 1
            except InvalidStateError as e:
                skipped.append(assignment.id.value)
                self._probe.sweep_item_skipped(assignment.id.value, str(e))

        delegations_expired = 0
        for delegation in lapsed_delegations:
            try:
                if await self._mark_expired(delegation.id):
                    delegations_expired += 1
            except InvalidStateError as e:
                skipped.append(delegation.id.value)
                self._probe.sweep_item_skipped(delegation.id.value, str(e))

        reminders_retried = await self.retry_failed_reminders()

        report = SweepReport(
            assignments_overdue=assignments_overdue,
            delegations_expired=delegations_expired,
            reminders_retried=reminders_retried,
            skipped=skipped,
        )
        self._probe.sweep_completed(
            report.assignments_overdue,
            report.delegations_expired,
            report.reminders_retried,
        )
        return report

    async def _reminder_targets(self, scope: ReminderScope) -> list[AssignmentId]:
        now = self._clock()
        if scope.assignment_id is not None:
            async with unit_of_work(self._session):
                assignment = await self._assignments.get_by_id(scope.assignment_id)
            if assignment is None:
                raise NotFoundError(
                    f"Assignment {scope.assignment_id.value} not found"
                )
            assignment.refresh(now)
            if assignment.status != AssignmentStatus.OVERDUE:
                raise InvalidStateError(
                    f"Assignment {assignment.id.value} is {assignment.status.value}, "
                    "not overdue"
                )
            return [assignment.id]

        if scope.holder_id is not None:
            async with unit_of_work(self._session):
                held = await self._assignments.list_for_holder(
                    scope.holder_id,
                    statuses=[AssignmentStatus.ACTIVE, AssignmentStatus.OVERDUE],
                )
            for assignment in held:
                assignment.refresh(now)
            overdue = sorted(
                (a for a in held if a.status == AssignmentStatus.OVERDUE),
                key=lambda a: a.due_date,
            )
            return [a.id for a in overdue]

        return [a.id for a in await self.list_overdue()]

    async def _remind(self, assignment_id: AssignmentId) -> ReminderResult:
        # The record is committed as pending before delivery, so a reminder
        # that goes out always has a transaction.
        async with unit_of_work(self._session):
            now = self._clock()
            assignment = await self._get_assignment(assignment_id)
            if assignment.refresh(now):
                await self._assignments.save(assignment)
            if assignment.status != AssignmentStatus.OVERDUE:
                raise InvalidStateError(
                    f"Assignment {assignment_id.value} is no longer overdue"
                )
            key = await self._get_key(assignment)

            notice = self._build_notice(assignment, key, now)
            record = KeyTransaction.record(
                TransactionType.OVERDUE_REMINDER,
                key_id=assignment.key_id,
                actor_id=assignment.holder_id,
                status=TransactionStatus.PENDING,
                assignment_id=assignment.id,
                details=(
                    f"Overdue reminder {notice.reminder_number} sent "
                    f"({notice.days_overdue} day(s) overdue)"
                ),
                metadata={
                    "days_overdue": notice.days_overdue,
                    "tier": notice.tier.value,
                    "reminder_number": notice.reminder_number,
                },
                occurred_at=now,
            )
            await self._log.append(record)

        error = await self._deliver(notice)
        await self._settle_reminder(record, assignment.id, error, now)

        self._report_delivery(notice, error, record.retry_count)
        return ReminderResult(
            assignment_id=assignment.id.value,
            key_id=assignment.key_id.value,
            holder_id=assignment.holder_id.value,
            days_overdue=notice.days_overdue,
            tier=notice.tier,
            delivered=error is None,
            transaction_id=record.id.value,
            error=error,
        )

    async def _retry_reminder(self, record: KeyTransaction) -> bool:
        async with unit_of_work(self._session):
            now = self._clock()
            assignment = None
            if record.assignment_id is not None:
                assignment = await self._assignments.get_by_id(record.assignment_id)
            if assignment is not None:
                assignment.refresh(now)

            if assignment is None or assignment.status != AssignmentStatus.OVERDUE:
                record.mark_cancelled("Overdue reminder dropped: key no longer overdue")
                await self._log.update_status(record)
                self._probe.reminder_abandoned(record.id.value, "no longer overdue")
                return False

            key = await self._get_key(assignment)
            notice = self._build_notice(assignment, key, now)

        error = await self._deliver(notice)
        await self._settle_reminder(
            record,
            assignment.id,
            error,
            now,
            details=f"Overdue reminder {notice.reminder_number} sent after retry",
        )

        self._report_delivery(notice, error, record.retry_count)
        if (
            record.status == TransactionStatus.FAILED
            and record.retry_count >= self._max_reminder_retries
        ):
            self._probe.reminder_abandoned(record.id.value, "retries exhausted")
        return True

    async def _settle_reminder(
        self,
        record: KeyTransaction,
        assignment_id: AssignmentId,
        error: str | None,
        now: datetime,
        details: str | None = None,
    ) -> None:
        """Write the delivery outcome, then count a delivered reminder.

        The outcome is committed on its own; losing the counter update to a
        concurrent write leaves the record intact.
        """
        if error is None:
            record.mark_completed(details)
        else:
            record.mark_failed(error)
        async with unit_of_work(self._session):
            await self._log.update_status(record)

        if error is not None:
            return
        try:
            async with unit_of_work(self._session):
                assignment = await self._get_assignment(assignment_id)
                assignment.record_reminder(now)
                await self._assignments.save(assignment)
        except InvalidStateError as e:
            self._probe.sweep_item_skipped(assignment_id.value, str(e))

    async def _mark_overdue(self, assignment_id: AssignmentId) -> bool:
        async with unit_of_work(self._session):
            assignment = await self._assignments.get_by_id(assignment_id)
            if assignment is None or not assignment.refresh(self._clock()):
                return False
            await self._assignments.save(assignment)
        return True

    async def _mark_expired(self, delegation_id: DelegationId) -> bool:
        async with unit_of_work(self._session):
            delegation = await self._delegations.get_by_id(delegation_id)
            if delegation is None or not delegation.refresh(self._clock()):
                return False
            await self._delegations.save(delegation)
        return True

    async def _deliver(self, notice: ReminderNotice) -> str | None:
        try:
            await self._notifier.notify(notice)
        except NotificationDeliveryError as e:
            return str(e)
        return None

    def _report_delivery(
        self, notice: ReminderNotice, error: str | None, retry_count: int
    ) -> None:
        if error is None:
            self._probe.reminder_sent(
                notice.assignment_id,
                notice.holder_id,
                notice.days_overdue,
                notice.tier.value,
            )
        else:
            self._probe.reminder_failed(
                notice.assignment_id, notice.holder_id, error, retry_count
            )

    @staticmethod
    def _build_notice(assignment: Assignment, key: Key, now: datetime) -> ReminderNotice:
        days = assignment.days_overdue(now)
        return ReminderNotice(
            assignment_id=assignment.id.value,
            key_id=assignment.key_id.value,
            key_name=key.name,
            holder_id=assignment.holder_id.value,
            due_date=assignment.due_date,
            days_overdue=days,
            tier=escalation_tier(days),
            reminder_number=assignment.reminders_sent + 1,
        )

    async def _get_assignment(self, assignment_id: AssignmentId) -> Assignment:
        assignment = await self._assignments.get_by_id(assignment_id)
        if assignment is None:
            raise NotFoundError(f"Assignment {assignment_id.value} not found")
        return assignment

    async def _get_key(self, assignment: Assignment) -> Key:
        key = await self._keys.get_by_id(assignment.key_id)
        if key is None:
            raise NotFoundError(f"Key {assignment.key_id.value} not found")
        return key
