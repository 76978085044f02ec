"""Protocol for overdue monitoring observability.

Covers reminder delivery and the periodic sweep that reclassifies
overdue holds and expired delegations.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from infrastructure.observability.context import ObservationContext


class OverdueServiceProbe(Protocol):
    """Domain probe for overdue monitoring operations."""

    def overdue_listed(self, count: int) -> None:
        """Record that overdue assignments were listed."""
        ...

    def reminder_sent(
        self, assignment_id: str, holder_id: str, days_overdue: int, tier: str
    ) -> None:
        """Record that a reminder was delivered."""
        ...

    def reminder_failed(
        self, assignment_id: str, holder_id: str, error: str, retry_count: int
    ) -> None:
        """Record that a reminder could not be delivered."""
        ...

    def reminder_abandoned(self, transaction_id: str, reason: str) -> None:
        """Record that a failed reminder will no longer be retried."""
        ...

    def sweep_completed(
        self, assignments_overdue: int, delegations_expired: int, reminders_retried: int
    ) -> None:
        """Record the outcome of a periodic sweep."""
        ...

    def sweep_item_skipped(self, record_id: str, error: str) -> None:
        """Record that a sweep could not transition one record."""
        ...

    def with_context(self, context: ObservationContext) -> OverdueServiceProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultOverdueServiceProbe:
    """Default implementation of OverdueServiceProbe using structlog."""

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger | None = None,
        context: ObservationContext | None = None,
    ):
        self._logger = logger or structlog.get_logger()
        self._context = context

    def _get_context_kwargs(self) -> dict[str, Any]:
        """Get context metadata as kwargs for logging."""
        if self._context is None:
            return {}
        return self._context.as_dict()

    def with_context(self, context: ObservationContext) -> DefaultOverdueServiceProbe:
        """Create a new probe with observation context bound."""
        return DefaultOverdueServiceProbe(logger=self._logger, context=context)

    def overdue_listed(self, count: int) -> None:
        """Record that overdue assignments were listed."""
        self._logger.debug(
            "overdue_listed",
            count=count,
            **self._get_context_kwargs(),
        )

    def reminder_sent(
        self, assignment_id: str, holder_id: str, days_overdue: int, tier: str
    ) -> None:
        """Record that a reminder was delivered."""
        self._logger.info(
            "reminder_sent",
            assignment_id=assignment_id,
            holder_id=holder_id,
            days_overdue=days_overdue,
            tier=tier,
            **self._get_context_kwargs(),
        )

    def reminder_failed(
        self, assignment_id: str, holder_id: str, error: str, retry_count: int
    ) -> None:
        """Record that a reminder could not be delivered."""
        self._logger.warning(
            "reminder_failed",
            assignment_id=assignment_id,
            holder_id=holder_id,
            error=error,
            retry_count=retry_count,
            **self._get_context_kwargs(),
        )

    def reminder_abandoned(self, transaction_id: str, reason: str) -> None:
        """Record that a failed reminder will no longer be retried."""
        self._logger.info(
            "reminder_abandoned",
            transaction_id=transaction_id,
            reason=reason,
            **self._get_context_kwargs(),
        )

    def sweep_completed(
        self, assignments_overdue: int, delegations_expired: int, reminders_retried: int
    ) -> None:
        """Record the outcome of a periodic sweep."""
        self._logger.info(
            "sweep_completed",
            assignments_overdue=assignments_overdue,
            delegations_expired=delegations_expired,
            reminders_retried=reminders_retried,
            **self._get_context_kwargs(),
        )

    def sweep_item_skipped(self, record_id: str, error: str) -> None:
        """Record that a sweep could not transition one record."""
        self._logger.warning(
            "sweep_item_skipped",
            record_id=record_id,
            error=error,
            **self._get_context_kwargs(),
        )
