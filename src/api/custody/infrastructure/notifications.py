"""Reminder notifier that records reminders in the structured log.

Delivery transports (email, chat) live outside the custody context; this
notifier is the default wiring and the hook such a transport replaces.
"""

from __future__ import annotations

import structlog

from custody.domain.value_objects import EscalationTier
from custody.ports.notifications import IReminderNotifier, ReminderNotice

# Tiers from which a reminder is logged as a warning rather than info.
_URGENT_TIERS = frozenset({EscalationTier.HIGH, EscalationTier.CRITICAL})


class LoggingReminderNotifier(IReminderNotifier):
    """Emits each overdue reminder as a structlog event."""

    def __init__(self, logger: structlog.stdlib.BoundLogger | None = None) -> None:
        self._logger = logger or structlog.get_logger()

    async def notify(self, notice: ReminderNotice) -> None:
        """Log the reminder; escalated tiers are logged as warnings."""
        log = self._logger.warning if notice.tier in _URGENT_TIERS else self._logger.info
        log(
            "overdue_reminder",
            assignment_id=notice.assignment_id,
            key_id=notice.key_id,
            key_name=notice.key_name,
            holder_id=notice.holder_id,
            due_date=notice.due_date.isoformat(),
            days_overdue=notice.days_overdue,
            tier=notice.tier.value,
            reminder_number=notice.reminder_number,
        )
