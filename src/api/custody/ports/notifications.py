"""Notification port for overdue reminders.

Only the triggering of a reminder belongs to the custody context; how it
reaches the holder (email, chat, SMS) is left to the implementation.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, runtime_checkable

from custody.domain.value_objects import EscalationTier


@dataclass(frozen=True)
class ReminderNotice:
    """Everything a notifier needs to remind a holder about an overdue key."""

    assignment_id: str
    key_id: str
    key_name: str
    holder_id: str
    due_date: datetime
    days_overdue: int
    tier: EscalationTier
    reminder_number: int


@runtime_checkable
class IReminderNotifier(Protocol):
    """Delivers overdue reminders to holders."""

    async def notify(self, notice: ReminderNotice) -> None:
        """Deliver a reminder.

        Raises:
            NotificationDeliveryError: If the reminder could not be delivered
        """
        ...
