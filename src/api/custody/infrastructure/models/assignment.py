"""SQLAlchemy ORM model for the key_assignments table."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from infrastructure.database.models import Base, TimestampMixin

# Statuses in which an assignment still ties up its key.
OUTSTANDING_PREDICATE = "status IN ('pending', 'active', 'overdue')"


class KeyAssignmentModel(Base, TimestampMixin):
    """ORM model for key_assignments table.

    Notes:
    - uq_key_assignments_outstanding_key allows at most one pending, active
      or overdue assignment per key; request inserts rely on it to resolve
      concurrent requests atomically
    - version is the optimistic concurrency counter checked by every update

    Foreign Key Constraint:
    - key_id references keys.id with RESTRICT delete
    """

    __tablename__ = "key_assignments"

    id: Mapped[str] = mapped_column(String(26), primary_key=True)
    key_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("keys.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    holder_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    grantor_id: Mapped[str] = mapped_column(String(255), nullable=False)
    assigned_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    due_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    access_type: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    request_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    approval_required: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    approved_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    rejected_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    collected_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    collected_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    returned_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    returned_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    return_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    actual_duration_hours: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    cancelled_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    reminders_sent: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_reminder_sent: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    __table_args__ = (
        Index(
            "uq_key_assignments_outstanding_key",
            "key_id",
            unique=True,
            postgresql_where=text(OUTSTANDING_PREDICATE),
        ),
        Index("idx_key_assignments_status_due", "status", "due_date"),
    )

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"<KeyAssignmentModel(id={self.id}, key_id={self.key_id}, "
            f"holder_id={self.holder_id}, status={self.status}, "
            f"version={self.version})>"
        )
