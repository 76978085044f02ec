"""SQLAlchemy ORM model for the key_delegations table."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from infrastructure.database.models import Base, TimestampMixin


class KeyDelegationModel(Base, TimestampMixin):
    """ORM model for key_delegations table.

    Notes:
    - uq_key_delegations_active_pair allows one active grant per
      (key, delegator, delegate); different delegates may share concurrently
    - parent_id links a re-share to the grant it was made under

    Foreign Key Constraints:
    - key_id references keys.id with RESTRICT delete
    - assignment_id references key_assignments.id with RESTRICT delete
    """

    __tablename__ = "key_delegations"

    id: Mapped[str] = mapped_column(String(26), primary_key=True)
    key_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("keys.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    assignment_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("key_assignments.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    delegator_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    delegate_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    shared_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    can_collect: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    can_return: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    can_delegate: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    access_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_accessed: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    revoked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    revoked_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    revocation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    cancelled_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    parent_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("key_delegations.id", ondelete="RESTRICT"),
        nullable=True,
    )
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    __table_args__ = (
        Index(
            "uq_key_delegations_active_pair",
            "key_id",
            "delegator_id",
            "delegate_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
        ),
        Index("idx_key_delegations_status_expiry", "status", "expires_at"),
    )

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"<KeyDelegationModel(id={self.id}, key_id={self.key_id}, "
            f"delegator_id={self.delegator_id}, delegate_id={self.delegate_id}, "
            f"status={self.status})>"
        )
