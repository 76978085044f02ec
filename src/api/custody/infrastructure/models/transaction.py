"""SQLAlchemy ORM model for the key_transactions table."""

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from infrastructure.database.models import Base


class KeyTransactionModel(Base):
    """ORM model for key_transactions table.

    Append-only: rows are inserted once and afterwards only their status,
    details, error_message and retry_count change.

    The "metadata" column is mapped to the extra attribute because the
    declarative base reserves the metadata name.
    """

    __tablename__ = "key_transactions"

    id: Mapped[str] = mapped_column(String(26), primary_key=True)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    key_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("keys.id", ondelete="RESTRICT"),
        nullable=False,
    )
    actor_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    verifier_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    assignment_id: Mapped[str | None] = mapped_column(
        String(26), nullable=True, index=True
    )
    delegation_id: Mapped[str | None] = mapped_column(String(26), nullable=True)
    delegate_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    details: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    retry_count: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default="0"
    )
    extra: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSONB, nullable=False, server_default=text("'{}'::jsonb")
    )
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("NOW()"),
    )

    __table_args__ = (
        Index("idx_key_transactions_key_occurred", "key_id", "occurred_at"),
        Index("idx_key_transactions_occurred", "occurred_at"),
        Index(
            "idx_key_transactions_failed_reminders",
            "occurred_at",
            postgresql_where=text("type = 'overdue_reminder' AND status = 'failed'"),
        ),
    )

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"<KeyTransactionModel(id={self.id}, type={self.type}, "
            f"key_id={self.key_id}, status={self.status})>"
        )
