"""SQLAlchemy ORM model for the keys table."""

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from infrastructure.database.models import Base, TimestampMixin


class KeyModel(Base, TimestampMixin):
    """ORM model for keys table.

    Notes:
    - id is VARCHAR(26) for ULID format
    - current_status is derived from the assignment ledger except for the
      maintenance/lost overrides
    - Rows are never deleted; retirement clears is_active
    """

    __tablename__ = "keys"

    id: Mapped[str] = mapped_column(String(26), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    lab_name: Mapped[str] = mapped_column(String(255), nullable=False)
    lab_number: Mapped[str] = mapped_column(String(64), nullable=False)
    department: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    location: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    requires_approval: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    max_assignment_duration_hours: Mapped[int] = mapped_column(
        Integer, default=24, nullable=False
    )
    current_status: Mapped[str] = mapped_column(String(20), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    total_assignments: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"<KeyModel(id={self.id}, name={self.name}, "
            f"current_status={self.current_status}, is_active={self.is_active})>"
        )
