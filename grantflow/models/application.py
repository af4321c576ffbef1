from __future__ import annotations
from datetime import datetime
from enum import Enum
from sqlalchemy import String, DateTime, ForeignKey, Boolean, Integer
from sqlalchemy.orm import Mapped, mapped_column

from grantflow.db.base import Base


class ApplicationStatus(str, Enum):
    PENDING = "pending"
    SUBMITTED = "submitted"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    COMPLETED = "completed"


class Application(Base):
    """A builder's project inside a program; receives investments and carries milestones."""

    __tablename__ = "applications"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    program_id: Mapped[int] = mapped_column(ForeignKey("programs.id"), index=True)
    applicant_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    name: Mapped[str] = mapped_column(String(255))
    status: Mapped[str] = mapped_column(String(30), default=ApplicationStatus.PENDING.value, index=True)

    # Total milestone budget (decimal string)
    price: Mapped[str] = mapped_column(String(256), default="0")
    funding_target: Mapped[str | None] = mapped_column(String(256), default=None)
    funding_successful: Mapped[bool] = mapped_column(Boolean, default=False)
    # Running total of confirmed investments, refreshed in every confirming transaction
    funded_amount: Mapped[str] = mapped_column(String(256), default="0")

    # Optimistic guard for the confirmed-investment aggregate and milestone set
    version_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __mapper_args__ = {"version_id_col": version_id}
