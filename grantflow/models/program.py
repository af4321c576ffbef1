from __future__ import annotations
from datetime import datetime
from enum import Enum
from sqlalchemy import String, DateTime, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column

from grantflow.db.base import Base


class ProgramType(str, Enum):
    FUNDING = "funding"
    STANDARD = "standard"


class ProgramStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    PAYMENT_REQUIRED = "payment_required"
    CLOSED = "closed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


class FundingCondition(str, Enum):
    NONE = "none"
    TIER = "tier"


class Program(Base):
    __tablename__ = "programs"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(255), index=True)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    type: Mapped[str] = mapped_column(String(20), default=ProgramType.STANDARD.value, index=True)
    status: Mapped[str] = mapped_column(String(30), default=ProgramStatus.DRAFT.value, index=True)

    application_start_date: Mapped[datetime | None] = mapped_column(DateTime, default=None)
    application_end_date: Mapped[datetime | None] = mapped_column(DateTime, default=None)
    funding_start_date: Mapped[datetime | None] = mapped_column(DateTime, default=None)
    funding_end_date: Mapped[datetime | None] = mapped_column(DateTime, default=None)

    # Decimal strings
    max_funding_amount: Mapped[str | None] = mapped_column(String(256), default=None)
    fee_percentage: Mapped[str | None] = mapped_column(String(32), default="3")
    funding_condition: Mapped[str] = mapped_column(String(20), default=FundingCondition.NONE.value)

    creator_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    validator_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
