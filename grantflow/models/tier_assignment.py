from __future__ import annotations
from datetime import datetime
from sqlalchemy import String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from grantflow.db.base import Base


class TierAssignment(Base):
    __tablename__ = "tier_assignments"
    __table_args__ = (
        UniqueConstraint("program_id", "user_id", name="uq_tier_assignment_program_user"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    program_id: Mapped[int] = mapped_column(ForeignKey("programs.id"), index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    tier: Mapped[str] = mapped_column(String(50))
    max_investment_amount: Mapped[str] = mapped_column(String(256))

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
