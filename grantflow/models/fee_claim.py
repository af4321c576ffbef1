from __future__ import annotations
from datetime import datetime
from enum import Enum
from sqlalchemy import String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from grantflow.db.base import Base


class FeeClaimStatus(str, Enum):
    PENDING = "pending"
    CLAIMED = "claimed"
    FAILED = "failed"


class FeeClaim(Base):
    __tablename__ = "fee_claims"
    __table_args__ = (
        # At most one claim per program and host
        UniqueConstraint("program_id", "claimed_by", name="uq_fee_claim_program_host"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    program_id: Mapped[int] = mapped_column(ForeignKey("programs.id"), index=True)
    claimed_by: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    amount: Mapped[str] = mapped_column(String(256))
    tx_hash: Mapped[str | None] = mapped_column(String(256), default=None)
    status: Mapped[str] = mapped_column(String(20), default=FeeClaimStatus.PENDING.value, index=True)
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime, default=None)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
