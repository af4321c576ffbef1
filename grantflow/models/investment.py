from __future__ import annotations
from datetime import datetime
from enum import Enum
from sqlalchemy import String, DateTime, ForeignKey, Integer
from sqlalchemy.orm import Mapped, mapped_column

from grantflow.db.base import Base


class InvestmentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REFUNDED = "refunded"


class Investment(Base):
    __tablename__ = "investments"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    application_id: Mapped[int] = mapped_column(ForeignKey("applications.id"), index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    investment_term_id: Mapped[int | None] = mapped_column(ForeignKey("investment_terms.id"), nullable=True)

    amount: Mapped[str] = mapped_column(String(256))
    tier: Mapped[str | None] = mapped_column(String(50), default=None, index=True)
    status: Mapped[str] = mapped_column(String(20), default=InvestmentStatus.PENDING.value, index=True)

    # Chain transaction hashes are accepted as already verified
    tx_hash: Mapped[str | None] = mapped_column(String(256), default=None)
    reclaim_tx_hash: Mapped[str | None] = mapped_column(String(256), default=None)
    reclaimed_at: Mapped[datetime | None] = mapped_column(DateTime, default=None)

    version_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __mapper_args__ = {"version_id_col": version_id}
