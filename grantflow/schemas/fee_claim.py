from datetime import datetime
from pydantic import BaseModel, Field


class FeeClaimCreate(BaseModel):
    tx_hash: str | None = Field(default=None, max_length=256)


class ClaimableFeesOut(BaseModel):
    amount: str
    can_claim: bool
    reason: str | None = None
    fee_percentage: str | None = None
    pending_end_date: datetime | None = None
    claimed_at: datetime | None = None


class FeeClaimOut(BaseModel):
    id: int
    program_id: int
    claimed_by: int
    amount: str
    tx_hash: str | None = None
    status: str
    claimed_at: datetime | None = None

    class Config:
        from_attributes = True
