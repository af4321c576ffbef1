from datetime import datetime
from pydantic import BaseModel, Field

from grantflow.schemas.money import DecimalString


class InvestmentCreate(BaseModel):
    application_id: int
    amount: DecimalString
    tx_hash: str | None = Field(default=None, max_length=256)
    investment_term_id: int | None = None


class InvestmentConfirm(BaseModel):
    tx_hash: str = Field(min_length=1, max_length=256)


class InvestmentReclaim(BaseModel):
    tx_hash: str | None = Field(default=None, max_length=256)


class InvestmentOut(BaseModel):
    id: int
    application_id: int
    user_id: int
    investment_term_id: int | None = None
    amount: str
    tier: str | None = None
    status: str
    tx_hash: str | None = None
    reclaim_tx_hash: str | None = None
    reclaimed_at: datetime | None = None
    created_at: datetime

    class Config:
        from_attributes = True


class ReclaimEligibilityOut(BaseModel):
    investment_id: int
    can_reclaim: bool


class FundingProgressOut(BaseModel):
    application_id: int
    current_amount: str
    target_amount: str | None = None
    percentage: str
