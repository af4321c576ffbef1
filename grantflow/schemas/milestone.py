from datetime import datetime
from typing import Literal
from pydantic import BaseModel, Field

from grantflow.schemas.money import DecimalString

ReviewStatus = Literal["pending", "revision_requested", "completed", "failed"]


class MilestoneCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    percentage: DecimalString | None = None
    deadline: datetime | None = None


class MilestonesCreate(BaseModel):
    milestones: list[MilestoneCreate] = Field(min_length=1)


class MilestoneUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    percentage: DecimalString | None = None
    deadline: datetime | None = None
    status: ReviewStatus | None = None


class MilestoneSubmit(BaseModel):
    description: str | None = None


class MilestoneCheck(BaseModel):
    status: ReviewStatus


class MilestoneOut(BaseModel):
    id: int
    application_id: int
    title: str
    description: str | None = None
    sort_order: int
    percentage: str | None = None
    price: str
    status: str
    deadline: datetime | None = None
    created_at: datetime

    class Config:
        from_attributes = True
