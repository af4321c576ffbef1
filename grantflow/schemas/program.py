from pydantic import BaseModel


class ProgramStatusOut(BaseModel):
    program_id: int
    status: str
    is_overridden: bool
    current_phase: str
    is_in_application_period: bool
    is_in_funding_period: bool
    is_in_pending_period: bool
    has_date_overlap: bool
    overlap_duration_ms: int | None = None
    time_until_next_phase_ms: int | None = None
    time_until_next_phase: str


class FundingSettlementOut(BaseModel):
    id: int
    name: str
    funding_successful: bool
    funded_amount: str

    class Config:
        from_attributes = True
