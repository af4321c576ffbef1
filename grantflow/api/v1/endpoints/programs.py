from typing import List
from fastapi import APIRouter

from grantflow.core.deps import CurrentUserDep, NotifierDep, SessionFactoryDep
from grantflow.schemas.fee_claim import ClaimableFeesOut, FeeClaimCreate, FeeClaimOut
from grantflow.schemas.program import FundingSettlementOut, ProgramStatusOut
from grantflow.services.fee_claim_service import FeeClaimService
from grantflow.services.investment_service import InvestmentService
from grantflow.services.program_phase import OverriddenStatus, format_time_until_next_phase
from grantflow.services.program_service import ProgramService

router = APIRouter()


@router.get("/{program_id}/status", response_model=ProgramStatusOut)
async def get_program_status(
    program_id: int,
    session_factory: SessionFactoryDep,
    current_user: CurrentUserDep,
):
    """Derived lifecycle phase with period flags and the countdown to the next phase"""
    detail = await ProgramService(session_factory).get_status(program_id)
    return ProgramStatusOut(
        program_id=program_id,
        status=detail.display_status,
        is_overridden=isinstance(detail.phase, OverriddenStatus),
        current_phase=detail.current_phase,
        is_in_application_period=detail.is_in_application_period,
        is_in_funding_period=detail.is_in_funding_period,
        is_in_pending_period=detail.is_in_pending_period,
        has_date_overlap=detail.has_date_overlap,
        overlap_duration_ms=detail.overlap_duration_ms,
        time_until_next_phase_ms=detail.time_until_next_phase_ms,
        time_until_next_phase=format_time_until_next_phase(detail.time_until_next_phase_ms),
    )


@router.post("/{program_id}/settle-funding", response_model=List[FundingSettlementOut])
async def settle_funding(
    program_id: int,
    session_factory: SessionFactoryDep,
    notifier: NotifierDep,
    current_user: CurrentUserDep,
):
    applications = await InvestmentService(session_factory, notifier).settle_funding(program_id, current_user.id)
    return [FundingSettlementOut.model_validate(a) for a in applications]


@router.get("/{program_id}/fees/claimable", response_model=ClaimableFeesOut)
async def get_claimable_fees(
    program_id: int,
    session_factory: SessionFactoryDep,
    current_user: CurrentUserDep,
):
    fee = await FeeClaimService(session_factory).get_claimable_fees(program_id, current_user.id)
    return ClaimableFeesOut(
        amount=str(fee.amount),
        can_claim=fee.can_claim,
        reason=fee.reason,
        fee_percentage=str(fee.fee_percentage) if fee.fee_percentage is not None else None,
        pending_end_date=fee.pending_end_date,
        claimed_at=fee.claimed_at,
    )


@router.post("/{program_id}/fees/claim", response_model=FeeClaimOut)
async def claim_program_fees(
    program_id: int,
    data: FeeClaimCreate,
    session_factory: SessionFactoryDep,
    notifier: NotifierDep,
    current_user: CurrentUserDep,
):
    """Host fee claim, allowed once per program after the pending period"""
    claim = await FeeClaimService(session_factory, notifier).claim_program_fees(
        program_id, current_user.id, data.tx_hash
    )
    return FeeClaimOut.model_validate(claim)
