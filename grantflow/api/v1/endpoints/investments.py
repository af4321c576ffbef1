from fastapi import APIRouter, status

from grantflow.core.deps import CurrentUserDep, NotifierDep, SessionFactoryDep
from grantflow.schemas.investment import (
    InvestmentConfirm,
    InvestmentCreate,
    InvestmentOut,
    InvestmentReclaim,
    ReclaimEligibilityOut,
)
from grantflow.services.investment_service import InvestmentService
from grantflow.services.reclaim_service import ReclaimService

router = APIRouter()


@router.post("", response_model=InvestmentOut, status_code=status.HTTP_201_CREATED)
async def create_investment(
    data: InvestmentCreate,
    session_factory: SessionFactoryDep,
    notifier: NotifierDep,
    current_user: CurrentUserDep,
):
    """Record an investment; it is confirmed immediately when a transaction hash is supplied"""
    investment = await InvestmentService(session_factory, notifier).record_investment(
        application_id=data.application_id,
        investor_id=current_user.id,
        amount=data.amount,
        tx_hash=data.tx_hash,
        investment_term_id=data.investment_term_id,
    )
    return InvestmentOut.model_validate(investment)


@router.post("/{investment_id}/confirm", response_model=InvestmentOut)
async def confirm_investment(
    investment_id: int,
    data: InvestmentConfirm,
    session_factory: SessionFactoryDep,
    notifier: NotifierDep,
    current_user: CurrentUserDep,
):
    investment = await InvestmentService(session_factory, notifier).confirm_investment(
        investment_id, current_user.id, data.tx_hash
    )
    return InvestmentOut.model_validate(investment)


@router.post("/{investment_id}/reclaim", response_model=InvestmentOut)
async def reclaim_investment(
    investment_id: int,
    data: InvestmentReclaim,
    session_factory: SessionFactoryDep,
    notifier: NotifierDep,
    current_user: CurrentUserDep,
):
    """Refund a confirmed investment after failed funding or a missed milestone deadline"""
    investment = await ReclaimService(session_factory, notifier).reclaim_investment(
        investment_id, current_user.id, data.tx_hash
    )
    return InvestmentOut.model_validate(investment)


@router.get("/{investment_id}/can-reclaim", response_model=ReclaimEligibilityOut)
async def can_reclaim_investment(
    investment_id: int,
    session_factory: SessionFactoryDep,
    current_user: CurrentUserDep,
):
    eligible = await ReclaimService(session_factory).can_reclaim_investment(investment_id, current_user.id)
    return ReclaimEligibilityOut(investment_id=investment_id, can_reclaim=eligible)
