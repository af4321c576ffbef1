from typing import List
from fastapi import APIRouter, status

from grantflow.core.deps import CurrentUserDep, NotifierDep, SessionFactoryDep
from grantflow.schemas.investment import FundingProgressOut
from grantflow.schemas.milestone import MilestoneOut, MilestonesCreate
from grantflow.services.investment_service import InvestmentService
from grantflow.services.milestone_service import MilestoneService

router = APIRouter()


@router.get("/{application_id}/funding-progress", response_model=FundingProgressOut)
async def get_funding_progress(
    application_id: int,
    session_factory: SessionFactoryDep,
    current_user: CurrentUserDep,
):
    progress = await InvestmentService(session_factory).get_funding_progress(application_id)
    return FundingProgressOut(
        application_id=application_id,
        current_amount=str(progress.current_amount),
        target_amount=str(progress.target_amount) if progress.target_amount is not None else None,
        percentage=str(progress.percentage),
    )


@router.get("/{application_id}/milestones", response_model=List[MilestoneOut])
async def list_milestones(
    application_id: int,
    session_factory: SessionFactoryDep,
    current_user: CurrentUserDep,
):
    milestones = await MilestoneService(session_factory).list_milestones(application_id)
    return [MilestoneOut.model_validate(m) for m in milestones]


@router.post("/{application_id}/milestones", response_model=List[MilestoneOut], status_code=status.HTTP_201_CREATED)
async def create_milestones(
    application_id: int,
    data: MilestonesCreate,
    session_factory: SessionFactoryDep,
    notifier: NotifierDep,
    current_user: CurrentUserDep,
):
    """Add milestones to an application; the percentage total may not exceed 100"""
    milestones = await MilestoneService(session_factory, notifier).create_milestones(
        application_id, current_user.id, [m.model_dump() for m in data.milestones]
    )
    return [MilestoneOut.model_validate(m) for m in milestones]
