from fastapi import APIRouter

from grantflow.core.deps import CurrentUserDep, NotifierDep, SessionFactoryDep
from grantflow.schemas.milestone import MilestoneCheck, MilestoneOut, MilestoneSubmit, MilestoneUpdate
from grantflow.services.milestone_service import MilestoneService

router = APIRouter()


@router.patch("/{milestone_id}", response_model=MilestoneOut)
async def update_milestone(
    milestone_id: int,
    data: MilestoneUpdate,
    session_factory: SessionFactoryDep,
    notifier: NotifierDep,
    current_user: CurrentUserDep,
):
    """Partial update; a new percentage is revalidated against the application's other milestones"""
    milestone = await MilestoneService(session_factory, notifier).update_milestone(
        milestone_id, current_user.id, data.model_dump(exclude_unset=True)
    )
    return MilestoneOut.model_validate(milestone)


@router.post("/{milestone_id}/submit", response_model=MilestoneOut)
async def submit_milestone(
    milestone_id: int,
    data: MilestoneSubmit,
    session_factory: SessionFactoryDep,
    notifier: NotifierDep,
    current_user: CurrentUserDep,
):
    milestone = await MilestoneService(session_factory, notifier).submit_milestone(
        milestone_id, current_user.id, data.description
    )
    return MilestoneOut.model_validate(milestone)


@router.post("/{milestone_id}/check", response_model=MilestoneOut)
async def check_milestone(
    milestone_id: int,
    data: MilestoneCheck,
    session_factory: SessionFactoryDep,
    notifier: NotifierDep,
    current_user: CurrentUserDep,
):
    milestone = await MilestoneService(session_factory, notifier).check_milestone(
        milestone_id, current_user.id, data.status
    )
    return MilestoneOut.model_validate(milestone)
