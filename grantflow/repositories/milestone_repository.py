from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from grantflow.models.milestone import Milestone


class MilestoneRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, milestone_id: int) -> Milestone | None:
        res = await self.db.execute(select(Milestone).where(Milestone.id == milestone_id))
        return res.scalar_one_or_none()

    async def list_by_application(self, application_id: int) -> list[Milestone]:
        res = await self.db.execute(
            select(Milestone)
            .where(Milestone.application_id == application_id)
            .order_by(Milestone.sort_order, Milestone.id)
        )
        return list(res.scalars().all())

    async def max_sort_order(self, application_id: int) -> int | None:
        res = await self.db.execute(
            select(func.max(Milestone.sort_order)).where(Milestone.application_id == application_id)
        )
        return res.scalar_one_or_none()

    async def create(self, milestone: Milestone) -> Milestone:
        self.db.add(milestone)
        await self.db.flush()
        return milestone
