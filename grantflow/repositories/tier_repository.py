from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from grantflow.models.investment_term import InvestmentTerm
from grantflow.models.tier_assignment import TierAssignment


class TierRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_assignment(self, program_id: int, user_id: int) -> TierAssignment | None:
        res = await self.db.execute(
            select(TierAssignment).where(
                and_(TierAssignment.program_id == program_id, TierAssignment.user_id == user_id)
            )
        )
        return res.scalar_one_or_none()

    async def get_term_for_tier(self, application_id: int, tier: str) -> InvestmentTerm | None:
        res = await self.db.execute(
            select(InvestmentTerm).where(
                and_(InvestmentTerm.application_id == application_id, InvestmentTerm.price == tier)
            )
        )
        return res.scalars().first()
