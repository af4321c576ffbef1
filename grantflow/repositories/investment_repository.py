from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from grantflow.models.application import Application
from grantflow.models.investment import Investment, InvestmentStatus


class InvestmentRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, investment_id: int, *, for_update: bool = False) -> Investment | None:
        query = select(Investment).where(Investment.id == investment_id)
        if for_update:
            query = query.with_for_update()
        res = await self.db.execute(query)
        return res.scalar_one_or_none()

    async def create(self, investment: Investment) -> Investment:
        self.db.add(investment)
        await self.db.flush()
        return investment

    async def list_confirmed_amounts(self, application_id: int, user_id: int | None = None) -> list[str]:
        """Amounts of confirmed investments; summed by the caller with decimal arithmetic."""
        conditions = [
            Investment.application_id == application_id,
            Investment.status == InvestmentStatus.CONFIRMED.value,
        ]
        if user_id is not None:
            conditions.append(Investment.user_id == user_id)
        res = await self.db.execute(select(Investment.amount).where(and_(*conditions)))
        return list(res.scalars().all())

    async def list_confirmed_amounts_for_program(self, program_id: int) -> list[str]:
        res = await self.db.execute(
            select(Investment.amount)
            .join(Application, Application.id == Investment.application_id)
            .where(
                and_(
                    Application.program_id == program_id,
                    Investment.status == InvestmentStatus.CONFIRMED.value,
                )
            )
        )
        return list(res.scalars().all())

    async def count_confirmed_by_tier(self, application_id: int, tier: str) -> int:
        res = await self.db.execute(
            select(func.count(Investment.id)).where(
                and_(
                    Investment.application_id == application_id,
                    Investment.tier == tier,
                    Investment.status == InvestmentStatus.CONFIRMED.value,
                )
            )
        )
        return res.scalar_one() or 0
