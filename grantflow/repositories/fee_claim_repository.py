from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession
from grantflow.models.fee_claim import FeeClaim, FeeClaimStatus


class FeeClaimRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_claimed(self, program_id: int, claimed_by: int) -> FeeClaim | None:
        res = await self.db.execute(
            select(FeeClaim).where(
                and_(
                    FeeClaim.program_id == program_id,
                    FeeClaim.claimed_by == claimed_by,
                    FeeClaim.status == FeeClaimStatus.CLAIMED.value,
                )
            )
        )
        return res.scalar_one_or_none()

    async def create(self, claim: FeeClaim) -> FeeClaim:
        self.db.add(claim)
        await self.db.flush()
        return claim
