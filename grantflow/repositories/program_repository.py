from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from grantflow.models.program import Program


class ProgramRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, program_id: int, *, for_update: bool = False) -> Program | None:
        query = select(Program).where(Program.id == program_id)
        if for_update:
            query = query.with_for_update()
        res = await self.db.execute(query)
        return res.scalar_one_or_none()

    async def create(self, program: Program) -> Program:
        self.db.add(program)
        await self.db.flush()
        return program
