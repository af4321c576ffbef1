from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from grantflow.core.clock import utcnow
from grantflow.core.errors import NotFoundError
from grantflow.repositories.program_repository import ProgramRepository
from grantflow.services.program_phase import ProgramStatusDetail, get_program_detailed_status


class ProgramService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get_status(self, program_id: int, now: datetime | None = None) -> ProgramStatusDetail:
        async with self.session_factory() as db:
            program = await ProgramRepository(db).get_by_id(program_id)
            if not program:
                raise NotFoundError(f"Program {program_id} not found")
            return get_program_detailed_status(program, now or utcnow())
