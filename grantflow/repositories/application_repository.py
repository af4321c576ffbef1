from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from grantflow.core.clock import utcnow
from grantflow.models.application import Application


class ApplicationRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, application_id: int, *, for_update: bool = False) -> Application | None:
        """Load an application; ``for_update`` takes a row lock where the backend supports it."""
        query = select(Application).where(Application.id == application_id)
        if for_update:
            query = query.with_for_update()
        res = await self.db.execute(query)
        return res.scalar_one_or_none()

    async def list_by_program(self, program_id: int, *, for_update: bool = False) -> list[Application]:
        query = select(Application).where(Application.program_id == program_id).order_by(Application.id)
        if for_update:
            query = query.with_for_update()
        res = await self.db.execute(query)
        return list(res.scalars().all())

    async def create(self, application: Application) -> Application:
        self.db.add(application)
        await self.db.flush()
        return application

    def touch(self, application: Application) -> None:
        """Mark the application dirty so its version is bumped on flush."""
        application.updated_at = utcnow()
